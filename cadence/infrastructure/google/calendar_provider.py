"""
Google Calendar provider (REST v3 over httpx).

Events created by the planner carry their reconciliation key as a private
extended property and get an event id derived from that key, so a create
retried after a lost response lands on the same event.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Any, Optional
from urllib.parse import quote

import httpx

from cadence.core.config import Settings, get_settings
from cadence.core.exceptions import CalendarUnavailableError
from cadence.core.logger import setup_logger
from cadence.interfaces.calendar_provider import ICalendarProvider
from cadence.models.enums import BusySource
from cadence.models.schedule import BusyInterval, ExternalEvent
from cadence.models.user import CalendarAccount
from cadence.utils.datetime_utils import ensure_utc

logger = setup_logger(__name__)

KEY_PROPERTY = "cadenceKey"
PAGE_SIZE = 250
CALENDAR_LIST_PATH = "/users/me/calendarList"


def event_id_for_key(key: str) -> str:
    """Deterministic Google event id (base32hex alphabet) for a reconciliation key."""
    return "cad" + hashlib.sha1(key.encode("utf-8")).hexdigest()


def _format_datetime(value: datetime) -> str:
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def _parse_datetime(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def _event_id_from(payload: dict[str, Any]) -> str:
    event_id = payload.get("id")
    if not isinstance(event_id, str) or not event_id:
        raise CalendarUnavailableError(
            "Google Calendar response has no event id", details={"payload_keys": sorted(payload)}
        )
    return event_id


class GoogleCalendarProvider(ICalendarProvider):
    """Google Calendar API v3 provider using the caller's OAuth access token."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self._settings = settings or get_settings()
        self._base_url = self._settings.GOOGLE_CALENDAR_API_BASE.rstrip("/")
        self._transport = transport
        self._timeout = timeout

    def _client(self, account: CalendarAccount) -> httpx.AsyncClient:
        if not account.access_token:
            raise CalendarUnavailableError(
                f"Calendar account {account.account_id} has no access token",
                details={"account_id": account.account_id},
            )
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {account.access_token}"},
            timeout=self._timeout,
            transport=self._transport,
        )

    @staticmethod
    def _events_path(
        account: CalendarAccount,
        event_id: Optional[str] = None,
        calendar_id: Optional[str] = None,
    ) -> str:
        path = f"/calendars/{quote(calendar_id or account.calendar_id, safe='')}/events"
        if event_id:
            path += f"/{quote(event_id, safe='')}"
        return path

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        allow_conflict: bool = False,
    ) -> Optional[dict[str, Any]]:
        """
        Send one request; map transport and HTTP failures to CalendarUnavailableError.

        Returns None for a 409 when ``allow_conflict`` is set.
        """
        try:
            response = await client.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            raise CalendarUnavailableError(
                f"Google Calendar request failed: {e}", details={"path": path}
            ) from e

        if allow_conflict and response.status_code == 409:
            return None
        if response.is_error:
            raise CalendarUnavailableError(
                f"Google Calendar returned HTTP {response.status_code}",
                details={"path": path, "status_code": response.status_code},
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise CalendarUnavailableError(
                "Google Calendar returned a malformed response",
                details={"path": path, "status_code": response.status_code},
            ) from e
        if not isinstance(payload, dict):
            raise CalendarUnavailableError(
                "Google Calendar returned a malformed response",
                details={"path": path, "status_code": response.status_code},
            )
        return payload

    async def list_busy_intervals(
        self, account: CalendarAccount, start_at: datetime, end_at: datetime
    ) -> list[BusyInterval]:
        intervals: list[BusyInterval] = []
        async with self._client(account) as client:
            calendar_ids = account.busy_calendars
            if account.read_all_calendars:
                listed = await self._list_calendar_ids(client)
                calendar_ids = list(dict.fromkeys([*calendar_ids, *listed]))
            for calendar_id in calendar_ids:
                intervals.extend(
                    await self._list_calendar_busy(client, account, calendar_id, start_at, end_at)
                )

        intervals.sort(key=lambda interval: interval.start_at)
        logger.debug(
            f"Fetched {len(intervals)} busy intervals from {len(calendar_ids)} calendars "
            f"for account {account.account_id}"
        )
        return intervals

    async def _list_calendar_ids(self, client: httpx.AsyncClient) -> list[str]:
        """Ids of every calendar on the account's calendar list."""
        calendar_ids: list[str] = []
        params: dict[str, Any] = {"maxResults": PAGE_SIZE}
        while True:
            payload = await self._request(client, "GET", CALENDAR_LIST_PATH, params=params)
            calendar_ids.extend(
                item["id"]
                for item in payload.get("items", [])
                if item.get("id") and not item.get("deleted")
            )
            page_token = payload.get("nextPageToken")
            if not page_token:
                return calendar_ids
            params = {**params, "pageToken": page_token}

    async def _list_calendar_busy(
        self,
        client: httpx.AsyncClient,
        account: CalendarAccount,
        calendar_id: str,
        start_at: datetime,
        end_at: datetime,
    ) -> list[BusyInterval]:
        intervals: list[BusyInterval] = []
        path = self._events_path(account, calendar_id=calendar_id)
        params: dict[str, Any] = {
            "timeMin": _format_datetime(start_at),
            "timeMax": _format_datetime(end_at),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": PAGE_SIZE,
        }
        while True:
            payload = await self._request(client, "GET", path, params=params)
            for item in payload.get("items", []):
                event = self._to_event(item)
                # All-day, cancelled and "free" events do not block time
                if event is None or item.get("transparency") == "transparent":
                    continue
                intervals.append(
                    BusyInterval(
                        start_at=event.start_at,
                        end_at=event.end_at,
                        source=BusySource.EXTERNAL_CALENDAR,
                        title=event.title,
                        key=event.key,
                    )
                )
            page_token = payload.get("nextPageToken")
            if not page_token:
                return intervals
            params = {**params, "pageToken": page_token}

    async def find_event_by_key(
        self, account: CalendarAccount, key: str
    ) -> Optional[ExternalEvent]:
        params = {
            "privateExtendedProperty": f"{KEY_PROPERTY}={key}",
            "singleEvents": "true",
            "maxResults": 1,
        }
        async with self._client(account) as client:
            payload = await self._request(
                client, "GET", self._events_path(account), params=params
            )
        for item in payload.get("items", []):
            event = self._to_event(item)
            if event is not None:
                return event
        return None

    async def upsert_event(
        self,
        account: CalendarAccount,
        key: str,
        start_at: datetime,
        end_at: datetime,
        title: str,
        event_id: Optional[str] = None,
    ) -> str:
        body = {
            "summary": title,
            "start": {"dateTime": _format_datetime(start_at)},
            "end": {"dateTime": _format_datetime(end_at)},
            "extendedProperties": {"private": {KEY_PROPERTY: key}},
        }
        async with self._client(account) as client:
            if event_id:
                payload = await self._request(
                    client, "PATCH", self._events_path(account, event_id), json=body
                )
                return _event_id_from(payload)

            new_id = event_id_for_key(key)
            payload = await self._request(
                client,
                "POST",
                self._events_path(account),
                json={**body, "id": new_id},
                allow_conflict=True,
            )
            if payload is None:
                # Created by an earlier attempt whose response was lost
                logger.info(f"Event {new_id} for {key} already exists, updating it")
                payload = await self._request(
                    client, "PATCH", self._events_path(account, new_id), json=body
                )
            return _event_id_from(payload)

    @staticmethod
    def _to_event(item: dict[str, Any]) -> Optional[ExternalEvent]:
        if item.get("status") == "cancelled":
            return None
        start = item.get("start", {}).get("dateTime")
        end = item.get("end", {}).get("dateTime")
        if not start or not end:
            return None
        private = item.get("extendedProperties", {}).get("private", {})
        try:
            return ExternalEvent(
                event_id=item["id"],
                key=private.get(KEY_PROPERTY),
                title=item.get("summary"),
                start_at=_parse_datetime(start),
                end_at=_parse_datetime(end),
            )
        except (KeyError, ValueError) as e:
            raise CalendarUnavailableError(
                f"Google Calendar returned a malformed event: {e}",
                details={"event_id": item.get("id")},
            ) from e
