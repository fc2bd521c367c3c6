"""
Recurrence rule model.

A typed, validated stand-in for the RFC 5545 RRULE blob that activities
store. Invalid combinations are rejected at construction time with
InvalidRuleError, never at expansion time.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from cadence.core.exceptions import InvalidRuleError
from cadence.models.enums import Frequency

# Sunday=0 ... Saturday=6
WEEKDAY_CODES = ("SU", "MO", "TU", "WE", "TH", "FR", "SA")

_SUPPORTED_PARTS = {"FREQ", "INTERVAL", "BYDAY", "BYMONTH", "BYMONTHDAY", "BYSETPOS", "UNTIL"}


class RecurrenceRule(BaseModel):
    """Immutable recurrence rule."""

    model_config = ConfigDict(frozen=True)

    frequency: Frequency
    interval: int = 1
    by_day: frozenset[int] = frozenset()
    by_month: frozenset[int] = frozenset()
    by_month_day: frozenset[int] = frozenset()
    by_set_pos: frozenset[int] = frozenset()
    start_date: date
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_rule(self) -> "RecurrenceRule":
        if self.interval < 1:
            raise InvalidRuleError(
                f"interval must be >= 1, got {self.interval}",
                details={"interval": self.interval},
            )
        bad_days = sorted(d for d in self.by_day if not 0 <= d <= 6)
        if bad_days:
            raise InvalidRuleError(f"by_day values must be 0-6 (Sunday=0), got {bad_days}")
        bad_months = sorted(m for m in self.by_month if not 1 <= m <= 12)
        if bad_months:
            raise InvalidRuleError(f"by_month values must be 1-12, got {bad_months}")
        bad_month_days = sorted(d for d in self.by_month_day if d == 0 or not -31 <= d <= 31)
        if bad_month_days:
            raise InvalidRuleError(f"by_month_day values must be in ±1..31, got {bad_month_days}")
        bad_positions = sorted(p for p in self.by_set_pos if p == 0 or not -366 <= p <= 366)
        if bad_positions:
            raise InvalidRuleError(f"by_set_pos values must be in ±1..366, got {bad_positions}")
        if self.by_set_pos and not (self.by_day or self.by_month_day):
            raise InvalidRuleError("by_set_pos requires by_day or by_month_day")
        if self.end_date is not None and self.end_date < self.start_date:
            raise InvalidRuleError(
                f"end_date {self.end_date} is before start_date {self.start_date}"
            )
        return self

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    @classmethod
    def from_rrule(
        cls, text: str, start_date: date, end_date: Optional[date] = None
    ) -> "RecurrenceRule":
        """
        Parse an RRULE value such as ``FREQ=MONTHLY;BYDAY=TU;BYSETPOS=2``.

        Args:
            text: RRULE value, with or without the ``RRULE:`` prefix
            start_date: First date the rule may produce
            end_date: Optional inclusive last date; the earlier of this and
                UNTIL wins when both are present

        Raises:
            InvalidRuleError: On unsupported parts or malformed values
        """
        body = text.strip()
        if body.upper().startswith("RRULE:"):
            body = body[len("RRULE:"):]
        parts: dict[str, str] = {}
        for chunk in body.split(";"):
            if not chunk.strip():
                continue
            key, sep, value = chunk.partition("=")
            if not sep or not value.strip():
                raise InvalidRuleError(f"Malformed RRULE part: {chunk!r}")
            parts[key.strip().upper()] = value.strip()
        return cls._from_parts(parts, start_date, end_date)

    @classmethod
    def from_mapping(
        cls, data: Mapping[str, Any], start_date: date, end_date: Optional[date] = None
    ) -> "RecurrenceRule":
        """Build a rule from the stored JSON blob (``{"freq": "WEEKLY", "byday": ["MO"]}``)."""
        parts: dict[str, str] = {}
        for key, value in data.items():
            if value is None or value == "" or value == []:
                continue
            if isinstance(value, (list, tuple, set, frozenset)):
                value = ",".join(str(v) for v in value)
            parts[str(key).upper()] = str(value)
        return cls._from_parts(parts, start_date, end_date)

    @classmethod
    def _from_parts(
        cls, parts: dict[str, str], start_date: date, end_date: Optional[date]
    ) -> "RecurrenceRule":
        unsupported = sorted(set(parts) - _SUPPORTED_PARTS)
        if unsupported:
            raise InvalidRuleError(f"Unsupported RRULE parts: {', '.join(unsupported)}")
        if "FREQ" not in parts:
            raise InvalidRuleError("RRULE is missing FREQ")
        try:
            frequency = Frequency(parts["FREQ"].upper())
        except ValueError as e:
            raise InvalidRuleError(f"Unknown FREQ: {parts['FREQ']}") from e

        by_day: set[int] = set()
        by_set_pos = set(_parse_int_list(parts, "BYSETPOS"))
        if "BYDAY" in parts:
            ordinals: set[int] = set()
            for token in parts["BYDAY"].split(","):
                token = token.strip().upper()
                code = token[-2:]
                if code not in WEEKDAY_CODES:
                    raise InvalidRuleError(f"Unknown weekday code: {token!r}")
                by_day.add(WEEKDAY_CODES.index(code))
                prefix = token[:-2]
                if prefix:
                    ordinals.add(_parse_int(prefix, "BYDAY"))
            if ordinals:
                if frequency not in (Frequency.MONTHLY, Frequency.YEARLY):
                    raise InvalidRuleError("Ordinal BYDAY is only valid for MONTHLY or YEARLY")
                if len(ordinals) > 1 or by_set_pos:
                    raise InvalidRuleError(
                        "Ordinal BYDAY entries must share one ordinal and cannot be combined with BYSETPOS"
                    )
                by_set_pos = ordinals

        until = _parse_until(parts["UNTIL"]) if "UNTIL" in parts else None
        effective_end = end_date
        if until is not None:
            effective_end = until if end_date is None else min(until, end_date)

        interval = _parse_int(parts["INTERVAL"], "INTERVAL") if "INTERVAL" in parts else 1
        return cls(
            frequency=frequency,
            interval=interval,
            by_day=frozenset(by_day),
            by_month=frozenset(_parse_int_list(parts, "BYMONTH")),
            by_month_day=frozenset(_parse_int_list(parts, "BYMONTHDAY")),
            by_set_pos=frozenset(by_set_pos),
            start_date=start_date,
            end_date=effective_end,
        )

    def to_rrule(self) -> str:
        """Render the rule as an RRULE value."""
        parts = [f"FREQ={self.frequency.value}"]
        if self.interval != 1:
            parts.append(f"INTERVAL={self.interval}")
        if self.by_day:
            parts.append("BYDAY=" + ",".join(WEEKDAY_CODES[d] for d in sorted(self.by_day)))
        if self.by_month:
            parts.append("BYMONTH=" + ",".join(str(m) for m in sorted(self.by_month)))
        if self.by_month_day:
            parts.append("BYMONTHDAY=" + ",".join(str(d) for d in sorted(self.by_month_day)))
        if self.by_set_pos:
            parts.append("BYSETPOS=" + ",".join(str(p) for p in sorted(self.by_set_pos)))
        if self.end_date:
            parts.append(f"UNTIL={self.end_date.strftime('%Y%m%d')}")
        return ";".join(parts)


def _parse_int(value: str, part: str) -> int:
    try:
        return int(value.strip().lstrip("+"))
    except ValueError as e:
        raise InvalidRuleError(f"{part} expects an integer, got {value!r}") from e


def _parse_int_list(parts: dict[str, str], part: str) -> list[int]:
    if part not in parts:
        return []
    return [_parse_int(item, part) for item in parts[part].split(",") if item.strip()]


def _parse_until(value: str) -> date:
    digits = value.strip()[:8]
    try:
        return date(int(digits[0:4]), int(digits[4:6]), int(digits[6:8]))
    except ValueError as e:
        raise InvalidRuleError(f"UNTIL must start with YYYYMMDD, got {value!r}") from e
