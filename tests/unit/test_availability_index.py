"""
Unit tests for AvailabilityIndex merging, overlap lookup and loading.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from cadence.core.exceptions import CalendarUnavailableError
from cadence.models.enums import BusySource
from cadence.models.schedule import BusyInterval
from cadence.models.user import CalendarAccount, UserContext
from cadence.services.availability_index import AvailabilityIndex, load_availability

UTC = timezone.utc


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 6, 2, hour, minute, tzinfo=UTC)


def _busy(
    start: datetime,
    end: datetime,
    source: BusySource = BusySource.EXTERNAL_CALENDAR,
    title: str | None = None,
    key: str | None = None,
) -> BusyInterval:
    return BusyInterval(start_at=start, end_at=end, source=source, title=title, key=key)


class TestBuild:
    """Tests for AvailabilityIndex.build."""

    def test_merges_overlapping(self):
        index = AvailabilityIndex.build([_busy(_at(10), _at(11))], [_busy(_at(10, 30), _at(12))])
        assert len(index) == 1
        merged = index.intervals[0]
        assert (merged.start_at, merged.end_at) == (_at(10), _at(12))

    def test_merges_touching(self):
        index = AvailabilityIndex.build([], [_busy(_at(9), _at(10)), _busy(_at(10), _at(11))])
        assert [(i.start_at, i.end_at) for i in index.intervals] == [(_at(9), _at(11))]

    def test_contained_interval_absorbed(self):
        index = AvailabilityIndex.build([], [_busy(_at(9), _at(12)), _busy(_at(10), _at(11))])
        assert [(i.start_at, i.end_at) for i in index.intervals] == [(_at(9), _at(12))]

    def test_keeps_disjoint_sorted(self):
        index = AvailabilityIndex.build(
            [_busy(_at(15), _at(16))], [_busy(_at(8), _at(9)), _busy(_at(12), _at(13))]
        )
        assert [i.start_at for i in index.intervals] == [_at(8), _at(12), _at(15)]

    def test_merged_keeps_earliest_source_and_title(self):
        index = AvailabilityIndex.build(
            [_busy(_at(10), _at(11), BusySource.OWN_ACTIVITY, "Run")],
            [_busy(_at(10, 30), _at(12), title="Dentist")],
        )
        merged = index.intervals[0]
        assert merged.source == BusySource.OWN_ACTIVITY
        assert merged.title == "Run"

    def test_drops_empty_intervals_keeps_keyed(self):
        index = AvailabilityIndex.build(
            [_busy(_at(8), _at(8))],
            [_busy(_at(10), _at(11), key="a:2025-06-02"), _busy(_at(13), _at(14), key="b:2025-06-02")],
        )
        assert [i.key for i in index.intervals] == ["a:2025-06-02", "b:2025-06-02"]

    def test_negative_interval_rejected(self):
        with pytest.raises(ValueError):
            _busy(_at(11), _at(10))


class TestOverlaps:
    """Tests for overlap lookup (half-open intervals)."""

    @pytest.fixture
    def index(self):
        return AvailabilityIndex.build(
            [], [_busy(_at(10), _at(11), title="A"), _busy(_at(13), _at(14), title="B")]
        )

    def test_touching_is_free(self, index):
        assert index.overlaps(_at(9), _at(10)) is None
        assert index.overlaps(_at(11), _at(12)) is None

    def test_overlap_found(self, index):
        assert index.overlaps(_at(10, 30), _at(10, 45)).title == "A"

    def test_earliest_reported(self, index):
        assert index.overlaps(_at(9), _at(15)).title == "A"

    def test_later_interval(self, index):
        assert index.overlaps(_at(12), _at(13, 30)).title == "B"

    def test_free_between(self, index):
        assert index.free_between(_at(11), _at(13))
        assert not index.free_between(_at(12, 30), _at(13, 30))

    def test_empty_index(self):
        assert AvailabilityIndex([]).overlaps(_at(9), _at(10)) is None


class TestIgnoreKey:
    """Lookups that skip the event already written for an occurrence."""

    def test_own_event_ignored(self):
        index = AvailabilityIndex.build([], [_busy(_at(18), _at(20), key="a:2025-06-02")])
        assert index.overlaps(_at(18), _at(20), ignore_key="a:2025-06-02") is None

    def test_other_activity_event_still_blocks(self):
        index = AvailabilityIndex.build(
            [], [_busy(_at(18), _at(20), title="Dinner party", key="a:2025-06-02")]
        )
        conflict = index.overlaps(_at(18, 30), _at(19, 30), ignore_key="b:2025-06-02")
        assert conflict.title == "Dinner party"

    def test_merged_neighbour_still_blocks(self):
        index = AvailabilityIndex.build(
            [_busy(_at(9), _at(10), BusySource.OWN_ACTIVITY, "Run", key="a:2025-06-02")],
            [_busy(_at(9, 30), _at(11), title="Standup")],
        )
        assert len(index) == 1
        conflict = index.overlaps(_at(9), _at(10), ignore_key="a:2025-06-02")
        assert conflict.title == "Standup"

    def test_merged_neighbour_outside_range_is_free(self):
        index = AvailabilityIndex.build(
            [],
            [
                _busy(_at(9), _at(10), key="a:2025-06-02"),
                _busy(_at(10), _at(11), title="Standup"),
            ],
        )
        assert index.free_between(_at(9), _at(10), ignore_key="a:2025-06-02")
        assert not index.free_between(_at(9), _at(10, 30), ignore_key="a:2025-06-02")


class TestLoadAvailability:
    """Tests for load_availability with repository and gateway mocks."""

    @pytest.fixture
    def repo(self):
        repo = AsyncMock()
        repo.list_committed_intervals = AsyncMock(
            return_value=[_busy(_at(8), _at(9), BusySource.OWN_ACTIVITY)]
        )
        return repo

    @pytest.fixture
    def user(self):
        return UserContext(
            user_id="test_user",
            timezone="UTC",
            calendar_account=CalendarAccount(account_id="acct", access_token="token"),
        )

    @pytest.mark.asyncio
    async def test_merges_both_sources(self, repo, user):
        gateway = AsyncMock()
        gateway.list_busy_intervals = AsyncMock(return_value=[_busy(_at(12), _at(13))])
        index = await load_availability(repo, gateway, user, _at(0), _at(23))
        assert len(index) == 2
        assert index.external_verified

    @pytest.mark.asyncio
    async def test_unavailable_calendar_degrades(self, repo, user):
        gateway = AsyncMock()
        gateway.list_busy_intervals = AsyncMock(
            side_effect=CalendarUnavailableError("down", attempts=3)
        )
        index = await load_availability(repo, gateway, user, _at(0), _at(23))
        assert len(index) == 1
        assert not index.external_verified

    @pytest.mark.asyncio
    async def test_no_account_is_verified(self, repo):
        gateway = AsyncMock()
        user = UserContext(user_id="test_user", timezone="UTC")
        index = await load_availability(repo, gateway, user, _at(0), _at(23))
        assert index.external_verified
        gateway.list_busy_intervals.assert_not_called()

    @pytest.mark.asyncio
    async def test_account_without_gateway_is_unverified(self, repo, user):
        index = await load_availability(repo, None, user, _at(0), _at(23))
        assert not index.external_verified
