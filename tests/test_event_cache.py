"""
Tests for event merging and the copy-on-write event cache.
"""

from __future__ import annotations

from datetime import date

from bookingdesk.application.utils.event_merge import dedupe_batch, merge_blocked_ranges, merge_events
from bookingdesk.application.utils.event_projection import build_calendar_event, rebuild_event
from bookingdesk.domain.entities.blocked_range import BlockedRange
from bookingdesk.domain.entities.booking import Booking, CoarseStatus
from bookingdesk.infrastructure.store.memory_event_cache import MemoryEventCache


def _event(booking_id: str, name: str = "Jane", **kwargs):
    booking = Booking(
        id=booking_id,
        name=name,
        date_booked=date(2025, 6, 1),
        time_booked="10:00",
        booking_slot=1,
        coarse_status=CoarseStatus.BOOKED,
        **kwargs,
    )
    return build_calendar_event(booking)


def test_merge_keeps_existing_entries():
    """An incoming copy of a cached id never overwrites the cached one."""
    local = _event("b1", name="Local edit")
    merged = merge_events([local], [_event("b1", name="Server"), _event("b2")])
    assert [e.id for e in merged] == ["b1", "b2"]
    assert merged[0].booking.name == "Local edit"


def test_merge_is_idempotent():
    incoming = [_event("b1"), _event("b2")]
    once = merge_events([], incoming)
    twice = merge_events(once, incoming)
    assert once == twice


def test_duplicates_in_batch_first_wins(caplog):
    batch = dedupe_batch([_event("b1", name="First"), _event("b1", name="Second")])
    assert len(batch) == 1
    assert batch[0].booking.name == "First"
    assert "Duplicate event" in caplog.text


def test_blocked_range_merge_by_key():
    day = date(2025, 6, 1)
    merged = merge_blocked_ranges(
        [BlockedRange(date=day, time_slot="10:00", id="a")],
        [BlockedRange(date=day, time_slot="10:00", id="b"), BlockedRange(date=day, id="c")],
    )
    assert [b.id for b in merged] == ["a", "c"]


def test_cache_restore_is_exact():
    """Rolling back puts back the very object that was snapshotted."""
    cache = MemoryEventCache()
    original = _event("b1")
    cache.apply(original)
    snapshot = cache.get("b1")

    cache.apply(rebuild_event(original, Booking(id="b1", name="Changed")))
    cache.restore("b1", snapshot)

    assert cache.get("b1") is original


def test_cache_restore_absent_removes():
    cache = MemoryEventCache()
    cache.apply(_event("temp_1"))
    cache.restore("temp_1", None)
    assert cache.get("temp_1") is None


def test_snapshot_not_mutated_by_later_writes():
    cache = MemoryEventCache()
    cache.apply(_event("b1"))
    before = cache.snapshot()
    cache.apply(_event("b2"))
    cache.remove("b1")
    assert [e.id for e in before] == ["b1"]


def test_swap_id_replaces_temp_and_duplicate():
    cache = MemoryEventCache()
    cache.apply(_event("temp_1"))
    cache.apply(_event("bk_9", name="From refresh"))
    cache.apply(_event("b2"))

    cache.swap_id("temp_1", _event("bk_9", name="Acknowledged"))

    ids = [e.id for e in cache.snapshot()]
    assert ids == ["bk_9", "b2"]
    assert cache.get("bk_9").booking.name == "Acknowledged"


def test_listeners_see_every_commit():
    cache = MemoryEventCache()
    seen: list[int] = []
    remove = cache.add_listener(lambda events: seen.append(len(events)))
    cache.apply(_event("b1"))
    cache.merge([_event("b2")])
    remove()
    cache.remove("b1")
    assert seen == [1, 2]


def test_failing_listener_does_not_break_writes():
    cache = MemoryEventCache()

    def _boom(events):
        raise RuntimeError("render failed")

    cache.add_listener(_boom)
    cache.apply(_event("b1"))
    assert cache.get("b1") is not None
