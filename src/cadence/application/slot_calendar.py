"""
Slot calendar: expands weekly slot templates into concrete time windows.

Occurrences are computed on demand from (date, day_of_week); nothing is
ever materialized or stored per occurrence.
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime, time, timedelta, tzinfo

from ulid import ULID

from cadence.domain.constants import DAYS_PER_WEEK, SLOT_SEARCH_DAYS
from cadence.domain.errors import InvalidSlotError, SlotOverlapError
from cadence.domain.slots.models import ReviewSlot, SlotType, TimeWindow

logger = logging.getLogger(__name__)


def generate_slot_id() -> str:
    return f"slot_{ULID()}"


def occurrences_on(
    day: date, slots: Iterable[ReviewSlot], tz: tzinfo | None = None
) -> list[TimeWindow]:
    """
    Concrete [start, end) windows for a calendar date, sorted by start.

    Inactive slots are skipped. Overlapping slots are not merged; callers
    are expected to pass validated slots.
    """
    weekday = day.weekday()
    windows = [
        TimeWindow.for_date(slot, day, tz)
        for slot in slots
        if slot.is_active and slot.day_of_week == weekday
    ]
    windows.sort(key=lambda w: (w.start, w.slot.slot_id))
    return windows


def active_window_at(now: datetime, slots: Iterable[ReviewSlot]) -> TimeWindow | None:
    """The window containing `now`, if any."""
    for window in occurrences_on(now.date(), slots, now.tzinfo):
        if window.contains(now):
            return window
    return None


def next_occurrence_after(
    now: datetime,
    slots: Iterable[ReviewSlot],
    search_days: int = SLOT_SEARCH_DAYS,
) -> TimeWindow | None:
    """
    The soonest window starting strictly after `now`.

    Searches forward day by day, starting with today, for at most
    `search_days` days. None means no slot is configured.
    """
    slots = [s for s in slots if s.is_active]
    if not slots:
        return None

    for offset in range(search_days + 1):
        day = now.date() + timedelta(days=offset)
        for window in occurrences_on(day, slots, now.tzinfo):
            if window.start > now:
                return window
    logger.debug(f"No slot occurrence within {search_days} days after {now}")
    return None


def current_or_next_window(
    now: datetime,
    slots: Iterable[ReviewSlot],
    search_days: int = SLOT_SEARCH_DAYS,
) -> TimeWindow | None:
    slots = list(slots)
    return active_window_at(now, slots) or next_occurrence_after(now, slots, search_days)


def validate_slot(slot: ReviewSlot, existing: Iterable[ReviewSlot] = ()) -> None:
    """
    Enforce slot-creation invariants.

    Raises:
        InvalidSlotError: day_of_week outside 0-6, start_time >= end_time,
            or negative capacity.
        SlotOverlapError: overlaps another active slot of the same learner
            and day. The slot being replaced (same slot_id) is ignored.
    """
    if not 0 <= slot.day_of_week < DAYS_PER_WEEK:
        raise InvalidSlotError(f"day_of_week must be 0-6, got {slot.day_of_week}")
    if slot.start_time >= slot.end_time:
        raise InvalidSlotError("End time must be after start time.")
    if slot.capacity is not None and slot.capacity < 0:
        raise InvalidSlotError(f"capacity must be >= 0, got {slot.capacity}")

    if not slot.is_active:
        return

    for other in existing:
        if other.slot_id == slot.slot_id or not other.is_active:
            continue
        if other.learner_id != slot.learner_id or other.day_of_week != slot.day_of_week:
            continue
        if other.overlaps(slot.start_time, slot.end_time):
            raise SlotOverlapError(slot.day_of_week, other.slot_id)


def default_slots(learner_id: str) -> list[ReviewSlot]:
    """
    Starter template for a new learner: a five-minute micro review every
    morning at 08:00 and every evening at 19:30.
    """
    slots = []
    for day in range(DAYS_PER_WEEK):
        for start, end in ((time(8, 0), time(8, 5)), (time(19, 30), time(19, 35))):
            slots.append(
                ReviewSlot(
                    slot_id=generate_slot_id(),
                    learner_id=learner_id,
                    day_of_week=day,
                    start_time=start,
                    end_time=end,
                    slot_type=SlotType.MICRO,
                )
            )
    return slots
