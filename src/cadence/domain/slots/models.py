"""
Domain models for a learner's recurring weekly review slots.

Slots are templates, not calendar events: concrete windows are produced on
demand by the slot calendar and never stored.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, time, tzinfo
from enum import Enum


class SlotType(str, Enum):
    MICRO = "micro"  # a few minutes, e.g. before breakfast
    STANDARD = "standard"


DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class ReviewSlot:
    """
    A recurring weekly availability window.

    Attributes:
        day_of_week: 0=Monday ... 6=Sunday (same as datetime.weekday()).
        start_time: Wall-clock start, inclusive.
        end_time: Wall-clock end, exclusive.
        capacity: Max cards presentable in one occurrence; None or 0 = unbounded.
    """

    slot_id: str
    learner_id: str
    day_of_week: int
    start_time: time
    end_time: time
    capacity: int | None = None
    slot_type: SlotType = SlotType.MICRO
    is_active: bool = True

    @property
    def is_bounded(self) -> bool:
        return bool(self.capacity)

    @property
    def day_name(self) -> str:
        return DAY_NAMES[self.day_of_week]

    @property
    def duration_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start

    def overlaps(self, start_time: time, end_time: time) -> bool:
        """Half-open overlap: slots that merely touch do not overlap."""
        return not (end_time <= self.start_time or start_time >= self.end_time)

    def with_changes(self, **changes) -> "ReviewSlot":
        return replace(self, **changes)


@dataclass(frozen=True)
class TimeWindow:
    """A concrete [start, end) occurrence of a slot on a calendar date."""

    start: datetime
    end: datetime
    slot: ReviewSlot

    @classmethod
    def for_date(cls, slot: ReviewSlot, day: date, tz: tzinfo | None = None) -> "TimeWindow":
        return cls(
            start=datetime.combine(day, slot.start_time, tzinfo=tz),
            end=datetime.combine(day, slot.end_time, tzinfo=tz),
            slot=slot,
        )

    @property
    def capacity(self) -> int | None:
        return self.slot.capacity if self.slot.is_bounded else None

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end
