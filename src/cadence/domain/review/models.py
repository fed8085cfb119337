"""
Domain models for review scheduling.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum

from cadence.domain.constants import CRITICAL_OVERDUE_DAYS, DEFAULT_INITIAL_EASE
from cadence.domain.errors import InvalidRatingError

SECONDS_PER_DAY = 86400.0


class Rating(str, Enum):
    """Button pressed by the learner after recalling a card."""

    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"

    @classmethod
    def parse(cls, value: "Rating | str") -> "Rating":
        """
        Coerce user input into a Rating.

        Accepts enum members and the four names in any case. Numbers are not
        ratings; anything else raises InvalidRatingError.
        """
        if isinstance(value, Rating):
            return value
        if isinstance(value, str):
            text = value.strip().lower()
            for member in cls:
                if member.value == text:
                    return member
        raise InvalidRatingError(value)

    @property
    def is_success(self) -> bool:
        return self is not Rating.AGAIN


class CardStatus(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    MASTERED = "mastered"

    @property
    def queue_priority(self) -> int:
        """Lower sorts first: half-learned material before fresh material."""
        return _STATUS_PRIORITY[self]


_STATUS_PRIORITY = {
    CardStatus.LEARNING: 0,
    CardStatus.REVIEW: 1,
    CardStatus.MASTERED: 2,
    CardStatus.NEW: 3,
}


@dataclass(frozen=True)
class ReviewState:
    """
    Spaced-repetition memory state for one (learner, flashcard) pair.

    Attributes:
        interval_days: Days between the last review and the next one.
        ease_factor: Multiplier controlling interval growth.
        repetitions: Consecutive non-"again" ratings since the last lapse.
        lapses: Number of "again" ratings ever given.
        status: Derived learning stage, stored for cheap filtering.
        due_at: last_reviewed_at + interval_days; None until first review.
        last_reviewed_at: Timestamp of the most recent rating.
        version: Optimistic concurrency token (0 = never persisted).
    """

    learner_id: str
    flashcard_id: str
    interval_days: float = 0.0
    ease_factor: float = DEFAULT_INITIAL_EASE
    repetitions: int = 0
    lapses: int = 0
    status: CardStatus = CardStatus.NEW
    due_at: datetime | None = None
    last_reviewed_at: datetime | None = None
    version: int = 0

    @classmethod
    def new(
        cls, learner_id: str, flashcard_id: str, initial_ease: float = DEFAULT_INITIAL_EASE
    ) -> "ReviewState":
        """Bootstrap the implicit state of a card that has never been reviewed."""
        return cls(learner_id=learner_id, flashcard_id=flashcard_id, ease_factor=initial_ease)

    @property
    def key(self) -> tuple[str, str]:
        return (self.learner_id, self.flashcard_id)

    @property
    def is_new(self) -> bool:
        return self.status is CardStatus.NEW

    def is_due(self, now: datetime) -> bool:
        return self.due_at is not None and self.due_at <= now

    def overdue_seconds(self, now: datetime) -> float:
        """Seconds past due_at (negative if not yet due, 0 for never-reviewed cards)."""
        if self.due_at is None:
            return 0.0
        return (now - self.due_at).total_seconds()

    def days_overdue(self, now: datetime) -> float:
        return self.overdue_seconds(now) / SECONDS_PER_DAY

    def priority(self, now: datetime) -> int:
        """
        Coarse urgency bucket used by dashboards.

        1 = critical (more than a week overdue), 2 = high (overdue or due
        within a day), 3 = medium (new or not due soon).
        """
        if self.is_new or self.due_at is None:
            return 3
        days = self.days_overdue(now)
        if days > CRITICAL_OVERDUE_DAYS:
            return 1
        if days > -1:
            return 2
        return 3

    @property
    def formatted_interval(self) -> str:
        if self.interval_days < 7:
            return f"{self.interval_days:g}d"
        if self.interval_days < 30:
            return f"{round(self.interval_days / 7, 1):g}w"
        return f"{round(self.interval_days / 30, 1):g}mo"

    def with_changes(self, **changes) -> "ReviewState":
        return replace(self, **changes)


def due_from(reviewed_at: datetime, interval_days: float) -> datetime:
    return reviewed_at + timedelta(days=interval_days)


@dataclass(frozen=True)
class Attempt:
    """
    A single rating submission. Append-only.

    Attributes:
        presented_at: Timestamp of the queue the card was served from; together
            with learner_id and flashcard_id it identifies duplicate submissions.
        interval_before: Interval (days) before the rating was applied.
        interval_after: Interval (days) assigned by the scheduler.
    """

    attempt_id: str
    learner_id: str
    flashcard_id: str
    rated_at: datetime
    rating: Rating
    interval_before: float
    interval_after: float
    presented_at: datetime
    status_before: CardStatus = CardStatus.NEW
    status_after: CardStatus = CardStatus.LEARNING

    @property
    def idempotency_key(self) -> tuple[str, str, datetime]:
        return (self.learner_id, self.flashcard_id, self.presented_at)
