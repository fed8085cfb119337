"""
Domain models for review analytics.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class PeriodStats:
    """
    Activity summary over a trailing window (e.g. the last 7 days).

    Attributes:
        attempts: Number of ratings submitted in the window.
        success_rate: Fraction of attempts not rated "again"; None if no attempts.
        average_interval_days: Mean interval assigned by those ratings.
        new_cards: Cards rated for the first time in the window.
    """

    days: int
    attempts: int
    success_rate: float | None
    average_interval_days: float
    new_cards: int


@dataclass
class AnalyticsSnapshot:
    """
    Read-only view of a learner's review progress, recomputed on demand.

    retention_rate is None when the window contains no attempts ("no data").
    """

    learner_id: str
    generated_at: datetime
    window_days: int

    total_cards: int
    due_today: int
    overdue: int
    new_count: int
    learning_count: int
    review_count: int
    mastered_count: int

    retention_rate: float | None
    attempts_in_window: int
    rating_counts: dict[str, int] = field(default_factory=dict)

    weekly: PeriodStats | None = None
    monthly: PeriodStats | None = None

    @property
    def has_retention_data(self) -> bool:
        return self.retention_rate is not None
