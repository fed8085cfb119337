"""
Analytics calculator for deriving progress metrics from review states and attempts.

This is a pure computation module with no I/O.
"""

from collections import Counter
from collections.abc import Iterable
from datetime import datetime, time, timedelta

from cadence.domain.constants import (
    DEFAULT_ANALYTICS_WINDOW_DAYS,
    MONTHLY_WINDOW_DAYS,
    WEEKLY_WINDOW_DAYS,
)
from cadence.domain.review.models import Attempt, CardStatus, Rating, ReviewState
from cadence.domain.stats.models import AnalyticsSnapshot, PeriodStats


def start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)


def retention_rate(attempts: Iterable[Attempt]) -> float | None:
    """
    Fraction of attempts not rated "again".

    Returns None ("no data") for an empty sequence instead of dividing by zero.
    """
    total = 0
    recalled = 0
    for attempt in attempts:
        total += 1
        if attempt.rating.is_success:
            recalled += 1
    if total == 0:
        return None
    return recalled / total


class AnalyticsCalculator:
    """
    Computes the analytics snapshot from raw states and attempts.

    Stateless and side-effect free.
    """

    def snapshot(
        self,
        learner_id: str,
        now: datetime,
        states: list[ReviewState],
        attempts: list[Attempt],
        window_days: int = DEFAULT_ANALYTICS_WINDOW_DAYS,
    ) -> AnalyticsSnapshot:
        states = [s for s in states if s.learner_id == learner_id]
        attempts = [a for a in attempts if a.learner_id == learner_id]

        day_start = start_of_day(now)
        day_end = day_start + timedelta(days=1)
        status_counts = Counter(s.status for s in states)

        windowed = self._within(attempts, now, window_days)

        return AnalyticsSnapshot(
            learner_id=learner_id,
            generated_at=now,
            window_days=window_days,
            total_cards=len(states),
            due_today=sum(
                1 for s in states if s.due_at is not None and day_start <= s.due_at < day_end
            ),
            overdue=sum(1 for s in states if s.due_at is not None and s.due_at < day_start),
            new_count=status_counts[CardStatus.NEW],
            learning_count=status_counts[CardStatus.LEARNING],
            review_count=status_counts[CardStatus.REVIEW],
            mastered_count=status_counts[CardStatus.MASTERED],
            retention_rate=retention_rate(windowed),
            attempts_in_window=len(windowed),
            rating_counts=self.rating_counts(windowed),
            weekly=self.period_stats(attempts, now, WEEKLY_WINDOW_DAYS),
            monthly=self.period_stats(attempts, now, MONTHLY_WINDOW_DAYS),
        )

    def rating_counts(self, attempts: Iterable[Attempt]) -> dict[str, int]:
        """Tally of attempts per rating, with every rating present."""
        counts = {rating.value: 0 for rating in Rating}
        for attempt in attempts:
            counts[attempt.rating.value] += 1
        return counts

    def period_stats(self, attempts: list[Attempt], now: datetime, days: int) -> PeriodStats:
        """
        Summarize the trailing `days` of activity.
        """
        recent = self._within(attempts, now, days)
        if not recent:
            return PeriodStats(
                days=days, attempts=0, success_rate=None, average_interval_days=0.0, new_cards=0
            )

        average = sum(a.interval_after for a in recent) / len(recent)
        return PeriodStats(
            days=days,
            attempts=len(recent),
            success_rate=retention_rate(recent),
            average_interval_days=round(average, 1),
            new_cards=sum(1 for a in recent if a.status_before is CardStatus.NEW),
        )

    def _within(self, attempts: list[Attempt], now: datetime, days: int) -> list[Attempt]:
        since = now - timedelta(days=days)
        return [a for a in attempts if since <= a.rated_at <= now]
