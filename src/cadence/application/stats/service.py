"""
Analytics Service: application layer orchestrator.

Coordinates fetching states and attempts from the store and deriving the snapshot.
"""

import logging
from datetime import datetime, timedelta

from cadence.domain.constants import DEFAULT_ANALYTICS_WINDOW_DAYS, MONTHLY_WINDOW_DAYS
from cadence.domain.review.ports import ReviewStore
from cadence.domain.stats.models import AnalyticsSnapshot

from .metrics_calculator import AnalyticsCalculator

logger = logging.getLogger(__name__)


class AnalyticsService:
    """
    Application service for learner analytics.

    Follows Dependency Inversion: depends on the ReviewStore abstraction,
    not concrete adapter implementations. Nothing is cached; every call
    recomputes from a snapshot read.
    """

    def __init__(
        self,
        store: ReviewStore,
        calculator: AnalyticsCalculator | None = None,
        window_days: int = DEFAULT_ANALYTICS_WINDOW_DAYS,
    ):
        """
        Args:
            store: The repository (port) for states and attempts.
            calculator: Optional custom calculator; uses default if not provided.
            window_days: Default analytics window for retention and rating counts.
        """
        self._store = store
        self._calc = calculator or AnalyticsCalculator()
        self._window_days = window_days

    async def get_snapshot(
        self, learner_id: str, now: datetime, window_days: int | None = None
    ) -> AnalyticsSnapshot:
        window = window_days or self._window_days
        states = await self._store.list_states(learner_id)

        # Fetch enough history for both the window and the monthly summary.
        lookback = max(window, MONTHLY_WINDOW_DAYS)
        attempts = await self._store.list_attempts(learner_id, since=now - timedelta(days=lookback))

        snapshot = self._calc.snapshot(learner_id, now, states, attempts, window)
        logger.debug(
            f"Analytics for {learner_id}: {snapshot.total_cards} cards, "
            f"{snapshot.attempts_in_window} attempts in {window}d"
        )
        return snapshot
