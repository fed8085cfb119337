from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from cadence.application.stats.metrics_calculator import (
    AnalyticsCalculator,
    retention_rate,
    start_of_day,
)
from cadence.application.stats.service import AnalyticsService
from cadence.domain.review.models import Attempt, CardStatus, Rating, ReviewState


def make_attempt(rating, rated_at, card_id="c1", learner_id="kid-1", interval_after=1.0,
                 status_before=CardStatus.REVIEW):
    return Attempt(
        attempt_id=f"att-{card_id}-{rated_at.isoformat()}",
        learner_id=learner_id,
        flashcard_id=card_id,
        rated_at=rated_at,
        rating=Rating.parse(rating),
        interval_before=1.0,
        interval_after=interval_after,
        presented_at=rated_at,
        status_before=status_before,
    )


@pytest.fixture
def calculator():
    return AnalyticsCalculator()


def test_retention_rate_three_of_four(monday):
    attempts = [
        make_attempt(r, monday - timedelta(hours=i))
        for i, r in enumerate(["good", "good", "again", "good"])
    ]
    assert retention_rate(attempts) == 0.75


def test_retention_rate_no_attempts_is_no_data():
    assert retention_rate([]) is None


def test_snapshot_counts(calculator, monday, due_state):
    states = [
        due_state("overdue", monday, 3),
        # due earlier today, e.g. at 06:00
        due_state("today", monday, 2 / 24),
        # due tonight
        due_state("tonight", monday, -0.5, status=CardStatus.LEARNING),
        due_state("later", monday, -4, status=CardStatus.MASTERED, interval_days=30.0),
        ReviewState.new("kid-1", "fresh"),
        due_state("other-kid", monday, 3, learner_id="kid-2"),
    ]

    snap = calculator.snapshot("kid-1", monday, states, [])

    assert snap.total_cards == 5
    assert snap.overdue == 1
    assert snap.due_today == 2
    assert snap.new_count == 1
    assert snap.learning_count == 1
    assert snap.review_count == 2
    assert snap.mastered_count == 1
    assert snap.retention_rate is None
    assert not snap.has_retention_data
    assert snap.rating_counts == {"again": 0, "hard": 0, "good": 0, "easy": 0}


def test_snapshot_window_excludes_old_attempts(calculator, monday):
    attempts = [
        make_attempt("good", monday - timedelta(days=1)),
        make_attempt("again", monday - timedelta(days=2), card_id="c2"),
        make_attempt("again", monday - timedelta(days=45), card_id="c3"),
    ]

    snap = calculator.snapshot("kid-1", monday, [], attempts, window_days=30)

    assert snap.attempts_in_window == 2
    assert snap.retention_rate == 0.5
    assert snap.rating_counts["again"] == 1


def test_period_stats(calculator, monday):
    attempts = [
        make_attempt("good", monday - timedelta(days=1), interval_after=2.5,
                     status_before=CardStatus.NEW),
        make_attempt("easy", monday - timedelta(days=3), card_id="c2", interval_after=4.0),
        make_attempt("again", monday - timedelta(days=10), card_id="c3", interval_after=1.0),
    ]

    weekly = calculator.period_stats(attempts, monday, 7)
    monthly = calculator.period_stats(attempts, monday, 30)

    assert weekly.attempts == 2
    assert weekly.success_rate == 1.0
    assert weekly.average_interval_days == pytest.approx(3.2)
    assert weekly.new_cards == 1
    assert monthly.attempts == 3
    assert monthly.success_rate == pytest.approx(2 / 3)


def test_period_stats_empty(calculator, monday):
    stats = calculator.period_stats([], monday, 7)
    assert stats.attempts == 0
    assert stats.success_rate is None


def test_start_of_day(monday):
    midnight = start_of_day(monday)
    assert midnight.hour == 0 and midnight.minute == 0
    assert midnight.tzinfo is monday.tzinfo


@pytest.mark.asyncio
async def test_service_reads_store_with_lookback(monday):
    store = AsyncMock()
    store.list_states.return_value = []
    store.list_attempts.return_value = [make_attempt("good", monday - timedelta(days=1))]

    service = AnalyticsService(store, window_days=7)
    snap = await service.get_snapshot("kid-1", monday)

    assert snap.window_days == 7
    assert snap.retention_rate == 1.0
    # Monthly summary needs 30 days of history even for a 7-day window
    store.list_attempts.assert_awaited_once_with("kid-1", since=monday - timedelta(days=30))


@pytest.mark.asyncio
async def test_service_window_override(monday):
    store = AsyncMock()
    store.list_states.return_value = []
    store.list_attempts.return_value = []

    snap = await AnalyticsService(store).get_snapshot("kid-1", monday, window_days=90)

    assert snap.window_days == 90
    store.list_attempts.assert_awaited_once_with("kid-1", since=monday - timedelta(days=90))
