from datetime import datetime, time, timedelta, timezone

import pytest

from cadence.application.config import SchedulerParams
from cadence.application.review_service import ReviewService
from cadence.application.slot_service import SlotService
from cadence.application.stats.service import AnalyticsService
from cadence.domain.review.models import CardStatus, ReviewState
from cadence.domain.slots.models import ReviewSlot
from cadence.infrastructure.adapters.memory import (
    MemoryFlashcardCatalog,
    MemoryReviewStore,
    MemorySlotRepository,
)

# 2026-10-19 is a Monday.
MONDAY_0805 = datetime(2026, 10, 19, 8, 5, tzinfo=timezone.utc)


def make_due_state(
    card_id: str,
    now: datetime,
    days_overdue: float,
    learner_id: str = "kid-1",
    status: CardStatus = CardStatus.REVIEW,
    interval_days: float = 3.0,
    version: int = 1,
) -> ReviewState:
    due_at = now - timedelta(days=days_overdue)
    return ReviewState(
        learner_id=learner_id,
        flashcard_id=card_id,
        interval_days=interval_days,
        ease_factor=2.5,
        repetitions=2 if status is not CardStatus.LEARNING else 1,
        status=status,
        due_at=due_at,
        last_reviewed_at=due_at - timedelta(days=interval_days),
        version=version,
    )


def make_slot(
    day: int = 0,
    start: time = time(8, 0),
    end: time = time(8, 20),
    capacity: int | None = None,
    learner_id: str = "kid-1",
    slot_id: str = "slot-1",
    is_active: bool = True,
) -> ReviewSlot:
    return ReviewSlot(
        slot_id=slot_id,
        learner_id=learner_id,
        day_of_week=day,
        start_time=start,
        end_time=end,
        capacity=capacity,
        is_active=is_active,
    )


@pytest.fixture
def monday():
    return MONDAY_0805


@pytest.fixture
def params():
    return SchedulerParams()


@pytest.fixture
def store():
    return MemoryReviewStore()


@pytest.fixture
def slot_repo():
    return MemorySlotRepository()


@pytest.fixture
def catalog():
    return MemoryFlashcardCatalog({"kid-1": ["c1", "c2", "c3"]})


@pytest.fixture
def review_service(store, slot_repo, catalog):
    return ReviewService(store, slot_repo, catalog)


@pytest.fixture
def slot_service(slot_repo):
    return SlotService(slot_repo)


@pytest.fixture
def analytics_service(store):
    return AnalyticsService(store)


@pytest.fixture
def due_state():
    """Factory for persisted states that are `days_overdue` past due at `now`."""
    return make_due_state


@pytest.fixture
def slot():
    """Factory for weekly slots (Monday 08:00-08:20 by default)."""
    return make_slot
