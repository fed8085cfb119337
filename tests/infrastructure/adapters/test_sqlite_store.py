from datetime import time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from cadence.domain.errors import DuplicateSubmissionError, StaleStateError
from cadence.domain.review.models import Attempt, CardStatus, Rating, ReviewState
from cadence.domain.slots.models import SlotType
from cadence.infrastructure.adapters.sqlite_store import SqliteStore


@pytest.fixture
def db(tmp_path):
    store = SqliteStore(tmp_path / "nested" / "reviews.db")
    yield store
    store.close()


def attempt_for(state, presented_at, attempt_id="att-1", rating=Rating.GOOD):
    return Attempt(
        attempt_id=attempt_id,
        learner_id=state.learner_id,
        flashcard_id=state.flashcard_id,
        rated_at=presented_at + timedelta(seconds=10),
        rating=rating,
        interval_before=0.0,
        interval_after=state.interval_days,
        presented_at=presented_at,
        status_before=CardStatus.NEW,
        status_after=state.status,
    )


@pytest.fixture
def reviewed(monday):
    return ReviewState(
        "kid-1", "c1", interval_days=2.5, ease_factor=2.35, repetitions=2,
        status=CardStatus.REVIEW, due_at=monday + timedelta(days=2.5), last_reviewed_at=monday,
    )


def test_creates_parent_directory(tmp_path):
    path = tmp_path / "a" / "b" / "reviews.db"
    with SqliteStore(path):
        pass
    assert path.exists()


@pytest.mark.asyncio
async def test_state_round_trip(db, reviewed, monday):
    stored = await db.apply_review(reviewed, 0, attempt_for(reviewed, monday))

    loaded = await db.get_state("kid-1", "c1")

    assert loaded == stored
    assert loaded.version == 1
    assert loaded.due_at == monday + timedelta(days=2.5)
    assert await db.get_state("kid-1", "missing") is None


@pytest.mark.asyncio
async def test_update_with_version_guard(db, reviewed, monday):
    first = await db.apply_review(reviewed, 0, attempt_for(reviewed, monday))
    second = await db.apply_review(
        first.with_changes(interval_days=6.0),
        1,
        attempt_for(first, monday + timedelta(days=3), "att-2"),
    )

    assert second.version == 2
    assert (await db.get_state("kid-1", "c1")).interval_days == 6.0


@pytest.mark.asyncio
async def test_stale_insert_and_update(db, reviewed, monday):
    await db.apply_review(reviewed, 0, attempt_for(reviewed, monday))

    # Second writer also believed the card was unseen
    with pytest.raises(StaleStateError) as excinfo:
        await db.apply_review(reviewed, 0, attempt_for(reviewed, monday, "att-2"))
    assert excinfo.value.actual == 1

    with pytest.raises(StaleStateError):
        await db.apply_review(reviewed, 5, attempt_for(reviewed, monday, "att-3"))

    assert len(await db.list_attempts("kid-1")) == 1


@pytest.mark.asyncio
async def test_duplicate_rolls_back_state(db, reviewed, monday):
    first = await db.apply_review(reviewed, 0, attempt_for(reviewed, monday))

    with pytest.raises(DuplicateSubmissionError):
        await db.apply_review(
            first.with_changes(interval_days=99.0), 1, attempt_for(first, monday, "att-2")
        )

    state = await db.get_state("kid-1", "c1")
    assert state.version == 1
    assert state.interval_days == 2.5


@pytest.mark.asyncio
async def test_has_attempt_normalizes_timezone(db, reviewed, monday):
    await db.apply_review(reviewed, 0, attempt_for(reviewed, monday))

    same_instant = monday.astimezone(ZoneInfo("America/New_York"))
    assert await db.has_attempt("kid-1", "c1", same_instant)
    assert not await db.has_attempt("kid-1", "c1", monday + timedelta(seconds=1))


@pytest.mark.asyncio
async def test_list_attempts(db, reviewed, monday):
    state = reviewed
    for i, hours in enumerate((48, 2)):
        at = monday - timedelta(hours=hours)
        state = await db.apply_review(state, i, attempt_for(state, at, f"att-{hours}", Rating.HARD))

    all_attempts = await db.list_attempts("kid-1")
    recent = await db.list_attempts("kid-1", since=monday - timedelta(days=1))

    assert [a.attempt_id for a in all_attempts] == ["att-48", "att-2"]
    assert [a.attempt_id for a in recent] == ["att-2"]
    assert recent[0].rating is Rating.HARD
    assert recent[0].rated_at.tzinfo == timezone.utc


@pytest.mark.asyncio
async def test_slots_crud(db, slot):
    await db.save_slot(slot(slot_id="b", day=3, capacity=4))
    await db.save_slot(slot(slot_id="a", day=0))

    slots = await db.list_slots("kid-1")
    assert [s.slot_id for s in slots] == ["a", "b"]
    assert slots[1].capacity == 4
    assert slots[0].start_time == time(8, 0)
    assert slots[0].slot_type is SlotType.MICRO

    await db.save_slot(slots[0].with_changes(is_active=False, slot_type=SlotType.STANDARD))
    updated = await db.get_slot("a")
    assert not updated.is_active
    assert updated.slot_type is SlotType.STANDARD

    assert await db.delete_slot("a")
    assert not await db.delete_slot("a")
    assert await db.get_slot("a") is None


@pytest.mark.asyncio
async def test_enrollments(db):
    db.enroll("kid-1", "c1")
    db.enroll("kid-1", "c2")
    db.enroll("kid-1", "c1")

    assert sorted(await db.card_ids_for_learner("kid-1")) == ["c1", "c2"]
    assert await db.exists("c2")
    assert not await db.exists("c3")


@pytest.mark.asyncio
async def test_persists_across_connections(tmp_path, reviewed, monday):
    path = tmp_path / "reviews.db"
    with SqliteStore(path) as first:
        await first.apply_review(reviewed, 0, attempt_for(reviewed, monday))

    with SqliteStore(path) as second:
        assert (await second.get_state("kid-1", "c1")).version == 1
