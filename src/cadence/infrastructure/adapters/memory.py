"""
In-memory adapters: process-local implementations of every port.

Used by tests, the CLI's `--backend memory` mode, and as the reference
behaviour for the SQLite adapter.
"""

import logging
import threading
from collections import defaultdict
from datetime import datetime

from cadence.domain.errors import DuplicateSubmissionError, StaleStateError
from cadence.domain.review.models import Attempt, ReviewState
from cadence.domain.review.ports import FlashcardCatalog, ReviewStore
from cadence.domain.slots.models import ReviewSlot
from cadence.domain.slots.ports import SlotRepository

logger = logging.getLogger(__name__)


class MemoryReviewStore(ReviewStore):
    """
    Dictionary-backed review state store.

    Every read and write takes the same lock; apply_review holds it across
    the version check and the write.
    """

    def __init__(self):
        self._states: dict[tuple[str, str], ReviewState] = {}
        self._attempts: list[Attempt] = []
        self._attempt_keys: set[tuple[str, str, datetime]] = set()
        self._lock = threading.Lock()

    async def get_state(self, learner_id: str, flashcard_id: str) -> ReviewState | None:
        with self._lock:
            return self._states.get((learner_id, flashcard_id))

    async def list_states(self, learner_id: str) -> list[ReviewState]:
        with self._lock:
            return [s for (lid, _), s in self._states.items() if lid == learner_id]

    async def apply_review(
        self, state: ReviewState, expected_version: int, attempt: Attempt
    ) -> ReviewState:
        with self._lock:
            current = self._states.get(state.key)
            actual = current.version if current else 0
            if actual != expected_version:
                raise StaleStateError(
                    state.learner_id, state.flashcard_id, expected_version, actual
                )
            if attempt.idempotency_key in self._attempt_keys:
                raise DuplicateSubmissionError(
                    attempt.learner_id, attempt.flashcard_id, attempt.presented_at
                )

            stored = state.with_changes(version=expected_version + 1)
            self._states[state.key] = stored
            self._attempts.append(attempt)
            self._attempt_keys.add(attempt.idempotency_key)
            return stored

    async def has_attempt(
        self, learner_id: str, flashcard_id: str, presented_at: datetime
    ) -> bool:
        with self._lock:
            return (learner_id, flashcard_id, presented_at) in self._attempt_keys

    async def list_attempts(
        self, learner_id: str, since: datetime | None = None
    ) -> list[Attempt]:
        with self._lock:
            attempts = [
                a
                for a in self._attempts
                if a.learner_id == learner_id and (since is None or a.rated_at >= since)
            ]
        return sorted(attempts, key=lambda a: a.rated_at)


class MemorySlotRepository(SlotRepository):
    def __init__(self, slots: list[ReviewSlot] | None = None):
        self._slots: dict[str, ReviewSlot] = {s.slot_id: s for s in slots or []}

    async def list_slots(self, learner_id: str) -> list[ReviewSlot]:
        slots = [s for s in self._slots.values() if s.learner_id == learner_id]
        return sorted(slots, key=lambda s: (s.day_of_week, s.start_time))

    async def get_slot(self, slot_id: str) -> ReviewSlot | None:
        return self._slots.get(slot_id)

    async def save_slot(self, slot: ReviewSlot) -> ReviewSlot:
        self._slots[slot.slot_id] = slot
        return slot

    async def delete_slot(self, slot_id: str) -> bool:
        return self._slots.pop(slot_id, None) is not None


class MemoryFlashcardCatalog(FlashcardCatalog):
    """Learner → flashcard enrollment held in memory."""

    def __init__(self, enrollments: dict[str, list[str]] | None = None):
        self._cards: dict[str, list[str]] = defaultdict(list)
        for learner_id, card_ids in (enrollments or {}).items():
            for card_id in card_ids:
                self.enroll(learner_id, card_id)

    def enroll(self, learner_id: str, flashcard_id: str) -> None:
        if flashcard_id not in self._cards[learner_id]:
            self._cards[learner_id].append(flashcard_id)

    async def card_ids_for_learner(self, learner_id: str) -> list[str]:
        return list(self._cards.get(learner_id, []))

    async def exists(self, flashcard_id: str) -> bool:
        return any(flashcard_id in cards for cards in self._cards.values())
