"""
Ports (interfaces) for review state persistence and flashcard lookup.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from .models import Attempt, ReviewState


class ReviewStore(ABC):
    """
    Port for the ReviewState store and the append-only attempt log.

    Implementations:
        - MemoryReviewStore: Process-local dictionaries guarded by a lock.
        - SqliteStore: A single SQLite file shared by all ports.
    """

    @abstractmethod
    async def get_state(self, learner_id: str, flashcard_id: str) -> ReviewState | None:
        """Return the persisted state, or None if the card was never reviewed."""
        pass

    @abstractmethod
    async def list_states(self, learner_id: str) -> list[ReviewState]:
        """Snapshot read of every persisted state for a learner."""
        pass

    @abstractmethod
    async def apply_review(
        self, state: ReviewState, expected_version: int, attempt: Attempt
    ) -> ReviewState:
        """
        Persist a rated state and its attempt in one transaction.

        Args:
            state: The state computed by the scheduler.
            expected_version: Version the scheduler read (0 if never persisted).
            attempt: The attempt row to append.

        Returns:
            The stored state, with version = expected_version + 1.

        Raises:
            StaleStateError: The stored version is not expected_version.
            DuplicateSubmissionError: The attempt's idempotency key already exists.
        """
        pass

    @abstractmethod
    async def has_attempt(
        self, learner_id: str, flashcard_id: str, presented_at: datetime
    ) -> bool:
        pass

    @abstractmethod
    async def list_attempts(
        self, learner_id: str, since: datetime | None = None
    ) -> list[Attempt]:
        """
        Fetch attempts for a learner.

        Returns:
            Attempts with rated_at >= since (all if None), sorted by rated_at ascending.
        """
        pass


class FlashcardCatalog(ABC):
    """
    Port onto the external flashcard CRUD system.

    The engine never mutates flashcards; it only needs IDs and existence.
    """

    @abstractmethod
    async def card_ids_for_learner(self, learner_id: str) -> list[str]:
        """IDs of the flashcards attached to a learner's curriculum."""
        pass

    @abstractmethod
    async def exists(self, flashcard_id: str) -> bool:
        pass
