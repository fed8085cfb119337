"""
Ports (interfaces) for slot configuration storage.
"""

from abc import ABC, abstractmethod

from .models import ReviewSlot


class SlotRepository(ABC):
    """
    Port for storing a learner's weekly slot templates.

    Validation (times, overlap) happens in the application layer before
    anything reaches the repository.
    """

    @abstractmethod
    async def list_slots(self, learner_id: str) -> list[ReviewSlot]:
        """All slots for a learner, ordered by day_of_week then start_time."""
        pass

    @abstractmethod
    async def get_slot(self, slot_id: str) -> ReviewSlot | None:
        pass

    @abstractmethod
    async def save_slot(self, slot: ReviewSlot) -> ReviewSlot:
        """Insert or replace a slot keyed by slot_id."""
        pass

    @abstractmethod
    async def delete_slot(self, slot_id: str) -> bool:
        """Returns False if the slot did not exist."""
        pass
