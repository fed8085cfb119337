"""Service for managing a learner's weekly review slots."""

import logging
from datetime import time

from cadence.application.slot_calendar import default_slots, generate_slot_id, validate_slot
from cadence.domain.errors import NotFoundError
from cadence.domain.slots.models import ReviewSlot, SlotType
from cadence.domain.slots.ports import SlotRepository

logger = logging.getLogger(__name__)


class SlotService:
    """
    Validated CRUD over slot templates.

    Every write is checked against the learner's other slots so the queue
    builder can rely on non-overlapping windows.
    """

    def __init__(self, repo: SlotRepository):
        self._repo = repo

    async def list_slots(self, learner_id: str) -> list[ReviewSlot]:
        return await self._repo.list_slots(learner_id)

    async def get_slot(self, learner_id: str, slot_id: str) -> ReviewSlot:
        slot = await self._repo.get_slot(slot_id)
        if slot is None or slot.learner_id != learner_id:
            raise NotFoundError(f"Slot {slot_id} not found for learner {learner_id}")
        return slot

    async def create_slot(
        self,
        learner_id: str,
        day_of_week: int,
        start_time: time,
        end_time: time,
        capacity: int | None = None,
        slot_type: SlotType = SlotType.MICRO,
    ) -> ReviewSlot:
        slot = ReviewSlot(
            slot_id=generate_slot_id(),
            learner_id=learner_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            capacity=capacity,
            slot_type=SlotType(slot_type),
        )
        validate_slot(slot, await self._repo.list_slots(learner_id))
        saved = await self._repo.save_slot(slot)
        logger.info(
            f"Created slot {saved.slot_id} for {learner_id}: "
            f"{saved.day_name} {saved.start_time}-{saved.end_time}"
        )
        return saved

    async def update_slot(self, learner_id: str, slot_id: str, **changes) -> ReviewSlot:
        """
        Replace fields of an existing slot. None values are ignored.
        """
        current = await self.get_slot(learner_id, slot_id)
        changes = {k: v for k, v in changes.items() if v is not None}
        if "slot_type" in changes:
            changes["slot_type"] = SlotType(changes["slot_type"])
        updated = current.with_changes(**changes)

        validate_slot(updated, await self._repo.list_slots(learner_id))
        return await self._repo.save_slot(updated)

    async def delete_slot(self, learner_id: str, slot_id: str) -> None:
        await self.get_slot(learner_id, slot_id)
        await self._repo.delete_slot(slot_id)
        logger.info(f"Deleted slot {slot_id} for {learner_id}")

    async def toggle_slot(self, learner_id: str, slot_id: str) -> ReviewSlot:
        """Flip is_active. Re-activation is validated against overlaps."""
        current = await self.get_slot(learner_id, slot_id)
        toggled = current.with_changes(is_active=not current.is_active)
        validate_slot(toggled, await self._repo.list_slots(learner_id))
        return await self._repo.save_slot(toggled)

    async def create_default_slots(self, learner_id: str) -> list[ReviewSlot]:
        """
        Seed the morning/evening micro-review template.

        Defaults that would overlap an existing slot are skipped.
        """
        existing = await self._repo.list_slots(learner_id)
        created = []
        for slot in default_slots(learner_id):
            if any(
                o.is_active
                and o.day_of_week == slot.day_of_week
                and o.overlaps(slot.start_time, slot.end_time)
                for o in existing
            ):
                logger.debug(f"Skipping default slot on day {slot.day_of_week}: overlap")
                continue
            created.append(await self._repo.save_slot(slot))
        return created
