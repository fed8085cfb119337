"""
Review Service: orchestrates queue reads and rating submissions.

The scheduler, slot calendar and queue builder are pure; this service does
the I/O around them: snapshot reads for the queue, and a single
read-modify-write per rating.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from ulid import ULID

from cadence.application.config import SchedulerParams
from cadence.application.queue_builder import QueueBuildResult, build_queue
from cadence.application.scheduler import normalize_state, schedule
from cadence.domain.constants import SLOT_SEARCH_DAYS
from cadence.domain.errors import DuplicateSubmissionError, NotFoundError, StaleStateError
from cadence.domain.review.models import Attempt, Rating, ReviewState
from cadence.domain.review.ports import FlashcardCatalog, ReviewStore
from cadence.domain.slots.ports import SlotRepository

logger = logging.getLogger(__name__)


def generate_attempt_id() -> str:
    return f"att_{ULID()}"


@dataclass(frozen=True)
class RatingOutcome:
    """What a rating submission changed."""

    state: ReviewState
    attempt: Attempt
    previous: ReviewState

    @property
    def status_changed(self) -> bool:
        return self.previous.status is not self.state.status


class ReviewService:
    """
    Application service for due queues and rating submissions.

    Retries are never attempted here: a StaleStateError means the caller must
    re-fetch and let the learner rate again.
    """

    def __init__(
        self,
        store: ReviewStore,
        slots: SlotRepository,
        catalog: FlashcardCatalog,
        params: SchedulerParams | None = None,
        new_card_limit: int | None = None,
        search_days: int = SLOT_SEARCH_DAYS,
    ):
        self._store = store
        self._slots = slots
        self._catalog = catalog
        self._params = params or SchedulerParams()
        self._new_card_limit = new_card_limit
        self._search_days = search_days

    async def get_state(self, learner_id: str, flashcard_id: str) -> ReviewState:
        """Persisted state, or the implicit new state of a never-reviewed card."""
        state = await self._store.get_state(learner_id, flashcard_id)
        if state is not None:
            return state
        return ReviewState.new(learner_id, flashcard_id, self._params.initial_ease)

    async def get_states(self, learner_id: str) -> list[ReviewState]:
        """
        Every state of a learner's curriculum.

        Cards attached to the learner but never reviewed are bootstrapped in
        memory only; they are persisted on their first rating.
        """
        persisted = {s.flashcard_id: s for s in await self._store.list_states(learner_id)}
        card_ids = await self._catalog.card_ids_for_learner(learner_id)

        states = list(persisted.values())
        for card_id in card_ids:
            if card_id not in persisted:
                states.append(ReviewState.new(learner_id, card_id, self._params.initial_ease))
        return states

    async def get_queue(
        self, learner_id: str, now: datetime, include_new: bool = False
    ) -> QueueBuildResult:
        states = await self.get_states(learner_id)
        slots = await self._slots.list_slots(learner_id)

        result = build_queue(
            learner_id,
            now,
            states,
            slots,
            include_new=include_new,
            new_card_limit=self._new_card_limit,
            search_days=self._search_days,
        )
        logger.debug(
            f"Queue for {learner_id} at {now.isoformat()}: "
            f"{len(result.items)} item(s), {len(result.deferred)} deferred"
        )
        return result

    async def submit_rating(
        self,
        learner_id: str,
        flashcard_id: str,
        rating: Rating | str,
        presented_at: datetime,
        now: datetime,
        expected_version: int | None = None,
    ) -> RatingOutcome:
        """
        Apply one rating: validate, schedule, persist state and attempt.

        Args:
            presented_at: The presented_at of the queue item being rated.
            now: Time of the rating.
            expected_version: Version of the state the learner saw; when given,
                a mismatch is rejected before scheduling.

        Raises:
            InvalidRatingError: Unknown rating value.
            DuplicateSubmissionError: This presented card was already rated.
            StaleStateError: The state moved on since it was presented.
            NotFoundError: The flashcard does not exist.
        """
        rating = Rating.parse(rating)

        if await self._store.has_attempt(learner_id, flashcard_id, presented_at):
            logger.warning(
                f"Duplicate rating for {learner_id}/{flashcard_id} presented at {presented_at}"
            )
            raise DuplicateSubmissionError(learner_id, flashcard_id, presented_at)

        current = await self._store.get_state(learner_id, flashcard_id)
        if current is None:
            if not await self._catalog.exists(flashcard_id):
                raise NotFoundError(f"Flashcard {flashcard_id} not found")
            current = ReviewState.new(learner_id, flashcard_id, self._params.initial_ease)

        if expected_version is not None and expected_version != current.version:
            logger.warning(
                f"Stale rating for {learner_id}/{flashcard_id}: "
                f"client saw v{expected_version}, store has v{current.version}"
            )
            raise StaleStateError(learner_id, flashcard_id, expected_version, current.version)

        _, issues = normalize_state(current, self._params)
        for issue in issues:
            logger.warning(f"Normalized review state {learner_id}/{flashcard_id}: {issue}")

        updated = schedule(current, rating, now, self._params)
        attempt = Attempt(
            attempt_id=generate_attempt_id(),
            learner_id=learner_id,
            flashcard_id=flashcard_id,
            rated_at=now,
            rating=rating,
            interval_before=current.interval_days,
            interval_after=updated.interval_days,
            presented_at=presented_at,
            status_before=current.status,
            status_after=updated.status,
        )

        stored = await self._store.apply_review(updated, current.version, attempt)
        logger.info(
            f"Rated {learner_id}/{flashcard_id} {rating.value}: "
            f"{current.interval_days:g}d -> {stored.interval_days:g}d ({stored.status.value})"
        )
        return RatingOutcome(state=stored, attempt=attempt, previous=current)
