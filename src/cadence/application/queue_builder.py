"""
Queue builder for slot-bounded review sessions.

Builds ordered review queues by:
1. Selecting due cards (and, on request, new cards)
2. Ordering most-overdue first, then learning before review before new
3. Truncating to what is left of the current or next review slot's capacity
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from cadence.application.slot_calendar import current_or_next_window
from cadence.domain.constants import SLOT_SEARCH_DAYS
from cadence.domain.review.models import ReviewState
from cadence.domain.slots.models import ReviewSlot, TimeWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueItem:
    """A card served to the learner, with the snapshot it was served from."""

    flashcard_id: str
    state: ReviewState
    presented_at: datetime  # idempotency token for the rating submission
    window: TimeWindow | None = None

    @property
    def expected_version(self) -> int:
        return self.state.version


@dataclass
class QueueBuildResult:
    """Result of queue building operation."""

    items: list[QueueItem]  # Cards to present now, in order
    deferred: list[str] = field(default_factory=list)  # Eligible but over capacity
    window: TimeWindow | None = None  # Slot occurrence the queue was sized for
    capacity: int | None = None  # None = unbounded
    served: int = 0  # Cards already reviewed inside this window
    total_eligible: int = 0

    @property
    def flashcard_ids(self) -> list[str]:
        return [item.flashcard_id for item in self.items]


def sort_key(state: ReviewState, now: datetime) -> tuple[float, int, str]:
    """Most overdue first, then status priority, then flashcard id."""
    return (-state.overdue_seconds(now), state.status.queue_priority, state.flashcard_id)


def select_eligible(
    states: Iterable[ReviewState],
    now: datetime,
    include_new: bool = False,
    new_card_limit: int | None = None,
) -> list[ReviewState]:
    """
    Filter states down to the cards that may be reviewed at `now`, ordered.

    New cards (never reviewed) are only eligible when include_new is set,
    and at most new_card_limit of them (None = no limit), oldest IDs first.
    """
    due: list[ReviewState] = []
    fresh: list[ReviewState] = []

    for state in states:
        if state.is_new:
            if include_new:
                fresh.append(state)
        elif state.is_due(now):
            due.append(state)

    if new_card_limit is not None and len(fresh) > new_card_limit:
        fresh.sort(key=lambda s: s.flashcard_id)
        fresh = fresh[: max(0, new_card_limit)]

    eligible = due + fresh
    eligible.sort(key=lambda s: sort_key(s, now))
    return eligible


def count_served(states: Iterable[ReviewState], window: TimeWindow) -> int:
    """Number of states last rated inside the window."""
    return sum(
        1
        for s in states
        if s.last_reviewed_at is not None and window.contains(s.last_reviewed_at)
    )


def build_queue(
    learner_id: str,
    now: datetime,
    states: Iterable[ReviewState],
    slots: Iterable[ReviewSlot],
    include_new: bool = False,
    new_card_limit: int | None = None,
    search_days: int = SLOT_SEARCH_DAYS,
) -> QueueBuildResult:
    """
    Build the review queue for one learner.

    Args:
        learner_id: Learner whose queue is built; other learners' states are ignored.
        now: Reference time; also stamped on every item as presented_at.
        states: Snapshot of the learner's states (bootstrapped new states included).
        slots: The learner's weekly slot templates.
        include_new: Whether never-reviewed cards are eligible.
        new_card_limit: Max new cards to admit (None = no limit).
        search_days: How far ahead to look for the next slot occurrence.

    Returns:
        QueueBuildResult whose items never exceed the window capacity minus the
        cards already reviewed inside that window. Cards past capacity are
        listed in `deferred`; they stay due for the next window.
    """
    own_states = []
    for state in states:
        if state.learner_id != learner_id:
            logger.debug(f"Ignoring state of learner {state.learner_id} in queue for {learner_id}")
            continue
        own_states.append(state)

    eligible = select_eligible(own_states, now, include_new, new_card_limit)

    # No slot configured means "anytime", with unlimited capacity.
    window = current_or_next_window(now, slots, search_days)
    capacity = window.capacity if window else None
    served = count_served(own_states, window) if window and window.contains(now) else 0
    remaining = None if capacity is None else max(0, capacity - served)

    if remaining is not None and len(eligible) > remaining:
        presented, deferred = eligible[:remaining], eligible[remaining:]
        logger.info(
            f"Queue for {learner_id} capped at {remaining} of {capacity}; "
            f"{len(deferred)} card(s) carried over"
        )
    else:
        presented, deferred = eligible, []

    items = [
        QueueItem(flashcard_id=s.flashcard_id, state=s, presented_at=now, window=window)
        for s in presented
    ]

    return QueueBuildResult(
        items=items,
        deferred=[s.flashcard_id for s in deferred],
        window=window,
        capacity=capacity,
        served=served,
        total_eligible=len(eligible),
    )
