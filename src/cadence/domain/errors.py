"""
Error taxonomy for the review engine.

Pure components only raise for genuinely invalid input. Persistence and
concurrency conditions are raised by store adapters and surfaced to callers.
"""


class CadenceError(Exception):
    """Base class for every error raised by Cadence."""


class InvalidInputError(CadenceError, ValueError):
    """Input rejected before it reaches the scheduler or slot calendar."""


class InvalidRatingError(InvalidInputError):
    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Unknown rating: {value!r} (expected again, hard, good or easy)")


class InvalidSlotError(InvalidInputError):
    """Malformed slot: bad day, inverted times or negative capacity."""


class SlotOverlapError(InvalidInputError):
    def __init__(self, day_of_week: int, conflicting_slot_id: str | None = None):
        self.day_of_week = day_of_week
        self.conflicting_slot_id = conflicting_slot_id
        super().__init__("Time slots cannot overlap with existing slots.")


class StaleStateError(CadenceError):
    """
    A concurrent write already advanced the review state.

    The caller should re-fetch the state and let the learner rate again.
    """

    def __init__(self, learner_id: str, flashcard_id: str, expected: int, actual: int):
        self.learner_id = learner_id
        self.flashcard_id = flashcard_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Stale review state for {learner_id}/{flashcard_id}: "
            f"expected version {expected}, found {actual}"
        )


class DuplicateSubmissionError(CadenceError):
    """The same presented card was already rated once."""

    def __init__(self, learner_id: str, flashcard_id: str, presented_at: object):
        self.learner_id = learner_id
        self.flashcard_id = flashcard_id
        self.presented_at = presented_at
        super().__init__(
            f"Rating for {learner_id}/{flashcard_id} presented at {presented_at} "
            "was already recorded"
        )


class NotFoundError(CadenceError, LookupError):
    """A flashcard, slot or learner referenced by the caller does not exist."""
