"""
Interval scheduler: SM-2 family update rules.

Pure scheduling and state updates (no database calls).

Main workflow:
1. Load card state (caller's responsibility; bootstrap new states lazily)
2. Normalize the state if it was corrupted
3. Apply the rule for the submitted rating
4. Derive the new status and due timestamp
5. Return the updated state (caller persists it)
"""

from dataclasses import dataclass
from datetime import datetime

from cadence.application.config import SchedulerParams
from cadence.domain.review.models import CardStatus, Rating, ReviewState, due_from

DEFAULT_PARAMS = SchedulerParams()


@dataclass(frozen=True)
class _Update:
    interval_days: float
    ease_factor: float
    repetitions: int
    lapses: int


def normalize_state(
    state: ReviewState, params: SchedulerParams | None = None
) -> tuple[ReviewState, list[str]]:
    """
    Repair a state that violates the data-model invariants.

    Corruption must never block a learner's review, so nothing here raises.

    Returns:
        (repaired_state, issues) where issues describes every repair made,
        for the caller to log. issues is empty for a healthy state.
    """
    params = params or DEFAULT_PARAMS
    issues: list[str] = []
    changes: dict = {}

    if state.interval_days < 0:
        issues.append(f"negative interval {state.interval_days} reset to 0")
        changes["interval_days"] = 0.0
    if state.ease_factor < params.ease_floor:
        issues.append(f"ease {state.ease_factor} raised to floor {params.ease_floor}")
        changes["ease_factor"] = params.ease_floor
    elif state.ease_factor > params.ease_ceiling:
        issues.append(f"ease {state.ease_factor} lowered to ceiling {params.ease_ceiling}")
        changes["ease_factor"] = params.ease_ceiling
    if state.repetitions < 0:
        issues.append(f"negative repetitions {state.repetitions} reset to 0")
        changes["repetitions"] = 0
    if state.lapses < 0:
        issues.append(f"negative lapses {state.lapses} reset to 0")
        changes["lapses"] = 0

    if not changes:
        return state, issues
    return state.with_changes(**changes), issues


def derive_status(
    interval_days: float,
    repetitions: int,
    lapses: int,
    reviewed: bool,
    params: SchedulerParams | None = None,
) -> CardStatus:
    """
    Map raw counters onto a learning stage.

    A lapse resets repetitions to 0, which is what demotes review/mastered
    cards back to learning.
    """
    params = params or DEFAULT_PARAMS
    if not reviewed and repetitions == 0 and lapses == 0:
        return CardStatus.NEW
    if repetitions < params.graduation_repetitions:
        return CardStatus.LEARNING
    if (
        interval_days >= params.mastery_threshold_days
        and repetitions >= params.mastery_min_repetitions
    ):
        return CardStatus.MASTERED
    return CardStatus.REVIEW


def schedule(
    state: ReviewState,
    rating: Rating,
    now: datetime,
    params: SchedulerParams | None = None,
) -> ReviewState:
    """
    Compute the next review state for a rated card.

    Same (state, rating, now, params) always yields the same result.

    Args:
        state: Current state (a bootstrapped new state for never-seen cards).
        rating: The learner's rating. Parse raw input with Rating.parse first.
        now: Time of the rating; becomes last_reviewed_at.
        params: Scheduler tuning; defaults to SchedulerParams().

    Returns:
        A new ReviewState with due_at == now + interval_days. The version is
        left untouched; the store bumps it on save.
    """
    params = params or DEFAULT_PARAMS
    rating = Rating.parse(rating)
    state, _ = normalize_state(state, params)

    update = _RULES[rating](state, params)
    status = derive_status(
        update.interval_days, update.repetitions, update.lapses, True, params
    )

    return state.with_changes(
        interval_days=update.interval_days,
        ease_factor=update.ease_factor,
        repetitions=update.repetitions,
        lapses=update.lapses,
        status=status,
        last_reviewed_at=now,
        due_at=due_from(now, update.interval_days),
    )


def _clamp_ease(ease: float, params: SchedulerParams) -> float:
    return min(params.ease_ceiling, max(params.ease_floor, ease))


def _cap_growth(previous: float, computed: float, params: SchedulerParams) -> float:
    # Capped at max_interval_days, but never shorter than before.
    return max(previous, min(params.max_interval_days, computed))


def _apply_again(state: ReviewState, params: SchedulerParams) -> _Update:
    return _Update(
        interval_days=params.learning_step_days,
        ease_factor=_clamp_ease(state.ease_factor - params.ease_penalty, params),
        repetitions=0,
        lapses=state.lapses + 1,
    )


def _apply_hard(state: ReviewState, params: SchedulerParams) -> _Update:
    return _Update(
        interval_days=max(params.learning_step_days, state.interval_days * params.hard_multiplier),
        ease_factor=_clamp_ease(state.ease_factor - params.hard_penalty, params),
        repetitions=state.repetitions + 1,
        lapses=state.lapses,
    )


def _apply_good(state: ReviewState, params: SchedulerParams) -> _Update:
    if state.repetitions == 0:
        # Graduating out of learning uses a fixed first interval.
        interval = max(params.graduating_interval_days, state.interval_days)
    else:
        interval = _cap_growth(
            state.interval_days,
            max(params.graduating_interval_days, state.interval_days * state.ease_factor),
            params,
        )
    return _Update(
        interval_days=interval,
        ease_factor=state.ease_factor,
        repetitions=state.repetitions + 1,
        lapses=state.lapses,
    )


def _apply_easy(state: ReviewState, params: SchedulerParams) -> _Update:
    ease = _clamp_ease(state.ease_factor + params.ease_bonus, params)
    if state.repetitions == 0:
        interval = max(params.easy_interval_days, state.interval_days)
    else:
        interval = _cap_growth(
            state.interval_days,
            max(params.graduating_interval_days, state.interval_days * ease * params.easy_multiplier),
            params,
        )
    return _Update(
        interval_days=interval,
        ease_factor=ease,
        repetitions=state.repetitions + 1,
        lapses=state.lapses,
    )


_RULES = {
    Rating.AGAIN: _apply_again,
    Rating.HARD: _apply_hard,
    Rating.GOOD: _apply_good,
    Rating.EASY: _apply_easy,
}
