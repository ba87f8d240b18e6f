"""SM-2 review schedule updates.

``update_review_state`` is the whole updater: a pure function from the
current schedule and an answer quality (0-5) to the next schedule.
Intervals are rounded half away from zero, so ``5 * 2.5 = 12.5`` becomes
13 days where the builtin ``round`` would give 12.

Binary session feedback is mapped onto the quality scale before updating:
``got_it`` counts as 4 and ``revisit`` as 2 unless configured otherwise.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Union

from .config import EngineConfig
from .domain import INITIAL_EASE_FACTOR, MIN_EASE_FACTOR, FeedbackType, ReviewState, round_half_up
from .validators import InvalidInput, validate_quality, validate_review_state


def initial_review_state() -> ReviewState:
    """Schedule assigned the first time a question is reviewed."""

    return ReviewState(repetitions=0, ease_factor=INITIAL_EASE_FACTOR, interval=0, quality=0)


def update_review_state(state: ReviewState, quality: int) -> ReviewState:
    """Apply one answer of the given quality to a review schedule."""

    validate_quality(quality)
    validate_review_state(state)

    penalty = 5 - quality
    ease_factor = max(MIN_EASE_FACTOR, state.ease_factor + (0.1 - penalty * (0.08 + penalty * 0.02)))

    if state.repetitions == 0:
        interval = 1
    elif state.repetitions == 1:
        interval = 6
    else:
        interval = int(round_half_up(state.interval * ease_factor))

    return ReviewState(
        repetitions=state.repetitions + 1,
        ease_factor=ease_factor,
        interval=interval,
        quality=quality,
    )


def quality_for_feedback(
    feedback: Union[FeedbackType, str], config: Optional[EngineConfig] = None
) -> int:
    config = config or EngineConfig()
    try:
        feedback = FeedbackType(feedback)
    except ValueError:
        raise InvalidInput(f"Unknown feedback type: {feedback!r}") from None
    if feedback is FeedbackType.GOT_IT:
        return validate_quality(config.got_it_quality)
    return validate_quality(config.revisit_quality)


def next_review_due_at(state: ReviewState, now: datetime) -> datetime:
    return now + timedelta(days=state.interval)


__all__ = [
    "initial_review_state",
    "next_review_due_at",
    "quality_for_feedback",
    "update_review_state",
]
