"""Input validation for the scheduler and allocator, run before any selection work."""
from __future__ import annotations

import math
from numbers import Real
from typing import Iterable, Sequence

from .domain import (
    DIFFICULTY_LEVELS,
    MAX_QUALITY,
    MIN_EASE_FACTOR,
    MIN_QUALITY,
    AllocationOptions,
    Question,
    ReviewState,
)


class InvalidInput(ValueError):
    """Raised when a caller passes values outside the engine's domain."""


class ContentDurationZero(InvalidInput):
    """Raised when a content item reports a zero duration."""


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_finite_number(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def validate_quality(quality: object) -> int:
    if not _is_int(quality) or not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise InvalidInput(f"Quality must be an integer between {MIN_QUALITY} and {MAX_QUALITY}, got {quality!r}")
    return quality


def validate_review_state(state: ReviewState) -> None:
    if not _is_int(state.repetitions) or state.repetitions < 0:
        raise InvalidInput(f"Repetitions must be a non-negative integer, got {state.repetitions!r}")
    if not _is_int(state.interval) or state.interval < 0:
        raise InvalidInput(f"Interval must be a non-negative integer number of days, got {state.interval!r}")
    if not _is_finite_number(state.ease_factor) or state.ease_factor < MIN_EASE_FACTOR:
        raise InvalidInput(f"Ease factor must be at least {MIN_EASE_FACTOR}, got {state.ease_factor!r}")


def validate_difficulty_level(level: object, context: str = "difficulty level") -> int:
    if not _is_int(level) or level not in DIFFICULTY_LEVELS:
        raise InvalidInput(f"{context} must be one of {list(DIFFICULTY_LEVELS)}, got {level!r}")
    return level


def validate_content_duration(content_id: str, duration_hours: object) -> None:
    if not _is_finite_number(duration_hours):
        raise InvalidInput(f"Content {content_id} has a non-numeric duration: {duration_hours!r}")
    if duration_hours == 0:
        raise ContentDurationZero(f"Content {content_id} has a zero duration")
    if duration_hours < 0:
        raise InvalidInput(f"Content {content_id} has a negative duration: {duration_hours!r}")


def validate_options(options: AllocationOptions) -> None:
    """Validate session options before allocation."""

    if not _is_int(options.max_questions) or options.max_questions <= 0:
        raise InvalidInput(f"max_questions must be a positive integer, got {options.max_questions!r}")
    if not _is_finite_number(options.target_duration_minutes) or options.target_duration_minutes <= 0:
        raise InvalidInput(
            f"target_duration_minutes must be positive, got {options.target_duration_minutes!r}"
        )
    if options.difficulty_preference is not None:
        validate_difficulty_level(options.difficulty_preference, "difficulty_preference")


def _validate_question(question: Question) -> None:
    if not question.id:
        raise InvalidInput("Questions must carry a non-empty id")
    if not question.content_id:
        raise InvalidInput(f"Question {question.id} must reference a content item")
    validate_difficulty_level(question.difficulty_level, f"Question {question.id} difficulty_level")
    if not _is_finite_number(question.estimated_time_seconds) or question.estimated_time_seconds <= 0:
        raise InvalidInput(
            f"Question {question.id} must have a positive estimated_time_seconds, "
            f"got {question.estimated_time_seconds!r}"
        )
    if not _is_finite_number(question.priority_score):
        raise InvalidInput(f"Question {question.id} has a non-numeric priority_score")
    validate_content_duration(question.content_id, question.content_duration_hours)


def validate_questions(questions: Iterable[Question]) -> Sequence[Question]:
    """Validate a candidate pool and return it as a list."""

    pool = list(questions)
    seen_ids = set()
    for question in pool:
        if question.id in seen_ids:
            raise InvalidInput(f"Duplicate question identifier detected: {question.id}")
        seen_ids.add(question.id)
        _validate_question(question)
    return pool


__all__ = [
    "ContentDurationZero",
    "InvalidInput",
    "validate_content_duration",
    "validate_difficulty_level",
    "validate_options",
    "validate_quality",
    "validate_questions",
    "validate_review_state",
]
