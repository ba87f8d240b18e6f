"""Domain models shared across the scheduler, allocator and services."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, Optional, Tuple


DIFFICULTY_LEVELS: Tuple[int, ...] = (1, 2, 3, 4, 5)

MIN_EASE_FACTOR = 1.3
INITIAL_EASE_FACTOR = 2.5
MIN_QUALITY = 0
MAX_QUALITY = 5


def round_half_up(value: float, places: int = 0) -> float:
    """Round half away from zero, unlike the builtin banker's rounding.

    The shortest decimal repr is rounded, so ``0.15`` goes to ``0.2`` even though
    its binary value sits just below the half.
    """

    exponent = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(exponent, rounding=ROUND_HALF_UP))


class FeedbackType(str, Enum):
    GOT_IT = "got_it"
    REVISIT = "revisit"


class AllocationOutcome(str, Enum):
    """How a session allocation ended. None of these are errors."""

    FILLED = "filled"
    UNDER_FILLED = "under_filled"
    EMPTY_CANDIDATE_POOL = "empty_candidate_pool"
    BUDGET_EXCEEDED_IMMEDIATELY = "budget_exceeded_immediately"


@dataclass(frozen=True)
class Question:
    """A candidate review question together with its owning content's duration."""

    id: str
    content_id: str
    difficulty_level: int
    estimated_time_seconds: float
    priority_score: float
    content_duration_hours: float
    content_title: Optional[str] = None


@dataclass(frozen=True)
class ContentItem:
    content_id: str
    duration_hours: float
    question_count: int


@dataclass(frozen=True)
class ReviewState:
    """SM-2 schedule for one user/question pair."""

    repetitions: int = 0
    ease_factor: float = INITIAL_EASE_FACTOR
    interval: int = 0
    quality: int = 0

    def to_dict(self) -> dict:
        return {
            "repetitions": self.repetitions,
            "ease_factor": self.ease_factor,
            "interval": self.interval,
            "quality": self.quality,
        }


@dataclass(frozen=True)
class AllocationOptions:
    max_questions: int
    target_duration_minutes: float
    difficulty_preference: Optional[int] = None
    balance_by_difficulty: bool = True
    prevent_clustering: bool = True

    @property
    def max_time_seconds(self) -> float:
        return self.target_duration_minutes * 60


@dataclass(frozen=True)
class AllocationResult:
    """One session's ordered selection and its summary statistics."""

    selected_questions: Tuple[Question, ...]
    content_distribution: Dict[str, int]
    difficulty_distribution: Dict[int, int]
    estimated_total_time_minutes: float
    allocation_strategy: str
    outcome: AllocationOutcome
    pre_shuffle_order: Tuple[Question, ...] = ()

    @property
    def question_ids(self) -> Tuple[str, ...]:
        return tuple(question.id for question in self.selected_questions)


@dataclass
class QuestionProgress:
    """Per-learner review record for a single question, owned by the state store."""

    user_id: str
    content_id: str
    question_id: str
    next_review_due_at: datetime
    state: ReviewState = field(default_factory=ReviewState)
    last_reviewed_at: Optional[datetime] = None
    total_reviews: int = 0
    correct_reviews: int = 0
    consecutive_correct: int = 0
    last_feedback: Optional[FeedbackType] = None
    last_response_time_seconds: Optional[float] = None

    @property
    def is_new(self) -> bool:
        return self.last_reviewed_at is None

    def days_overdue(self, now: datetime) -> float:
        return max((now - self.next_review_due_at).total_seconds() / 86400, 0.0)


__all__ = [
    "DIFFICULTY_LEVELS",
    "INITIAL_EASE_FACTOR",
    "MAX_QUALITY",
    "MIN_EASE_FACTOR",
    "MIN_QUALITY",
    "AllocationOptions",
    "AllocationOutcome",
    "AllocationResult",
    "ContentItem",
    "FeedbackType",
    "Question",
    "QuestionProgress",
    "ReviewState",
    "round_half_up",
]
