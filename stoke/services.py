"""Core services implementing the session allocation and review workflows."""
from __future__ import annotations

import random
import secrets
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .allocation import CLUSTERING_MIN_SELECTION, allocate_questions, longest_same_content_run
from .config import EngineConfig
from .domain import (
    AllocationOptions,
    AllocationResult,
    FeedbackType,
    Question,
    QuestionProgress,
    ReviewState,
    round_half_up,
)
from .logging_config import get_logger
from .metrics import METRICS
from .repositories import QuestionRepository, ReviewStateRepository
from .scheduling import initial_review_state, next_review_due_at, quality_for_feedback, update_review_state
from .validators import InvalidInput, validate_difficulty_level, validate_quality


logger = get_logger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FeedbackEvent:
    """One answered question forwarded by the session runner."""

    content_id: str
    question_id: str
    feedback: Optional[Union[FeedbackType, str]] = None
    quality: Optional[int] = None
    response_time_seconds: float = 0.0


@dataclass(frozen=True)
class FeedbackOutcome:
    question_id: str
    state: ReviewState
    next_review_due_at: datetime


@dataclass(frozen=True)
class FeedbackBatchResult:
    updated_count: int
    outcomes: Tuple[FeedbackOutcome, ...]


@dataclass(frozen=True)
class DueQuestion:
    question: Question
    days_overdue: float
    progress: Optional[QuestionProgress] = None


@dataclass(frozen=True)
class ContentMastery:
    content_id: str
    mastery_percentage: float
    questions_mastered: int
    questions_total: int
    next_review_due_at: Optional[datetime]


@dataclass(frozen=True)
class SessionPlan:
    """An allocation plus the seed that reproduces its shuffle."""

    result: AllocationResult
    seed: int


class InMemoryRepository(QuestionRepository, ReviewStateRepository):
    """Process-local stand-in for the external question and review-state stores."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._questions: Dict[str, Question] = {}
        self._progress: Dict[str, Dict[str, QuestionProgress]] = {}

    # region Questions
    def save_questions(self, questions: Iterable[Question]) -> int:
        written = 0
        with self._lock:
            for question in questions:
                self._questions[question.id] = question
                written += 1
        return written

    def get_questions(self, content_ids: Optional[Sequence[str]] = None) -> List[Question]:
        with self._lock:
            questions = list(self._questions.values())
        if content_ids is None:
            return questions
        wanted = set(content_ids)
        return [question for question in questions if question.content_id in wanted]

    def get_question(self, question_id: str) -> Question:
        with self._lock:
            try:
                return self._questions[question_id]
            except KeyError as exc:
                raise KeyError(f"Question {question_id} does not exist") from exc

    # endregion

    # region Review progress
    def get_progress(self, user_id: str, question_id: str) -> Optional[QuestionProgress]:
        with self._lock:
            return self._progress.get(user_id, {}).get(question_id)

    def save_progress(self, progress: QuestionProgress) -> None:
        with self._lock:
            self._progress.setdefault(progress.user_id, {})[progress.question_id] = progress

    def list_progress(self, user_id: str, content_id: Optional[str] = None) -> List[QuestionProgress]:
        with self._lock:
            records = list(self._progress.get(user_id, {}).values())
        if content_id is None:
            return records
        return [record for record in records if record.content_id == content_id]

    # endregion


class ReviewService:
    """Manages the spaced repetition review loop."""

    def __init__(
        self,
        questions: QuestionRepository,
        states: ReviewStateRepository,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._questions = questions
        self._states = states
        self._config = config or EngineConfig()
        self._clock = clock or _utcnow
        self._update_lock = threading.Lock()

    def resolve_quality(self, event: FeedbackEvent) -> int:
        if (event.feedback is None) == (event.quality is None):
            raise InvalidInput(
                f"Feedback for question {event.question_id} must carry exactly one of feedback or quality"
            )
        if event.quality is not None:
            return validate_quality(event.quality)
        return quality_for_feedback(event.feedback, self._config)

    def submit_feedback(
        self, user_id: str, events: Sequence[FeedbackEvent], session_id: Optional[str] = None
    ) -> FeedbackBatchResult:
        """Apply a batch of answers; the whole batch is validated before any state changes."""

        prepared: List[Tuple[FeedbackEvent, int]] = []
        for event in events:
            if event.response_time_seconds < 0:
                raise InvalidInput(f"Response time for question {event.question_id} must not be negative")
            question = self._questions.get_question(event.question_id)
            if question.content_id != event.content_id:
                raise InvalidInput(
                    f"Question {event.question_id} belongs to content {question.content_id}, "
                    f"not {event.content_id}"
                )
            prepared.append((event, self.resolve_quality(event)))

        now = self._clock()
        outcomes: List[FeedbackOutcome] = []
        with self._update_lock:
            for event, quality in prepared:
                progress = self._states.get_progress(user_id, event.question_id)
                if progress is None:
                    progress = QuestionProgress(
                        user_id=user_id,
                        content_id=event.content_id,
                        question_id=event.question_id,
                        next_review_due_at=now,
                        state=initial_review_state(),
                    )
                updated = self._apply(progress, event, quality, now)
                self._states.save_progress(updated)
                outcomes.append(FeedbackOutcome(event.question_id, updated.state, updated.next_review_due_at))
                METRICS.record_review_outcome(quality, updated.state.interval)
                if event.feedback is not None:
                    METRICS.record_feedback(FeedbackType(event.feedback).value)

        logger.info("feedback_applied", user_id=user_id, session_id=session_id, updated=len(outcomes))
        return FeedbackBatchResult(updated_count=len(outcomes), outcomes=tuple(outcomes))

    def _apply(self, progress: QuestionProgress, event: FeedbackEvent, quality: int, now: datetime) -> QuestionProgress:
        state = update_review_state(progress.state, quality)
        correct = quality >= self._config.correct_quality_threshold
        return replace(
            progress,
            state=state,
            next_review_due_at=next_review_due_at(state, now),
            last_reviewed_at=now,
            total_reviews=progress.total_reviews + 1,
            correct_reviews=progress.correct_reviews + (1 if correct else 0),
            consecutive_correct=progress.consecutive_correct + 1 if correct else 0,
            last_feedback=FeedbackType(event.feedback) if event.feedback is not None else None,
            last_response_time_seconds=event.response_time_seconds,
        )

    def get_due_questions(
        self,
        user_id: str,
        content_ids: Optional[Sequence[str]] = None,
        max_questions: Optional[int] = None,
        difficulty_preference: Optional[int] = None,
        include_new: bool = True,
    ) -> List[DueQuestion]:
        """Questions due now, ranked by how overdue they are relative to their interval."""

        if difficulty_preference is not None:
            validate_difficulty_level(difficulty_preference, "difficulty_preference")
        if max_questions is not None and max_questions <= 0:
            raise InvalidInput(f"max_questions must be positive, got {max_questions!r}")

        now = self._clock()
        progress_by_question = {record.question_id: record for record in self._states.list_progress(user_id)}
        due: List[DueQuestion] = []
        for question in self._questions.get_questions(content_ids):
            if difficulty_preference is not None and question.difficulty_level != difficulty_preference:
                continue
            progress = progress_by_question.get(question.id)
            if progress is None or progress.is_new:
                if include_new:
                    due.append(DueQuestion(replace(question, priority_score=0.0), 0.0, progress))
                continue
            if progress.next_review_due_at > now:
                continue
            days_overdue = progress.days_overdue(now)
            priority = days_overdue / max(progress.state.interval, 1)
            due.append(DueQuestion(replace(question, priority_score=priority), days_overdue, progress))

        due.sort(key=lambda item: item.question.priority_score, reverse=True)
        if max_questions is not None:
            due = due[:max_questions]
        return due

    def calculate_content_mastery(self, user_id: str, content_id: str) -> ContentMastery:
        questions = self._questions.get_questions([content_id])
        question_ids = {question.id for question in questions}
        records = [
            record
            for record in self._states.list_progress(user_id, content_id)
            if record.question_id in question_ids
        ]

        mastered = sum(1 for record in records if record.state.interval >= self._config.mastery_interval_days)
        total = len(questions)
        percentage = round_half_up(100 * mastered / total) if total else 0.0
        reviewed_due_dates = [record.next_review_due_at for record in records if not record.is_new]
        return ContentMastery(
            content_id=content_id,
            mastery_percentage=percentage,
            questions_mastered=mastered,
            questions_total=total,
            next_review_due_at=min(reviewed_due_dates) if reviewed_due_dates else None,
        )


class SessionService:
    """Builds review session plans from candidate pools or a learner's due questions."""

    def __init__(self, review_service: ReviewService, config: Optional[EngineConfig] = None) -> None:
        self._review_service = review_service
        self._config = config or EngineConfig()

    def allocate(
        self, questions: Iterable[Question], options: AllocationOptions, seed: Optional[int] = None
    ) -> SessionPlan:
        if seed is None:
            seed = secrets.randbits(32)
        result = allocate_questions(
            questions,
            options,
            random.Random(seed),
            max_consecutive=self._config.max_consecutive_same_content,
        )
        METRICS.record_allocation(result.allocation_strategy, result.outcome.value, len(result.selected_questions))
        if (
            options.prevent_clustering
            and len(result.pre_shuffle_order) > CLUSTERING_MIN_SELECTION
            and longest_same_content_run(result.pre_shuffle_order) > self._config.max_consecutive_same_content
        ):
            METRICS.record_unresolved_cluster()
        return SessionPlan(result=result, seed=seed)

    def select_session_questions(
        self,
        user_id: str,
        content_ids: Sequence[str],
        options: AllocationOptions,
        seed: Optional[int] = None,
    ) -> SessionPlan:
        due = self._review_service.get_due_questions(user_id, content_ids)
        logger.debug("session_candidates_loaded", user_id=user_id, candidates=len(due))
        return self.allocate([item.question for item in due], options, seed=seed)


__all__ = [
    "ContentMastery",
    "DueQuestion",
    "FeedbackBatchResult",
    "FeedbackEvent",
    "FeedbackOutcome",
    "InMemoryRepository",
    "ReviewService",
    "SessionPlan",
    "SessionService",
]
