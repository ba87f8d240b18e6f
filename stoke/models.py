"""Pydantic models for the Stoke review engine HTTP adapter."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .domain import AllocationOptions, FeedbackType, Question
from .services import ContentMastery, DueQuestion, FeedbackBatchResult, FeedbackEvent, SessionPlan


class QuestionPayload(BaseModel):
    """Candidate question as supplied by the content store."""

    id: str
    content_id: str
    difficulty_level: int
    estimated_time_seconds: float
    priority_score: float = 0.0
    content_duration_hours: float
    content_title: Optional[str] = None

    def to_domain(self) -> Question:
        return Question(
            id=self.id,
            content_id=self.content_id,
            difficulty_level=self.difficulty_level,
            estimated_time_seconds=self.estimated_time_seconds,
            priority_score=self.priority_score,
            content_duration_hours=self.content_duration_hours,
            content_title=self.content_title,
        )

    @classmethod
    def from_domain(cls, question: Question) -> "QuestionPayload":
        return cls(
            id=question.id,
            content_id=question.content_id,
            difficulty_level=question.difficulty_level,
            estimated_time_seconds=question.estimated_time_seconds,
            priority_score=question.priority_score,
            content_duration_hours=question.content_duration_hours,
            content_title=question.content_title,
        )


class AllocationOptionsPayload(BaseModel):
    max_questions: int
    target_duration_minutes: float
    difficulty_preference: Optional[int] = None
    balance_by_difficulty: bool = True
    prevent_clustering: bool = True

    def to_domain(self) -> AllocationOptions:
        return AllocationOptions(
            max_questions=self.max_questions,
            target_duration_minutes=self.target_duration_minutes,
            difficulty_preference=self.difficulty_preference,
            balance_by_difficulty=self.balance_by_difficulty,
            prevent_clustering=self.prevent_clustering,
        )


class AllocateRequest(BaseModel):
    """Input body for /v1/sessions/allocate."""

    questions: List[QuestionPayload] = Field(default_factory=list)
    options: AllocationOptionsPayload
    seed: Optional[int] = None


class SessionSelectRequest(BaseModel):
    """Input body for /v1/sessions/select."""

    user_id: str
    content_ids: List[str]
    options: AllocationOptionsPayload
    seed: Optional[int] = None

    @field_validator("content_ids")
    @classmethod
    def validate_content_ids(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("At least one content_id must be provided")
        return value


class AllocationResponse(BaseModel):
    selected_questions: List[QuestionPayload]
    content_distribution: Dict[str, int]
    difficulty_distribution: Dict[int, int]
    estimated_total_time_minutes: float
    allocation_strategy: str
    outcome: str
    seed: int

    @classmethod
    def from_plan(cls, plan: SessionPlan) -> "AllocationResponse":
        result = plan.result
        return cls(
            selected_questions=[QuestionPayload.from_domain(question) for question in result.selected_questions],
            content_distribution=dict(result.content_distribution),
            difficulty_distribution=dict(result.difficulty_distribution),
            estimated_total_time_minutes=result.estimated_total_time_minutes,
            allocation_strategy=result.allocation_strategy,
            outcome=result.outcome.value,
            seed=plan.seed,
        )


class FeedbackItem(BaseModel):
    content_id: str
    question_id: str
    feedback: Optional[FeedbackType] = None
    quality: Optional[int] = None
    response_time_seconds: float = 0.0

    @model_validator(mode="after")
    def validate_grade(self) -> "FeedbackItem":
        if (self.feedback is None) == (self.quality is None):
            raise ValueError("Provide exactly one of feedback or quality")
        return self

    def to_domain(self) -> FeedbackEvent:
        return FeedbackEvent(
            content_id=self.content_id,
            question_id=self.question_id,
            feedback=self.feedback,
            quality=self.quality,
            response_time_seconds=self.response_time_seconds,
        )


class FeedbackRequest(BaseModel):
    """Input body for /v1/review/feedback."""

    user_id: str
    responses: List[FeedbackItem]
    session_id: Optional[str] = None


class NextReviewDate(BaseModel):
    question_id: str
    next_review_date: datetime
    repetitions: int
    ease_factor: float
    interval_days: int


class FeedbackResponse(BaseModel):
    updated_count: int
    next_review_dates: List[NextReviewDate]

    @classmethod
    def from_batch(cls, batch: FeedbackBatchResult) -> "FeedbackResponse":
        return cls(
            updated_count=batch.updated_count,
            next_review_dates=[
                NextReviewDate(
                    question_id=outcome.question_id,
                    next_review_date=outcome.next_review_due_at,
                    repetitions=outcome.state.repetitions,
                    ease_factor=outcome.state.ease_factor,
                    interval_days=outcome.state.interval,
                )
                for outcome in batch.outcomes
            ],
        )


class DueQuestionModel(BaseModel):
    question: QuestionPayload
    days_overdue: float
    repetitions: int = 0
    interval_days: int = 0
    last_reviewed_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, item: DueQuestion) -> "DueQuestionModel":
        progress = {}
        if item.progress is not None:
            progress = {
                "repetitions": item.progress.state.repetitions,
                "interval_days": item.progress.state.interval,
                "last_reviewed_at": item.progress.last_reviewed_at,
            }
        return cls(question=QuestionPayload.from_domain(item.question), days_overdue=item.days_overdue, **progress)


class DueQuestionsResponse(BaseModel):
    due: List[DueQuestionModel]

    @classmethod
    def from_due(cls, due: List[DueQuestion]) -> "DueQuestionsResponse":
        return cls(due=[DueQuestionModel.from_domain(item) for item in due])


class MasteryResponse(BaseModel):
    content_id: str
    mastery_percentage: float
    questions_mastered: int
    questions_total: int
    next_review_due_at: Optional[datetime]

    @classmethod
    def from_mastery(cls, mastery: ContentMastery) -> "MasteryResponse":
        return cls(
            content_id=mastery.content_id,
            mastery_percentage=mastery.mastery_percentage,
            questions_mastered=mastery.questions_mastered,
            questions_total=mastery.questions_total,
            next_review_due_at=mastery.next_review_due_at,
        )


class RegisterQuestionsRequest(BaseModel):
    questions: List[QuestionPayload]


class RegisterQuestionsResponse(BaseModel):
    stored: int


__all__ = [
    "AllocateRequest",
    "AllocationOptionsPayload",
    "AllocationResponse",
    "DueQuestionModel",
    "DueQuestionsResponse",
    "FeedbackItem",
    "FeedbackRequest",
    "FeedbackResponse",
    "MasteryResponse",
    "NextReviewDate",
    "QuestionPayload",
    "RegisterQuestionsRequest",
    "RegisterQuestionsResponse",
    "SessionSelectRequest",
]
