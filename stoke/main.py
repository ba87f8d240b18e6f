"""FastAPI application wiring for the Stoke review engine."""

from __future__ import annotations

from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query

from .config import EngineConfig
from .logging_config import configure_logging, get_logger
from .models import (
    AllocateRequest,
    AllocationResponse,
    DueQuestionsResponse,
    FeedbackRequest,
    FeedbackResponse,
    MasteryResponse,
    RegisterQuestionsRequest,
    RegisterQuestionsResponse,
    SessionSelectRequest,
)
from .services import InMemoryRepository, ReviewService, SessionService
from .validators import validate_questions


app = FastAPI(title="Stoke Review Engine", version="0.1.0")
logger = get_logger(__name__)


def get_repository() -> InMemoryRepository:
    return app.state.repository


def get_review_service() -> ReviewService:
    return app.state.review_service


def get_session_service() -> SessionService:
    return app.state.session_service


@app.on_event("startup")
def startup() -> None:
    config = EngineConfig.from_env()
    configure_logging(config.log_level)

    repository = InMemoryRepository()
    review_service = ReviewService(repository, repository, config=config)
    app.state.config = config
    app.state.repository = repository
    app.state.review_service = review_service
    app.state.session_service = SessionService(review_service, config=config)
    logger.info("engine_started", mastery_interval_days=config.mastery_interval_days)


@app.post("/v1/content/questions", response_model=RegisterQuestionsResponse)
def register_questions(
    request: RegisterQuestionsRequest, repository: InMemoryRepository = Depends(get_repository)
) -> RegisterQuestionsResponse:
    try:
        questions = validate_questions(payload.to_domain() for payload in request.questions)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return RegisterQuestionsResponse(stored=repository.save_questions(questions))


@app.post("/v1/sessions/allocate", response_model=AllocationResponse)
def allocate_session(
    request: AllocateRequest, service: SessionService = Depends(get_session_service)
) -> AllocationResponse:
    try:
        plan = service.allocate(
            [payload.to_domain() for payload in request.questions],
            request.options.to_domain(),
            seed=request.seed,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return AllocationResponse.from_plan(plan)


@app.post("/v1/sessions/select", response_model=AllocationResponse)
def select_session(
    request: SessionSelectRequest, service: SessionService = Depends(get_session_service)
) -> AllocationResponse:
    try:
        plan = service.select_session_questions(
            request.user_id, request.content_ids, request.options.to_domain(), seed=request.seed
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return AllocationResponse.from_plan(plan)


@app.post("/v1/review/feedback", response_model=FeedbackResponse)
def review_feedback(
    request: FeedbackRequest, service: ReviewService = Depends(get_review_service)
) -> FeedbackResponse:
    try:
        batch = service.submit_feedback(
            request.user_id, [item.to_domain() for item in request.responses], session_id=request.session_id
        )
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return FeedbackResponse.from_batch(batch)


@app.get("/v1/review/due", response_model=DueQuestionsResponse)
def review_due(
    user_id: str,
    content_ids: Optional[List[str]] = Query(default=None),
    max_questions: Optional[int] = None,
    difficulty_preference: Optional[int] = None,
    service: ReviewService = Depends(get_review_service),
) -> DueQuestionsResponse:
    try:
        due = service.get_due_questions(
            user_id,
            content_ids=content_ids,
            max_questions=max_questions,
            difficulty_preference=difficulty_preference,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return DueQuestionsResponse.from_due(due)


@app.get("/v1/content/{content_id}/mastery", response_model=MasteryResponse)
def content_mastery(
    content_id: str, user_id: str, service: ReviewService = Depends(get_review_service)
) -> MasteryResponse:
    return MasteryResponse.from_mastery(service.calculate_content_mastery(user_id, content_id))


__all__ = ["app"]
