"""Shared fixtures for the Stoke engine tests."""

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from stoke.domain import Question
from stoke.metrics import METRICS
from stoke.services import InMemoryRepository, ReviewService, SessionService


_ids = count(1)


def make_question(
    content_id="content-a",
    difficulty_level=3,
    estimated_time_seconds=30,
    priority_score=0.0,
    content_duration_hours=1.0,
    question_id=None,
):
    return Question(
        id=question_id or f"q{next(_ids)}",
        content_id=content_id,
        difficulty_level=difficulty_level,
        estimated_time_seconds=estimated_time_seconds,
        priority_score=priority_score,
        content_duration_hours=content_duration_hours,
    )


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, days=0.0):
        self.now = self.now + timedelta(days=days)


@pytest.fixture(autouse=True)
def reset_metrics():
    METRICS.reset()
    yield
    METRICS.reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def review_service(repository, clock):
    return ReviewService(repository, repository, clock=clock)


@pytest.fixture
def session_service(review_service):
    return SessionService(review_service)


@pytest.fixture
def two_content_pool():
    """Ten 30s questions: two content items, one question per difficulty level each."""

    return [
        make_question(
            content_id=content_id,
            difficulty_level=level,
            question_id=f"{content_id}-{level}",
        )
        for content_id in ("content-a", "content-b")
        for level in (1, 2, 3, 4, 5)
    ]
