"""Repository interfaces for the engine's external collaborators."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence

from .domain import Question, QuestionProgress


class QuestionRepository(ABC):
    """Supplies candidate questions grouped by content item."""

    @abstractmethod
    def save_questions(self, questions: Iterable[Question]) -> int:
        """Store or replace questions, returning how many were written."""

    @abstractmethod
    def get_questions(self, content_ids: Optional[Sequence[str]] = None) -> List[Question]:
        """Return questions for the given content items, or all of them."""

    @abstractmethod
    def get_question(self, question_id: str) -> Question:
        """Return a single question; raises ``KeyError`` when unknown."""


class ReviewStateRepository(ABC):
    """Persists review progress per learner and question.

    Implementations must serialise updates per (user, question) so that
    concurrent feedback never loses an update.
    """

    @abstractmethod
    def get_progress(self, user_id: str, question_id: str) -> Optional[QuestionProgress]:
        """Return the stored progress, if present."""

    @abstractmethod
    def save_progress(self, progress: QuestionProgress) -> None:
        """Persist the progress record."""

    @abstractmethod
    def list_progress(self, user_id: str, content_id: Optional[str] = None) -> List[QuestionProgress]:
        """Return every progress record of a learner, optionally for one content item."""


__all__ = ["QuestionRepository", "ReviewStateRepository"]
