"""Simple in-process metrics registry for engine instrumentation."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import List


@dataclass
class MetricsRegistry:
    """Holds counters and histograms exposed by the application."""

    allocation_requests: int = 0
    allocation_outcomes: Counter = field(default_factory=Counter)
    allocation_strategies: Counter = field(default_factory=Counter)
    allocated_question_counts: List[int] = field(default_factory=list)
    unresolved_clusters: int = 0
    review_outcomes: Counter = field(default_factory=Counter)
    feedback_types: Counter = field(default_factory=Counter)

    def record_allocation(self, strategy: str, outcome: str, question_count: int) -> None:
        self.allocation_requests += 1
        self.allocation_strategies[strategy] += 1
        self.allocation_outcomes[outcome] += 1
        self.allocated_question_counts.append(question_count)

    def record_unresolved_cluster(self) -> None:
        self.unresolved_clusters += 1

    def record_review_outcome(self, quality: int, interval_days: int) -> None:
        self.review_outcomes[(quality, interval_days)] += 1

    def record_feedback(self, feedback: str) -> None:
        self.feedback_types[feedback] += 1

    @property
    def average_allocation_size(self) -> float:
        if not self.allocated_question_counts:
            return 0.0
        return sum(self.allocated_question_counts) / len(self.allocated_question_counts)

    def reset(self) -> None:
        self.allocation_requests = 0
        self.allocation_outcomes.clear()
        self.allocation_strategies.clear()
        self.allocated_question_counts.clear()
        self.unresolved_clusters = 0
        self.review_outcomes.clear()
        self.feedback_types.clear()


METRICS = MetricsRegistry()

__all__ = ["METRICS", "MetricsRegistry"]
