"""Cross-content question allocation for a single timed review session.

The pipeline is a chain of pure stages, each taking and returning an
immutable tuple of questions:

    rank by priority -> content weights -> difficulty targets -> select
    -> prevent clustering -> Fisher-Yates shuffle

Anti-clustering only shapes the pre-shuffle order. The final shuffle is
unconstrained, so the presented order carries no clustering guarantee;
``AllocationResult.pre_shuffle_order`` keeps the anti-clustered order for
callers that need it.
"""
from __future__ import annotations

import random
from collections import Counter
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from .domain import (
    DIFFICULTY_LEVELS,
    AllocationOptions,
    AllocationOutcome,
    AllocationResult,
    ContentItem,
    Question,
    round_half_up,
)
from .logging_config import get_logger
from .validators import validate_content_duration, validate_options, validate_questions


logger = get_logger(__name__)

STRATEGY_BALANCED = "weighted-balanced"
STRATEGY_PRIORITY = "weighted-priority"

DEFAULT_DIFFICULTY_SHARES: Tuple[float, ...] = (0.1, 0.2, 0.4, 0.2, 0.1)
PREFERRED_DIFFICULTY_SHARE = 0.5
# questions per hour at which the density bonus saturates
INSIGHT_DENSITY_CAP = 15.0
DENSITY_BONUS_WEIGHT = 0.3
MAX_CONSECUTIVE_SAME_CONTENT = 2
CLUSTERING_MIN_SELECTION = 3


class Selection(NamedTuple):
    questions: Tuple[Question, ...]
    budget_exhausted: bool


# region Content weighting
def aggregate_content_items(questions: Iterable[Question]) -> Dict[str, ContentItem]:
    """Derive content items from the pool; the first question seen fixes the duration."""

    durations: Dict[str, float] = {}
    counts: Counter = Counter()
    for question in questions:
        durations.setdefault(question.content_id, question.content_duration_hours)
        counts[question.content_id] += 1
    return {
        content_id: ContentItem(content_id=content_id, duration_hours=duration, question_count=counts[content_id])
        for content_id, duration in durations.items()
    }


def calculate_content_weights(questions: Iterable[Question]) -> Dict[str, float]:
    """Weight each content item by its share of total duration plus a density bonus."""

    items = aggregate_content_items(questions)
    for item in items.values():
        validate_content_duration(item.content_id, item.duration_hours)

    total_duration = sum(item.duration_hours for item in items.values())
    weights: Dict[str, float] = {}
    for content_id, item in items.items():
        duration_weight = item.duration_hours / total_duration
        insight_density = item.question_count / item.duration_hours
        density_bonus = min(insight_density / INSIGHT_DENSITY_CAP, 1.0)
        weights[content_id] = duration_weight * (1 + DENSITY_BONUS_WEIGHT * density_bonus)
    return weights


# endregion


# region Difficulty balancing
def difficulty_targets(max_questions: int, difficulty_preference: Optional[int] = None) -> Dict[int, int]:
    """Advisory per-level quotas; rounding may over- or under-shoot ``max_questions``."""

    if difficulty_preference is None:
        shares = DEFAULT_DIFFICULTY_SHARES
    else:
        other_share = (1 - PREFERRED_DIFFICULTY_SHARE) / (len(DIFFICULTY_LEVELS) - 1)
        shares = tuple(
            PREFERRED_DIFFICULTY_SHARE if level == difficulty_preference else other_share
            for level in DIFFICULTY_LEVELS
        )
    return {
        level: int(round_half_up(max_questions * share))
        for level, share in zip(DIFFICULTY_LEVELS, shares)
    }


# endregion


# region Selection
def rank_by_priority(questions: Iterable[Question]) -> Tuple[Question, ...]:
    return tuple(sorted(questions, key=lambda question: question.priority_score, reverse=True))


def _combined_score(question: Question, weights: Dict[str, float]) -> float:
    return weights.get(question.content_id, 0.0) + question.priority_score


def rank_by_weight(questions: Iterable[Question], weights: Dict[str, float]) -> Tuple[Question, ...]:
    """Stable descending sort on content weight plus priority score."""

    return tuple(sorted(questions, key=lambda question: _combined_score(question, weights), reverse=True))


def select_with_difficulty_balance(
    questions: Sequence[Question],
    weights: Dict[str, float],
    targets: Dict[int, int],
    options: AllocationOptions,
) -> Selection:
    """Fill each difficulty level's quota in order 1..5 within the session budget.

    An item that would overflow the time budget ends only its own level's
    queue; later levels may still contribute shorter questions.
    """

    selected: List[Question] = []
    total_seconds = 0.0
    max_seconds = options.max_time_seconds
    budget_exhausted = False

    for level in DIFFICULTY_LEVELS:
        target = targets.get(level, 0)
        queue = rank_by_weight((q for q in questions if q.difficulty_level == level), weights)
        added = 0
        for question in queue:
            if added >= target or len(selected) >= options.max_questions:
                break
            if total_seconds + question.estimated_time_seconds > max_seconds:
                budget_exhausted = True
                logger.debug(
                    "difficulty_queue_over_budget",
                    level=level,
                    question_id=question.id,
                    elapsed_seconds=total_seconds,
                )
                break
            selected.append(question)
            total_seconds += question.estimated_time_seconds
            added += 1

    return Selection(tuple(selected), budget_exhausted)


def select_by_weight(
    questions: Sequence[Question], weights: Dict[str, float], options: AllocationOptions
) -> Selection:
    """Take the best-scored questions until the count or time budget runs out."""

    selected: List[Question] = []
    total_seconds = 0.0
    max_seconds = options.max_time_seconds

    for question in rank_by_weight(questions, weights):
        if len(selected) >= options.max_questions:
            break
        if total_seconds + question.estimated_time_seconds > max_seconds:
            return Selection(tuple(selected), True)
        selected.append(question)
        total_seconds += question.estimated_time_seconds

    return Selection(tuple(selected), False)


# endregion


# region Ordering
def _find_different_content_index(questions: Sequence[Question], start: int, content_id: str) -> Optional[int]:
    for index in range(start, len(questions)):
        if questions[index].content_id != content_id:
            return index
    return None


def prevent_clustering(
    questions: Sequence[Question], max_consecutive: int = MAX_CONSECUTIVE_SAME_CONTENT
) -> Tuple[Question, ...]:
    """Break up runs longer than ``max_consecutive`` from the same content item.

    The item that would extend a run is swapped with the nearest later item
    from a different content item. Runs with no such item left stay as they are.
    """

    ordered = list(questions)
    if len(ordered) <= CLUSTERING_MIN_SELECTION:
        return tuple(ordered)

    for i in range(len(ordered) - max_consecutive):
        content_id = ordered[i].content_id
        run_length = 1
        for j in range(i + 1, min(len(ordered), i + max_consecutive + 1)):
            if ordered[j].content_id != content_id:
                break
            run_length += 1

        if run_length > max_consecutive:
            offender = i + max_consecutive
            swap_index = _find_different_content_index(ordered, offender, content_id)
            if swap_index is None:
                logger.debug("clustering_unresolved", content_id=content_id, position=offender)
                continue
            ordered[offender], ordered[swap_index] = ordered[swap_index], ordered[offender]

    return tuple(ordered)


def longest_same_content_run(questions: Sequence[Question]) -> int:
    longest = 0
    current = 0
    previous: Optional[str] = None
    for question in questions:
        current = current + 1 if question.content_id == previous else 1
        previous = question.content_id
        longest = max(longest, current)
    return longest


def fisher_yates_shuffle(questions: Sequence[Question], rng: random.Random) -> Tuple[Question, ...]:
    """Runs a Fisher–Yates shuffle driven by the injected generator."""

    shuffled = list(questions)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return tuple(shuffled)


# endregion


# region Summaries
def calculate_content_distribution(questions: Iterable[Question]) -> Dict[str, int]:
    distribution: Dict[str, int] = {}
    for question in questions:
        distribution[question.content_id] = distribution.get(question.content_id, 0) + 1
    return distribution


def calculate_difficulty_distribution(questions: Iterable[Question]) -> Dict[int, int]:
    distribution = {level: 0 for level in DIFFICULTY_LEVELS}
    for question in questions:
        distribution[question.difficulty_level] += 1
    return distribution


def estimate_total_minutes(questions: Iterable[Question]) -> float:
    seconds = sum(question.estimated_time_seconds for question in questions)
    return round_half_up(seconds / 60, places=1)


def _outcome(pool: Sequence[Question], selection: Selection, options: AllocationOptions) -> AllocationOutcome:
    if not pool:
        return AllocationOutcome.EMPTY_CANDIDATE_POOL
    if not selection.questions:
        if selection.budget_exhausted:
            return AllocationOutcome.BUDGET_EXCEEDED_IMMEDIATELY
        return AllocationOutcome.UNDER_FILLED
    if len(selection.questions) >= options.max_questions:
        return AllocationOutcome.FILLED
    return AllocationOutcome.UNDER_FILLED


# endregion


def allocate_questions(
    questions: Iterable[Question],
    options: AllocationOptions,
    rng: random.Random,
    max_consecutive: int = MAX_CONSECUTIVE_SAME_CONTENT,
) -> AllocationResult:
    """Build one session's question plan from a candidate pool.

    Malformed options or questions raise ``InvalidInput`` (or
    ``ContentDurationZero``) before any selection happens. An empty pool or a
    budget too small for any question is reported through ``outcome`` on an
    otherwise empty result.
    """

    validate_options(options)
    pool = rank_by_priority(validate_questions(questions))

    weights = calculate_content_weights(pool)
    if options.balance_by_difficulty:
        strategy = STRATEGY_BALANCED
        targets = difficulty_targets(options.max_questions, options.difficulty_preference)
        selection = select_with_difficulty_balance(pool, weights, targets, options)
    else:
        strategy = STRATEGY_PRIORITY
        selection = select_by_weight(pool, weights, options)

    ordered = selection.questions
    if options.prevent_clustering:
        ordered = prevent_clustering(ordered, max_consecutive)
    presented = fisher_yates_shuffle(ordered, rng)

    outcome = _outcome(pool, selection, options)
    result = AllocationResult(
        selected_questions=presented,
        content_distribution=calculate_content_distribution(presented),
        difficulty_distribution=calculate_difficulty_distribution(presented),
        estimated_total_time_minutes=estimate_total_minutes(presented),
        allocation_strategy=strategy,
        outcome=outcome,
        pre_shuffle_order=ordered,
    )
    logger.info(
        "questions_allocated",
        strategy=strategy,
        outcome=outcome.value,
        candidates=len(pool),
        selected=len(presented),
        estimated_minutes=result.estimated_total_time_minutes,
    )
    return result


__all__ = [
    "STRATEGY_BALANCED",
    "STRATEGY_PRIORITY",
    "Selection",
    "aggregate_content_items",
    "allocate_questions",
    "calculate_content_distribution",
    "calculate_content_weights",
    "calculate_difficulty_distribution",
    "difficulty_targets",
    "estimate_total_minutes",
    "fisher_yates_shuffle",
    "longest_same_content_run",
    "prevent_clustering",
    "rank_by_priority",
    "rank_by_weight",
    "select_by_weight",
    "select_with_difficulty_balance",
]
