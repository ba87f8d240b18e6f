import random

import pytest

from stoke.allocation import (
    STRATEGY_BALANCED,
    STRATEGY_PRIORITY,
    aggregate_content_items,
    allocate_questions,
    calculate_content_weights,
    difficulty_targets,
    estimate_total_minutes,
    fisher_yates_shuffle,
    longest_same_content_run,
    prevent_clustering,
    rank_by_weight,
    select_by_weight,
    select_with_difficulty_balance,
)
from stoke.domain import AllocationOptions, AllocationOutcome
from stoke.validators import ContentDurationZero, InvalidInput

from conftest import make_question


def _ids(questions):
    return [question.id for question in questions]


def _assert_invariants(result, pool, options):
    pool_ids = {question.id for question in pool}
    assert len(result.selected_questions) <= options.max_questions
    assert all(question.id in pool_ids for question in result.selected_questions)
    assert sum(result.content_distribution.values()) == len(result.selected_questions)
    assert sum(result.difficulty_distribution.values()) == len(result.selected_questions)
    assert sorted(_ids(result.selected_questions)) == sorted(_ids(result.pre_shuffle_order))


# region Content weights
def test_content_weights_combine_duration_share_and_density():
    pool = [make_question("a", content_duration_hours=1.0) for _ in range(2)] + [
        make_question("b", content_duration_hours=3.0) for _ in range(3)
    ]
    weights = calculate_content_weights(pool)
    assert weights["a"] == pytest.approx(0.25 * (1 + 0.3 * (2 / 15)))
    assert weights["b"] == pytest.approx(0.75 * (1 + 0.3 * (1 / 15)))


def test_density_bonus_is_capped():
    pool = [make_question("dense", content_duration_hours=1.0) for _ in range(30)]
    assert calculate_content_weights(pool) == {"dense": pytest.approx(1.3)}


def test_first_question_fixes_content_duration():
    pool = [
        make_question("a", content_duration_hours=2.0),
        make_question("a", content_duration_hours=5.0),
    ]
    items = aggregate_content_items(pool)
    assert items["a"].duration_hours == 2.0
    assert items["a"].question_count == 2


def test_zero_duration_content_is_rejected():
    with pytest.raises(ContentDurationZero):
        calculate_content_weights([make_question("a", content_duration_hours=0)])


def test_negative_duration_content_is_invalid():
    with pytest.raises(InvalidInput):
        calculate_content_weights([make_question("a", content_duration_hours=-1.0)])


# endregion


# region Difficulty targets
@pytest.mark.parametrize(
    "max_questions, expected",
    [
        (6, {1: 1, 2: 1, 3: 2, 4: 1, 5: 1}),
        (10, {1: 1, 2: 2, 3: 4, 4: 2, 5: 1}),
        (5, {1: 1, 2: 1, 3: 2, 4: 1, 5: 1}),
    ],
)
def test_default_difficulty_targets(max_questions, expected):
    assert difficulty_targets(max_questions) == expected


def test_difficulty_preference_takes_half():
    assert difficulty_targets(8, difficulty_preference=3) == {1: 1, 2: 1, 3: 4, 4: 1, 5: 1}
    assert difficulty_targets(20, difficulty_preference=1) == {1: 10, 2: 3, 3: 3, 4: 3, 5: 3}


def test_targets_iterate_in_level_order():
    assert list(difficulty_targets(12)) == [1, 2, 3, 4, 5]


# endregion


# region Selection
def test_rank_by_weight_is_stable_on_ties():
    first = make_question("a", priority_score=1.0, question_id="first")
    second = make_question("a", priority_score=1.0, question_id="second")
    assert _ids(rank_by_weight([first, second], {"a": 0.5})) == ["first", "second"]
    assert _ids(rank_by_weight([second, first], {"a": 0.5})) == ["second", "first"]


def test_balanced_time_overflow_stops_only_that_level():
    long_easy = make_question(difficulty_level=1, estimated_time_seconds=200, priority_score=5, question_id="long")
    short_easy = make_question(difficulty_level=1, estimated_time_seconds=30, priority_score=1, question_id="short")
    level_two = [make_question(difficulty_level=2, question_id=f"two-{i}") for i in range(2)]
    pool = [long_easy, short_easy] + level_two
    options = AllocationOptions(max_questions=10, target_duration_minutes=2)

    selection = select_with_difficulty_balance(
        pool, calculate_content_weights(pool), difficulty_targets(10), options
    )

    assert _ids(selection.questions) == ["two-0", "two-1"]
    assert selection.budget_exhausted


def test_balanced_respects_quota_and_max_questions():
    pool = [make_question(difficulty_level=3, question_id=f"mid-{i}") for i in range(10)]
    options = AllocationOptions(max_questions=5, target_duration_minutes=60)
    selection = select_with_difficulty_balance(pool, calculate_content_weights(pool), difficulty_targets(5), options)
    assert len(selection.questions) == 2
    assert not selection.budget_exhausted


def test_weighted_stops_globally_on_overflow():
    pool = [
        make_question(estimated_time_seconds=30, priority_score=3, question_id="top"),
        make_question(estimated_time_seconds=200, priority_score=2, question_id="long"),
        make_question(estimated_time_seconds=30, priority_score=1, question_id="would-fit"),
    ]
    options = AllocationOptions(max_questions=10, target_duration_minutes=2, balance_by_difficulty=False)
    selection = select_by_weight(pool, calculate_content_weights(pool), options)
    assert _ids(selection.questions) == ["top"]
    assert selection.budget_exhausted


def test_weighted_prefers_heavier_content_on_equal_priority():
    pool = [
        make_question("short", content_duration_hours=0.5, question_id="from-short"),
        make_question("long", content_duration_hours=4.0, question_id="from-long"),
    ]
    options = AllocationOptions(max_questions=1, target_duration_minutes=10, balance_by_difficulty=False)
    selection = select_by_weight(pool, calculate_content_weights(pool), options)
    assert _ids(selection.questions) == ["from-long"]


def test_weighted_mode_never_exceeds_time_budget():
    rng = random.Random(7)
    for _ in range(50):
        pool = [
            make_question(
                content_id=rng.choice("abc"),
                difficulty_level=rng.randint(1, 5),
                estimated_time_seconds=rng.randint(10, 240),
                priority_score=rng.random(),
                content_duration_hours=1.0,
            )
            for _ in range(rng.randint(0, 25))
        ]
        options = AllocationOptions(
            max_questions=rng.randint(1, 15),
            target_duration_minutes=rng.randint(1, 20),
            balance_by_difficulty=False,
        )
        result = allocate_questions(pool, options, random.Random(1))
        total = sum(question.estimated_time_seconds for question in result.selected_questions)
        assert total <= options.target_duration_minutes * 60
        _assert_invariants(result, pool, options)


# endregion


# region Ordering
def test_prevent_clustering_swaps_in_next_different_content():
    pool = [make_question("a", question_id=f"a{i}") for i in range(3)] + [make_question("b", question_id="b0")]
    assert _ids(prevent_clustering(pool)) == ["a0", "a1", "b0", "a2"]


def test_prevent_clustering_leaves_unbreakable_runs():
    pool = [make_question("a", question_id=f"a{i}") for i in range(4)]
    assert _ids(prevent_clustering(pool)) == ["a0", "a1", "a2", "a3"]


def test_prevent_clustering_skips_short_selections():
    pool = [make_question("a", question_id=f"a{i}") for i in range(3)]
    assert _ids(prevent_clustering(pool)) == ["a0", "a1", "a2"]


def test_prevent_clustering_does_not_mutate_input():
    pool = [make_question("a", question_id=f"a{i}") for i in range(4)] + [
        make_question("b", question_id=f"b{i}") for i in range(2)
    ]
    original = list(pool)
    reordered = prevent_clustering(pool)
    assert pool == original
    assert _ids(reordered) == ["a0", "a1", "b0", "a3", "a2", "b1"]
    assert longest_same_content_run(reordered) == 2


def test_fisher_yates_is_seeded_permutation():
    pool = [make_question(question_id=f"q-{i}") for i in range(8)]
    first = fisher_yates_shuffle(pool, random.Random(42))
    second = fisher_yates_shuffle(pool, random.Random(42))
    assert first == second
    assert sorted(_ids(first)) == sorted(_ids(pool))


def test_longest_same_content_run():
    pool = [make_question(content_id) for content_id in "aabaaab"]
    assert longest_same_content_run(pool) == 3
    assert longest_same_content_run([]) == 0


# endregion


# region Pipeline
def test_end_to_end_two_content_session(two_content_pool):
    options = AllocationOptions(max_questions=6, target_duration_minutes=5)
    result = allocate_questions(two_content_pool, options, random.Random(3))

    assert len(result.selected_questions) == 6
    assert sum(q.estimated_time_seconds for q in result.selected_questions) == 180
    assert result.estimated_total_time_minutes == 3.0
    assert result.difficulty_distribution == {1: 1, 2: 1, 3: 2, 4: 1, 5: 1}
    assert result.allocation_strategy == STRATEGY_BALANCED
    assert result.outcome is AllocationOutcome.FILLED
    _assert_invariants(result, two_content_pool, options)


@pytest.mark.parametrize("seconds, minutes", [(9, 0.2), (21, 0.4), (3, 0.1), (30, 0.5)])
def test_time_estimate_rounds_decimal_halves_up(seconds, minutes):
    question = make_question(estimated_time_seconds=seconds)
    assert estimate_total_minutes([question]) == minutes

    options = AllocationOptions(max_questions=5, target_duration_minutes=10, balance_by_difficulty=False)
    result = allocate_questions([question], options, random.Random(0))
    assert result.estimated_total_time_minutes == minutes


def test_same_seed_reproduces_order(two_content_pool):
    options = AllocationOptions(max_questions=6, target_duration_minutes=5)
    first = allocate_questions(two_content_pool, options, random.Random(11))
    second = allocate_questions(two_content_pool, options, random.Random(11))
    assert first.question_ids == second.question_ids


def test_pre_shuffle_order_is_anti_clustered():
    pool = [make_question("a", priority_score=2, question_id=f"a{i}") for i in range(4)] + [
        make_question("b", priority_score=1, question_id=f"b{i}") for i in range(3)
    ]
    options = AllocationOptions(max_questions=7, target_duration_minutes=30, balance_by_difficulty=False)
    result = allocate_questions(pool, options, random.Random(0))
    assert _ids(result.pre_shuffle_order) == ["a0", "a1", "b0", "a3", "a2", "b1", "b2"]
    assert longest_same_content_run(result.pre_shuffle_order) <= 2


def test_clustering_can_be_disabled():
    pool = [make_question("a", priority_score=2, question_id=f"a{i}") for i in range(4)] + [
        make_question("b", priority_score=1, question_id=f"b{i}") for i in range(4)
    ]
    options = AllocationOptions(
        max_questions=8, target_duration_minutes=30, balance_by_difficulty=False, prevent_clustering=False
    )
    result = allocate_questions(pool, options, random.Random(0))
    assert _ids(result.pre_shuffle_order) == ["a0", "a1", "a2", "a3", "b0", "b1", "b2", "b3"]
    assert result.allocation_strategy == STRATEGY_PRIORITY


def test_empty_pool_is_not_an_error():
    options = AllocationOptions(max_questions=5, target_duration_minutes=10)
    result = allocate_questions([], options, random.Random(0))
    assert result.selected_questions == ()
    assert result.content_distribution == {}
    assert result.difficulty_distribution == {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}
    assert result.estimated_total_time_minutes == 0.0
    assert result.outcome is AllocationOutcome.EMPTY_CANDIDATE_POOL


@pytest.mark.parametrize("balance", [True, False])
def test_budget_exceeded_immediately(balance):
    pool = [make_question(difficulty_level=level, estimated_time_seconds=600) for level in (1, 2, 3, 4, 5)]
    options = AllocationOptions(max_questions=5, target_duration_minutes=1, balance_by_difficulty=balance)
    result = allocate_questions(pool, options, random.Random(0))
    assert result.selected_questions == ()
    assert result.outcome is AllocationOutcome.BUDGET_EXCEEDED_IMMEDIATELY


def test_small_pool_is_not_padded():
    pool = [make_question(difficulty_level=3) for _ in range(2)]
    options = AllocationOptions(max_questions=6, target_duration_minutes=30)
    result = allocate_questions(pool, options, random.Random(0))
    assert len(result.selected_questions) == 2
    assert result.outcome is AllocationOutcome.UNDER_FILLED


@pytest.mark.parametrize(
    "options",
    [
        AllocationOptions(max_questions=0, target_duration_minutes=5),
        AllocationOptions(max_questions=-2, target_duration_minutes=5),
        AllocationOptions(max_questions=5, target_duration_minutes=0),
        AllocationOptions(max_questions=5, target_duration_minutes=5, difficulty_preference=6),
    ],
)
def test_invalid_options_fail_before_selection(options):
    with pytest.raises(InvalidInput):
        allocate_questions([], options, random.Random(0))


@pytest.mark.parametrize(
    "question",
    [
        make_question(difficulty_level=0),
        make_question(difficulty_level=6),
        make_question(estimated_time_seconds=0),
        make_question(content_duration_hours=0),
    ],
)
def test_invalid_questions_are_rejected(question):
    options = AllocationOptions(max_questions=5, target_duration_minutes=5)
    with pytest.raises(InvalidInput):
        allocate_questions([question], options, random.Random(0))


def test_duplicate_question_ids_are_rejected():
    options = AllocationOptions(max_questions=5, target_duration_minutes=5)
    pool = [make_question(question_id="dup"), make_question(question_id="dup")]
    with pytest.raises(InvalidInput):
        allocate_questions(pool, options, random.Random(0))


# endregion
