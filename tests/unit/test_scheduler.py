"""
Unit tests for the mastery scheduler.

Tests:
1. First pass presents every item exactly once
2. Missed items loop through mastery sweeps until answered correctly
3. Cumulative goals above 1 (first-pass correct answers count)
4. Seeded, reproducible presentation order
5. Out-of-turn answers are rejected without changing state
"""

import pytest

from srp.practice.errors import EmptyPoolError, OutOfTurnError
from srp.practice.items import Item
from srp.practice.scheduler import (
    Answer,
    RunState,
    begin_topic,
    current_item,
    run_progress,
    shuffled,
    submit_answer,
)
from srp.practice.trials import Phase


def make_items(n: int, topic: str = "organic", week: int = 6) -> list[Item]:
    return [
        Item(
            id=f"item{i}",
            topic=topic,
            week=week,
            prompt=f"prompt {i}",
            acceptable_answers=(f"answer {i}",),
        )
        for i in range(1, n + 1)
    ]


def answer(run, correct: bool, trial_index: int = 0):
    """Answer whatever is presented, correctly or not."""
    item = current_item(run)
    raw = item.acceptable_answers[0].upper() if correct else "wrong"
    return submit_answer(run, Answer(item.id, raw, 1500), trial_index=trial_index)


def play(run, outcomes):
    """Feed a sequence of correct/incorrect answers; return final run and records."""
    records, effects = [], []
    for index, correct in enumerate(outcomes):
        run, record, effect = answer(run, correct, trial_index=index)
        records.append(record)
        effects.append(effect)
    return run, records, effects


class TestBeginTopic:
    def test_starts_in_first_pass(self):
        run = begin_topic(make_items(3), seed=7)

        assert run.state is RunState.FIRST_PASS
        assert run.attempt_number == 1
        assert sorted(run.sequence) == ["item1", "item2", "item3"]
        assert run.pending == frozenset({"item1", "item2", "item3"})
        assert all(count == 0 for count in run.correct_counts.values())

    def test_empty_items_raise(self):
        with pytest.raises(EmptyPoolError, match="organic"):
            begin_topic([], topic="organic", week=6)

    def test_goal_must_be_positive(self):
        with pytest.raises(ValueError):
            begin_topic(make_items(1), mastery_goal=0)

    def test_duplicate_ids_rejected(self):
        items = make_items(2)
        with pytest.raises(ValueError):
            begin_topic([items[0], items[0]])

    def test_topic_and_week_default_from_items(self):
        run = begin_topic(make_items(2, topic="units", week=9), seed=1)
        assert (run.topic, run.week) == ("units", 9)


class TestMasteryLoop:
    """First pass then sweeps until every item is retired."""

    def test_missed_item_comes_back(self):
        """3 items, goal 1: [correct, incorrect, correct] then one correct."""
        run = begin_topic(make_items(3), seed=42)
        missed = run.sequence[1]

        run, records, effects = play(run, [True, False, True])

        assert run.state is RunState.MASTERY_SWEEP
        assert run.mastery_pool == frozenset({missed})
        assert run.attempt_number == 2
        assert effects[-1].new_sweep
        assert current_item(run).id == missed

        run, record, effect = answer(run, True, trial_index=3)

        assert run.complete
        assert effect.retired
        assert effect.advance_to is RunState.TOPIC_COMPLETE
        assert current_item(run) is None
        assert len(records) + 1 == 4
        assert record.phase is Phase.MASTERY
        assert record.attempt_number == 2

    def test_cumulative_goal_counts_first_pass(self):
        """1 item, goal 4: [correct, incorrect, correct, correct, correct]."""
        run = begin_topic(make_items(1), mastery_goal=4, seed=3)

        run, records, effects = play(run, [True, False, True, True, True])

        assert run.complete
        assert len(records) == 5
        assert [e.retired for e in effects] == [False, False, False, False, True]
        assert run.correct_counts["item1"] == 4
        assert [r.attempt_number for r in records] == [1, 2, 3, 4, 5]
        assert records[0].phase is Phase.FIRST_PASS
        assert {r.phase for r in records[1:]} == {Phase.MASTERY}

    def test_all_correct_first_pass_completes(self):
        run = begin_topic(make_items(4), seed=9)

        run, records, effects = play(run, [True] * 4)

        assert run.complete
        assert run.attempt_number == 1
        assert not any(e.new_sweep for e in effects)
        assert len(records) == 4

    def test_first_pass_presents_each_item_once(self):
        run = begin_topic(make_items(5), seed=11)

        _, records, _ = play(run, [False] * 5)

        assert sorted(r.item_id for r in records) == [f"item{i}" for i in range(1, 6)]
        assert {r.phase for r in records} == {Phase.FIRST_PASS}

    def test_each_sweep_presents_pending_items_once(self):
        """Goal 3 keeps items pending after a correct answer; no repeats within a sweep."""
        run = begin_topic(make_items(3), mastery_goal=3, seed=5)
        run, _, _ = play(run, [True, True, True])

        assert run.attempt_number == 2
        seen = []
        for _ in range(3):
            seen.append(current_item(run).id)
            run, _, _ = answer(run, True)

        assert sorted(seen) == ["item1", "item2", "item3"]
        assert run.attempt_number == 3

    def test_retired_items_never_return(self):
        run = begin_topic(make_items(4), seed=8)
        run, records, _ = play(run, [True, False, False, True])
        retired = {records[0].item_id, records[3].item_id}

        presented = []
        while not run.complete:
            presented.append(current_item(run).id)
            run, _, _ = answer(run, len(presented) > 3)

        assert not retired & set(presented)

    def test_incorrect_never_retires(self):
        run = begin_topic(make_items(2), seed=2)
        run, _, effects = play(run, [False] * 10)

        assert not run.complete
        assert not any(e.retired for e in effects)
        assert run.pending == frozenset({"item1", "item2"})
        assert run.attempt_number == 6

    def test_feedback_shows_canonical_answer(self):
        run = begin_topic(make_items(1), seed=1)
        _, _, effect = answer(run, False)
        assert not effect.correct
        assert effect.canonical_answer == "answer 1"


class TestTrialRecords:
    def test_record_fields(self):
        run = begin_topic(make_items(1), seed=1)

        _, record, _ = submit_answer(run, Answer("item1", "  Answer   1 ", 2300), trial_index=7)

        assert record.trial_index == 7
        assert record.item_id == "item1"
        assert record.raw_answer == "  Answer   1 "
        assert record.normalized_answer == "answer 1"
        assert record.correct is True
        assert record.reaction_time_ms == 2300
        assert record.question_type == "standard"
        assert record.timestamp.endswith("Z")

    def test_normalized_answer_is_truncated(self):
        run = begin_topic(make_items(1), seed=1)

        _, record, _ = submit_answer(run, Answer("item1", "x" * 300), trial_index=0, max_answer_len=50)

        assert record.normalized_answer == "x" * 50
        assert record.raw_answer == "x" * 300


class TestOutOfTurn:
    def test_wrong_item_rejected(self):
        run = begin_topic(make_items(2), seed=4)
        other = next(i for i in ("item1", "item2") if i != run.presented_id)

        with pytest.raises(OutOfTurnError):
            submit_answer(run, Answer(other, "answer"), trial_index=0)

        assert run.cursor == 0

    def test_complete_run_rejects_answers(self):
        run = begin_topic(make_items(1), seed=4)
        run, _, _ = answer(run, True)

        with pytest.raises(OutOfTurnError):
            submit_answer(run, Answer("item1", "answer 1"), trial_index=1)


class TestSeeding:
    def test_same_seed_same_order(self):
        items = make_items(10)
        assert begin_topic(items, seed=123).sequence == begin_topic(items, seed=123).sequence

    def test_order_is_a_permutation(self):
        order = shuffled([f"item{i}" for i in range(20)], 99, "organic", 1)
        assert sorted(order) == sorted(f"item{i}" for i in range(20))

    def test_sweeps_reshuffle(self):
        ids = [f"item{i}" for i in range(20)]
        orders = {shuffled(ids, 99, "organic", attempt) for attempt in range(1, 6)}
        assert len(orders) > 1

    def test_topic_changes_order(self):
        ids = [f"item{i}" for i in range(20)]
        assert shuffled(ids, 1, "organic", 1) != shuffled(ids, 1, "units", 1)

    def test_seeded_runs_replay_identically(self):
        items = make_items(6)
        outcomes = [False, True, False, True, True, False, True, True, True]

        _, first, _ = play(begin_topic(items, seed=77), outcomes)
        _, second, _ = play(begin_topic(items, seed=77), outcomes)

        assert [r.item_id for r in first] == [r.item_id for r in second]


class TestProgress:
    def test_run_progress(self):
        run = begin_topic(make_items(3), seed=1)
        run, _, _ = play(run, [True, False])

        progress = run_progress(run)

        assert progress == {
            "total": 3,
            "retired": 1,
            "pending": 2,
            "attempt": 1,
            "remaining_in_pass": 1,
        }
