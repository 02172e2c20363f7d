"""
Mastery scheduler: first pass, then mastery sweeps until every item is retired.

A topic run moves through:

    FIRST_PASS -> MASTERY_SWEEP(2) -> MASTERY_SWEEP(3) -> ... -> TOPIC_COMPLETE

The first pass presents every item once in shuffled order. Items whose
cumulative correct count is still below the mastery goal form the mastery
pool; each sweep presents every pooled item exactly once, in a fresh
shuffle. An item leaves the pool as soon as its count reaches the goal.
There is no retry cap: the run ends only when every item is retired.

Everything here is a pure function over an immutable TopicRun value:

    submit_answer(run, answer) -> Transition(run, record, effect)

Shuffles are derived from (seed, topic, attempt) so a fixed seed always
gives the same presentation order.
"""

from __future__ import annotations

import random
import secrets
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import NamedTuple

from srp.practice.errors import EmptyPoolError, OutOfTurnError
from srp.practice.items import Item
from srp.practice.normalizer import DEFAULT_MAX_ANSWER_LEN, grade
from srp.practice.trials import Phase, TrialRecord, iso_timestamp

DEFAULT_MASTERY_GOAL = 1


class RunState(str, Enum):
    """Scheduler state for a topic run."""

    FIRST_PASS = "first_pass"
    MASTERY_SWEEP = "mastery_sweep"
    TOPIC_COMPLETE = "topic_complete"


@dataclass(frozen=True)
class Answer:
    """An operator's answer to the presented item."""

    item_id: str
    raw: str
    reaction_time_ms: int = 0


@dataclass(frozen=True)
class Effect:
    """What the presentation layer should do after a submission."""

    correct: bool
    canonical_answer: str
    advance_to: RunState
    retired: bool = False
    new_sweep: bool = False


@dataclass(frozen=True)
class TopicRun:
    """
    State of one topic within a session.

    ``items`` is an arena keyed by item id; ``pending`` is the mastery pool
    (ids still short of the goal); ``sequence`` is the order of the current
    pass, with ``cursor`` pointing at the presented item.
    """

    topic: str
    week: int
    mastery_goal: int
    items: Mapping[str, Item]
    first_pass_order: tuple[str, ...]
    correct_counts: Mapping[str, int]
    pending: frozenset[str]
    sequence: tuple[str, ...]
    cursor: int
    attempt_number: int
    state: RunState
    seed: int

    @property
    def complete(self) -> bool:
        return self.state is RunState.TOPIC_COMPLETE

    @property
    def mastery_pool(self) -> frozenset[str]:
        return self.pending

    @property
    def presented_id(self) -> str | None:
        if self.complete:
            return None
        return self.sequence[self.cursor]


class Transition(NamedTuple):
    run: TopicRun
    record: TrialRecord
    effect: Effect


def shuffled(ids: Sequence[str], seed: int, topic: str, attempt: int) -> tuple[str, ...]:
    """Fisher-Yates shuffle seeded from (seed, topic, attempt)."""
    order = list(ids)
    random.Random(f"{seed}:{topic}:{attempt}").shuffle(order)
    return tuple(order)


def begin_topic(
    items: Sequence[Item],
    mastery_goal: int = DEFAULT_MASTERY_GOAL,
    *,
    topic: str | None = None,
    week: int | None = None,
    seed: int | None = None,
) -> TopicRun:
    """
    Start a topic run in FIRST_PASS.

    Raises:
        EmptyPoolError: If there are no items
        ValueError: If the goal is below 1 or item ids repeat
    """
    if not items:
        raise EmptyPoolError(topic or "?", week)
    if mastery_goal < 1:
        raise ValueError(f"mastery_goal must be >= 1, got {mastery_goal}")

    arena = {item.id: item for item in items}
    if len(arena) != len(items):
        raise ValueError("Item ids must be unique within a topic")

    topic = topic if topic is not None else items[0].topic
    week = week if week is not None else items[0].week
    seed = seed if seed is not None else secrets.randbits(64)

    order = shuffled([item.id for item in items], seed, topic, 1)
    return TopicRun(
        topic=topic,
        week=week,
        mastery_goal=mastery_goal,
        items=MappingProxyType(arena),
        first_pass_order=order,
        correct_counts=MappingProxyType({item_id: 0 for item_id in order}),
        pending=frozenset(order),
        sequence=order,
        cursor=0,
        attempt_number=1,
        state=RunState.FIRST_PASS,
        seed=seed,
    )


def current_item(run: TopicRun) -> Item | None:
    """The item awaiting an answer, or None once the topic is complete."""
    item_id = run.presented_id
    return run.items[item_id] if item_id is not None else None


def _start_sweep(run: TopicRun) -> TopicRun:
    if not run.pending:
        return replace(run, state=RunState.TOPIC_COMPLETE, sequence=(), cursor=0)
    attempt = run.attempt_number + 1
    remaining = [item_id for item_id in run.first_pass_order if item_id in run.pending]
    return replace(
        run,
        state=RunState.MASTERY_SWEEP,
        sequence=shuffled(remaining, run.seed, run.topic, attempt),
        cursor=0,
        attempt_number=attempt,
    )


def _advance(run: TopicRun) -> TopicRun:
    cursor = run.cursor
    if run.state is RunState.MASTERY_SWEEP:
        # retired items never come back, even later in the same sweep
        while cursor < len(run.sequence) and run.sequence[cursor] not in run.pending:
            cursor += 1
    if cursor < len(run.sequence):
        return replace(run, cursor=cursor)
    return _start_sweep(replace(run, cursor=cursor))


def submit_answer(
    run: TopicRun,
    answer: Answer,
    *,
    trial_index: int,
    max_answer_len: int = DEFAULT_MAX_ANSWER_LEN,
    submitted_at: datetime | None = None,
) -> Transition:
    """
    Grade an answer to the presented item and move the run forward.

    Raises:
        OutOfTurnError: If the run is complete or the answer is for another item
    """
    if run.complete:
        raise OutOfTurnError(f"Topic '{run.topic}' is already complete")
    item_id = run.sequence[run.cursor]
    if answer.item_id != item_id:
        raise OutOfTurnError(f"Answer for '{answer.item_id}' but '{item_id}' is presented")

    item = run.items[item_id]
    raw = "" if answer.raw is None else str(answer.raw)
    normalized, correct = grade(raw, item.accepted, max_answer_len)

    record = TrialRecord(
        trial_index=trial_index,
        item_id=item_id,
        topic=run.topic,
        week=run.week,
        phase=Phase.FIRST_PASS if run.state is RunState.FIRST_PASS else Phase.MASTERY,
        attempt_number=run.attempt_number,
        question_type=item.question_type.value,
        reaction_time_ms=max(0, int(answer.reaction_time_ms)),
        raw_answer=raw,
        normalized_answer=normalized,
        correct=correct,
        timestamp=iso_timestamp(submitted_at),
    )

    counts = dict(run.correct_counts)
    pending = run.pending
    retired = False
    if correct:
        counts[item_id] += 1
        if counts[item_id] >= run.mastery_goal:
            pending = pending - {item_id}
            retired = True

    next_run = _advance(
        replace(
            run,
            correct_counts=MappingProxyType(counts),
            pending=pending,
            cursor=run.cursor + 1,
        )
    )
    effect = Effect(
        correct=correct,
        canonical_answer=item.canonical_answer,
        advance_to=next_run.state,
        retired=retired,
        new_sweep=next_run.state is RunState.MASTERY_SWEEP
        and next_run.attempt_number != run.attempt_number,
    )
    return Transition(next_run, record, effect)


def run_progress(run: TopicRun) -> dict[str, int]:
    """Counts for progress display."""
    total = len(run.items)
    return {
        "total": total,
        "retired": total - len(run.pending),
        "pending": len(run.pending),
        "attempt": run.attempt_number,
        "remaining_in_pass": max(0, len(run.sequence) - run.cursor),
    }
