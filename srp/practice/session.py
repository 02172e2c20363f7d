"""
Session controller: runs a week's topics for one student.

Orchestration layer over the scheduler:
- validates the student number and week
- pops topics in configured order, skipping topics with no items
- drives each topic's mastery run to completion
- keeps the ordered trial log with contiguous trial indexes
- finalizes and hands the result document to a sink

One controller holds exactly one session. Nothing is shared between
controllers, so independent sessions can run side by side.
"""

from __future__ import annotations

import re
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from config import Settings, get_settings
from srp.practice.errors import EmptyPoolError, OutOfTurnError, ValidationError
from srp.practice.items import Item, ItemPool
from srp.practice.scheduler import (
    Answer,
    Effect,
    RunState,
    TopicRun,
    begin_topic,
    current_item,
    submit_answer,
)
from srp.practice.trials import Phase, TrialRecord, iso_timestamp, meta_record, utc_now
from srp.results.schemas import ALREADY_EXISTS, DeviceInfo, ResultDocument, SubmitOutcome
from srp.results.sink import ResultSink

STUDENT_ID_PATTERN = re.compile(r"^[0-9]{8}$")


@dataclass
class Session:
    """A single student's practice session for one week."""

    session_id: str
    student_id: str
    week: int
    topics_run: list[str]
    topic_queue: deque[str]
    started_at: str
    reattempt: bool = False
    device: DeviceInfo = field(default_factory=DeviceInfo)
    trials: list[TrialRecord] = field(default_factory=list)
    run: TopicRun | None = None
    skipped_topics: list[str] = field(default_factory=list)
    estimated_topics: set[str] = field(default_factory=set)
    completed_at: str | None = None
    confirmed: bool = False  # sink accepted (or already held) the document

    @property
    def finalized(self) -> bool:
        return self.completed_at is not None

    @property
    def next_trial_index(self) -> int:
        return len(self.trials)


@dataclass
class SessionSummary:
    """End-of-session statistics."""

    total_trials: int
    graded_trials: int
    correct: int
    per_topic: dict[str, dict[str, int]]
    skipped_topics: list[str]
    completed_at: str | None

    @property
    def accuracy(self) -> float:
        if self.graded_trials == 0:
            return 0.0
        return self.correct / self.graded_trials


class SessionController:
    """Drives one practice session from start to result submission."""

    def __init__(
        self,
        pool: ItemPool,
        settings: Settings | None = None,
        *,
        seed: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.pool = pool
        self.settings = settings or get_settings()
        self.seed = seed
        self.clock = clock
        self._session: Session | None = None

    @property
    def session(self) -> Session:
        if self._session is None:
            raise OutOfTurnError("No session in progress")
        return self._session

    @property
    def active(self) -> bool:
        return self._session is not None

    # ========================================
    # Lifecycle
    # ========================================

    def start(
        self,
        student_id: str,
        week: int,
        *,
        reattempt: bool = False,
        device: DeviceInfo | None = None,
    ) -> Session:
        """
        Validate input and open a session. No topic is begun yet.

        Raises:
            ValidationError: Bad student number or unconfigured week
        """
        student_id = (student_id or "").strip()
        if not STUDENT_ID_PATTERN.match(student_id):
            raise ValidationError("Enter an 8-digit student number.")
        try:
            week = int(week)
        except (TypeError, ValueError) as e:
            raise ValidationError("Select a valid week.") from e
        topics = self.settings.topics_for_week(week)
        if not topics:
            raise ValidationError("Select a valid week.")

        self._session = Session(
            session_id=str(uuid.uuid4()),
            student_id=student_id,
            week=week,
            topics_run=topics,
            topic_queue=deque(topics),
            started_at=iso_timestamp(self.clock()),
            reattempt=reattempt,
            device=device or DeviceInfo(),
        )
        logger.info("Session {} started: student {} week {} topics {}",
                    self._session.session_id, student_id, week, topics)
        return self._session

    def advance(self) -> TopicRun | SessionSummary:
        """
        Begin the next topic, or finalize when the queue is empty.

        Topics with no items for the week are logged and skipped.

        Raises:
            OutOfTurnError: If the current topic is not finished
        """
        session = self.session
        if session.finalized:
            return self.summary()
        if session.run is not None and not session.run.complete:
            raise OutOfTurnError(f"Topic '{session.run.topic}' is still in progress")

        session.run = None
        while session.topic_queue:
            topic = session.topic_queue.popleft()
            goal = self.settings.mastery_goal(topic, session.week)
            try:
                run = begin_topic(
                    self.pool.items_for(topic, session.week),
                    goal,
                    topic=topic,
                    week=session.week,
                    seed=self.seed,
                )
            except EmptyPoolError as e:
                logger.warning("{}; skipping topic", e)
                session.skipped_topics.append(topic)
                continue
            session.run = run
            logger.info("Topic {} begun: {} items, mastery goal {}", topic, len(run.items), goal)
            return run

        session.completed_at = iso_timestamp(self.clock())
        logger.info("Session {} complete: {} trials", session.session_id, len(session.trials))
        return self.summary()

    def reset(self) -> None:
        """Abandon the session immediately. Nothing is kept or persisted."""
        if self._session is not None:
            logger.info("Session {} reset; {} trials discarded",
                        self._session.session_id, len(self._session.trials))
        self._session = None

    # ========================================
    # Trials
    # ========================================

    def current_item(self) -> Item | None:
        run = self.session.run
        return current_item(run) if run is not None else None

    def record_estimate(self, predicted: int, reaction_time_ms: int = 0) -> TrialRecord:
        """
        Log the student's predicted correct-count before a topic's first item.

        Raises:
            OutOfTurnError: If the topic has started or already has an estimate
            ValidationError: If the prediction is outside 0..item count
        """
        session = self.session
        run = session.run
        if run is None or run.state is not RunState.FIRST_PASS or run.cursor != 0:
            raise OutOfTurnError("Estimates are recorded before a topic's first item")
        if run.topic in session.estimated_topics:
            raise OutOfTurnError(f"Topic '{run.topic}' already has an estimate")
        if not 0 <= predicted <= len(run.items):
            raise ValidationError(f"Estimate must be between 0 and {len(run.items)}")

        record = meta_record(
            session.next_trial_index,
            run.topic,
            session.week,
            predicted,
            reaction_time_ms=reaction_time_ms,
            recorded_at=self.clock(),
        )
        session.trials.append(record)
        session.estimated_topics.add(run.topic)
        return record

    def submit(self, raw: str, reaction_time_ms: int = 0, item_id: str | None = None) -> Effect:
        """
        Grade an answer to the presented item and append its trial record.

        Raises:
            OutOfTurnError: No topic running, or item_id is not the presented item
        """
        session = self.session
        run = session.run
        if run is None:
            raise OutOfTurnError("No topic in progress")

        answer = Answer(
            item_id=item_id or run.presented_id or "",
            raw=raw,
            reaction_time_ms=reaction_time_ms,
        )
        transition = submit_answer(
            run,
            answer,
            trial_index=session.next_trial_index,
            max_answer_len=self.settings.max_answer_len,
            submitted_at=self.clock(),
        )
        session.trials.append(transition.record)
        session.run = transition.run

        effect = transition.effect
        if effect.new_sweep:
            logger.debug("Topic {} mastery sweep {}: {} items pending",
                         run.topic, transition.run.attempt_number, len(transition.run.pending))
        if effect.advance_to is RunState.TOPIC_COMPLETE:
            logger.info("Topic {} mastered after {} attempts", run.topic, transition.run.attempt_number)
        return effect

    # ========================================
    # Results
    # ========================================

    def topic_intro(self, topic: str) -> str:
        goal = self.settings.mastery_goal(topic, self.session.week)
        label = self.settings.topic_label(topic)
        if goal > 1:
            return (
                f"You will practice {label}. Each item must be answered correctly "
                f"{goal} times in total to achieve mastery."
            )
        return "You will practice this topic until you master all items at least once."

    def summary(self) -> SessionSummary:
        session = self.session
        per_topic: dict[str, dict[str, int]] = {}
        graded = correct = 0
        for trial in session.trials:
            if trial.phase is Phase.META:
                continue
            stats = per_topic.setdefault(trial.topic, {"trials": 0, "correct": 0})
            stats["trials"] += 1
            graded += 1
            if trial.correct:
                stats["correct"] += 1
                correct += 1
        return SessionSummary(
            total_trials=len(session.trials),
            graded_trials=graded,
            correct=correct,
            per_topic=per_topic,
            skipped_topics=list(session.skipped_topics),
            completed_at=session.completed_at,
        )

    def build_document(self) -> ResultDocument:
        """
        Result document for the finished session.

        Raises:
            OutOfTurnError: If the session has not been finalized
        """
        session = self.session
        if not session.finalized:
            raise OutOfTurnError("Session is not finished")
        return ResultDocument(
            session_id=session.session_id,
            student_number=session.student_id,
            week=session.week,
            topics_run=list(session.topics_run),
            skipped_topics=list(session.skipped_topics),
            started_at=session.started_at,
            completed_at=session.completed_at,
            device=session.device,
            trials=[trial.to_dict() for trial in session.trials],
            reattempt=session.reattempt,
        )

    async def submit_results(self, sink: ResultSink) -> SubmitOutcome:
        """
        Hand the finished session to a sink.

        The session stays in memory whatever happens, so this can be called
        again after a SubmissionError.
        """
        outcome = await sink.submit(self.build_document())
        if outcome.accepted or outcome.reason == ALREADY_EXISTS:
            self.session.confirmed = True
        return outcome
