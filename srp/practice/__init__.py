"""
Practice core: answer normalization, item pool, mastery scheduler.

The session controller lives in ``srp.practice.session`` and is imported
from there directly; it depends on the result sinks.
"""

from srp.practice.errors import (
    EmptyPoolError,
    LoadError,
    OutOfTurnError,
    PracticeError,
    SubmissionError,
    ValidationError,
)
from srp.practice.items import Item, ItemPool, QuestionType, load_pool
from srp.practice.normalizer import acceptable_answers, normalize
from srp.practice.scheduler import (
    Answer,
    Effect,
    RunState,
    TopicRun,
    begin_topic,
    current_item,
    submit_answer,
)
from srp.practice.trials import Phase, TrialRecord

__all__ = [
    "Answer",
    "Effect",
    "EmptyPoolError",
    "Item",
    "ItemPool",
    "LoadError",
    "OutOfTurnError",
    "Phase",
    "PracticeError",
    "QuestionType",
    "RunState",
    "SubmissionError",
    "TopicRun",
    "TrialRecord",
    "ValidationError",
    "acceptable_answers",
    "begin_topic",
    "current_item",
    "load_pool",
    "normalize",
    "submit_answer",
]
