"""
Error taxonomy for practice sessions.

Every error raised by the practice core derives from PracticeError so
front ends can catch the whole family in one place.
"""


class PracticeError(Exception):
    """Base class for practice session errors."""


class ValidationError(PracticeError):
    """Bad operator input (student number, week, estimate). Session does not start."""


class LoadError(PracticeError):
    """Item source unavailable or malformed. No partial pool is created."""


class EmptyPoolError(PracticeError):
    """A configured topic has no items for the requested week."""

    def __init__(self, topic: str, week: int | None = None):
        self.topic = topic
        self.week = week
        where = f" in week {week}" if week is not None else ""
        super().__init__(f"No items for topic '{topic}'{where}")


class SubmissionError(PracticeError):
    """The result sink was unreachable or refused the document."""


class OutOfTurnError(PracticeError):
    """An answer or transition arrived for something that is not currently presented."""
