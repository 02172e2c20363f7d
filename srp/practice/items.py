"""
Item pool: practice items grouped by (topic, week).

Items come from a CSV source with one row per item:

    id,topic,week,image,answers,q_type,unfilled_template

Multiple acceptable answers are separated by "||". Answers are normalized
once at load time so grading is a set lookup.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import httpx
from loguru import logger

from srp.practice.errors import LoadError
from srp.practice.normalizer import acceptable_answers

REQUIRED_COLUMNS = ("id", "topic", "week", "answers")
PROMPT_COLUMNS = ("image_or_prompt", "image", "prompt")
TEMPLATE_COLUMNS = ("unfilled_template", "template")
NO_KEY = "(no key)"


class QuestionType(str, Enum):
    """How an item is presented."""

    STANDARD = "standard"
    FILL_BLANK = "fill-blank"


_QUESTION_TYPE_ALIASES = {
    "": QuestionType.STANDARD,
    "standard": QuestionType.STANDARD,
    "fill-blank": QuestionType.FILL_BLANK,
    "fill_blank": QuestionType.FILL_BLANK,
    "fillblank": QuestionType.FILL_BLANK,
    "blank": QuestionType.FILL_BLANK,
}


@dataclass(frozen=True)
class Item:
    """A single practice item. Immutable after load."""

    id: str
    topic: str
    week: int
    prompt: str
    acceptable_answers: tuple[str, ...]
    question_type: QuestionType = QuestionType.STANDARD
    template: str = ""
    accepted: frozenset[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "accepted", frozenset(self.acceptable_answers))

    @property
    def canonical_answer(self) -> str:
        """Preferred answer shown as feedback."""
        return self.acceptable_answers[0] if self.acceptable_answers else NO_KEY


class ItemPool:
    """Items keyed by (topic, week), in source order."""

    def __init__(self, groups: Mapping[tuple[str, int], list[Item]] | None = None):
        self._groups: dict[tuple[str, int], tuple[Item, ...]] = {
            key: tuple(items) for key, items in (groups or {}).items()
        }

    def items_for(self, topic: str, week: int) -> tuple[Item, ...]:
        return self._groups.get((topic, week), ())

    def topics(self) -> list[str]:
        return sorted({topic for topic, _ in self._groups})

    def counts(self) -> dict[tuple[str, int], int]:
        return {key: len(items) for key, items in sorted(self._groups.items())}

    def __len__(self) -> int:
        return sum(len(items) for items in self._groups.values())

    def __contains__(self, key: object) -> bool:
        return key in self._groups


def _first_value(row: Mapping[str, str | None], columns: Iterable[str]) -> str:
    for column in columns:
        value = row.get(column)
        if value:
            return str(value).strip()
    return ""


def parse_question_type(value: str | None) -> QuestionType:
    key = (value or "").strip().lower()
    question_type = _QUESTION_TYPE_ALIASES.get(key)
    if question_type is None:
        logger.warning("Unknown q_type '{}', treating as standard", value)
        return QuestionType.STANDARD
    return question_type


def _parse_week(value: str | None) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def load_pool(rows: Iterable[Mapping[str, str | None]]) -> ItemPool:
    """
    Build an ItemPool from raw source rows.

    Rows without a topic or an integer week are skipped, as are rows whose
    answer cell has no usable answer. Structural problems (missing columns,
    duplicate ids, nothing loadable) raise LoadError and return nothing.

    Raises:
        LoadError: If the rows do not describe a usable pool
    """
    rows = list(rows)
    if not rows:
        raise LoadError("Item source contains no rows")

    columns = {key.strip() for key in rows[0].keys() if key}
    missing = [column for column in REQUIRED_COLUMNS if column not in columns]
    if missing:
        raise LoadError(f"Item source is missing columns: {', '.join(missing)}")

    groups: dict[tuple[str, int], list[Item]] = {}
    seen: set[tuple[str, int, str]] = set()

    for line, row in enumerate(rows, start=2):
        row = {(key or "").strip(): value for key, value in row.items()}
        item_id = (row.get("id") or "").strip()
        topic = (row.get("topic") or "").strip().lower()
        week = _parse_week(row.get("week"))

        if not item_id or not topic or week is None:
            logger.warning("Skipping row {}: no id/topic/week grouping", line)
            continue

        answers = acceptable_answers(row.get("answers"))
        if not answers:
            logger.warning("Skipping item {} (row {}): no acceptable answers", item_id, line)
            continue

        key = (topic, week, item_id)
        if key in seen:
            raise LoadError(f"Duplicate item id '{item_id}' for {topic} week {week}")
        seen.add(key)

        groups.setdefault((topic, week), []).append(
            Item(
                id=item_id,
                topic=topic,
                week=week,
                prompt=_first_value(row, PROMPT_COLUMNS),
                acceptable_answers=answers,
                question_type=parse_question_type(row.get("q_type")),
                template=_first_value(row, TEMPLATE_COLUMNS),
            )
        )

    if not groups:
        raise LoadError("Item source has no usable items")

    pool = ItemPool(groups)
    logger.info("Loaded {} items across {} topic/week groups", len(pool), len(groups))
    return pool


def read_item_rows(text: str) -> list[dict[str, str]]:
    """Parse CSV text (header row + quoted fields) into row dicts."""
    try:
        reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
        return [
            row for row in reader
            if any((value or "").strip() for value in row.values() if isinstance(value, str))
        ]
    except csv.Error as e:
        raise LoadError(f"Item source is not valid CSV: {e}") from e


async def fetch_item_rows(source: str | Path, timeout: float = 30.0) -> list[dict[str, str]]:
    """
    Read item rows from a local file or an http(s) URL.

    Raises:
        LoadError: On transport, file or parse failure
    """
    source = str(source)
    if source.startswith(("http://", "https://")):
        try:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                response = await client.get(source, headers={"Cache-Control": "no-store"})
                response.raise_for_status()
                text = response.text
        except httpx.HTTPError as e:
            raise LoadError(f"Failed to fetch items from {source}: {e}") from e
    else:
        try:
            text = Path(source).read_text(encoding="utf-8")
        except OSError as e:
            raise LoadError(f"Failed to read items from {source}: {e}") from e

    return read_item_rows(text)


async def load_pool_from_source(source: str | Path, timeout: float = 30.0) -> ItemPool:
    """Fetch and load in one step."""
    return load_pool(await fetch_item_rows(source, timeout=timeout))
