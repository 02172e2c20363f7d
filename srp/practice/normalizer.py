"""
Answer normalization and matching.

Free-text answers are canonicalized before comparison so that case,
spacing, compatibility characters and common unit spellings do not
decide correctness. Stored canonical answers go through the same
function, so it must stay stable: changing a rule changes which stored
answers match.

Pipeline (order matters):
1. lowercase
2. NFKC compatibility normalization, alternated with lowercasing until stable
3. collapse whitespace, trim
4. unit-notation rewrites, re-applied until nothing matches
5. stereodescriptor passthrough (cis/trans/(e)/(z))
"""

from __future__ import annotations

import re
import unicodedata

ANSWER_DELIMITER = "||"
DEFAULT_MAX_ANSWER_LEN = 120

_WHITESPACE = re.compile(r"\s+")

# Unit spellings students type -> the form stored in the answer key.
# Each rule removes a "/", an ASCII "u" or a "deg", so repeated passes terminate.
UNIT_REWRITES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bm/s\b"), "m s^-1"),
    (re.compile(r"\bg/ml\b"), "g ml^-1"),
    (re.compile(r"\bul\b"), "μl"),
    (re.compile(r"\bumol\b"), "μmol"),
    (re.compile(r"\bmol/l\b"), "m"),
    (re.compile(r"\bdeg\b"), "°"),
)

STEREO_REWRITES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\btrans\b"), "trans"),
    (re.compile(r"\bcis\b"), "cis"),
    (re.compile(r"\(\s*e\s*\)"), "(e)"),
    (re.compile(r"\(\s*z\s*\)"), "(z)"),
)


def collapse_spaces(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def rewrite_units(text: str) -> str:
    """Apply UNIT_REWRITES in order until a full pass changes nothing."""
    while True:
        before = text
        for pattern, replacement in UNIT_REWRITES:
            text = pattern.sub(replacement, text)
        if text == before:
            return text


def fold_case(text: str) -> str:
    """Lowercase and NFKC-normalize until neither step changes the text."""
    text = text.lower()
    while (folded := unicodedata.normalize("NFKC", text).lower()) != text:
        text = folded
    return text


def normalize(raw: str | None) -> str:
    """Canonicalize a free-text answer for comparison."""
    if raw is None:
        return ""
    text = fold_case(str(raw))
    text = collapse_spaces(text)
    text = rewrite_units(text)
    for pattern, replacement in STEREO_REWRITES:
        text = pattern.sub(replacement, text)
    return text


def truncate_answer(text: str, limit: int = DEFAULT_MAX_ANSWER_LEN) -> str:
    return text[:limit]


def acceptable_answers(cell: str | None) -> tuple[str, ...]:
    """
    Split a raw answer cell on '||' and normalize each segment.

    Order is kept (the first entry is the canonical answer shown as
    feedback); empty segments are dropped; duplicates are kept.
    """
    if not cell:
        return ()
    normalized = (normalize(segment) for segment in str(cell).split(ANSWER_DELIMITER))
    return tuple(answer for answer in normalized if answer)


def grade(raw: str | None, accepted: frozenset[str] | set[str],
          max_len: int = DEFAULT_MAX_ANSWER_LEN) -> tuple[str, bool]:
    """
    Normalize and truncate a raw answer, then look it up in an
    already-normalized accepted set.

    Returns:
        (normalized answer, whether it is accepted)
    """
    normalized = truncate_answer(normalize(raw), max_len)
    return normalized, normalized in accepted
