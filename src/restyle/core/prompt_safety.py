"""Prompt sanitization for clothing edit requests.

User prompts are untrusted free text.  Before a prompt reaches the image
model, every term from a fixed unsafe vocabulary is stripped out and a
safety qualifier is appended so the model always receives an explicit
coverage constraint.

Vocabulary
----------
The vocabulary is a plain word list (``UNSAFE_TERMS``).  Matching is
case-insensitive and word-bounded, so ``"sheer"`` matches ``"Sheer"`` but
not ``"sheerness"``.  A hyphen inside a term stands for an optional hyphen
or whitespace separator: ``"see-through"`` also matches ``"see through"``
and ``"seethrough"``.

Usage
-----
::

    result = sanitize("a sexy see-through red dress")
    result.removed_terms   # ("sexy", "see-through")
    result.cleaned_prompt  # "a red dress (appropriate, opaque fabric ...)"
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

UNSAFE_TERMS: tuple[str, ...] = (
    "sex",
    "sexy",
    "sexiest",
    "see-through",
    "transparent",
    "sheer",
    "lingerie",
    "nude",
    "naked",
    "explicit",
    "revealing",
    "provocative",
)

SAFETY_QUALIFIER = (
    "(appropriate, opaque fabric with full coverage, no nudity or explicit content)"
)


def _term_pattern(term: str) -> str:
    # "see-through" -> see[-\s]?through
    return r"[-\s]?".join(re.escape(part) for part in term.split("-"))


def _compile_vocabulary(terms: tuple[str, ...]) -> re.Pattern[str]:
    # Longest first so "sexiest" wins over "sex" at the same position.
    ordered = sorted(terms, key=len, reverse=True)
    alternatives = "|".join(_term_pattern(term) for term in ordered)
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


_UNSAFE_PATTERN = _compile_vocabulary(UNSAFE_TERMS)


@dataclass(frozen=True)
class SanitizationResult:
    """Outcome of sanitizing one prompt.

    Attributes:
        cleaned_prompt: Prompt with unsafe terms removed, whitespace
            collapsed and the safety qualifier appended.  Never empty.
        removed_terms: Matched substrings in order of appearance, with
            duplicates and original casing kept.
        was_sanitized: ``True`` when at least one term was removed.
    """

    cleaned_prompt: str
    removed_terms: tuple[str, ...] = ()
    was_sanitized: bool = False


def find_unsafe_terms(text: str | None) -> list[str]:
    """Return every unsafe-term match in *text*, in order of appearance."""
    return [match.group(0) for match in _UNSAFE_PATTERN.finditer(text or "")]


def sanitize(raw_prompt: str | None) -> SanitizationResult:
    """Strip unsafe vocabulary from a prompt and append the safety qualifier.

    Removal repeats until no match is left, because deleting one term can
    bring its neighbours together into a new match (``"see sheer through"``
    becomes ``"see through"``).  Matches from later passes are appended to
    ``removed_terms`` after those of earlier passes.

    Args:
        raw_prompt: User-supplied editing instruction.  ``None`` and empty
            strings are accepted.

    Returns:
        The :class:`SanitizationResult` for *raw_prompt*.
    """
    text = raw_prompt or ""
    removed: list[str] = []

    found = find_unsafe_terms(text)
    while found:
        removed.extend(found)
        text = " ".join(_UNSAFE_PATTERN.sub("", text).split())
        found = find_unsafe_terms(text)

    collapsed = " ".join(text.split())
    cleaned = f"{collapsed} {SAFETY_QUALIFIER}".strip()

    if removed:
        logger.info(f"Prompt sanitized, removed terms: {', '.join(removed)}")

    return SanitizationResult(
        cleaned_prompt=cleaned,
        removed_terms=tuple(removed),
        was_sanitized=bool(removed),
    )
