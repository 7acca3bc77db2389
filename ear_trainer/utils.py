"""Parsing helpers shared by the CLI and the web interface.

Both front-ends receive exercise options as strings (command line arguments
or query parameters). The helpers below turn those strings into validated
Python values so the two entry points report the same errors for the same
bad input.

Usage Example
-------------
>>> from ear_trainer.utils import parse_note_range, parse_selection
>>> parse_note_range("C3-C4")
('C3', 'C4')
>>> parse_selection("1, 3 ,5")
['1', '3', '5']
"""

from __future__ import annotations

import re
from typing import Any, List, Optional, Tuple

from .note_utils import parse_note

__all__ = [
    "parse_note_range",
    "parse_selection",
    "parse_bool",
    "parse_optional_int",
    "validate_bpm",
]

# Range endpoints are separated by a comma, ``..`` or a hyphen that precedes
# the next note letter.
_RANGE_SPLIT = re.compile(r"\s*(?:,|\.\.|-(?=\s*[A-Ga-g]))\s*")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def parse_note_range(text: str) -> Tuple[str, str]:
    """Return ``(low, high)`` pitch tokens from ``text``.

    Accepts ``"C3,C4"``, ``"C3-C4"`` and ``"C3..C4"``. Each endpoint is
    validated with :func:`parse_note` and respelled with sharps so it can be
    located in :data:`ear_trainer.ALL_NOTES` (``"Bb3"`` becomes ``"A#3"``).

    Raises
    ------
    ValueError
        If ``text`` does not contain exactly two valid pitches.
    """

    parts = [part for part in _RANGE_SPLIT.split(text.strip()) if part]
    if len(parts) != 2:
        raise ValueError("Note range must contain two notes, e.g. 'C3,C4'.")
    low, high = ("%s%d" % parse_note(part) for part in parts)
    return low, high


def parse_selection(text: Optional[str]) -> List[str]:
    """Split a comma separated note or degree selection.

    Whitespace around entries is removed and empty entries are discarded so
    trailing commas do not create blank selections. ``None`` yields ``[]``.
    """

    if not text:
        return []
    return [part.strip() for part in text.split(",") if part.strip()]


def parse_bool(value: Any, default: bool = False) -> bool:
    """Interpret a form or query value as a boolean.

    Raises
    ------
    ValueError
        If ``value`` is a string that is not a recognised boolean word.
    """

    if value is None:
        return default
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value: {value}")


def parse_optional_int(value: Any) -> Optional[int]:
    """Return ``int(value)`` or ``None`` for missing and blank values."""

    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected an integer, got {value!r}") from exc


def validate_bpm(value: Any) -> int:
    """Return ``value`` as a positive integer tempo.

    Raises
    ------
    ValueError
        If ``value`` is not an integer greater than zero.
    """

    try:
        bpm = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError("BPM must be a positive integer.") from exc
    if bpm <= 0:
        raise ValueError("BPM must be a positive integer.")
    return bpm

