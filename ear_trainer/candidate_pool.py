"""Candidate note pools for melody generation.

The melodic generator never sees the whole keyboard. It draws from a pool
built here in three steps:

1. **Range slice** – keep the pitches between the two range endpoints,
   located by *position* in the ordered universe rather than by pitch
   comparison, so any custom ordering supplied by the caller is respected.
2. **Selection filter** – when the learner picked specific notes, keep a pitch
   if its bare name (``"F#"``) is in the selection or if its scale degree in
   the current key (``"4#"``) is.
3. **Key rotation** – move the first occurrence of the key's pitch class to
   the head of the list and append everything that preceded it, so the pool
   reads like a scale starting on the tonic.

Applying the filter to a pool that has already been rotated for the same key
returns it unchanged.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .degrees import canonical_key, degree_map

__all__ = ["available_notes"]

logger = logging.getLogger(__name__)


def _strip_octave(note: str) -> str:
    """Return ``note`` without its trailing octave digits."""

    return note.rstrip("0123456789").rstrip("-")


def _resolve_key(key: Optional[str]) -> Optional[str]:
    """Return the canonical pitch class for ``key`` or ``None`` when unusable."""

    if not key:
        return None
    try:
        return canonical_key(key)
    except ValueError:
        logger.debug("Ignoring unknown key %r while filtering notes", key)
        return None


def available_notes(
    all_notes: Sequence[str],
    note_range: Optional[Sequence[str]],
    selection: Optional[Sequence[str]] = None,
    key: Optional[str] = None,
) -> List[str]:
    """Return the ordered candidate pool for a melody.

    Parameters
    ----------
    all_notes:
        Ordered pitch universe, normally :data:`ear_trainer.ALL_NOTES`.
    note_range:
        ``(low, high)`` pair of pitches from ``all_notes``. Both bounds are
        inclusive.
    selection:
        Optional list of bare note names (``"C"``, ``"F#"``) and/or degree
        labels (``"1"``, ``"4#"``). Empty or ``None`` keeps every pitch in
        the range.
    key:
        Key root used to translate pitches into degrees and to rotate the
        result. Unknown or empty keys disable both features; literal note
        names in ``selection`` still match.

    Returns
    -------
    List[str]
        Filtered and rotated pitches. An empty list is returned when the
        range is malformed, its endpoints are missing from ``all_notes``,
        ``low`` comes after ``high`` or the filters remove every pitch.
    """

    if not note_range or len(note_range) != 2:
        return []

    universe = list(all_notes)
    low, high = note_range
    try:
        start = universe.index(low)
        end = universe.index(high)
    except ValueError:
        logger.info("Range %s-%s is not part of the note universe", low, high)
        return []
    if start > end:
        return []

    in_range = universe[start:end + 1]
    root = _resolve_key(key)

    if selection:
        wanted = {item.strip() for item in selection if item and item.strip()}
        degrees = degree_map(root) if root else {}
        result = []
        for pitch in in_range:
            name = _strip_octave(pitch)
            if name in wanted or degrees.get(name) in wanted:
                result.append(pitch)
    else:
        result = in_range

    if root is None:
        return result

    for idx, pitch in enumerate(result):
        if _strip_octave(pitch) == root:
            return result[idx:] + result[:idx]
    return result
