"""Scale-degree helpers.

Every pitch class has a fixed label relative to the key's root. The seven
diatonic steps of the major scale are numbered ``1``-``7`` and each chromatic
step in between takes the label of the degree below it with a ``#`` suffix::

    offset:  0   1   2   3   4  5   6   7   8   9  10  11
    degree:  1  1#   2  2#   3  4  4#   5  5#   6  6#   7

The mapping is a bijection between the twelve pitch classes and the twelve
labels, so a key turns note names into degrees and back without loss.

Example
-------
>>> from ear_trainer.degrees import degree_for_note
>>> degree_for_note("F#4", "D")
'3'
"""

from __future__ import annotations

from functools import lru_cache
from typing import Dict, Tuple

from . import NOTE_TO_SEMITONE, NOTES

__all__ = [
    "DEGREE_LABELS",
    "canonical_key",
    "degree_map",
    "degree_for_note",
    "note_for_degree",
]

# Degree label for each semitone offset above the key's root.
DEGREE_LABELS: Tuple[str, ...] = (
    "1", "1#", "2", "2#", "3", "4", "4#", "5", "5#", "6", "6#", "7",
)

_DEGREE_TO_OFFSET: Dict[str, int] = {label: idx for idx, label in enumerate(DEGREE_LABELS)}


@lru_cache(maxsize=None)
def canonical_key(name: str) -> str:
    """Return the sharp-spelled pitch class for the key ``name``.

    Parameters
    ----------
    name:
        Key root provided by the user, e.g. ``"d"``, ``"Eb"`` or ``"F#"``.
        Case-insensitive and surrounding whitespace is ignored. Unicode
        accidentals (``♯``/``♭``) are accepted.

    Returns
    -------
    str
        Matching entry from :data:`NOTES`.

    Raises
    ------
    ValueError
        If ``name`` does not denote one of the twelve pitch classes.
    """

    cleaned = name.replace("♯", "#").replace("♭", "b").strip() if isinstance(name, str) else ""
    if cleaned:
        cleaned = cleaned[0].upper() + cleaned[1:].lower()
    semitone = NOTE_TO_SEMITONE.get(cleaned)
    if semitone is None:
        raise ValueError(f"Unknown key: {name}")
    return NOTES[semitone]


@lru_cache(maxsize=None)
def _degree_pairs(key: str) -> Tuple[Tuple[str, str], ...]:
    root = NOTES.index(canonical_key(key))
    return tuple(
        (NOTES[(root + offset) % 12], label)
        for offset, label in enumerate(DEGREE_LABELS)
    )


def degree_map(key: str) -> Dict[str, str]:
    """Return ``{note_name: degree}`` for all twelve pitch classes in ``key``.

    A new dictionary is built on every call so callers may modify it.
    """

    return dict(_degree_pairs(key))


def degree_for_note(note: str, key: str) -> str:
    """Return the scale degree of ``note`` relative to ``key``.

    ``note`` may be a bare note name (``"F#"``) or a full pitch token
    (``"F#4"``); the octave is ignored.

    Raises
    ------
    ValueError
        If either the note name or the key is unknown.
    """

    name = note.strip().rstrip("0123456789").rstrip("-")
    try:
        pitch = canonical_key(name)
    except ValueError:
        raise ValueError(f"Unknown note name: {note}") from None
    return degree_map(key)[pitch]


def note_for_degree(degree: str, key: str) -> str:
    """Return the note name that carries ``degree`` in ``key``.

    Raises
    ------
    ValueError
        If ``degree`` is not one of :data:`DEGREE_LABELS` or ``key`` is unknown.
    """

    offset = _DEGREE_TO_OFFSET.get(degree.strip())
    if offset is None:
        raise ValueError(f"Unknown degree: {degree}")
    root = NOTES.index(canonical_key(key))
    return NOTES[(root + offset) % 12]
