"""Utility functions for working with pitch tokens.

This module groups helpers dealing with note representation conversions.
A pitch token is a note name (``A``-``G`` with an optional ``#`` or ``b``)
followed by an octave number, for example ``C#4``.  Flats are accepted on
input but every token produced here is spelled with sharps so pools,
generated melodies and answer keys compare equal.

Two numeric views of a pitch are used throughout the package:

``chromatic_index``
    ``octave * 12 + semitone``. Interval distances between melody notes are
    measured on this scale, so ``C4`` and ``C5`` are twelve steps apart.
``note_to_midi``
    The MIDI note number, which is the chromatic index shifted up by one
    octave. Only the MIDI writer needs it.

Example
-------
>>> from ear_trainer.note_utils import chromatic_index, get_interval
>>> chromatic_index("C4")
48
>>> get_interval("C4", "G4")
7
"""

# Modification Summary
# ---------------------
# * ``parse_note`` centralises token validation so every helper reports the
#   same ``ValueError`` for malformed input.
# * Added ``compare_notes`` which orders pitches by ``(octave, semitone)``
#   instead of string comparison, so ``B3`` sorts before ``C4``.
# * Added ``note_range`` and ``transpose`` used to build piano ranges and
#   cadence chords.

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import List, Tuple

from . import MAX_OCTAVE, MIN_OCTAVE, NOTE_TO_SEMITONE, NOTES

__all__ = [
    "parse_note",
    "pitch_class",
    "chromatic_index",
    "note_to_midi",
    "midi_to_note",
    "get_interval",
    "compare_notes",
    "note_range",
    "transpose",
]

_NOTE_PATTERN = re.compile(r"([A-Ga-g][#b]?)(-?\d+)")


@lru_cache(maxsize=None)
def parse_note(note: str) -> Tuple[str, int]:
    """Split ``note`` into a sharp-spelled name and an octave number.

    Parameters
    ----------
    note:
        Pitch token such as ``C#4`` or ``Eb3``. Surrounding whitespace is
        ignored and the letter may be lowercase.

    Returns
    -------
    Tuple[str, int]
        ``(name, octave)`` where ``name`` is one of :data:`NOTES`.

    Raises
    ------
    ValueError
        If ``note`` is malformed, names an unknown pitch class or uses an
        octave outside ``MIN_OCTAVE``-``MAX_OCTAVE``.
    """

    match = _NOTE_PATTERN.fullmatch(note.strip()) if isinstance(note, str) else None
    if not match:
        logging.error("Invalid note format: %s", note)
        raise ValueError(f"Invalid note format: {note}")

    name, octave_str = match.groups()
    name = name.capitalize()
    octave = int(octave_str)

    try:
        semitone = NOTE_TO_SEMITONE[name]
    except KeyError:
        logging.error("Unknown note name: %s", name)
        raise ValueError(f"Unknown note name: {name}")

    # Enharmonic spellings such as ``B#`` or ``Cb`` cross the octave boundary.
    # The octave number follows the letter in scientific pitch notation, so
    # ``B#3`` sounds as ``C4`` and ``Cb4`` as ``B3``.
    if name in ("B#", "E#") and semitone < NOTE_TO_SEMITONE[name[0]]:
        octave += 1
    elif name in ("Cb", "Fb") and semitone > NOTE_TO_SEMITONE[name[0]]:
        octave -= 1
    if not MIN_OCTAVE <= octave <= MAX_OCTAVE:
        raise ValueError(
            f"Octave {octave} out of range {MIN_OCTAVE}-{MAX_OCTAVE} for note {note}"
        )
    return NOTES[semitone], octave


def pitch_class(note: str) -> str:
    """Return the note name of ``note`` without its octave (``C#4`` -> ``C#``)."""

    return parse_note(note)[0]


def chromatic_index(note: str) -> int:
    """Return ``octave * 12 + semitone`` for ``note``."""

    name, octave = parse_note(note)
    return octave * 12 + NOTES.index(name)


def note_to_midi(note: str) -> int:
    """Convert a note string such as ``C#4`` into a MIDI number.

    Raises
    ------
    ValueError
        If ``note`` is malformed or the MIDI value falls outside ``0-127``.
    """

    # MIDI's octave numbers are offset by one relative to scientific pitch
    # notation, hence the extra twelve semitones.
    midi_val = chromatic_index(note) + 12
    if not 0 <= midi_val <= 127:
        logging.error("MIDI value out of range: %s -> %d", note, midi_val)
        raise ValueError(
            f"Computed MIDI value {midi_val} out of range 0-127 for note {note}"
        )
    return midi_val


def midi_to_note(midi_note: int) -> str:
    """Convert a MIDI number into a note name using sharps.

    Examples
    --------
    >>> midi_to_note(60)
    'C4'
    >>> midi_to_note(61)
    'C#4'
    """

    if not 0 <= midi_note <= 127:
        raise ValueError(f"MIDI note {midi_note} out of range 0-127")
    octave = midi_note // 12 - 1
    name = NOTES[midi_note % 12]
    return f"{name}{octave}"


def get_interval(note1: str, note2: str) -> int:
    """Return the interval between ``note1`` and ``note2`` in semitones."""

    return abs(chromatic_index(note1) - chromatic_index(note2))


def compare_notes(note1: str, note2: str) -> int:
    """Return ``-1``, ``0`` or ``1`` as ``note1`` is below, equal to or above ``note2``.

    Ordering is lexicographic on ``(octave, semitone)`` which matches the
    chromatic index, so enharmonic spellings compare equal.
    """

    name1, octave1 = parse_note(note1)
    name2, octave2 = parse_note(note2)
    key1 = (octave1, NOTES.index(name1))
    key2 = (octave2, NOTES.index(name2))
    return (key1 > key2) - (key1 < key2)


def note_range(start: str, end: str) -> List[str]:
    """Return every chromatic pitch from ``start`` to ``end`` inclusive.

    An empty list is returned when ``start`` lies above ``end``.
    """

    low = chromatic_index(start)
    high = chromatic_index(end)
    return [f"{NOTES[idx % 12]}{idx // 12}" for idx in range(low, high + 1)]


def transpose(note: str, semitones: int) -> str:
    """Return ``note`` moved by ``semitones`` (negative values move down)."""

    idx = chromatic_index(note) + semitones
    octave = idx // 12
    if not MIN_OCTAVE <= octave <= MAX_OCTAVE:
        raise ValueError(f"Transposing {note} by {semitones} leaves the supported range")
    return f"{NOTES[idx % 12]}{octave}"
