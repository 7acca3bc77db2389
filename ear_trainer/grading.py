"""Grade a learner's typed answers against a generated melody.

Two answer styles are supported:

``"degree"``
    The learner types the scale degree of each note (``"1"``, ``"4#"``...)
    relative to the exercise key. This is the default because it trains
    relative pitch.
``"note"``
    The learner types note names (``"C"``, ``"F#"``). Octaves are ignored and
    flats are accepted, so ``"Gb"`` matches an ``F#`` in the melody.

Answers are compared after trimming whitespace and normalising unicode
accidentals. A missing answer counts as wrong; surplus answers are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .degrees import canonical_key, degree_for_note
from .note_utils import pitch_class

__all__ = ["GradeReport", "grade_answers", "expected_answers"]

_MODES = ("degree", "note")


@dataclass
class GradeReport:
    """Per-note results of a grading pass."""

    results: List[bool]
    expected: List[str]
    answers: List[str] = field(default_factory=list)

    @property
    def score(self) -> int:
        return sum(1 for ok in self.results if ok)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def percentage(self) -> int:
        if not self.results:
            return 0
        return round(self.score / self.total * 100)

    def to_dict(self) -> Dict[str, object]:
        return {
            "results": list(self.results),
            "expected": list(self.expected),
            "answers": list(self.answers),
            "score": self.score,
            "total": self.total,
            "percentage": self.percentage,
        }


def _normalise(answer: Optional[str]) -> str:
    """Trim ``answer`` and replace unicode accidentals with ASCII."""

    if answer is None:
        return ""
    return str(answer).replace("♯", "#").replace("♭", "b").strip()


def expected_answers(
    pitches: Sequence[str], key: Optional[str] = None, mode: str = "degree"
) -> List[str]:
    """Return the answer key for ``pitches`` in ``mode``.

    Raises
    ------
    ValueError
        For an unknown ``mode`` or when ``mode == "degree"`` without a
        valid ``key``.
    """

    if mode not in _MODES:
        raise ValueError(f"Unknown grading mode: {mode}")
    if mode == "degree":
        if not key:
            raise ValueError("A key is required to grade scale degrees")
        return [degree_for_note(pitch, key) for pitch in pitches]
    return [pitch_class(pitch) for pitch in pitches]


def _matches_note(answer: str, expected: str) -> bool:
    """Return ``True`` when ``answer`` names the pitch class ``expected``."""

    try:
        return canonical_key(answer) == expected
    except ValueError:
        return False


def grade_answers(
    pitches: Sequence[str],
    answers: Sequence[Optional[str]],
    key: Optional[str] = None,
    mode: str = "degree",
) -> GradeReport:
    """Compare ``answers`` with the melody ``pitches``.

    Parameters
    ----------
    pitches:
        The notes that were played, in order.
    answers:
        What the learner typed, one entry per note. ``None`` or blank entries
        are treated as unanswered.
    key:
        Exercise key; required for degree grading.
    mode:
        ``"degree"`` or ``"note"``.

    Returns
    -------
    GradeReport
        One boolean per pitch plus the answer key.
    """

    expected = expected_answers(pitches, key, mode)
    cleaned = [_normalise(answer) for answer in answers]
    results = []
    for idx, target in enumerate(expected):
        given = cleaned[idx] if idx < len(cleaned) else ""
        if not given:
            results.append(False)
        elif mode == "note":
            results.append(_matches_note(given, target))
        else:
            results.append(given == target)
    return GradeReport(results=results, expected=expected, answers=cleaned)
