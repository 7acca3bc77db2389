"""Independent rhythm generation module.

This file exposes a small :class:`RhythmGenerator` class that fills a fixed
number of beats with a requested number of notes, optionally interleaving
rests.  Exercise builders use this engine to create the duration pattern
before pitches are zipped in, mirroring a typical dictation workflow where
the learner first hears the groove and then the notes.

Durations are named with the notation tokens understood by the playback
front-end (``"4n"`` is a quarter note) and valued in beats, a quarter note
being exactly one beat::

    32n 0.125   16n 0.25   8n 0.5   4n 1   2n 2   1n 4

Dotted variants (value x 1.5) are available through ``dotted=True``.

The algorithm is greedy and beats-remaining driven:

1. Before each note the largest usable duration is
   ``min(longest, remaining - (notes_left - 1) * shortest)`` so every note
   still owed can be placed at the shortest duration. When that cap drops
   below ``shortest`` the configuration is infeasible and the loop stops.
2. A rest may be drawn (with ``rest_probability``) only while there is slack
   beyond ``notes_left * shortest``; rests are capped by that slack.
3. Leftover beats at or above ``shortest`` are filled with rests when rests
   are allowed.
4. A final remainder below ``shortest`` is merged into the last event. When
   the merged value matches a table entry the event is renamed, otherwise
   its token gains the ``~`` prefix to flag a stretched duration.

``generate_rhythm`` proxies to a fresh ``RhythmGenerator`` for convenience.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

__all__ = [
    "DURATION_VALUES",
    "DOTTED_DURATION_VALUES",
    "DURATION_ALIASES",
    "STRETCHED_PREFIX",
    "MAX_TOTAL_BEATS",
    "RhythmEvent",
    "RhythmResult",
    "RhythmGenerationError",
    "RhythmGenerator",
    "resolve_duration",
    "generate_rhythm",
]

logger = logging.getLogger(__name__)

# Canonical duration table in beats. The values keep a strict 1:2:4:8:16:32
# ratio and are exact binary fractions so sums never drift.
DURATION_VALUES: Dict[str, float] = {
    "32n": 1 / 8,
    "16n": 1 / 4,
    "8n": 1 / 2,
    "4n": 1.0,
    "2n": 2.0,
    "1n": 4.0,
}

# Dotted durations extend the table when a generator is created with
# ``dotted=True``.
DOTTED_DURATION_VALUES: Dict[str, float] = {
    "16n.": 3 / 8,
    "8n.": 3 / 4,
    "4n.": 1.5,
    "2n.": 3.0,
}

# Human readable names accepted wherever a duration token is expected.
DURATION_ALIASES: Dict[str, str] = {
    "thirty-second": "32n",
    "32nd": "32n",
    "sixteenth": "16n",
    "16th": "16n",
    "eighth": "8n",
    "8th": "8n",
    "quarter": "4n",
    "half": "2n",
    "whole": "1n",
    "dotted-sixteenth": "16n.",
    "dotted-16th": "16n.",
    "dotted-eighth": "8n.",
    "dotted-8th": "8n.",
    "dotted-quarter": "4n.",
    "dotted-half": "2n.",
}

# Prefix marking an event whose merged value has no table entry.
STRETCHED_PREFIX = "~"

# Longest pattern accepted, 256 bars of 4/4. Far larger totals stop changing
# when a duration is subtracted and would never be filled.
MAX_TOTAL_BEATS = 1024.0

# Beat sums within this tolerance count as equal to the requested total.
SUM_TOLERANCE = 1e-3

# Comparison slack for individual duration arithmetic.
_EPSILON = 1e-9


class RhythmGenerationError(RuntimeError):
    """Raised when no duration in the table fits the requested bounds."""


@dataclass(frozen=True)
class RhythmEvent:
    """Single note or rest in a rhythm pattern."""

    kind: str
    duration: str
    beats: float

    @property
    def is_note(self) -> bool:
        return self.kind == "note"

    @property
    def is_rest(self) -> bool:
        return self.kind == "rest"

    @property
    def is_stretched(self) -> bool:
        """``True`` when the event absorbed a remainder with no table entry."""
        return self.duration.startswith(STRETCHED_PREFIX)

    def to_dict(self) -> Dict[str, object]:
        """Return the plain mapping consumed by playback front-ends."""
        return {"type": self.kind, "duration": self.duration, "value": self.beats}


@dataclass
class RhythmResult:
    """Generated events plus a record of whether the bar was filled.

    The object iterates, indexes and measures like the underlying event list
    so callers that only need the events can treat it as one. ``complete`` is
    ``True`` only when exactly ``requested_notes`` notes were placed and the
    beats add up to ``total_beats``; anything else signals that the caller
    should retry with different parameters.
    """

    events: List[RhythmEvent]
    total_beats: float
    requested_notes: int

    def __iter__(self) -> Iterator[RhythmEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    def __getitem__(self, index):
        return self.events[index]

    @property
    def note_count(self) -> int:
        return sum(1 for event in self.events if event.is_note)

    @property
    def rest_count(self) -> int:
        return sum(1 for event in self.events if event.is_rest)

    @property
    def beats(self) -> float:
        return sum(event.beats for event in self.events)

    @property
    def complete(self) -> bool:
        return (
            self.note_count == self.requested_notes
            and math.isclose(self.beats, self.total_beats, abs_tol=SUM_TOLERANCE)
        )

    def to_list(self) -> List[Dict[str, object]]:
        return [event.to_dict() for event in self.events]


def resolve_duration(token: str, table: Mapping[str, float]) -> str:
    """Return the table key for ``token`` accepting aliases and any casing.

    Raises
    ------
    ValueError
        If ``token`` cannot be matched against ``table``.
    """

    cleaned = str(token).strip().lower()
    cleaned = DURATION_ALIASES.get(cleaned, cleaned)
    if cleaned not in table:
        raise ValueError(f"Unknown duration: {token}")
    return cleaned


class RhythmGenerator:
    """Generate note/rest patterns that fill an exact number of beats."""

    def __init__(
        self,
        durations: Optional[Mapping[str, float]] = None,
        *,
        dotted: bool = False,
        rng: Optional[random.Random] = None,
    ) -> None:
        """Create a new generator with an optional custom duration table.

        Parameters
        ----------
        durations:
            Mapping ``token -> beats``. When ``None`` the canonical
            :data:`DURATION_VALUES` table is used. The mapping is copied so
            later changes by the caller have no effect.
        dotted:
            Add :data:`DOTTED_DURATION_VALUES` to the table.
        rng:
            Random source used for every draw. Passing a seeded
            ``random.Random`` makes the output reproducible; ``None`` uses a
            fresh unseeded instance.
        """

        table = dict(durations if durations is not None else DURATION_VALUES)
        if dotted:
            table.update(DOTTED_DURATION_VALUES)
        if any(value <= 0 for value in table.values()):
            raise ValueError("duration values must be positive")
        self.durations: Dict[str, float] = table
        self.rng = rng if rng is not None else random.Random()

    def value_of(self, token: str) -> float:
        """Return the beat value of ``token``."""

        return self.durations[resolve_duration(token, self.durations)]

    def notation_for(self, value: float) -> Optional[str]:
        """Return the token whose value equals ``value`` or ``None``."""

        for name, beats in self.durations.items():
            if math.isclose(beats, value, abs_tol=_EPSILON):
                return name
        return None

    def random_duration(self, low: float, high: float) -> Tuple[str, float]:
        """Return a uniformly chosen ``(token, value)`` with ``low <= value <= high``.

        Raises
        ------
        RhythmGenerationError
            If no table entry lies inside the bounds.
        """

        available = [
            (name, value)
            for name, value in self.durations.items()
            if low - _EPSILON <= value <= high + _EPSILON
        ]
        if not available:
            raise RhythmGenerationError(
                f"No available durations between {low} and {high}"
            )
        return self.rng.choice(available)

    def generate(
        self,
        total_beats: float = 4,
        shortest_duration: str = "16n",
        longest_duration: str = "2n",
        n: int = 4,
        allow_rests: bool = True,
        rest_probability: float = 0.2,
    ) -> RhythmResult:
        """Return a rhythm of ``n`` notes spanning ``total_beats`` beats.

        Parameters
        ----------
        total_beats:
            Length of the pattern in beats. Must be positive, finite and no
            larger than :data:`MAX_TOTAL_BEATS`.
        shortest_duration, longest_duration:
            Bounds on every drawn duration, as tokens or aliases
            (``"16n"``, ``"quarter"``). ``shortest`` may not exceed
            ``longest``.
        n:
            Number of note events required. ``0`` produces a rest-only
            pattern when rests are allowed.
        allow_rests:
            Permit rest events both between notes and as trailing filler.
            Rests never use beats reserved for the notes still owed: a rest
            is only drawn while the slack beyond ``notes_left * shortest``
            is at least ``shortest`` and its length is capped by that slack.
        rest_probability:
            Chance in ``[0, 1]`` of drawing a rest at a step where one fits.

        Returns
        -------
        RhythmResult
            Events in playing order. Inspect ``complete`` to find out whether
            every note fitted and the beats add up; the generator never
            invents beats to force success.

        Raises
        ------
        ValueError
            For invalid arguments.
        RhythmGenerationError
            If the duration table has no entry inside the requested bounds.
        """

        if not math.isfinite(total_beats) or total_beats <= 0:
            raise ValueError("total_beats must be a positive finite number")
        if total_beats > MAX_TOTAL_BEATS:
            raise ValueError(f"total_beats cannot exceed {MAX_TOTAL_BEATS:g}")
        if n < 0:
            raise ValueError("n must be non-negative")
        if not 0 <= rest_probability <= 1:
            raise ValueError("rest_probability must be between 0 and 1")

        min_beats = self.value_of(shortest_duration)
        max_beats = self.value_of(longest_duration)
        if min_beats > max_beats:
            raise ValueError("shortest_duration cannot be longer than longest_duration")

        events: List[RhythmEvent] = []
        remaining_beats = float(total_beats)
        remaining_notes = int(n)

        while remaining_notes > 0:
            # Reserve the shortest duration for every note still owed after
            # this one so the loop can always finish once it starts a note.
            cap = min(max_beats, remaining_beats - (remaining_notes - 1) * min_beats)
            if cap < min_beats - _EPSILON:
                logger.warning(
                    "Cannot fit %d remaining notes into %.3f beats with the given constraints",
                    remaining_notes,
                    remaining_beats,
                )
                break

            slack = remaining_beats - remaining_notes * min_beats
            is_rest = (
                allow_rests
                and slack >= min_beats - _EPSILON
                and self.rng.random() < rest_probability
            )

            if is_rest:
                name, value = self.random_duration(min_beats, min(max_beats, slack))
                events.append(RhythmEvent("rest", name, value))
            else:
                name, value = self.random_duration(min_beats, cap)
                events.append(RhythmEvent("note", name, value))
                remaining_notes -= 1
            remaining_beats -= value

        if allow_rests:
            while remaining_beats >= min_beats - _EPSILON:
                name, value = self.random_duration(min_beats, min(max_beats, remaining_beats))
                events.append(RhythmEvent("rest", name, value))
                remaining_beats -= value

        if _EPSILON < remaining_beats < min_beats - _EPSILON:
            if events:
                last = events[-1]
                merged = last.beats + remaining_beats
                token = self.notation_for(merged) or STRETCHED_PREFIX + last.duration
                events[-1] = replace(last, duration=token, beats=merged)
                remaining_beats = 0.0
            else:
                logger.warning(
                    "No event available to absorb the remaining %.3f beats",
                    remaining_beats,
                )

        result = RhythmResult(events, float(total_beats), int(n))
        if not result.complete:
            logger.warning(
                "Rhythm incomplete: %d of %d notes, %.3f of %.3f beats",
                result.note_count,
                n,
                result.beats,
                total_beats,
            )
        return result


def generate_rhythm(
    total_beats: float = 4,
    shortest_duration: str = "16n",
    longest_duration: str = "2n",
    n: int = 4,
    allow_rests: bool = True,
    rest_probability: float = 0.2,
    *,
    dotted: bool = False,
    rng: Optional[random.Random] = None,
) -> RhythmResult:
    """Return a random rhythm using a throwaway :class:`RhythmGenerator`."""

    generator = RhythmGenerator(dotted=dotted, rng=rng)
    return generator.generate(
        total_beats=total_beats,
        shortest_duration=shortest_duration,
        longest_duration=longest_duration,
        n=n,
        allow_rests=allow_rests,
        rest_probability=rest_probability,
    )
