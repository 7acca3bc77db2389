"""Exercise configuration, graded levels and the retrying exercise builder.

The generators in :mod:`ear_trainer.rhythm_engine` and
:mod:`ear_trainer.melody_engine` fail closed: an impossible rhythm comes back
incomplete and an impossible melody comes back empty. This module is the
calling layer that decides what to do about it. :func:`build_exercise`
retries a bounded number of times and raises
:class:`ExerciseGenerationError` when every attempt fails, so a front-end
never plays a truncated phrase.

Levels
------
Graded practice restricts the melody to a handful of diatonic degrees. Level
``L`` uses ``L + 1`` consecutive degrees out of ``1``-``7``; each choice of
degrees is a *group*, and ``total_groups`` reports how many combinations of
that size exist. :data:`LEVEL_PARAMETERS` controls the note count, interval
window, bar length and tempo per level.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Tuple

from . import ALL_NOTES, NOTES
from .candidate_pool import available_notes
from .degrees import canonical_key, degree_for_note
from .melody_engine import MelodicSequenceGenerator
from .note_utils import parse_note, transpose
from .rhythm_engine import (
    DOTTED_DURATION_VALUES,
    DURATION_VALUES,
    MAX_TOTAL_BEATS,
    RhythmEvent,
    RhythmGenerator,
    resolve_duration,
)
from .sequencer import (
    TimedEvent,
    create_full_sequence,
    create_metronome_events,
    uniform_rhythm,
)
from .utils import parse_note_range

__all__ = [
    "LEVEL_PARAMETERS",
    "DEFAULT_LEVEL_PARAMETERS",
    "DIATONIC_DEGREES",
    "ExerciseConfig",
    "Exercise",
    "ExerciseGenerationError",
    "build_exercise",
    "cadence_chords",
    "degree_group",
    "level_config",
    "total_groups",
]

logger = logging.getLogger(__name__)

DIATONIC_DEGREES: List[str] = ["1", "2", "3", "4", "5", "6", "7"]

# Per-level exercise shape. Levels outside the table fall back to
# ``DEFAULT_LEVEL_PARAMETERS``.
LEVEL_PARAMETERS: Dict[int, Dict[str, int]] = {
    1: {"number_of_notes": 5, "max_interval": 12, "min_interval": 1, "total_beats": 2, "bpm": 200},
    2: {"number_of_notes": 3, "max_interval": 3, "min_interval": 1, "total_beats": 3, "bpm": 200},
    3: {"number_of_notes": 4, "max_interval": 4, "min_interval": 1, "total_beats": 4, "bpm": 200},
    4: {"number_of_notes": 5, "max_interval": 5, "min_interval": 1, "total_beats": 5, "bpm": 200},
    5: {"number_of_notes": 6, "max_interval": 6, "min_interval": 1, "total_beats": 6, "bpm": 200},
    6: {"number_of_notes": 7, "max_interval": 7, "min_interval": 1, "total_beats": 7, "bpm": 200},
}

DEFAULT_LEVEL_PARAMETERS: Dict[str, int] = {
    "number_of_notes": 2,
    "max_interval": 2,
    "min_interval": 1,
    "total_beats": 2,
    "bpm": 200,
}

# Alternative spellings accepted by ``ExerciseConfig.from_mapping``. The
# camelCase names match the JSON payloads sent by browser front-ends.
_FIELD_ALIASES: Dict[str, str] = {
    "keyId": "key",
    "range": "note_range",
    "numberOfNotes": "number_of_notes",
    "length": "number_of_notes",
    "maxInterval": "max_interval",
    "minInterval": "min_interval",
    "totalBeats": "total_beats",
    "shortestDuration": "shortest_duration",
    "shortest": "shortest_duration",
    "longestDuration": "longest_duration",
    "longest": "longest_duration",
    "allowRests": "allow_rests",
    "restProbability": "rest_probability",
}


class ExerciseGenerationError(RuntimeError):
    """Raised when no playable exercise could be produced."""


@dataclass
class ExerciseConfig:
    """Parameters describing one melodic dictation exercise."""

    key: str = "C"
    notes: List[str] = field(default_factory=list)
    note_range: Tuple[str, str] = ("C3", "C4")
    number_of_notes: int = 4
    max_interval: Optional[int] = 12
    min_interval: Optional[int] = 1
    total_beats: float = 4
    shortest_duration: str = "8n"
    longest_duration: str = "2n"
    allow_rests: bool = True
    rest_probability: float = 0.2
    dotted: bool = False
    rhythm: bool = True
    bpm: int = 120
    loop: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ExerciseConfig":
        """Build a config from ``data`` ignoring unknown keys.

        Both snake_case field names and the camelCase aliases in
        ``_FIELD_ALIASES`` are accepted. Values are not validated here; call
        :meth:`validate` before use.
        """

        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for name, value in data.items():
            target = _FIELD_ALIASES.get(name, name)
            if target not in known:
                continue
            if target == "notes":
                if isinstance(value, str):
                    value = [part.strip() for part in value.split(",") if part.strip()]
                else:
                    value = list(value or [])
            elif target == "note_range" and isinstance(value, str):
                value = parse_note_range(value)
            elif target == "note_range" and value is not None:
                value = tuple(value)
            kwargs[target] = value
        return cls(**kwargs)

    def validate(self) -> "ExerciseConfig":
        """Canonicalise the key and check every field.

        Returns ``self`` so calls can be chained.

        Raises
        ------
        ValueError
            Describing the first invalid field.
        """

        self.key = canonical_key(self.key)
        if len(self.note_range) != 2:
            raise ValueError("note_range must contain exactly two notes")
        self.note_range = tuple("%s%d" % parse_note(bound) for bound in self.note_range)
        if self.number_of_notes < 1:
            raise ValueError("number_of_notes must be at least 1")
        for name in ("min_interval", "max_interval"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be non-negative")
        if (
            self.min_interval is not None
            and self.max_interval is not None
            and self.min_interval > self.max_interval
        ):
            raise ValueError("min_interval cannot exceed max_interval")
        if not math.isfinite(self.total_beats) or self.total_beats <= 0:
            raise ValueError("total_beats must be a positive finite number")
        if self.total_beats > MAX_TOTAL_BEATS:
            raise ValueError(f"total_beats cannot exceed {MAX_TOTAL_BEATS:g}")
        table = dict(DURATION_VALUES)
        if self.dotted:
            table.update(DOTTED_DURATION_VALUES)
        self.shortest_duration = resolve_duration(self.shortest_duration, table)
        self.longest_duration = resolve_duration(self.longest_duration, table)
        if table[self.shortest_duration] > table[self.longest_duration]:
            raise ValueError("shortest_duration cannot be longer than longest_duration")
        if not 0 <= self.rest_probability <= 1:
            raise ValueError("rest_probability must be between 0 and 1")
        if self.bpm <= 0:
            raise ValueError("bpm must be greater than 0")
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["note_range"] = list(self.note_range)
        return data


@dataclass
class Exercise:
    """A generated, playable exercise and the answers it expects."""

    config: ExerciseConfig
    pitches: List[str]
    rhythm: List[RhythmEvent]
    sequence: List[TimedEvent]
    attempts: int = 1

    @property
    def degrees(self) -> List[str]:
        return [degree_for_note(pitch, self.config.key) for pitch in self.pitches]

    @property
    def total_beats(self) -> float:
        return sum(event.beats for event in self.rhythm)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "notes": list(self.pitches),
            "degrees": self.degrees,
            "rhythm": [event.to_dict() for event in self.rhythm],
            "sequence": [event.to_dict() for event in self.sequence],
            "metronome": [click.to_dict() for click in create_metronome_events(self.total_beats)],
            "attempts": self.attempts,
        }


def build_exercise(
    config: ExerciseConfig,
    rng: Optional[random.Random] = None,
    max_attempts: int = 5,
) -> Exercise:
    """Generate a melody and rhythm for ``config`` and assemble them.

    Each attempt draws a fresh melody and, when ``config.rhythm`` is set, a
    fresh rhythm. An attempt is rejected when the melody is empty or the
    rhythm is incomplete.

    Raises
    ------
    ValueError
        If ``config`` is invalid or ``max_attempts`` is below one.
    ExerciseGenerationError
        If the candidate pool is empty or every attempt was rejected.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    config.validate()
    rng = rng if rng is not None else random.Random()

    pool = available_notes(ALL_NOTES, config.note_range, config.notes, config.key)
    if not pool:
        raise ExerciseGenerationError("No available notes with the current settings")

    melodic = MelodicSequenceGenerator(rng)
    rhythmic = RhythmGenerator(dotted=config.dotted, rng=rng)

    for attempt in range(1, max_attempts + 1):
        pitches = melodic.generate(
            pool, config.number_of_notes, config.min_interval, config.max_interval
        )
        if not pitches:
            logger.warning("Attempt %d: melody constraints could not be met", attempt)
            continue

        if config.rhythm:
            result = rhythmic.generate(
                total_beats=config.total_beats,
                shortest_duration=config.shortest_duration,
                longest_duration=config.longest_duration,
                n=config.number_of_notes,
                allow_rests=config.allow_rests,
                rest_probability=config.rest_probability,
            )
            if not result.complete:
                logger.warning("Attempt %d: rhythm could not fill the bar", attempt)
                continue
            events = list(result)
        else:
            events = uniform_rhythm(config.number_of_notes)

        sequence = create_full_sequence(pitches, events)
        logger.info("Generated exercise in %d attempt(s)", attempt)
        return Exercise(config, pitches, events, sequence, attempts=attempt)

    raise ExerciseGenerationError(
        f"Unable to generate an exercise after {max_attempts} attempts"
    )


def total_groups(level: int) -> int:
    """Return how many degree groups exist for ``level``."""

    if level < 1:
        raise ValueError("level must be at least 1")
    return math.comb(len(DIATONIC_DEGREES), min(level + 1, len(DIATONIC_DEGREES)))


def degree_group(level: int, group: int = 1) -> List[str]:
    """Return the diatonic degrees practised in ``group`` of ``level``.

    The group selects a window of ``level + 1`` consecutive degrees; windows
    that run past ``7`` wrap around to ``1``.
    """

    if level < 1:
        raise ValueError("level must be at least 1")
    if group < 1:
        raise ValueError("group must be at least 1")
    size = min(level + 1, len(DIATONIC_DEGREES))
    start = (group - 1) % (len(DIATONIC_DEGREES) + 1 - size)
    result = DIATONIC_DEGREES[start:start + size]
    if len(result) < size:
        result += DIATONIC_DEGREES[:size - len(result)]
    return result


def level_config(level: int, group: int = 1, key: str = "C") -> ExerciseConfig:
    """Return the :class:`ExerciseConfig` used for ``level`` and ``group``.

    The range spans one octave starting on the key's root in octave 4 so
    every degree appears exactly once in the pool. Rests only fill the end
    of the bar.
    """

    params = LEVEL_PARAMETERS.get(level, DEFAULT_LEVEL_PARAMETERS)
    root = f"{canonical_key(key)}4"
    return ExerciseConfig(
        key=key,
        notes=degree_group(level, group),
        note_range=(root, transpose(root, 11)),
        number_of_notes=params["number_of_notes"],
        max_interval=params["max_interval"],
        min_interval=params["min_interval"],
        total_beats=params["total_beats"],
        shortest_duration="16n",
        longest_duration="2n",
        allow_rests=True,
        rest_probability=0.0,
        bpm=params["bpm"],
    ).validate()


def cadence_chords(key: str, octave: int = 4) -> List[List[str]]:
    """Return the I-IV-V-I major triads that establish ``key``.

    Each chord root uses ``octave`` as written, so in G major the IV chord is
    built on ``C4`` below the tonic ``G4``.
    """

    root_idx = NOTES.index(canonical_key(key))

    def triad(offset: int) -> List[str]:
        root = f"{NOTES[(root_idx + offset) % 12]}{octave}"
        return [root, transpose(root, 4), transpose(root, 7)]

    return [triad(0), triad(5), triad(7), triad(0)]
