"""Assemble pitches and rhythms into playable timed sequences.

The generators in this package produce two independent lists: pitches from
:mod:`ear_trainer.melody_engine` and note/rest durations from
:mod:`ear_trainer.rhythm_engine`. :func:`create_full_sequence` zips them
positionally (one pitch per note event, rests passing straight through) and
stamps each event with its start beat so a player can schedule it without
further arithmetic.

:func:`create_metronome_events` supplies the click track that accompanies a
sequence during playback.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from .rhythm_engine import DURATION_VALUES, RhythmEvent

__all__ = [
    "TimedEvent",
    "MetronomeClick",
    "create_full_sequence",
    "create_metronome_events",
    "sequence_duration",
    "uniform_rhythm",
]


@dataclass(frozen=True)
class TimedEvent:
    """Note or rest placed at an absolute beat position."""

    kind: str
    duration: str
    beats: float
    start: float
    pitch: Optional[str] = None

    @property
    def is_note(self) -> bool:
        return self.kind == "note"

    @property
    def end(self) -> float:
        return self.start + self.beats

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {
            "type": self.kind,
            "duration": self.duration,
            "value": self.beats,
            "startTime": self.start,
        }
        if self.pitch is not None:
            data["note"] = self.pitch
        return data


@dataclass(frozen=True)
class MetronomeClick:
    """One metronome tick; the downbeat is accented."""

    time: float
    note: str
    velocity: float
    is_accent: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "time": self.time,
            "note": self.note,
            "velocity": self.velocity,
            "isAccent": self.is_accent,
        }


def create_full_sequence(
    pitches: Sequence[str], rhythm: Iterable[RhythmEvent]
) -> List[TimedEvent]:
    """Return ``rhythm`` with ``pitches`` assigned to its note events.

    Note events are paired with pitches in order. Once the pitches run out
    further note events are dropped, but their beats still advance the clock
    so the remaining events keep their positions in the bar.
    """

    sequence: List[TimedEvent] = []
    pitch_iter = iter(pitches)
    position = 0.0
    for item in rhythm:
        if item.is_note:
            pitch = next(pitch_iter, None)
            if pitch is not None:
                sequence.append(
                    TimedEvent("note", item.duration, item.beats, position, pitch)
                )
        else:
            sequence.append(TimedEvent("rest", item.duration, item.beats, position))
        position += item.beats
    return sequence


def uniform_rhythm(n: int, duration: str = "4n") -> List[RhythmEvent]:
    """Return ``n`` note events of the same ``duration``.

    Used when rhythmic variation is switched off so every pitch receives the
    same length.
    """

    if n < 0:
        raise ValueError("n must be non-negative")
    if duration not in DURATION_VALUES:
        raise ValueError(f"Unknown duration: {duration}")
    return [RhythmEvent("note", duration, DURATION_VALUES[duration]) for _ in range(n)]


def sequence_duration(sequence: Iterable[TimedEvent]) -> float:
    """Return the total number of beats covered by ``sequence``."""

    return sum(event.beats for event in sequence)


def create_metronome_events(total_beats: float) -> List[MetronomeClick]:
    """Return one click per beat for ``ceil(total_beats)`` beats.

    The first click uses a low accented pitch so the learner hears where the
    loop restarts.
    """

    clicks = []
    for beat in range(math.ceil(total_beats)):
        accent = beat == 0
        clicks.append(
            MetronomeClick(
                time=float(beat),
                note="C1" if accent else "C3",
                velocity=1.0 if accent else 0.6,
                is_accent=accent,
            )
        )
    return clicks
