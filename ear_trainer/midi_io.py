"""Utilities for writing exercises to MIDI files.

Modification summary
--------------------
* ``create_midi_file`` creates the destination directory automatically so
  callers can pass a path in a new folder without preparing it.
* Rests in the sequence advance time on every track so the optional
  metronome stays aligned with the melody.
* ``cadence`` chords are played one beat each before the melody starts and
  the melody is shifted by the same number of beats.
* Imports from ``mido`` are deferred inside ``create_midi_file`` so the
  package loads even when the optional dependency is missing.
* ``create_midi_file`` returns the ``MidiFile`` so tests can inspect the
  in-memory representation without reading the written file back.

The module is separate from the generators so the JSON-only parts of the
package (CLI ``--mode rhythm``, the web API) never touch ``mido``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

if TYPE_CHECKING:
    # ``MidiFile`` is only needed for type checking to avoid requiring the
    # optional dependency at import time.
    from mido import MidiFile

from .note_utils import note_to_midi
from .sequencer import TimedEvent, create_metronome_events, sequence_duration

__all__ = ["create_midi_file", "TICKS_PER_BEAT", "METRONOME_CHANNEL"]

logger = logging.getLogger(__name__)

TICKS_PER_BEAT = 480

# General MIDI percussion lives on channel 10, which is index ``9`` in the
# zero-based numbering used by ``mido``.
METRONOME_CHANNEL = 9

MELODY_VELOCITY = 80
CADENCE_VELOCITY = 60


def _to_ticks(beats: float) -> int:
    return int(round(beats * TICKS_PER_BEAT))


def _append_absolute(track, events: List[Tuple[int, int, object]]) -> None:
    """Append ``(tick, order, message)`` tuples to ``track`` as delta times.

    ``order`` breaks ties so a ``note_off`` at a tick is emitted before a
    ``note_on`` at the same tick.
    """

    events.sort(key=lambda item: (item[0], item[1]))
    last = 0
    for tick, _, msg in events:
        msg.time = tick - last
        track.append(msg)
        last = tick


def create_midi_file(
    sequence: Sequence[TimedEvent],
    bpm: int,
    output_file: str,
    *,
    program: int = 0,
    cadence: Optional[Sequence[Sequence[str]]] = None,
    metronome: bool = False,
) -> "MidiFile":
    """Write ``sequence`` to ``output_file`` as a MIDI file.

    Parameters
    ----------
    sequence:
        Timed note and rest events as produced by
        :func:`ear_trainer.sequencer.create_full_sequence`. Event start
        positions are taken from the events themselves.
    bpm:
        Tempo in beats per minute. Must be positive.
    output_file:
        Destination path. Missing parent directories are created.
    program:
        General MIDI instrument for the melody and cadence (``0``-``127``).
    cadence:
        Optional list of chords, each a list of pitch tokens, played one beat
        apiece before the melody.
    metronome:
        Add a click track on channel 10 covering the melody with an accented
        first click.

    Returns
    -------
    MidiFile
        In-memory representation of the written file.

    Raises
    ------
    ImportError
        If ``mido`` is not installed.
    ValueError
        For a non-positive ``bpm``, an out of range ``program`` or a pitch
        outside the MIDI range.
    """
    try:
        import mido
        from mido import Message, MidiFile, MidiTrack
    except ModuleNotFoundError as exc:
        raise ImportError(
            "mido is required to create MIDI files; install it with 'pip install mido'"
        ) from exc

    if bpm <= 0:
        raise ValueError("bpm must be a positive integer")
    if not 0 <= program <= 127:
        raise ValueError("program must be between 0 and 127")

    mid = MidiFile(ticks_per_beat=TICKS_PER_BEAT)
    track = MidiTrack()
    mid.tracks.append(track)
    track.append(mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(bpm)))
    track.append(mido.MetaMessage("time_signature", numerator=4, denominator=4))
    track.append(Message("program_change", program=program, time=0))

    events: List[Tuple[int, int, object]] = []
    offset = 0.0
    for chord in cadence or []:
        for pitch in chord:
            number = note_to_midi(pitch)
            events.append(
                (_to_ticks(offset), 1, Message("note_on", note=number, velocity=CADENCE_VELOCITY))
            )
            events.append(
                (_to_ticks(offset + 1), 0, Message("note_off", note=number, velocity=CADENCE_VELOCITY))
            )
        offset += 1

    for event in sequence:
        # Rests only occupy time; the next note's start position already
        # includes them.
        if not event.is_note:
            continue
        number = note_to_midi(event.pitch)
        start = offset + event.start
        events.append(
            (_to_ticks(start), 1, Message("note_on", note=number, velocity=MELODY_VELOCITY))
        )
        events.append(
            (_to_ticks(start + event.beats), 0, Message("note_off", note=number, velocity=MELODY_VELOCITY))
        )
    _append_absolute(track, events)

    if metronome:
        click_track = MidiTrack()
        mid.tracks.append(click_track)
        clicks = []
        for click in create_metronome_events(sequence_duration(sequence)):
            number = note_to_midi(click.note)
            velocity = int(round(click.velocity * 127))
            start = offset + click.time
            clicks.append(
                (
                    _to_ticks(start),
                    1,
                    Message("note_on", note=number, velocity=velocity, channel=METRONOME_CHANNEL),
                )
            )
            clicks.append(
                (
                    _to_ticks(start + 0.25),
                    0,
                    Message("note_off", note=number, velocity=velocity, channel=METRONOME_CHANNEL),
                )
            )
        _append_absolute(click_track, clicks)

    # Ensure the destination directory exists so ``mid.save`` succeeds even
    # when the caller specifies a path in a new folder.
    Path(output_file).expanduser().parent.mkdir(parents=True, exist_ok=True)

    mid.save(output_file)
    logger.info("MIDI file saved to %s", output_file)
    return mid
