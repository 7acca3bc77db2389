#!/usr/bin/env python3
"""Ear Trainer library.

This package builds the musical material used by ear-training exercises:
rhythms that fill a bar exactly, melodies whose leaps stay inside a chosen
interval window and the candidate note pools those melodies are drawn from.
A typical workflow is to filter the piano range with
:func:`available_notes`, feed the pool to :func:`generate_note_sequence`,
create a matching duration pattern with :func:`generate_rhythm` and zip the
two together via :func:`create_full_sequence`.  The command line tool and
the Flask web interface wrap these calls so learners can practise without
writing code.

Underlying Algorithms
---------------------
Rhythms are produced greedily.  Each step reserves enough beats for the notes
still owed at the shortest allowed duration and draws a random duration that
fits inside whatever is left over.  Rests are only inserted while there is
slack beyond that reservation, and a leftover smaller than the shortest
duration is folded into the final event so the bar always sums exactly.

Melodies pick a random first pitch and then restrict every following choice
to pool members whose chromatic distance from the previous pitch lies inside
``[min_interval, max_interval]``.  When no pitch qualifies the whole attempt
is abandoned; callers retry rather than play a truncated phrase.

Algorithm Pseudocode
--------------------
The exercise builder executed by :func:`build_exercise` reads::

    pool = available_notes(ALL_NOTES, range, selection, key)
    pitches = melodic_generator.generate(pool, n, min_interval, max_interval)
    rhythm = rhythm_generator.generate(total_beats, shortest, longest, n)
    if not pitches or not rhythm.complete:
        retry()
    sequence = create_full_sequence(pitches, rhythm)

Features include:
- Exact-sum rhythm generation with optional rests and dotted values.
- Interval-bounded melody generation over key/degree filtered pools.
- Answer grading by note name or scale degree.
- Level tables, degree groups and I-IV-V-I cadences for graded practice.
- MIDI export with optional cadence and metronome tracks.
- Both CLI and Flask web interfaces.
"""

__version__ = "0.1.0"

# ---------------------------------------------------------------
# Modification Summary
# ---------------------------------------------------------------
# * Every generator accepts an explicit ``random.Random`` instance so callers
#   and tests can reproduce a sequence from a seed.
# * ``generate_rhythm`` returns a ``RhythmResult`` which still iterates like
#   the plain event list but reports whether the bar was filled completely.
# * ``available_notes`` rotates the pool to start on the key even when no
#   note selection is supplied.
# * ``load_settings`` and ``save_settings`` persist exercise defaults as JSON
#   so the CLI can reuse the learner's last configuration.
# ---------------------------------------------------------------

import json
import logging
import os
from pathlib import Path
from typing import Dict, List

# Default path for storing user preferences.
# The file lives in the user's home directory so settings persist
# between runs of the application.
env_path = os.environ.get("EAR_TRAINER_SETTINGS_FILE")
if env_path:
    DEFAULT_SETTINGS_FILE = Path(env_path).expanduser()
else:
    DEFAULT_SETTINGS_FILE = Path.home() / ".ear_trainer_settings.json"

# ``MIN_OCTAVE`` and ``MAX_OCTAVE`` bound the octaves accepted in pitch
# tokens. MIDI notes span C-1 through G9 but exercises only ever use the
# piano keyboard, so octave numbers outside 0-8 are rejected early.
MIN_OCTAVE = 0
MAX_OCTAVE = 8


def load_settings(path: Path = DEFAULT_SETTINGS_FILE) -> dict:
    """Load saved user settings from ``path`` if it exists.

    @param path (Path): Location of the settings file.
    @returns dict: Loaded settings or an empty dictionary when unavailable.
    """
    # Prefer the user's saved options but fall back to an empty
    # dictionary when the settings file is missing or unreadable.
    if path.is_file():
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except Exception as exc:  # pragma: no cover - log error but return defaults
            logging.error(f"Could not load settings: {exc}")
            return {}
        if isinstance(data, dict):
            return data
        logging.error("Settings file %s does not contain a JSON object", path)
    return {}


def save_settings(settings: dict, path: Path = DEFAULT_SETTINGS_FILE) -> None:
    """Save user ``settings`` to ``path`` as JSON.

    @param settings (dict): Options to be persisted.
    @param path (Path): Destination file path.
    @returns None: Function does not return a value.
    """
    # Any IOError is logged but ignored so failing to save
    # preferences never prevents an exercise from being generated.
    try:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(settings, fh, indent=2)
    except Exception as exc:  # pragma: no cover - log error only
        logging.error(f"Could not save settings: {exc}")


# NOTE_TO_SEMITONE maps both sharp and flat spellings to the correct
# semitone offset within an octave so that pitch parsing can handle
# enharmonic notes (e.g. ``Db`` and ``C#``).
NOTE_TO_SEMITONE: Dict[str, int] = {
    "C": 0,
    "B#": 0,
    "C#": 1,
    "Db": 1,
    "D": 2,
    "D#": 3,
    "Eb": 3,
    "E": 4,
    "Fb": 4,
    "E#": 5,
    "F": 5,
    "F#": 6,
    "Gb": 6,
    "G": 7,
    "G#": 8,
    "Ab": 8,
    "A": 9,
    "A#": 10,
    "Bb": 10,
    "B": 11,
    "Cb": 11,
}

# Chromatic pitch classes using sharps. Every pitch produced by the package is
# spelled with these names.
NOTES: List[str] = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

# The 88 keys of a piano, ``A0`` through ``C8``, in ascending order. Ranges
# passed to :func:`available_notes` are resolved by position in this list.
ALL_NOTES: List[str] = [
    f"{name}{octave}"
    for octave in range(MIN_OCTAVE, MAX_OCTAVE + 1)
    for name in NOTES
][NOTES.index("A"):NOTES.index("C") + 12 * MAX_OCTAVE + 1]


from .note_utils import (  # noqa: E402
    chromatic_index,
    compare_notes,
    get_interval,
    midi_to_note,
    note_range,
    note_to_midi,
    parse_note,
    pitch_class,
    transpose,
)
from .degrees import (  # noqa: E402
    DEGREE_LABELS,
    canonical_key,
    degree_for_note,
    degree_map,
    note_for_degree,
)
from .candidate_pool import available_notes  # noqa: E402
from .rhythm_engine import (  # noqa: E402
    DOTTED_DURATION_VALUES,
    DURATION_VALUES,
    RhythmEvent,
    RhythmGenerationError,
    RhythmGenerator,
    RhythmResult,
    generate_rhythm,
)
from .melody_engine import MelodicSequenceGenerator, generate_note_sequence  # noqa: E402
from .sequencer import (  # noqa: E402
    TimedEvent,
    create_full_sequence,
    create_metronome_events,
    sequence_duration,
    uniform_rhythm,
)
from .grading import GradeReport, grade_answers  # noqa: E402
from .exercises import (  # noqa: E402
    Exercise,
    ExerciseConfig,
    ExerciseGenerationError,
    build_exercise,
    cadence_chords,
    degree_group,
    level_config,
    total_groups,
)
from .midi_io import create_midi_file  # noqa: E402


def run_cli():
    from .cli import run_cli as _run_cli
    return _run_cli()


def main():
    from .cli import main as _main
    return _main()
