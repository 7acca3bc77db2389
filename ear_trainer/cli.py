"""Command line helpers for Ear Trainer.

Modification summary
--------------------
* ``--mode`` selects between a bare rhythm, a bare melody and a complete
  exercise so each generator can be inspected on its own.
* ``--settings-file`` seeds the exercise defaults from a saved JSON file and
  ``--save-settings`` writes the effective configuration back.
* ``--level`` and ``--group`` build the graded practice configuration instead
  of reading individual options.
* ``--output`` writes the exercise as MIDI, optionally preceded by an
  I-IV-V-I cadence and accompanied by a metronome track.

This module implements the console entry points for the project.
:func:`run_cli` parses command line arguments, generates the requested
material and prints it as JSON on standard output. :func:`main` configures
logging before delegating to :func:`run_cli`.

Example
-------
Running ``python -m ear_trainer --mode exercise --key G --notes 1,3,5 \
    --range G3,G4 --length 4 --seed 7 --output out.mid`` prints a four-note
exercise drawn from the tonic triad of G major and saves it to ``out.mid``.
"""

from __future__ import annotations

import argparse
import json
import logging
import random
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import (
    DEFAULT_SETTINGS_FILE,
    DOTTED_DURATION_VALUES,
    DURATION_VALUES,
    NOTES,
    canonical_key,
    load_settings,
    save_settings,
)
from .exercises import (
    ExerciseConfig,
    ExerciseGenerationError,
    build_exercise,
    cadence_chords,
    level_config,
)
from .rhythm_engine import RhythmGenerationError
from .utils import parse_note_range, parse_selection

__all__ = ["run_cli", "main", "build_parser"]

logger = logging.getLogger(__name__)

_MODES = ("rhythm", "melody", "exercise")


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser used by :func:`run_cli`.

    Exercise options default to ``None`` so explicitly supplied values can
    be told apart from ones that should come from the settings file.
    """

    parser = argparse.ArgumentParser(
        description="Generate ear-training rhythms, melodies and exercises."
    )
    parser.add_argument("--list-keys", action="store_true", help="List all supported keys and exit")
    parser.add_argument("--list-durations", action="store_true", help="List all duration tokens and exit")
    parser.add_argument("--mode", choices=_MODES, default="exercise", help="What to generate (default: exercise).")
    parser.add_argument("--key", type=str, help="Key used for degree selection and rotation (e.g. C, F#, Bb).")
    parser.add_argument("--notes", type=str, help="Comma-separated note names or scale degrees (e.g. 1,3,5 or C,E,G).")
    parser.add_argument("--range", dest="note_range", type=str, help="Lowest and highest pitch, e.g. C3,C4 or C3-C4.")
    parser.add_argument("--length", type=int, help="Number of notes to generate.")
    parser.add_argument("--min-interval", type=int, help="Smallest allowed leap in semitones.")
    parser.add_argument("--max-interval", type=int, help="Largest allowed leap in semitones.")
    parser.add_argument("--total-beats", type=float, help="Length of the rhythm in quarter-note beats.")
    parser.add_argument("--shortest", type=str, help="Shortest duration token (e.g. 16n, eighth).")
    parser.add_argument("--longest", type=str, help="Longest duration token (e.g. 2n, half).")
    parser.add_argument("--no-rests", dest="allow_rests", action="store_const", const=False, help="Never insert rests.")
    parser.add_argument("--rest-probability", type=float, help="Chance of a rest at each step (0-1).")
    parser.add_argument("--dotted", action="store_const", const=True, help="Allow dotted durations.")
    parser.add_argument("--no-rhythm", dest="rhythm", action="store_const", const=False, help="Give every note a quarter-note duration.")
    parser.add_argument("--level", type=int, help="Use the graded configuration for this level.")
    parser.add_argument("--group", type=int, default=1, help="Degree group within --level (default: 1).")
    parser.add_argument("--bpm", type=int, help="Tempo used for MIDI export.")
    parser.add_argument("--seed", type=int, help="Random seed for reproducible output")
    parser.add_argument("--output", type=str, help="Write the exercise to this MIDI file.")
    parser.add_argument("--cadence", action="store_true", help="Prefix the MIDI file with an I-IV-V-I cadence.")
    parser.add_argument("--metronome", action="store_true", help="Add a metronome track to the MIDI file.")
    parser.add_argument("--settings-file", type=str, help="Path to the JSON settings file with exercise defaults")
    parser.add_argument("--save-settings", action="store_true", help="Store the effective options in the settings file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def _fail(message: str) -> None:
    logger.error(message)
    sys.exit(1)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2))


def _config_from_args(args: argparse.Namespace, settings: Dict[str, Any]) -> ExerciseConfig:
    """Merge saved ``settings`` with the explicitly supplied ``args``."""

    overrides: Dict[str, Any] = {}
    if args.key is not None:
        overrides["key"] = args.key
    if args.notes is not None:
        overrides["notes"] = parse_selection(args.notes)
    if args.note_range is not None:
        overrides["note_range"] = parse_note_range(args.note_range)
    for name, attr in (
        ("number_of_notes", "length"),
        ("min_interval", "min_interval"),
        ("max_interval", "max_interval"),
        ("total_beats", "total_beats"),
        ("shortest_duration", "shortest"),
        ("longest_duration", "longest"),
        ("allow_rests", "allow_rests"),
        ("rest_probability", "rest_probability"),
        ("dotted", "dotted"),
        ("rhythm", "rhythm"),
        ("bpm", "bpm"),
    ):
        value = getattr(args, attr)
        if value is not None:
            overrides[name] = value
    merged = dict(settings)
    merged.update(overrides)
    return ExerciseConfig.from_mapping(merged).validate()


def run_cli(argv: Optional[List[str]] = None) -> None:
    """Parse ``argv`` (default ``sys.argv[1:]``) and print the result.

    Invalid options are logged and terminate the process with exit status
    ``1``. A melody or exercise that cannot be generated with the given
    constraints is treated the same way.
    """

    argv = sys.argv[1:] if argv is None else argv
    if "--list-keys" in argv:
        print("\n".join(NOTES))
        return
    if "--list-durations" in argv:
        table = dict(DURATION_VALUES)
        table.update(DOTTED_DURATION_VALUES)
        print("\n".join(f"{name}\t{value:g}" for name, value in table.items()))
        return

    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    settings_path = (
        Path(args.settings_file).expanduser() if args.settings_file else DEFAULT_SETTINGS_FILE
    )
    settings = load_settings(settings_path)
    rng = random.Random(args.seed)
    if args.seed is not None:
        logger.debug("Using random seed %d", args.seed)

    try:
        if args.level is not None:
            config = level_config(args.level, args.group, args.key or "C")
        else:
            config = _config_from_args(args, settings)
    except ValueError as exc:
        _fail(str(exc))

    if args.save_settings:
        save_settings(config.to_dict(), settings_path)
        logger.info("Settings saved to %s", settings_path)

    if args.mode == "rhythm":
        from .rhythm_engine import generate_rhythm

        try:
            result = generate_rhythm(
                total_beats=config.total_beats,
                shortest_duration=config.shortest_duration,
                longest_duration=config.longest_duration,
                n=config.number_of_notes,
                allow_rests=config.allow_rests,
                rest_probability=config.rest_probability,
                dotted=config.dotted,
                rng=rng,
            )
        except RhythmGenerationError as exc:
            _fail(str(exc))
        _emit({"rhythm": result.to_list(), "complete": result.complete})
        return

    if args.mode == "melody":
        from .melody_engine import generate_note_sequence

        melody = generate_note_sequence(
            config.key,
            config.notes,
            config.note_range,
            config.number_of_notes,
            config.max_interval,
            config.min_interval,
            rng=rng,
        )
        if not melody:
            _fail("No melody satisfies the note pool and interval constraints.")
        _emit({"notes": melody, "key": canonical_key(config.key)})
        return

    try:
        exercise = build_exercise(config, rng=rng)
    except ExerciseGenerationError as exc:
        _fail(str(exc))
    _emit(exercise.to_dict())

    if args.output:
        from .midi_io import create_midi_file

        try:
            create_midi_file(
                exercise.sequence,
                config.bpm,
                args.output,
                cadence=cadence_chords(config.key) if args.cadence else None,
                metronome=args.metronome,
            )
        except (OSError, ImportError) as exc:
            _fail(f"Could not write MIDI file: {exc}")
    logger.info("Exercise generation complete.")


def main() -> None:
    """Console script entry point."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    run_cli()
