"""Tests for exercise configuration, levels, cadences and the builder."""

import importlib
import logging
import math
import random
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

exercises = importlib.import_module("ear_trainer.exercises")
ExerciseConfig = exercises.ExerciseConfig


def test_total_groups_counts_degree_combinations():
    assert exercises.total_groups(1) == 21
    assert exercises.total_groups(2) == 35
    assert exercises.total_groups(6) == 1
    assert exercises.total_groups(10) == 1


def test_degree_group_windows():
    assert exercises.degree_group(1, 1) == ["1", "2"]
    assert exercises.degree_group(2, 3) == ["3", "4", "5"]
    assert exercises.degree_group(2, 6) == ["1", "2", "3"]
    assert exercises.degree_group(6) == ["1", "2", "3", "4", "5", "6", "7"]


def test_degree_group_rejects_invalid_arguments():
    with pytest.raises(ValueError):
        exercises.degree_group(0)
    with pytest.raises(ValueError):
        exercises.degree_group(1, 0)


def test_level_config_uses_level_table():
    config = exercises.level_config(1)
    assert config.number_of_notes == 5
    assert config.total_beats == 2
    assert config.bpm == 200
    assert config.notes == ["1", "2"]
    assert config.note_range == ("C4", "B4")


def test_level_config_for_other_key_and_unknown_level():
    assert exercises.level_config(3, key="G").note_range == ("G4", "F#5")
    config = exercises.level_config(99)
    assert (config.number_of_notes, config.max_interval, config.total_beats) == (2, 2, 2)


@pytest.mark.parametrize("level", range(1, 7))
def test_levels_always_build(level):
    config = exercises.level_config(level, 1, "D")
    exercise = exercises.build_exercise(config, rng=random.Random(level))
    assert exercise.attempts == 1
    assert len(exercise.pitches) == config.number_of_notes
    assert math.isclose(exercise.total_beats, config.total_beats, abs_tol=1e-3)
    assert set(exercise.degrees) <= set(config.notes)


def test_from_mapping_accepts_aliases_and_ignores_unknown():
    config = ExerciseConfig.from_mapping(
        {"keyId": "d", "numberOfNotes": 3, "range": "C3-C4", "notes": "1, 5", "colour": "red"}
    )
    assert config.key == "d"
    assert config.number_of_notes == 3
    assert config.note_range == ("C3", "C4")
    assert config.notes == ["1", "5"]


def test_validate_normalises_key_and_range():
    config = ExerciseConfig(key="eb", note_range=("Bb3", "C5")).validate()
    assert config.key == "D#"
    assert config.note_range == ("A#3", "C5")
    assert config.shortest_duration == "8n"


@pytest.mark.parametrize(
    "overrides",
    [
        {"key": "H"},
        {"number_of_notes": 0},
        {"min_interval": 5, "max_interval": 3},
        {"max_interval": -1},
        {"total_beats": 0},
        {"total_beats": float("inf")},
        {"total_beats": 1e20},
        {"shortest_duration": "2n", "longest_duration": "8n"},
        {"shortest_duration": "4n."},
        {"rest_probability": 2},
        {"bpm": 0},
        {"note_range": ("C4",)},
        {"note_range": ("C4", "X4")},
    ],
)
def test_validate_rejects_bad_fields(overrides):
    with pytest.raises(ValueError):
        ExerciseConfig(**overrides).validate()


def test_build_exercise_default_config():
    exercise = exercises.build_exercise(ExerciseConfig(), rng=random.Random(4))
    notes = [event.pitch for event in exercise.sequence if event.is_note]
    assert notes == exercise.pitches
    assert math.isclose(exercise.total_beats, 4, abs_tol=1e-3)
    data = exercise.to_dict()
    assert set(data) >= {"config", "notes", "degrees", "rhythm", "sequence", "metronome", "attempts"}
    assert len(data["metronome"]) == 4


def test_build_exercise_without_rhythm_uses_quarters():
    config = ExerciseConfig(number_of_notes=3, rhythm=False)
    exercise = exercises.build_exercise(config, rng=random.Random(0))
    assert [event.duration for event in exercise.rhythm] == ["4n"] * 3


def test_build_exercise_retries_then_fails_on_melody(caplog):
    config = ExerciseConfig(notes=["C"], note_range=("C4", "C4"), number_of_notes=3)
    with caplog.at_level(logging.WARNING):
        with pytest.raises(exercises.ExerciseGenerationError):
            exercises.build_exercise(config, rng=random.Random(0), max_attempts=3)
    assert caplog.text.count("melody constraints could not be met") == 3


def test_build_exercise_fails_on_incomplete_rhythm():
    config = ExerciseConfig(number_of_notes=8, total_beats=1, allow_rests=False)
    with pytest.raises(exercises.ExerciseGenerationError):
        exercises.build_exercise(config, rng=random.Random(0))


def test_build_exercise_empty_pool():
    config = ExerciseConfig(notes=["9"])
    with pytest.raises(exercises.ExerciseGenerationError):
        exercises.build_exercise(config, rng=random.Random(0))


def test_build_exercise_requires_an_attempt():
    with pytest.raises(ValueError):
        exercises.build_exercise(ExerciseConfig(), max_attempts=0)


def test_cadence_chords():
    assert exercises.cadence_chords("C") == [
        ["C4", "E4", "G4"],
        ["F4", "A4", "C5"],
        ["G4", "B4", "D5"],
        ["C4", "E4", "G4"],
    ]
    chords = exercises.cadence_chords("g")
    assert chords[0][0] == "G4"
    assert chords[1][0] == "C4"
    assert chords[2][0] == "D4"
