"""Unit tests for the rhythm generation engine."""

import importlib
import logging
import math
import random
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

rhythm = importlib.import_module("ear_trainer.rhythm_engine")


@pytest.mark.parametrize("seed", range(25))
def test_sum_and_note_count_invariants(seed):
    """Feasible requests fill the bar exactly with the requested notes."""
    result = rhythm.generate_rhythm(4, "16n", "2n", 5, True, 0.3, rng=random.Random(seed))
    assert result.complete
    assert math.isclose(result.beats, 4, abs_tol=1e-3)
    assert result.note_count == 5


@pytest.mark.parametrize("seed", range(10))
def test_events_respect_duration_bounds(seed):
    result = rhythm.generate_rhythm(3, "8n", "4n", 3, True, 0.5, rng=random.Random(seed))
    for event in result:
        assert 0.5 <= event.beats <= 1.0


@pytest.mark.parametrize("seed", range(20))
def test_no_rests_when_disabled(seed):
    result = rhythm.generate_rhythm(4, "16n", "2n", 3, False, 1.0, rng=random.Random(seed))
    assert result.rest_count == 0


@pytest.mark.parametrize("seed", range(20))
def test_zero_rest_probability_only_pads_the_end(seed):
    """Without interleaved rests every rest comes after the last note."""
    result = rhythm.generate_rhythm(4, "8n", "4n", 2, True, 0.0, rng=random.Random(seed))
    kinds = [event.kind for event in result]
    if "rest" in kinds:
        assert "note" not in kinds[kinds.index("rest"):]
    assert result.complete


def test_fixed_duration_produces_uniform_notes():
    result = rhythm.generate_rhythm(
        4, "quarter", "quarter", 4, False, rng=random.Random(0)
    )
    assert [event.kind for event in result] == ["note"] * 4
    assert [event.beats for event in result] == [1.0] * 4
    assert [event.duration for event in result] == ["4n"] * 4
    assert result.complete


def test_remainder_is_merged_into_last_event():
    """``0.25`` left over is folded into the final quarter note."""
    result = rhythm.generate_rhythm(
        4.25, "quarter", "quarter", 4, False, rng=random.Random(0)
    )
    assert result.note_count == 4
    last = result[-1]
    assert last.beats == pytest.approx(1.25)
    assert last.is_stretched
    assert last.duration == rhythm.STRETCHED_PREFIX + "4n"
    assert result.complete


def test_remainder_renamed_when_table_has_entry():
    result = rhythm.generate_rhythm(
        4.5, "4n", "4n", 4, False, dotted=True, rng=random.Random(0)
    )
    assert result[-1].duration == "4n."
    assert not result[-1].is_stretched
    assert result.complete


def test_zero_notes_with_rests_is_rest_only():
    result = rhythm.generate_rhythm(4, "8n", "2n", 0, True, rng=random.Random(3))
    assert result.note_count == 0
    assert result.rest_count > 0
    assert result.complete


def test_zero_notes_without_rests_is_empty_and_incomplete():
    result = rhythm.generate_rhythm(4, "8n", "2n", 0, False, rng=random.Random(3))
    assert len(result) == 0
    assert not result.complete


def test_infeasible_request_aborts(caplog):
    """Eight eighth notes cannot fit into one beat."""
    with caplog.at_level(logging.WARNING):
        result = rhythm.generate_rhythm(1, "8n", "2n", 8, False, rng=random.Random(1))
    assert result.note_count < 8
    assert not result.complete
    assert "Cannot fit" in caplog.text


@pytest.mark.parametrize(
    "kwargs",
    [
        {"total_beats": 0},
        {"total_beats": float("inf")},
        {"total_beats": float("nan")},
        {"total_beats": 1e20},
        {"n": -1},
        {"rest_probability": 1.5},
        {"shortest_duration": "2n", "longest_duration": "4n"},
        {"shortest_duration": "3n"},
    ],
)
def test_invalid_arguments_raise(kwargs):
    with pytest.raises(ValueError):
        rhythm.generate_rhythm(**kwargs)


def test_random_duration_without_candidates_raises():
    generator = rhythm.RhythmGenerator({"4n": 1.0}, rng=random.Random(0))
    with pytest.raises(rhythm.RhythmGenerationError):
        generator.random_duration(0.1, 0.5)


def test_custom_table_is_copied():
    table = {"4n": 1.0, "2n": 2.0}
    generator = rhythm.RhythmGenerator(table)
    table["1n"] = 4.0
    assert "1n" not in generator.durations


def test_non_positive_durations_rejected():
    with pytest.raises(ValueError):
        rhythm.RhythmGenerator({"4n": 0})


def test_aliases_resolve_to_tokens():
    generator = rhythm.RhythmGenerator()
    assert generator.value_of("Eighth") == 0.5
    assert generator.value_of("16th") == 0.25
    assert generator.notation_for(2.0) == "2n"
    assert generator.notation_for(1.25) is None


def test_same_seed_same_rhythm():
    first = rhythm.generate_rhythm(4, "16n", "2n", 4, rng=random.Random(42))
    second = rhythm.generate_rhythm(4, "16n", "2n", 4, rng=random.Random(42))
    assert first.to_list() == second.to_list()


def test_event_serialisation_shape():
    result = rhythm.generate_rhythm(2, "4n", "4n", 2, False, rng=random.Random(0))
    assert result.to_list() == [
        {"type": "note", "duration": "4n", "value": 1.0},
        {"type": "note", "duration": "4n", "value": 1.0},
    ]


def test_longest_allowed_total_is_filled():
    result = rhythm.generate_rhythm(
        rhythm.MAX_TOTAL_BEATS, "2n", "1n", 4, True, 0.2, rng=random.Random(0)
    )
    assert result.complete
    assert math.isclose(result.beats, rhythm.MAX_TOTAL_BEATS)
