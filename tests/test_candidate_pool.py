"""Tests for range slicing, selection filtering and key rotation."""

import importlib
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

ear_trainer = importlib.import_module("ear_trainer")
available_notes = ear_trainer.available_notes
ALL_NOTES = ear_trainer.ALL_NOTES
note_range = ear_trainer.note_range


def test_single_octave_rotates_to_key_without_selection():
    """An empty selection keeps every pitch but still starts on the key."""
    octave = note_range("C4", "B4")
    result = available_notes(octave, ("C4", "B4"), [], "D")
    assert result[0] == "D4"
    assert result[result.index("B4") + 1] == "C4"
    assert result == octave[2:] + octave[:2]


def test_no_key_returns_plain_slice():
    assert available_notes(ALL_NOTES, ("C4", "E4"), None, None) == [
        "C4", "C#4", "D4", "D#4", "E4",
    ]


def test_filtering_is_idempotent():
    pool = available_notes(ALL_NOTES, ("C3", "C5"), ["1", "3", "5"], "G")
    assert pool == ["G3", "B3", "D4", "G4", "B4", "D3"]
    again = available_notes(pool, (pool[0], pool[-1]), ["1", "3", "5"], "G")
    assert again == pool
    assert available_notes(pool, (pool[0], pool[-1]), [], "G") == pool


def test_selection_by_note_name():
    result = available_notes(ALL_NOTES, ("C4", "C5"), ["C", "E"])
    assert result == ["C4", "E4", "C5"]


def test_selection_mixes_names_and_degrees():
    """``5`` in F is ``C``; ``E`` matches literally."""
    result = available_notes(ALL_NOTES, ("C4", "B4"), ["E", "5"], "F")
    assert result == ["C4", "E4"]


def test_flat_key_is_resolved():
    assert available_notes(ALL_NOTES, ("C4", "C5"), ["1"], "Bb") == ["A#4"]


def test_unknown_key_disables_degree_matching():
    assert available_notes(ALL_NOTES, ("C4", "C5"), ["1"], "H") == []
    assert available_notes(ALL_NOTES, ("C4", "D4"), ["D", "C"], "H") == ["C4", "D4"]


def test_key_missing_from_result_leaves_order():
    assert available_notes(ALL_NOTES, ("C4", "B4"), ["E", "G"], "C") == ["E4", "G4"]


def test_invalid_ranges_return_empty():
    assert available_notes(ALL_NOTES, ("C5", "C4")) == []
    assert available_notes(ALL_NOTES, ("C4", "Z9")) == []
    assert available_notes(ALL_NOTES, ("C4",)) == []
    assert available_notes(ALL_NOTES, None) == []


def test_filter_removing_everything_returns_empty():
    assert available_notes(ALL_NOTES, ("C4", "D4"), ["F"], "C") == []
