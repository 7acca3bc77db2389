"""Tests for pitch token parsing and conversion helpers."""

import importlib
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

ear_trainer = importlib.import_module("ear_trainer")
note_utils = importlib.import_module("ear_trainer.note_utils")


def test_parse_note_normalises_flats_and_case():
    """Lowercase letters and flats are accepted and respelled with sharps."""
    assert note_utils.parse_note("eb3") == ("D#", 3)
    assert note_utils.parse_note(" C#4 ") == ("C#", 4)


def test_parse_note_enharmonic_octave_crossing():
    """``B#3`` sounds as ``C4`` and ``Cb4`` as ``B3``."""
    assert note_utils.parse_note("B#3") == ("C", 4)
    assert note_utils.parse_note("Cb4") == ("B", 3)


@pytest.mark.parametrize("token", ["H4", "C", "4", "", "C9", "C-1", "Cb0", "C##4"])
def test_parse_note_rejects_invalid_tokens(token):
    with pytest.raises(ValueError):
        note_utils.parse_note(token)


def test_chromatic_index_and_midi_numbers():
    assert note_utils.chromatic_index("C4") == 48
    assert note_utils.chromatic_index("A0") == 9
    assert note_utils.note_to_midi("C4") == 60
    assert note_utils.note_to_midi("A0") == 21
    assert note_utils.note_to_midi("Db4") == 61


def test_midi_to_note_round_trip_and_bounds():
    assert note_utils.midi_to_note(60) == "C4"
    assert note_utils.midi_to_note(61) == "C#4"
    with pytest.raises(ValueError):
        note_utils.midi_to_note(128)


def test_get_interval_ignores_octave_equivalence():
    """An octave is twelve semitones, not zero."""
    assert note_utils.get_interval("C4", "C5") == 12
    assert note_utils.get_interval("B3", "C4") == 1
    assert note_utils.get_interval("G4", "C4") == 7


def test_compare_notes_orders_by_pitch():
    assert note_utils.compare_notes("B3", "C4") == -1
    assert note_utils.compare_notes("C#4", "Db4") == 0
    assert note_utils.compare_notes("C5", "B4") == 1


def test_note_range_is_inclusive():
    assert note_utils.note_range("A3", "C4") == ["A3", "A#3", "B3", "C4"]
    assert note_utils.note_range("C4", "B3") == []


def test_transpose():
    assert note_utils.transpose("B3", 1) == "C4"
    assert note_utils.transpose("C4", -13) == "B2"
    with pytest.raises(ValueError):
        note_utils.transpose("C8", 12)


def test_all_notes_covers_piano_keyboard():
    assert len(ear_trainer.ALL_NOTES) == 88
    assert ear_trainer.ALL_NOTES[0] == "A0"
    assert ear_trainer.ALL_NOTES[-1] == "C8"
    indices = [note_utils.chromatic_index(n) for n in ear_trainer.ALL_NOTES]
    assert indices == sorted(indices)
