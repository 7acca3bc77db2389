"""Tests for the Flask based web interface.

The suite posts form values and queries the JSON API through Flask's test
client. It also asserts that ``FLASK_SECRET`` is enforced in production mode,
that oversized requests are rejected and that CSRF protection applies to the
form but not to the JSON grading endpoint.
"""

import importlib
import os
import sys
from pathlib import Path

import pytest

# Ensure the repository root is on ``sys.path`` so ``ear_trainer`` can be
# imported when tests execute from arbitrary locations.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

pytest.importorskip("flask")
pytest.importorskip("flask_wtf")

# Provide required configuration so ``create_app`` succeeds during tests.
os.environ.setdefault("FLASK_SECRET", "testing-secret")

web_gui = importlib.import_module("ear_trainer.web_gui")

app = web_gui.create_app()
# Disable CSRF protection for most tests to focus on request handling.
app.config["WTF_CSRF_ENABLED"] = False


@pytest.fixture()
def client():
    web_gui.REQUEST_LOG.clear()
    app.config["RATE_LIMIT_PER_MINUTE"] = None
    return app.test_client()


def _form(**overrides):
    data = {
        "key": "C",
        "notes": "",
        "range": "C3,C4",
        "length": "4",
        "min_interval": "1",
        "max_interval": "12",
        "total_beats": "4",
        "shortest": "8n",
        "longest": "2n",
        "rest_probability": "0.2",
        "bpm": "120",
        "seed": "5",
        "allow_rests": "1",
        "rhythm": "1",
    }
    data.update(overrides)
    return data


def test_csrf_protection_enforced():
    """Form submissions without a CSRF token are rejected with HTTP 400."""
    protected_app = web_gui.create_app()
    resp = protected_app.test_client().post("/", data={"key": "C"})
    assert resp.status_code == 400


def test_grade_endpoint_is_csrf_exempt():
    protected_app = web_gui.create_app()
    resp = protected_app.test_client().post(
        "/api/grade", json={"notes": ["C4"], "answers": ["1"], "key": "C"}
    )
    assert resp.status_code == 200


def test_index_renders_form(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert b"Ear Trainer" in resp.data
    assert b'name="range"' in resp.data


def test_valid_submission_renders_exercise(client):
    resp = client.post("/", data=_form())
    assert resp.status_code == 200
    assert b"Exercise in C" in resp.data


def test_invalid_length_redisplays_form(client):
    resp = client.post("/", data=_form(length="abc"))
    assert resp.status_code == 200
    assert b"Number of notes must be an integer." in resp.data
    assert b'value="abc"' in resp.data


def test_unknown_key_flashes_message(client):
    resp = client.post("/", data=_form(key="H"))
    assert b"Unknown key: H" in resp.data


def test_impossible_exercise_flashes_message(client):
    resp = client.post("/", data=_form(notes="C", range="C4,C4"))
    assert resp.status_code == 200
    assert b"Unable to generate an exercise" in resp.data


def test_api_rhythm(client):
    resp = client.get("/api/rhythm?length=3&total_beats=2&seed=4")
    data = resp.get_json()
    assert resp.status_code == 200
    assert data["complete"] is True
    assert sum(1 for e in data["rhythm"] if e["type"] == "note") == 3


def test_api_melody(client):
    resp = client.get(
        "/api/melody?key=D&notes=1,5&range=D3,D4&length=5&min_interval=0&seed=2"
    )
    data = resp.get_json()
    assert resp.status_code == 200
    assert set(data["notes"]) <= {"D3", "A3", "D4"}


def test_api_melody_infeasible(client):
    resp = client.get("/api/melody?notes=C&range=C4,C4&length=2")
    assert resp.status_code == 422
    assert "error" in resp.get_json()


def test_api_bad_parameter(client):
    resp = client.get("/api/melody?length=many")
    assert resp.status_code == 400


def test_api_exercise(client):
    data = client.get("/api/exercise?seed=1").get_json()
    assert set(data) >= {"notes", "degrees", "sequence", "metronome", "rhythm"}


def test_api_exercise_for_level(client):
    data = client.get("/api/exercise?level=2&seed=1").get_json()
    assert len(data["notes"]) == 3
    assert data["config"]["bpm"] == 200


def test_api_exercise_midi(client):
    pytest.importorskip("mido")
    resp = client.get("/api/exercise.mid?seed=1&cadence=1&metronome=1")
    assert resp.status_code == 200
    assert resp.headers["Content-Type"] == "audio/midi"
    assert resp.data.startswith(b"MThd")


def test_api_grade(client):
    resp = client.post(
        "/api/grade",
        json={"notes": ["C4", "G4"], "answers": ["1", "4"], "key": "C"},
    )
    data = resp.get_json()
    assert data["results"] == [True, False]
    assert data["percentage"] == 50


def test_api_grade_rejects_bad_payloads(client):
    assert client.post("/api/grade", json=["x"]).status_code == 400
    assert client.post("/api/grade", json={"notes": "C4", "answers": []}).status_code == 400
    resp = client.post("/api/grade", json={"notes": ["C4"], "answers": ["1"]})
    assert resp.status_code == 400


def test_api_levels(client):
    data = client.get("/api/levels/1").get_json()
    assert data["groups"] == 21
    assert data["degrees"] == ["1", "2"]
    assert data["config"]["number_of_notes"] == 5
    assert client.get("/api/levels/0").status_code == 400


def test_missing_secret_in_production(monkeypatch):
    monkeypatch.delenv("FLASK_SECRET", raising=False)
    with pytest.raises(RuntimeError):
        web_gui.create_app()


def test_rejects_oversized_request():
    """Payloads larger than ``MAX_CONTENT_LENGTH`` are rejected with HTTP 413."""
    oversized_app = web_gui.create_app()
    oversized_app.config["WTF_CSRF_ENABLED"] = False
    oversized_app.config["MAX_CONTENT_LENGTH"] = 100
    resp = oversized_app.test_client().post("/", data={"payload": "x" * 200})
    assert resp.status_code == 413


def test_rate_limit_enforces_limit(client):
    """Requests beyond the configured threshold return HTTP 429."""
    app.config["RATE_LIMIT_PER_MINUTE"] = 1
    assert client.get("/").status_code == 200
    second = client.get("/")
    assert second.status_code == 429
    assert int(second.headers["Retry-After"]) > 0


def test_rate_limit_purges_expired_entries(client):
    app.config["RATE_LIMIT_PER_MINUTE"] = 5
    web_gui.REQUEST_LOG["stale"] = (web_gui.monotonic() - web_gui.RATE_LIMIT_WINDOW * 2, 1)
    assert client.get("/").status_code == 200
    assert "stale" not in web_gui.REQUEST_LOG


def test_invalid_rate_limit_disables_throttle(client, caplog):
    app.config["RATE_LIMIT_PER_MINUTE"] = "fast"
    for _ in range(3):
        assert client.get("/").status_code == 200
    assert "Invalid RATE_LIMIT_PER_MINUTE" in caplog.text


@pytest.mark.parametrize(
    "payload",
    [
        {"notes": [60], "answers": ["1"], "key": "C"},
        {"notes": ["C4"], "answers": [1], "key": "C"},
        {"notes": ["C4"], "answers": ["1"], "key": 0},
        {"notes": ["C4"], "answers": ["1"], "key": "C", "mode": ["note"]},
    ],
)
def test_api_grade_rejects_non_string_entries(client, payload):
    resp = client.post("/api/grade", json=payload)
    assert resp.status_code == 400
    assert "error" in resp.get_json()


def test_api_rhythm_rejects_unbounded_total(client):
    assert client.get("/api/rhythm?total_beats=1e20&seed=1").status_code == 400
    assert client.get("/api/rhythm?total_beats=inf&seed=1").status_code == 400
