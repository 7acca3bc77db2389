#!/usr/bin/env python3
"""Flask web interface for Ear Trainer.

The module exposes the generators over HTTP in two ways. A small HTML form
lets a learner configure an exercise, listen to it as MIDI and type the
answers. A JSON API under ``/api`` serves the same material to richer
browser front-ends that schedule playback themselves.

The application is assembled by :func:`create_app`:

* **CSRF protection**: Flask-WTF's :class:`~flask_wtf.csrf.CSRFProtect`
  validates tokens for form submissions. ``POST /api/grade`` receives JSON
  from scripts and is exempt.
* **Request size limiting**: ``MAX_CONTENT_LENGTH`` is derived from
  ``MAX_UPLOAD_MB`` so oversized payloads are rejected with ``413``.
* **Rate limiting**: an in-memory per-IP throttle configured through
  ``RATE_LIMIT_PER_MINUTE`` answers ``429`` with a ``Retry-After`` header.
* **Form state preservation**: validation failures re-render the form with
  the user's previous selections and highlight the offending field.

JSON endpoints
--------------
``GET /api/rhythm``
    Rhythm only; ``complete`` reports whether the bar was filled.
``GET /api/melody``
    Pitches only. ``422`` when the interval bounds cannot be satisfied.
``GET /api/exercise``
    Full exercise including timed sequence, degrees and metronome clicks.
``GET /api/exercise.mid``
    The exercise rendered as a MIDI download.
``POST /api/grade``
    Body ``{"notes": [...], "answers": [...], "key": "C", "mode": "degree"}``.
``GET /api/levels/<level>``
    Group count, degrees and configuration for a graded level.

All generation endpoints accept the same query parameters as the form
(``key``, ``notes``, ``range``, ``length``, ``min_interval``,
``max_interval``, ``total_beats``, ``shortest``, ``longest``,
``allow_rests``, ``rest_probability``, ``seed``) plus ``level`` and
``group``.
"""

from __future__ import annotations

import base64
import logging
import math
import os
import random
import secrets
from tempfile import NamedTemporaryFile
from threading import Lock
from time import monotonic
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Set, Tuple

from flask import (
    Flask,
    Response,
    current_app,
    flash,
    jsonify,
    make_response,
    render_template,
    request,
)
from flask_wtf.csrf import CSRFProtect

from . import DURATION_VALUES, NOTES
from .exercises import (
    Exercise,
    ExerciseConfig,
    ExerciseGenerationError,
    build_exercise,
    cadence_chords,
    degree_group,
    level_config,
    total_groups,
)
from .grading import grade_answers
from .melody_engine import generate_note_sequence
from .midi_io import create_midi_file
from .rhythm_engine import RhythmGenerationError, generate_rhythm
from .utils import (
    parse_bool,
    parse_note_range,
    parse_optional_int,
    parse_selection,
    validate_bpm,
)

__all__ = ["create_app", "rate_limit", "csrf", "REQUEST_LOG"]

# Logger used throughout the module for diagnostic messages.
logger = logging.getLogger(__name__)

# CSRF protection instance. ``init_app`` is invoked inside ``create_app`` so
# tests can control when protection is enabled.
csrf = CSRFProtect()

# Per-IP request counters as ``ip -> (window_start, count)``. Guarded by
# ``REQUEST_LOCK`` because the development server handles requests on
# several threads.
REQUEST_LOG: Dict[str, Tuple[float, int]] = {}
REQUEST_LOCK = Lock()

# Length of one rate-limit window in seconds, measured with ``monotonic``.
RATE_LIMIT_WINDOW = 60.0


class FormError(ValueError):
    """Invalid request parameter, remembering which field caused it."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


def rate_limit() -> Optional[Response]:
    """Enforce a naive per-IP request limit.

    Registered as a ``before_request`` hook. ``RATE_LIMIT_PER_MINUTE`` of
    ``None``, zero or an unparsable value disables the limiter. Once a client
    exceeds the limit a ``429`` response carries a ``Retry-After`` header
    with the seconds left in the current window.

    Returns:
        Optional[Response]: ``Response`` when the limit is exceeded,
        otherwise ``None`` so the request proceeds.
    """

    limit_raw = current_app.config.get("RATE_LIMIT_PER_MINUTE")
    if limit_raw is None:
        return None
    try:
        limit = int(limit_raw)
    except (TypeError, ValueError):
        logger.warning(
            "Invalid RATE_LIMIT_PER_MINUTE %r; disabling rate limiting", limit_raw
        )
        return None
    if limit <= 0:
        if limit < 0:
            logger.warning(
                "RATE_LIMIT_PER_MINUTE must be positive; disabling rate limiting (received %r)",
                limit_raw,
            )
        return None

    now = monotonic()
    ip_addr = request.remote_addr or "unknown"

    with REQUEST_LOCK:
        expired = [
            ip for ip, (start, _) in REQUEST_LOG.items()
            if now - start >= RATE_LIMIT_WINDOW
        ]
        for ip in expired:
            del REQUEST_LOG[ip]

        window_start, count = REQUEST_LOG.get(ip_addr, (now, 0))
        if count >= limit:
            remaining = math.ceil(max(0.0, RATE_LIMIT_WINDOW - (now - window_start)))
            response = make_response("Too many requests", 429)
            response.headers["Retry-After"] = str(remaining)
            return response
        REQUEST_LOG[ip_addr] = (window_start, count + 1)

    return None


# Default values for text inputs. Stored as strings so they can be injected
# directly into the HTML ``value`` attribute.
_FORM_TEXT_DEFAULTS: Dict[str, str] = {
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
    "seed": "",
}

# Checkbox defaults. A checkbox missing from a submitted form is unchecked.
_FORM_CHECKBOX_DEFAULTS: Dict[str, bool] = {
    "allow_rests": True,
    "rhythm": True,
    "dotted": False,
    "cadence": False,
    "metronome": False,
}


def _default_form_values() -> Dict[str, object]:
    return {**_FORM_TEXT_DEFAULTS, **_FORM_CHECKBOX_DEFAULTS}


def _extract_form_values(form: Mapping[str, str]) -> Dict[str, object]:
    """Return submitted form data merged with defaults for re-rendering.

    Text fields stay strings; checkboxes become booleans that are ``True``
    only when the browser submitted them.
    """

    merged = _default_form_values()
    for name in _FORM_TEXT_DEFAULTS:
        if name in form:
            merged[name] = form.get(name, "")
    for name in _FORM_CHECKBOX_DEFAULTS:
        merged[name] = bool(form.get(name))
    return merged


def _convert(values: Mapping[str, Any], name: str, convert: Callable[[Any], Any], message: str) -> Any:
    """Apply ``convert`` to ``values[name]`` translating errors to ``FormError``."""

    try:
        return convert(values.get(name))
    except (TypeError, ValueError) as exc:
        raise FormError(name, message) from exc


def _float(value: Any) -> float:
    return float(value)


def _config_from_values(values: Mapping[str, Any]) -> ExerciseConfig:
    """Build a validated :class:`ExerciseConfig` from form or query values.

    Missing text values fall back to ``_FORM_TEXT_DEFAULTS`` and missing
    booleans to ``_FORM_CHECKBOX_DEFAULTS``.

    Raises
    ------
    FormError
        Naming the first field that failed to parse or validate.
    """

    merged: Dict[str, Any] = _default_form_values()
    merged.update({k: v for k, v in values.items() if v is not None})

    level = _convert(merged, "level", parse_optional_int, "Level must be an integer.")
    if level is not None:
        group = _convert(merged, "group", parse_optional_int, "Group must be an integer.") or 1
        try:
            return level_config(level, group, merged["key"] or "C")
        except ValueError as exc:
            raise FormError("level", str(exc)) from exc

    config = ExerciseConfig(
        key=merged["key"] or "C",
        notes=parse_selection(merged["notes"]),
        note_range=_convert(
            merged, "range", parse_note_range, "Range must contain two notes, e.g. C3,C4."
        ),
        number_of_notes=_convert(merged, "length", int, "Number of notes must be an integer."),
        min_interval=_convert(
            merged, "min_interval", parse_optional_int, "Minimum interval must be an integer."
        ),
        max_interval=_convert(
            merged, "max_interval", parse_optional_int, "Maximum interval must be an integer."
        ),
        total_beats=_convert(merged, "total_beats", _float, "Total beats must be a number."),
        shortest_duration=merged["shortest"],
        longest_duration=merged["longest"],
        allow_rests=_convert(merged, "allow_rests", parse_bool, "allow_rests must be a boolean."),
        rest_probability=_convert(
            merged, "rest_probability", _float, "Rest probability must be a number."
        ),
        dotted=_convert(merged, "dotted", parse_bool, "dotted must be a boolean."),
        rhythm=_convert(merged, "rhythm", parse_bool, "rhythm must be a boolean."),
        bpm=_convert(merged, "bpm", validate_bpm, "BPM must be a positive integer."),
    )
    try:
        return config.validate()
    except ValueError as exc:
        raise FormError(_field_for_error(str(exc)), str(exc)) from exc


# Maps fragments of ``ExerciseConfig.validate`` messages to form field names
# so the template can highlight the right input.
_ERROR_FIELDS = (
    ("key", "key"),
    ("number_of_notes", "length"),
    ("min_interval", "min_interval"),
    ("max_interval", "max_interval"),
    ("total_beats", "total_beats"),
    ("duration", "shortest"),
    ("rest_probability", "rest_probability"),
    ("note", "range"),
)


def _field_for_error(message: str) -> str:
    lowered = message.lower()
    for fragment, name in _ERROR_FIELDS:
        if fragment in lowered:
            return name
    return "range"


def _rng_from(values: Mapping[str, Any]) -> random.Random:
    seed = _convert(values, "seed", parse_optional_int, "Seed must be an integer.")
    return random.Random(seed)


def _render_midi(exercise: Exercise, cadence: bool, metronome: bool) -> bytes:
    """Return the MIDI bytes for ``exercise`` using a temporary file."""

    tmp = NamedTemporaryFile(suffix=".mid", delete=False)
    tmp_path = tmp.name
    tmp.close()
    try:
        create_midi_file(
            exercise.sequence,
            exercise.config.bpm,
            tmp_path,
            cadence=cadence_chords(exercise.config.key) if cadence else None,
            metronome=metronome,
        )
        with open(tmp_path, "rb") as fh:
            return fh.read()
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def _json_error(message: str, status: int):
    return jsonify({"error": message}), status


def _build_form_context(
    form_values: Optional[Mapping[str, object]] = None,
    error_fields: Optional[Iterable[str]] = None,
) -> Dict[str, object]:
    """Assemble template context used for rendering the index form.

    Unknown keys in ``form_values`` are ignored so a crafted submission
    cannot override unrelated template variables.
    """

    context_values = _default_form_values()
    if form_values is not None:
        for name, value in form_values.items():
            if name in context_values:
                context_values[name] = value
    highlighted: Set[str] = set(error_fields or [])
    return {
        "keys": NOTES,
        "durations": list(DURATION_VALUES),
        "form_values": context_values,
        "error_fields": highlighted,
    }


def _render_form(
    form_values: Optional[Mapping[str, object]] = None,
    error_fields: Optional[Iterable[str]] = None,
):
    """Render the exercise form with supplied values and error highlights."""

    return render_template("index.html", **_build_form_context(form_values, error_fields))


def index():
    """Render the form and handle submissions.

    A valid ``POST`` builds an exercise and renders it together with an
    embedded MIDI file. Invalid input flashes a message and redisplays the
    form with the previous selections.
    """

    if request.method == "POST":
        form_values = _extract_form_values(request.form)
        try:
            config = _config_from_values(form_values)
            rng = _rng_from(form_values)
        except FormError as exc:
            flash(str(exc))
            return _render_form(form_values, {exc.field})

        try:
            exercise = build_exercise(config, rng=rng)
        except ExerciseGenerationError as exc:
            flash(str(exc))
            return _render_form(form_values, {"notes"})

        midi_encoded = ""
        try:
            midi_bytes = _render_midi(
                exercise, bool(form_values["cadence"]), bool(form_values["metronome"])
            )
            midi_encoded = base64.b64encode(midi_bytes).decode("ascii")
        except ImportError as exc:
            flash(str(exc))
        return render_template(
            "exercise.html", exercise=exercise.to_dict(), midi=midi_encoded
        )

    return _render_form()


def api_rhythm():
    try:
        config = _config_from_values(request.args)
        rng = _rng_from(request.args)
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
    except FormError as exc:
        return _json_error(str(exc), 400)
    except RhythmGenerationError as exc:
        return _json_error(str(exc), 422)
    return jsonify({"rhythm": result.to_list(), "complete": result.complete})


def api_melody():
    try:
        config = _config_from_values(request.args)
        rng = _rng_from(request.args)
    except FormError as exc:
        return _json_error(str(exc), 400)
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
        return _json_error("No melody satisfies the note pool and interval constraints.", 422)
    return jsonify({"notes": melody, "key": config.key})


def _exercise_from_args() -> Exercise:
    config = _config_from_values(request.args)
    return build_exercise(config, rng=_rng_from(request.args))


def api_exercise():
    try:
        exercise = _exercise_from_args()
    except FormError as exc:
        return _json_error(str(exc), 400)
    except ExerciseGenerationError as exc:
        return _json_error(str(exc), 422)
    return jsonify(exercise.to_dict())


def api_exercise_midi():
    try:
        exercise = _exercise_from_args()
        cadence = parse_bool(request.args.get("cadence"))
        metronome = parse_bool(request.args.get("metronome"))
    except FormError as exc:
        return _json_error(str(exc), 400)
    except ExerciseGenerationError as exc:
        return _json_error(str(exc), 422)
    except ValueError as exc:
        return _json_error(str(exc), 400)
    try:
        data = _render_midi(exercise, cadence, metronome)
    except ImportError as exc:
        logger.error("MIDI export unavailable: %s", exc)
        return _json_error(str(exc), 501)
    response = make_response(data)
    response.headers["Content-Type"] = "audio/midi"
    response.headers["Content-Disposition"] = "attachment; filename=exercise.mid"
    return response


def api_grade():
    """Grade a learner's answers posted as JSON."""

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _json_error("Request body must be a JSON object.", 400)
    notes = payload.get("notes")
    answers = payload.get("answers")
    if not isinstance(notes, list) or not isinstance(answers, list):
        return _json_error("'notes' and 'answers' must be lists.", 400)
    if not all(isinstance(note, str) for note in notes):
        return _json_error("Every entry in 'notes' must be a pitch name string.", 400)
    if not all(answer is None or isinstance(answer, str) for answer in answers):
        return _json_error("Every entry in 'answers' must be a string or null.", 400)
    if not isinstance(payload.get("key"), (str, type(None))) or not isinstance(
        payload.get("mode", "degree"), str
    ):
        return _json_error("'key' and 'mode' must be strings.", 400)
    try:
        report = grade_answers(
            notes, answers, key=payload.get("key"), mode=payload.get("mode", "degree")
        )
    except ValueError as exc:
        return _json_error(str(exc), 400)
    return jsonify(report.to_dict())


def api_level(level: int):
    try:
        group = parse_optional_int(request.args.get("group")) or 1
        config = level_config(level, group, request.args.get("key") or "C")
    except ValueError as exc:
        return _json_error(str(exc), 400)
    return jsonify(
        {
            "level": level,
            "group": group,
            "groups": total_groups(level),
            "degrees": degree_group(level, group),
            "config": config.to_dict(),
        }
    )


def create_app() -> Flask:
    """Build and configure the Flask application instance.

    In production (non-debug) mode ``FLASK_SECRET`` must be set; a missing
    value is logged at ``CRITICAL`` and raises :class:`RuntimeError`.

    Returns:
        Flask: Configured application ready for use by a WSGI server.
    Raises:
        RuntimeError: If ``FLASK_SECRET`` is absent when debug mode is
            disabled.
    """

    app = Flask(__name__, template_folder="templates")

    secret = os.environ.get("FLASK_SECRET")
    try:
        max_mb = int(os.environ.get("MAX_UPLOAD_MB", "5"))
    except ValueError:
        max_mb = 5
        logger.warning("Invalid MAX_UPLOAD_MB value; defaulting to 5 MB.")
    rate_limit_env = os.environ.get("RATE_LIMIT_PER_MINUTE")
    try:
        rate_limit_per_minute = int(rate_limit_env) if rate_limit_env else None
    except ValueError:
        logger.warning(
            "RATE_LIMIT_PER_MINUTE must be an integer. Disabling rate limiting."
        )
        rate_limit_per_minute = None

    if not app.debug and not secret:
        logger.critical("FLASK_SECRET environment variable must be set in production.")
        raise RuntimeError("Missing FLASK_SECRET")
    if not secret:
        secret = secrets.token_urlsafe(32)
        logger.warning(
            "FLASK_SECRET environment variable not set. "
            "Using a randomly generated key; sessions will not persist across restarts."
        )
    app.secret_key = secret
    app.config["MAX_CONTENT_LENGTH"] = max_mb * 1024 * 1024
    app.config["RATE_LIMIT_PER_MINUTE"] = rate_limit_per_minute

    csrf.init_app(app)

    app.add_url_rule("/", view_func=index, methods=["GET", "POST"])
    app.add_url_rule("/api/rhythm", view_func=api_rhythm)
    app.add_url_rule("/api/melody", view_func=api_melody)
    app.add_url_rule("/api/exercise", view_func=api_exercise)
    app.add_url_rule("/api/exercise.mid", view_func=api_exercise_midi)
    app.add_url_rule("/api/grade", view_func=csrf.exempt(api_grade), methods=["POST"])
    app.add_url_rule("/api/levels/<int:level>", view_func=api_level)

    app.before_request(rate_limit)

    @app.errorhandler(413)
    def handle_request_too_large(_err):
        """Return a concise message when the client uploads too much data."""
        return "Request exceeds configured size limit.", 413

    return app
