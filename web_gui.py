#!/usr/bin/env python3
"""WSGI entry point for the Ear Trainer web interface.

Production servers can point at ``web_gui:app``; for local experiments run
``FLASK_SECRET=dev python web_gui.py``. The routes themselves live in
:mod:`ear_trainer.web_gui`.
"""

from ear_trainer.web_gui import create_app

app = create_app()

if __name__ == "__main__":  # pragma: no cover - manual usage
    app.run(debug=True)
