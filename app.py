# app.py
"""
Tikd API entry point.

    python app.py            # development server
    gunicorn app:app         # production
"""
from __future__ import annotations

from tikd import create_app

app = create_app()


if __name__ == "__main__":
    # Production: run behind a WSGI server (gunicorn/uwsgi) and set SECRET_KEY + SESSION_COOKIE_SECURE
    app.run(host=app.config["HOST"], port=app.config["PORT"], debug=app.config["DEBUG"])
