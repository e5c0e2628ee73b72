"""Tikd: event ticketing and organizer dashboard API.

- Flask JSON API, one blueprint per resource
- Flask-Login authentication (session-based)
- MongoDB via PyMongo
"""
from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from flask import Flask, Response, request

from .auth import login_manager
from .config import Config, configure_logging
from .db import Mongo
from .errors import register_error_handlers


def create_app(overrides: Optional[Dict[str, Any]] = None, mongo_client: Any = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logger = configure_logging(app.config["LOG_LEVEL"])

    # Attach a request id for debugging/traceability.
    @app.before_request
    def attach_request_id():
        rid = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.environ["request_id"] = rid

    @app.after_request
    def add_security_headers(resp: Response):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers.setdefault("Cache-Control", "no-store")
        resp.headers["X-Request-Id"] = request.environ.get("request_id", "")
        return resp

    Mongo().init_app(app, client=mongo_client)
    login_manager.init_app(app)
    register_error_handlers(app)

    from .routes import BLUEPRINTS

    for bp in BLUEPRINTS:
        app.register_blueprint(bp)

    logger.info("tikd app ready (db=%s)", app.config["MONGO_DB"])
    return app
