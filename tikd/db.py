"""MongoDB handle, collection names and start-up indexes."""
from __future__ import annotations

import logging
from typing import Any, Optional

from flask import Flask, current_app
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)

USERS = "users"
ORGANIZATIONS = "organizations"
ORG_TEAM = "org_team"
ORG_ROLES = "org_roles"
TEAMS = "teams"
TEAM_MEMBERS = "team_members"
FRIENDSHIPS = "friendships"
EVENTS = "events"
TICKET_TYPES = "ticket_types"
TICKETS = "tickets"


class Mongo:
    """Holds the client/database for one app, stored in ``app.extensions["mongo"]``."""

    def __init__(self) -> None:
        self.client: Any = None
        self.db: Optional[Database] = None

    def init_app(self, app: Flask, client: Any = None) -> None:
        if client is None:
            try:
                client = MongoClient(
                    app.config["MONGO_URI"],
                    serverSelectionTimeoutMS=app.config["MONGO_SERVER_SELECTION_TIMEOUT_MS"],
                    connectTimeoutMS=app.config["MONGO_CONNECT_TIMEOUT_MS"],
                    socketTimeoutMS=app.config["MONGO_SOCKET_TIMEOUT_MS"],
                    retryWrites=True,
                    tz_aware=True,
                )
                # Verify connectivity early (will raise if unreachable)
                client.admin.command("ping")
            except Exception as e:
                logger.exception("MongoDB connection failed")
                raise RuntimeError(f"MongoDB connection failed: {e}") from e

        self.client = client
        self.db = client[app.config["MONGO_DB"]]
        app.extensions["mongo"] = self
        ensure_indexes(self.db)


def get_db() -> Database:
    return current_app.extensions["mongo"].db


def ensure_indexes(db: Database) -> None:
    db[USERS].create_index([("email", ASCENDING)], unique=True)
    db[USERS].create_index([("username", ASCENDING)], unique=True, sparse=True)

    db[ORGANIZATIONS].create_index([("owner_id", ASCENDING)])
    db[ORG_TEAM].create_index([("organization_id", ASCENDING), ("email", ASCENDING)], unique=True)
    db[ORG_TEAM].create_index([("organization_id", ASCENDING), ("status", ASCENDING)])
    db[ORG_ROLES].create_index([("organization_id", ASCENDING), ("key", ASCENDING)], unique=True)

    db[TEAMS].create_index([("owner_id", ASCENDING)])
    db[TEAM_MEMBERS].create_index([("team_id", ASCENDING), ("email", ASCENDING)], unique=True)

    db[FRIENDSHIPS].create_index([("requester_id", ASCENDING), ("recipient_id", ASCENDING)], unique=True)
    db[FRIENDSHIPS].create_index([("recipient_id", ASCENDING), ("status", ASCENDING)])
    db[FRIENDSHIPS].create_index([("requester_id", ASCENDING), ("status", ASCENDING)])

    db[EVENTS].create_index([("created_by_user_id", ASCENDING), ("date", ASCENDING)])
    db[EVENTS].create_index([("organization_id", ASCENDING), ("date", ASCENDING)])

    db[TICKET_TYPES].create_index([("event_id", ASCENDING), ("sort_order", ASCENDING)])
    db[TICKETS].create_index([("event_id", ASCENDING), ("status", ASCENDING)])
    db[TICKETS].create_index([("owner_id", ASCENDING), ("created_at", DESCENDING)])
