"""Shared fixtures: an app on an in-memory Mongo and logged-in clients."""

from datetime import datetime, timedelta, timezone

import mongomock
import pytest

from tikd import create_app


@pytest.fixture
def app():
    app = create_app(
        {"TESTING": True, "SECRET_KEY": "test-secret", "MONGO_DB": "tikd_test"},
        mongo_client=mongomock.MongoClient(tz_aware=True),
    )
    return app


@pytest.fixture
def db(app):
    return app.extensions["mongo"].db


def register(client, email, password="secret123", **extra):
    resp = client.post("/api/auth/register", json={"email": email, "password": password, **extra})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["user"]


@pytest.fixture
def make_user(app):
    """Register a user on a fresh client; returns ``(client, user)``."""

    def _make(email, **extra):
        client = app.test_client()
        user = register(client, email, **extra)
        return client, user

    return _make


@pytest.fixture
def alice(make_user):
    return make_user("alice@example.com", first_name="Alice", last_name="Smith")


@pytest.fixture
def bob(make_user):
    return make_user("bob@example.com", username="bobby")


def iso_in(days=0, hours=0):
    return (datetime.now(timezone.utc) + timedelta(days=days, hours=hours)).isoformat()


def create_org(client, name="Night Owls", **extra):
    body = {"name": name, "business_type": "venue", **extra}
    resp = client.post("/api/organizations", json=body)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["organization"]


def create_event(client, org_id, title="Launch Party", days=10, **extra):
    body = {"title": title, "date": iso_in(days=days), "location": "Berlin", "organization_id": org_id, **extra}
    resp = client.post("/api/events", json=body)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["event"]


def create_ticket_type(client, event_id, **extra):
    body = {"name": "General", "price": 25, **extra}
    resp = client.post(f"/api/events/{event_id}/ticket-types", json=body)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["ticket_type"]
