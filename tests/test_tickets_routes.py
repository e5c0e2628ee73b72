"""Ticket purchase rules and the caller's ticket list."""

import pytest

from conftest import create_event, create_org, create_ticket_type, iso_in


@pytest.fixture
def event(alice):
    client, _ = alice
    org = create_org(client)
    return create_event(client, org["id"])


def _buy(client, ticket_type_id, **extra):
    return client.post("/api/tickets/purchase", json={"ticket_type_id": ticket_type_id, **extra})


def test_purchase(alice, bob, event, db):
    a_client, _ = alice
    b_client, b_user = bob
    tt = create_ticket_type(a_client, event["id"], price=25, total_quantity=10)

    resp = _buy(b_client, tt["id"], quantity=2)
    assert resp.status_code == 201
    body = resp.get_json()
    order = body["order"]
    assert order["quantity"] == 2
    assert len(order["ticket_ids"]) == 2
    assert order["price"]["subtotal"] == 50
    assert order["price"]["fees"] == pytest.approx(3.98)
    assert order["price"]["total"] == pytest.approx(53.98)
    assert body["remaining"] == 8

    tickets = list(db["tickets"].find({}))
    assert {str(t["owner_id"]) for t in tickets} == {b_user["id"]}
    assert {t["status"] for t in tickets} == {"paid"}
    assert len({t["order_id"] for t in tickets}) == 1
    assert db["ticket_types"].find_one({})["sold_count"] == 2


def test_absorbed_fees(alice, event):
    client, _ = alice
    tt = create_ticket_type(client, event["id"], price=10, fee_mode="absorb")
    price = _buy(client, tt["id"], quantity=3).get_json()["order"]["price"]
    assert price["fees"] == 0
    assert price["total"] == 30

    free = create_ticket_type(client, event["id"], name="Free", price=10, is_free=True)
    price = _buy(client, free["id"]).get_json()["order"]["price"]
    assert price["subtotal"] == 0
    assert price["total"] == 0


def test_oversell_is_rejected(alice, bob, event, db):
    a_client, _ = alice
    b_client, _ = bob
    tt = create_ticket_type(a_client, event["id"], total_quantity=3)

    assert _buy(b_client, tt["id"], quantity=2).status_code == 201
    resp = _buy(b_client, tt["id"], quantity=2)
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "conflict"
    assert _buy(b_client, tt["id"], quantity=1).get_json()["remaining"] == 0
    assert _buy(b_client, tt["id"], quantity=1).status_code == 409

    assert db["ticket_types"].find_one({})["sold_count"] == 3
    assert db["tickets"].count_documents({}) == 3


def test_not_on_sale(alice, event):
    client, _ = alice
    paused = create_ticket_type(client, event["id"], availability_status="paused")
    later = create_ticket_type(client, event["id"], sales_start_at=iso_in(days=1))
    ended = create_ticket_type(
        client, event["id"], sales_start_at=iso_in(days=-3), sales_end_at=iso_in(days=-1)
    )
    for tt in (paused, later, ended):
        resp = _buy(client, tt["id"])
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "not_on_sale"


def test_draft_event_cannot_sell(alice):
    client, _ = alice
    org = create_org(client)
    draft = create_event(client, org["id"], status="draft")
    tt = create_ticket_type(client, draft["id"])
    assert _buy(client, tt["id"]).status_code == 409


def test_access_modes(alice, bob, event):
    a_client, _ = alice
    b_client, _ = bob
    restricted = create_ticket_type(a_client, event["id"], access_mode="restricted")
    locked = create_ticket_type(a_client, event["id"], access_mode="password", password="opensesame")

    assert _buy(b_client, restricted["id"]).status_code == 403
    assert _buy(b_client, locked["id"]).status_code == 403
    assert _buy(b_client, locked["id"], password="nope").status_code == 403
    assert _buy(b_client, locked["id"], password="opensesame").status_code == 201


def test_per_order_limits(alice, event):
    client, _ = alice
    tt = create_ticket_type(client, event["id"], min_per_order=2, max_per_order=4)

    assert _buy(client, tt["id"], quantity=1).status_code == 400
    assert _buy(client, tt["id"], quantity=5).status_code == 400
    assert _buy(client, tt["id"], quantity=4).status_code == 201
    assert _buy(client, tt["id"], quantity=0).status_code == 400
    assert _buy(client, tt["id"], quantity=51).status_code == 400
    assert _buy(client, "0" * 24).status_code == 404


def test_my_tickets(alice, bob, event):
    a_client, _ = alice
    b_client, _ = bob
    tt = create_ticket_type(a_client, event["id"], price=12)
    _buy(b_client, tt["id"], quantity=2)
    _buy(a_client, tt["id"])

    rows = b_client.get("/api/tickets").get_json()["tickets"]
    assert len(rows) == 2
    assert rows[0]["event_title"] == "Launch Party"
    assert rows[0]["event_id"] == event["id"]
    assert rows[0]["price"] == 12
    assert rows[0]["status"] == "paid"
    assert rows[0]["event_date"] is not None

    assert b_client.get("/api/tickets?status=cancelled").get_json()["tickets"] == []
    assert b_client.get("/api/tickets?scope=org").status_code == 400
    assert b_client.get("/api/tickets?status=lost").status_code == 400
