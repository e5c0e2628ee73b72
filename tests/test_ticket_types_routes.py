"""Ticket types: defaults, validation, ordering and partial updates."""

from bson import ObjectId

from conftest import create_event, create_org, create_ticket_type, iso_in


def _event(client):
    org = create_org(client)
    return create_event(client, org["id"])


def test_create_fills_defaults(alice):
    client, _ = alice
    event = _event(client)
    tt = create_ticket_type(client, event["id"], currency="eur", total_quantity=100)

    assert tt["currency"] == "EUR"
    assert tt["fee_mode"] == "pass_on"
    assert tt["availability_status"] == "on_sale"
    assert tt["access_mode"] == "public"
    assert tt["is_free"] is False
    assert tt["sold_count"] == 0
    assert tt["remaining"] == 100
    assert tt["has_password"] is False
    assert tt["sort_order"] == 0
    assert tt["checkout"]["require_email"] is True
    assert tt["design"]["brand_color"] == "#9a46ff"


def test_create_validation(alice):
    client, _ = alice
    event = _event(client)
    url = f"/api/events/{event['id']}/ticket-types"

    assert client.post(url, json={"price": 10}).status_code == 400
    assert client.post(url, json={"name": "GA", "price": -1}).status_code == 400
    assert client.post(url, json={"name": "GA", "price": 10, "currency": "EURO"}).status_code == 400
    assert client.post(url, json={"name": "GA", "price": 10, "min_per_order": 5, "max_per_order": 2}).status_code == 400
    assert client.post(url, json={"name": "GA", "price": 10, "access_mode": "password"}).status_code == 400
    assert client.post(url, json={"name": "GA", "price": 10, "checkout": {"require_pet": True}}).status_code == 400
    assert client.post(url, json={"name": "GA", "price": 10, "design": {"layout": "diagonal"}}).status_code == 400

    resp = client.post(
        url,
        json={"name": "GA", "price": 10, "sales_start_at": iso_in(days=2), "sales_end_at": iso_in(days=1)},
    )
    assert resp.status_code == 400
    assert resp.get_json()["details"] == {"field": "sales_end_at"}


def test_only_editors_see_ticket_types(alice, bob):
    a_client, _ = alice
    b_client, _ = bob
    event = _event(a_client)
    url = f"/api/events/{event['id']}/ticket-types"

    assert b_client.get(url).status_code == 403
    assert b_client.post(url, json={"name": "GA", "price": 10}).status_code == 403


def test_list_is_ordered(alice):
    client, _ = alice
    event = _event(client)
    create_ticket_type(client, event["id"], name="First")
    second = create_ticket_type(client, event["id"], name="Second")
    create_ticket_type(client, event["id"], name="Zero", sort_order=0)
    assert second["sort_order"] == 1

    names = [t["name"] for t in client.get(f"/api/events/{event['id']}/ticket-types").get_json()["ticket_types"]]
    assert names == ["First", "Zero", "Second"]


def test_partial_update(alice, db):
    client, _ = alice
    event = _event(client)
    tt = create_ticket_type(client, event["id"], total_quantity=10, max_per_order=4)
    url = f"/api/events/{event['id']}/ticket-types/{tt['id']}"

    resp = client.patch(url, json={"price": 30, "availability_status": "paused"})
    assert resp.status_code == 200
    updated = resp.get_json()["ticket_type"]
    assert updated["price"] == 30
    assert updated["availability_status"] == "paused"
    assert updated["name"] == "General"
    assert updated["max_per_order"] == 4

    assert client.patch(url, json={"min_per_order": 5}).status_code == 400
    assert client.patch(url, json={"access_mode": "password"}).status_code == 400

    db["ticket_types"].update_one({"_id": ObjectId(tt["id"])}, {"$set": {"sold_count": 6}})
    resp = client.patch(url, json={"total_quantity": 5})
    assert resp.status_code == 400
    assert resp.get_json()["details"] == {"field": "total_quantity"}
    assert client.get(url).get_json()["ticket_type"]["remaining"] == 4


def test_delete_ticket_type(alice):
    client, _ = alice
    event = _event(client)
    tt = create_ticket_type(client, event["id"])
    url = f"/api/events/{event['id']}/ticket-types/{tt['id']}"

    assert client.delete(url).status_code == 200
    assert client.get(url).status_code == 404

    other = _event(client)
    tt = create_ticket_type(client, other["id"])
    assert client.get(f"/api/events/{event['id']}/ticket-types/{tt['id']}").status_code == 404
