"""Organizer dashboard: upcoming events widget and revenue chart."""

from datetime import datetime, timedelta, timezone

from bson import ObjectId

from conftest import create_event, create_org, create_ticket_type, iso_in


def test_upcoming_events(alice, bob, db):
    client, _ = alice
    b_client, _ = bob
    org = create_org(client)
    soon = create_event(client, org["id"], title="Soon", days=1, image="https://img.example.com/a.png")
    create_event(client, org["id"], title="Later", days=30)
    create_event(client, org["id"], title="Past", days=-2)
    # older documents only carry "views"
    db["events"].update_one({"_id": ObjectId(soon["id"])}, {"$unset": {"page_views": ""}, "$set": {"views": 12}})

    tt = create_ticket_type(client, soon["id"], price=1500)
    b_client.post("/api/tickets/purchase", json={"ticket_type_id": tt["id"], "quantity": 2})

    resp = client.get("/api/dashboard/upcoming-events")
    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "private, max-age=15, stale-while-revalidate=60"

    rows = resp.get_json()["rows"]
    assert [r["title"] for r in rows] == ["Soon", "Later"]
    first = rows[0]
    assert first["tickets"] == 2
    assert first["revenue"] == "$3,000"
    assert first["page_views"] == 12
    assert first["img"] == "https://img.example.com/a.png"
    assert rows[1]["img"] is None
    assert rows[1]["tickets"] == 0
    assert rows[1]["revenue"] == "$0"

    when = datetime.fromisoformat(soon["date"])
    assert first["event_date_ms"] == int(when.timestamp() * 1000)
    assert first["event_date_label"] == f"{when.day:02d} {when.strftime('%b').upper()}, {when.year}"

    assert len(client.get("/api/dashboard/upcoming-events?limit=1").get_json()["rows"]) == 1
    assert b_client.get("/api/dashboard/upcoming-events").get_json()["rows"] == []


def test_running_event_still_counts_as_upcoming(alice):
    client, _ = alice
    org = create_org(client)
    create_event(client, org["id"], title="Festival", days=-1, end_date=iso_in(days=2))
    rows = client.get("/api/dashboard/upcoming-events").get_json()["rows"]
    assert [r["title"] for r in rows] == ["Festival"]


def _seed_sales(db, user_id, when_amounts):
    event_id = db["events"].insert_one(
        {"title": "Old Show", "created_by_user_id": ObjectId(user_id), "date": datetime(2025, 1, 1, tzinfo=timezone.utc)}
    ).inserted_id
    db["tickets"].insert_many(
        [{"event_id": event_id, "status": "paid", "amount": amount, "created_at": when} for when, amount in when_amounts]
    )


def test_revenue_chart_range(alice, db):
    client, user = alice
    _seed_sales(
        db,
        user["id"],
        [
            (datetime(2025, 3, 2, 10, tzinfo=timezone.utc), 100),
            (datetime(2025, 3, 2, 23, tzinfo=timezone.utc), 50),
            (datetime(2025, 3, 5, 9, tzinfo=timezone.utc), 400),
            (datetime(2025, 4, 1, 9, tzinfo=timezone.utc), 999),
        ],
    )

    # reversed bounds are swapped
    chart = client.get("/api/dashboard/revenue-chart?start=2025-03-05&end=2025-03-01").get_json()["chart"]
    assert chart["mode"] == "daily"
    assert chart["labels"] == ["Mar 1", "Mar 2", "Mar 3", "Mar 4", "Mar 5"]
    assert chart["values"] == [0, 150, 0, 0, 400]
    assert chart["pinned_index"] == 4
    assert chart["tooltip"]["value_label"] == "$400"
    assert chart["tooltip"]["sub_label"] == "March 5, 2025"


def test_revenue_chart_defaults_to_current_year(alice, db):
    client, user = alice
    now = datetime.now(timezone.utc)
    _seed_sales(db, user["id"], [(now, 250), (now - timedelta(days=400), 999)])

    chart = client.get("/api/dashboard/revenue-chart").get_json()["chart"]
    assert chart["mode"] == "monthly"
    assert len(chart["values"]) == 12
    assert chart["values"][now.month - 1] == 250
    assert sum(chart["values"]) == 250
    assert chart["pinned_index"] == now.month - 1


def test_revenue_chart_validation(alice):
    client, _ = alice
    assert client.get("/api/dashboard/revenue-chart?start=2025-01-01").status_code == 400
    assert client.get("/api/dashboard/revenue-chart?start=2025-01-01&end=garbage").status_code == 400
    assert client.get("/api/dashboard/revenue-chart?start=2020-01-01&end=2025-01-01").status_code == 400
    # 2024 is a leap year: 366 + 365 days inclusive
    assert client.get("/api/dashboard/revenue-chart?start=2024-01-01&end=2025-12-31").status_code == 200
    assert client.get("/api/dashboard/revenue-chart?start=2024-01-01&end=2026-01-01").status_code == 400
