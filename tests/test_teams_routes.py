"""Teams: list, create, update and owner-only delete."""

from bson import ObjectId


def _create_team(client, name="Crew", **extra):
    resp = client.post("/api/teams", json={"name": name, "location": "Berlin", **extra})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["team"]


def test_create_and_list_teams(alice, bob, db):
    a_client, a_user = alice
    b_client, _ = bob
    _create_team(a_client, name="Bravo")
    _create_team(a_client, name="alpha", description="door staff")
    shared = _create_team(b_client, name="Charlie")

    db["team_members"].insert_one(
        {"team_id": ObjectId(shared["id"]), "user_id": ObjectId(a_user["id"]), "email": "alice@example.com", "status": "active"}
    )

    body = a_client.get("/api/teams").get_json()
    assert [t["name"] for t in body["items"]] == ["alpha", "Bravo", "Charlie"]
    assert [t["is_owner"] for t in body["items"]] == [True, True, False]

    body = a_client.get("/api/teams?q=door").get_json()
    assert [t["name"] for t in body["items"]] == ["alpha"]

    body = a_client.get("/api/teams?sort=name&dir=desc&page_size=1").get_json()
    assert body["items"][0]["name"] == "Charlie"
    assert body["pages"] == 3


def test_create_team_validation(alice):
    client, _ = alice
    resp = client.post("/api/teams", json={"name": "Crew", "location": "B"})
    assert resp.status_code == 400
    assert resp.get_json()["details"] == {"field": "location"}

    resp = client.post("/api/teams", json={"name": "Crew", "location": "Berlin", "accent_color": "red"})
    assert resp.status_code == 400


def test_team_access(alice, bob):
    a_client, _ = alice
    b_client, _ = bob
    team = _create_team(a_client)
    url = f"/api/teams/{team['id']}"

    assert a_client.get(url).get_json()["team"]["name"] == "Crew"
    assert b_client.get(url).status_code == 403
    assert b_client.patch(url, json={"name": "Ours"}).status_code == 403
    assert b_client.delete(url).status_code == 403

    resp = a_client.patch(url, json={"website": "https://crew.example.com"})
    assert resp.status_code == 200
    assert resp.get_json()["team"]["website"] == "https://crew.example.com"


def test_delete_team_cascades_members(alice, db):
    client, _ = alice
    team = _create_team(client)
    db["team_members"].insert_one({"team_id": ObjectId(team["id"]), "email": "x@example.com", "status": "active"})

    assert client.delete(f"/api/teams/{team['id']}").status_code == 200
    assert db["teams"].count_documents({}) == 0
    assert db["team_members"].count_documents({}) == 0
    assert client.get(f"/api/teams/{team['id']}").status_code == 404
