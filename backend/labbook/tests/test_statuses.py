from .conftest import join_team, team_headers


def test_only_one_default_status_per_team(client):
    headers, team_id = team_headers(client)
    created = client.post(
        f"/api/teams/{team_id}/statuses",
        json={"name": "Draft", "color": "AAAAAA", "is_default": True},
        headers=headers,
    )
    assert created.status_code == 201
    assert created.json()["ordering"] == 5

    statuses = client.get(f"/api/teams/{team_id}/statuses", headers=headers).json()
    defaults = [s["name"] for s in statuses if s["is_default"]]
    assert defaults == ["Draft"]

    running = next(s for s in statuses if s["name"] == "Running")
    resp = client.post(f"/api/statuses/{running['id']}/default", headers=headers)
    assert resp.status_code == 200
    statuses = client.get(f"/api/teams/{team_id}/statuses", headers=headers).json()
    assert [s["name"] for s in statuses if s["is_default"]] == ["Running"]

    exp = client.post("/api/experiments", json={}, headers=headers).json()
    assert exp["category_id"] == running["id"]


def test_members_cannot_manage_statuses(client):
    owner_headers, team_id = team_headers(client)
    member_headers = join_team(client, owner_headers, team_id)
    assert client.get(f"/api/teams/{team_id}/statuses", headers=member_headers).status_code == 200
    resp = client.post(
        f"/api/teams/{team_id}/statuses",
        json={"name": "Mine"},
        headers=member_headers,
    )
    assert resp.status_code == 403
