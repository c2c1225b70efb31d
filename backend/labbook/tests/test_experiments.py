import uuid

from .conftest import (
    TestingSessionLocal,
    create_item,
    ensure_auth_headers,
    join_team,
    team_headers,
)
from labbook import audit, models
from labbook.services.entities import ImproperActionError


def _create_template(client, headers, **overrides):
    payload = {"title": "PCR setup", "body": "<p>mix</p>", "meta": {"extra_fields": {"cycles": 30}}}
    payload.update(overrides)
    resp = client.post("/api/templates", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_without_template_uses_team_defaults(client):
    headers, team_id = team_headers(client)
    client.put(
        f"/api/teams/{team_id}/settings",
        json={"common_template": "<h1>Goal</h1>"},
        headers=headers,
    )
    resp = client.post("/api/experiments", json={"tags": ["qpcr", " ", "cells"]}, headers=headers)
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["title"] == "Untitled"
    assert data["body"] == "<h1>Goal</h1>"
    assert data["canread"] == "team"
    assert data["canwrite"] == "user"
    assert data["meta"] is None
    assert data["locked"] is False
    assert data["timestamped"] is False
    assert len(data["elabid"].split("-")[1]) == 40
    assert sorted(t["tag"] for t in data["tags"]) == ["cells", "qpcr"]

    statuses = client.get(f"/api/teams/{team_id}/statuses", headers=headers).json()
    default = next(s for s in statuses if s["is_default"])
    assert data["category_id"] == default["id"]


def test_create_uses_user_default_permissions(client):
    headers, _ = team_headers(client)
    me = client.put(
        "/api/users/me",
        json={"default_read": "useronly", "default_write": "team"},
        headers=headers,
    )
    assert me.status_code == 200
    data = client.post("/api/experiments", json={}, headers=headers).json()
    assert data["canread"] == "useronly"
    assert data["canwrite"] == "team"


def test_create_without_template_rejected_when_team_forces_templates(client):
    headers, team_id = team_headers(client)
    client.put(f"/api/teams/{team_id}/settings", json={"force_exp_tpl": True}, headers=headers)
    resp = client.post("/api/experiments", json={}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Experiments must use a template!"

    template = _create_template(client, headers)
    ok = client.post("/api/experiments", json={"template_id": template["id"]}, headers=headers)
    assert ok.status_code == 201


def test_create_from_template_copies_content_and_children(client):
    headers, team_id = team_headers(client)
    template = _create_template(client, headers, tags=["pcr"], canread="team", canwrite="team")
    item_id = create_item(team_id=team_id)
    link = client.post(f"/api/templates/{template['id']}/links", json={"item_id": item_id}, headers=headers)
    assert link.status_code == 201
    for body in ("Thaw reagents", "Run cycler"):
        step = client.post(f"/api/templates/{template['id']}/steps", json={"body": body}, headers=headers)
        assert step.status_code == 201

    resp = client.post(
        "/api/experiments",
        json={"template_id": template["id"], "tags": ["run-7"]},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["title"] == "PCR setup"
    assert data["body"] == "<p>mix</p>"
    assert data["meta"] == {"extra_fields": {"cycles": 30}}
    assert data["canread"] == "team"
    assert data["canwrite"] == "team"
    assert [link["item_id"] for link in data["links"]] == [item_id]
    assert [step["body"] for step in data["steps"]] == ["Thaw reagents", "Run cycler"]
    assert all(step["finished"] is False for step in data["steps"])
    assert sorted(tag["tag"] for tag in data["tags"]) == ["pcr", "run-7"]

    # the template keeps its own children
    tpl_tags = client.get(f"/api/templates/{template['id']}/tags", headers=headers).json()
    assert [tag["tag"] for tag in tpl_tags] == ["pcr"]


def test_create_from_unreadable_template_is_forbidden(client):
    owner_headers, team_id = team_headers(client)
    template = _create_template(client, owner_headers, canread="useronly")
    member_headers = join_team(client, owner_headers, team_id)

    resp = client.post("/api/experiments", json={"template_id": template["id"]}, headers=member_headers)
    assert resp.status_code == 403


def test_create_from_missing_template_is_not_found(client):
    headers, _ = team_headers(client)
    resp = client.post("/api/experiments", json={"template_id": str(uuid.uuid4())}, headers=headers)
    assert resp.status_code == 404


def test_team_forced_permissions_override_template_and_defaults(client):
    headers, team_id = team_headers(client)
    client.put("/api/users/me", json={"default_read": "public"}, headers=headers)
    client.put(
        f"/api/teams/{team_id}/settings",
        json={
            "do_force_canread": True,
            "force_canread": "organization",
            "do_force_canwrite": True,
            "force_canwrite": "useronly",
        },
        headers=headers,
    )
    plain = client.post("/api/experiments", json={}, headers=headers).json()
    assert plain["canread"] == "organization"
    assert plain["canwrite"] == "useronly"

    template = _create_template(client, headers, canread="team", canwrite="team")
    from_tpl = client.post("/api/experiments", json={"template_id": template["id"]}, headers=headers).json()
    assert from_tpl["canread"] == "organization"
    assert from_tpl["canwrite"] == "useronly"


def test_create_requires_team(client):
    headers, _ = ensure_auth_headers(client)
    resp = client.post("/api/experiments", json={}, headers=headers)
    assert resp.status_code == 400


def test_duplicate_copies_record_and_children(client):
    headers, team_id = team_headers(client)
    created = client.post("/api/experiments", json={"tags": ["alpha"]}, headers=headers).json()
    exp_id = created["id"]
    client.patch(
        f"/api/experiments/{exp_id}",
        json={"title": "Western blot", "body": "gel 12%", "meta": {"lane": 4}},
        headers=headers,
    )
    item_id = create_item(team_id=team_id)
    client.post(f"/api/experiments/{exp_id}/links", json={"item_id": item_id}, headers=headers)
    step = client.post(f"/api/experiments/{exp_id}/steps", json={"body": "Load gel"}, headers=headers).json()
    client.post(f"/api/experiments/{exp_id}/steps/{step['id']}/finish", headers=headers)

    resp = client.post(f"/api/experiments/{exp_id}/duplicate", headers=headers)
    assert resp.status_code == 201, resp.text
    copy = resp.json()
    assert copy["id"] != exp_id
    assert copy["title"] == "Western blot I"
    assert copy["body"] == "gel 12%"
    assert copy["meta"] == {"lane": 4}
    assert copy["elabid"] != created["elabid"]
    assert [link["item_id"] for link in copy["links"]] == [item_id]
    assert [s["body"] for s in copy["steps"]] == ["Load gel"]
    assert copy["steps"][0]["finished"] is False
    assert [t["tag"] for t in copy["tags"]] == ["alpha"]


def test_duplicate_requires_read_permission(client):
    owner_headers, team_id = team_headers(client)
    client.put("/api/users/me", json={"default_read": "useronly"}, headers=owner_headers)
    exp = client.post("/api/experiments", json={}, headers=owner_headers).json()

    outsider_headers, _ = team_headers(client, name="Other lab")
    resp = client.post(f"/api/experiments/{exp['id']}/duplicate", headers=outsider_headers)
    assert resp.status_code == 403


def test_team_member_reads_but_cannot_delete(client):
    owner_headers, team_id = team_headers(client)
    exp = client.post("/api/experiments", json={}, headers=owner_headers).json()
    member_headers = join_team(client, owner_headers, team_id)

    assert client.get(f"/api/experiments/{exp['id']}", headers=member_headers).status_code == 200
    assert client.delete(f"/api/experiments/{exp['id']}", headers=member_headers).status_code == 403


def test_destroy_removes_children_and_pins(client, upload_dir):
    headers, team_id = team_headers(client)
    exp = client.post("/api/experiments", json={"tags": ["gone"]}, headers=headers).json()
    exp_id = exp["id"]
    client.post(f"/api/experiments/{exp_id}/steps", json={"body": "step"}, headers=headers)
    client.post(f"/api/experiments/{exp_id}/links", json={"item_id": create_item()}, headers=headers)
    upload = client.post(
        f"/api/experiments/{exp_id}/uploads",
        files={"upload": ("raw.csv", b"a,b\n1,2\n", "text/csv")},
        headers=headers,
    )
    assert upload.status_code == 201, upload.text
    assert len(list(upload_dir.rglob("*raw.csv"))) == 1
    pin = client.post(f"/api/experiments/{exp_id}/pin", headers=headers)
    assert pin.json()["pinned"] is True

    resp = client.delete(f"/api/experiments/{exp_id}", headers=headers)
    assert resp.status_code == 200
    assert client.get(f"/api/experiments/{exp_id}", headers=headers).status_code == 404
    assert list(upload_dir.rglob("*raw.csv")) == []

    exp_uuid = uuid.UUID(exp_id)
    db = TestingSessionLocal()
    try:
        assert db.query(models.TagLink).filter(models.TagLink.entity_id == exp_uuid).count() == 0
        assert db.query(models.Upload).filter(models.Upload.experiment_id == exp_uuid).count() == 0
        assert db.query(models.Pin).filter(models.Pin.entity_id == exp_uuid).count() == 0
        assert db.query(models.ExperimentStep).filter(models.ExperimentStep.experiment_id == exp_uuid).count() == 0
        assert db.query(models.ExperimentLink).filter(models.ExperimentLink.experiment_id == exp_uuid).count() == 0
    finally:
        db.close()


def test_destroy_blocked_when_team_disallows_deletion(client):
    owner_headers, team_id = team_headers(client)
    member_headers = join_team(client, owner_headers, team_id)
    client.put(f"/api/teams/{team_id}/settings", json={"deletable_xp": False}, headers=owner_headers)

    exp = client.post("/api/experiments", json={}, headers=member_headers).json()
    resp = client.delete(f"/api/experiments/{exp['id']}", headers=member_headers)
    assert resp.status_code == 400

    # team owners keep the right to delete
    assert client.delete(f"/api/experiments/{exp['id']}", headers=owner_headers).status_code == 200


def test_timestamp_locks_experiment(client, upload_dir):
    headers, _ = team_headers(client)
    exp = client.post("/api/experiments", json={}, headers=headers).json()
    exp_id = exp["id"]

    check = client.get(f"/api/experiments/{exp_id}/timestampable", headers=headers)
    assert check.json()["timestampable"] is True

    resp = client.post(f"/api/experiments/{exp_id}/timestamp", headers=headers)
    assert resp.status_code == 200, resp.text
    token = resp.json()
    assert token["hash_algorithm"] == "sha256"
    assert len(token["digest"]) == 64
    assert token["elabid"] == exp["elabid"]

    detail = client.get(f"/api/experiments/{exp_id}", headers=headers).json()
    assert detail["locked"] is True
    assert detail["timestamped"] is True
    assert detail["locked_by"] == detail["timestamped_by"] == detail["user_id"]
    assert detail["timestamp_token"]
    assert len(list(upload_dir.rglob("*-timestamp.json"))) == 1

    edit = client.patch(f"/api/experiments/{exp_id}", json={"title": "changed"}, headers=headers)
    assert edit.status_code == 400

    history = client.get(f"/api/experiments/{exp_id}/history", headers=headers).json()
    assert [entry["action"] for entry in history] == ["experiment.create", "experiment.timestamp"]


def test_timestamp_rejected_for_non_timestampable_status(client):
    headers, team_id = team_headers(client)
    draft = client.post(
        f"/api/teams/{team_id}/statuses",
        json={"name": "Draft", "is_timestampable": False},
        headers=headers,
    ).json()
    exp = client.post("/api/experiments", json={}, headers=headers).json()
    client.patch(f"/api/experiments/{exp['id']}", json={"category_id": draft["id"]}, headers=headers)

    check = client.get(f"/api/experiments/{exp['id']}/timestampable", headers=headers)
    assert check.json()["timestampable"] is False
    resp = client.post(f"/api/experiments/{exp['id']}/timestamp", headers=headers)
    assert resp.status_code == 400


def test_bound_events_listing(client):
    headers, team_id = team_headers(client)
    exp = client.post("/api/experiments", json={}, headers=headers).json()
    created = client.post(
        f"/api/experiments/{exp['id']}/events",
        json={
            "title": "Microscope",
            "start": "2026-01-05T09:00:00",
            "end": "2026-01-05T11:00:00",
            "item_id": create_item("Confocal", team_id),
        },
        headers=headers,
    )
    assert created.status_code == 201, created.text
    events = client.get(f"/api/experiments/{exp['id']}/events", headers=headers).json()
    assert [event["title"] for event in events] == ["Microscope"]
    assert events[0]["experiment_id"] == exp["id"]


def test_list_only_returns_readable_experiments(client):
    owner_headers, _ = team_headers(client)
    client.put("/api/users/me", json={"default_read": "useronly"}, headers=owner_headers)
    hidden = client.post("/api/experiments", json={}, headers=owner_headers).json()

    other_headers, _ = team_headers(client, name="Neighbours")
    listed = client.get("/api/experiments", headers=other_headers).json()
    assert hidden["id"] not in {row["id"] for row in listed}

    own = client.get("/api/experiments", headers=owner_headers).json()
    assert hidden["id"] in {row["id"] for row in own}


def test_timestamp_requires_write_permission(client, upload_dir):
    owner_headers, team_id = team_headers(client)
    exp = client.post("/api/experiments", json={}, headers=owner_headers).json()
    assert exp["canwrite"] == "user"
    member_headers = join_team(client, owner_headers, team_id)

    assert client.get(f"/api/experiments/{exp['id']}", headers=member_headers).status_code == 200
    resp = client.post(f"/api/experiments/{exp['id']}/timestamp", headers=member_headers)
    assert resp.status_code == 403

    detail = client.get(f"/api/experiments/{exp['id']}", headers=owner_headers).json()
    assert detail["locked"] is False
    assert detail["timestamped"] is False
    assert list(upload_dir.rglob("*-timestamp.json")) == []


def test_failed_destroy_keeps_uploaded_files(client, upload_dir, monkeypatch):
    headers, _ = team_headers(client)
    exp = client.post("/api/experiments", json={}, headers=headers).json()
    client.post(
        f"/api/experiments/{exp['id']}/uploads",
        files={"upload": ("keep.csv", b"x", "text/csv")},
        headers=headers,
    )

    def failing_log(db, user_id, action, *args, **kwargs):
        if action == "experiment.destroy":
            raise ImproperActionError("audit store unavailable")

    monkeypatch.setattr(audit, "log_action", failing_log)
    resp = client.delete(f"/api/experiments/{exp['id']}", headers=headers)
    assert resp.status_code == 400
    monkeypatch.undo()

    uploads = client.get(f"/api/experiments/{exp['id']}/uploads", headers=headers).json()
    assert [u["real_name"] for u in uploads] == ["keep.csv"]
    assert len(list(upload_dir.rglob("*keep.csv"))) == 1


def test_upload_download_and_delete(client, upload_dir):
    headers, _ = team_headers(client)
    exp = client.post("/api/experiments", json={}, headers=headers).json()
    upload = client.post(
        f"/api/experiments/{exp['id']}/uploads",
        files={"upload": ("gel.txt", b"band at 50kDa", "text/plain")},
        headers=headers,
    ).json()

    download = client.get(f"/api/experiments/{exp['id']}/uploads/{upload['id']}/download", headers=headers)
    assert download.status_code == 200
    assert download.content == b"band at 50kDa"
    assert 'filename="gel.txt"' in download.headers["content-disposition"]

    deleted = client.delete(f"/api/experiments/{exp['id']}/uploads/{upload['id']}", headers=headers)
    assert deleted.status_code == 200
    assert client.get(f"/api/experiments/{exp['id']}/uploads", headers=headers).json() == []
    assert list(upload_dir.rglob("*gel.txt")) == []
    missing = client.get(f"/api/experiments/{exp['id']}/uploads/{upload['id']}/download", headers=headers)
    assert missing.status_code == 404


def test_link_to_other_team_item_rejected(client):
    headers, _ = team_headers(client)
    _, other_team = team_headers(client, name="Elsewhere")
    exp = client.post("/api/experiments", json={}, headers=headers).json()
    resp = client.post(
        f"/api/experiments/{exp['id']}/links",
        json={"item_id": create_item("Their buffer", other_team)},
        headers=headers,
    )
    assert resp.status_code == 400


def test_pinned_listing(client):
    headers, _ = team_headers(client)
    first = client.post("/api/experiments", json={}, headers=headers).json()
    second = client.post("/api/experiments", json={}, headers=headers).json()
    assert client.get("/api/experiments/pinned", headers=headers).json() == []

    client.post(f"/api/experiments/{second['id']}/pin", headers=headers)
    pinned = client.get("/api/experiments/pinned", headers=headers).json()
    assert [row["id"] for row in pinned] == [second["id"]]

    client.post(f"/api/experiments/{second['id']}/pin", headers=headers)
    assert client.get("/api/experiments/pinned", headers=headers).json() == []
