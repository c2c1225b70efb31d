import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path
import shutil

import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from labbook.main import app
from labbook.database import Base, get_db, enable_sqlite_foreign_keys
from labbook import models
from labbook.services.statuses import bootstrap_team_statuses

TEST_DB_PATH = Path("./test.db")
TEST_DB_PATH.unlink(missing_ok=True)

SQLALCHEMY_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
enable_sqlite_foreign_keys(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.create_all(bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def upload_dir(tmp_path):
    d = tmp_path / "uploads"
    d.mkdir()
    os.environ["UPLOAD_DIR"] = str(d)
    yield d
    shutil.rmtree(d, ignore_errors=True)

@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def ensure_auth_headers(client, *, email: str | None = None, password: str = "secret"):
    """Register a fresh account and return bearer headers plus its email."""

    normalized_email = email or f"user-{uuid.uuid4()}@example.com"
    resp = client.post("/api/auth/register", json={"email": normalized_email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}, normalized_email


def team_headers(client, name: str = "Lab"):
    """Register a user owning a new team; returns (headers, team id)."""

    headers, _ = ensure_auth_headers(client)
    team = client.post("/api/teams/", json={"name": name}, headers=headers)
    assert team.status_code == 200, team.text
    return headers, team.json()["id"]


def join_team(client, owner_headers, team_id: str, role: str = "member"):
    headers, email = ensure_auth_headers(client)
    resp = client.post(
        f"/api/teams/{team_id}/members",
        json={"email": email, "role": role},
        headers=owner_headers,
    )
    assert resp.status_code == 200, resp.text
    return headers


def create_item(name: str = "Buffer A", team_id=None) -> str:
    db = TestingSessionLocal()
    try:
        item = models.InventoryItem(
            item_type="reagent",
            name=name,
            team_id=uuid.UUID(str(team_id)) if team_id else None,
        )
        db.add(item)
        db.commit()
        return str(item.id)
    finally:
        db.close()


def make_user_with_team(db, *, role: str = "owner", team: models.Team | None = None, **user_fields):
    """Service-level fixture data: a user that belongs to ``team`` (created when omitted)."""

    user = models.User(
        email=f"svc-{uuid.uuid4()}@example.com",
        hashed_password="placeholder",
        **user_fields,
    )
    db.add(user)
    db.flush()
    if team is None:
        team = models.Team(name=f"team-{uuid.uuid4().hex[:6]}", created_by=user.id)
        db.add(team)
        db.flush()
        bootstrap_team_statuses(db, team)
    db.add(models.TeamMember(team_id=team.id, user_id=user.id, role=role))
    user.team_id = team.id
    db.flush()
    return user, team
