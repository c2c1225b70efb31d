"""Team status categories for experiments."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from .entities import EntityNotFound

# purpose: manage the per-team experiment categories and their default flag
# status: active

_STOCK_STATUSES = (
    {"name": "Running", "color": "29AEB9", "is_default": True},
    {"name": "Success", "color": "54AA08", "is_default": False},
    {"name": "Need to be redone", "color": "C0C0C0", "is_default": False},
    {"name": "Fail", "color": "C24F3D", "is_default": False},
)


def bootstrap_team_statuses(db: Session, team: models.Team) -> list[models.Status]:
    """Create the stock categories of a new team."""

    created = []
    for position, spec in enumerate(_STOCK_STATUSES, start=1):
        status = models.Status(team_id=team.id, ordering=position, is_timestampable=True, **spec)
        db.add(status)
        created.append(status)
    db.flush()
    return created


def list_statuses(db: Session, team_id: UUID) -> list[models.Status]:
    return (
        db.query(models.Status)
        .filter(models.Status.team_id == team_id)
        .order_by(models.Status.ordering.asc())
        .all()
    )


def create_status(db: Session, team_id: UUID, payload: schemas.StatusCreate) -> models.Status:
    last = len(list_statuses(db, team_id))
    status = models.Status(
        team_id=team_id,
        name=payload.name,
        color=payload.color,
        is_timestampable=payload.is_timestampable,
        is_default=False,
        ordering=last + 1,
    )
    db.add(status)
    db.flush()
    if payload.is_default:
        set_default_status(db, status.id)
    return status


def get_status(db: Session, status_id: UUID) -> models.Status:
    status = db.get(models.Status, status_id)
    if status is None:
        raise EntityNotFound(f"status {status_id} not found")
    return status


def set_default_status(db: Session, status_id: UUID) -> models.Status:
    """Make ``status_id`` the only default category of its team."""

    status = get_status(db, status_id)
    (
        db.query(models.Status)
        .filter(models.Status.team_id == status.team_id, models.Status.id != status.id)
        .update({models.Status.is_default: False}, synchronize_session="fetch")
    )
    status.is_default = True
    db.flush()
    return status
