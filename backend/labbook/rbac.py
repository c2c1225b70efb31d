from __future__ import annotations

from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from . import models
from .services.entities import (
    EntityError,
    EntityNotFound,
    IllegalActionError,
    ImproperActionError,
)

# purpose: team role checks and translation of entity errors for the HTTP layer
# status: active


def check_team_role(db: Session, user: models.User, team_id: UUID, roles: list[str] | tuple[str, ...]):
    if user.is_admin:
        return
    membership = (
        db.query(models.TeamMember)
        .filter(models.TeamMember.team_id == team_id, models.TeamMember.user_id == user.id)
        .first()
    )
    if not membership or membership.role not in roles:
        raise HTTPException(status_code=403, detail="Not authorized")


def get_team_or_404(db: Session, team_id: UUID) -> models.Team:
    team = db.get(models.Team, team_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return team


def http_error_for(exc: EntityError) -> HTTPException:
    """Map an entity error onto the response the API returns for it."""

    if isinstance(exc, IllegalActionError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, EntityNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ImproperActionError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
