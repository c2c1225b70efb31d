from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas
from ..rbac import check_team_role, get_team_or_404
from ..services import statuses

router = APIRouter(prefix="/api", tags=["statuses"])


@router.get("/teams/{team_id}/statuses", response_model=list[schemas.StatusOut])
def list_team_statuses(
    team_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    get_team_or_404(db, team_id)
    check_team_role(db, user, team_id, ["member", "manager", "owner"])
    return statuses.list_statuses(db, team_id)


@router.post(
    "/teams/{team_id}/statuses",
    response_model=schemas.StatusOut,
    status_code=status.HTTP_201_CREATED,
)
def create_team_status(
    team_id: UUID,
    payload: schemas.StatusCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    get_team_or_404(db, team_id)
    check_team_role(db, user, team_id, ["manager", "owner"])
    created = statuses.create_status(db, team_id, payload)
    db.commit()
    db.refresh(created)
    return created


@router.post("/statuses/{status_id}/default", response_model=schemas.StatusOut)
def make_default_status(
    status_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    row = db.get(models.Status, status_id)
    if not row:
        raise HTTPException(status_code=404, detail="Status not found")
    check_team_role(db, user, row.team_id, ["manager", "owner"])
    updated = statuses.set_default_status(db, status_id)
    db.commit()
    db.refresh(updated)
    return updated
