from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, audit
from ..rbac import check_team_role, get_team_or_404
from ..services.statuses import bootstrap_team_statuses

router = APIRouter(prefix="/api/teams", tags=["teams"])


@router.post("/", response_model=schemas.TeamOut)
async def create_team(
    team: schemas.TeamCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    db_team = models.Team(name=team.name, created_by=user.id)
    db.add(db_team)
    db.flush()
    db.add(models.TeamMember(team_id=db_team.id, user_id=user.id, role="owner"))
    bootstrap_team_statuses(db, db_team)
    if user.team_id is None:
        user.team_id = db_team.id
    db.commit()
    db.refresh(db_team)
    return db_team


@router.get("/", response_model=List[schemas.TeamOut])
async def list_teams(
    db: Session = Depends(get_db), user: models.User = Depends(get_current_user)
):
    team_ids = [m.team_id for m in user.teams]
    if not team_ids:
        return []
    return db.query(models.Team).filter(models.Team.id.in_(team_ids)).all()


@router.post("/{team_id}/members", response_model=schemas.TeamMemberOut)
async def add_member(
    team_id: UUID,
    member: schemas.TeamMemberAdd,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    get_team_or_404(db, team_id)
    check_team_role(db, user, team_id, ["owner"])  # only owner or admin may add members
    if member.user_id:
        db_user = db.query(models.User).filter(models.User.id == member.user_id).first()
    elif member.email:
        db_user = db.query(models.User).filter(models.User.email == member.email).first()
    else:
        raise HTTPException(status_code=400, detail="user_id or email required")
    if not db_user:
        raise HTTPException(status_code=404, detail="User not found")
    existing = (
        db.query(models.TeamMember)
        .filter(
            models.TeamMember.team_id == team_id,
            models.TeamMember.user_id == db_user.id,
        )
        .first()
    )
    if existing:
        raise HTTPException(status_code=400, detail="User already member")
    membership = models.TeamMember(team_id=team_id, user_id=db_user.id, role=member.role)
    db.add(membership)
    if db_user.team_id is None:
        db_user.team_id = team_id
    db.commit()
    db.refresh(membership)
    user_data = schemas.UserOut.model_validate(db_user)
    return schemas.TeamMemberOut(user=user_data, role=membership.role)


@router.get("/{team_id}/settings", response_model=schemas.TeamSettingsOut)
async def get_settings(
    team_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    team = get_team_or_404(db, team_id)
    check_team_role(db, user, team_id, ["member", "manager", "owner"])
    return team


@router.put("/{team_id}/settings", response_model=schemas.TeamSettingsOut)
async def update_settings(
    team_id: UUID,
    update: schemas.TeamSettingsUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    team = get_team_or_404(db, team_id)
    check_team_role(db, user, team_id, ["manager", "owner"])
    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in changes.items():
        setattr(team, key, value)
    audit.log_action(db, user.id, "team.settings", "team", team_id, changes)
    db.commit()
    db.refresh(team)
    return team
