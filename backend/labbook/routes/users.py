from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from .. import models, schemas, auth

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
async def read_profile(current_user: models.User = Depends(auth.get_current_user)):
    return current_user


@router.put("/me", response_model=schemas.UserOut)
async def update_profile(
    update: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    changes = update.model_dump(exclude_unset=True)
    if changes.get("team_id") is not None:
        membership = (
            db.query(models.TeamMember)
            .filter(
                models.TeamMember.team_id == changes["team_id"],
                models.TeamMember.user_id == current_user.id,
            )
            .first()
        )
        if not membership:
            raise HTTPException(status_code=403, detail="Not a member of that team")
    # explicit nulls reset the permission defaults
    for key, value in changes.items():
        if value is None and key not in ("default_read", "default_write"):
            continue
        setattr(current_user, key, value)
    db.add(current_user)
    db.commit()
    db.refresh(current_user)
    return current_user
