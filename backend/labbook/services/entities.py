"""Shared behaviour for permission-checked lab records."""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Any, ClassVar
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models

# purpose: load records, evaluate canread/canwrite scopes and guard mutations
# status: active
# depends_on: backend.labbook.models.TeamMember

PERMISSION_SCOPES = ("public", "organization", "team", "user", "useronly")
TEAM_ADMIN_ROLES = ("owner", "manager")


class EntityError(RuntimeError):
    """Base error for entity orchestration."""


class IllegalActionError(EntityError):
    """Raised when the actor lacks the capability required by an action."""


class ImproperActionError(EntityError):
    """Raised when an action is not allowed in the current state."""


class EntityNotFound(EntityError):
    """Raised when a requested record cannot be located."""


def is_team_admin(db: Session, user: models.User, team_id: UUID | None) -> bool:
    if user.is_admin:
        return True
    if team_id is None:
        return False
    membership = (
        db.query(models.TeamMember)
        .filter(models.TeamMember.team_id == team_id, models.TeamMember.user_id == user.id)
        .first()
    )
    return membership is not None and membership.role in TEAM_ADMIN_ROLES


def is_team_member(db: Session, user: models.User, team_id: UUID | None) -> bool:
    if team_id is None:
        return False
    if user.team_id == team_id:
        return True
    return (
        db.query(models.TeamMember)
        .filter(models.TeamMember.team_id == team_id, models.TeamMember.user_id == user.id)
        .first()
        is not None
    )


class AbstractEntity:
    """Base class for experiments and templates.

    Subclasses set ``model`` and ``entity_type``. An instance is bound to the
    acting user and optionally to one row, loaded with :meth:`set_id`.
    """

    model: ClassVar[type]
    entity_type: ClassVar[str]

    def __init__(self, db: Session, user: models.User, entity_id: UUID | None = None):
        self.db = db
        self.user = user
        self.id: UUID | None = None
        self.entity_data: Any = None
        if entity_id is not None:
            self.set_id(entity_id)

    def set_id(self, entity_id: UUID) -> None:
        row = self.db.get(self.model, entity_id)
        if row is None:
            raise EntityNotFound(f"{self.entity_type} {entity_id} not found")
        self.id = row.id
        self.entity_data = row

    def read(self) -> Any:
        self.can_or_explode("read")
        return self.entity_data

    def _scope_allows(self, scope: str, row: Any) -> bool:
        if scope in ("public", "organization"):
            return True
        if scope == "team":
            return is_team_member(self.db, self.user, row.team_id)
        if scope == "user":
            return is_team_admin(self.db, self.user, row.team_id)
        return False

    def get_permissions(self, row: Any | None = None) -> dict[str, bool]:
        """Return the read/write capabilities of the acting user on ``row``."""

        row = row if row is not None else self.entity_data
        if row is None:
            return {"read": False, "write": False}
        if self.user.is_admin:
            return {"read": True, "write": True}

        is_owner = row.user_id == self.user.id
        read = is_owner or self._scope_allows(row.canread, row)
        write = is_owner or self._scope_allows(row.canwrite, row)
        if write and row.locked and row.locked_by != self.user.id:
            write = is_team_admin(self.db, self.user, row.team_id)
        # anything writable is readable
        return {"read": read or write, "write": write}

    def can_or_explode(self, rw: str) -> None:
        if self.entity_data is None:
            raise IllegalActionError(f"No {self.entity_type} loaded")
        if not self.get_permissions()[rw]:
            raise IllegalActionError(f"User tried to access {self.entity_type} without {rw} permission")

    @staticmethod
    def generate_elabid() -> str:
        return f"{datetime.now(timezone.utc):%Y%m%d}-{secrets.token_hex(20)}"
