"""Experiment records: creation from templates or team defaults, cloning, timestamping and removal."""

from __future__ import annotations

import copy
import logging
from datetime import date, datetime
from uuid import UUID

import sqlalchemy as sa

from .. import models, schemas
from .entities import (
    PERMISSION_SCOPES,
    TEAM_ADMIN_ROLES,
    AbstractEntity,
    IllegalActionError,
    ImproperActionError,
    is_team_admin,
)
from .links import Links
from .pins import Pins
from .steps import Steps
from .tags import Tags, insert_tags
from .templates import Templates
from .uploads import Uploads

# purpose: orchestrate the experiment lifecycle and its child collections
# status: active
# depends_on: backend.labbook.services.templates, backend.labbook.services.tags

logger = logging.getLogger(__name__)

DUPLICATE_TITLE_SUFFIX = " I"


class Experiments(AbstractEntity):
    model = models.Experiment
    entity_type = "experiments"

    def __init__(self, db, user: models.User, entity_id: UUID | None = None):
        super().__init__(db, user, entity_id)
        self.links = Links(self)
        self.steps = Steps(self)
        self.tags = Tags(self)
        self.uploads = Uploads(self)
        self.pins = Pins(self)

    def _get_team(self) -> models.Team:
        team = self.db.get(models.Team, self.user.team_id) if self.user.team_id else None
        if team is None:
            raise ImproperActionError("Join a team before creating experiments")
        return team

    def create(self, params: schemas.ExperimentCreate) -> UUID:
        """Insert a new experiment and return its id.

        Content comes from ``params.template_id`` when given, otherwise from the
        team common template and the user's default permissions. Team forced
        permissions win over both.
        """

        team = self._get_team()
        templates = Templates(self.db, self.user)

        meta = None
        tpl = params.template_id
        if tpl is not None:
            templates.set_id(tpl)
            template = templates.entity_data
            if not templates.get_permissions(template)["read"]:
                raise IllegalActionError("User tried to access a template without read permissions")
            meta = copy.deepcopy(template.meta)
            title = template.title
            body = template.body
            canread = template.canread
            canwrite = template.canwrite
        else:
            if team.force_exp_tpl:
                raise ImproperActionError("Experiments must use a template!")
            title = "Untitled"
            body = team.common_template
            canread = "team"
            canwrite = "user"
            if self.user.default_read is not None:
                canread = self.user.default_read
            if self.user.default_write is not None:
                canwrite = self.user.default_write

        canread = team.force_canread if team.do_force_canread else canread
        canwrite = team.force_canwrite if team.do_force_canwrite else canwrite

        experiment = models.Experiment(
            title=title,
            date=date.today(),
            body=body,
            category_id=self._get_status(team.id),
            elabid=self.generate_elabid(),
            canread=canread,
            canwrite=canwrite,
            meta=meta,
            user_id=self.user.id,
            team_id=team.id,
        )
        self.db.add(experiment)
        self.db.flush()
        new_id = experiment.id

        if tpl is not None:
            self.links.duplicate(tpl, new_id, from_template=True)
            self.steps.duplicate(tpl, new_id, from_template=True)
            Tags(templates).copy_tags(new_id, to_experiment=True)

        insert_tags(self, params.tags, new_id)

        logger.info("Experiment %s created by %s (template %s)", new_id, self.user.id, tpl)
        return new_id

    def _scope_clause(self, column, team_ids, admin_team_ids):
        """SQL form of the scope check for ``column`` (canread or canwrite)."""

        clauses = [column.in_(("public", "organization"))]
        if team_ids:
            clauses.append(sa.and_(column == "team", models.Experiment.team_id.in_(team_ids)))
        if admin_team_ids:
            clauses.append(sa.and_(column == "user", models.Experiment.team_id.in_(admin_team_ids)))
        return sa.or_(*clauses)

    def read_all(self, limit: int = 50) -> list[models.Experiment]:
        """Experiments visible to the user, newest first.

        The filter matches :meth:`get_permissions`: a row is listed when the user
        owns it or when either its read or its write scope admits the user.
        """

        query = self.db.query(models.Experiment)
        if not self.user.is_admin:
            memberships = list(self.user.teams)
            team_ids = {membership.team_id for membership in memberships}
            if self.user.team_id:
                team_ids.add(self.user.team_id)
            admin_team_ids = [m.team_id for m in memberships if m.role in TEAM_ADMIN_ROLES]
            team_ids = list(team_ids)
            query = query.filter(
                sa.or_(
                    models.Experiment.user_id == self.user.id,
                    self._scope_clause(models.Experiment.canread, team_ids, admin_team_ids),
                    self._scope_clause(models.Experiment.canwrite, team_ids, admin_team_ids),
                )
            )
        return query.order_by(models.Experiment.created_at.desc()).limit(limit).all()

    def update(self, payload: schemas.ExperimentUpdate) -> models.Experiment:
        self.can_or_explode("write")
        changes = payload.model_dump(exclude_unset=True)
        if self.entity_data.locked and changes:
            raise ImproperActionError("This experiment is locked. You cannot edit it!")
        for required in ("title", "date"):
            if required in changes and changes[required] is None:
                raise ImproperActionError(f"{required} cannot be empty")
        for scope_field in ("canread", "canwrite"):
            if scope_field in changes and changes[scope_field] not in PERMISSION_SCOPES:
                raise ImproperActionError(f"Unknown permission scope {changes[scope_field]}")
        team = self.db.get(models.Team, self.entity_data.team_id) if self.entity_data.team_id else None
        if team is not None:
            if team.do_force_canread and "canread" in changes:
                raise ImproperActionError("Read permissions enforced by admin")
            if team.do_force_canwrite and "canwrite" in changes:
                raise ImproperActionError("Write permissions enforced by admin")
        if "category_id" in changes:
            status = self.db.get(models.Status, changes["category_id"])
            if status is None or status.team_id != self.entity_data.team_id:
                raise ImproperActionError("Status does not belong to the experiment team")
        for key, value in changes.items():
            setattr(self.entity_data, key, value)
        self.db.flush()
        return self.entity_data

    def is_timestampable(self) -> bool:
        """Whether the experiment's status category permits timestamping."""

        allowed = (
            self.db.query(models.Status.is_timestampable)
            .join(models.Experiment, models.Experiment.category_id == models.Status.id)
            .filter(models.Experiment.id == self.id)
            .scalar()
        )
        return bool(allowed)

    def update_timestamp(self, response_time: datetime, token_path: str) -> None:
        """Lock the experiment and record the timestamp token.

        ``response_time`` must be the creation time of the token stored at
        ``token_path``.
        """

        self.can_or_explode("write")
        row = self.entity_data
        row.locked = True
        row.locked_by = self.user.id
        row.locked_at = response_time
        row.timestamped = True
        row.timestamped_by = self.user.id
        row.timestamped_at = response_time
        row.timestamp_token = token_path
        self.db.flush()

    def duplicate(self) -> UUID:
        """Copy the loaded experiment with its links, steps and tags; returns the new id."""

        if self.id is None:
            raise IllegalActionError("Try to duplicate without an id.")
        self.can_or_explode("read")

        source = self.entity_data
        team_id = self.user.team_id or source.team_id
        experiment = models.Experiment(
            # a trailing capital i marks the copy
            title=source.title + DUPLICATE_TITLE_SUFFIX,
            date=date.today(),
            body=source.body,
            category_id=self._get_status(team_id),
            elabid=self.generate_elabid(),
            canread=source.canread,
            canwrite=source.canwrite,
            meta=copy.deepcopy(source.meta),
            user_id=self.user.id,
            team_id=team_id,
        )
        self.db.add(experiment)
        self.db.flush()
        new_id = experiment.id

        self.links.duplicate(self.id, new_id)
        self.steps.duplicate(self.id, new_id)
        self.tags.copy_tags(new_id)

        logger.info("Experiment %s duplicated into %s by %s", self.id, new_id, self.user.id)
        return new_id

    def destroy(self) -> bool:
        """Delete the experiment; steps and links go with the row, tags, uploads and pins explicitly."""

        self.can_or_explode("write")
        team = self.db.get(models.Team, self.entity_data.team_id) if self.entity_data.team_id else None
        if team is not None and not team.deletable_xp and not is_team_admin(self.db, self.user, team.id):
            raise ImproperActionError("You don't have the rights to delete this experiment.")

        self.tags.destroy_all()
        self.uploads.destroy_all()

        self.db.delete(self.entity_data)
        self.db.flush()
        logger.info("Experiment %s destroyed by %s", self.id, self.user.id)

        return self.pins.cleanup()

    def get_bound_events(self) -> list[models.TeamEvent]:
        return (
            self.db.query(models.TeamEvent)
            .filter(models.TeamEvent.experiment_id == self.id)
            .order_by(models.TeamEvent.start.asc())
            .all()
        )

    def _get_status(self, team_id: UUID | None) -> UUID | None:
        # there should be only one default: making a status default clears the others
        default = (
            self.db.query(models.Status.id)
            .filter(models.Status.team_id == team_id, models.Status.is_default.is_(True))
            .order_by(models.Status.ordering.asc())
            .first()
        )
        if default:
            return default[0]
        fallback = (
            self.db.query(models.Status.id)
            .filter(models.Status.team_id == team_id)
            .order_by(models.Status.ordering.asc())
            .first()
        )
        return fallback[0] if fallback else None
