"""Ordered procedure steps of experiments and templates."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

import sqlalchemy as sa

from .. import models
from .entities import AbstractEntity, EntityNotFound, ImproperActionError

_STEP_MODELS = {
    "experiments": (models.ExperimentStep, "experiment_id"),
    "experiments_templates": (models.TemplateStep, "template_id"),
}


class Steps:
    def __init__(self, entity: AbstractEntity):
        self.entity = entity
        self.db = entity.db
        self.model, self.owner_column = _STEP_MODELS[entity.entity_type]

    def _get(self, step_id: UUID):
        step = self.db.get(self.model, step_id)
        if step is None or getattr(step, self.owner_column) != self.entity.id:
            raise EntityNotFound(f"step {step_id} not found")
        return step

    def create(self, body: str):
        self.entity.can_or_explode("write")
        body = body.strip()
        if not body:
            raise ImproperActionError("Step body cannot be empty")
        owner_attr = getattr(self.model, self.owner_column)
        last = (
            self.db.query(sa.func.max(self.model.ordering))
            .filter(owner_attr == self.entity.id)
            .scalar()
        )
        step = self.model(
            body=body,
            ordering=(last or 0) + 1,
            **{self.owner_column: self.entity.id},
        )
        self.db.add(step)
        self.db.flush()
        return step

    def read_all(self) -> list:
        return (
            self.db.query(self.model)
            .filter(getattr(self.model, self.owner_column) == self.entity.id)
            .order_by(self.model.ordering.asc())
            .all()
        )

    def finish(self, step_id: UUID):
        """Toggle the finished flag of a step."""

        self.entity.can_or_explode("write")
        step = self._get(step_id)
        step.finished = not step.finished
        step.finished_at = datetime.now(timezone.utc) if step.finished else None
        self.db.flush()
        return step

    def duplicate(self, old_id: UUID, new_id: UUID, from_template: bool = False) -> int:
        """Copy body and ordering of the steps of ``old_id`` onto ``new_id``."""

        if from_template:
            source_model, source_column = _STEP_MODELS["experiments_templates"]
            target_model, target_column = _STEP_MODELS["experiments"]
        else:
            source_model, source_column = self.model, self.owner_column
            target_model, target_column = self.model, self.owner_column
        rows = (
            self.db.query(source_model)
            .filter(getattr(source_model, source_column) == old_id)
            .order_by(source_model.ordering.asc())
            .all()
        )
        for row in rows:
            self.db.add(
                target_model(body=row.body, ordering=row.ordering, **{target_column: new_id})
            )
        self.db.flush()
        return len(rows)

    def destroy(self, step_id: UUID) -> None:
        self.entity.can_or_explode("write")
        self.db.delete(self._get(step_id))
        self.db.flush()
