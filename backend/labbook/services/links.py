"""Links from experiments and templates to inventory items."""

from __future__ import annotations

from uuid import UUID

from .. import models
from .entities import AbstractEntity, EntityNotFound, ImproperActionError

_LINK_MODELS = {
    "experiments": (models.ExperimentLink, "experiment_id"),
    "experiments_templates": (models.TemplateLink, "template_id"),
}


class Links:
    def __init__(self, entity: AbstractEntity):
        self.entity = entity
        self.db = entity.db
        self.model, self.owner_column = _LINK_MODELS[entity.entity_type]

    def create(self, item_id: UUID):
        self.entity.can_or_explode("write")
        item = self.db.get(models.InventoryItem, item_id)
        if item is None:
            raise EntityNotFound(f"item {item_id} not found")
        owner_team = self.entity.entity_data.team_id
        if item.team_id is not None and item.team_id != owner_team:
            raise ImproperActionError("Item belongs to another team")
        existing = (
            self.db.query(self.model)
            .filter(
                getattr(self.model, self.owner_column) == self.entity.id,
                self.model.item_id == item_id,
            )
            .first()
        )
        if existing:
            raise ImproperActionError("Item is already linked")
        link = self.model(item_id=item_id, **{self.owner_column: self.entity.id})
        self.db.add(link)
        self.db.flush()
        return link

    def read_all(self) -> list:
        return (
            self.db.query(self.model)
            .filter(getattr(self.model, self.owner_column) == self.entity.id)
            .all()
        )

    def duplicate(self, old_id: UUID, new_id: UUID, from_template: bool = False) -> int:
        """Copy the item links of record ``old_id`` onto record ``new_id``."""

        if from_template:
            source_model, source_column = _LINK_MODELS["experiments_templates"]
            target_model, target_column = _LINK_MODELS["experiments"]
        else:
            source_model, source_column = self.model, self.owner_column
            target_model, target_column = self.model, self.owner_column
        rows = (
            self.db.query(source_model)
            .filter(getattr(source_model, source_column) == old_id)
            .all()
        )
        for row in rows:
            self.db.add(target_model(item_id=row.item_id, **{target_column: new_id}))
        self.db.flush()
        return len(rows)

    def destroy(self, link_id: UUID) -> None:
        self.entity.can_or_explode("write")
        link = self.db.get(self.model, link_id)
        if link is None or getattr(link, self.owner_column) != self.entity.id:
            raise EntityNotFound(f"link {link_id} not found")
        self.db.delete(link)
        self.db.flush()
