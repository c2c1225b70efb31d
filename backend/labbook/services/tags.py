"""Team tags attached to experiments and templates."""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from .. import models
from .entities import AbstractEntity, ImproperActionError

EXPERIMENT_TYPE = "experiments"


class Tags:
    """Tag attachments of the record held by ``entity``."""

    def __init__(self, entity: AbstractEntity):
        self.entity = entity
        self.db = entity.db

    def _team_id(self) -> UUID | None:
        if self.entity.entity_data is not None and self.entity.entity_data.team_id:
            return self.entity.entity_data.team_id
        return self.entity.user.team_id

    def _get_or_create_tag(self, tag: str) -> models.Tag:
        team_id = self._team_id()
        existing = (
            self.db.query(models.Tag)
            .filter(models.Tag.team_id == team_id, models.Tag.tag == tag)
            .one_or_none()
        )
        if existing:
            return existing
        created = models.Tag(team_id=team_id, tag=tag)
        self.db.add(created)
        self.db.flush()
        return created

    def _attach(self, tag_id: UUID, entity_type: str, entity_id: UUID) -> None:
        already = (
            self.db.query(models.TagLink)
            .filter(
                models.TagLink.tag_id == tag_id,
                models.TagLink.entity_type == entity_type,
                models.TagLink.entity_id == entity_id,
            )
            .first()
        )
        if already:
            return
        self.db.add(models.TagLink(tag_id=tag_id, entity_type=entity_type, entity_id=entity_id))
        self.db.flush()

    def create(self, tag: str, entity_id: UUID | None = None) -> models.Tag:
        """Attach ``tag`` to the entity, creating it in the team when missing."""

        tag = tag.strip()
        if not tag:
            raise ImproperActionError("Tag cannot be empty")
        target_id = entity_id or self.entity.id
        if target_id is None:
            raise ImproperActionError("No entity to tag")
        db_tag = self._get_or_create_tag(tag)
        self._attach(db_tag.id, self.entity.entity_type, target_id)
        return db_tag

    def read_all(self, entity_id: UUID | None = None) -> list[models.Tag]:
        target_id = entity_id or self.entity.id
        return (
            self.db.query(models.Tag)
            .join(models.TagLink, models.TagLink.tag_id == models.Tag.id)
            .filter(
                models.TagLink.entity_type == self.entity.entity_type,
                models.TagLink.entity_id == target_id,
            )
            .order_by(models.Tag.tag.asc())
            .all()
        )

    def copy_tags(self, new_id: UUID, to_experiment: bool = False) -> None:
        """Attach every tag of the current record to record ``new_id``.

        With ``to_experiment`` the target is an experiment even when the source
        is a template.
        """

        target_type = EXPERIMENT_TYPE if to_experiment else self.entity.entity_type
        links = (
            self.db.query(models.TagLink)
            .filter(
                models.TagLink.entity_type == self.entity.entity_type,
                models.TagLink.entity_id == self.entity.id,
            )
            .all()
        )
        for link in links:
            self._attach(link.tag_id, target_type, new_id)

    def unreference(self, tag_id: UUID) -> None:
        (
            self.db.query(models.TagLink)
            .filter(
                models.TagLink.tag_id == tag_id,
                models.TagLink.entity_type == self.entity.entity_type,
                models.TagLink.entity_id == self.entity.id,
            )
            .delete(synchronize_session=False)
        )
        self.db.flush()

    def destroy_all(self) -> int:
        removed = (
            self.db.query(models.TagLink)
            .filter(
                models.TagLink.entity_type == self.entity.entity_type,
                models.TagLink.entity_id == self.entity.id,
            )
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return removed


def insert_tags(entity: AbstractEntity, tags: Iterable[str], entity_id: UUID) -> None:
    """Attach caller supplied tags to a freshly created record."""

    handler = Tags(entity)
    for tag in tags:
        if tag and tag.strip():
            handler.create(tag, entity_id=entity_id)
