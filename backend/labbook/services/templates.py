"""Experiment templates."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from .. import models
from .entities import PERMISSION_SCOPES, AbstractEntity, ImproperActionError
from .tags import Tags, insert_tags

logger = logging.getLogger(__name__)


class Templates(AbstractEntity):
    model = models.ExperimentTemplate
    entity_type = "experiments_templates"

    def create(
        self,
        title: str,
        *,
        body: str = "",
        meta: dict[str, Any] | None = None,
        canread: str = "team",
        canwrite: str = "user",
        tags: Iterable[str] = (),
    ) -> models.ExperimentTemplate:
        if self.user.team_id is None:
            raise ImproperActionError("Join a team before creating templates")
        for scope in (canread, canwrite):
            if scope not in PERMISSION_SCOPES:
                raise ImproperActionError(f"Unknown permission scope {scope}")
        template = models.ExperimentTemplate(
            team_id=self.user.team_id,
            user_id=self.user.id,
            title=title,
            body=body,
            meta=meta,
            canread=canread,
            canwrite=canwrite,
        )
        self.db.add(template)
        self.db.flush()
        insert_tags(self, tags, template.id)
        logger.info("Template %s created by %s", template.id, self.user.id)
        return template

    def read_all(self) -> list[models.ExperimentTemplate]:
        """Templates of the user's team that the user may read."""

        if self.user.team_id is None:
            return []
        rows = (
            self.db.query(models.ExperimentTemplate)
            .filter(models.ExperimentTemplate.team_id == self.user.team_id)
            .order_by(models.ExperimentTemplate.ordering.asc(), models.ExperimentTemplate.title.asc())
            .all()
        )
        return [row for row in rows if self.get_permissions(row)["read"]]

    def destroy(self) -> None:
        self.can_or_explode("write")
        Tags(self).destroy_all()
        self.db.delete(self.entity_data)
        self.db.flush()
        logger.info("Template %s destroyed by %s", self.id, self.user.id)
