"""Per-user bookmarks of records."""

from __future__ import annotations

from .. import models
from .entities import AbstractEntity


class Pins:
    def __init__(self, entity: AbstractEntity):
        self.entity = entity
        self.db = entity.db

    def _query(self):
        return self.db.query(models.Pin).filter(
            models.Pin.entity_type == self.entity.entity_type,
            models.Pin.entity_id == self.entity.id,
        )

    def is_pinned(self) -> bool:
        return self._query().filter(models.Pin.user_id == self.entity.user.id).first() is not None

    def toggle(self) -> bool:
        """Pin or unpin the record for the acting user; returns the new state."""

        self.entity.can_or_explode("read")
        existing = self._query().filter(models.Pin.user_id == self.entity.user.id).first()
        if existing:
            self.db.delete(existing)
            self.db.flush()
            return False
        self.db.add(
            models.Pin(
                user_id=self.entity.user.id,
                entity_type=self.entity.entity_type,
                entity_id=self.entity.id,
            )
        )
        self.db.flush()
        return True

    def read_all(self) -> list[models.Pin]:
        return (
            self.db.query(models.Pin)
            .filter(
                models.Pin.user_id == self.entity.user.id,
                models.Pin.entity_type == self.entity.entity_type,
            )
            .all()
        )

    def cleanup(self) -> bool:
        """Drop every user's pin on the record."""

        self._query().delete(synchronize_session=False)
        self.db.flush()
        return True
