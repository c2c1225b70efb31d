"""Files attached to experiments."""

from __future__ import annotations

import logging
from uuid import UUID

from .. import models, storage
from .entities import AbstractEntity, EntityNotFound, ImproperActionError

logger = logging.getLogger(__name__)


class Uploads:
    def __init__(self, entity: AbstractEntity):
        self.entity = entity
        self.db = entity.db

    def create(
        self,
        data: bytes,
        real_name: str,
        *,
        content_type: str = "application/octet-stream",
        comment: str | None = None,
    ) -> models.Upload:
        self.entity.can_or_explode("write")
        if not real_name:
            raise ImproperActionError("Upload requires a file name")
        storage_path, size = storage.save_binary_payload(
            data,
            real_name,
            content_type=content_type,
            namespace=f"experiments/{self.entity.id}",
        )
        upload = models.Upload(
            experiment_id=self.entity.id,
            real_name=real_name,
            storage_path=storage_path,
            file_type=content_type,
            file_size=size,
            hash=storage.compute_digest(data),
            comment=comment,
            uploaded_by=self.entity.user.id,
        )
        self.db.add(upload)
        self.db.flush()
        return upload

    def read_all(self) -> list[models.Upload]:
        return (
            self.db.query(models.Upload)
            .filter(models.Upload.experiment_id == self.entity.id)
            .order_by(models.Upload.created_at.asc())
            .all()
        )

    def get(self, upload_id: UUID) -> models.Upload:
        upload = self.db.get(models.Upload, upload_id)
        if upload is None or upload.experiment_id != self.entity.id:
            raise EntityNotFound(f"upload {upload_id} not found")
        return upload

    def read_payload(self, upload_id: UUID) -> tuple[models.Upload, bytes]:
        self.entity.can_or_explode("read")
        upload = self.get(upload_id)
        return upload, storage.load_binary_payload(upload.storage_path)

    def destroy(self, upload_id: UUID) -> str:
        """Delete the upload row; returns the storage path to purge after commit."""

        self.entity.can_or_explode("write")
        path = self._remove(self.get(upload_id))
        self.db.flush()
        return path

    def _remove(self, upload: models.Upload) -> str:
        self.db.delete(upload)
        return upload.storage_path

    def destroy_all(self) -> list[str]:
        """Delete the upload rows of the record.

        Payloads stay in storage until :meth:`purge` runs with the returned
        paths, once the deletion is committed.
        """

        paths = [self._remove(upload) for upload in self.read_all()]
        self.db.flush()
        if paths:
            logger.info("Removed %d uploads of experiment %s", len(paths), self.entity.id)
        return paths

    @staticmethod
    def purge(paths: list[str]) -> None:
        for path in paths:
            storage.delete_binary_payload(path)
