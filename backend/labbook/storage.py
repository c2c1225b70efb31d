"""Object storage for experiment uploads and timestamp tokens."""

from __future__ import annotations

import hashlib
import io
import logging
import os
import re
from typing import Optional
from uuid import uuid4

from minio import Minio
from minio.error import S3Error

# purpose: persist experiment attachments on MinIO or the local upload directory
# status: active

logger = logging.getLogger(__name__)

_MINIO_CLIENT: Optional[Minio] = None


def _get_upload_dir() -> str:
    upload_dir = os.getenv("UPLOAD_DIR", "uploaded_files")
    os.makedirs(upload_dir, exist_ok=True)
    return upload_dir


def _bucket() -> str:
    return os.getenv("MINIO_BUCKET", "uploads")


def _ensure_minio_client() -> Optional[Minio]:
    """Return a MinIO client when the endpoint and credentials are configured."""

    global _MINIO_CLIENT
    endpoint = os.getenv("MINIO_ENDPOINT", "").strip()
    access_key = os.getenv("MINIO_ACCESS_KEY")
    secret_key = os.getenv("MINIO_SECRET_KEY")
    if not endpoint or not access_key or not secret_key:
        return None
    if _MINIO_CLIENT is None:
        client = Minio(
            endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=endpoint.startswith("https"),
        )
        if not client.bucket_exists(_bucket()):
            client.make_bucket(_bucket())
        _MINIO_CLIENT = client
    return _MINIO_CLIENT


def _build_object_name(namespace: str | None, filename: str) -> str:
    safe_name = re.sub(r"[^A-Za-z0-9_.-]", "_", filename) or "upload.bin"
    if not namespace:
        return f"{uuid4()}_{safe_name}"
    clean_namespace = re.sub(r"[^A-Za-z0-9/_.-]", "_", namespace).strip("/")
    return f"{clean_namespace}/{uuid4()}_{safe_name}"


def _split_s3_path(storage_path: str) -> tuple[str, str]:
    _, _, bucket, *key_parts = storage_path.split("/", 3)
    if not key_parts or not key_parts[-1]:
        raise FileNotFoundError(f"Invalid s3 storage path {storage_path}")
    return bucket, key_parts[-1]


def compute_digest(data: bytes, algorithm: str = "sha256") -> str:
    hasher = hashlib.new(algorithm)
    hasher.update(data)
    return hasher.hexdigest()


def save_binary_payload(
    data: bytes,
    filename: str,
    *,
    content_type: str = "application/octet-stream",
    namespace: str | None = None,
) -> tuple[str, int]:
    """Write the payload and return its storage locator and size in bytes."""

    object_name = _build_object_name(namespace, filename)
    client = _ensure_minio_client()
    if client:
        client.put_object(
            _bucket(),
            object_name,
            io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )
        return f"s3://{_bucket()}/{object_name}", len(data)

    upload_dir = _get_upload_dir()
    if namespace:
        target_dir = os.path.join(upload_dir, *namespace.strip("/").split("/"))
        os.makedirs(target_dir, exist_ok=True)
    else:
        target_dir = upload_dir
    storage_path = os.path.join(target_dir, os.path.basename(object_name))
    with open(storage_path, "wb") as handle:
        handle.write(data)
    return storage_path, len(data)


def load_binary_payload(storage_path: str) -> bytes:
    if storage_path.startswith("s3://"):
        client = _ensure_minio_client()
        if not client:
            raise FileNotFoundError("Object storage client unavailable for s3 path")
        bucket, object_name = _split_s3_path(storage_path)
        response = client.get_object(bucket, object_name)
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    with open(storage_path, "rb") as handle:
        return handle.read()


def delete_binary_payload(storage_path: str) -> None:
    """Remove a stored payload; a payload that is already gone is not an error."""

    if storage_path.startswith("s3://"):
        client = _ensure_minio_client()
        if not client:
            raise FileNotFoundError("Object storage client unavailable for s3 path")
        bucket, object_name = _split_s3_path(storage_path)
        try:
            client.remove_object(bucket, object_name)
        except S3Error as exc:
            if exc.code != "NoSuchKey":
                raise
            logger.info("Object %s already removed", storage_path)
        return

    try:
        os.remove(storage_path)
    except FileNotFoundError:
        logger.info("Upload %s already removed", storage_path)
