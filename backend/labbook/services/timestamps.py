"""Trusted timestamp tokens for experiments."""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any

from .. import storage
from .entities import ImproperActionError
from .experiments import Experiments

# purpose: freeze an experiment by hashing its canonical export and storing the token
# status: active
# depends_on: backend.labbook.storage

logger = logging.getLogger(__name__)

TOKEN_VERSION = 1
HASH_ALGORITHM = "sha256"


def build_export(experiments: Experiments) -> dict[str, Any]:
    """Canonical snapshot of the experiment content covered by the token."""

    row = experiments.entity_data
    return {
        "elabid": row.elabid,
        "title": row.title,
        "date": row.date.isoformat() if row.date else None,
        "body": row.body or "",
        "metadata": row.meta,
        "steps": [
            {"body": step.body, "ordering": step.ordering, "finished": step.finished}
            for step in experiments.steps.read_all()
        ],
        "links": sorted(str(link.item_id) for link in experiments.links.read_all()),
        "tags": [tag.tag for tag in experiments.tags.read_all()],
        "uploads": sorted(
            (upload.real_name, upload.hash or "") for upload in experiments.uploads.read_all()
        ),
    }


def make_timestamp(experiments: Experiments) -> dict[str, Any]:
    """Timestamp the loaded experiment and lock it; returns the stored token."""

    experiments.can_or_explode("write")
    if not experiments.is_timestampable():
        raise ImproperActionError("This experiment cannot be timestamped with its current status.")

    row = experiments.entity_data
    export = json.dumps(build_export(experiments), sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.new(HASH_ALGORITHM, export.encode("utf-8")).hexdigest()
    response_time = datetime.now(timezone.utc)
    token = {
        "version": TOKEN_VERSION,
        "elabid": row.elabid,
        "hash_algorithm": HASH_ALGORITHM,
        "digest": digest,
        "time": response_time.isoformat(),
        "signer": experiments.user.email,
    }
    token_path, _ = storage.save_binary_payload(
        json.dumps(token, sort_keys=True).encode("utf-8"),
        f"{row.elabid}-timestamp.json",
        content_type="application/json",
        namespace=f"timestamps/{row.id}",
    )
    experiments.update_timestamp(response_time, token_path)
    logger.info("Experiment %s timestamped with digest %s", row.id, digest)
    return token
