"""Experiment lifecycle API routes."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from .. import audit, models, schemas
from ..auth import get_current_user
from ..database import get_db
from ..rbac import http_error_for
from ..services.entities import EntityError, EntityNotFound, IllegalActionError
from ..services.experiments import Experiments
from ..services.timestamps import make_timestamp

# purpose: expose create, duplicate, timestamp and destroy for experiments plus their child collections
# status: active
# depends_on: backend.labbook.services.experiments

router = APIRouter(prefix="/api/experiments", tags=["experiments"])

TARGET_TYPE = "experiment"


def _load(db: Session, user: models.User, experiment_id: UUID) -> Experiments:
    try:
        return Experiments(db, user, experiment_id)
    except EntityNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Experiment not found") from exc


def _detail(experiments: Experiments) -> schemas.ExperimentDetailOut:
    base = schemas.ExperimentOut.model_validate(experiments.entity_data)
    return schemas.ExperimentDetailOut(
        **base.model_dump(),
        steps=[schemas.StepOut.model_validate(step) for step in experiments.steps.read_all()],
        links=[schemas.LinkOut.model_validate(link) for link in experiments.links.read_all()],
        tags=[schemas.TagOut.model_validate(tag) for tag in experiments.tags.read_all()],
        pinned=experiments.pins.is_pinned(),
    )


@router.post("", response_model=schemas.ExperimentDetailOut, status_code=status.HTTP_201_CREATED)
def create_experiment(
    payload: schemas.ExperimentCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        new_id = Experiments(db, user).create(payload)
        audit.log_action(
            db,
            user.id,
            "experiment.create",
            TARGET_TYPE,
            new_id,
            {"template_id": str(payload.template_id) if payload.template_id else None},
        )
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    return _detail(Experiments(db, user, new_id))


@router.get("", response_model=list[schemas.ExperimentOut])
def list_experiments(
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return Experiments(db, user).read_all(limit=limit)


@router.get("/pinned", response_model=list[schemas.ExperimentOut])
def list_pinned_experiments(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = Experiments(db, user)
    pinned = []
    for pin in experiments.pins.read_all():
        row = db.get(models.Experiment, pin.entity_id)
        if row is not None and experiments.get_permissions(row)["read"]:
            pinned.append(row)
    return pinned


@router.get("/{experiment_id}", response_model=schemas.ExperimentDetailOut)
def get_experiment(
    experiment_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        experiments.read()
    except EntityError as exc:
        raise http_error_for(exc) from exc
    return _detail(experiments)


@router.patch("/{experiment_id}", response_model=schemas.ExperimentDetailOut)
def update_experiment(
    experiment_id: UUID,
    payload: schemas.ExperimentUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        experiments.update(payload)
        audit.log_action(
            db,
            user.id,
            "experiment.update",
            TARGET_TYPE,
            experiment_id,
            {"fields": sorted(payload.model_dump(exclude_unset=True))},
        )
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    db.refresh(experiments.entity_data)
    return _detail(experiments)


@router.delete("/{experiment_id}")
def delete_experiment(
    experiment_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    payloads = [upload.storage_path for upload in experiments.uploads.read_all()]
    try:
        experiments.destroy()
        audit.log_action(db, user.id, "experiment.destroy", TARGET_TYPE, experiment_id)
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    # stored files go only once the rows are gone for good
    experiments.uploads.purge(payloads)
    return {"detail": "deleted"}


@router.post(
    "/{experiment_id}/duplicate",
    response_model=schemas.ExperimentDetailOut,
    status_code=status.HTTP_201_CREATED,
)
def duplicate_experiment(
    experiment_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        new_id = experiments.duplicate()
        audit.log_action(
            db,
            user.id,
            "experiment.duplicate",
            TARGET_TYPE,
            new_id,
            {"source_id": str(experiment_id)},
        )
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    return _detail(Experiments(db, user, new_id))


@router.get("/{experiment_id}/timestampable", response_model=schemas.TimestampableOut)
def get_timestampable(
    experiment_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        experiments.can_or_explode("read")
    except EntityError as exc:
        raise http_error_for(exc) from exc
    return schemas.TimestampableOut(
        experiment_id=experiment_id,
        timestampable=experiments.is_timestampable(),
    )


@router.post("/{experiment_id}/timestamp", response_model=schemas.TimestampOut)
def timestamp_experiment(
    experiment_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        token = make_timestamp(experiments)
        audit.log_action(
            db,
            user.id,
            "experiment.timestamp",
            TARGET_TYPE,
            experiment_id,
            {"digest": token["digest"]},
        )
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    return token


@router.post("/{experiment_id}/tags", response_model=list[schemas.TagOut])
def add_tag(
    experiment_id: UUID,
    payload: schemas.TagCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        experiments.can_or_explode("write")
        experiments.tags.create(payload.tag)
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    return experiments.tags.read_all()


@router.delete("/{experiment_id}/tags/{tag_id}")
def remove_tag(
    experiment_id: UUID,
    tag_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        experiments.can_or_explode("write")
        experiments.tags.unreference(tag_id)
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    return {"detail": "ok"}


@router.post("/{experiment_id}/links", response_model=schemas.LinkOut, status_code=status.HTTP_201_CREATED)
def add_link(
    experiment_id: UUID,
    payload: schemas.LinkCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        link = experiments.links.create(payload.item_id)
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    db.refresh(link)
    return link


@router.delete("/{experiment_id}/links/{link_id}")
def remove_link(
    experiment_id: UUID,
    link_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        experiments.links.destroy(link_id)
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    return {"detail": "deleted"}


@router.post("/{experiment_id}/steps", response_model=schemas.StepOut, status_code=status.HTTP_201_CREATED)
def add_step(
    experiment_id: UUID,
    payload: schemas.StepCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        step = experiments.steps.create(payload.body)
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    db.refresh(step)
    return step


@router.post("/{experiment_id}/steps/{step_id}/finish", response_model=schemas.StepOut)
def finish_step(
    experiment_id: UUID,
    step_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        step = experiments.steps.finish(step_id)
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    db.refresh(step)
    return step


@router.post(
    "/{experiment_id}/uploads",
    response_model=schemas.UploadOut,
    status_code=status.HTTP_201_CREATED,
)
async def upload_file(
    experiment_id: UUID,
    upload: UploadFile = File(...),
    comment: str | None = Form(default=None),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    data = await upload.read()
    try:
        record = experiments.uploads.create(
            data,
            upload.filename or "",
            content_type=upload.content_type or "application/octet-stream",
            comment=comment,
        )
        audit.log_action(
            db,
            user.id,
            "experiment.upload",
            TARGET_TYPE,
            experiment_id,
            {"upload_id": str(record.id), "real_name": record.real_name},
        )
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    db.refresh(record)
    return record


@router.get("/{experiment_id}/uploads", response_model=list[schemas.UploadOut])
def list_uploads(
    experiment_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        experiments.can_or_explode("read")
    except EntityError as exc:
        raise http_error_for(exc) from exc
    return experiments.uploads.read_all()


@router.get("/{experiment_id}/uploads/{upload_id}/download")
def download_upload(
    experiment_id: UUID,
    upload_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        record, data = experiments.uploads.read_payload(upload_id)
    except EntityError as exc:
        raise http_error_for(exc) from exc
    return Response(
        content=data,
        media_type=record.file_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{record.real_name}"'},
    )


@router.delete("/{experiment_id}/uploads/{upload_id}")
def delete_upload(
    experiment_id: UUID,
    upload_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        path = experiments.uploads.destroy(upload_id)
        audit.log_action(
            db,
            user.id,
            "experiment.upload_delete",
            TARGET_TYPE,
            experiment_id,
            {"upload_id": str(upload_id)},
        )
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    experiments.uploads.purge([path])
    return {"detail": "deleted"}


@router.post("/{experiment_id}/pin", response_model=schemas.PinOut)
def toggle_pin(
    experiment_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        pinned = experiments.pins.toggle()
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    return schemas.PinOut(experiment_id=experiment_id, pinned=pinned)


@router.get("/{experiment_id}/events", response_model=list[schemas.TeamEventOut])
def list_bound_events(
    experiment_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        experiments.can_or_explode("read")
    except EntityError as exc:
        raise http_error_for(exc) from exc
    return experiments.get_bound_events()


@router.post(
    "/{experiment_id}/events",
    response_model=schemas.TeamEventOut,
    status_code=status.HTTP_201_CREATED,
)
def bind_event(
    experiment_id: UUID,
    payload: schemas.TeamEventCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        experiments.can_or_explode("write")
    except EntityError as exc:
        raise http_error_for(exc) from exc
    team_id = experiments.entity_data.team_id
    if team_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Experiment has no team")
    if payload.item_id and not db.get(models.InventoryItem, payload.item_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    event = models.TeamEvent(
        team_id=team_id,
        item_id=payload.item_id,
        user_id=user.id,
        title=payload.title,
        start=payload.start,
        end=payload.end,
        experiment_id=experiment_id,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


@router.get("/{experiment_id}/history", response_model=list[schemas.AuditLogOut])
def get_history(
    experiment_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    experiments = _load(db, user, experiment_id)
    try:
        experiments.can_or_explode("read")
    except IllegalActionError as exc:
        raise http_error_for(exc) from exc
    return audit.list_target_history(db, TARGET_TYPE, experiment_id)
