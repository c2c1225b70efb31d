from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user
from ..rbac import http_error_for
from ..services.entities import EntityError, EntityNotFound
from ..services.tags import Tags
from ..services.links import Links
from ..services.steps import Steps
from ..services.templates import Templates
from .. import models, schemas

router = APIRouter(prefix="/api/templates", tags=["templates"])


def _load(db: Session, user: models.User, template_id: UUID) -> Templates:
    try:
        return Templates(db, user, template_id)
    except EntityNotFound as exc:
        raise HTTPException(status_code=404, detail="Template not found") from exc


@router.post("", response_model=schemas.TemplateOut, status_code=status.HTTP_201_CREATED)
def create_template(
    payload: schemas.TemplateCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        template = Templates(db, user).create(
            payload.title,
            body=payload.body,
            meta=payload.meta,
            canread=payload.canread,
            canwrite=payload.canwrite,
            tags=payload.tags,
        )
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    db.refresh(template)
    return template


@router.get("", response_model=list[schemas.TemplateOut])
def list_templates(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return Templates(db, user).read_all()


@router.get("/{template_id}", response_model=schemas.TemplateOut)
def get_template(
    template_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    templates = _load(db, user, template_id)
    try:
        return templates.read()
    except EntityError as exc:
        raise http_error_for(exc) from exc


@router.get("/{template_id}/tags", response_model=list[schemas.TagOut])
def list_template_tags(
    template_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    templates = _load(db, user, template_id)
    try:
        templates.can_or_explode("read")
    except EntityError as exc:
        raise http_error_for(exc) from exc
    return Tags(templates).read_all()


@router.post("/{template_id}/tags", response_model=list[schemas.TagOut])
def add_template_tag(
    template_id: UUID,
    payload: schemas.TagCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    templates = _load(db, user, template_id)
    tags = Tags(templates)
    try:
        templates.can_or_explode("write")
        tags.create(payload.tag)
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    return tags.read_all()


@router.post("/{template_id}/links", response_model=schemas.LinkOut, status_code=status.HTTP_201_CREATED)
def add_template_link(
    template_id: UUID,
    payload: schemas.LinkCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    templates = _load(db, user, template_id)
    try:
        link = Links(templates).create(payload.item_id)
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    db.refresh(link)
    return link


@router.post("/{template_id}/steps", response_model=schemas.StepOut, status_code=status.HTTP_201_CREATED)
def add_template_step(
    template_id: UUID,
    payload: schemas.StepCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    templates = _load(db, user, template_id)
    try:
        step = Steps(templates).create(payload.body)
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    db.refresh(step)
    return step


@router.delete("/{template_id}")
def delete_template(
    template_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    templates = _load(db, user, template_id)
    try:
        templates.destroy()
        db.commit()
    except EntityError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    return {"detail": "deleted"}
