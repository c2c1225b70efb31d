import uuid
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String)
    orcid_id = Column(String)
    is_admin = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    # active team, used as the team of every record the user creates
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id", use_alter=True, name="fk_users_team_id"))
    default_read = Column(String, nullable=True)
    default_write = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow)

    teams = relationship("TeamMember", back_populates="user")


class Team(Base):
    __tablename__ = "teams"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime, default=_utcnow)
    # experiment policy enforced by team owners
    force_exp_tpl = Column(Boolean, default=False, nullable=False)
    common_template = Column(Text, default="", nullable=False)
    do_force_canread = Column(Boolean, default=False, nullable=False)
    force_canread = Column(String, default="team", nullable=False)
    do_force_canwrite = Column(Boolean, default=False, nullable=False)
    force_canwrite = Column(String, default="user", nullable=False)
    deletable_xp = Column(Boolean, default=True, nullable=False)

    members = relationship("TeamMember", back_populates="team")
    statuses = relationship("Status", back_populates="team", order_by="Status.ordering")


class TeamMember(Base):
    __tablename__ = "team_members"
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), primary_key=True)
    role = Column(String, default="member")

    user = relationship("User", back_populates="teams")
    team = relationship("Team", back_populates="members")


class Status(Base):
    __tablename__ = "status"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False)
    name = Column(String, nullable=False)
    color = Column(String, default="29AEB9")
    is_default = Column(Boolean, default=False, nullable=False)
    is_timestampable = Column(Boolean, default=True, nullable=False)
    ordering = Column(Integer, default=0)

    team = relationship("Team", back_populates="statuses")


class InventoryItem(Base):
    __tablename__ = "inventory_items"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    item_type = Column(String, nullable=False)
    name = Column(String, nullable=False)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"))
    owner_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime, default=_utcnow)


class ExperimentTemplate(Base):
    __tablename__ = "experiments_templates"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"))
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    title = Column(String, nullable=False)
    body = Column(Text, default="")
    meta = Column("metadata", JSON, nullable=True)
    canread = Column(String, default="team", nullable=False)
    canwrite = Column(String, default="user", nullable=False)
    locked = Column(Boolean, default=False, nullable=False)
    locked_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    ordering = Column(Integer, default=0)
    created_at = Column(DateTime, default=_utcnow)

    steps = relationship(
        "TemplateStep",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="TemplateStep.ordering",
    )
    links = relationship(
        "TemplateLink",
        back_populates="template",
        cascade="all, delete-orphan",
    )


class Experiment(Base):
    __tablename__ = "experiments"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    body = Column(Text, default="")
    category_id = Column("category", UUID(as_uuid=True), ForeignKey("status.id"))
    elabid = Column(String, unique=True, nullable=False)
    canread = Column(String, default="team", nullable=False)
    canwrite = Column(String, default="user", nullable=False)
    meta = Column("metadata", JSON, nullable=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"))
    locked = Column(Boolean, default=False, nullable=False)
    locked_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    locked_at = Column(DateTime, nullable=True)
    timestamped = Column(Boolean, default=False, nullable=False)
    timestamped_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    timestamped_at = Column(DateTime, nullable=True)
    timestamp_token = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    status = relationship("Status")
    steps = relationship(
        "ExperimentStep",
        back_populates="experiment",
        cascade="all, delete-orphan",
        order_by="ExperimentStep.ordering",
    )
    links = relationship(
        "ExperimentLink",
        back_populates="experiment",
        cascade="all, delete-orphan",
    )
    events = relationship("TeamEvent", back_populates="experiment")


class Tag(Base):
    __tablename__ = "tags"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"))
    tag = Column(String, nullable=False)

    __table_args__ = (sa.UniqueConstraint("team_id", "tag"),)


class TagLink(Base):
    """Attachment of a team tag to an experiment or a template."""

    __tablename__ = "tags2entity"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tag_id = Column(UUID(as_uuid=True), ForeignKey("tags.id", ondelete="CASCADE"), nullable=False)
    entity_type = Column(String, nullable=False)
    entity_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    tag = relationship("Tag")

    __table_args__ = (sa.UniqueConstraint("tag_id", "entity_type", "entity_id"),)


class ExperimentLink(Base):
    __tablename__ = "experiments_links"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    experiment_id = Column(
        UUID(as_uuid=True), ForeignKey("experiments.id", ondelete="CASCADE"), nullable=False
    )
    item_id = Column(
        UUID(as_uuid=True), ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False
    )

    experiment = relationship("Experiment", back_populates="links")
    item = relationship("InventoryItem")


class TemplateLink(Base):
    __tablename__ = "experiments_templates_links"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    template_id = Column(
        UUID(as_uuid=True),
        ForeignKey("experiments_templates.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_id = Column(
        UUID(as_uuid=True), ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False
    )

    template = relationship("ExperimentTemplate", back_populates="links")
    item = relationship("InventoryItem")


class ExperimentStep(Base):
    __tablename__ = "experiments_steps"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    experiment_id = Column(
        UUID(as_uuid=True), ForeignKey("experiments.id", ondelete="CASCADE"), nullable=False
    )
    body = Column(Text, nullable=False)
    ordering = Column(Integer, default=0)
    finished = Column(Boolean, default=False, nullable=False)
    finished_at = Column(DateTime, nullable=True)

    experiment = relationship("Experiment", back_populates="steps")


class TemplateStep(Base):
    __tablename__ = "experiments_templates_steps"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    template_id = Column(
        UUID(as_uuid=True),
        ForeignKey("experiments_templates.id", ondelete="CASCADE"),
        nullable=False,
    )
    body = Column(Text, nullable=False)
    ordering = Column(Integer, default=0)
    finished = Column(Boolean, default=False, nullable=False)
    finished_at = Column(DateTime, nullable=True)

    template = relationship("ExperimentTemplate", back_populates="steps")


class Upload(Base):
    __tablename__ = "uploads"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    experiment_id = Column(
        UUID(as_uuid=True), ForeignKey("experiments.id", ondelete="CASCADE"), nullable=False
    )
    real_name = Column(String, nullable=False)
    storage_path = Column(String, nullable=False)
    file_type = Column(String)
    file_size = Column(Integer, default=0)
    hash = Column(String)
    hash_algorithm = Column(String, default="sha256")
    comment = Column(Text)
    uploaded_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime, default=_utcnow)


class Pin(Base):
    """User bookmark; references the entity loosely so it can outlive it until cleanup."""

    __tablename__ = "pin2users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    entity_type = Column(String, nullable=False)
    entity_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    __table_args__ = (sa.UniqueConstraint("user_id", "entity_type", "entity_id"),)


class TeamEvent(Base):
    __tablename__ = "team_events"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False)
    item_id = Column(UUID(as_uuid=True), ForeignKey("inventory_items.id"))
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    title = Column(String)
    start = Column(DateTime, nullable=False)
    end = Column(DateTime, nullable=False)
    experiment_id = Column(
        "experiment", UUID(as_uuid=True), ForeignKey("experiments.id", ondelete="SET NULL")
    )

    experiment = relationship("Experiment", back_populates="events")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow)
