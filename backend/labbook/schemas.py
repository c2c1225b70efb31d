from datetime import date as dt_date, datetime
from typing import Optional, Any, Dict, Literal
from pydantic import BaseModel, EmailStr, ConfigDict, Field, model_validator
from uuid import UUID


PermissionScope = Literal["public", "organization", "team", "user", "useronly"]


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None
    orcid_id: Optional[str] = None


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    full_name: Optional[str] = None
    orcid_id: Optional[str] = None
    is_admin: bool = False
    team_id: Optional[UUID] = None
    default_read: Optional[PermissionScope] = None
    default_write: Optional[PermissionScope] = None
    model_config = ConfigDict(from_attributes=True)


class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    orcid_id: Optional[str] = None
    team_id: Optional[UUID] = None
    default_read: Optional[PermissionScope] = None
    default_write: Optional[PermissionScope] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TeamCreate(BaseModel):
    name: str


class TeamOut(BaseModel):
    id: UUID
    name: str
    model_config = ConfigDict(from_attributes=True)


class TeamMemberAdd(BaseModel):
    user_id: Optional[UUID] = None
    email: Optional[EmailStr] = None
    role: str = "member"


class TeamMemberOut(BaseModel):
    user: UserOut
    role: str
    model_config = ConfigDict(from_attributes=True)


class TeamSettingsUpdate(BaseModel):
    force_exp_tpl: Optional[bool] = None
    common_template: Optional[str] = None
    do_force_canread: Optional[bool] = None
    force_canread: Optional[PermissionScope] = None
    do_force_canwrite: Optional[bool] = None
    force_canwrite: Optional[PermissionScope] = None
    deletable_xp: Optional[bool] = None


class TeamSettingsOut(BaseModel):
    id: UUID
    name: str
    force_exp_tpl: bool
    common_template: str
    do_force_canread: bool
    force_canread: PermissionScope
    do_force_canwrite: bool
    force_canwrite: PermissionScope
    deletable_xp: bool
    model_config = ConfigDict(from_attributes=True)


class StatusCreate(BaseModel):
    name: str
    color: str = "29AEB9"
    is_default: bool = False
    is_timestampable: bool = True


class StatusOut(BaseModel):
    id: UUID
    team_id: UUID
    name: str
    color: Optional[str] = None
    is_default: bool
    is_timestampable: bool
    ordering: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class TagCreate(BaseModel):
    tag: str = Field(min_length=1)


class TagOut(BaseModel):
    id: UUID
    tag: str
    model_config = ConfigDict(from_attributes=True)


class LinkCreate(BaseModel):
    item_id: UUID


class LinkOut(BaseModel):
    id: UUID
    item_id: UUID
    model_config = ConfigDict(from_attributes=True)


class StepCreate(BaseModel):
    body: str = Field(min_length=1)


class StepOut(BaseModel):
    id: UUID
    body: str
    ordering: Optional[int] = None
    finished: bool = False
    finished_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class TemplateCreate(BaseModel):
    title: str = Field(min_length=1)
    body: str = ""
    meta: Optional[Dict[str, Any]] = None
    canread: PermissionScope = "team"
    canwrite: PermissionScope = "user"
    tags: list[str] = []


class TemplateOut(BaseModel):
    id: UUID
    team_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    title: str
    body: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    canread: str
    canwrite: str
    created_at: datetime
    steps: list[StepOut] = []
    links: list[LinkOut] = []
    model_config = ConfigDict(from_attributes=True)


class ExperimentCreate(BaseModel):
    template_id: Optional[UUID] = None
    tags: list[str] = []


class ExperimentUpdate(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None
    date: Optional[dt_date] = None
    category_id: Optional[UUID] = None
    canread: Optional[PermissionScope] = None
    canwrite: Optional[PermissionScope] = None
    meta: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def title_not_blank(self):
        if self.title is not None and not self.title.strip():
            raise ValueError("title cannot be blank")
        return self


class ExperimentOut(BaseModel):
    id: UUID
    title: str
    date: dt_date
    body: Optional[str] = None
    category_id: Optional[UUID] = None
    elabid: str
    canread: str
    canwrite: str
    meta: Optional[Dict[str, Any]] = None
    user_id: UUID
    team_id: Optional[UUID] = None
    locked: bool
    locked_by: Optional[UUID] = None
    locked_at: Optional[datetime] = None
    timestamped: bool
    timestamped_by: Optional[UUID] = None
    timestamped_at: Optional[datetime] = None
    timestamp_token: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ExperimentDetailOut(ExperimentOut):
    steps: list[StepOut] = []
    links: list[LinkOut] = []
    tags: list[TagOut] = []
    pinned: bool = False


class TimestampableOut(BaseModel):
    experiment_id: UUID
    timestampable: bool


class TimestampOut(BaseModel):
    version: int
    elabid: str
    hash_algorithm: str
    digest: str
    time: datetime
    signer: str


class UploadOut(BaseModel):
    id: UUID
    experiment_id: UUID
    real_name: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    hash: Optional[str] = None
    comment: Optional[str] = None
    uploaded_by: Optional[UUID] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PinOut(BaseModel):
    experiment_id: UUID
    pinned: bool


class TeamEventCreate(BaseModel):
    title: Optional[str] = None
    start: datetime
    end: datetime
    item_id: Optional[UUID] = None

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


class TeamEventOut(BaseModel):
    id: UUID
    team_id: UUID
    item_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    title: Optional[str] = None
    start: datetime
    end: datetime
    experiment_id: Optional[UUID] = None
    model_config = ConfigDict(from_attributes=True)


class AuditLogOut(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    action: str
    target_type: Optional[str] = None
    target_id: Optional[UUID] = None
    details: Dict[str, Any] = {}
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)
