"""ModelMagic contract models.

Shared between the lifecycle core and the HTTP layer. Results returned by
the core always carry a `success` discriminant; callers check it before
trusting the payload.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from modelmagic.models.db import AssetStatus, AssetType, NotificationType, UserRole
from modelmagic.state_machine.registry import ProjectStatus, SideEffect

PackageType = Literal["10-shots", "20-shots", "30-shots", "custom"]

PRODUCT_TYPES = (
    "Clothing",
    "Accessories",
    "Footwear",
    "Jewelry",
    "Bags",
    "Eyewear",
    "Watches",
    "Other",
)


# === Lifecycle results ===


class TransitionErrorCode(str, enum.Enum):
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    TRANSITION_CONFLICT = "transition_conflict"
    PERSISTENCE_FAILURE = "persistence_failure"


class TransitionError(BaseModel):
    code: TransitionErrorCode
    message: str
    from_status: ProjectStatus | None = None
    to_status: ProjectStatus | None = None


class ProjectSnapshot(BaseModel):
    id: uuid.UUID
    status: ProjectStatus
    paid_at: datetime | None = None
    completed_at: datetime | None = None


class TransitionResult(BaseModel):
    success: bool
    project: ProjectSnapshot | None = None
    previous_status: ProjectStatus | None = None
    side_effects: list[SideEffect] = []
    error: TransitionError | None = None

    @classmethod
    def failed(
        cls,
        code: TransitionErrorCode,
        message: str,
        *,
        from_status: ProjectStatus | None = None,
        to_status: ProjectStatus | None = None,
    ) -> TransitionResult:
        return cls(
            success=False,
            previous_status=from_status,
            error=TransitionError(
                code=code, message=message, from_status=from_status, to_status=to_status
            ),
        )


class MarkPaidResult(BaseModel):
    """Outcome of the PAID -> IN_QUEUE two-hop. `transitions` holds each attempted hop."""

    success: bool
    project: ProjectSnapshot | None = None
    transitions: list[TransitionResult] = []
    error: TransitionError | None = None


class AssignPackageResult(BaseModel):
    success: bool
    project: ProjectSnapshot | None = None
    transition: TransitionResult | None = None
    error: TransitionError | None = None


# === Read models ===


class ActorSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str | None = None
    email: str | None = None


class HistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    from_status: ProjectStatus | None = None
    to_status: ProjectStatus
    changed_by: ActorSummary | None = None
    notes: str | None = None
    created_at: datetime


class AssetView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    type: AssetType
    status: AssetStatus
    file_name: str
    file_url: str
    file_key: str
    mime_type: str
    file_size: int
    revision_notes: str | None = None


class ProjectView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    product_type: str
    creative_brief: str
    status: ProjectStatus
    package_type: str | None = None
    payment_link_url: str | None = None
    paid_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    assets: list[AssetView] = []


class ProjectStats(BaseModel):
    total: int
    by_status: dict[ProjectStatus, int]
    active: int
    completed: int
    pending_review: int


class NotificationView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    project_id: uuid.UUID | None = None
    type: NotificationType
    title: str
    message: str
    read: bool
    created_at: datetime | None = None


class EmailResult(BaseModel):
    success: bool
    message_id: str | None = None
    error: str | None = None


# === API Request/Response Models ===


class ReferenceImage(BaseModel):
    file_name: str
    file_url: str
    file_key: str
    mime_type: str
    file_size: int = Field(gt=0)


class CreateProjectRequest(BaseModel):
    # name/email identify anonymous intake submissions; signed-in clients omit them
    name: str | None = Field(default=None, max_length=100)
    email: str | None = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    product_type: str = Field(min_length=1)
    creative_brief: str = Field(min_length=10, max_length=5000)
    reference_images: list[ReferenceImage] = Field(min_length=1, max_length=20)


class AssignPackageRequest(BaseModel):
    package_type: PackageType
    payment_link_url: str = Field(pattern=r"^https?://")
    send_email: bool = True


class MarkPaidRequest(BaseModel):
    send_magic_link: bool = True
    notes: str | None = None


class UpdateStatusRequest(BaseModel):
    status: ProjectStatus
    notes: str | None = None


class UploadUrlRequest(BaseModel):
    file_name: str = Field(min_length=1, max_length=255)
    content_type: str = Field(pattern=r"^image/")
    asset_type: AssetType = AssetType.REFERENCE


class UploadUrlResponse(BaseModel):
    upload_url: str
    file_key: str


class RevisionRequest(BaseModel):
    revision_notes: str = Field(min_length=1, max_length=2000)


class TransitionResponse(BaseModel):
    success: Literal[True] = True
    project: ProjectSnapshot
    previous_status: ProjectStatus | None = None
    valid_next_states: list[ProjectStatus] = []


class ErrorResponse(BaseModel):
    error: str
    message: str
    retryable: bool
    detail: str | None = None


class GeneratedAssetRequest(BaseModel):
    file_name: str = Field(min_length=1, max_length=255)
    file_key: str = Field(min_length=1)
    mime_type: str = Field(pattern=r"^image/")
    file_size: int = Field(gt=0)
    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)


class RevisionResponse(BaseModel):
    asset: AssetView
    project: ProjectSnapshot | None = None


class ProjectSummary(BaseModel):
    """List row: project fields without the brief or assets."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    product_type: str
    status: ProjectStatus
    package_type: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    asset_count: int = 0


class ProjectPage(BaseModel):
    projects: list[ProjectSummary]
    total: int
    page: int
    limit: int
    total_pages: int


class UpdateProjectRequest(BaseModel):
    product_type: str | None = Field(default=None, min_length=1, max_length=100)
    creative_brief: str | None = Field(default=None, min_length=10, max_length=5000)


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str | None = None
    name: str | None = None
    role: UserRole
    created_at: datetime | None = None
    project_count: int = 0


class UserPage(BaseModel):
    users: list[UserSummary]
    total: int
    page: int
    limit: int
    total_pages: int
