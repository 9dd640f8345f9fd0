from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from dam.domain.entities import (
    ApprovalAction,
    AssetStatus,
    AssetType,
    AuditAction,
    FailureReason,
    ResourceType,
    Role,
    ShareTargetType,
    UploadType,
    VisibilityLevel,
)

PermissionActionName = Literal["view", "edit", "delete", "approve", "download"]


# --- Assets ---
class AssetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str
    tags: list[str]
    asset_type: AssetType
    upload_type: UploadType
    status: AssetStatus
    # Stored values outside the known levels are passed through as text.
    visibility: VisibilityLevel | str | None
    allowed_role: Role | None = None
    uploader_id: UUID
    company_id: UUID | None = None
    storage_locator: str | None = None
    url: str | None = None
    public_url: str | None = None
    file_size: int | None = None
    mime_type: str | None = None
    rejection_reason: str | None = None
    failure_reason: FailureReason | None = None
    uploaded_at: datetime
    updated_at: datetime
    finalized_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    revision: int


class AssetListResponse(BaseModel):
    items: list[AssetResponse]
    total: int
    limit: int
    offset: int


class CredentialResponse(BaseModel):
    upload_url: str
    key: str
    content_type: str
    expires_at: datetime


class PresignRequest(BaseModel):
    title: str
    asset_type: AssetType
    upload_type: UploadType
    file_name: str | None = None
    content_type: str | None = None
    description: str = ""
    tags: list[str] = []
    company_id: UUID | None = None
    url: str | None = None
    visibility: VisibilityLevel | None = None
    allowed_role: Role | None = None
    file_size: int | None = None
    submit_for_review: bool = False


class PresignResponse(BaseModel):
    asset_id: UUID
    asset: AssetResponse
    credential: CredentialResponse | None = None


class CompleteUploadRequest(BaseModel):
    file_size: int
    content_sha256: str | None = None
    mime_type: str | None = None
    submit_for_review: bool = False


class CarouselRequest(BaseModel):
    title: str
    upload_type: UploadType
    description: str = ""
    tags: list[str] = []
    company_id: UUID | None = None
    visibility: VisibilityLevel | None = None
    allowed_role: Role | None = None


class CarouselItemCredentialRequest(BaseModel):
    file_name: str
    content_type: str


class ReservedKeyResponse(BaseModel):
    locator: str
    credential: CredentialResponse


class CarouselItemModel(BaseModel):
    storage_locator: str
    mime_type: str
    file_size: int | None = None


class CarouselFinalizeRequest(BaseModel):
    items: list[CarouselItemModel]
    submit_for_review: bool = False


class CarouselItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    storage_locator: str
    file_size: int | None = None
    mime_type: str
    item_type: AssetType
    position: int


# --- Lifecycle ---
class SubmitRequest(BaseModel):
    expected_revision: int | None = None


class DecisionRequest(BaseModel):
    action: ApprovalAction
    reason: str | None = None
    visibility: VisibilityLevel | None = None
    allowed_role: Role | None = None
    expected_revision: int | None = None


class ApprovalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    asset_id: UUID
    reviewer_id: UUID
    action: ApprovalAction
    reason: str | None = None
    created_at: datetime


class DecisionResponse(BaseModel):
    asset: AssetResponse
    approval: ApprovalResponse


class VisibilityRequest(BaseModel):
    visibility: VisibilityLevel
    allowed_role: Role | None = None
    expected_revision: int | None = None


class VersionPresignRequest(BaseModel):
    file_name: str
    content_type: str


class ReplaceContentRequest(BaseModel):
    storage_locator: str
    file_size: int | None = None
    mime_type: str | None = None


class MarkBrokenRequest(BaseModel):
    reason: str = Field(default="Stored object is missing", min_length=1)


class VersionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    version_number: int
    storage_locator: str | None
    file_size: int | None = None
    mime_type: str | None = None
    created_by_id: UUID
    created_at: datetime


class HistoryResponse(BaseModel):
    approvals: list[ApprovalResponse]
    versions: list[VersionResponse]


# --- Permissions ---
class PermissionsResponse(BaseModel):
    can_view: bool
    can_edit: bool
    can_delete: bool
    can_approve: bool
    can_download: bool
    reason: str | None = None


class PermissionCheckResponse(BaseModel):
    action: PermissionActionName
    allowed: bool


# --- Sharing ---
class ShareRequest(BaseModel):
    user_ids: list[UUID] = []
    roles: list[Role] = []


class ShareResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    asset_id: UUID
    shared_by_id: UUID
    target_type: ShareTargetType
    target_id: str
    created_at: datetime


# --- Audit ---
class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    actor_id: UUID | None
    action: AuditAction
    resource_type: ResourceType
    resource_id: str
    metadata: dict[str, Any]
    created_at: datetime


class AuditQueryResponse(BaseModel):
    items: list[AuditEntryResponse]
    total: int
    offset: int
    limit: int


# --- Storage ---
class UploadReceipt(BaseModel):
    key: str
    sha256: str
    size: int


# --- Errors ---
class ErrorResponse(BaseModel):
    code: str
    message: str
    field: str | None = None
    retryable: bool | None = None
