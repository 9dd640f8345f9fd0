from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(UTC)


# --- Enums ---


class Role(str, Enum):
    ADMIN = "ADMIN"
    CONTENT_CREATOR = "CONTENT_CREATOR"
    SEO_SPECIALIST = "SEO_SPECIALIST"


class AssetType(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    DOCUMENT = "DOCUMENT"
    LINK = "LINK"
    CAROUSEL = "CAROUSEL"


class UploadType(str, Enum):
    """BROADCAST goes through review; PRIVATE stays with its uploader."""

    BROADCAST = "BROADCAST"
    PRIVATE = "PRIVATE"


class AssetStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class VisibilityLevel(str, Enum):
    UPLOADER_ONLY = "UPLOADER_ONLY"
    ADMIN_ONLY = "ADMIN_ONLY"
    COMPANY = "COMPANY"
    TEAM = "TEAM"
    ROLE = "ROLE"
    SELECTED_USERS = "SELECTED_USERS"
    PUBLIC = "PUBLIC"


class FailureReason(str, Enum):
    """Why an asset is REJECTED: a review decision or missing bytes."""

    EDITORIAL_REJECTION = "EDITORIAL_REJECTION"
    INTEGRITY_FAILURE = "INTEGRITY_FAILURE"


class ApprovalAction(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class ShareTargetType(str, Enum):
    USER = "USER"
    ROLE = "ROLE"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    FINALIZE = "FINALIZE"
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    MARK_BROKEN = "MARK_BROKEN"
    VISIBILITY_CHANGE = "VISIBILITY_CHANGE"
    NEW_VERSION = "NEW_VERSION"
    SHARE = "SHARE"
    REVOKE_SHARE = "REVOKE_SHARE"


class ResourceType(str, Enum):
    ASSET = "ASSET"
    USER = "USER"
    COMPANY = "COMPANY"
    APPROVAL = "APPROVAL"


# --- Users & Companies ---


class Company(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    name: str
    created_at: datetime = Field(default_factory=utc_now)


class User(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    email: str
    name: str
    role: Role
    company_id: UUID | None = None
    status: str = "active"
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


# --- Assets ---


class Asset(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    title: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    asset_type: AssetType
    upload_type: UploadType
    status: AssetStatus = AssetStatus.DRAFT

    # None means "not chosen yet"; approval defaults it to PUBLIC.
    visibility: VisibilityLevel | None = None
    visibility_explicit: bool = False
    allowed_role: Role | None = None

    uploader_id: UUID
    company_id: UUID | None = None

    storage_locator: str | None = None
    url: str | None = None
    file_size: int | None = None
    mime_type: str | None = None
    content_sha256: str | None = None

    rejection_reason: str | None = None
    failure_reason: FailureReason | None = None

    uploaded_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    finalized_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by_id: UUID | None = None
    rejected_at: datetime | None = None
    rejected_by_id: UUID | None = None

    # Bumped on every write; status changes compare-and-set against it.
    revision: int = 0


class CarouselItem(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    carousel_id: UUID
    storage_locator: str
    file_size: int | None = None
    mime_type: str
    item_type: AssetType
    position: int
    created_at: datetime = Field(default_factory=utc_now)


class AssetVersion(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    asset_id: UUID
    version_number: int
    storage_locator: str | None
    file_size: int | None = None
    mime_type: str | None = None
    created_by_id: UUID
    created_at: datetime = Field(default_factory=utc_now)


class AssetShare(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    asset_id: UUID
    shared_by_id: UUID
    target_type: ShareTargetType
    target_id: str
    created_at: datetime = Field(default_factory=utc_now)


class Approval(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    asset_id: UUID
    reviewer_id: UUID
    action: ApprovalAction
    reason: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class AuditEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    actor_id: UUID | None
    action: AuditAction
    resource_type: ResourceType
    resource_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
