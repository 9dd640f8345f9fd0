"""
Uploads component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from dam.domain.entities import Asset, AssetType, Role, UploadType, VisibilityLevel
from dam.ports.storage import UploadCredential

# --- Validation Error ---


@dataclass(frozen=True)
class UploadValidationError:
    """Upload validation error."""

    code: str
    message: str
    field: str | None = None


# --- Configuration ---


@dataclass(frozen=True)
class UploadLimits:
    """Upload limits; loaded from the ``uploads`` section of rules.yaml."""

    max_tags: int = 20
    max_description_length: int = 1000
    max_title_length: int = 200
    max_file_name_length: int = 120
    min_carousel_items: int = 2
    max_carousel_items: int = 20
    carousel_mime_prefixes: tuple[str, ...] = ("image/", "video/")
    credential_ttl_seconds: int = 3600
    credential_retry_attempts: int = 1
    verify_objects_on_finalize: bool = False


# --- Input Models ---


@dataclass(frozen=True)
class ReserveUploadInput:
    """Metadata for a single-file (or link) upload."""

    title: str
    asset_type: AssetType
    upload_type: UploadType
    file_name: str | None = None
    content_type: str | None = None
    description: str = ""
    tags: tuple[str, ...] = ()
    company_id: UUID | None = None
    url: str | None = None
    visibility: VisibilityLevel | None = None
    allowed_role: Role | None = None
    file_size: int | None = None
    # Links only; file uploads submit at finalize.
    submit_for_review: bool = False


@dataclass(frozen=True)
class FinalizeUploadInput:
    asset_id: UUID
    file_size: int
    content_sha256: str | None = None
    mime_type: str | None = None
    submit_for_review: bool = False


@dataclass(frozen=True)
class ReserveCarouselInput:
    title: str
    upload_type: UploadType
    description: str = ""
    tags: tuple[str, ...] = ()
    company_id: UUID | None = None
    visibility: VisibilityLevel | None = None
    allowed_role: Role | None = None


@dataclass(frozen=True)
class ReserveCarouselItemInput:
    carousel_id: UUID
    file_name: str
    content_type: str


@dataclass(frozen=True)
class CarouselItemInput:
    """One child file, already transferred."""

    storage_locator: str
    mime_type: str
    file_size: int | None = None


@dataclass(frozen=True)
class FinalizeCarouselInput:
    carousel_id: UUID
    items: tuple[CarouselItemInput, ...] = field(default_factory=tuple)
    submit_for_review: bool = False


@dataclass(frozen=True)
class ReserveVersionInput:
    """Credential for replacement bytes of an existing asset."""

    asset_id: UUID
    file_name: str
    content_type: str


# --- Output Models ---


@dataclass(frozen=True)
class ReserveUploadOutput:
    asset: Asset
    credential: UploadCredential | None

    @property
    def asset_id(self) -> UUID:
        return self.asset.id


@dataclass(frozen=True)
class ReservedKey:
    credential: UploadCredential
    locator: str
