"""
Lifecycle component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID, uuid4

from dam.domain.entities import (
    Approval,
    ApprovalAction,
    Asset,
    AssetType,
    AssetVersion,
    Role,
    UploadType,
    VisibilityLevel,
)

# --- Input Models ---


@dataclass(frozen=True)
class NewAsset:
    """
    Validated metadata for a new asset.

    ``asset_id`` is chosen by the caller so storage keys can be derived
    before the row exists.
    """

    title: str
    asset_type: AssetType
    upload_type: UploadType
    description: str = ""
    tags: tuple[str, ...] = ()
    company_id: UUID | None = None
    url: str | None = None
    visibility: VisibilityLevel | None = None
    allowed_role: Role | None = None
    mime_type: str | None = None
    file_size: int | None = None
    storage_locator: str | None = None
    submit_for_review: bool = False
    asset_id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class DecisionInput:
    """Approve or reject a pending asset."""

    asset_id: UUID
    action: ApprovalAction
    reason: str | None = None
    visibility: VisibilityLevel | None = None
    allowed_role: Role | None = None
    # If-Match style guard; None trusts the revision read in this call.
    expected_revision: int | None = None


@dataclass(frozen=True)
class VisibilityChangeInput:
    asset_id: UUID
    visibility: VisibilityLevel
    allowed_role: Role | None = None
    expected_revision: int | None = None


@dataclass(frozen=True)
class ContentReplacementInput:
    """New bytes already written under the asset's storage prefix."""

    asset_id: UUID
    storage_locator: str
    file_size: int | None = None
    mime_type: str | None = None


# --- Output Models ---


@dataclass(frozen=True)
class DecisionOutput:
    asset: Asset
    approval: Approval


@dataclass(frozen=True)
class AssetHistory:
    approvals: tuple[Approval, ...]
    versions: tuple[AssetVersion, ...]
