"""
Repository interfaces.

Implementations: SQLite (``dam.adapters.sqlite_db``) and in-memory
(``dam.adapters.memory``). All repositories for one operation are reached
through a unit of work so a transition, its approval record and its audit
entry commit or roll back together.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

from dam.domain.entities import (
    Approval,
    Asset,
    AssetShare,
    AssetStatus,
    AssetType,
    AssetVersion,
    AuditEntry,
    CarouselItem,
    Company,
    ShareTargetType,
    UploadType,
    User,
)

if TYPE_CHECKING:
    from dam.components.visibility.models import VisibilityFilter


@dataclass(frozen=True)
class AssetListFilters:
    """Caller-supplied narrowing applied on top of the visibility filter."""

    status: AssetStatus | None = None
    asset_type: AssetType | None = None
    upload_type: UploadType | None = None
    company_id: UUID | None = None
    uploader_id: UUID | None = None
    tag: str | None = None
    search: str | None = None
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True)
class AuditQuery:
    actor_id: UUID | None = None
    action: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    limit: int = 100
    offset: int = 0


class UserRepoPort(Protocol):
    def get_by_id(self, user_id: UUID) -> User | None: ...

    def get_by_email(self, email: str) -> User | None: ...

    def save(self, user: User) -> User: ...

    def list_admins(self) -> list[User]: ...


class CompanyRepoPort(Protocol):
    def get_by_id(self, company_id: UUID) -> Company | None: ...

    def get_by_name(self, name: str) -> Company | None: ...

    def save(self, company: Company) -> Company: ...


class AssetRepoPort(Protocol):
    """
    Logical assets.

    Invariants:
    - No physical delete; assets are superseded by status.
    - ``update`` is a compare-and-set on ``revision``.
    """

    def get_by_id(self, asset_id: UUID) -> Asset | None: ...

    def insert(self, asset: Asset) -> Asset: ...

    def update(self, asset: Asset, *, expected_revision: int) -> Asset:
        """
        Persist ``asset`` if the stored revision still equals
        ``expected_revision``; returns the asset with the bumped revision.

        Raises:
            Conflict: the stored revision moved on.
        """
        ...

    def list_visible(
        self,
        visibility: VisibilityFilter,
        filters: AssetListFilters,
    ) -> tuple[list[Asset], int]: ...

    def list_by_status(self, status: AssetStatus) -> list[Asset]: ...


class ShareRepoPort(Protocol):
    def add(self, share: AssetShare) -> AssetShare: ...

    def remove(self, asset_id: UUID, target_type: ShareTargetType, target_id: str) -> bool: ...

    def list_by_asset(self, asset_id: UUID) -> list[AssetShare]: ...

    def has_user_share(self, asset_id: UUID, user_id: UUID) -> bool: ...

    def has_role_share(self, asset_id: UUID, role: str) -> bool: ...


class ApprovalRepoPort(Protocol):
    def append(self, approval: Approval) -> Approval: ...

    def list_by_asset(self, asset_id: UUID) -> list[Approval]: ...


class AssetVersionRepoPort(Protocol):
    def append(self, version: AssetVersion) -> AssetVersion: ...

    def list_by_asset(self, asset_id: UUID) -> list[AssetVersion]: ...

    def next_version_number(self, asset_id: UUID) -> int: ...


class CarouselItemRepoPort(Protocol):
    def replace_all(self, carousel_id: UUID, items: list[CarouselItem]) -> None: ...

    def list_by_carousel(self, carousel_id: UUID) -> list[CarouselItem]: ...


class AuditRepoPort(Protocol):
    """
    Append-only audit storage.

    ``update`` and ``delete`` exist only so that every path that tries to
    mutate an entry lands on an ImmutabilityViolation.
    """

    def append(self, entry: AuditEntry) -> AuditEntry: ...

    def get_by_id(self, entry_id: UUID) -> AuditEntry | None: ...

    def query(self, query: AuditQuery) -> list[AuditEntry]: ...

    def count(self, query: AuditQuery) -> int: ...

    def update(self, entry: AuditEntry) -> None: ...

    def delete(self, entry_id: UUID) -> None: ...


class UnitOfWorkPort(Protocol):
    """Transaction boundary; repositories share one connection."""

    @property
    def users(self) -> UserRepoPort: ...

    @property
    def companies(self) -> CompanyRepoPort: ...

    @property
    def assets(self) -> AssetRepoPort: ...

    @property
    def shares(self) -> ShareRepoPort: ...

    @property
    def approvals(self) -> ApprovalRepoPort: ...

    @property
    def versions(self) -> AssetVersionRepoPort: ...

    @property
    def carousel_items(self) -> CarouselItemRepoPort: ...

    @property
    def audit_log(self) -> AuditRepoPort: ...

    def __enter__(self) -> UnitOfWorkPort: ...

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...
