"""
In-memory repositories, unit of work and object storage.

Used by component tests and by the API when no database is configured.
A unit of work holds the store lock for its whole lifetime, so units of
work are serialized; leaving one without commit restores the snapshot
taken at entry (or at the last commit).
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import timedelta
from typing import Any
from uuid import UUID

from dam.components.audit import immutability_violation
from dam.components.visibility.models import VisibilityFilter
from dam.domain.entities import (
    Approval,
    Asset,
    AssetShare,
    AssetStatus,
    AssetVersion,
    AuditEntry,
    CarouselItem,
    Company,
    Role,
    ShareTargetType,
    User,
    utc_now,
)
from dam.domain.errors import Conflict, StorageUnavailable, ValidationFailed, asset_not_found
from dam.ports.repo import AssetListFilters, AuditQuery, AuditRepoPort
from dam.ports.storage import UploadCredential

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Shared state behind every in-memory repository."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users: dict[UUID, User] = {}
        self.companies: dict[UUID, Company] = {}
        self.assets: dict[UUID, Asset] = {}
        self.shares: dict[UUID, AssetShare] = {}
        self.approvals: list[Approval] = []
        self.versions: list[AssetVersion] = []
        self.carousel_items: dict[UUID, list[CarouselItem]] = {}
        self.audit: list[AuditEntry] = []

    _FIELDS = (
        "users",
        "companies",
        "assets",
        "shares",
        "approvals",
        "versions",
        "carousel_items",
        "audit",
    )

    def snapshot(self) -> dict[str, Any]:
        return {name: copy.copy(getattr(self, name)) for name in self._FIELDS}

    def restore(self, snapshot: dict[str, Any]) -> None:
        for name, value in snapshot.items():
            setattr(self, name, copy.copy(value))


# --- Repositories ---


class InMemoryUserRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def get_by_id(self, user_id: UUID) -> User | None:
        return self._store.users.get(user_id)

    def get_by_email(self, email: str) -> User | None:
        email = email.lower()
        return next((u for u in self._store.users.values() if u.email.lower() == email), None)

    def save(self, user: User) -> User:
        self._store.users[user.id] = user
        return user

    def list_admins(self) -> list[User]:
        return [
            u for u in self._store.users.values() if u.role == Role.ADMIN and u.status == "active"
        ]


class InMemoryCompanyRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def get_by_id(self, company_id: UUID) -> Company | None:
        return self._store.companies.get(company_id)

    def get_by_name(self, name: str) -> Company | None:
        return next((c for c in self._store.companies.values() if c.name == name), None)

    def save(self, company: Company) -> Company:
        existing = self.get_by_name(company.name)
        if existing is not None and existing.id != company.id:
            raise ValidationFailed("name", "Company name already exists")
        self._store.companies[company.id] = company
        return company


def matches_filters(asset: Asset, filters: AssetListFilters) -> bool:
    if filters.status is not None and asset.status != filters.status:
        return False
    if filters.asset_type is not None and asset.asset_type != filters.asset_type:
        return False
    if filters.upload_type is not None and asset.upload_type != filters.upload_type:
        return False
    if filters.company_id is not None and asset.company_id != filters.company_id:
        return False
    if filters.uploader_id is not None and asset.uploader_id != filters.uploader_id:
        return False
    if filters.tag is not None and filters.tag not in asset.tags:
        return False
    if filters.search:
        needle = filters.search.lower()
        if needle not in asset.title.lower() and needle not in asset.description.lower():
            return False
    return True


class InMemoryAssetRepo:
    def __init__(self, store: InMemoryStore, shares: InMemoryShareRepo) -> None:
        self._store = store
        self._shares = shares

    def get_by_id(self, asset_id: UUID) -> Asset | None:
        return self._store.assets.get(asset_id)

    def insert(self, asset: Asset) -> Asset:
        if asset.id in self._store.assets:
            raise Conflict("Asset already exists")
        self._store.assets[asset.id] = asset
        return asset

    def update(self, asset: Asset, *, expected_revision: int) -> Asset:
        current = self._store.assets.get(asset.id)
        if current is None:
            raise asset_not_found()
        if current.revision != expected_revision:
            raise Conflict("Asset was modified by another request")
        saved = asset.model_copy(update={"revision": expected_revision + 1})
        self._store.assets[asset.id] = saved
        return saved

    def list_visible(
        self,
        visibility: VisibilityFilter,
        filters: AssetListFilters,
    ) -> tuple[list[Asset], int]:
        hits = [
            a
            for a in self._store.assets.values()
            if matches_filters(a, filters) and visibility.matches(a, self._shares)
        ]
        hits.sort(key=lambda a: a.uploaded_at, reverse=True)
        return hits[filters.offset : filters.offset + filters.limit], len(hits)

    def list_by_status(self, status: AssetStatus) -> list[Asset]:
        return [a for a in self._store.assets.values() if a.status == status]


class InMemoryShareRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def add(self, share: AssetShare) -> AssetShare:
        for existing in self._store.shares.values():
            if (
                existing.asset_id == share.asset_id
                and existing.target_type == share.target_type
                and existing.target_id == share.target_id
            ):
                return existing
        self._store.shares[share.id] = share
        return share

    def remove(self, asset_id: UUID, target_type: ShareTargetType, target_id: str) -> bool:
        for share_id, s in list(self._store.shares.items()):
            if s.asset_id == asset_id and s.target_type == target_type and s.target_id == target_id:
                del self._store.shares[share_id]
                return True
        return False

    def list_by_asset(self, asset_id: UUID) -> list[AssetShare]:
        shares = [s for s in self._store.shares.values() if s.asset_id == asset_id]
        return sorted(shares, key=lambda s: s.created_at)

    def has_user_share(self, asset_id: UUID, user_id: UUID) -> bool:
        return self._has(asset_id, ShareTargetType.USER, str(user_id))

    def has_role_share(self, asset_id: UUID, role: str) -> bool:
        return self._has(asset_id, ShareTargetType.ROLE, role)

    def _has(self, asset_id: UUID, target_type: ShareTargetType, target_id: str) -> bool:
        return any(
            s.asset_id == asset_id and s.target_type == target_type and s.target_id == target_id
            for s in self._store.shares.values()
        )


class InMemoryApprovalRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def append(self, approval: Approval) -> Approval:
        self._store.approvals.append(approval)
        return approval

    def list_by_asset(self, asset_id: UUID) -> list[Approval]:
        return [a for a in self._store.approvals if a.asset_id == asset_id]


class InMemoryAssetVersionRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def append(self, version: AssetVersion) -> AssetVersion:
        self._store.versions.append(version)
        return version

    def list_by_asset(self, asset_id: UUID) -> list[AssetVersion]:
        versions = [v for v in self._store.versions if v.asset_id == asset_id]
        return sorted(versions, key=lambda v: v.version_number)

    def next_version_number(self, asset_id: UUID) -> int:
        return max((v.version_number for v in self.list_by_asset(asset_id)), default=0) + 1


class InMemoryCarouselItemRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def replace_all(self, carousel_id: UUID, items: list[CarouselItem]) -> None:
        self._store.carousel_items[carousel_id] = sorted(items, key=lambda i: i.position)

    def list_by_carousel(self, carousel_id: UUID) -> list[CarouselItem]:
        return list(self._store.carousel_items.get(carousel_id, []))


class InMemoryAuditRepo:
    """Append-only; there is no path that changes a stored entry."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def append(self, entry: AuditEntry) -> AuditEntry:
        if any(e.id == entry.id for e in self._store.audit):
            raise immutability_violation("update", entry.id)
        self._store.audit.append(entry)
        return entry

    def get_by_id(self, entry_id: UUID) -> AuditEntry | None:
        return next((e for e in self._store.audit if e.id == entry_id), None)

    def _filtered(self, query: AuditQuery) -> list[AuditEntry]:
        results = list(self._store.audit)
        if query.actor_id:
            results = [e for e in results if e.actor_id == query.actor_id]
        if query.action:
            results = [e for e in results if e.action == query.action]
        if query.resource_type:
            results = [e for e in results if e.resource_type == query.resource_type]
        if query.resource_id:
            results = [e for e in results if e.resource_id == query.resource_id]
        return results

    def query(self, query: AuditQuery) -> list[AuditEntry]:
        results = self._filtered(query)
        results.sort(key=lambda e: e.created_at, reverse=True)
        return results[query.offset : query.offset + query.limit]

    def count(self, query: AuditQuery) -> int:
        return len(self._filtered(query))

    def update(self, entry: AuditEntry) -> None:
        raise immutability_violation("update", entry.id)

    def delete(self, entry_id: UUID) -> None:
        raise immutability_violation("delete", entry_id)


# --- Unit of Work ---


class InMemoryUnitOfWork:
    """
    In-memory Unit of Work.

    ``audit_log`` may be replaced to simulate a failing audit sink.
    """

    def __init__(self, store: InMemoryStore, audit_log: AuditRepoPort | None = None) -> None:
        self._store = store
        self._snapshot: dict[str, Any] | None = None
        self._users = InMemoryUserRepo(store)
        self._companies = InMemoryCompanyRepo(store)
        self._shares = InMemoryShareRepo(store)
        self._assets = InMemoryAssetRepo(store, self._shares)
        self._approvals = InMemoryApprovalRepo(store)
        self._versions = InMemoryAssetVersionRepo(store)
        self._carousel_items = InMemoryCarouselItemRepo(store)
        self._audit_log: AuditRepoPort = audit_log or InMemoryAuditRepo(store)

    def __enter__(self) -> InMemoryUnitOfWork:
        self._store.lock.acquire()
        self._snapshot = self._store.snapshot()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        try:
            self.rollback()
        finally:
            self._snapshot = None
            self._store.lock.release()

    def commit(self) -> None:
        self._snapshot = self._store.snapshot()

    def rollback(self) -> None:
        if self._snapshot is not None:
            self._store.restore(self._snapshot)

    @property
    def users(self) -> InMemoryUserRepo:
        return self._users

    @property
    def companies(self) -> InMemoryCompanyRepo:
        return self._companies

    @property
    def assets(self) -> InMemoryAssetRepo:
        return self._assets

    @property
    def shares(self) -> InMemoryShareRepo:
        return self._shares

    @property
    def approvals(self) -> InMemoryApprovalRepo:
        return self._approvals

    @property
    def versions(self) -> InMemoryAssetVersionRepo:
        return self._versions

    @property
    def carousel_items(self) -> InMemoryCarouselItemRepo:
        return self._carousel_items

    @property
    def audit_log(self) -> AuditRepoPort:
        return self._audit_log


# --- Object Storage ---


class InMemoryObjectStorage:
    """
    Object storage double.

    ``fail_next`` makes the next N credential requests raise
    StorageUnavailable; ``key_override`` makes the issuer echo a different
    key, as a misbehaving storage client would.
    """

    def __init__(self, base_url: str = "https://storage.test") -> None:
        self.base_url = base_url.rstrip("/")
        self.objects: dict[str, bytes] = {}
        self.issued: list[UploadCredential] = []
        self.fail_next = 0
        self.key_override: str | None = None

    def issue_upload_credential(
        self,
        key: str,
        content_type: str,
        ttl_seconds: int,
    ) -> UploadCredential:
        if self.fail_next > 0:
            self.fail_next -= 1
            raise StorageUnavailable("Object storage is unavailable")
        issued_key = self.key_override or key
        credential = UploadCredential(
            upload_url=f"{self.base_url}/upload/{issued_key}",
            key=issued_key,
            content_type=content_type,
            expires_at=utc_now() + timedelta(seconds=ttl_seconds),
        )
        self.issued.append(credential)
        return credential

    def put(self, key: str, data: bytes) -> None:
        self.objects[key] = data

    def exists(self, key: str) -> bool:
        return key in self.objects

    def resolve_public_url(self, locator: str) -> str:
        if locator.startswith(("http://", "https://")):
            return locator
        return f"{self.base_url}/{locator}"
