"""
SQLite Database Adapter.

Implements the repository ports using SQLite. Repositories built by a
SQLiteUnitOfWork share its connection and leave commit to the unit of
work; standalone repositories open, commit and close per call.

Designed to be Postgres-compatible (standard SQL apart from json_each).
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
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
    ShareTargetType,
    User,
)
from dam.domain.errors import Conflict, ValidationFailed, asset_not_found
from dam.ports.repo import AssetListFilters, AuditQuery

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string."""
    return datetime.fromisoformat(s) if s else None


def parse_uuid(s: str | None) -> UUID | None:
    """Parse UUID string."""
    return UUID(s) if s else None


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def _str(value: Any) -> str | None:
    return str(value) if value is not None else None


def connect(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, timeout=10.0)
    conn.row_factory = dict_factory
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn
        return connect(self.db_path)

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None


# -----------------------------------------------------------------------------
# Users & Companies
# -----------------------------------------------------------------------------


class SQLiteUserRepo(SQLiteRepoBase):
    """SQLite implementation of UserRepoPort."""

    def get_by_id(self, user_id: UUID) -> User | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (str(user_id),)).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def get_by_email(self, email: str) -> User | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ? COLLATE NOCASE", (email,)
            ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def save(self, user: User) -> User:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO users (id, email, name, role, company_id, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    email=excluded.email,
                    name=excluded.name,
                    role=excluded.role,
                    company_id=excluded.company_id,
                    status=excluded.status
                """,
                (
                    str(user.id),
                    user.email,
                    user.name,
                    user.role.value,
                    _str(user.company_id),
                    user.status,
                    user.created_at.isoformat(),
                ),
            )
            if self._should_close():
                conn.commit()
            return user
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e):
                raise ValidationFailed("email", "Email already registered") from e
            raise ValidationFailed("company_id", "Company not found") from e
        finally:
            if self._should_close():
                conn.close()

    def list_admins(self) -> list[User]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM users WHERE role = 'ADMIN' AND status = 'active' ORDER BY email"
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> User:
        return User(
            id=UUID(row["id"]),
            email=row["email"],
            name=row["name"],
            role=row["role"],
            company_id=parse_uuid(row["company_id"]),
            status=row["status"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


class SQLiteCompanyRepo(SQLiteRepoBase):
    """SQLite implementation of CompanyRepoPort."""

    def get_by_id(self, company_id: UUID) -> Company | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM companies WHERE id = ?", (str(company_id),)
            ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def get_by_name(self, name: str) -> Company | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM companies WHERE name = ?", (name,)).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def save(self, company: Company) -> Company:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO companies (id, name, created_at) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET name=excluded.name
                """,
                (str(company.id), company.name, company.created_at.isoformat()),
            )
            if self._should_close():
                conn.commit()
            return company
        except sqlite3.IntegrityError as e:
            raise ValidationFailed("name", "Company name already exists") from e
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> Company:
        return Company(
            id=UUID(row["id"]),
            name=row["name"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


# -----------------------------------------------------------------------------
# Assets
# -----------------------------------------------------------------------------

_ASSET_COLUMNS = (
    "id",
    "title",
    "description",
    "tags_json",
    "asset_type",
    "upload_type",
    "status",
    "visibility",
    "visibility_explicit",
    "allowed_role",
    "uploader_id",
    "company_id",
    "storage_locator",
    "url",
    "file_size",
    "mime_type",
    "content_sha256",
    "rejection_reason",
    "failure_reason",
    "uploaded_at",
    "updated_at",
    "finalized_at",
    "approved_at",
    "approved_by_id",
    "rejected_at",
    "rejected_by_id",
    "revision",
)


def _enum_value(value: Any) -> Any:
    return value.value if value is not None else None


class SQLiteAssetRepo(SQLiteRepoBase):
    """
    SQLite implementation of AssetRepoPort.

    ``update`` is a compare-and-set on ``revision``; zero rows touched means
    a concurrent writer got there first.
    """

    def get_by_id(self, asset_id: UUID) -> Asset | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM assets WHERE id = ?", (str(asset_id),)).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def insert(self, asset: Asset) -> Asset:
        conn = self._get_conn()
        try:
            if conn.execute("SELECT 1 FROM assets WHERE id = ?", (str(asset.id),)).fetchone():
                raise Conflict("Asset already exists")
            marks = ", ".join("?" for _ in _ASSET_COLUMNS)
            conn.execute(
                f"INSERT INTO assets ({', '.join(_ASSET_COLUMNS)}) VALUES ({marks})",
                self._to_params(asset),
            )
            if self._should_close():
                conn.commit()
            return asset
        finally:
            if self._should_close():
                conn.close()

    def update(self, asset: Asset, *, expected_revision: int) -> Asset:
        saved = asset.model_copy(update={"revision": expected_revision + 1})
        params = self._to_params(saved)
        assignments = ", ".join(f"{col} = ?" for col in _ASSET_COLUMNS[1:])
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                f"UPDATE assets SET {assignments} WHERE id = ? AND revision = ?",
                (*params[1:], str(asset.id), expected_revision),
            )
            if cursor.rowcount == 0:
                exists = conn.execute(
                    "SELECT 1 FROM assets WHERE id = ?", (str(asset.id),)
                ).fetchone()
                if not exists:
                    raise asset_not_found()
                raise Conflict("Asset was modified by another request")
            if self._should_close():
                conn.commit()
            return saved
        finally:
            if self._should_close():
                conn.close()

    def list_visible(
        self,
        visibility: VisibilityFilter,
        filters: AssetListFilters,
    ) -> tuple[list[Asset], int]:
        clauses = [visibility.sql]
        params: list[Any] = list(visibility.params)

        if filters.status is not None:
            clauses.append("status = ?")
            params.append(filters.status.value)
        if filters.asset_type is not None:
            clauses.append("asset_type = ?")
            params.append(filters.asset_type.value)
        if filters.upload_type is not None:
            clauses.append("upload_type = ?")
            params.append(filters.upload_type.value)
        if filters.company_id is not None:
            clauses.append("company_id = ?")
            params.append(str(filters.company_id))
        if filters.uploader_id is not None:
            clauses.append("uploader_id = ?")
            params.append(str(filters.uploader_id))
        if filters.tag is not None:
            clauses.append("EXISTS (SELECT 1 FROM json_each(assets.tags_json) t WHERE t.value = ?)")
            params.append(filters.tag)
        if filters.search:
            clauses.append("(LOWER(title) LIKE ? OR LOWER(description) LIKE ?)")
            needle = f"%{filters.search.lower()}%"
            params.extend([needle, needle])

        where = " AND ".join(clauses)
        conn = self._get_conn()
        try:
            total = conn.execute(
                f"SELECT COUNT(*) AS n FROM assets WHERE {where}", params
            ).fetchone()["n"]
            rows = conn.execute(
                f"SELECT * FROM assets WHERE {where} ORDER BY uploaded_at DESC LIMIT ? OFFSET ?",
                (*params, filters.limit, filters.offset),
            ).fetchall()
            return [self._map_row(r) for r in rows], total
        finally:
            if self._should_close():
                conn.close()

    def list_by_status(self, status: AssetStatus) -> list[Asset]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM assets WHERE status = ? ORDER BY uploaded_at", (status.value,)
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def _to_params(self, asset: Asset) -> tuple[Any, ...]:
        return (
            str(asset.id),
            asset.title,
            asset.description,
            json.dumps(asset.tags),
            asset.asset_type.value,
            asset.upload_type.value,
            asset.status.value,
            _enum_value(asset.visibility),
            int(asset.visibility_explicit),
            _enum_value(asset.allowed_role),
            str(asset.uploader_id),
            _str(asset.company_id),
            asset.storage_locator,
            asset.url,
            asset.file_size,
            asset.mime_type,
            asset.content_sha256,
            asset.rejection_reason,
            _enum_value(asset.failure_reason),
            asset.uploaded_at.isoformat(),
            asset.updated_at.isoformat(),
            _iso(asset.finalized_at),
            _iso(asset.approved_at),
            _str(asset.approved_by_id),
            _iso(asset.rejected_at),
            _str(asset.rejected_by_id),
            asset.revision,
        )

    def _map_row(self, row: dict[str, Any]) -> Asset:
        # Bypass validation so unknown stored visibility values survive the
        # round trip and fall through to a default deny.
        return Asset.model_construct(
            id=UUID(row["id"]),
            title=row["title"],
            description=row["description"],
            tags=json.loads(row["tags_json"]),
            asset_type=_coerce_enum("asset_type", row["asset_type"]),
            upload_type=_coerce_enum("upload_type", row["upload_type"]),
            status=_coerce_enum("status", row["status"]),
            visibility=_coerce_enum("visibility", row["visibility"]),
            visibility_explicit=bool(row["visibility_explicit"]),
            allowed_role=_coerce_enum("allowed_role", row["allowed_role"]),
            uploader_id=UUID(row["uploader_id"]),
            company_id=parse_uuid(row["company_id"]),
            storage_locator=row["storage_locator"],
            url=row["url"],
            file_size=row["file_size"],
            mime_type=row["mime_type"],
            content_sha256=row["content_sha256"],
            rejection_reason=row["rejection_reason"],
            failure_reason=_coerce_enum("failure_reason", row["failure_reason"]),
            uploaded_at=datetime.fromisoformat(row["uploaded_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            finalized_at=parse_dt(row["finalized_at"]),
            approved_at=parse_dt(row["approved_at"]),
            approved_by_id=parse_uuid(row["approved_by_id"]),
            rejected_at=parse_dt(row["rejected_at"]),
            rejected_by_id=parse_uuid(row["rejected_by_id"]),
            revision=row["revision"],
        )


def _coerce_enum(field_name: str, raw: str | None) -> Any:
    if raw is None:
        return None
    annotation = Asset.model_fields[field_name].annotation
    for candidate in getattr(annotation, "__args__", (annotation,)):
        if isinstance(candidate, type) and issubclass(candidate, str) and candidate is not str:
            try:
                return candidate(raw)
            except ValueError:
                logger.warning("unknown %s value %r on stored asset", field_name, raw)
                return raw
    return raw


# -----------------------------------------------------------------------------
# Shares
# -----------------------------------------------------------------------------


class SQLiteShareRepo(SQLiteRepoBase):
    """SQLite implementation of ShareRepoPort. ``add`` is idempotent."""

    def add(self, share: AssetShare) -> AssetShare:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT OR IGNORE INTO asset_shares (
                    id, asset_id, shared_by_id, target_type, target_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    str(share.id),
                    str(share.asset_id),
                    str(share.shared_by_id),
                    share.target_type.value,
                    share.target_id,
                    share.created_at.isoformat(),
                ),
            )
            row = conn.execute(
                """
                SELECT * FROM asset_shares
                WHERE asset_id = ? AND target_type = ? AND target_id = ?
                """,
                (str(share.asset_id), share.target_type.value, share.target_id),
            ).fetchone()
            if self._should_close():
                conn.commit()
            return self._map_row(row)
        finally:
            if self._should_close():
                conn.close()

    def remove(self, asset_id: UUID, target_type: ShareTargetType, target_id: str) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "DELETE FROM asset_shares WHERE asset_id = ? AND target_type = ? AND target_id = ?",
                (str(asset_id), target_type.value, target_id),
            )
            if self._should_close():
                conn.commit()
            return cursor.rowcount > 0
        finally:
            if self._should_close():
                conn.close()

    def list_by_asset(self, asset_id: UUID) -> list[AssetShare]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM asset_shares WHERE asset_id = ? ORDER BY created_at",
                (str(asset_id),),
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def has_user_share(self, asset_id: UUID, user_id: UUID) -> bool:
        return self._has(asset_id, ShareTargetType.USER, str(user_id))

    def has_role_share(self, asset_id: UUID, role: str) -> bool:
        return self._has(asset_id, ShareTargetType.ROLE, role)

    def _has(self, asset_id: UUID, target_type: ShareTargetType, target_id: str) -> bool:
        conn = self._get_conn()
        try:
            row = conn.execute(
                """
                SELECT 1 FROM asset_shares
                WHERE asset_id = ? AND target_type = ? AND target_id = ?
                """,
                (str(asset_id), target_type.value, target_id),
            ).fetchone()
            return row is not None
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> AssetShare:
        return AssetShare(
            id=UUID(row["id"]),
            asset_id=UUID(row["asset_id"]),
            shared_by_id=UUID(row["shared_by_id"]),
            target_type=row["target_type"],
            target_id=row["target_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


# -----------------------------------------------------------------------------
# Approvals, Versions, Carousel Items
# -----------------------------------------------------------------------------


class SQLiteApprovalRepo(SQLiteRepoBase):
    """SQLite implementation of ApprovalRepoPort (append-only)."""

    def append(self, approval: Approval) -> Approval:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO approvals (id, asset_id, reviewer_id, action, reason, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    str(approval.id),
                    str(approval.asset_id),
                    str(approval.reviewer_id),
                    approval.action.value,
                    approval.reason,
                    approval.created_at.isoformat(),
                ),
            )
            if self._should_close():
                conn.commit()
            return approval
        finally:
            if self._should_close():
                conn.close()

    def list_by_asset(self, asset_id: UUID) -> list[Approval]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM approvals WHERE asset_id = ? ORDER BY created_at",
                (str(asset_id),),
            ).fetchall()
            return [
                Approval(
                    id=UUID(r["id"]),
                    asset_id=UUID(r["asset_id"]),
                    reviewer_id=UUID(r["reviewer_id"]),
                    action=r["action"],
                    reason=r["reason"],
                    created_at=datetime.fromisoformat(r["created_at"]),
                )
                for r in rows
            ]
        finally:
            if self._should_close():
                conn.close()


class SQLiteAssetVersionRepo(SQLiteRepoBase):
    """SQLite implementation of AssetVersionRepoPort."""

    def append(self, version: AssetVersion) -> AssetVersion:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO asset_versions (
                    id, asset_id, version_number, storage_locator,
                    file_size, mime_type, created_by_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(version.id),
                    str(version.asset_id),
                    version.version_number,
                    version.storage_locator,
                    version.file_size,
                    version.mime_type,
                    str(version.created_by_id),
                    version.created_at.isoformat(),
                ),
            )
            if self._should_close():
                conn.commit()
            return version
        except sqlite3.IntegrityError as e:
            raise Conflict("Version number already taken") from e
        finally:
            if self._should_close():
                conn.close()

    def list_by_asset(self, asset_id: UUID) -> list[AssetVersion]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM asset_versions WHERE asset_id = ? ORDER BY version_number",
                (str(asset_id),),
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def next_version_number(self, asset_id: UUID) -> int:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT COALESCE(MAX(version_number), 0) AS n "
                "FROM asset_versions WHERE asset_id = ?",
                (str(asset_id),),
            ).fetchone()
            return int(row["n"]) + 1
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> AssetVersion:
        return AssetVersion(
            id=UUID(row["id"]),
            asset_id=UUID(row["asset_id"]),
            version_number=row["version_number"],
            storage_locator=row["storage_locator"],
            file_size=row["file_size"],
            mime_type=row["mime_type"],
            created_by_id=UUID(row["created_by_id"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )


class SQLiteCarouselItemRepo(SQLiteRepoBase):
    """SQLite implementation of CarouselItemRepoPort."""

    def replace_all(self, carousel_id: UUID, items: list[CarouselItem]) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM carousel_items WHERE carousel_id = ?", (str(carousel_id),))
            conn.executemany(
                """
                INSERT INTO carousel_items (
                    id, carousel_id, storage_locator, file_size, mime_type,
                    item_type, position, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        str(item.id),
                        str(carousel_id),
                        item.storage_locator,
                        item.file_size,
                        item.mime_type,
                        item.item_type.value,
                        item.position,
                        item.created_at.isoformat(),
                    )
                    for item in items
                ],
            )
            if self._should_close():
                conn.commit()
        finally:
            if self._should_close():
                conn.close()

    def list_by_carousel(self, carousel_id: UUID) -> list[CarouselItem]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM carousel_items WHERE carousel_id = ? ORDER BY position",
                (str(carousel_id),),
            ).fetchall()
            return [
                CarouselItem(
                    id=UUID(r["id"]),
                    carousel_id=UUID(r["carousel_id"]),
                    storage_locator=r["storage_locator"],
                    file_size=r["file_size"],
                    mime_type=r["mime_type"],
                    item_type=r["item_type"],
                    position=r["position"],
                    created_at=datetime.fromisoformat(r["created_at"]),
                )
                for r in rows
            ]
        finally:
            if self._should_close():
                conn.close()


# -----------------------------------------------------------------------------
# Audit Log
# -----------------------------------------------------------------------------


class SQLiteAuditRepo(SQLiteRepoBase):
    """
    SQLite implementation of AuditRepoPort.

    Append-only. ``update`` and ``delete`` never touch the table; the
    triggers from migration 0002 reject any other path that tries.
    """

    def append(self, entry: AuditEntry) -> AuditEntry:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO audit_log (
                    id, actor_id, action, resource_type, resource_id,
                    metadata_json, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(entry.id),
                    _str(entry.actor_id),
                    entry.action.value,
                    entry.resource_type.value,
                    entry.resource_id,
                    json.dumps(entry.metadata),
                    entry.created_at.isoformat(),
                ),
            )
            if self._should_close():
                conn.commit()
            return entry
        except sqlite3.IntegrityError as e:
            raise immutability_violation("update", entry.id) from e
        finally:
            if self._should_close():
                conn.close()

    def get_by_id(self, entry_id: UUID) -> AuditEntry | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM audit_log WHERE id = ?", (str(entry_id),)).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def _where(self, query: AuditQuery) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if query.actor_id:
            clauses.append("actor_id = ?")
            params.append(str(query.actor_id))
        if query.action:
            clauses.append("action = ?")
            params.append(query.action)
        if query.resource_type:
            clauses.append("resource_type = ?")
            params.append(query.resource_type)
        if query.resource_id:
            clauses.append("resource_id = ?")
            params.append(query.resource_id)
        where = " WHERE " + " AND ".join(clauses) if clauses else ""
        return where, params

    def query(self, query: AuditQuery) -> list[AuditEntry]:
        where, params = self._where(query)
        conn = self._get_conn()
        try:
            rows = conn.execute(
                f"SELECT * FROM audit_log{where} ORDER BY created_at DESC, rowid DESC "
                "LIMIT ? OFFSET ?",
                (*params, query.limit, query.offset),
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def count(self, query: AuditQuery) -> int:
        where, params = self._where(query)
        conn = self._get_conn()
        try:
            row = conn.execute(f"SELECT COUNT(*) AS n FROM audit_log{where}", params).fetchone()
            return int(row["n"])
        finally:
            if self._should_close():
                conn.close()

    def update(self, entry: AuditEntry) -> None:
        raise immutability_violation("update", entry.id)

    def delete(self, entry_id: UUID) -> None:
        raise immutability_violation("delete", entry_id)

    def _map_row(self, row: dict[str, Any]) -> AuditEntry:
        return AuditEntry(
            id=UUID(row["id"]),
            actor_id=parse_uuid(row["actor_id"]),
            action=row["action"],
            resource_type=row["resource_type"],
            resource_id=row["resource_id"],
            metadata=json.loads(row["metadata_json"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )


# -----------------------------------------------------------------------------
# Unit of Work
# -----------------------------------------------------------------------------


class SQLiteUnitOfWork:
    """
    SQLite Unit of Work implementation.

    Provides transaction management and access to all repositories.
    Uses a shared connection for all operations within a transaction;
    leaving without ``commit()`` discards the writes.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

        # Lazy-initialized repositories
        self._users: SQLiteUserRepo | None = None
        self._companies: SQLiteCompanyRepo | None = None
        self._assets: SQLiteAssetRepo | None = None
        self._shares: SQLiteShareRepo | None = None
        self._approvals: SQLiteApprovalRepo | None = None
        self._versions: SQLiteAssetVersionRepo | None = None
        self._carousel_items: SQLiteCarouselItemRepo | None = None
        self._audit_log: SQLiteAuditRepo | None = None

    def __enter__(self) -> SQLiteUnitOfWork:
        self._conn = connect(self.db_path)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.rollback()
        if self._conn:
            self._conn.close()
            self._conn = None

    def commit(self) -> None:
        if self._conn:
            self._conn.commit()

    def rollback(self) -> None:
        if self._conn:
            self._conn.rollback()

    @property
    def users(self) -> SQLiteUserRepo:
        if self._users is None:
            self._users = SQLiteUserRepo(self.db_path, self._conn)
        return self._users

    @property
    def companies(self) -> SQLiteCompanyRepo:
        if self._companies is None:
            self._companies = SQLiteCompanyRepo(self.db_path, self._conn)
        return self._companies

    @property
    def assets(self) -> SQLiteAssetRepo:
        if self._assets is None:
            self._assets = SQLiteAssetRepo(self.db_path, self._conn)
        return self._assets

    @property
    def shares(self) -> SQLiteShareRepo:
        if self._shares is None:
            self._shares = SQLiteShareRepo(self.db_path, self._conn)
        return self._shares

    @property
    def approvals(self) -> SQLiteApprovalRepo:
        if self._approvals is None:
            self._approvals = SQLiteApprovalRepo(self.db_path, self._conn)
        return self._approvals

    @property
    def versions(self) -> SQLiteAssetVersionRepo:
        if self._versions is None:
            self._versions = SQLiteAssetVersionRepo(self.db_path, self._conn)
        return self._versions

    @property
    def carousel_items(self) -> SQLiteCarouselItemRepo:
        if self._carousel_items is None:
            self._carousel_items = SQLiteCarouselItemRepo(self.db_path, self._conn)
        return self._carousel_items

    @property
    def audit_log(self) -> SQLiteAuditRepo:
        if self._audit_log is None:
            self._audit_log = SQLiteAuditRepo(self.db_path, self._conn)
        return self._audit_log
