"""
Lifecycle component - asset status machine and review decisions.

DRAFT -> PENDING_REVIEW -> APPROVED | REJECTED, REJECTED -> PENDING_REVIEW,
plus the out-of-band REJECTED/INTEGRITY_FAILURE marker for missing bytes.

Every status write is a compare-and-set on the asset revision, and the audit
entry for it is appended in the same unit of work, so a lost race or a
failed audit append leaves nothing behind.

Invariants:
- Status and visibility are independent; approval only fills in a
  visibility that no administrator chose.
- A decided asset cannot be decided again; the loser of a race gets Conflict.
- Exactly one Approval record per decision.
- Notification failures never fail the transition that triggered them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar
from uuid import UUID

from dam.components.audit import AuditRecorder, RecordAuditInput
from dam.components.visibility import TeamMembershipPort, can_edit, evaluate_view
from dam.domain.entities import (
    Approval,
    ApprovalAction,
    Asset,
    AssetStatus,
    AssetType,
    AssetVersion,
    AuditAction,
    FailureReason,
    ResourceType,
    Role,
    UploadType,
    User,
    VisibilityLevel,
)
from dam.domain.errors import (
    CommitFailed,
    Conflict,
    EngineError,
    Forbidden,
    InvalidState,
    ValidationFailed,
    asset_not_found,
)
from dam.domain.state import mark_failed, transition

from .models import (
    AssetHistory,
    ContentReplacementInput,
    DecisionInput,
    DecisionOutput,
    NewAsset,
    VisibilityChangeInput,
)
from .ports import (
    ClockPort,
    NotificationType,
    NotifierPort,
    UnitOfWorkFactory,
    UnitOfWorkPort,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# --- Pure Functions ---


def initial_status(upload_type: UploadType, submit_for_review: bool) -> AssetStatus:
    if upload_type == UploadType.BROADCAST and submit_for_review:
        return AssetStatus.PENDING_REVIEW
    return AssetStatus.DRAFT


def initial_visibility(
    actor: User,
    upload_type: UploadType,
    requested: VisibilityLevel | None,
    allowed_role: Role | None = None,
) -> tuple[VisibilityLevel | None, bool, Role | None]:
    """
    Visibility, explicit flag and allowed role for a new asset.

    Private uploads default to UPLOADER_ONLY. Broadcast uploads stay unset
    unless an administrator picked a level; anyone else's pick is dropped.
    """
    if upload_type == UploadType.PRIVATE:
        visibility = requested or VisibilityLevel.UPLOADER_ONLY
        explicit = actor.is_admin and requested is not None
    elif actor.is_admin and requested is not None:
        visibility, explicit = requested, True
    else:
        if requested is not None:
            logger.info(
                "ignoring visibility %s requested by non-admin %s", requested.value, actor.id
            )
        return None, False, None

    role = allowed_role if visibility == VisibilityLevel.ROLE else None
    return visibility, explicit, role


def approval_changes(
    asset: Asset, inp: DecisionInput, reviewer: User, now: datetime
) -> dict[str, Any]:
    """Field updates applied on approval, visibility default included."""
    changes: dict[str, Any] = {"approved_at": now, "approved_by_id": reviewer.id}

    if inp.visibility is not None:
        changes["visibility"] = inp.visibility
        changes["visibility_explicit"] = True
        changes["allowed_role"] = (
            inp.allowed_role if inp.visibility == VisibilityLevel.ROLE else None
        )
    elif not asset.visibility_explicit or asset.visibility is None:
        changes["visibility"] = VisibilityLevel.PUBLIC
        changes["allowed_role"] = None

    return changes


def _status_metadata(before: Asset, after: Asset, **extra: Any) -> dict[str, Any]:
    meta: dict[str, Any] = {"from": before.status, "to": after.status}
    meta.update(extra)
    return meta


# --- Controller ---


class LifecycleController:
    """
    Status transitions for assets.

    ``*_in`` methods run inside a caller-owned unit of work and leave the
    commit (and notifications) to the caller; the rest open their own.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        clock: ClockPort,
        notifier: NotifierPort | None = None,
        teams: TeamMembershipPort | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._clock = clock
        self._notifier = notifier
        self._teams = teams

    # --- Transaction helpers ---

    def _transact(self, label: str, work: Callable[[UnitOfWorkPort], T]) -> T:
        try:
            with self._uow_factory() as uow:
                result = work(uow)
                uow.commit()
                return result
        except EngineError:
            raise
        except Exception as e:
            logger.exception("%s failed", label)
            raise CommitFailed(f"Could not complete {label}") from e

    def _audit(
        self,
        uow: UnitOfWorkPort,
        actor_id: UUID | None,
        action: AuditAction,
        asset: Asset,
        metadata: dict[str, Any],
    ) -> None:
        AuditRecorder(uow.audit_log, self._clock).record(
            RecordAuditInput(
                action=action,
                resource_type=ResourceType.ASSET,
                resource_id=str(asset.id),
                actor_id=actor_id,
                metadata=metadata,
            )
        )

    def _load_visible(self, uow: UnitOfWorkPort, actor: User, asset_id: UUID) -> Asset:
        asset = uow.assets.get_by_id(asset_id)
        if asset is None or not evaluate_view(actor, asset, shares=uow.shares, teams=self._teams):
            raise asset_not_found()
        return asset

    def _load_editable(self, uow: UnitOfWorkPort, actor: User, asset_id: UUID) -> Asset:
        asset = self._load_visible(uow, actor, asset_id)
        if not can_edit(actor, asset):
            raise Forbidden("Only the uploader or an administrator can change this asset")
        return asset

    @staticmethod
    def _check_revision(asset: Asset, expected_revision: int | None) -> None:
        if expected_revision is not None and expected_revision != asset.revision:
            raise Conflict("Asset was modified by another request")

    # --- Notifications ---

    def _notify(
        self,
        kind: NotificationType,
        recipients: list[UUID],
        asset: Asset,
        title: str,
        message: str,
    ) -> None:
        if self._notifier is None or not recipients:
            return
        try:
            self._notifier.notify(kind, recipients, asset.id, title, message)
        except Exception:
            logger.warning(
                "notification %s for asset %s failed", kind.value, asset.id, exc_info=True
            )

    def notify_submitted(self, asset: Asset) -> None:
        """Tell administrators a new asset is waiting for review."""
        if self._notifier is None:
            return
        try:
            with self._uow_factory() as uow:
                admins = uow.users.list_admins()
        except Exception:
            logger.warning("could not load reviewers for asset %s", asset.id, exc_info=True)
            return
        recipients = [a.id for a in admins if a.id != asset.uploader_id]
        self._notify(
            NotificationType.ASSET_UPLOADED,
            recipients,
            asset,
            "New asset awaiting review",
            f'"{asset.title}" was submitted for review',
        )

    # --- Creation ---

    def create_in(self, uow: UnitOfWorkPort, actor: User, new: NewAsset) -> Asset:
        now = self._clock.now_utc()
        visibility, explicit, role = initial_visibility(
            actor, new.upload_type, new.visibility, new.allowed_role
        )
        asset = Asset(
            id=new.asset_id,
            title=new.title.strip(),
            description=new.description,
            tags=list(new.tags),
            asset_type=new.asset_type,
            upload_type=new.upload_type,
            status=initial_status(new.upload_type, new.submit_for_review),
            visibility=visibility,
            visibility_explicit=explicit,
            allowed_role=role,
            uploader_id=actor.id,
            company_id=new.company_id,
            storage_locator=new.storage_locator,
            url=new.url,
            file_size=new.file_size,
            mime_type=new.mime_type,
            uploaded_at=now,
            updated_at=now,
            # Links have no transfer step; they are complete on creation.
            finalized_at=now if new.asset_type == AssetType.LINK else None,
        )
        saved = uow.assets.insert(asset)
        self._audit(
            uow,
            actor.id,
            AuditAction.CREATE,
            saved,
            {
                "status": saved.status,
                "asset_type": saved.asset_type,
                "upload_type": saved.upload_type,
                "visibility": saved.visibility,
            },
        )
        return saved

    # --- Submit ---

    def submit_in(
        self,
        uow: UnitOfWorkPort,
        actor: User,
        asset_id: UUID,
        *,
        expected_revision: int | None = None,
    ) -> Asset:
        asset = self._load_editable(uow, actor, asset_id)
        self._check_revision(asset, expected_revision)

        if asset.status == AssetStatus.PENDING_REVIEW:
            raise InvalidState("Asset is already pending review")
        if asset.finalized_at is None:
            raise InvalidState("Upload has not been finalized")

        now = self._clock.now_utc()
        updated = transition(asset, AssetStatus.PENDING_REVIEW, now)
        saved = uow.assets.update(updated, expected_revision=asset.revision)
        self._audit(
            uow,
            actor.id,
            AuditAction.SUBMIT,
            saved,
            _status_metadata(asset, saved, resubmission=asset.status == AssetStatus.REJECTED),
        )
        return saved

    def submit_for_review(
        self,
        actor: User,
        asset_id: UUID,
        *,
        expected_revision: int | None = None,
    ) -> Asset:
        """
        Uploader submit (DRAFT) or resubmit (REJECTED) for review.

        Raises:
            NotFound: missing or not visible to ``actor``.
            Forbidden: visible but not the uploader or an administrator.
            InvalidState: private upload, integrity failure, already pending
                or not yet finalized.
            Conflict: revision moved on.
        """
        saved = self._transact(
            "submit",
            lambda uow: self.submit_in(uow, actor, asset_id, expected_revision=expected_revision),
        )
        logger.info("asset %s submitted for review by %s", saved.id, actor.id)
        self.notify_submitted(saved)
        return saved

    # --- Decide ---

    def _decide_in(self, uow: UnitOfWorkPort, actor: User, inp: DecisionInput) -> DecisionOutput:
        asset = uow.assets.get_by_id(inp.asset_id)
        if asset is None:
            raise asset_not_found()
        if not actor.is_admin:
            if evaluate_view(actor, asset, shares=uow.shares, teams=self._teams):
                raise Forbidden("Only administrators can review assets")
            raise asset_not_found()

        reason: str | None = None
        if inp.action == ApprovalAction.REJECT:
            reason = (inp.reason or "").strip()
            if not reason:
                raise ValidationFailed("reason", "Rejection reason is required")

        if (
            asset.status == AssetStatus.REJECTED
            and asset.failure_reason == FailureReason.INTEGRITY_FAILURE
        ):
            raise InvalidState("Asset failed an integrity check and cannot be reviewed")
        if asset.status in (AssetStatus.APPROVED, AssetStatus.REJECTED):
            raise Conflict("Asset has already been decided")
        if asset.status != AssetStatus.PENDING_REVIEW:
            raise InvalidState("Only assets pending review can be approved or rejected")
        self._check_revision(asset, inp.expected_revision)

        now = self._clock.now_utc()
        if inp.action == ApprovalAction.APPROVE:
            updated = transition(
                asset, AssetStatus.APPROVED, now, **approval_changes(asset, inp, actor, now)
            )
            audit_action = AuditAction.APPROVE
        else:
            updated = transition(
                asset,
                AssetStatus.REJECTED,
                now,
                rejected_at=now,
                rejected_by_id=actor.id,
                rejection_reason=reason,
                failure_reason=FailureReason.EDITORIAL_REJECTION,
            )
            audit_action = AuditAction.REJECT

        saved = uow.assets.update(updated, expected_revision=asset.revision)
        approval = uow.approvals.append(
            Approval(
                asset_id=asset.id,
                reviewer_id=actor.id,
                action=inp.action,
                reason=reason,
                created_at=now,
            )
        )
        self._audit(
            uow,
            actor.id,
            audit_action,
            saved,
            _status_metadata(
                asset,
                saved,
                approval_id=approval.id,
                reason=reason,
                visibility=saved.visibility,
                previous_visibility=asset.visibility,
            ),
        )
        return DecisionOutput(asset=saved, approval=approval)

    def decide(self, actor: User, inp: DecisionInput) -> DecisionOutput:
        """
        Approve or reject a PENDING_REVIEW asset.

        Raises:
            NotFound: missing, or not visible to a non-admin.
            Forbidden: non-admin who can see the asset.
            ValidationFailed: reject without a reason.
            Conflict: already decided, or lost a concurrent decision.
            InvalidState: asset is still a draft, or failed an integrity check.
            CommitFailed: storage or audit failure; nothing was written.
        """
        out = self._transact("decision", lambda uow: self._decide_in(uow, actor, inp))
        logger.info(
            "asset %s %s by %s", out.asset.id, out.asset.status.value.lower(), actor.id
        )

        if inp.action == ApprovalAction.APPROVE:
            self._notify(
                NotificationType.ASSET_APPROVED,
                [out.asset.uploader_id],
                out.asset,
                "Asset approved",
                f'"{out.asset.title}" was approved',
            )
        else:
            self._notify(
                NotificationType.ASSET_REJECTED,
                [out.asset.uploader_id],
                out.asset,
                "Asset rejected",
                f'"{out.asset.title}" was rejected: {out.asset.rejection_reason}',
            )
        return out

    # --- Integrity ---

    def mark_integrity_failure(
        self,
        actor: User | None,
        asset_id: UUID,
        reason: str = "Stored object is missing",
    ) -> Asset:
        """
        Move an asset to REJECTED/INTEGRITY_FAILURE from any state.

        ``actor`` None is the operator CLI; otherwise it must be an administrator.
        Repeating the call is a no-op.
        """
        if actor is not None and not actor.is_admin:
            raise Forbidden("Only administrators can mark assets as broken")

        def work(uow: UnitOfWorkPort) -> tuple[Asset, bool]:
            asset = uow.assets.get_by_id(asset_id)
            if asset is None:
                raise asset_not_found()
            if (
                asset.status == AssetStatus.REJECTED
                and asset.failure_reason == FailureReason.INTEGRITY_FAILURE
            ):
                return asset, False
            updated = mark_failed(asset, self._clock.now_utc(), reason)
            saved = uow.assets.update(updated, expected_revision=asset.revision)
            self._audit(
                uow,
                actor.id if actor else None,
                AuditAction.MARK_BROKEN,
                saved,
                _status_metadata(asset, saved, reason=reason),
            )
            return saved, True

        saved, changed = self._transact("integrity marker", work)
        if changed:
            logger.warning("asset %s marked broken: %s", saved.id, reason)
            self._notify(
                NotificationType.ASSET_REJECTED,
                [saved.uploader_id],
                saved,
                "Asset file missing",
                f'The file for "{saved.title}" could not be found; please upload it again',
            )
        return saved

    # --- Visibility ---

    def change_visibility(self, actor: User, inp: VisibilityChangeInput) -> Asset:
        """
        Change an asset's visibility; status is untouched.

        Administrators may change any asset at any status. Uploaders may only
        change their own private uploads.
        """

        def work(uow: UnitOfWorkPort) -> Asset:
            asset = self._load_editable(uow, actor, inp.asset_id)
            if not actor.is_admin and asset.upload_type == UploadType.BROADCAST:
                raise Forbidden("Only administrators can change visibility of broadcast assets")
            self._check_revision(asset, inp.expected_revision)

            role = inp.allowed_role if inp.visibility == VisibilityLevel.ROLE else None
            if asset.visibility == inp.visibility and asset.allowed_role == role:
                return asset

            updated = asset.model_copy(
                update={
                    "visibility": inp.visibility,
                    "allowed_role": role,
                    "visibility_explicit": asset.visibility_explicit or actor.is_admin,
                    "updated_at": self._clock.now_utc(),
                }
            )
            saved = uow.assets.update(updated, expected_revision=asset.revision)
            self._audit(
                uow,
                actor.id,
                AuditAction.VISIBILITY_CHANGE,
                saved,
                {"from": asset.visibility, "to": saved.visibility, "allowed_role": role},
            )
            return saved

        return self._transact("visibility change", work)

    # --- Content versions ---

    def replace_content(self, actor: User, inp: ContentReplacementInput) -> Asset:
        """
        Point the asset at newly uploaded bytes, keeping the old locator as a version.

        Does not look in storage; ``UploadOrchestrator.finalize_version``
        checks the bytes are there before calling this.
        """

        def work(uow: UnitOfWorkPort) -> Asset:
            asset = self._load_editable(uow, actor, inp.asset_id)
            if asset.status == AssetStatus.APPROVED and not actor.is_admin:
                raise Forbidden("Approved assets can only be replaced by an administrator")
            if asset.asset_type in (AssetType.LINK, AssetType.CAROUSEL):
                raise InvalidState("This asset has no single stored file to replace")
            if not inp.storage_locator.startswith(f"assets/{asset.id}/"):
                raise ValidationFailed(
                    "storage_locator", "Locator must be under the asset's storage prefix"
                )

            now = self._clock.now_utc()
            version = uow.versions.append(
                AssetVersion(
                    asset_id=asset.id,
                    version_number=uow.versions.next_version_number(asset.id),
                    storage_locator=asset.storage_locator,
                    file_size=asset.file_size,
                    mime_type=asset.mime_type,
                    created_by_id=actor.id,
                    created_at=now,
                )
            )
            updated = asset.model_copy(
                update={
                    "storage_locator": inp.storage_locator,
                    "file_size": inp.file_size,
                    "mime_type": inp.mime_type or asset.mime_type,
                    "content_sha256": None,
                    "updated_at": now,
                }
            )
            saved = uow.assets.update(updated, expected_revision=asset.revision)
            self._audit(
                uow,
                actor.id,
                AuditAction.NEW_VERSION,
                saved,
                {
                    "version_number": version.version_number,
                    "previous_locator": asset.storage_locator,
                },
            )
            return saved

        return self._transact("content replacement", work)

    def history(self, actor: User, asset_id: UUID) -> AssetHistory:
        with self._uow_factory() as uow:
            asset = self._load_visible(uow, actor, asset_id)
            return AssetHistory(
                approvals=tuple(uow.approvals.list_by_asset(asset.id)),
                versions=tuple(uow.versions.list_by_asset(asset.id)),
            )
