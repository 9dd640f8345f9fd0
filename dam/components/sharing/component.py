"""
Sharing component - explicit grants behind ROLE and SELECTED_USERS visibility.

Only the uploader or an administrator manages an asset's shares. A share on
its own grants nothing: it is consulted only when the asset's visibility is
ROLE or SELECTED_USERS.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from uuid import UUID

from dam.components.audit import AuditRecorder, RecordAuditInput
from dam.components.visibility import can_edit, evaluate_view
from dam.domain.entities import (
    Asset,
    AssetShare,
    AuditAction,
    ResourceType,
    ShareTargetType,
    User,
)
from dam.domain.errors import Forbidden, NotFound, ValidationFailed, asset_not_found
from dam.ports.clock import ClockPort
from dam.ports.notifier import NotificationType, NotifierPort
from dam.ports.repo import UnitOfWorkPort

from .models import ListSharesInput, RevokeShareInput, ShareAssetInput, ShareOutput

logger = logging.getLogger(__name__)


def _load_managed(uow: UnitOfWorkPort, actor: User, asset_id: UUID) -> Asset:
    asset = uow.assets.get_by_id(asset_id)
    if asset is None or not evaluate_view(actor, asset, shares=uow.shares):
        raise asset_not_found()
    if not can_edit(actor, asset):
        raise Forbidden("Only the uploader or an administrator can manage sharing")
    return asset


def run_share(inp: ShareAssetInput, uow: UnitOfWorkPort, clock: ClockPort) -> ShareOutput:
    asset = _load_managed(uow, inp.actor, inp.asset_id)

    if not inp.user_ids and not inp.roles:
        raise ValidationFailed("user_ids", "Select at least one user or role to share with")
    if inp.actor.id in inp.user_ids:
        raise ValidationFailed("user_ids", "Cannot share an asset with yourself")
    for user_id in inp.user_ids:
        if uow.users.get_by_id(user_id) is None:
            raise NotFound("User not found")

    now = clock.now_utc()
    targets = [(ShareTargetType.USER, str(u)) for u in dict.fromkeys(inp.user_ids)]
    targets += [(ShareTargetType.ROLE, r.value) for r in dict.fromkeys(inp.roles)]

    shares = tuple(
        uow.shares.add(
            AssetShare(
                asset_id=asset.id,
                shared_by_id=inp.actor.id,
                target_type=target_type,
                target_id=target_id,
                created_at=now,
            )
        )
        for target_type, target_id in targets
    )

    AuditRecorder(uow.audit_log, clock).record(
        RecordAuditInput(
            action=AuditAction.SHARE,
            resource_type=ResourceType.ASSET,
            resource_id=str(asset.id),
            actor_id=inp.actor.id,
            metadata={"users": list(inp.user_ids), "roles": list(inp.roles)},
        )
    )
    return ShareOutput(shares=shares)


def run_revoke(inp: RevokeShareInput, uow: UnitOfWorkPort, clock: ClockPort) -> ShareOutput:
    asset = _load_managed(uow, inp.actor, inp.asset_id)

    if not uow.shares.remove(asset.id, inp.target_type, inp.target_id):
        raise NotFound("Share not found")

    AuditRecorder(uow.audit_log, clock).record(
        RecordAuditInput(
            action=AuditAction.REVOKE_SHARE,
            resource_type=ResourceType.ASSET,
            resource_id=str(asset.id),
            actor_id=inp.actor.id,
            metadata={"target_type": inp.target_type, "target_id": inp.target_id},
        )
    )
    return ShareOutput(shares=tuple(uow.shares.list_by_asset(asset.id)))


def run_list(inp: ListSharesInput, uow: UnitOfWorkPort) -> ShareOutput:
    asset = _load_managed(uow, inp.actor, inp.asset_id)
    return ShareOutput(shares=tuple(uow.shares.list_by_asset(asset.id)))


class ShareService:
    """Runs each sharing operation in its own unit of work."""

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWorkPort],
        clock: ClockPort,
        notifier: NotifierPort | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._clock = clock
        self._notifier = notifier

    def share(self, inp: ShareAssetInput) -> ShareOutput:
        with self._uow_factory() as uow:
            out = run_share(inp, uow, self._clock)
            uow.commit()

        logger.info(
            "asset %s shared by %s with %d user(s), %d role(s)",
            inp.asset_id,
            inp.actor.id,
            len(inp.user_ids),
            len(inp.roles),
        )
        if self._notifier is not None and inp.user_ids:
            try:
                self._notifier.notify(
                    NotificationType.ASSET_SHARED,
                    list(inp.user_ids),
                    inp.asset_id,
                    "Asset shared with you",
                    f"{inp.actor.name} shared an asset with you",
                )
            except Exception:
                logger.warning("share notification for %s failed", inp.asset_id, exc_info=True)
        return out

    def revoke(self, inp: RevokeShareInput) -> ShareOutput:
        with self._uow_factory() as uow:
            out = run_revoke(inp, uow, self._clock)
            uow.commit()
        logger.info("share %s:%s revoked on %s", inp.target_type.value, inp.target_id, inp.asset_id)
        return out

    def list(self, inp: ListSharesInput) -> ShareOutput:
        with self._uow_factory() as uow:
            return run_list(inp, uow)
