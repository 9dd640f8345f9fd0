from datetime import datetime
from typing import Any

from dam.domain.entities import Asset, AssetStatus, FailureReason, UploadType
from dam.domain.errors import InvalidState

# Review transitions. APPROVED has no exits; integrity failures bypass this
# table through ``mark_failed``.
ALLOWED_TRANSITIONS: dict[AssetStatus, frozenset[AssetStatus]] = {
    AssetStatus.DRAFT: frozenset({AssetStatus.PENDING_REVIEW}),
    AssetStatus.PENDING_REVIEW: frozenset({AssetStatus.APPROVED, AssetStatus.REJECTED}),
    AssetStatus.REJECTED: frozenset({AssetStatus.PENDING_REVIEW}),
    AssetStatus.APPROVED: frozenset(),
}


def can_transition(asset: Asset, new: AssetStatus) -> bool:
    """
    Determine if a review transition is allowed for this asset.
    """
    if new not in ALLOWED_TRANSITIONS.get(asset.status, frozenset()):
        return False

    if new == AssetStatus.PENDING_REVIEW:
        # Private uploads never enter review.
        if asset.upload_type != UploadType.BROADCAST:
            return False
        # Missing bytes cannot be fixed by resubmitting.
        if asset.failure_reason == FailureReason.INTEGRITY_FAILURE:
            return False

    return True


def transition(asset: Asset, new_status: AssetStatus, now: datetime, **changes: Any) -> Asset:
    """
    Return a NEW Asset with the updated status and timestamps.
    Raises InvalidState if the transition is not allowed.
    """
    if not can_transition(asset, new_status):
        raise InvalidState(
            f"Cannot move asset from {asset.status.value} to {new_status.value}"
        )

    updates: dict[str, Any] = {"status": new_status, "updated_at": now}

    if new_status == AssetStatus.PENDING_REVIEW:
        # A new review cycle starts clean.
        updates["rejection_reason"] = None
        updates["rejected_at"] = None
        updates["rejected_by_id"] = None
        updates["failure_reason"] = None

    updates.update(changes)
    return asset.model_copy(update=updates)


def mark_failed(asset: Asset, now: datetime, reason: str) -> Asset:
    """Out-of-band REJECTED for assets whose stored bytes are missing."""
    return asset.model_copy(
        update={
            "status": AssetStatus.REJECTED,
            "failure_reason": FailureReason.INTEGRITY_FAILURE,
            "rejection_reason": reason,
            "rejected_at": now,
            "rejected_by_id": None,
            "updated_at": now,
        }
    )
