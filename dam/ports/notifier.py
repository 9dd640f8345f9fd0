from __future__ import annotations

from enum import Enum
from typing import Protocol
from uuid import UUID


class NotificationType(str, Enum):
    ASSET_UPLOADED = "ASSET_UPLOADED"
    ASSET_APPROVED = "ASSET_APPROVED"
    ASSET_REJECTED = "ASSET_REJECTED"
    ASSET_SHARED = "ASSET_SHARED"


class NotifierPort(Protocol):
    """
    Notification dispatch.

    Callers treat this as fire-and-forget: a failure here never fails the
    operation that triggered it.
    """

    def notify(
        self,
        kind: NotificationType,
        recipient_ids: list[UUID],
        asset_id: UUID,
        title: str,
        message: str,
    ) -> None: ...
