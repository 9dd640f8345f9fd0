"""
Dev Notifier Adapter.

Logs notifications instead of delivering them. Used for local development
and testing; notifications are kept in memory for test assertions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from dam.ports.notifier import NotificationType

logger = logging.getLogger(__name__)


@dataclass
class SentNotification:
    """Record of a logged notification for test assertions."""

    kind: NotificationType
    recipient_ids: list[UUID]
    asset_id: UUID
    title: str
    message: str
    logged_at: datetime


@dataclass
class DevNotifier:
    """
    Notifier that logs instead of delivering.

    Set ``fail`` to simulate an unreachable delivery service.
    """

    sent: list[SentNotification] = field(default_factory=list)
    fail: bool = False
    log_level: int = logging.INFO

    def notify(
        self,
        kind: NotificationType,
        recipient_ids: list[UUID],
        asset_id: UUID,
        title: str,
        message: str,
    ) -> None:
        if self.fail:
            raise ConnectionError("notification service unreachable")

        self.sent.append(
            SentNotification(
                kind=kind,
                recipient_ids=list(recipient_ids),
                asset_id=asset_id,
                title=title,
                message=message,
                logged_at=datetime.now(UTC),
            )
        )
        logger.log(
            self.log_level,
            "[DEV NOTIFY] %s to %d recipient(s) for asset %s: %s",
            kind.value,
            len(recipient_ids),
            asset_id,
            title,
        )

    def of_kind(self, kind: NotificationType) -> list[SentNotification]:
        return [n for n in self.sent if n.kind == kind]

    def clear(self) -> None:
        self.sent.clear()
