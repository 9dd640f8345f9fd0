"""
Unit tests for the small adapters: SystemClock and DevNotifier.
"""

import logging
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from dam.adapters.clock import SystemClock
from dam.adapters.dev_notifier import DevNotifier
from dam.ports.notifier import NotificationType


def test_system_clock_is_utc_and_current():
    now = SystemClock().now_utc()

    assert now.tzinfo is not None
    assert now.utcoffset() == timedelta(0)
    assert abs((datetime.now(UTC) - now).total_seconds()) < 1.0


class TestDevNotifier:
    """DevNotifier records and logs instead of delivering."""

    def test_notify_records_notification(self) -> None:
        notifier = DevNotifier()
        recipients = [uuid4(), uuid4()]
        asset_id = uuid4()

        notifier.notify(
            NotificationType.ASSET_APPROVED, recipients, asset_id, "Approved", "Your asset"
        )

        assert len(notifier.sent) == 1
        sent = notifier.sent[0]
        assert sent.kind == NotificationType.ASSET_APPROVED
        assert sent.recipient_ids == recipients
        assert sent.asset_id == asset_id
        assert sent.title == "Approved"

    def test_recipient_list_is_copied(self) -> None:
        notifier = DevNotifier()
        recipients = [uuid4()]

        notifier.notify(NotificationType.ASSET_SHARED, recipients, uuid4(), "t", "m")
        recipients.append(uuid4())

        assert len(notifier.sent[0].recipient_ids) == 1

    def test_of_kind_filters(self) -> None:
        notifier = DevNotifier()
        notifier.notify(NotificationType.ASSET_UPLOADED, [uuid4()], uuid4(), "t", "m")
        notifier.notify(NotificationType.ASSET_SHARED, [uuid4()], uuid4(), "t", "m")

        assert len(notifier.of_kind(NotificationType.ASSET_SHARED)) == 1
        assert notifier.of_kind(NotificationType.ASSET_APPROVED) == []

    def test_clear(self) -> None:
        notifier = DevNotifier()
        notifier.notify(NotificationType.ASSET_UPLOADED, [uuid4()], uuid4(), "t", "m")

        notifier.clear()

        assert notifier.sent == []

    def test_logs_at_configured_level(self, caplog: pytest.LogCaptureFixture) -> None:
        notifier = DevNotifier(log_level=logging.WARNING)

        with caplog.at_level(logging.WARNING, logger="dam.adapters.dev_notifier"):
            notifier.notify(NotificationType.ASSET_REJECTED, [uuid4()], uuid4(), "Rejected", "m")

        assert "[DEV NOTIFY] ASSET_REJECTED" in caplog.text

    def test_fail_flag_raises(self) -> None:
        notifier = DevNotifier(fail=True)

        with pytest.raises(ConnectionError):
            notifier.notify(NotificationType.ASSET_UPLOADED, [uuid4()], uuid4(), "t", "m")
        assert notifier.sent == []
