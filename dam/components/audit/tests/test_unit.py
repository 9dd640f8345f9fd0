"""
Audit component unit tests.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from uuid import UUID, uuid4

import pytest

from dam.components.audit import AuditRecorder, RecordAuditInput, to_json_value
from dam.domain.entities import AssetStatus, AuditAction, AuditEntry, ResourceType
from dam.domain.errors import ImmutabilityViolation
from dam.ports.repo import AuditQuery

# --- Mock Implementations ---


class MockAuditRepo:
    """Append-only list."""

    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    def append(self, entry: AuditEntry) -> AuditEntry:
        self.entries.append(entry)
        return entry

    def get_by_id(self, entry_id: UUID) -> AuditEntry | None:
        return next((e for e in self.entries if e.id == entry_id), None)

    def query(self, query: AuditQuery) -> list[AuditEntry]:
        hits = [e for e in self.entries if query.actor_id in (None, e.actor_id)]
        return hits[query.offset : query.offset + query.limit]

    def count(self, query: AuditQuery) -> int:
        return len([e for e in self.entries if query.actor_id in (None, e.actor_id)])

    def update(self, entry: AuditEntry) -> None:
        raise AssertionError("recorder must not reach the repository")

    def delete(self, entry_id: UUID) -> None:
        raise AssertionError("recorder must not reach the repository")


class MockTimePort:
    """Mock time port for deterministic testing."""

    def __init__(self, fixed_time: datetime | None = None) -> None:
        self._time = fixed_time or datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)

    def now_utc(self) -> datetime:
        return self._time


# --- Fixtures ---


@pytest.fixture
def repo() -> MockAuditRepo:
    return MockAuditRepo()


@pytest.fixture
def recorder(repo: MockAuditRepo) -> AuditRecorder:
    return AuditRecorder(repo, MockTimePort())


# --- Tests ---


class TestRecord:
    def test_record_appends_entry(self, recorder: AuditRecorder, repo: MockAuditRepo) -> None:
        actor = uuid4()
        asset_id = uuid4()
        entry = recorder.record(
            RecordAuditInput(
                action=AuditAction.APPROVE,
                resource_type=ResourceType.ASSET,
                resource_id=str(asset_id),
                actor_id=actor,
                metadata={"from": AssetStatus.PENDING_REVIEW, "to": AssetStatus.APPROVED},
            )
        )

        assert repo.entries == [entry]
        assert entry.actor_id == actor
        assert entry.created_at == datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)
        assert entry.metadata == {"from": "PENDING_REVIEW", "to": "APPROVED"}

    def test_record_requires_resource(self, recorder: AuditRecorder) -> None:
        with pytest.raises(ValueError):
            recorder.record(
                RecordAuditInput(
                    action=AuditAction.CREATE,
                    resource_type=ResourceType.ASSET,
                    resource_id="",
                )
            )

    def test_entries_are_frozen(self, recorder: AuditRecorder) -> None:
        entry = recorder.record(
            RecordAuditInput(
                action=AuditAction.CREATE,
                resource_type=ResourceType.ASSET,
                resource_id="a1",
            )
        )
        with pytest.raises(Exception):
            entry.action = AuditAction.REJECT  # type: ignore[misc]


class TestImmutability:
    def test_update_raises_and_logs(
        self,
        recorder: AuditRecorder,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        entry = recorder.record(
            RecordAuditInput(
                action=AuditAction.CREATE,
                resource_type=ResourceType.ASSET,
                resource_id="a1",
            )
        )
        with caplog.at_level(logging.WARNING, logger="dam.security"):
            with pytest.raises(ImmutabilityViolation):
                recorder.update(entry)
        assert any(r.name == "dam.security" for r in caplog.records)

    def test_delete_raises(self, recorder: AuditRecorder) -> None:
        with pytest.raises(ImmutabilityViolation):
            recorder.delete(uuid4())


class TestQuery:
    def test_query_filters_and_counts(self, recorder: AuditRecorder) -> None:
        actor = uuid4()
        for i in range(3):
            recorder.record(
                RecordAuditInput(
                    action=AuditAction.CREATE,
                    resource_type=ResourceType.ASSET,
                    resource_id=f"a{i}",
                    actor_id=actor if i else None,
                )
            )

        out = recorder.query(AuditQuery(actor_id=actor, limit=1))
        assert out.total == 2
        assert len(out.entries) == 1


def test_to_json_value_nested() -> None:
    uid = uuid4()
    assert to_json_value({"ids": (uid,), "n": 1}) == {"ids": [str(uid)], "n": 1}
