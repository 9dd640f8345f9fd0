"""
Audit component - append-only record of every mutation.

Entries are written inside the caller's unit of work, so an append that
fails takes the surrounding transition down with it.

Invariants:
- Entries are never updated or deleted; every attempt raises
  ImmutabilityViolation and is logged on the security logger.
- Actor identity and resource are captured on every entry.
- Metadata is stored as plain JSON values.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from dam.domain.entities import AuditEntry
from dam.domain.errors import ImmutabilityViolation
from dam.ports.clock import ClockPort
from dam.ports.repo import AuditQuery, AuditRepoPort

from .models import AuditListOutput, AuditValidationError, RecordAuditInput

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("dam.security")


# --- Pure Functions ---


def to_json_value(value: Any) -> Any:
    """Coerce ids, enums and timestamps into JSON-safe values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [to_json_value(v) for v in value]
    return value


def validate_record(inp: RecordAuditInput) -> list[AuditValidationError]:
    errors: list[AuditValidationError] = []
    if not inp.resource_id:
        errors.append(
            AuditValidationError(
                code="resource_id_required",
                message="Audit entries must name a resource",
                field="resource_id",
            )
        )
    return errors


def build_entry(inp: RecordAuditInput, now: datetime) -> AuditEntry:
    return AuditEntry(
        actor_id=inp.actor_id,
        action=inp.action,
        resource_type=inp.resource_type,
        resource_id=inp.resource_id,
        metadata=to_json_value(inp.metadata or {}),
        created_at=now,
    )


def immutability_violation(operation: str, entry_id: UUID | str) -> ImmutabilityViolation:
    """Log a mutation attempt on the security logger and return the error to raise."""
    security_logger.warning("audit %s rejected for entry %s", operation, entry_id)
    return ImmutabilityViolation(f"Audit entries cannot be {operation}d")


# --- Recorder ---


class AuditRecorder:
    """
    Thin service over an audit repository.

    Bind it to ``uow.audit_log`` for writes that must share a transaction.
    """

    def __init__(self, repo: AuditRepoPort, clock: ClockPort) -> None:
        self._repo = repo
        self._clock = clock

    def record(self, inp: RecordAuditInput) -> AuditEntry:
        errors = validate_record(inp)
        if errors:
            # Programming error in a caller, not user input.
            raise ValueError(errors[0].message)
        entry = build_entry(inp, self._clock.now_utc())
        saved = self._repo.append(entry)
        logger.info(
            "audit %s %s/%s by %s",
            entry.action.value,
            entry.resource_type.value,
            entry.resource_id,
            entry.actor_id,
        )
        return saved

    def get(self, entry_id: UUID) -> AuditEntry | None:
        return self._repo.get_by_id(entry_id)

    def query(self, query: AuditQuery) -> AuditListOutput:
        entries = self._repo.query(query)
        total = self._repo.count(query)
        return AuditListOutput(entries=tuple(entries), total=total)

    def update(self, entry: AuditEntry) -> None:
        raise immutability_violation("update", entry.id)

    def delete(self, entry_id: UUID) -> None:
        raise immutability_violation("delete", entry_id)
