"""
Audit component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from dam.domain.entities import AuditAction, AuditEntry, ResourceType

# --- Validation Error ---


@dataclass(frozen=True)
class AuditValidationError:
    """Audit validation error."""

    code: str
    message: str
    field: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class RecordAuditInput:
    """One mutation to record."""

    action: AuditAction
    resource_type: ResourceType
    resource_id: str
    actor_id: UUID | None = None
    metadata: dict[str, Any] | None = None


# --- Output Models ---


@dataclass(frozen=True)
class AuditListOutput:
    """Output for audit query."""

    entries: tuple[AuditEntry, ...]
    total: int
    errors: list[AuditValidationError] = field(default_factory=list)
    success: bool = True
