"""
Audit Log API (administrators only).

Read-only: the mutating verbs exist so that every attempt lands on the
immutability error and is logged on the security logger.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from dam.api.deps import EngineDep, require_admin
from dam.api.schemas import AuditEntryResponse, AuditQueryResponse
from dam.components.audit import AuditRecorder
from dam.domain.entities import AuditAction, ResourceType, User
from dam.ports.repo import AuditQuery

router = APIRouter()

AdminUser = Annotated[User, Depends(require_admin)]


@router.get("", response_model=AuditQueryResponse)
def query_audit(
    engine: EngineDep,
    admin: AdminUser,
    actor_id: UUID | None = None,
    action: AuditAction | None = None,
    resource_type: ResourceType | None = None,
    resource_id: str | None = None,
    limit: Annotated[int | None, Query(ge=1)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> AuditQueryResponse:
    """Query the audit trail, newest first."""
    page_rules = engine.rules.audit
    page_size = min(limit or page_rules.default_page_size, page_rules.max_page_size)
    query = AuditQuery(
        actor_id=actor_id,
        action=action.value if action else None,
        resource_type=resource_type.value if resource_type else None,
        resource_id=resource_id,
        limit=page_size,
        offset=offset,
    )
    with engine.uow_factory() as uow:
        out = AuditRecorder(uow.audit_log, engine.clock).query(query)
    return AuditQueryResponse(
        items=[AuditEntryResponse.model_validate(e) for e in out.entries],
        total=out.total,
        offset=offset,
        limit=page_size,
    )


@router.get("/{entry_id}", response_model=AuditEntryResponse)
def get_audit_entry(entry_id: UUID, engine: EngineDep, admin: AdminUser) -> AuditEntryResponse:
    with engine.uow_factory() as uow:
        entry = AuditRecorder(uow.audit_log, engine.clock).get(entry_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audit entry not found")
    return AuditEntryResponse.model_validate(entry)


@router.delete("/{entry_id}")
def delete_audit_entry(entry_id: UUID, engine: EngineDep, admin: AdminUser) -> None:
    with engine.uow_factory() as uow:
        AuditRecorder(uow.audit_log, engine.clock).delete(entry_id)
