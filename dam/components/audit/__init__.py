"""
Audit component - append-only audit trail.
"""

from .component import (
    AuditRecorder,
    build_entry,
    immutability_violation,
    security_logger,
    to_json_value,
    validate_record,
)
from .models import AuditListOutput, AuditValidationError, RecordAuditInput

__all__ = [
    "AuditRecorder",
    "build_entry",
    "immutability_violation",
    "security_logger",
    "to_json_value",
    "validate_record",
    "AuditListOutput",
    "AuditValidationError",
    "RecordAuditInput",
]
