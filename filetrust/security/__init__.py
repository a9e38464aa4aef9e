"""
Security module - Constants and the audit trail.
"""

from filetrust.security.constants import (
    ENCRYPTION_ALGORITHM,
    KEY_DERIVATION_FUNCTION,
    MIN_KDF_ITERATIONS,
)
from filetrust.security.audit import (
    AuditEvent,
    AuditEventType,
    AuditSeverity,
    TamperAwareAuditLog,
)

__all__ = [
    # Constants
    "ENCRYPTION_ALGORITHM",
    "KEY_DERIVATION_FUNCTION",
    "MIN_KDF_ITERATIONS",
    # Audit
    "AuditEvent",
    "AuditEventType",
    "AuditSeverity",
    "TamperAwareAuditLog",
]
