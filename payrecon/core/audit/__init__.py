"""
Audit trail for reconciliation runs.

Pipeline steps (2-9) append diagnostic messages in batches; operators read
them back flat or grouped by batch.
"""

from .models import AuditGroup, AuditMessage
from .service import (
    DEFAULT_LIMIT,
    HARD_LIMIT,
    MAX_STEP,
    MIN_STEP,
    AuditTrailService,
    IngestResult,
    coerce_step,
    group_messages,
)
from .store import AuditStore, InMemoryAuditStore, JsonlAuditStore

__all__ = [
    "AuditGroup",
    "AuditMessage",
    "AuditStore",
    "AuditTrailService",
    "IngestResult",
    "InMemoryAuditStore",
    "JsonlAuditStore",
    "DEFAULT_LIMIT",
    "HARD_LIMIT",
    "MAX_STEP",
    "MIN_STEP",
    "coerce_step",
    "group_messages",
]
