"""Record stores, row models, and the audit log."""

from enrichment_orchestrator.storage.audit import AuditLog, AuditWriteResult
from enrichment_orchestrator.storage.base import KNOWN_TABLES, RecordStore
from enrichment_orchestrator.storage.memory import InMemoryRecordStore
from enrichment_orchestrator.storage.postgres import PostgresRecordStore
from enrichment_orchestrator.storage.retrying import RetryingRecordStore

__all__ = [
    "KNOWN_TABLES",
    "AuditLog",
    "AuditWriteResult",
    "InMemoryRecordStore",
    "PostgresRecordStore",
    "RecordStore",
    "RetryingRecordStore",
]
