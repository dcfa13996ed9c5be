"""Services: NF-e ingestion orchestration and audit emission."""

from nfe_intake.services.audit import AuditEvent, AuditLogger
from nfe_intake.services.ingestion import (
    DuplicateInvoiceError,
    ImportOutcome,
    IngestionError,
    InvoiceIngestionService,
    PersistenceError,
    TenantContext,
    UnreadableDocumentError,
)

__all__ = [
    "AuditEvent",
    "AuditLogger",
    "InvoiceIngestionService",
    "ImportOutcome",
    "TenantContext",
    "IngestionError",
    "UnreadableDocumentError",
    "DuplicateInvoiceError",
    "PersistenceError",
]
