"""
State Store (SQLite-based).

Tenant-scoped persistence for receiving ingestion:
- Supplier and catalog master data
- Receiving drafts, lines and payment plans
- Stored documents and links
- Audit trail

Enforces uniqueness on (tenant_id, invoice_key).
"""

from .sqlite_store import (
    AuditLogRecord,
    CatalogItemRecord,
    DocumentRecord,
    DuplicateRecordError,
    MatchStatus,
    ReceivingItemRecord,
    ReceivingPaymentRecord,
    ReceivingRecord,
    ReceivingStatus,
    StateStore,
    StoreError,
    SupplierRecord,
)

__all__ = [
    "StateStore",
    "StoreError",
    "DuplicateRecordError",
    "ReceivingStatus",
    "MatchStatus",
    "SupplierRecord",
    "CatalogItemRecord",
    "ReceivingRecord",
    "ReceivingItemRecord",
    "ReceivingPaymentRecord",
    "DocumentRecord",
    "AuditLogRecord",
]
