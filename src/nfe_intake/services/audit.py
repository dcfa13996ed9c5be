"""Audit trail emission.

Every critical action goes through AuditLogger. Entries are append-only:
the store exposes no update or delete for audit_logs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from nfe_intake.state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass
class AuditEvent:
    """One audit entry, before persistence."""

    tenant_id: str
    action: str
    table_name: str | None = None
    record_id: str | None = None
    old_data: dict[str, Any] | None = None
    new_data: dict[str, Any] | None = None
    location_id: str | None = None
    user_id: str | None = None
    source_type: str = "user"


class AuditLogger:
    """Persists audit events to the state store and logs them."""

    def __init__(self, state_store: StateStore) -> None:
        self.store = state_store

    def emit(
        self,
        tenant_id: str,
        action: str,
        table_name: str | None,
        record_id: str | None,
        old_data: dict[str, Any] | None,
        new_data: dict[str, Any] | None,
        location_id: str | None = None,
        user_id: str | None = None,
        source_type: str = "user",
    ) -> int:
        """Record one audit event. Returns the audit entry ID.

        Store failures propagate: an action that cannot be audited must not
        be reported as done.
        """
        event = AuditEvent(
            tenant_id=tenant_id,
            action=action,
            table_name=table_name,
            record_id=record_id,
            old_data=old_data,
            new_data=new_data,
            location_id=location_id,
            user_id=user_id,
            source_type=source_type,
        )
        return self.record(event)

    def record(self, event: AuditEvent) -> int:
        """Persist a prepared AuditEvent."""
        entry_id = self.store.insert_audit_log(
            tenant_id=event.tenant_id,
            action=event.action,
            table_name=event.table_name,
            record_id=event.record_id,
            old_data=event.old_data,
            new_data=event.new_data,
            store_id=event.location_id,
            user_id=event.user_id,
            source_type=event.source_type,
        )
        logger.info(
            f"[AUDIT] {event.action} {event.table_name}/{event.record_id} "
            f"tenant={event.tenant_id} entry={entry_id}"
        )
        return entry_id
