"""NF-e ingestion orchestration service.

Turns one uploaded NF-e XML into a receiving draft:
1. Parse the document (unreadable documents stop here)
2. Idempotency pre-check on the access key
3. Resolve the supplier by CNPJ
4. Create the receiving draft
5. Resolve and persist every line (batched catalog matching)
6. Persist the payment plan from the duplicatas
7. Store the XML as a document linked to the receiving
8. Emit the audit event

Steps 4-8 run in one store transaction: either the whole draft exists or
none of it does. The (tenant_id, invoice_key) uniqueness constraint is the
authoritative duplicate guard; step 2 only reports duplicates early.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING

from nfe_intake.extractors.nfe_parser import NfeParser
from nfe_intake.extractors.normalize import digits_only, parse_installment_number
from nfe_intake.matching.engine import CatalogMatcher, LineMatch
from nfe_intake.schemas.access_key import compute_content_hash
from nfe_intake.schemas.draft import ReceivingDraft, to_draft
from nfe_intake.services.audit import AuditLogger
from nfe_intake.state_store import (
    DuplicateRecordError,
    MatchStatus,
    ReceivingItemRecord,
    ReceivingRecord,
    StoreError,
)

if TYPE_CHECKING:
    from nfe_intake.config import Config
    from nfe_intake.schemas.invoice import ParsedInvoice
    from nfe_intake.state_store import StateStore

logger = logging.getLogger(__name__)

AUDIT_ACTION = "import_nfe_xml"
RECEIVINGS_TABLE = "receivings"
DOCUMENT_TYPE = "invoice_xml"
DOCUMENT_MIME_TYPE = "application/xml"


class IngestionError(Exception):
    """Base error of the ingestion pipeline. str(e) is user-facing."""

    pass


class UnreadableDocumentError(IngestionError):
    """No access key and structural warnings: the XML could not be read."""

    def __init__(self, warnings: list[str]) -> None:
        self.warnings = list(warnings)
        super().__init__(f"Could not parse NF-e XML: {'; '.join(self.warnings)}")


class DuplicateInvoiceError(IngestionError):
    """The access key already has a receiving."""

    def __init__(self, invoice_key: str, existing_id: str, existing_status: str) -> None:
        self.invoice_key = invoice_key
        self.existing_id = existing_id
        self.existing_status = existing_status
        super().__init__(
            f"NF-e already imported (key {invoice_key}). "
            f"Existing receiving: {existing_id} ({existing_status})"
        )


class PersistenceError(IngestionError):
    """A store operation failed. `step` names the pipeline step."""

    STEP_MESSAGES = {
        "duplicate_check": "Failed to check for an existing receiving",
        "supplier_lookup": "Failed to look up supplier",
        "create_receiving": "Failed to create receiving",
        "create_items": "Failed to create receiving items",
        "create_payments": "Failed to create payment plan",
        "store_document": "Failed to store invoice document",
        "audit": "Failed to write audit log",
    }

    def __init__(self, step: str, cause: Exception) -> None:
        self.step = step
        self.cause = cause
        prefix = self.STEP_MESSAGES.get(step, f"Failed at step {step}")
        super().__init__(f"{prefix}: {cause}")


@dataclass(frozen=True)
class TenantContext:
    """Acting tenant and user, passed explicitly to every import."""

    tenant_id: str
    user_id: str


@dataclass
class ImportOutcome:
    """Result of a successful import."""

    receiving: ReceivingRecord
    items: list[ReceivingItemRecord]
    draft: ReceivingDraft
    parse_warnings: list[str] = field(default_factory=list)
    supplier_matched: bool = False
    items_auto_matched: int = 0
    matches: list[LineMatch] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "receiving_id": self.receiving.id,
            "status": self.receiving.status.value,
            "supplier_id": self.receiving.supplier_id,
            "items": [
                {
                    "id": item.id,
                    "sequence": item.sequence,
                    "description": item.supplier_item_name,
                    "matched_status": item.matched_status.value,
                    "item_id": item.item_id,
                    "confidence": item.confidence,
                }
                for item in self.items
            ],
            "draft": self.draft.to_dict(),
            "parse_warnings": self.parse_warnings,
            "supplier_matched": self.supplier_matched,
            "items_auto_matched": self.items_auto_matched,
            "matches": [match.to_dict() for match in self.matches],
        }


class InvoiceIngestionService:
    """Imports NF-e XML documents as receiving drafts.

    One call is one synchronous unit of work. No state is kept between
    calls, so one service may serve many imports.

    Usage:
        service = InvoiceIngestionService(state_store, config)
        outcome = service.import_invoice(context, store_id, billed_id, xml, "nfe.xml")
    """

    def __init__(
        self,
        state_store: StateStore,
        config: Config,
        audit: AuditLogger | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        """Initialize the ingestion service.

        Args:
            state_store: Record store for all persistence.
            config: Application configuration.
            audit: Audit emitter (defaults to one writing to state_store).
            today: Processing-date provider, the last due-date fallback.
        """
        self.store = state_store
        self.config = config
        self.audit = audit or AuditLogger(state_store)
        self.today = today or date.today
        self.parser = NfeParser()
        self.matcher = CatalogMatcher(state_store, config)

    def import_invoice(
        self,
        context: TenantContext,
        destination_location_id: str,
        billed_location_id: str,
        document: str,
        file_name: str,
    ) -> ImportOutcome:
        """Import one NF-e XML document.

        Raises:
            UnreadableDocumentError: No access key and a structural warning
            DuplicateInvoiceError: Access key already imported for this tenant
            PersistenceError: Any store failure; nothing is left behind
        """
        invoice = self.parser.parse(document)
        draft = to_draft(invoice)

        if not invoice.is_readable:
            logger.warning(f"Unreadable NF-e {file_name}: {invoice.warnings}")
            raise UnreadableDocumentError(invoice.warnings)

        if draft.invoice_key:
            self._check_duplicate(context.tenant_id, draft.invoice_key)

        supplier_id = self._resolve_supplier(context.tenant_id, draft.supplier_tax_id)
        supplier_matched = supplier_id is not None

        try:
            with self.store.atomic():
                receiving = self._create_receiving(
                    context, destination_location_id, billed_location_id, draft,
                    supplier_id, file_name,
                )
                items, matches = self._create_items(context, receiving, draft)
                auto_matched = len(matches)
                self._create_payments(context, receiving, draft, invoice)
                self._store_document(context, receiving, draft, document, file_name)
                if self.config.ingestion.audit_enabled:
                    with self._step("audit"):
                        self.audit.emit(
                            tenant_id=context.tenant_id,
                            action=AUDIT_ACTION,
                            table_name=RECEIVINGS_TABLE,
                            record_id=receiving.id,
                            old_data=None,
                            new_data={
                                "file_name": file_name,
                                "invoice_key": draft.invoice_key,
                                "total_items": len(draft.items),
                                "auto_matched": auto_matched,
                                "supplier_matched": supplier_matched,
                            },
                            location_id=destination_location_id,
                            user_id=context.user_id,
                        )
        except DuplicateRecordError as e:
            # Lost the race against a concurrent import of the same key
            self._raise_existing(context.tenant_id, draft.invoice_key)
            raise PersistenceError("create_receiving", e) from e

        logger.info(
            f"Imported NF-e {draft.invoice_key or file_name} as receiving {receiving.id}: "
            f"{auto_matched}/{len(items)} lines matched, supplier_matched={supplier_matched}"
        )

        return ImportOutcome(
            receiving=receiving,
            items=items,
            draft=draft,
            parse_warnings=list(invoice.warnings),
            supplier_matched=supplier_matched,
            items_auto_matched=auto_matched,
            matches=matches,
        )

    @contextmanager
    def _step(self, step: str) -> Iterator[None]:
        """Wrap store failures of one step in PersistenceError."""
        try:
            yield
        except DuplicateRecordError:
            raise
        except (StoreError, sqlite3.Error) as e:
            logger.error(f"Ingestion step {step} failed: {e}")
            raise PersistenceError(step, e) from e

    def _check_duplicate(self, tenant_id: str, invoice_key: str) -> None:
        with self._step("duplicate_check"):
            existing = self.store.find_receiving_by_invoice_key(tenant_id, invoice_key)
        if existing:
            logger.warning(f"Duplicate NF-e {invoice_key}: receiving {existing.id} exists")
            raise DuplicateInvoiceError(invoice_key, existing.id, existing.status.value)

    def _raise_existing(self, tenant_id: str, invoice_key: str | None) -> None:
        if not invoice_key:
            return
        with self._step("duplicate_check"):
            existing = self.store.find_receiving_by_invoice_key(tenant_id, invoice_key)
        if existing:
            logger.warning(f"Duplicate NF-e {invoice_key} rejected by store constraint")
            raise DuplicateInvoiceError(invoice_key, existing.id, existing.status.value)

    def _resolve_supplier(self, tenant_id: str, tax_id: str | None) -> str | None:
        """Exactly one active supplier with this CNPJ, else None."""
        cnpj = digits_only(tax_id)
        if not cnpj:
            return None

        with self._step("supplier_lookup"):
            suppliers = self.store.find_active_suppliers_by_tax_id(tenant_id, cnpj, limit=2)

        if len(suppliers) != 1:
            if suppliers:
                logger.info(f"Supplier CNPJ {cnpj} is ambiguous; leaving supplier unset")
            return None
        return suppliers[0].id

    def _create_receiving(
        self,
        context: TenantContext,
        destination_location_id: str,
        billed_location_id: str,
        draft: ReceivingDraft,
        supplier_id: str | None,
        file_name: str,
    ) -> ReceivingRecord:
        with self._step("create_receiving"):
            return self.store.create_receiving(
                tenant_id=context.tenant_id,
                store_id=destination_location_id,
                billed_store_id=billed_location_id,
                supplier_id=supplier_id,
                invoice_key=draft.invoice_key,
                invoice_number=draft.invoice_number,
                invoice_series=draft.invoice_series,
                invoice_date=draft.issue_date,
                total_products=draft.products_subtotal,
                freight_amount=draft.freight,
                discount_amount=draft.discount,
                other_costs=draft.other_charges,
                total_amount=draft.total_amount,
                notes=f"Imported from XML: {file_name}",
                source_type=self.config.ingestion.source_type,
                source_id=context.user_id,
                created_by=context.user_id,
            )

    def _create_items(
        self, context: TenantContext, receiving: ReceivingRecord, draft: ReceivingDraft
    ) -> tuple[list[ReceivingItemRecord], list[LineMatch]]:
        with self._step("create_items"):
            matches = self.matcher.match_lines(context.tenant_id, draft.items)

            items = []
            for line, match in zip(draft.items, matches):
                total_cost = line.total_price or line.quantity * line.unit_price
                items.append(
                    self.store.add_receiving_item(
                        tenant_id=context.tenant_id,
                        receiving_id=receiving.id,
                        sequence=line.sequence,
                        supplier_item_code=line.code or None,
                        supplier_item_name=line.description,
                        ncm=line.ncm,
                        cfop=line.cfop,
                        unit=line.unit,
                        quantity=line.quantity,
                        unit_cost=line.unit_price,
                        total_cost=total_cost,
                        item_id=match.item_id if match else None,
                        matched_status=MatchStatus.MATCHED if match else MatchStatus.PENDING,
                        confidence=match.confidence if match else None,
                    )
                )

        return items, [m for m in matches if m is not None]

    def _create_payments(
        self,
        context: TenantContext,
        receiving: ReceivingRecord,
        draft: ReceivingDraft,
        invoice: ParsedInvoice,
    ) -> None:
        if not draft.payment_plan:
            return

        fallback_due = invoice.issue_date or self.today().isoformat()
        payments = [
            (
                parse_installment_number(entry.installment),
                entry.due_date or fallback_due,
                entry.amount,
            )
            for entry in draft.payment_plan
        ]

        with self._step("create_payments"):
            self.store.add_receiving_payments(context.tenant_id, receiving.id, payments)

    def _store_document(
        self,
        context: TenantContext,
        receiving: ReceivingRecord,
        draft: ReceivingDraft,
        document: str,
        file_name: str,
    ) -> None:
        with self._step("store_document"):
            stored = self.store.add_document(
                tenant_id=context.tenant_id,
                doc_type=DOCUMENT_TYPE,
                file_name=file_name,
                file_path=f"nfe/{receiving.id}/{file_name}",
                file_size=len(document.encode("utf-8")),
                mime_type=DOCUMENT_MIME_TYPE,
                metadata={
                    "access_key": draft.invoice_key,
                    "issuer_tax_id": draft.supplier_tax_id,
                    "invoice_number": draft.invoice_number,
                    "content_hash": compute_content_hash(document),
                },
                uploaded_by=context.user_id,
            )
            self.store.link_document(
                context.tenant_id, stored.id, RECEIVINGS_TABLE, receiving.id
            )
