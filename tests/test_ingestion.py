"""Tests for the NF-e ingestion service."""

import sqlite3
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from fixtures import (
    FULL_ACCESS_KEY,
    SIMPLE_ACCESS_KEY,
    STORE_ID,
    SUPPLIER_CNPJ,
    TENANT_ID,
    USER_ID,
    build_nfe,
)

from nfe_intake.config import Config, IngestionConfig
from nfe_intake.extractors.nfe_parser import WARNING_NO_ACCESS_KEY, WARNING_NO_TOTALS
from nfe_intake.schemas import compute_content_hash
from nfe_intake.services import (
    DuplicateInvoiceError,
    IngestionError,
    InvoiceIngestionService,
    PersistenceError,
    TenantContext,
    UnreadableDocumentError,
)
from nfe_intake.state_store import MatchStatus, ReceivingStatus, StoreError


def import_document(service, context, document, file_name="nfe.xml", billed=None):
    return service.import_invoice(
        context,
        destination_location_id=STORE_ID,
        billed_location_id=billed or STORE_ID,
        document=document,
        file_name=file_name,
    )


class TestEndToEnd:
    """Single-line document, known supplier, barcode in catalog."""

    @pytest.fixture
    def outcome(self, service, context, store, supplier, sample_simple_nfe):
        store.add_catalog_item(TENANT_ID, "Arroz Branco 5kg", barcode="7891000100103")
        return import_document(service, context, sample_simple_nfe, "nfe_simple.xml")

    def test_receiving(self, outcome, store, supplier):
        """One draft receiving with derived totals and supplier."""
        receiving = store.get_receiving(outcome.receiving.id)

        assert receiving.status == ReceivingStatus.DRAFT
        assert receiving.tenant_id == TENANT_ID
        assert receiving.invoice_key == SIMPLE_ACCESS_KEY
        assert receiving.invoice_number == "1235"
        assert receiving.invoice_date == "2024-05-01"
        assert receiving.supplier_id == supplier.id
        assert receiving.total_amount == Decimal("21.00")
        assert receiving.total_products == Decimal("21.00")
        assert receiving.notes == "Imported from XML: nfe_simple.xml"
        assert receiving.source_type == "nfe_import"
        assert receiving.source_id == USER_ID
        assert receiving.created_by == USER_ID
        assert outcome.supplier_matched is True

    def test_item_matched_by_barcode(self, outcome, store):
        """The line is matched by barcode with 0.95 confidence."""
        (item,) = store.get_receiving_items(outcome.receiving.id)

        assert item.sequence == 1
        assert item.supplier_item_name == "Arroz 5kg"
        assert item.supplier_item_code == "A-001"
        assert item.quantity == Decimal("2")
        assert item.unit_cost == Decimal("10.50")
        assert item.total_cost == Decimal("21.00")
        assert item.matched_status == MatchStatus.MATCHED
        assert item.confidence == 0.95
        assert outcome.items_auto_matched == 1

    def test_payment_falls_back_to_issue_date(self, outcome, store):
        """dup without dVenc is due on the issue date."""
        (payment,) = store.get_receiving_payments(outcome.receiving.id)

        assert payment.installment == 1
        assert payment.due_date == "2024-05-01"
        assert payment.amount == Decimal("21.00")

    def test_document_stored_and_linked(self, outcome, store, sample_simple_nfe):
        """The XML is stored as an invoice_xml document linked to the receiving."""
        (document,) = store.get_linked_documents("receivings", outcome.receiving.id)

        assert document.type == "invoice_xml"
        assert document.file_name == "nfe_simple.xml"
        assert document.file_path == f"nfe/{outcome.receiving.id}/nfe_simple.xml"
        assert document.mime_type == "application/xml"
        assert document.file_size == len(sample_simple_nfe.encode("utf-8"))
        assert document.uploaded_by == USER_ID
        assert document.metadata["access_key"] == SIMPLE_ACCESS_KEY
        assert document.metadata["content_hash"] == compute_content_hash(sample_simple_nfe)

    def test_audit_event(self, outcome, store):
        """One import_nfe_xml entry describing the import."""
        (entry,) = store.get_audit_logs(TENANT_ID, record_id=outcome.receiving.id)

        assert entry.action == "import_nfe_xml"
        assert entry.table_name == "receivings"
        assert entry.store_id == STORE_ID
        assert entry.user_id == USER_ID
        assert entry.old_data is None
        assert entry.new_data == {
            "file_name": "nfe_simple.xml",
            "invoice_key": SIMPLE_ACCESS_KEY,
            "total_items": 1,
            "auto_matched": 1,
            "supplier_matched": True,
        }

    def test_outcome_to_dict(self, outcome):
        data = outcome.to_dict()

        assert data["receiving_id"] == outcome.receiving.id
        assert data["status"] == "draft"
        assert data["items"][0]["matched_status"] == "matched"
        assert data["draft"]["total_amount"] == "21.00"
        assert data["parse_warnings"] == []
        assert data["matches"] == [
            {
                "sequence": 1,
                "item_id": outcome.items[0].item_id,
                "signal": "barcode",
                "confidence": 0.95,
                "detail": "barcode 7891000100103",
            }
        ]

    def test_outcome_matches_skip_pending_lines(self, service, context, sample_simple_nfe):
        """Lines left pending contribute no match entry."""
        outcome = import_document(service, context, sample_simple_nfe, "nfe_simple.xml")

        assert outcome.items_auto_matched == 0
        assert outcome.matches == []
        assert outcome.to_dict()["matches"] == []


class TestFullDocument:
    """Two lines, two installments, barcode and name matches."""

    def test_mixed_matching(self, service, context, store, sample_full_nfe):
        """Line 1 matches by barcode, line 2 by normalized name."""
        by_barcode = store.add_catalog_item(TENANT_ID, "Arroz T1", barcode="7891000100103")
        by_name = store.add_catalog_item(TENANT_ID, "FEIJAO CARIOCA 1KG")

        outcome = import_document(service, context, sample_full_nfe)

        first, second = outcome.items
        assert (first.item_id, first.confidence) == (by_barcode.id, 0.95)
        assert (second.item_id, second.confidence) == (by_name.id, 0.90)
        assert outcome.items_auto_matched == 2
        assert outcome.supplier_matched is False

    def test_unmatched_lines_pending(self, service, context, store, sample_full_nfe):
        outcome = import_document(service, context, sample_full_nfe)

        assert [i.matched_status for i in outcome.items] == [MatchStatus.PENDING] * 2
        assert all(i.item_id is None and i.confidence is None for i in outcome.items)

    def test_installments(self, service, context, store, sample_full_nfe):
        """Raw '001'/'002' become 1/2 and keep their due dates."""
        outcome = import_document(service, context, sample_full_nfe)

        payments = store.get_receiving_payments(outcome.receiving.id)

        assert [(p.installment, p.due_date) for p in payments] == [
            (1, "2024-06-10"),
            (2, "2024-07-10"),
        ]

    def test_derived_subtotal(self, service, context, store, sample_full_nfe):
        """410 - 15 - 0 + 5 = 400."""
        outcome = import_document(service, context, sample_full_nfe)

        assert outcome.receiving.total_products == Decimal("400.00")
        assert outcome.receiving.freight_amount == Decimal("15.00")
        assert outcome.receiving.discount_amount == Decimal("5.00")

    def test_billed_location(self, service, context, store, sample_full_nfe):
        outcome = import_document(service, context, sample_full_nfe, billed="store-hq")

        assert outcome.receiving.store_id == STORE_ID
        assert outcome.receiving.billed_store_id == "store-hq"


class TestIdempotency:
    """One receiving per access key and tenant."""

    def test_second_import_rejected(self, service, context, store, sample_full_nfe):
        """Re-importing names the first receiving and its status."""
        first = import_document(service, context, sample_full_nfe)

        with pytest.raises(DuplicateInvoiceError) as exc_info:
            import_document(service, context, sample_full_nfe)

        error = exc_info.value
        assert error.existing_id == first.receiving.id
        assert error.existing_status == "draft"
        assert error.invoice_key == FULL_ACCESS_KEY
        assert str(error) == (
            f"NF-e already imported (key {FULL_ACCESS_KEY}). "
            f"Existing receiving: {first.receiving.id} (draft)"
        )
        assert store.count_receivings_by_status(TENANT_ID) == {"draft": 1}

    def test_other_tenant_not_blocked(self, service, store, sample_full_nfe, context):
        import_document(service, context, sample_full_nfe)
        other = import_document(service, TenantContext("org-2", "user-2"), sample_full_nfe)

        assert other.receiving.tenant_id == "org-2"

    def test_race_caught_by_constraint(self, service, context, store, sample_full_nfe, monkeypatch):
        """A duplicate that slips past the pre-check is still rejected."""
        first = import_document(service, context, sample_full_nfe)
        monkeypatch.setattr(service, "_check_duplicate", lambda tenant_id, invoice_key: None)

        with pytest.raises(DuplicateInvoiceError) as exc_info:
            import_document(service, context, sample_full_nfe)

        assert exc_info.value.existing_id == first.receiving.id
        assert len(store.get_audit_logs(TENANT_ID)) == 1
        assert store.count_receivings_by_status(TENANT_ID) == {"draft": 1}

    def test_keyless_documents_not_blocked(self, service, context, store):
        """Without a key each upload produces an independent draft."""
        document = build_nfe(None)

        first = import_document(service, context, document)
        second = import_document(service, context, document)

        assert first.receiving.id != second.receiving.id
        assert first.receiving.invoice_key is None
        assert first.parse_warnings == [WARNING_NO_ACCESS_KEY]
        assert store.count_receivings_by_status(TENANT_ID) == {"draft": 2}


class TestUnreadable:
    """Documents that cannot be read stop before any write."""

    def test_garbage_rejected(self, service, context, store):
        with pytest.raises(UnreadableDocumentError) as exc_info:
            import_document(service, context, "not an invoice")

        assert WARNING_NO_ACCESS_KEY in exc_info.value.warnings
        assert str(exc_info.value).startswith("Could not parse NF-e XML: ")
        assert store.count_receivings_by_status(TENANT_ID) == {}

    def test_keyless_with_structural_warning(self, service, context, store):
        with pytest.raises(UnreadableDocumentError) as exc_info:
            import_document(service, context, build_nfe(None, total=""))

        assert exc_info.value.warnings == [WARNING_NO_ACCESS_KEY, WARNING_NO_TOTALS]

    def test_keyed_document_with_warnings_imported(self, service, context, store):
        """With a key, missing totals are only a warning."""
        outcome = import_document(service, context, build_nfe(FULL_ACCESS_KEY, total=""))

        assert outcome.parse_warnings == [WARNING_NO_TOTALS]
        assert outcome.receiving.total_amount == Decimal("0")

    def test_is_ingestion_error(self, service, context):
        with pytest.raises(IngestionError):
            import_document(service, context, "")


class TestSupplierResolution:
    """Supplier lookup by CNPJ."""

    def test_formatted_cnpj_matches(self, service, context, supplier, sample_simple_nfe):
        """Formatting in the document is stripped before lookup."""
        outcome = import_document(service, context, sample_simple_nfe)

        assert outcome.receiving.supplier_id == supplier.id

    def test_ambiguous_supplier_left_unset(self, service, context, store, sample_simple_nfe):
        store.add_supplier(TENANT_ID, "A", tax_id=SUPPLIER_CNPJ)
        store.add_supplier(TENANT_ID, "B", tax_id=SUPPLIER_CNPJ)

        outcome = import_document(service, context, sample_simple_nfe)

        assert outcome.receiving.supplier_id is None
        assert outcome.supplier_matched is False

    def test_inactive_supplier_ignored(self, service, context, store, sample_simple_nfe):
        store.add_supplier(TENANT_ID, "A", tax_id=SUPPLIER_CNPJ, is_active=False)

        outcome = import_document(service, context, sample_simple_nfe)

        assert outcome.receiving.supplier_id is None


class TestPaymentPlan:
    """Installment number and due-date fallbacks."""

    def test_due_date_falls_back_to_processing_date(self, service, context, store):
        """No dVenc and no issue date: processing date is used."""
        document = build_nfe(
            FULL_ACCESS_KEY,
            ide="<ide><nNF>1</nNF></ide>",
            cobr="<cobr><dup><nDup>1</nDup><vDup>10.00</vDup></dup></cobr>",
        )

        outcome = import_document(service, context, document)

        (payment,) = store.get_receiving_payments(outcome.receiving.id)
        assert payment.due_date == date(2024, 6, 30).isoformat()

    def test_non_numeric_installment_defaults_to_one(self, service, context, store):
        document = build_nfe(
            FULL_ACCESS_KEY,
            cobr="<cobr><dup><nDup>A</nDup><dVenc>2024-06-01</dVenc><vDup>10.00</vDup></dup></cobr>",
        )

        outcome = import_document(service, context, document)

        (payment,) = store.get_receiving_payments(outcome.receiving.id)
        assert payment.installment == 1

    def test_no_installments_no_payments(self, service, context, store):
        outcome = import_document(service, context, build_nfe(FULL_ACCESS_KEY))

        assert store.get_receiving_payments(outcome.receiving.id) == []


class TestLineCosts:
    """Receiving item cost fields."""

    def test_total_cost_computed_when_missing(self, service, context, store):
        """vProd zero: total cost is quantity x unit price."""
        dets = (
            "<det><prod><xProd>Item</xProd><qCom>2</qCom>"
            "<vUnCom>3.00</vUnCom></prod></det>"
        )
        outcome = import_document(service, context, build_nfe(FULL_ACCESS_KEY, dets=dets))

        assert outcome.items[0].total_cost == Decimal("6.00")


class TestPersistenceFailures:
    """Store failures surface as PersistenceError and leave nothing behind."""

    def test_failing_step_rolls_back(self, service, context, store, sample_full_nfe, monkeypatch):
        """A failure in the payment step discards receiving and items."""
        monkeypatch.setattr(
            store,
            "add_receiving_payments",
            MagicMock(side_effect=sqlite3.OperationalError("disk I/O error")),
        )

        with pytest.raises(PersistenceError) as exc_info:
            import_document(service, context, sample_full_nfe)

        assert exc_info.value.step == "create_payments"
        assert str(exc_info.value) == "Failed to create payment plan: disk I/O error"
        assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)
        assert store.find_receiving_by_invoice_key(TENANT_ID, FULL_ACCESS_KEY) is None
        assert store.count_receivings_by_status(TENANT_ID) == {}

    def test_audit_failure_rolls_back(self, service, context, store, sample_full_nfe, monkeypatch):
        monkeypatch.setattr(
            store, "insert_audit_log", MagicMock(side_effect=StoreError("audit unavailable"))
        )

        with pytest.raises(PersistenceError) as exc_info:
            import_document(service, context, sample_full_nfe)

        assert exc_info.value.step == "audit"
        assert store.count_receivings_by_status(TENANT_ID) == {}

    def test_duplicate_check_failure(self, service, context, store, sample_full_nfe, monkeypatch):
        monkeypatch.setattr(
            store,
            "find_receiving_by_invoice_key",
            MagicMock(side_effect=sqlite3.OperationalError("database is locked")),
        )

        with pytest.raises(PersistenceError) as exc_info:
            import_document(service, context, sample_full_nfe)

        assert exc_info.value.step == "duplicate_check"
        assert str(exc_info.value).startswith("Failed to check for an existing receiving")

    def test_retry_after_failure_succeeds(
        self, service, context, store, sample_full_nfe, monkeypatch
    ):
        """After a rolled-back import the same document imports cleanly."""
        original = store.add_receiving_payments
        monkeypatch.setattr(
            store, "add_receiving_payments", MagicMock(side_effect=StoreError("boom"))
        )
        with pytest.raises(PersistenceError):
            import_document(service, context, sample_full_nfe)

        monkeypatch.setattr(store, "add_receiving_payments", original)
        outcome = import_document(service, context, sample_full_nfe)

        assert outcome.receiving.invoice_key == FULL_ACCESS_KEY


class TestAuditToggle:
    """Audit emission can be switched off."""

    def test_audit_disabled(self, store, context, temp_db, sample_full_nfe):
        config = Config(ingestion=IngestionConfig(audit_enabled=False), state_db_path=temp_db)
        service = InvoiceIngestionService(store, config)

        import_document(service, context, sample_full_nfe)

        assert store.get_audit_logs(TENANT_ID) == []

    def test_custom_audit_logger(self, store, config, context, sample_full_nfe):
        audit = MagicMock()
        service = InvoiceIngestionService(store, config, audit=audit)

        outcome = import_document(service, context, sample_full_nfe, file_name="x.xml")

        audit.emit.assert_called_once()
        kwargs = audit.emit.call_args.kwargs
        assert kwargs["action"] == "import_nfe_xml"
        assert kwargs["record_id"] == outcome.receiving.id
        assert kwargs["new_data"]["file_name"] == "x.xml"
        assert kwargs["new_data"]["total_items"] == 2
