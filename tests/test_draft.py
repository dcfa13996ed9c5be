"""Tests for the receiving draft projection."""

from decimal import Decimal

from fixtures import FULL_ACCESS_KEY, build_nfe

from nfe_intake.extractors import parse_nfe
from nfe_intake.schemas import compute_products_subtotal, to_draft
from nfe_intake.schemas.invoice import ParsedInvoice


class TestProductsSubtotal:
    """The subtotal is reconstructed from the invoice total."""

    def test_formula(self):
        """120 - 10 - 5 + 0 = 105."""
        assert compute_products_subtotal(
            Decimal("120"), Decimal("10"), Decimal("5"), Decimal("0")
        ) == Decimal("105")

    def test_discount_added_back(self):
        assert compute_products_subtotal(
            Decimal("95"), Decimal("0"), Decimal("0"), Decimal("5")
        ) == Decimal("100")

    def test_ignores_declared_products_total(self):
        """vProd is not used even when it disagrees."""
        total = (
            "<total><ICMSTot><vProd>999.99</vProd><vFrete>10.00</vFrete>"
            "<vOutro>5.00</vOutro><vDesc>0.00</vDesc><vNF>120.00</vNF></ICMSTot></total>"
        )
        draft = to_draft(parse_nfe(build_nfe(FULL_ACCESS_KEY, total=total)))

        assert draft.total_amount == Decimal("120.00")
        assert draft.products_subtotal == Decimal("105.00")
        assert draft.freight == Decimal("10.00")
        assert draft.other_charges == Decimal("5.00")


class TestToDraft:
    """Projection of a full document."""

    def test_header(self, sample_full_nfe):
        """Header fields map onto the draft."""
        draft = to_draft(parse_nfe(sample_full_nfe))

        assert draft.invoice_key == FULL_ACCESS_KEY
        assert draft.invoice_number == "1234"
        assert draft.invoice_series == "1"
        assert draft.issue_date == "2024-05-10"
        assert draft.supplier_tax_id == "12345678000190"
        assert draft.supplier_name == "Distribuidora Alimentos Ltda"
        assert draft.total_amount == Decimal("410.00")
        assert draft.products_subtotal == Decimal("400.00")
        assert draft.discount == Decimal("5.00")
        assert draft.notes == "Pedido de compra 4521"

    def test_lines(self, sample_full_nfe):
        """Lines keep order and codes."""
        items = to_draft(parse_nfe(sample_full_nfe)).items

        assert [item.sequence for item in items] == [1, 2]
        assert items[0].code == "A-001"
        assert items[0].unit == "FD"
        assert items[0].ncm == "10063021"
        assert items[0].cfop == "5102"
        assert items[0].ean == "7891000100103"
        assert items[0].total_price == Decimal("255.00")
        assert items[1].ean is None

    def test_payment_plan_raw(self, sample_full_nfe):
        """Installments stay raw; no fallback is applied here."""
        plan = to_draft(parse_nfe(sample_full_nfe)).payment_plan

        assert [(p.installment, p.due_date, p.amount) for p in plan] == [
            ("001", "2024-06-10", Decimal("205.00")),
            ("002", "2024-07-10", Decimal("205.00")),
        ]

    def test_missing_due_date_stays_none(self, sample_simple_nfe):
        plan = to_draft(parse_nfe(sample_simple_nfe)).payment_plan
        assert plan[0].due_date is None

    def test_without_totals_all_zero(self):
        """Missing totals yield zero money fields."""
        draft = to_draft(ParsedInvoice(access_key=FULL_ACCESS_KEY))

        assert draft.total_amount == Decimal("0")
        assert draft.products_subtotal == Decimal("0")
        assert draft.freight == Decimal("0")
        assert draft.supplier_tax_id is None
        assert draft.items == []

    def test_to_dict(self, sample_full_nfe):
        data = to_draft(parse_nfe(sample_full_nfe)).to_dict()

        assert data["total_amount"] == "410.00"
        assert data["items"][1]["description"] == "Feijão Carioca 1kg"
        assert data["payment_plan"][0]["installment"] == "001"
