"""
Receiving draft projection.

Pure, side-effect free transform of a ParsedInvoice into the shape the
receiving workflow needs. No I/O, no lookups: supplier and catalog
resolution belong to the ingestion service.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from .invoice import ParsedInvoice

ZERO = Decimal("0")


@dataclass
class DraftLine:
    """A receiving line as proposed by the invoice."""

    sequence: int
    code: str
    description: str
    unit: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    ncm: Optional[str] = None
    cfop: Optional[str] = None
    ean: Optional[str] = None


@dataclass
class DraftInstallment:
    """A payment plan entry, raw as read from the invoice."""

    installment: str
    amount: Decimal
    due_date: Optional[str] = None  # fallback resolved by the ingestion service


@dataclass
class ReceivingDraft:
    """Receiving draft proposed from one invoice."""

    invoice_key: Optional[str]
    invoice_number: Optional[str]
    invoice_series: Optional[str]
    issue_date: Optional[str]
    supplier_tax_id: Optional[str]
    supplier_name: Optional[str]
    total_amount: Decimal
    products_subtotal: Decimal
    freight: Decimal = ZERO
    discount: Decimal = ZERO
    other_charges: Decimal = ZERO
    items: list[DraftLine] = field(default_factory=list)
    payment_plan: list[DraftInstallment] = field(default_factory=list)
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        """Serialize to a JSON-safe dictionary."""
        return {
            "invoice_key": self.invoice_key,
            "invoice_number": self.invoice_number,
            "invoice_series": self.invoice_series,
            "issue_date": self.issue_date,
            "supplier_tax_id": self.supplier_tax_id,
            "supplier_name": self.supplier_name,
            "total_amount": str(self.total_amount),
            "products_subtotal": str(self.products_subtotal),
            "freight": str(self.freight),
            "discount": str(self.discount),
            "other_charges": str(self.other_charges),
            "items": [
                {
                    "sequence": item.sequence,
                    "code": item.code,
                    "description": item.description,
                    "unit": item.unit,
                    "quantity": str(item.quantity),
                    "unit_price": str(item.unit_price),
                    "total_price": str(item.total_price),
                    "ncm": item.ncm,
                    "cfop": item.cfop,
                    "ean": item.ean,
                }
                for item in self.items
            ],
            "payment_plan": [
                {
                    "installment": p.installment,
                    "due_date": p.due_date,
                    "amount": str(p.amount),
                }
                for p in self.payment_plan
            ],
            "notes": self.notes,
        }


def compute_products_subtotal(
    total_amount: Decimal, freight: Decimal, other_charges: Decimal, discount: Decimal
) -> Decimal:
    """
    Merchandise-only subtotal, reconstructed from the invoice total.

    total - freight - other charges + discount. ICMSTot/vProd is NOT used:
    drafts must agree with the grand total the supplier will bill.
    """
    return total_amount - freight - other_charges + discount


def to_draft(invoice: ParsedInvoice) -> ReceivingDraft:
    """Project a parsed invoice onto a receiving draft."""
    totals = invoice.totals
    total_amount = totals.invoice_total if totals else ZERO
    freight = totals.freight if totals else ZERO
    discount = totals.discount if totals else ZERO
    other_charges = totals.other_charges if totals else ZERO

    return ReceivingDraft(
        invoice_key=invoice.access_key,
        invoice_number=invoice.number,
        invoice_series=invoice.series,
        issue_date=invoice.issue_date,
        supplier_tax_id=invoice.issuer.tax_id if invoice.issuer else None,
        supplier_name=invoice.issuer.legal_name if invoice.issuer else None,
        total_amount=total_amount,
        products_subtotal=compute_products_subtotal(
            total_amount, freight, other_charges, discount
        ),
        freight=freight,
        discount=discount,
        other_charges=other_charges,
        items=[
            DraftLine(
                sequence=line.sequence,
                code=line.supplier_code,
                description=line.description,
                unit=line.unit_of_measure,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line.line_total,
                ncm=line.tax_classification_code,
                cfop=line.operation_code,
                ean=line.gtin,
            )
            for line in invoice.lines
        ],
        payment_plan=[
            DraftInstallment(
                installment=inst.number,
                due_date=inst.due_date,
                amount=inst.amount,
            )
            for inst in invoice.installments
        ],
        notes=invoice.notes,
    )
