"""
Parsed NF-e document (SSOT).

These records are the only representation of a parsed invoice.
The parser fills them; the draft projection and the ingestion service
read them. Everything that may be missing from a document is Optional,
so an absent element is a None and a warning, never a parse failure.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

# Recorded when neither chNFe nor the infNFe Id attribute carries a key
WARNING_NO_ACCESS_KEY = "Access key (44 digits) not found in document"


@dataclass
class Issuer:
    """Supplier that issued the invoice (emitente)."""

    tax_id: str  # CNPJ, digits only
    legal_name: str
    trade_name: Optional[str] = None
    state_registration: Optional[str] = None  # IE
    state: Optional[str] = None  # UF
    municipality: Optional[str] = None


@dataclass
class Recipient:
    """Entity billed by the invoice (destinatário).

    Either tax_id (business) or personal_tax_id (individual) is present.
    """

    tax_id: Optional[str]  # CNPJ
    personal_tax_id: Optional[str]  # CPF
    legal_name: str
    state: Optional[str] = None


@dataclass
class InvoiceLine:
    """One purchased line (det/prod)."""

    sequence: int  # 1-based, extraction order
    supplier_code: str
    description: str
    unit_of_measure: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal
    tax_classification_code: Optional[str] = None  # NCM
    operation_code: Optional[str] = None  # CFOP
    gtin: Optional[str] = None  # cEAN


@dataclass
class Installment:
    """One duplicata from the billing section (cobr/dup)."""

    number: str  # raw nDup, may be non-numeric
    amount: Decimal
    due_date: Optional[str] = None  # YYYY-MM-DD


@dataclass
class Totals:
    """Invoice totals (total/ICMSTot)."""

    products: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    freight: Decimal = Decimal("0")
    other_charges: Decimal = Decimal("0")
    icms: Decimal = Decimal("0")
    ipi: Decimal = Decimal("0")
    pis: Decimal = Decimal("0")
    cofins: Decimal = Decimal("0")
    invoice_total: Decimal = Decimal("0")


@dataclass
class ParsedInvoice:
    """
    Result of parsing one NF-e document.

    Parsing never aborts: whatever could not be read is listed in
    `warnings`. access_key, when present, identifies the legal invoice
    across the whole system.
    """

    access_key: Optional[str] = None
    number: Optional[str] = None
    series: Optional[str] = None
    issue_date: Optional[str] = None  # YYYY-MM-DD
    operation_nature: Optional[str] = None
    issuer: Optional[Issuer] = None
    recipient: Optional[Recipient] = None
    lines: list[InvoiceLine] = field(default_factory=list)
    totals: Optional[Totals] = None
    installments: list[Installment] = field(default_factory=list)
    notes: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def is_readable(self) -> bool:
        """False when the key is missing AND a structural warning was raised.

        The missing-key warning on its own does not count: a key-less document
        with readable content is still imported, just without deduplication.
        """
        if self.access_key:
            return True
        return all(warning == WARNING_NO_ACCESS_KEY for warning in self.warnings)

    def to_dict(self) -> dict:
        """Serialize to a JSON-safe dictionary."""
        return {
            "access_key": self.access_key,
            "number": self.number,
            "series": self.series,
            "issue_date": self.issue_date,
            "operation_nature": self.operation_nature,
            "issuer": (
                {
                    "tax_id": self.issuer.tax_id,
                    "legal_name": self.issuer.legal_name,
                    "trade_name": self.issuer.trade_name,
                    "state_registration": self.issuer.state_registration,
                    "state": self.issuer.state,
                    "municipality": self.issuer.municipality,
                }
                if self.issuer
                else None
            ),
            "recipient": (
                {
                    "tax_id": self.recipient.tax_id,
                    "personal_tax_id": self.recipient.personal_tax_id,
                    "legal_name": self.recipient.legal_name,
                    "state": self.recipient.state,
                }
                if self.recipient
                else None
            ),
            "lines": [
                {
                    "sequence": line.sequence,
                    "supplier_code": line.supplier_code,
                    "description": line.description,
                    "tax_classification_code": line.tax_classification_code,
                    "operation_code": line.operation_code,
                    "unit_of_measure": line.unit_of_measure,
                    "quantity": str(line.quantity),
                    "unit_price": str(line.unit_price),
                    "line_total": str(line.line_total),
                    "gtin": line.gtin,
                }
                for line in self.lines
            ],
            "totals": (
                {
                    "products": str(self.totals.products),
                    "discount": str(self.totals.discount),
                    "freight": str(self.totals.freight),
                    "other_charges": str(self.totals.other_charges),
                    "icms": str(self.totals.icms),
                    "ipi": str(self.totals.ipi),
                    "pis": str(self.totals.pis),
                    "cofins": str(self.totals.cofins),
                    "invoice_total": str(self.totals.invoice_total),
                }
                if self.totals
                else None
            ),
            "installments": [
                {
                    "number": inst.number,
                    "due_date": inst.due_date,
                    "amount": str(inst.amount),
                }
                for inst in self.installments
            ],
            "notes": self.notes,
            "warnings": list(self.warnings),
        }
