"""
NF-e (layout 4.00) document parser.

Composes the tag/block extractor into a ParsedInvoice:
header (ide), issuer (emit), recipient (dest), line items (det/prod),
totals (total/ICMSTot), installments (cobr/dup) and notes (infAdic).

The parser is tolerant: missing data is recorded in `warnings` and the
rest of the document is still read. It never raises on malformed input.
"""

import logging
from typing import Optional

from ..schemas.access_key import ACCESS_KEY_LENGTH, is_access_key
from ..schemas.invoice import (
    WARNING_NO_ACCESS_KEY,
    Installment,
    InvoiceLine,
    Issuer,
    ParsedInvoice,
    Recipient,
    Totals,
)
from .markup import all_blocks, attribute_digits, block, scalar
from .normalize import digits_only, parse_decimal, truncate_to_date

logger = logging.getLogger(__name__)

# Structural warnings: with no access key, any of these makes the
# document unreadable
WARNING_NO_ISSUER = "Issuer (emit) data not found"
WARNING_NO_LINES = "No line items found in document"
WARNING_NO_TOTALS = "Totals (ICMSTot) not found in document"

# cEAN placeholder for products without a barcode
NO_GTIN_VALUES = {"SEM GTIN"}

DEFAULT_UNIT = "UN"


class NfeParser:
    """
    Parse NF-e XML text into a ParsedInvoice.

    Stateless; a single instance can parse any number of documents.
    """

    def parse(self, document: str) -> ParsedInvoice:
        """Parse the full document text."""
        document = document or ""
        warnings: list[str] = []

        access_key = self._parse_access_key(document)
        if not access_key:
            warnings.append(WARNING_NO_ACCESS_KEY)

        inf_nfe = block(document, "infNFe") or document

        # Header
        ide = block(inf_nfe, "ide") or ""
        issued_at = scalar(ide, "dhEmi") or scalar(ide, "dEmi")

        # Issuer
        emit = block(inf_nfe, "emit")
        issuer = self._parse_issuer(emit) if emit else None
        if issuer is None:
            warnings.append(WARNING_NO_ISSUER)

        # Recipient (optional)
        dest = block(inf_nfe, "dest")
        recipient = self._parse_recipient(dest) if dest else None

        lines = self._parse_lines(inf_nfe)
        if not lines:
            warnings.append(WARNING_NO_LINES)

        total = block(inf_nfe, "total")
        icms_tot = block(total, "ICMSTot") if total else None
        totals = self._parse_totals(icms_tot) if icms_tot else None
        if totals is None:
            warnings.append(WARNING_NO_TOTALS)

        cobr = block(inf_nfe, "cobr")
        installments = self._parse_installments(cobr) if cobr else []

        inf_adic = block(inf_nfe, "infAdic")
        notes = scalar(inf_adic, "infCpl") if inf_adic else None

        invoice = ParsedInvoice(
            access_key=access_key,
            number=scalar(ide, "nNF"),
            series=scalar(ide, "serie"),
            issue_date=truncate_to_date(issued_at) if issued_at else None,
            operation_nature=scalar(ide, "natOp"),
            issuer=issuer,
            recipient=recipient,
            lines=lines,
            totals=totals,
            installments=installments,
            notes=notes,
            warnings=warnings,
        )

        logger.debug(
            f"Parsed NF-e key={access_key} lines={len(lines)} "
            f"installments={len(installments)} warnings={len(warnings)}"
        )
        return invoice

    def _parse_access_key(self, document: str) -> Optional[str]:
        """Read the key from <chNFe>, falling back to infNFe Id="NFe..."."""
        key = scalar(document, "chNFe")
        if is_access_key(key):
            return key
        return attribute_digits(document, "Id", "NFe", ACCESS_KEY_LENGTH)

    def _parse_issuer(self, emit: str) -> Optional[Issuer]:
        tax_id = scalar(emit, "CNPJ")
        if not tax_id:
            return None

        address = block(emit, "enderEmit") or ""
        return Issuer(
            tax_id=digits_only(tax_id),
            legal_name=scalar(emit, "xNome") or "",
            trade_name=scalar(emit, "xFant"),
            state_registration=scalar(emit, "IE"),
            state=scalar(address, "UF"),
            municipality=scalar(address, "xMun"),
        )

    def _parse_recipient(self, dest: str) -> Optional[Recipient]:
        tax_id = scalar(dest, "CNPJ")
        personal_tax_id = scalar(dest, "CPF")
        if not tax_id and not personal_tax_id:
            return None

        return Recipient(
            tax_id=digits_only(tax_id) if tax_id else None,
            personal_tax_id=digits_only(personal_tax_id) if personal_tax_id else None,
            legal_name=scalar(dest, "xNome") or "",
            state=scalar(block(dest, "enderDest"), "UF"),
        )

    def _parse_lines(self, inf_nfe: str) -> list[InvoiceLine]:
        lines: list[InvoiceLine] = []

        for det in all_blocks(inf_nfe, "det"):
            prod = block(det, "prod")
            if not prod:
                continue

            lines.append(
                InvoiceLine(
                    # Position, not nItem: stays gap-free on odd documents
                    sequence=len(lines) + 1,
                    supplier_code=scalar(prod, "cProd") or "",
                    description=scalar(prod, "xProd") or "",
                    tax_classification_code=scalar(prod, "NCM"),
                    operation_code=scalar(prod, "CFOP"),
                    unit_of_measure=scalar(prod, "uCom") or DEFAULT_UNIT,
                    quantity=parse_decimal(scalar(prod, "qCom")),
                    unit_price=parse_decimal(scalar(prod, "vUnCom")),
                    line_total=parse_decimal(scalar(prod, "vProd")),
                    gtin=self._parse_gtin(scalar(prod, "cEAN")),
                )
            )

        return lines

    def _parse_gtin(self, value: Optional[str]) -> Optional[str]:
        if not value or value.upper() in NO_GTIN_VALUES:
            return None
        return value

    def _parse_totals(self, icms_tot: str) -> Totals:
        return Totals(
            products=parse_decimal(scalar(icms_tot, "vProd")),
            discount=parse_decimal(scalar(icms_tot, "vDesc")),
            freight=parse_decimal(scalar(icms_tot, "vFrete")),
            other_charges=parse_decimal(scalar(icms_tot, "vOutro")),
            icms=parse_decimal(scalar(icms_tot, "vICMS")),
            ipi=parse_decimal(scalar(icms_tot, "vIPI")),
            pis=parse_decimal(scalar(icms_tot, "vPIS")),
            cofins=parse_decimal(scalar(icms_tot, "vCOFINS")),
            invoice_total=parse_decimal(scalar(icms_tot, "vNF")),
        )

    def _parse_installments(self, cobr: str) -> list[Installment]:
        installments = []
        for dup in all_blocks(cobr, "dup"):
            due = scalar(dup, "dVenc")
            installments.append(
                Installment(
                    number=scalar(dup, "nDup") or "",
                    due_date=truncate_to_date(due) if due else None,
                    amount=parse_decimal(scalar(dup, "vDup")),
                )
            )
        return installments


def parse_nfe(document: str) -> ParsedInvoice:
    """Parse NF-e XML text. Convenience wrapper around NfeParser."""
    return NfeParser().parse(document)
