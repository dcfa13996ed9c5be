"""
Invoice records shared by parser, projection and ingestion.

- invoice: what the parser read from one NF-e document
- draft: the receiving draft proposed from it
- access_key: the 44-digit identity of the invoice
"""

from .access_key import (
    ACCESS_KEY_LENGTH,
    AccessKeyComponents,
    compute_check_digit,
    compute_content_hash,
    is_access_key,
    parse_access_key,
)
from .draft import (
    DraftInstallment,
    DraftLine,
    ReceivingDraft,
    compute_products_subtotal,
    to_draft,
)
from .invoice import (
    Installment,
    InvoiceLine,
    Issuer,
    ParsedInvoice,
    Recipient,
    Totals,
)

__all__ = [
    # Access key
    "ACCESS_KEY_LENGTH",
    "AccessKeyComponents",
    "compute_check_digit",
    "compute_content_hash",
    "is_access_key",
    "parse_access_key",
    # Parsed invoice
    "Installment",
    "InvoiceLine",
    "Issuer",
    "ParsedInvoice",
    "Recipient",
    "Totals",
    # Draft projection
    "DraftInstallment",
    "DraftLine",
    "ReceivingDraft",
    "compute_products_subtotal",
    "to_draft",
]
