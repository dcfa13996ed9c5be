"""
NF-e document extraction.

Provides:
- Tag/block extractor over raw markup (scalar, block, all_blocks)
- Numeric/date/text normalizers
- NfeParser: composes both into a ParsedInvoice
"""

from .markup import all_blocks, attribute_digits, block, scalar
from .nfe_parser import NfeParser, parse_nfe
from .normalize import (
    digits_only,
    normalize_name,
    parse_decimal,
    parse_installment_number,
    truncate_to_date,
)

__all__ = [
    "NfeParser",
    "parse_nfe",
    "scalar",
    "block",
    "all_blocks",
    "attribute_digits",
    "parse_decimal",
    "truncate_to_date",
    "digits_only",
    "normalize_name",
    "parse_installment_number",
]
