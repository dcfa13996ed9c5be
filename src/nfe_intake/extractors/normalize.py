"""
Numeric, date and text normalizers for NF-e values.
"""

import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Optional

_LEADING_DIGITS = re.compile(r"^\s*(\d+)")


def parse_decimal(value: Optional[str]) -> Decimal:
    """
    Convert a locale-formatted decimal string to Decimal.

    Accepts both comma and dot as the fractional separator.
    Missing or unparsable input yields Decimal("0").
    """
    if not value:
        return Decimal("0")
    try:
        parsed = Decimal(value.strip().replace(",", "."))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not parsed.is_finite():
        return Decimal("0")
    return parsed


def truncate_to_date(value: str) -> str:
    """
    Truncate a date or date-time string to YYYY-MM-DD.

    No timezone conversion is applied: "2024-03-15T23:30:00-03:00"
    stays on 2024-03-15.
    """
    return value[:10]


def digits_only(value: Optional[str]) -> str:
    """Strip every non-digit character (CNPJ/CPF formatting)."""
    if not value:
        return ""
    return re.sub(r"\D", "", value)


def normalize_name(value: Optional[str]) -> str:
    """
    Normalize an item name for catalog matching.

    Lower-cases, strips diacritics and trims:
        >>> normalize_name("  Feijão Carioca 1kg ")
        'feijao carioca 1kg'
    """
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.strip()


def parse_installment_number(value: Optional[str]) -> int:
    """
    Parse the installment number of a duplicata.

    Takes the leading digits of the raw value ("001" -> 1, "2/3" -> 2).
    Falls back to 1 when there are no leading digits or the value is zero.
    """
    if not value:
        return 1
    match = _LEADING_DIGITS.match(value)
    if not match:
        return 1
    return int(match.group(1)) or 1
