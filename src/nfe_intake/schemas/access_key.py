"""
NF-e access key helpers (CRITICAL).

The 44-digit access key (chave de acesso) is THE identity of a legal
invoice and the idempotency key for ingestion. Layout:

    cUF(2) AAMM(4) CNPJ(14) mod(2) serie(3) nNF(9) tpEmis(1) cNF(8) cDV(1)

The key is never validated against SEFAZ; the check digit is exposed for
display and diagnostics only.
"""

import hashlib
import re
from dataclasses import dataclass
from typing import Optional

ACCESS_KEY_LENGTH = 44

_ACCESS_KEY_RE = re.compile(rf"^\d{{{ACCESS_KEY_LENGTH}}}$")


def is_access_key(value: Optional[str]) -> bool:
    """True if value is exactly 44 digits."""
    return bool(value) and bool(_ACCESS_KEY_RE.match(value))


def compute_check_digit(first_43: str) -> int:
    """
    Compute the modulo-11 check digit over the first 43 digits.

    Weights 2..9 cycle from the rightmost digit; remainders 0 and 1
    give digit 0.
    """
    if len(first_43) != ACCESS_KEY_LENGTH - 1 or not first_43.isdigit():
        raise ValueError(f"expected 43 digits, got: {first_43!r}")

    total = 0
    weight = 2
    for digit in reversed(first_43):
        total += int(digit) * weight
        weight = 2 if weight == 9 else weight + 1

    remainder = total % 11
    return 0 if remainder < 2 else 11 - remainder


@dataclass(frozen=True)
class AccessKeyComponents:
    """Fields encoded in an access key."""

    key: str
    state_code: str  # cUF (IBGE code)
    year_month: str  # AAMM
    issuer_tax_id: str  # CNPJ
    model: str  # 55 = NF-e, 65 = NFC-e
    series: str
    number: str
    emission_type: str
    random_code: str
    check_digit: int

    @property
    def has_valid_check_digit(self) -> bool:
        """True if the last digit matches the modulo-11 check digit."""
        return compute_check_digit(self.key[:43]) == self.check_digit


def parse_access_key(key: str) -> AccessKeyComponents:
    """
    Split an access key into its components.

    Raises:
        ValueError: If key is not 44 digits
    """
    if not is_access_key(key):
        raise ValueError(f"access key must be {ACCESS_KEY_LENGTH} digits, got: {key!r}")

    return AccessKeyComponents(
        key=key,
        state_code=key[0:2],
        year_month=key[2:6],
        issuer_tax_id=key[6:20],
        model=key[20:22],
        series=key[22:25],
        number=key[25:34],
        emission_type=key[34:35],
        random_code=key[35:43],
        check_digit=int(key[43]),
    )


def compute_content_hash(content: str) -> str:
    """
    Compute SHA256 of the uploaded document text (UTF-8).

    Returns:
        64-character lowercase hex string
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
