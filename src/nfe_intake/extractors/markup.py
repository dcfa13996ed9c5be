"""
Tag/block extraction over raw NF-e markup.

This is deliberately NOT a general XML parser. NF-e documents arrive
truncated, re-encoded or wrapped (nfeProc, SOAP envelopes) often enough that
a strict parser rejects documents whose data is perfectly readable.
Lookups here are pattern-based and tolerant:

- Tag names match case-insensitively and must end at whitespace or '>'
  (so "det" never matches "detPag").
- Attributes on the opening tag are ignored.
- Matching is non-greedy: the first closing tag wins.
- No entity or namespace decoding.
- Nothing raises. A failed lookup returns None or an empty list and the
  caller decides whether that deserves a warning.
"""

import re
from functools import lru_cache
from typing import Optional


@lru_cache(maxsize=256)
def _open_tag(tag: str) -> str:
    # Self-closing tags (<cEAN/>, <cEAN />) never open a block
    return rf"<{re.escape(tag)}(?:\s[^>]*)?(?<!/)>"


@lru_cache(maxsize=256)
def _scalar_pattern(tag: str) -> re.Pattern:
    return re.compile(rf"{_open_tag(tag)}([^<]*)</{re.escape(tag)}\s*>", re.IGNORECASE)


@lru_cache(maxsize=256)
def _block_pattern(tag: str) -> re.Pattern:
    return re.compile(
        rf"{_open_tag(tag)}([\s\S]*?)</{re.escape(tag)}\s*>", re.IGNORECASE
    )


@lru_cache(maxsize=256)
def _full_block_pattern(tag: str) -> re.Pattern:
    return re.compile(
        rf"{_open_tag(tag)}[\s\S]*?</{re.escape(tag)}\s*>", re.IGNORECASE
    )


def scalar(markup: Optional[str], tag: str) -> Optional[str]:
    """
    Get the trimmed text content of the first <tag> element.

    Returns None if the element is absent, self-closing or empty.
    """
    if not markup:
        return None
    match = _scalar_pattern(tag).search(markup)
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def block(markup: Optional[str], tag: str) -> Optional[str]:
    """Get the raw inner markup of the first <tag> element."""
    if not markup:
        return None
    match = _block_pattern(tag).search(markup)
    return match.group(1) if match else None


def all_blocks(markup: Optional[str], tag: str) -> list[str]:
    """
    Get every <tag> element, open tag through close tag, in document order.

    Used for repeated elements (det, dup).
    """
    if not markup:
        return []
    return _full_block_pattern(tag).findall(markup)


def attribute_digits(
    markup: Optional[str], attribute: str, prefix: str, length: int
) -> Optional[str]:
    """
    Find `length` consecutive digits embedded in an attribute value.

    Example: attribute_digits(xml, "Id", "NFe", 44) reads the access key
    from <infNFe Id="NFe3524...">.
    """
    if not markup:
        return None
    pattern = rf'\b{re.escape(attribute)}\s*=\s*["\']{re.escape(prefix)}(\d{{{length}}})["\']'
    match = re.search(pattern, markup)
    return match.group(1) if match else None
