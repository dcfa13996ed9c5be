"""Catalog matching for receiving lines.

Resolves invoice lines to catalog items in two stages:
1. Barcode (cEAN): exact match against active catalog items
2. Normalized name: exact match of the normalized description against a
   bounded candidate set of active catalog items

Lookups are batched: one barcode query and at most one candidate query per
invoice, then every line is resolved in memory.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nfe_intake.extractors.normalize import normalize_name

if TYPE_CHECKING:
    from nfe_intake.config import Config
    from nfe_intake.schemas.draft import DraftLine
    from nfe_intake.state_store import CatalogItemRecord, StateStore

logger = logging.getLogger(__name__)


@dataclass
class LineMatch:
    """A line resolved to a catalog item."""

    sequence: int
    item_id: str
    signal: str
    confidence: float
    detail: str

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "sequence": self.sequence,
            "item_id": self.item_id,
            "signal": self.signal,
            "confidence": self.confidence,
            "detail": self.detail,
        }


class CatalogMatcher:
    """Match invoice lines to active catalog items of one tenant.

    Barcode beats name: a line whose barcode resolves to exactly one item is
    never compared by name. An ambiguous barcode (several active items)
    falls through to name matching.
    """

    SIGNAL_BARCODE = "barcode"
    SIGNAL_NAME = "normalized_name"

    def __init__(self, state_store: StateStore, config: Config) -> None:
        """Initialize the matcher.

        Args:
            state_store: Store holding the catalog.
            config: Application configuration.
        """
        self.store = state_store
        self.candidate_limit = config.ingestion.catalog_candidate_limit
        self.barcode_confidence = config.ingestion.barcode_confidence
        self.name_confidence = config.ingestion.name_confidence

    def match_lines(self, tenant_id: str, lines: list[DraftLine]) -> list[LineMatch | None]:
        """Resolve every line. Result is aligned with `lines` (None = pending)."""
        by_barcode = self._load_barcodes(tenant_id, lines)

        matches: list[LineMatch | None] = []
        unresolved: list[int] = []
        for index, line in enumerate(lines):
            match = self._match_barcode(line, by_barcode)
            matches.append(match)
            if match is None and line.description:
                unresolved.append(index)

        if unresolved:
            by_name = self._load_candidates(tenant_id)
            for index in unresolved:
                matches[index] = self._match_name(lines[index], by_name)

        matched = sum(1 for m in matches if m is not None)
        logger.info(f"Catalog matching: {matched}/{len(lines)} lines matched")
        return matches

    def _load_barcodes(
        self, tenant_id: str, lines: list[DraftLine]
    ) -> dict[str, list[CatalogItemRecord]]:
        barcodes = {line.ean for line in lines if line.ean}
        by_barcode: dict[str, list[CatalogItemRecord]] = defaultdict(list)
        if not barcodes:
            return by_barcode

        for item in self.store.find_active_items_by_barcodes(tenant_id, barcodes):
            by_barcode[item.barcode].append(item)
        return by_barcode

    def _load_candidates(self, tenant_id: str) -> dict[str, CatalogItemRecord]:
        by_name: dict[str, CatalogItemRecord] = {}
        for item in self.store.list_active_items(tenant_id, self.candidate_limit):
            # First candidate wins on duplicate names
            by_name.setdefault(item.normalized_name, item)
        return by_name

    def _match_barcode(
        self, line: DraftLine, by_barcode: dict[str, list[CatalogItemRecord]]
    ) -> LineMatch | None:
        if not line.ean:
            return None

        hits = by_barcode.get(line.ean, [])
        if len(hits) != 1:
            if len(hits) > 1:
                logger.debug(f"Line {line.sequence}: barcode {line.ean} is ambiguous ({len(hits)})")
            return None

        return LineMatch(
            sequence=line.sequence,
            item_id=hits[0].id,
            signal=self.SIGNAL_BARCODE,
            confidence=self.barcode_confidence,
            detail=f"barcode {line.ean}",
        )

    def _match_name(
        self, line: DraftLine, by_name: dict[str, CatalogItemRecord]
    ) -> LineMatch | None:
        normalized = normalize_name(line.description)
        if not normalized:
            return None

        item = by_name.get(normalized)
        if item is None:
            return None

        return LineMatch(
            sequence=line.sequence,
            item_id=item.id,
            signal=self.SIGNAL_NAME,
            confidence=self.name_confidence,
            detail=f"name '{normalized}'",
        )
