"""Catalog matching: resolve invoice lines to catalog items."""

from nfe_intake.matching.engine import CatalogMatcher, LineMatch

__all__ = ["CatalogMatcher", "LineMatch"]
