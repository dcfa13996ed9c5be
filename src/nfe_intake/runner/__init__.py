"""
CLI runner module.

Provides commands:
- init-config: Write a default config file
- parse: Parse an NF-e XML and show the draft
- import: Import an NF-e XML as a receiving draft
- load-catalog: Load supplier/item master data
- status: Receiving counts by status
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
