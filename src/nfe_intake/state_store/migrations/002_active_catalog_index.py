"""
Migration 002: Index active catalog items per tenant.

Serves the bounded candidate query used by name matching
(tenant, active flag, insertion order).
"""

import sqlite3

VERSION = 2
NAME = "active_catalog_index"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create the active-catalog index."""
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_catalog_items_active "
        "ON catalog_items(tenant_id, is_active)"
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Drop the active-catalog index."""
    conn.execute("DROP INDEX IF EXISTS idx_catalog_items_active")
