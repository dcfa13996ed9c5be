"""
Migration 001: Add documents and document_links tables.

Stores uploaded files (e.g. NF-e XML) and links them to the records
they support.
"""

import sqlite3

VERSION = 1
NAME = "documents"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create documents and document_links tables."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS documents (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            type TEXT NOT NULL,  -- e.g. invoice_xml
            file_name TEXT NOT NULL,
            file_path TEXT NOT NULL,
            file_size INTEGER NOT NULL,
            mime_type TEXT NOT NULL,
            metadata TEXT,  -- JSON object
            uploaded_by TEXT,
            created_at TEXT NOT NULL
        )
    """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS document_links (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            document_id TEXT NOT NULL,
            linked_table TEXT NOT NULL,
            linked_id TEXT NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY (document_id) REFERENCES documents(id)
        )
    """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_document_links_target "
        "ON document_links(linked_table, linked_id)"
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Remove documents and document_links tables."""
    conn.execute("DROP TABLE IF EXISTS document_links")
    conn.execute("DROP TABLE IF EXISTS documents")
