"""
Versioned schema migrations for the SQLite state store.

Migrations run in version order and are recorded in the `schema_migrations` table.
"""

from .runner import MigrationRunner, get_all_migrations

__all__ = ["MigrationRunner", "get_all_migrations"]
