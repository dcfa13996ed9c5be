"""
Schema migration runner.

Each migration lives in a module named NNN_<name>.py next to this file and
exposes VERSION, NAME, upgrade(conn) and optionally downgrade(conn).
Applied versions are recorded in the schema_migrations table. Upgrades are
idempotent DDL, so a version is recorded only once its upgrade succeeded.
"""

import importlib
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

MIGRATION_GLOB = "[0-9][0-9][0-9]_*.py"


@dataclass(frozen=True)
class Migration:
    """A loaded migration module."""

    version: int
    name: str
    upgrade: Callable[[sqlite3.Connection], None]
    downgrade: Optional[Callable[[sqlite3.Connection], None]] = None

    @property
    def label(self) -> str:
        return f"{self.version:03d}_{self.name}"


def get_all_migrations() -> list[Migration]:
    """Every migration of this package, oldest first."""
    found = []
    for path in Path(__file__).parent.glob(MIGRATION_GLOB):
        module = importlib.import_module(f"{__package__}.{path.stem}")
        found.append(
            Migration(
                version=module.VERSION,
                name=module.NAME,
                upgrade=module.upgrade,
                downgrade=getattr(module, "downgrade", None),
            )
        )
    found.sort(key=lambda m: m.version)

    versions = [m.version for m in found]
    if len(versions) != len(set(versions)):
        raise RuntimeError(f"Duplicate migration versions: {versions}")
    return found


class MigrationRunner:
    """Brings one SQLite connection up to the latest schema version."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        with self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    applied_at TEXT NOT NULL
                )
            """
            )

    def get_applied_versions(self) -> set[int]:
        """Versions recorded as applied."""
        return {
            row[0] for row in self.conn.execute("SELECT version FROM schema_migrations")
        }

    def current_version(self) -> int:
        """Highest applied version, 0 for a fresh database."""
        row = self.conn.execute("SELECT MAX(version) FROM schema_migrations").fetchone()
        return row[0] or 0

    def pending(self) -> list[Migration]:
        """Migrations not yet applied, oldest first."""
        applied = self.get_applied_versions()
        return [m for m in get_all_migrations() if m.version not in applied]

    def apply_migration(self, migration: Migration) -> None:
        """Run one upgrade, then record its version."""
        logger.info(f"Applying migration {migration.label}")
        applied_at = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        try:
            with self.conn:
                migration.upgrade(self.conn)
                self.conn.execute(
                    "INSERT INTO schema_migrations (version, name, applied_at) VALUES (?, ?, ?)",
                    (migration.version, migration.name, applied_at),
                )
        except sqlite3.Error as e:
            logger.error(f"Migration {migration.label} failed: {e}")
            raise

    def rollback_migration(self, migration: Migration) -> None:
        """Run one downgrade and forget the version."""
        if migration.downgrade is None:
            raise NotImplementedError(f"Migration {migration.label} has no downgrade")

        logger.info(f"Rolling back migration {migration.label}")
        with self.conn:
            migration.downgrade(self.conn)
            self.conn.execute(
                "DELETE FROM schema_migrations WHERE version = ?", (migration.version,)
            )

    def rollback_to(self, version: int) -> list[int]:
        """Downgrade every applied migration newer than `version`, newest first."""
        applied = self.get_applied_versions()
        targets = [
            m for m in reversed(get_all_migrations()) if m.version > version and m.version in applied
        ]
        for migration in targets:
            self.rollback_migration(migration)
        return [m.version for m in targets]

    def run_pending(self) -> list[int]:
        """Apply every pending migration. Returns the versions applied."""
        pending = self.pending()
        for migration in pending:
            self.apply_migration(migration)

        if pending:
            logger.info(f"Schema now at version {self.current_version()}")
        return [m.version for m in pending]
