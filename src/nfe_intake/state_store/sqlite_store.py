"""
SQLite-based state store implementation.

Tables:
- suppliers: Supplier master data (tenant-scoped)
- catalog_items: Catalog items with barcode and normalized name
- receivings: Receiving drafts, UNIQUE (tenant_id, invoice_key)
- receiving_items: One row per invoice line
- receiving_payments: Installment payment plan
- audit_logs: Append-only audit trail
- documents / document_links: Stored files (migration 001)

All reads and writes are scoped by tenant_id.
"""

import json
import sqlite3
import threading
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any

from ..extractors.normalize import normalize_name


class StoreError(Exception):
    """Raised when a store operation fails."""

    pass


class DuplicateRecordError(StoreError):
    """Raised when an insert violates a uniqueness constraint."""

    pass


class ReceivingStatus(str, Enum):
    """Lifecycle of a receiving. This core only ever creates DRAFT."""

    DRAFT = "draft"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class MatchStatus(str, Enum):
    """Catalog resolution state of a receiving line."""

    PENDING = "pending"
    MATCHED = "matched"
    IGNORED = "ignored"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _new_id() -> str:
    return str(uuid.uuid4())


def _decimal(value: Any) -> Decimal:
    return Decimal(value) if value is not None else Decimal("0")


@dataclass
class SupplierRecord:
    """Supplier master record."""

    id: str
    tenant_id: str
    name: str
    normalized_name: str
    tax_id: str | None
    personal_tax_id: str | None
    is_active: bool

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "SupplierRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            normalized_name=row["normalized_name"],
            tax_id=row["tax_id"],
            personal_tax_id=row["personal_tax_id"],
            is_active=bool(row["is_active"]),
        )


@dataclass
class CatalogItemRecord:
    """Catalog item master record."""

    id: str
    tenant_id: str
    name: str
    normalized_name: str
    sku: str | None
    barcode: str | None
    is_active: bool

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CatalogItemRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            normalized_name=row["normalized_name"],
            sku=row["sku"],
            barcode=row["barcode"],
            is_active=bool(row["is_active"]),
        )


@dataclass
class ReceivingRecord:
    """Receiving (goods-in) header."""

    id: str
    tenant_id: str
    store_id: str
    billed_store_id: str
    supplier_id: str | None
    status: ReceivingStatus
    invoice_key: str | None
    invoice_number: str | None
    invoice_series: str | None
    invoice_date: str | None
    total_products: Decimal
    freight_amount: Decimal
    discount_amount: Decimal
    other_costs: Decimal
    total_amount: Decimal
    notes: str | None
    source_type: str
    source_id: str | None
    created_by: str | None
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ReceivingRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            tenant_id=row["tenant_id"],
            store_id=row["store_id"],
            billed_store_id=row["billed_store_id"],
            supplier_id=row["supplier_id"],
            status=ReceivingStatus(row["status"]),
            invoice_key=row["invoice_key"],
            invoice_number=row["invoice_number"],
            invoice_series=row["invoice_series"],
            invoice_date=row["invoice_date"],
            total_products=_decimal(row["total_products"]),
            freight_amount=_decimal(row["freight_amount"]),
            discount_amount=_decimal(row["discount_amount"]),
            other_costs=_decimal(row["other_costs"]),
            total_amount=_decimal(row["total_amount"]),
            notes=row["notes"],
            source_type=row["source_type"],
            source_id=row["source_id"],
            created_by=row["created_by"],
            created_at=row["created_at"],
        )


@dataclass
class ReceivingItemRecord:
    """One receiving line, matched or pending."""

    id: str
    tenant_id: str
    receiving_id: str
    sequence: int
    supplier_item_code: str | None
    supplier_item_name: str
    ncm: str | None
    cfop: str | None
    unit: str | None
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    item_id: str | None
    matched_status: MatchStatus
    confidence: float | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ReceivingItemRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            tenant_id=row["tenant_id"],
            receiving_id=row["receiving_id"],
            sequence=row["sequence"],
            supplier_item_code=row["supplier_item_code"],
            supplier_item_name=row["supplier_item_name"],
            ncm=row["ncm"],
            cfop=row["cfop"],
            unit=row["unit"],
            quantity=_decimal(row["quantity"]),
            unit_cost=_decimal(row["unit_cost"]),
            total_cost=_decimal(row["total_cost"]),
            item_id=row["item_id"],
            matched_status=MatchStatus(row["matched_status"]),
            confidence=row["confidence"],
        )


@dataclass
class ReceivingPaymentRecord:
    """One installment of a receiving's payment plan."""

    id: str
    tenant_id: str
    receiving_id: str
    installment: int
    due_date: str
    amount: Decimal

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ReceivingPaymentRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            tenant_id=row["tenant_id"],
            receiving_id=row["receiving_id"],
            installment=row["installment"],
            due_date=row["due_date"],
            amount=_decimal(row["amount"]),
        )


@dataclass
class AuditLogRecord:
    """Immutable audit trail entry."""

    id: int
    tenant_id: str
    store_id: str | None
    user_id: str | None
    action: str
    table_name: str | None
    record_id: str | None
    old_data: dict | None
    new_data: dict | None
    source_type: str
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "AuditLogRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            tenant_id=row["tenant_id"],
            store_id=row["store_id"],
            user_id=row["user_id"],
            action=row["action"],
            table_name=row["table_name"],
            record_id=row["record_id"],
            old_data=json.loads(row["old_data"]) if row["old_data"] else None,
            new_data=json.loads(row["new_data"]) if row["new_data"] else None,
            source_type=row["source_type"],
            created_at=row["created_at"],
        )


@dataclass
class DocumentRecord:
    """Stored file metadata."""

    id: str
    tenant_id: str
    type: str
    file_name: str
    file_path: str
    file_size: int
    mime_type: str
    metadata: dict
    uploaded_by: str | None
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "DocumentRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            tenant_id=row["tenant_id"],
            type=row["type"],
            file_name=row["file_name"],
            file_path=row["file_path"],
            file_size=row["file_size"],
            mime_type=row["mime_type"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            uploaded_by=row["uploaded_by"],
            created_at=row["created_at"],
        )


class StateStore:
    """
    SQLite-based record store for receiving ingestion.

    Provides tenant-scoped persistence of:
    - Supplier and catalog master data
    - Receiving drafts, lines and payment plans
    - Stored documents and their links
    - Audit trail

    Each method runs in its own transaction unless called inside
    `atomic()`, in which case all writes share one transaction.
    The atomic connection is thread-local.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str, run_migrations: bool = True):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
            run_migrations: Whether to run pending migrations (default True)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._init_db()
        if run_migrations:
            self._run_migrations()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions.

        Joins the enclosing atomic() transaction when there is one.
        """
        active = getattr(self._local, "conn", None)
        if active is not None:
            yield active
            return

        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        Run every store call in the block as one transaction.

        Commits on success, rolls back everything on any exception.
        Nested atomic() blocks join the outer one.
        """
        if getattr(self._local, "conn", None) is not None:
            yield
            return

        conn = self._get_connection()
        self._local.conn = conn
        try:
            yield
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._local.conn = None
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            # Schema version tracking
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS suppliers (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    normalized_name TEXT NOT NULL,
                    tax_id TEXT,  -- CNPJ, digits only
                    personal_tax_id TEXT,  -- CPF, digits only
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS catalog_items (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    normalized_name TEXT NOT NULL,
                    sku TEXT,
                    barcode TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                )
            """
            )

            # invoice_key NULLs never collide: key-less uploads stay independent
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS receivings (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    store_id TEXT NOT NULL,
                    billed_store_id TEXT NOT NULL,
                    supplier_id TEXT,
                    status TEXT NOT NULL,
                    invoice_key TEXT,
                    invoice_number TEXT,
                    invoice_series TEXT,
                    invoice_date TEXT,
                    total_products TEXT NOT NULL,
                    freight_amount TEXT NOT NULL,
                    discount_amount TEXT NOT NULL,
                    other_costs TEXT NOT NULL,
                    total_amount TEXT NOT NULL,
                    notes TEXT,
                    source_type TEXT NOT NULL,
                    source_id TEXT,
                    created_by TEXT,
                    created_at TEXT NOT NULL,
                    UNIQUE (tenant_id, invoice_key),
                    FOREIGN KEY (supplier_id) REFERENCES suppliers(id)
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS receiving_items (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    receiving_id TEXT NOT NULL,
                    sequence INTEGER NOT NULL,
                    supplier_item_code TEXT,
                    supplier_item_name TEXT NOT NULL,
                    ncm TEXT,
                    cfop TEXT,
                    unit TEXT,
                    quantity TEXT NOT NULL,
                    unit_cost TEXT NOT NULL,
                    total_cost TEXT NOT NULL,
                    item_id TEXT,
                    matched_status TEXT NOT NULL,
                    confidence REAL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (receiving_id) REFERENCES receivings(id),
                    FOREIGN KEY (item_id) REFERENCES catalog_items(id),
                    CHECK ((matched_status = 'matched') = (item_id IS NOT NULL))
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS receiving_payments (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    receiving_id TEXT NOT NULL,
                    installment INTEGER NOT NULL,
                    due_date TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (receiving_id) REFERENCES receivings(id)
                )
            """
            )

            # Append-only: no UPDATE/DELETE methods exist for this table
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS audit_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id TEXT NOT NULL,
                    store_id TEXT,
                    user_id TEXT,
                    action TEXT NOT NULL,
                    table_name TEXT,
                    record_id TEXT,
                    old_data TEXT,  -- JSON
                    new_data TEXT,  -- JSON
                    source_type TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """
            )

            # Create indexes
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_suppliers_tax_id ON suppliers(tenant_id, tax_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_catalog_items_barcode "
                "ON catalog_items(tenant_id, barcode)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_receiving_items_receiving "
                "ON receiving_items(receiving_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_receiving_payments_receiving "
                "ON receiving_payments(receiving_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_audit_logs_record ON audit_logs(record_id)"
            )

            # Set schema version
            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,)
            )

    def _run_migrations(self) -> None:
        """Run pending database migrations."""
        from .migrations import MigrationRunner

        conn = self._get_connection()
        try:
            runner = MigrationRunner(conn)
            runner.run_pending()
        finally:
            conn.close()

    # Supplier methods

    def add_supplier(
        self,
        tenant_id: str,
        name: str,
        tax_id: str | None = None,
        personal_tax_id: str | None = None,
        is_active: bool = True,
    ) -> SupplierRecord:
        """Insert a supplier. Tax ids are stored as given (digits only expected)."""
        supplier_id = _new_id()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO suppliers
                (id, tenant_id, name, normalized_name, tax_id, personal_tax_id, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    supplier_id,
                    tenant_id,
                    name,
                    normalize_name(name),
                    tax_id,
                    personal_tax_id,
                    int(is_active),
                    _now(),
                ),
            )
            row = conn.execute("SELECT * FROM suppliers WHERE id = ?", (supplier_id,)).fetchone()
            return SupplierRecord.from_row(row)

    def find_active_suppliers_by_tax_id(
        self, tenant_id: str, tax_id: str, limit: int = 2
    ) -> list[SupplierRecord]:
        """Active suppliers whose CNPJ matches exactly."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM suppliers
                WHERE tenant_id = ? AND tax_id = ? AND is_active = 1
                ORDER BY rowid
                LIMIT ?
            """,
                (tenant_id, tax_id, limit),
            ).fetchall()
            return [SupplierRecord.from_row(row) for row in rows]

    # Catalog methods

    def add_catalog_item(
        self,
        tenant_id: str,
        name: str,
        barcode: str | None = None,
        sku: str | None = None,
        is_active: bool = True,
    ) -> CatalogItemRecord:
        """Insert a catalog item; normalized_name is derived from name."""
        item_id = _new_id()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO catalog_items
                (id, tenant_id, name, normalized_name, sku, barcode, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    item_id,
                    tenant_id,
                    name,
                    normalize_name(name),
                    sku,
                    barcode,
                    int(is_active),
                    _now(),
                ),
            )
            row = conn.execute("SELECT * FROM catalog_items WHERE id = ?", (item_id,)).fetchone()
            return CatalogItemRecord.from_row(row)

    def find_active_items_by_barcodes(
        self, tenant_id: str, barcodes: Iterable[str]
    ) -> list[CatalogItemRecord]:
        """All active catalog items whose barcode is in `barcodes` (one query)."""
        wanted = sorted(set(barcodes))
        if not wanted:
            return []

        placeholders = ", ".join("?" for _ in wanted)
        with self._transaction() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM catalog_items
                WHERE tenant_id = ? AND is_active = 1 AND barcode IN ({placeholders})
                ORDER BY rowid
            """,
                (tenant_id, *wanted),
            ).fetchall()
            return [CatalogItemRecord.from_row(row) for row in rows]

    def list_active_items(self, tenant_id: str, limit: int) -> list[CatalogItemRecord]:
        """Bounded set of active catalog items, oldest first."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM catalog_items
                WHERE tenant_id = ? AND is_active = 1
                ORDER BY rowid
                LIMIT ?
            """,
                (tenant_id, limit),
            ).fetchall()
            return [CatalogItemRecord.from_row(row) for row in rows]

    # Receiving methods

    def create_receiving(
        self,
        tenant_id: str,
        store_id: str,
        billed_store_id: str,
        supplier_id: str | None,
        invoice_key: str | None,
        invoice_number: str | None,
        invoice_series: str | None,
        invoice_date: str | None,
        total_products: Decimal,
        freight_amount: Decimal,
        discount_amount: Decimal,
        other_costs: Decimal,
        total_amount: Decimal,
        notes: str | None,
        source_type: str,
        source_id: str | None = None,
        created_by: str | None = None,
        status: ReceivingStatus = ReceivingStatus.DRAFT,
    ) -> ReceivingRecord:
        """
        Insert a receiving.

        Raises:
            DuplicateRecordError: If (tenant_id, invoice_key) already exists
        """
        receiving_id = _new_id()
        with self._transaction() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO receivings
                    (id, tenant_id, store_id, billed_store_id, supplier_id, status,
                     invoice_key, invoice_number, invoice_series, invoice_date,
                     total_products, freight_amount, discount_amount, other_costs, total_amount,
                     notes, source_type, source_id, created_by, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        receiving_id,
                        tenant_id,
                        store_id,
                        billed_store_id,
                        supplier_id,
                        status.value,
                        invoice_key,
                        invoice_number,
                        invoice_series,
                        invoice_date,
                        str(total_products),
                        str(freight_amount),
                        str(discount_amount),
                        str(other_costs),
                        str(total_amount),
                        notes,
                        source_type,
                        source_id,
                        created_by,
                        _now(),
                    ),
                )
            except sqlite3.IntegrityError as e:
                if "UNIQUE" in str(e):
                    raise DuplicateRecordError(
                        f"receiving with invoice_key {invoice_key} already exists"
                    ) from e
                raise
            row = conn.execute("SELECT * FROM receivings WHERE id = ?", (receiving_id,)).fetchone()
            return ReceivingRecord.from_row(row)

    def get_receiving(self, receiving_id: str) -> ReceivingRecord | None:
        """Get a receiving by ID."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM receivings WHERE id = ?", (receiving_id,)).fetchone()
            return ReceivingRecord.from_row(row) if row else None

    def find_receiving_by_invoice_key(
        self, tenant_id: str, invoice_key: str
    ) -> ReceivingRecord | None:
        """Get the receiving created for an access key, if any."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM receivings WHERE tenant_id = ? AND invoice_key = ? LIMIT 1",
                (tenant_id, invoice_key),
            ).fetchone()
            return ReceivingRecord.from_row(row) if row else None

    def count_receivings_by_status(self, tenant_id: str) -> dict[str, int]:
        """Receiving counts per status for one tenant."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS n FROM receivings WHERE tenant_id = ? GROUP BY status",
                (tenant_id,),
            ).fetchall()
            return {row["status"]: row["n"] for row in rows}

    # Receiving item methods

    def add_receiving_item(
        self,
        tenant_id: str,
        receiving_id: str,
        sequence: int,
        supplier_item_code: str | None,
        supplier_item_name: str,
        ncm: str | None,
        cfop: str | None,
        unit: str | None,
        quantity: Decimal,
        unit_cost: Decimal,
        total_cost: Decimal,
        item_id: str | None = None,
        matched_status: MatchStatus = MatchStatus.PENDING,
        confidence: float | None = None,
    ) -> ReceivingItemRecord:
        """Insert one receiving line."""
        record_id = _new_id()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO receiving_items
                (id, tenant_id, receiving_id, sequence, supplier_item_code, supplier_item_name,
                 ncm, cfop, unit, quantity, unit_cost, total_cost, item_id, matched_status,
                 confidence, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    record_id,
                    tenant_id,
                    receiving_id,
                    sequence,
                    supplier_item_code,
                    supplier_item_name,
                    ncm,
                    cfop,
                    unit,
                    str(quantity),
                    str(unit_cost),
                    str(total_cost),
                    item_id,
                    matched_status.value,
                    confidence,
                    _now(),
                ),
            )
            row = conn.execute(
                "SELECT * FROM receiving_items WHERE id = ?", (record_id,)
            ).fetchone()
            return ReceivingItemRecord.from_row(row)

    def get_receiving_items(self, receiving_id: str) -> list[ReceivingItemRecord]:
        """Lines of a receiving in document order."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM receiving_items WHERE receiving_id = ? ORDER BY sequence",
                (receiving_id,),
            ).fetchall()
            return [ReceivingItemRecord.from_row(row) for row in rows]

    # Payment methods

    def add_receiving_payments(
        self,
        tenant_id: str,
        receiving_id: str,
        payments: list[tuple[int, str, Decimal]],
    ) -> list[ReceivingPaymentRecord]:
        """
        Insert a payment plan.

        Args:
            payments: (installment, due_date, amount) tuples, in order
        """
        ids = [_new_id() for _ in payments]
        now = _now()
        with self._transaction() as conn:
            conn.executemany(
                """
                INSERT INTO receiving_payments
                (id, tenant_id, receiving_id, installment, due_date, amount, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                [
                    (payment_id, tenant_id, receiving_id, installment, due_date, str(amount), now)
                    for payment_id, (installment, due_date, amount) in zip(ids, payments)
                ],
            )
        return self.get_receiving_payments(receiving_id)

    def get_receiving_payments(self, receiving_id: str) -> list[ReceivingPaymentRecord]:
        """Payment plan of a receiving."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM receiving_payments WHERE receiving_id = ? "
                "ORDER BY installment, rowid",
                (receiving_id,),
            ).fetchall()
            return [ReceivingPaymentRecord.from_row(row) for row in rows]

    # Document methods

    def add_document(
        self,
        tenant_id: str,
        doc_type: str,
        file_name: str,
        file_path: str,
        file_size: int,
        mime_type: str,
        metadata: dict[str, Any] | None = None,
        uploaded_by: str | None = None,
    ) -> DocumentRecord:
        """Insert a stored document record."""
        document_id = _new_id()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO documents
                (id, tenant_id, type, file_name, file_path, file_size, mime_type, metadata,
                 uploaded_by, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    document_id,
                    tenant_id,
                    doc_type,
                    file_name,
                    file_path,
                    file_size,
                    mime_type,
                    json.dumps(metadata or {}),
                    uploaded_by,
                    _now(),
                ),
            )
            row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
            return DocumentRecord.from_row(row)

    def link_document(
        self, tenant_id: str, document_id: str, linked_table: str, linked_id: str
    ) -> None:
        """Link a stored document to a record of another table."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO document_links
                (id, tenant_id, document_id, linked_table, linked_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """,
                (_new_id(), tenant_id, document_id, linked_table, linked_id, _now()),
            )

    def get_linked_documents(self, linked_table: str, linked_id: str) -> list[DocumentRecord]:
        """Documents linked to a record."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT d.* FROM documents d
                JOIN document_links l ON l.document_id = d.id
                WHERE l.linked_table = ? AND l.linked_id = ?
                ORDER BY l.rowid
            """,
                (linked_table, linked_id),
            ).fetchall()
            return [DocumentRecord.from_row(row) for row in rows]

    # Audit methods

    def insert_audit_log(
        self,
        tenant_id: str,
        action: str,
        table_name: str | None = None,
        record_id: str | None = None,
        old_data: dict[str, Any] | None = None,
        new_data: dict[str, Any] | None = None,
        store_id: str | None = None,
        user_id: str | None = None,
        source_type: str = "user",
    ) -> int:
        """Append an audit log entry. Returns the entry ID."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO audit_logs
                (tenant_id, store_id, user_id, action, table_name, record_id,
                 old_data, new_data, source_type, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    tenant_id,
                    store_id,
                    user_id,
                    action,
                    table_name,
                    record_id,
                    json.dumps(old_data) if old_data is not None else None,
                    json.dumps(new_data) if new_data is not None else None,
                    source_type,
                    _now(),
                ),
            )
            return cursor.lastrowid or 0

    def get_audit_logs(
        self, tenant_id: str, record_id: str | None = None
    ) -> list[AuditLogRecord]:
        """Audit entries for a tenant, optionally for one record."""
        query = "SELECT * FROM audit_logs WHERE tenant_id = ?"
        params: list[Any] = [tenant_id]
        if record_id is not None:
            query += " AND record_id = ?"
            params.append(record_id)
        query += " ORDER BY id"

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
            return [AuditLogRecord.from_row(row) for row in rows]
