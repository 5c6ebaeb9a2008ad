"""
SQLite-based state store implementation.

Tables:
- uploads: Import jobs (status, counters, error list)
- companies / employees: Resolved entities, unique per normalized name
- vouchers: One row per voucher block, unique per number and fingerprint
- voucher_items: Account lines of a voucher
- voucher_participants: Staff lines of a voucher
"""

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT = 30.0


def utcnow_iso() -> str:
    """Current UTC time as an ISO timestamp with a Z suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class UploadStatus(str, Enum):
    """Lifecycle of an import job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class UploadRecord:
    """Record of an uploaded export and its import job."""

    id: int
    filename: str
    original_name: str | None
    path: str
    status: UploadStatus
    message: str | None
    processed_rows: int
    total_rows: int
    errors: list[str] = field(default_factory=list)
    raw_json_path: str | None = None
    file_hash: str | None = None
    created_at: str = ""
    updated_at: str = ""
    processed_at: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "UploadRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            filename=row["filename"],
            original_name=row["original_name"],
            path=row["path"],
            status=UploadStatus(row["status"]),
            message=row["message"],
            processed_rows=row["processed_rows"],
            total_rows=row["total_rows"],
            errors=json.loads(row["errors"]) if row["errors"] else [],
            raw_json_path=row["raw_json_path"],
            file_hash=row["file_hash"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            processed_at=row["processed_at"],
        )


class StateStore:
    """
    SQLite-based state store for the ingestion pipeline.

    Provides persistent tracking of:
    - Upload jobs and their progress
    - Companies and employees
    - Vouchers with their items and participants

    Every public method opens its own connection, so one store instance may
    be shared between job threads. Voucher writes go through unit_of_work().
    """

    SCHEMA_VERSION = 1

    COUNTABLE_TABLES = (
        "companies",
        "employees",
        "vouchers",
        "voucher_items",
        "voucher_participants",
    )

    def __init__(
        self,
        db_path: Path | str,
        run_migrations: bool = True,
        busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
    ):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
            run_migrations: Whether to run pending migrations (default True)
            busy_timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.busy_timeout = busy_timeout
        self._init_db()
        if run_migrations:
            self._run_migrations()

    def _get_connection(self, autocommit: bool = False) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout,
            isolation_level=None if autocommit else "",
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        """
        Open a write scope holding the database write lock.

        Everything done through the yielded UnitOfWork commits together or
        not at all. After-commit hooks registered on it run only when the
        commit succeeded.
        """
        conn = self._get_connection(autocommit=True)
        uow = UnitOfWork(conn)
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield uow
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()
        uow.run_after_commit()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """
            )

            # Import jobs
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS uploads (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    filename TEXT NOT NULL,
                    original_name TEXT,
                    path TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'queued',
                    message TEXT,
                    processed_rows INTEGER NOT NULL DEFAULT 0,
                    total_rows INTEGER NOT NULL DEFAULT 0,
                    errors TEXT NOT NULL DEFAULT '[]',  -- JSON array
                    raw_json_path TEXT,
                    file_hash TEXT,  -- SHA256 of the uploaded file
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    processed_at TEXT
                )
            """
            )

            for table in ("companies", "employees"):
                conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        normalized TEXT NOT NULL UNIQUE,
                        source TEXT NOT NULL DEFAULT 'upload',
                        upload_id INTEGER,
                        created_at TEXT NOT NULL,
                        FOREIGN KEY (upload_id) REFERENCES uploads(id)
                    )
                """
                )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS vouchers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    voucher_number TEXT NOT NULL UNIQUE,
                    date TEXT NOT NULL,
                    total_amount TEXT NOT NULL,
                    currency TEXT NOT NULL,
                    company_id INTEGER,
                    upload_id INTEGER,
                    raw_original TEXT NOT NULL,  -- JSON
                    raw_unique TEXT NOT NULL,  -- JSON
                    dedupe_hash TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (company_id) REFERENCES companies(id),
                    FOREIGN KEY (upload_id) REFERENCES uploads(id)
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS voucher_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    voucher_id INTEGER NOT NULL,
                    description TEXT NOT NULL,
                    quantity INTEGER NOT NULL DEFAULT 1,
                    unit_price TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (voucher_id) REFERENCES vouchers(id) ON DELETE CASCADE
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS voucher_participants (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    voucher_id INTEGER NOT NULL,
                    employee_id INTEGER NOT NULL,
                    staff_name TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'Dr',
                    confidence REAL NOT NULL DEFAULT 1.0,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (voucher_id) REFERENCES vouchers(id) ON DELETE CASCADE,
                    FOREIGN KEY (employee_id) REFERENCES employees(id)
                )
            """
            )

            conn.execute("CREATE INDEX IF NOT EXISTS idx_uploads_status ON uploads(status)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_vouchers_upload_id ON vouchers(upload_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_voucher_items_voucher_id "
                "ON voucher_items(voucher_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_voucher_participants_voucher_id "
                "ON voucher_participants(voucher_id)"
            )

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

    # Upload methods

    def create_upload(
        self,
        filename: str,
        path: str,
        original_name: str | None = None,
        file_hash: str | None = None,
    ) -> int:
        """Create a queued upload record. Returns the upload ID."""
        now = utcnow_iso()

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO uploads
                (filename, original_name, path, status, file_hash, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                (filename, original_name, path, UploadStatus.QUEUED.value, file_hash, now, now),
            )
            return cursor.lastrowid or 0

    def get_upload(self, upload_id: int) -> UploadRecord | None:
        """Get upload by ID."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM uploads WHERE id = ?", (upload_id,)).fetchone()
            return UploadRecord.from_row(row) if row else None

    def list_uploads(self, limit: int = 20) -> list[UploadRecord]:
        """Most recent uploads first."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM uploads ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
            return [UploadRecord.from_row(row) for row in rows]

    def update_upload(
        self,
        upload_id: int,
        expected_status: set[UploadStatus] | None = None,
        **fields: Any,
    ) -> UploadRecord | None:
        """
        Update columns of an upload in one write transaction.

        Args:
            upload_id: Upload to update
            expected_status: If given, only update when the current status
                is one of these
            **fields: Column values (errors may be passed as a list)

        Returns:
            The record as it was before the update, or None if it does not exist.
            When expected_status does not match, nothing is written and the
            unchanged record is returned; callers compare its status.
        """
        if "errors" in fields and not isinstance(fields["errors"], str):
            fields["errors"] = json.dumps(fields["errors"])
        if "status" in fields and isinstance(fields["status"], UploadStatus):
            fields["status"] = fields["status"].value
        fields["updated_at"] = utcnow_iso()

        with self._transaction(immediate=True) as conn:
            row = conn.execute("SELECT * FROM uploads WHERE id = ?", (upload_id,)).fetchone()
            if row is None:
                return None
            before = UploadRecord.from_row(row)
            if expected_status is not None and before.status not in expected_status:
                return before

            assignments = ", ".join(f"{column} = ?" for column in fields)
            conn.execute(
                f"UPDATE uploads SET {assignments} WHERE id = ?",
                (*fields.values(), upload_id),
            )
            return before

    def increment_processed_rows(self, upload_id: int, delta: int) -> bool:
        """Add delta to processed_rows. Returns False if the upload does not exist."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE uploads
                SET processed_rows = processed_rows + ?, updated_at = ?
                WHERE id = ?
            """,
                (delta, utcnow_iso(), upload_id),
            )
            return cursor.rowcount > 0

    def append_upload_error(self, upload_id: int, message: str) -> bool:
        """Append a message to the upload's error list."""
        with self._transaction(immediate=True) as conn:
            row = conn.execute("SELECT errors FROM uploads WHERE id = ?", (upload_id,)).fetchone()
            if row is None:
                return False
            errors = json.loads(row["errors"]) if row["errors"] else []
            errors.append(message)
            conn.execute(
                "UPDATE uploads SET errors = ?, updated_at = ? WHERE id = ?",
                (json.dumps(errors), utcnow_iso(), upload_id),
            )
            return True

    # Voucher read methods

    def count_rows(self, table: str, upload_id: int | None = None) -> int:
        """Row count of a pipeline table, optionally limited to one upload."""
        if table not in self.COUNTABLE_TABLES:
            raise ValueError(f"Unknown table: {table}")

        with self._transaction() as conn:
            if upload_id is None:
                row = conn.execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()
            elif table in ("voucher_items", "voucher_participants"):
                row = conn.execute(
                    f"""
                    SELECT COUNT(*) AS count FROM {table} t
                    JOIN vouchers v ON v.id = t.voucher_id
                    WHERE v.upload_id = ?
                """,
                    (upload_id,),
                ).fetchone()
            else:
                row = conn.execute(
                    f"SELECT COUNT(*) AS count FROM {table} WHERE upload_id = ?", (upload_id,)
                ).fetchone()
            return row["count"] if row else 0

    def get_voucher_by_number(self, voucher_number: str) -> dict[str, Any] | None:
        """Get voucher row (JSON payloads decoded) by voucher number."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT v.*, c.name AS company_name
                FROM vouchers v
                LEFT JOIN companies c ON c.id = v.company_id
                WHERE v.voucher_number = ?
            """,
                (voucher_number,),
            ).fetchone()
            if row is None:
                return None

            voucher = dict(row)
            voucher["raw_original"] = json.loads(voucher["raw_original"])
            voucher["raw_unique"] = json.loads(voucher["raw_unique"])
            return voucher

    def get_voucher_items(self, voucher_id: int) -> list[dict[str, Any]]:
        """Items of a voucher in insertion order."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM voucher_items WHERE voucher_id = ? ORDER BY id",
                (voucher_id,),
            ).fetchall()
            return [dict(row) for row in rows]

    def get_voucher_participants(self, voucher_id: int) -> list[dict[str, Any]]:
        """Participants of a voucher with their employee names."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT p.*, e.name AS employee_name, e.normalized AS employee_normalized
                FROM voucher_participants p
                JOIN employees e ON e.id = p.employee_id
                WHERE p.voucher_id = ?
                ORDER BY p.id
            """,
                (voucher_id,),
            ).fetchall()
            return [dict(row) for row in rows]

    def get_entity(self, table: str, normalized: str) -> dict[str, Any] | None:
        """Company or employee row by normalized name."""
        if table not in ("companies", "employees"):
            raise ValueError(f"Unknown entity table: {table}")
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT * FROM {table} WHERE normalized = ?", (normalized,)
            ).fetchone()
            return dict(row) if row else None

    # Statistics

    def get_stats(self) -> dict[str, Any]:
        """Get pipeline statistics."""
        stats: dict[str, Any] = {table: self.count_rows(table) for table in self.COUNTABLE_TABLES}

        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS count FROM uploads GROUP BY status"
            ).fetchall()
            by_status = {row["status"]: row["count"] for row in rows}

        stats["uploads_total"] = sum(by_status.values())
        for status in UploadStatus:
            stats[f"uploads_{status.value}"] = by_status.get(status.value, 0)
        return stats
