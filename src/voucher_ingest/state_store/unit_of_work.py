"""
Write scope for one voucher block.

A UnitOfWork wraps a connection that StateStore.unit_of_work() has already
put into an IMMEDIATE transaction. It exposes only the statements the
importer needs; commit and rollback stay with the store.
"""

import json
import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

logger = logging.getLogger(__name__)

ENTITY_TABLES = ("companies", "employees")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class UnitOfWork:
    """Statements of one atomic block write."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._after_commit: list[Callable[[], None]] = []

    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run callback once the surrounding transaction has committed."""
        self._after_commit.append(callback)

    def run_after_commit(self) -> None:
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            callback()

    # Entities

    def find_entity(self, table: str, normalized: str) -> sqlite3.Row | None:
        """Look up a company/employee by normalized name."""
        _check_entity_table(table)
        return self.conn.execute(
            f"SELECT id, name, normalized FROM {table} WHERE normalized = ?", (normalized,)
        ).fetchone()

    def insert_entity(
        self,
        table: str,
        name: str,
        normalized: str,
        upload_id: int | None = None,
        source: str = "upload",
    ) -> int:
        """
        Insert a company/employee row.

        Raises:
            sqlite3.IntegrityError: normalized name already taken
        """
        _check_entity_table(table)
        cursor = self.conn.execute(
            f"""
            INSERT INTO {table} (name, normalized, source, upload_id, created_at)
            VALUES (?, ?, ?, ?, ?)
        """,
            (name, normalized, source, upload_id, _now()),
        )
        return cursor.lastrowid or 0

    # Vouchers

    def find_voucher_by_fingerprint(self, dedupe_hash: str) -> sqlite3.Row | None:
        return self.conn.execute(
            "SELECT id, voucher_number FROM vouchers WHERE dedupe_hash = ?", (dedupe_hash,)
        ).fetchone()

    def insert_voucher(
        self,
        voucher_number: str,
        date_iso: str,
        total_amount: Decimal,
        currency: str,
        company_id: int | None,
        upload_id: int | None,
        raw_original: dict[str, Any],
        raw_unique: dict[str, Any],
        dedupe_hash: str,
    ) -> int:
        """Insert the voucher header row. Returns the voucher ID."""
        cursor = self.conn.execute(
            """
            INSERT INTO vouchers
            (voucher_number, date, total_amount, currency, company_id, upload_id,
             raw_original, raw_unique, dedupe_hash, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                voucher_number,
                date_iso,
                str(total_amount),
                currency,
                company_id,
                upload_id,
                json.dumps(raw_original),
                json.dumps(raw_unique),
                dedupe_hash,
                _now(),
            ),
        )
        return cursor.lastrowid or 0

    def insert_item(
        self,
        voucher_id: int,
        description: str,
        amount: Decimal,
        item_type: str = "product",
        quantity: int = 1,
    ) -> int:
        cursor = self.conn.execute(
            """
            INSERT INTO voucher_items
            (voucher_id, description, quantity, unit_price, amount, item_type, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
            (voucher_id, description, quantity, str(amount), str(amount), item_type, _now()),
        )
        return cursor.lastrowid or 0

    def insert_participant(
        self,
        voucher_id: int,
        employee_id: int,
        staff_name: str,
        role: str = "Dr",
        confidence: float = 1.0,
    ) -> int:
        cursor = self.conn.execute(
            """
            INSERT INTO voucher_participants
            (voucher_id, employee_id, staff_name, role, confidence, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """,
            (voucher_id, employee_id, staff_name, role, confidence, _now()),
        )
        return cursor.lastrowid or 0


def _check_entity_table(table: str) -> None:
    if table not in ENTITY_TABLES:
        raise ValueError(f"Unknown entity table: {table}")
