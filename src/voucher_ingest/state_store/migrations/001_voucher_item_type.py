"""
Migration 001: Add item_type column to voucher_items.

Account lines are sub-typed as product, tax or ledger so reports can
separate tax postings from goods without re-parsing descriptions.
"""

import sqlite3

VERSION = 1
NAME = "voucher_item_type"


def upgrade(conn: sqlite3.Connection) -> None:
    """Add item_type column and its index."""
    cursor = conn.execute("PRAGMA table_info(voucher_items)")
    columns = [row[1] for row in cursor.fetchall()]

    if "item_type" not in columns:
        conn.execute(
            "ALTER TABLE voucher_items ADD COLUMN item_type TEXT NOT NULL DEFAULT 'product'"
        )

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_voucher_items_item_type ON voucher_items(item_type)"
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Drop the index; the column stays (no DROP COLUMN on older SQLite)."""
    conn.execute("DROP INDEX IF EXISTS idx_voucher_items_item_type")
