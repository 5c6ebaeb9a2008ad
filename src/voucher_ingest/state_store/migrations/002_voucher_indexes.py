"""
Migration 002: Lookup indexes for vouchers and participants.
"""

import sqlite3

VERSION = 2
NAME = "voucher_indexes"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create report lookup indexes."""
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_vouchers_company_date ON vouchers(company_id, date)"
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_vouchers_date ON vouchers(date)")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_voucher_participants_employee_id "
        "ON voucher_participants(employee_id)"
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Drop the lookup indexes."""
    conn.execute("DROP INDEX IF EXISTS idx_voucher_participants_employee_id")
    conn.execute("DROP INDEX IF EXISTS idx_vouchers_date")
    conn.execute("DROP INDEX IF EXISTS idx_vouchers_company_date")
