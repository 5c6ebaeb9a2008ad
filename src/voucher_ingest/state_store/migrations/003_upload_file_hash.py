"""
Migration 003: Add file_hash column to uploads.

Records the SHA256 of each uploaded export so an operator can tell whether
two jobs were fed the same file. Databases created after this column joined
the base schema already have it.
"""

import sqlite3

VERSION = 3
NAME = "upload_file_hash"


def upgrade(conn: sqlite3.Connection) -> None:
    """Add file_hash column and its index."""
    cursor = conn.execute("PRAGMA table_info(uploads)")
    columns = [row[1] for row in cursor.fetchall()]

    if "file_hash" not in columns:
        conn.execute("ALTER TABLE uploads ADD COLUMN file_hash TEXT")

    conn.execute("CREATE INDEX IF NOT EXISTS idx_uploads_file_hash ON uploads(file_hash)")


def downgrade(conn: sqlite3.Connection) -> None:
    """Drop the index; the column stays."""
    conn.execute("DROP INDEX IF EXISTS idx_uploads_file_hash")
