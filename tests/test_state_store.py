"""Tests for state store."""

import sqlite3
from decimal import Decimal

import pytest

from voucher_ingest.state_store import StateStore, UploadStatus
from voucher_ingest.state_store.migrations import MigrationRunner, get_all_migrations


def insert_voucher(uow, number="S/001", fingerprint="f" * 64, upload_id=None):
    return uow.insert_voucher(
        voucher_number=number,
        date_iso="2024-04-01",
        total_amount=Decimal("1180"),
        currency="INR",
        company_id=None,
        upload_id=upload_id,
        raw_original={"Voucher_Number": number},
        raw_unique={"Voucher_Number": number},
        dedupe_hash=fingerprint,
    )


class TestStateStore:
    """Tests for SQLite state store."""

    def test_init_creates_db(self, temp_db):
        """Initializing creates database file."""
        StateStore(temp_db)
        assert temp_db.exists()

    def test_init_creates_tables(self, store):
        """All required tables are created."""
        conn = store._get_connection()
        try:
            tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
            table_names = [t[0] for t in tables]

            for table in (
                "uploads",
                "companies",
                "employees",
                "vouchers",
                "voucher_items",
                "voucher_participants",
                "migrations",
            ):
                assert table in table_names
        finally:
            conn.close()

    def test_reopen_is_idempotent(self, temp_db):
        StateStore(temp_db)
        store = StateStore(temp_db)
        assert store.count_rows("vouchers") == 0

    def test_count_rows_rejects_unknown_table(self, store):
        with pytest.raises(ValueError):
            store.count_rows("sqlite_master")


class TestMigrations:
    """Tests for versioned migrations."""

    def test_all_migrations_applied(self, store):
        conn = store._get_connection()
        try:
            runner = MigrationRunner(conn)
            assert runner.get_applied_versions() == {m.version for m in get_all_migrations()}
            assert runner.get_pending() == []
        finally:
            conn.close()

    def test_item_type_column_added(self, store):
        conn = store._get_connection()
        try:
            columns = [row[1] for row in conn.execute("PRAGMA table_info(voucher_items)")]
            assert "item_type" in columns
        finally:
            conn.close()

    def test_migrations_sorted_and_named(self):
        migrations = get_all_migrations()
        assert [m.version for m in migrations] == [1, 2, 3]
        assert migrations[0].name == "voucher_item_type"
        assert migrations[2].name == "upload_file_hash"

    def test_file_hash_migration_on_older_database(self, temp_db):
        """Databases whose uploads table predates file_hash get the column."""
        conn = sqlite3.connect(temp_db)
        conn.execute(
            """
            CREATE TABLE uploads (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                filename TEXT NOT NULL,
                original_name TEXT,
                path TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'queued',
                message TEXT,
                processed_rows INTEGER NOT NULL DEFAULT 0,
                total_rows INTEGER NOT NULL DEFAULT 0,
                errors TEXT NOT NULL DEFAULT '[]',
                raw_json_path TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                processed_at TEXT
            )
        """
        )
        conn.commit()
        conn.close()

        store = StateStore(temp_db)
        upload_id = store.create_upload("a.xlsx", "/tmp/a.xlsx", file_hash="cd" * 32)
        assert store.get_upload(upload_id).file_hash == "cd" * 32

    def test_skip_migrations(self, temp_db):
        store = StateStore(temp_db, run_migrations=False)
        conn = store._get_connection()
        try:
            columns = [row[1] for row in conn.execute("PRAGMA table_info(voucher_items)")]
            assert "item_type" not in columns
        finally:
            conn.close()

    def test_migrate_down_and_up(self, store):
        conn = store._get_connection()
        try:
            runner = MigrationRunner(conn)
            runner.migrate_to(1)
            assert runner.get_current_version() == 1
            indexes = [
                row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='index'")
            ]
            assert "idx_vouchers_date" not in indexes

            runner.migrate_to(2)
            assert runner.get_current_version() == 2
        finally:
            conn.close()


class TestUnitOfWork:
    """Tests for the atomic write scope."""

    def test_commit(self, store):
        with store.unit_of_work() as uow:
            voucher_id = insert_voucher(uow)
            uow.insert_item(voucher_id, "LOCAL SALE", Decimal("1000"), item_type="ledger")

        assert store.count_rows("vouchers") == 1
        items = store.get_voucher_items(voucher_id)
        assert items[0]["unit_price"] == "1000"
        assert items[0]["quantity"] == 1
        assert items[0]["item_type"] == "ledger"

    def test_rollback_on_error(self, store):
        with pytest.raises(RuntimeError):
            with store.unit_of_work() as uow:
                insert_voucher(uow)
                raise RuntimeError("boom")

        assert store.count_rows("vouchers") == 0

    def test_constraint_violation_rolls_back_whole_scope(self, store):
        with store.unit_of_work() as uow:
            insert_voucher(uow, number="S/001", fingerprint="a" * 64)

        with pytest.raises(sqlite3.IntegrityError):
            with store.unit_of_work() as uow:
                uow.insert_entity("companies", "Beta", "beta")
                insert_voucher(uow, number="S/001", fingerprint="b" * 64)

        assert store.count_rows("vouchers") == 1
        assert store.count_rows("companies") == 0

    def test_after_commit_hooks(self, store):
        calls = []
        with store.unit_of_work() as uow:
            uow.on_commit(lambda: calls.append("committed"))
            assert calls == []
        assert calls == ["committed"]

    def test_after_commit_hooks_skipped_on_rollback(self, store):
        calls = []
        with pytest.raises(RuntimeError):
            with store.unit_of_work() as uow:
                uow.on_commit(lambda: calls.append("committed"))
                raise RuntimeError("boom")
        assert calls == []

    def test_entity_table_is_checked(self, store):
        with pytest.raises(ValueError):
            with store.unit_of_work() as uow:
                uow.find_entity("vouchers", "x")

    def test_find_voucher_by_fingerprint(self, store):
        with store.unit_of_work() as uow:
            insert_voucher(uow, fingerprint="c" * 64)
            assert uow.find_voucher_by_fingerprint("c" * 64)["voucher_number"] == "S/001"
            assert uow.find_voucher_by_fingerprint("d" * 64) is None


class TestUploads:
    """Tests for upload (job) rows."""

    def test_create_and_get(self, store):
        upload_id = store.create_upload("daybook.xlsx", "/tmp/daybook.xlsx", "Day Book.xlsx")
        record = store.get_upload(upload_id)

        assert record.status == UploadStatus.QUEUED
        assert record.original_name == "Day Book.xlsx"
        assert record.errors == []
        assert record.processed_rows == 0

    def test_file_hash_stored(self, store):
        upload_id = store.create_upload("a.xlsx", "/tmp/a.xlsx", file_hash="ab" * 32)
        assert store.get_upload(upload_id).file_hash == "ab" * 32

    def test_get_missing(self, store):
        assert store.get_upload(999) is None

    def test_update_respects_expected_status(self, store):
        upload_id = store.create_upload("a.xlsx", "/tmp/a.xlsx")
        before = store.update_upload(
            upload_id, expected_status={UploadStatus.PROCESSING}, status=UploadStatus.DONE
        )
        assert before.status == UploadStatus.QUEUED
        assert store.get_upload(upload_id).status == UploadStatus.QUEUED

    def test_errors_and_counters(self, store):
        upload_id = store.create_upload("a.xlsx", "/tmp/a.xlsx")
        store.append_upload_error(upload_id, "first")
        store.append_upload_error(upload_id, "second")
        store.increment_processed_rows(upload_id, 10)
        store.increment_processed_rows(upload_id, 3)

        record = store.get_upload(upload_id)
        assert record.errors == ["first", "second"]
        assert record.processed_rows == 13

    def test_list_newest_first(self, store):
        first = store.create_upload("a.xlsx", "/tmp/a.xlsx")
        second = store.create_upload("b.xlsx", "/tmp/b.xlsx")
        assert [u.id for u in store.list_uploads()] == [second, first]

    def test_stats(self, store):
        store.create_upload("a.xlsx", "/tmp/a.xlsx")
        stats = store.get_stats()
        assert stats["uploads_total"] == 1
        assert stats["uploads_queued"] == 1
        assert stats["vouchers"] == 0
