"""Test fixtures and utilities."""

from pathlib import Path

import pytest

from voucher_ingest.config import ImporterConfig
from voucher_ingest.services import JobTracker, TransactionalImporter
from voucher_ingest.state_store import StateStore

from fixtures import end_to_end_block, sheet_rows, write_workbook


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"


@pytest.fixture
def store(temp_db) -> StateStore:
    """Fresh migrated state store."""
    return StateStore(temp_db)


@pytest.fixture
def tracker(store) -> JobTracker:
    return JobTracker(store)


@pytest.fixture
def importer_config() -> ImporterConfig:
    return ImporterConfig()


@pytest.fixture
def importer(store, tracker, importer_config) -> TransactionalImporter:
    return TransactionalImporter(store, importer_config, tracker)


@pytest.fixture
def sample_export(tmp_path) -> Path:
    """An .xlsx export holding the reference sales voucher."""
    return write_workbook(tmp_path / "daybook.xlsx", sheet_rows(end_to_end_block()))
