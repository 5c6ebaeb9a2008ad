"""
State Store (SQLite-based).

Persistent DB for:
- Upload jobs and their progress counters
- Companies and employees referenced by vouchers
- Vouchers, voucher items and voucher participants

Enforces uniqueness on voucher number, voucher fingerprint and normalized
entity names.
"""

from .sqlite_store import StateStore, UploadRecord, UploadStatus, utcnow_iso
from .unit_of_work import ENTITY_TABLES, UnitOfWork

__all__ = [
    "ENTITY_TABLES",
    "StateStore",
    "UnitOfWork",
    "UploadRecord",
    "UploadStatus",
    "utcnow_iso",
]
