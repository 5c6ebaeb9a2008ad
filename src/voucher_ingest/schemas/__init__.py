"""
Canonical in-memory schemas for the ingestion pipeline.

Every stage reads and writes these types; the state store persists their
dictionary form for audit.
"""

from .dedupe import (
    FINGERPRINT_LENGTH,
    block_fingerprint,
    compute_file_hash,
    compute_path_hash,
    compute_voucher_fingerprint,
)
from .uniquify import (
    CATEGORY_ACCOUNT,
    CATEGORY_PARTY,
    CATEGORY_STAFF,
    KeyCounter,
    make_block_unique,
)
from .voucher_block import DetailLine, ItemType, LineKind, VoucherBlock

__all__ = [
    # Dedupe
    "FINGERPRINT_LENGTH",
    "block_fingerprint",
    "compute_file_hash",
    "compute_path_hash",
    "compute_voucher_fingerprint",
    # Uniquify
    "CATEGORY_ACCOUNT",
    "CATEGORY_PARTY",
    "CATEGORY_STAFF",
    "KeyCounter",
    "make_block_unique",
    # Blocks
    "DetailLine",
    "ItemType",
    "LineKind",
    "VoucherBlock",
]
