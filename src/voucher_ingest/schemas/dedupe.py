"""
Dedupe fingerprint generation (CRITICAL).

This module defines THE idempotency key for vouchers. The ledger export has
no natural primary key, so a voucher is recognised on re-import purely by a
content hash of its voucher number and date.

Fingerprint format:
    SHA256(f"{voucher_number}{date_iso}") as 64 lowercase hex characters

The fingerprint must be:
- Stable: Same (voucher number, date) always produces the same value,
  across runs and processes
- Collision-resistant: SHA256
- Reproducible: Can be regenerated from the stored raw payload
"""

import hashlib
from pathlib import Path

from .voucher_block import VoucherBlock

FINGERPRINT_LENGTH = 64


def compute_voucher_fingerprint(voucher_number: str, date_iso: str) -> str:
    """
    Compute the dedupe fingerprint for a voucher.

    Args:
        voucher_number: Voucher number exactly as read from the sheet
        date_iso: Parsed date as YYYY-MM-DD (empty string when unknown)

    Returns:
        64-character lowercase hex string

    Examples:
        >>> len(compute_voucher_fingerprint("S/001", "2024-04-01"))
        64
    """
    canonical = f"{voucher_number or ''}{date_iso or ''}"
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def block_fingerprint(block: VoucherBlock) -> str:
    """Fingerprint of a parsed voucher block."""
    return compute_voucher_fingerprint(block.voucher_number, block.date_iso)


def compute_file_hash(file_bytes: bytes) -> str:
    """
    Compute SHA256 hash of file bytes.

    Args:
        file_bytes: Raw file content

    Returns:
        64-character lowercase hex string
    """
    return hashlib.sha256(file_bytes).hexdigest()


def compute_path_hash(path: Path | str, chunk_size: int = 1 << 20) -> str:
    """
    Compute SHA256 hash of a file without loading it whole.

    Returns:
        The same value compute_file_hash() gives for the file's bytes
    """
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()
