"""
Ledger export -> Voucher blocks -> Classified lines -> Atomic voucher import

A deterministic, testable pipeline that turns day-book spreadsheet exports
into vouchers, voucher items and staff participants, with idempotent
re-import and per-voucher transactional writes.
"""

__version__ = "0.1.0"
