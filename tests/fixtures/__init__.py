"""
Test fixtures for ledger exports.

Builds day-book style sheets the way the bookkeeping product exports them:
- 8 leading non-data rows (company, title, period, ...)
- a header row
- voucher blocks: a block-start row followed by detail rows

Rows can be fed to TabularBlockReader directly or written to an .xlsx file
with write_workbook().
"""

from datetime import date, datetime
from pathlib import Path
from typing import Any

import openpyxl

HEADER = ("Date", "Particulars", "Vch Type", "Vch No.", "Debit Amount", "Credit Amount")

PREAMBLE = [
    ("Acme Group of Companies",),
    ("12, Industrial Area",),
    ("Day Book",),
    ("1-Apr-2024 to 31-Mar-2025",),
    ("Page 1",),
    ("Printed by admin",),
    ("Voucher Register",),
    ("All Vouchers",),
]

Row = tuple[Any, ...]


def preamble(count: int = 8) -> list[Row]:
    """Leading non-data rows."""
    return [PREAMBLE[i % len(PREAMBLE)] for i in range(count)]


def block_rows(
    number: str,
    when: date | float | str | None,
    party: str,
    details: list[tuple[Any, ...]],
    vch_type: str = "Sales",
    debit: Any = None,
    credit: Any = None,
) -> list[Row]:
    """
    Rows of one voucher block in the default column order.

    Each detail is (description, amount) or (description, amount, marker).
    The marker goes into the Vch Type column, the amount into Debit.
    """
    if isinstance(when, date) and not isinstance(when, datetime):
        when = datetime(when.year, when.month, when.day)

    rows: list[Row] = [(when, party, vch_type, number, debit, credit)]
    for detail in details:
        description, amount = detail[0], detail[1]
        marker = detail[2] if len(detail) > 2 else None
        rows.append((None, description, marker, None, amount, None))
    return rows


def sheet_rows(*blocks: list[Row], offset: int = 8, header: Row = HEADER) -> list[Row]:
    """Preamble + header + the given blocks."""
    rows = preamble(offset) + [header]
    for block in blocks:
        rows.extend(block)
    return rows


def end_to_end_block() -> list[Row]:
    """The reference sales voucher: two account lines and one staff line."""
    return block_rows(
        "S/001",
        date(2024, 4, 1),
        "Acme",
        [
            ("LOCAL SALE", 1000),
            ("IGST OUTPUT", 180),
            ("Rahul Sharma (UK)", 1180),
        ],
        debit=1180,
    )


def numbered_blocks(count: int, start: date = date(2024, 4, 1)) -> list[list[Row]]:
    """count distinct vouchers V/001.. with one account and one staff line each."""
    blocks = []
    for i in range(1, count + 1):
        blocks.append(
            block_rows(
                f"V/{i:03d}",
                start,
                f"Customer {i % 7}",
                [("LOCAL SALE", 100 + i), ("Priya Nair (Mh)", 100 + i)],
                debit=100 + i,
            )
        )
    return blocks


def write_workbook(path: Path, rows: list[Row], title: str = "Day Book") -> Path:
    """Write rows to a single-sheet .xlsx file."""
    workbook = openpyxl.Workbook()
    worksheet = workbook.active
    worksheet.title = title
    for row in rows:
        worksheet.append(list(row))
    workbook.save(path)
    return path
