"""
Ledger export reader.

Recovers voucher blocks from a day-book style spreadsheet export. The sheet
has no schema markers; structure is inferred from the layout:

    rows 1..8      title, company, period, ... (skipped)
    row 9          header: Date | Particulars | Vch Type | Vch No. | Debit | Credit
    block start    a row with both a voucher type and a voucher number
    detail rows    every following row until the next block start

Columns are located by case-insensitive substring match on the header text,
so reordered or renamed ("Vch No.", "Debit Amount") columns still resolve.
Row counting ignores fully empty rows.
"""

import logging
import zipfile
from xml.etree.ElementTree import ParseError
from collections.abc import Iterable, Iterator, Sequence
from decimal import Decimal
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from ..classifier import classify_block
from ..exceptions import ReaderError
from ..schemas.voucher_block import DetailLine, VoucherBlock
from .cells import (
    cell_text,
    coerce_amount,
    coerce_date,
    coerce_marker,
    is_blank,
    is_number,
)

logger = logging.getLogger(__name__)

# Leading non-data rows before the header in the bookkeeping export
DEFAULT_HEADER_OFFSET = 8

# Field -> header label searched for (case-insensitive substring)
COLUMN_LABELS = {
    "voucher_type": "Vch Type",
    "voucher_number": "Vch No",
    "date": "Date",
    "particulars": "Particulars",
    "debit": "Debit",
    "credit": "Credit",
}

REQUIRED_COLUMNS = ("voucher_type", "voucher_number")


def locate_columns(headers: Sequence[str]) -> dict[str, int | None]:
    """Map each canonical field to the first header containing its label."""
    columns: dict[str, int | None] = {}
    for field_name, label in COLUMN_LABELS.items():
        needle = label.lower()
        columns[field_name] = next(
            (i for i, header in enumerate(headers) if needle in header.lower()),
            None,
        )
    return columns


class TabularBlockReader:
    """
    Lazily turns sheet rows into VoucherBlocks.

    The reader is single-use: rows are streamed once, and iterating a second
    time raises ReaderError. Unparsable dates and amounts never abort a
    block; they are left as None and noted in ``block.issues``.
    """

    def __init__(
        self,
        rows: Iterable[Sequence[Any]],
        header_offset: int = DEFAULT_HEADER_OFFSET,
        source_name: str = "<rows>",
    ):
        """
        Args:
            rows: Row tuples in sheet order (e.g. openpyxl values_only rows)
            header_offset: Number of non-empty rows before the header row
            source_name: Name used in log messages
        """
        self._rows = rows
        self._consumed = False
        self.header_offset = header_offset
        self.source_name = source_name
        self.headers: list[str] = []
        self.columns: dict[str, int | None] = {}
        self.blocks_read = 0

    @classmethod
    def from_workbook(
        cls,
        path: Path | str,
        header_offset: int = DEFAULT_HEADER_OFFSET,
        sheet_name: str | None = None,
    ) -> "TabularBlockReader":
        """Open an .xlsx export (first worksheet unless ``sheet_name`` is given)."""
        path = Path(path)
        try:
            workbook = openpyxl.load_workbook(str(path), read_only=True, data_only=True)
        except (OSError, InvalidFileException, zipfile.BadZipFile, KeyError, ParseError) as e:
            raise ReaderError(f"Cannot open {path.name}: {e}") from e

        try:
            worksheet = workbook[sheet_name] if sheet_name else workbook.worksheets[0]
        except (KeyError, IndexError) as e:
            workbook.close()
            raise ReaderError(f"No worksheet {sheet_name or '#1'} in {path.name}") from e

        return cls(_workbook_rows(workbook, worksheet), header_offset, source_name=path.name)

    def __iter__(self) -> Iterator[VoucherBlock]:
        if self._consumed:
            raise ReaderError(f"Rows of {self.source_name} were already consumed")
        self._consumed = True
        return self._blocks()

    def _blocks(self) -> Iterator[VoucherBlock]:
        non_empty = 0
        current: VoucherBlock | None = None

        try:
            for row_number, row in enumerate(self._rows, start=1):
                values = list(row or ())
                if all(is_blank(v) for v in values):
                    continue

                non_empty += 1
                if non_empty <= self.header_offset:
                    continue
                if non_empty == self.header_offset + 1:
                    self._set_headers(values)
                    continue

                if self._is_block_start(values):
                    if current is not None:
                        yield self._emit(current)
                    current = self._start_block(values, row_number)
                elif current is not None:
                    line = self._detail_line(values)
                    if line is not None:
                        current.details.append(line)
        # Worksheet XML is parsed lazily, so damage surfaces only here
        except (OSError, zipfile.BadZipFile, KeyError, ParseError, ValueError) as e:
            raise ReaderError(f"Failed reading {self.source_name}: {e}") from e

        if current is not None:
            yield self._emit(current)

        logger.info(f"Read {self.blocks_read} voucher blocks from {self.source_name}")

    def _set_headers(self, values: list[Any]) -> None:
        self.headers = [cell_text(v) or f"col{i + 1}" for i, v in enumerate(values)]
        self.columns = locate_columns(self.headers)

        missing = [COLUMN_LABELS[f] for f in REQUIRED_COLUMNS if self.columns[f] is None]
        if missing:
            raise ReaderError(
                f"Header row of {self.source_name} has no {', '.join(missing)} column "
                f"(found: {', '.join(self.headers)})"
            )
        logger.debug(f"Header columns for {self.source_name}: {self.columns}")

    def _cell(self, values: list[Any], field_name: str) -> Any:
        index = self.columns.get(field_name)
        if index is None or index >= len(values):
            return None
        return values[index]

    def _is_block_start(self, values: list[Any]) -> bool:
        return bool(
            cell_text(self._cell(values, "voucher_type"))
            and cell_text(self._cell(values, "voucher_number"))
        )

    def _start_block(self, values: list[Any], row_number: int) -> VoucherBlock:
        issues: list[str] = []

        raw_date = self._cell(values, "date")
        parsed_date, serial = coerce_date(raw_date)
        if parsed_date is None and not is_blank(raw_date):
            issues.append(f"Unparsable date {raw_date!r}")

        block = VoucherBlock(
            voucher_number=cell_text(self._cell(values, "voucher_number")),
            voucher_type=cell_text(self._cell(values, "voucher_type")),
            party=cell_text(self._cell(values, "particulars")),
            date=parsed_date,
            date_serial=serial,
            debit_amount=self._amount(values, "debit", issues),
            credit_amount=self._amount(values, "credit", issues),
            issues=issues,
            source_row=row_number,
        )
        logger.debug(f"Block {block.voucher_number} starts at row {row_number}")
        return block

    def _amount(self, values: list[Any], field_name: str, issues: list[str]) -> Decimal | None:
        raw = self._cell(values, field_name)
        amount = coerce_amount(raw)
        if amount is None and not is_blank(raw) and not (is_number(raw) and raw == 0):
            issues.append(f"Unparsable {field_name} amount {raw!r}")
        return amount

    def _detail_line(self, values: list[Any]) -> DetailLine | None:
        description = cell_text(self._cell(values, "particulars")) or None

        # First non-zero number in the row is the line amount; a Dr/Cr cell
        # right before it (or anywhere earlier) is its marker.
        amount = None
        marker = None
        for i, value in enumerate(values):
            if is_number(value) and value != 0:
                amount = coerce_amount(value)
                if i > 0 and coerce_marker(values[i - 1]):
                    marker = coerce_marker(values[i - 1])
                break
            if coerce_marker(value):
                marker = coerce_marker(value)

        if amount is None:
            amount = coerce_amount(self._cell(values, "debit")) or coerce_amount(
                self._cell(values, "credit")
            )

        if description is None and amount is None:
            return None

        return DetailLine(description=description, amount=amount, marker=marker)

    def _emit(self, block: VoucherBlock) -> VoucherBlock:
        self.blocks_read += 1
        if block.issues:
            logger.debug(f"Block {block.voucher_number}: {'; '.join(block.issues)}")
        return block


def _workbook_rows(workbook: Any, worksheet: Any) -> Iterator[tuple[Any, ...]]:
    """Stream worksheet rows, closing the read-only workbook afterwards."""
    try:
        yield from worksheet.iter_rows(values_only=True)
    finally:
        workbook.close()


def read_blocks(
    path: Path | str,
    header_offset: int = DEFAULT_HEADER_OFFSET,
    strict: bool = False,
) -> list[VoucherBlock]:
    """
    Read and classify every voucher block of an export.

    Args:
        path: .xlsx file
        header_offset: Non-empty rows before the header
        strict: Classify ambiguous short all-caps lines as unclassified

    Returns:
        Classified blocks in sheet order
    """
    reader = TabularBlockReader.from_workbook(path, header_offset=header_offset)
    return [classify_block(block, strict=strict) for block in reader]
