"""Tests for the ledger export reader."""

from datetime import date
from decimal import Decimal

import pytest

from voucher_ingest.exceptions import ReaderError
from voucher_ingest.extractors import TabularBlockReader, locate_columns, read_blocks
from voucher_ingest.extractors.cells import (
    cell_text,
    coerce_amount,
    coerce_date,
    coerce_marker,
    serial_to_date,
)
from voucher_ingest.schemas import LineKind

from fixtures import (
    HEADER,
    block_rows,
    end_to_end_block,
    preamble,
    sheet_rows,
    write_workbook,
)


class TestCellCoercion:
    """Tests for cell value helpers."""

    def test_serial_date(self):
        """Day-serials count from 1899-12-30."""
        assert serial_to_date(45383) == date(2024, 4, 1)
        assert coerce_date(45383.75) == (date(2024, 4, 1), 45383)

    def test_text_dates(self):
        assert coerce_date("2024-04-01")[0] == date(2024, 4, 1)
        assert coerce_date("01/04/2024")[0] == date(2024, 4, 1)
        assert coerce_date("1-Apr-2024")[0] == date(2024, 4, 1)

    def test_unparsable_date_is_none(self):
        assert coerce_date("sometime in April") == (None, None)
        assert coerce_date(None) == (None, None)

    def test_amounts(self):
        assert coerce_amount(1180) == Decimal("1180")
        assert coerce_amount("1,180.50") == Decimal("1180.50")
        assert coerce_amount("500 Dr") == Decimal("500")
        assert coerce_amount(0) is None
        assert coerce_amount("n/a") is None
        assert coerce_amount(True) is None

    def test_markers(self):
        assert coerce_marker(" dr ") == "Dr"
        assert coerce_marker("Cr") == "Cr"
        assert coerce_marker("Credit") is None
        assert coerce_marker(5) is None

    def test_cell_text(self):
        assert cell_text(123.0) == "123"
        assert cell_text("  S/001 ") == "S/001"
        assert cell_text(None) == ""


class TestHeaderLocation:
    """Tests for header column matching."""

    def test_default_header(self):
        columns = locate_columns(list(HEADER))
        assert columns == {
            "voucher_type": 2,
            "voucher_number": 3,
            "date": 0,
            "particulars": 1,
            "debit": 4,
            "credit": 5,
        }

    def test_substring_case_insensitive(self):
        """Renamed headers still resolve by substring."""
        columns = locate_columns(["VCH NO.", "Txn Date", "vch type", "Debit (INR)"])
        assert columns["voucher_number"] == 0
        assert columns["date"] == 1
        assert columns["voucher_type"] == 2
        assert columns["debit"] == 3
        assert columns["credit"] is None
        assert columns["particulars"] is None

    def test_missing_required_column_raises(self):
        rows = preamble() + [("Date", "Particulars", "Debit")] + [(1, "x", 2)]
        reader = TabularBlockReader(rows)
        with pytest.raises(ReaderError, match="Vch Type"):
            list(reader)

    def test_empty_header_cells_get_placeholders(self):
        header = ("Date", None, "Vch Type", "Vch No.")
        reader = TabularBlockReader(preamble() + [header])
        assert list(reader) == []
        assert reader.headers == ["Date", "col2", "Vch Type", "Vch No."]


class TestBlockReading:
    """Tests for block boundaries and detail lines."""

    def test_reads_reference_block(self):
        blocks = list(TabularBlockReader(sheet_rows(end_to_end_block())))

        assert len(blocks) == 1
        block = blocks[0]
        assert block.voucher_number == "S/001"
        assert block.voucher_type == "Sales"
        assert block.party == "Acme"
        assert block.date == date(2024, 4, 1)
        assert block.debit_amount == Decimal("1180")
        assert block.total_amount == Decimal("1180")
        assert [d.description for d in block.details] == [
            "LOCAL SALE",
            "IGST OUTPUT",
            "Rahul Sharma (UK)",
        ]
        assert [d.amount for d in block.details] == [
            Decimal("1000"),
            Decimal("180"),
            Decimal("1180"),
        ]

    def test_header_offset_counts_non_empty_rows(self):
        """Blank rows in the preamble do not shift the header."""
        rows = preamble()
        rows.insert(2, ())
        rows.insert(5, (None, "  ", None))
        rows += [HEADER] + end_to_end_block()

        blocks = list(TabularBlockReader(rows))
        assert [b.voucher_number for b in blocks] == ["S/001"]

    def test_custom_header_offset(self):
        rows = sheet_rows(end_to_end_block(), offset=3)
        blocks = list(TabularBlockReader(rows, header_offset=3))
        assert len(blocks) == 1

    def test_multiple_blocks_split_on_block_start(self):
        rows = sheet_rows(
            block_rows("S/001", date(2024, 4, 1), "Acme", [("LOCAL SALE", 100)]),
            block_rows("S/002", date(2024, 4, 2), "Beta", [("FREIGHT", 20), ("ROUND OFF", 1)]),
        )
        blocks = list(TabularBlockReader(rows))

        assert [b.voucher_number for b in blocks] == ["S/001", "S/002"]
        assert len(blocks[0].details) == 1
        assert len(blocks[1].details) == 2

    def test_rows_before_first_block_are_ignored(self):
        rows = sheet_rows(
            [(None, "Opening Balance", None, None, 5000, None)],
            end_to_end_block(),
        )
        blocks = list(TabularBlockReader(rows))
        assert len(blocks) == 1
        assert blocks[0].details[0].description == "LOCAL SALE"

    def test_reordered_columns(self):
        header = ("Vch No.", "Particulars", "Credit", "Debit", "Vch Type", "Date")
        rows = preamble() + [
            header,
            ("C/9", "Beta Stores", None, 250, "Credit Note", "2024-05-10"),
            (None, "SALES RETURN", None, 250, None, None),
        ]
        block = list(TabularBlockReader(rows))[0]

        assert block.voucher_number == "C/9"
        assert block.voucher_type == "Credit Note"
        assert block.date == date(2024, 5, 10)
        assert block.debit_amount == Decimal("250")
        assert block.details[0].description == "SALES RETURN"

    def test_serial_date_in_block_start(self):
        rows = sheet_rows(block_rows("S/001", 45383, "Acme", [("LOCAL SALE", 10)]))
        block = list(TabularBlockReader(rows))[0]
        assert block.date == date(2024, 4, 1)
        assert block.date_serial == 45383
        assert block.date_iso == "2024-04-01"

    def test_degraded_fields_are_noted_not_fatal(self):
        rows = sheet_rows(
            block_rows("S/001", "not a date", "Acme", [("LOCAL SALE", 10)], debit="lots")
        )
        block = list(TabularBlockReader(rows))[0]

        assert block.date is None
        assert block.debit_amount is None
        assert block.total_amount == Decimal("0")
        assert len(block.issues) == 2

    def test_marker_from_preceding_cell(self):
        rows = sheet_rows(
            [("2024-04-01", "Acme", "Journal", "J/1", None, None)],
            [(None, "Rahul Sharma", None, "Cr", 500, None)],
        )
        line = list(TabularBlockReader(rows))[0].details[0]
        assert line.amount == Decimal("500")
        assert line.marker == "Cr"

    def test_amount_falls_back_to_text_columns(self):
        rows = sheet_rows(
            [("2024-04-01", "Acme", "Receipt", "R/1", None, None)],
            [(None, "BANK", None, None, None, "1,180.00")],
        )
        line = list(TabularBlockReader(rows))[0].details[0]
        assert line.amount == Decimal("1180.00")

    def test_empty_detail_rows_are_dropped(self):
        rows = sheet_rows(end_to_end_block() + [(None, None, "Dr", None, None, None)])
        block = list(TabularBlockReader(rows))[0]
        assert len(block.details) == 3


class TestReaderLifecycle:
    """Tests for laziness and single use."""

    def test_blocks_are_yielded_lazily(self):
        rows = sheet_rows(
            block_rows("S/001", date(2024, 4, 1), "Acme", [("LOCAL SALE", 1)]),
            block_rows("S/002", date(2024, 4, 1), "Acme", [("LOCAL SALE", 2)]),
            block_rows("S/003", date(2024, 4, 1), "Acme", [("LOCAL SALE", 3)]),
        )
        consumed = []

        def feed():
            for row in rows:
                consumed.append(row)
                yield row

        first = next(iter(TabularBlockReader(feed())))
        assert first.voucher_number == "S/001"
        assert len(consumed) < len(rows)

    def test_reader_is_single_use(self):
        reader = TabularBlockReader(sheet_rows(end_to_end_block()))
        assert len(list(reader)) == 1
        with pytest.raises(ReaderError):
            iter(reader)

    def test_blocks_read_counter(self):
        reader = TabularBlockReader(sheet_rows(end_to_end_block(), end_to_end_block()))
        list(reader)
        assert reader.blocks_read == 2


class TestWorkbookReading:
    """Tests for reading .xlsx files."""

    def test_from_workbook(self, sample_export):
        blocks = list(TabularBlockReader.from_workbook(sample_export))

        assert len(blocks) == 1
        assert blocks[0].voucher_number == "S/001"
        assert blocks[0].date == date(2024, 4, 1)
        assert len(blocks[0].details) == 3

    def test_read_blocks_classifies(self, sample_export):
        block = read_blocks(sample_export)[0]
        kinds = [line.kind for line in block.details]
        assert kinds == [LineKind.ACCOUNT, LineKind.ACCOUNT, LineKind.STAFF]

    def test_corrupt_file_raises_reader_error(self, tmp_path):
        broken = tmp_path / "broken.xlsx"
        broken.write_bytes(b"this is not a workbook")
        with pytest.raises(ReaderError):
            TabularBlockReader.from_workbook(broken)

    def test_missing_file_raises_reader_error(self, tmp_path):
        with pytest.raises(ReaderError):
            TabularBlockReader.from_workbook(tmp_path / "missing.xlsx")

    def test_missing_sheet_raises_reader_error(self, tmp_path):
        path = write_workbook(tmp_path / "daybook.xlsx", sheet_rows(end_to_end_block()))
        with pytest.raises(ReaderError):
            TabularBlockReader.from_workbook(path, sheet_name="Nope")
