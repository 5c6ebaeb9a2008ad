"""
Extractors turn ledger export files into VoucherBlocks.
"""

from .cells import coerce_amount, coerce_date, coerce_marker, serial_to_date
from .sheet_reader import (
    COLUMN_LABELS,
    DEFAULT_HEADER_OFFSET,
    TabularBlockReader,
    locate_columns,
    read_blocks,
)

__all__ = [
    "COLUMN_LABELS",
    "DEFAULT_HEADER_OFFSET",
    "TabularBlockReader",
    "coerce_amount",
    "coerce_date",
    "coerce_marker",
    "locate_columns",
    "read_blocks",
    "serial_to_date",
]
