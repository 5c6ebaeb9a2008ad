"""
Cell value coercion for ledger exports.

Spreadsheet cells arrive as whatever openpyxl decoded: native datetimes,
numeric day-serials, floats, or text typed by hand. These helpers turn them
into dates, amounts and plain text, degrading to None instead of raising.

Supported date inputs:
- datetime / date objects
- Day-serials counted from the 1899-12-30 epoch (e.g. 45383 -> 2024-04-01)
- Text: 2024-04-01, 01-04-2024, 01/04/2024, 01.04.2024, 1-Apr-2024, 1-Apr-24
"""

import math
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

# Spreadsheet day-serial epoch (serial 1 == 1899-12-31)
SERIAL_EPOCH = date(1899, 12, 30)

TEXT_DATE_FORMATS = [
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%d/%m/%Y",
    "%d.%m.%Y",
    "%d-%b-%Y",
    "%d-%b-%y",
]

DEBIT_CREDIT_MARKERS = {"dr": "Dr", "cr": "Cr"}


def is_blank(value: Any) -> bool:
    """True for None and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def cell_text(value: Any) -> str:
    """Render a cell as trimmed text ("" for blanks, 123.0 -> "123")."""
    if is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat()
    return str(value).strip()


def is_number(value: Any) -> bool:
    """True for numeric cells (bools excluded)."""
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def serial_to_date(serial: float) -> date | None:
    """Convert a spreadsheet day-serial to a date (fractions are dropped)."""
    if not serial or math.isnan(serial) or serial < 0:
        return None
    try:
        return SERIAL_EPOCH + timedelta(days=math.floor(serial))
    except OverflowError:
        return None


def date_to_serial(value: date) -> int:
    """Inverse of serial_to_date()."""
    return (value - SERIAL_EPOCH).days


def coerce_date(value: Any) -> tuple[date | None, int | None]:
    """
    Parse a date cell.

    Returns:
        (date, day_serial); both None when the cell is blank or unparsable
    """
    if is_blank(value) or isinstance(value, bool):
        return None, None

    if isinstance(value, datetime):
        parsed = value.date()
        return parsed, date_to_serial(parsed)

    if isinstance(value, date):
        return value, date_to_serial(value)

    if is_number(value):
        parsed = serial_to_date(float(value))
        return (parsed, math.floor(value)) if parsed else (None, None)

    text = str(value).strip()
    for date_format in TEXT_DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, date_format).date()
            return parsed, date_to_serial(parsed)
        except ValueError:
            continue

    # Serial numbers typed as text
    try:
        serial = float(text)
    except ValueError:
        return None, None
    parsed = serial_to_date(serial)
    return (parsed, math.floor(serial)) if parsed else (None, None)


def coerce_amount(value: Any) -> Decimal | None:
    """
    Parse an amount cell.

    Accepts numbers and text like "1,180.00" or "₹ 1180". Zero and blank
    cells read as None, matching how the export leaves empty columns.
    """
    if is_blank(value) or isinstance(value, bool):
        return None

    if is_number(value):
        if isinstance(value, float) and math.isnan(value):
            return None
        amount = Decimal(str(value))
    else:
        cleaned = str(value).replace(",", "").replace("₹", "").strip()
        for suffix in ("Dr", "Cr"):
            if cleaned.endswith(suffix):
                cleaned = cleaned[: -len(suffix)].strip()
        try:
            amount = Decimal(cleaned)
        except InvalidOperation:
            return None

    return amount if amount else None


def coerce_marker(value: Any) -> str | None:
    """Return "Dr"/"Cr" for debit/credit marker cells, else None."""
    if not isinstance(value, str):
        return None
    return DEBIT_CREDIT_MARKERS.get(value.strip().lower())
