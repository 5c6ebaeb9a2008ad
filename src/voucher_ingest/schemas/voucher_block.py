"""
Transient voucher structures produced by the sheet reader.

A VoucherBlock is one contiguous run of rows in the ledger export: a
block-start row (voucher type + voucher number) followed by its detail
rows. Blocks live only until they are persisted or rejected.

The dictionary form mirrors the audit JSON written next to every upload:

    {
        "Voucher_Number": "S/001",
        "Date_iso": "2024-04-01",
        "Date_serial": 45383,
        "Party": "Acme",
        "Vch_Type": "Sales",
        "Debit_Amount": "1180",
        "Credit_Amount": null,
        "Details": [
            {"Account": "LOCAL SALE", "Amount": "1000"},
            {"Staff": "Rahul Sharma (UK)", "Amount": "1180", "Type": "Dr"}
        ]
    }
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional


class LineKind(str, Enum):
    """What a detail row represents."""

    STAFF = "staff"
    ACCOUNT = "account"
    UNCLASSIFIED = "unclassified"


class ItemType(str, Enum):
    """Finer grouping of account lines, stored on voucher items."""

    PRODUCT = "product"
    TAX = "tax"
    LEDGER = "ledger"


# Keys used in the audit JSON for each line kind
DETAIL_KEYS = {
    LineKind.STAFF: "Staff",
    LineKind.ACCOUNT: "Account",
    LineKind.UNCLASSIFIED: "Particulars",
}


@dataclass
class DetailLine:
    """One row beneath a block-start row."""

    description: Optional[str] = None
    amount: Optional[Decimal] = None
    marker: Optional[str] = None  # "Dr" / "Cr"
    kind: LineKind = LineKind.UNCLASSIFIED
    item_type: Optional[ItemType] = None
    confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the audit JSON shape."""
        data: dict[str, Any] = {}
        if self.description:
            data[DETAIL_KEYS[self.kind]] = self.description
        if self.amount is not None:
            data["Amount"] = str(self.amount)
        if self.marker:
            data["Type"] = self.marker
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DetailLine":
        """Rebuild from the audit JSON shape."""
        kind = LineKind.UNCLASSIFIED
        description = None
        for line_kind, key in DETAIL_KEYS.items():
            if data.get(key):
                kind = line_kind
                description = str(data[key])
                break

        return cls(
            description=description,
            amount=_to_decimal(data.get("Amount")),
            marker=data.get("Type") or None,
            kind=kind,
            # Labelled lines in a stored document were already decided
            confidence=0.0 if kind == LineKind.UNCLASSIFIED else 1.0,
        )


@dataclass
class VoucherBlock:
    """A voucher header row plus its detail lines."""

    voucher_number: str
    voucher_type: str
    party: str = ""
    date: Optional[date] = None
    date_serial: Optional[int] = None
    debit_amount: Optional[Decimal] = None
    credit_amount: Optional[Decimal] = None
    details: list[DetailLine] = field(default_factory=list)

    # Non-fatal parse notes (unparsable dates, amounts)
    issues: list[str] = field(default_factory=list)
    # 1-based sheet row of the block-start row, when read from a sheet
    source_row: Optional[int] = None

    @property
    def date_iso(self) -> str:
        """Date as YYYY-MM-DD, or empty string when unknown."""
        return self.date.isoformat() if self.date else ""

    @property
    def total_amount(self) -> Decimal:
        """Debit amount if present, else credit amount, else zero."""
        if self.debit_amount:
            return self.debit_amount
        if self.credit_amount:
            return self.credit_amount
        return Decimal("0")

    def lines_of(self, kind: LineKind) -> list[DetailLine]:
        """Detail lines of one kind, in sheet order."""
        return [line for line in self.details if line.kind == kind]

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the audit JSON shape."""
        return {
            "Voucher_Number": self.voucher_number,
            "Date_iso": self.date_iso,
            "Date_serial": self.date_serial,
            "Party": self.party,
            "Vch_Type": self.voucher_type,
            "Debit_Amount": str(self.debit_amount) if self.debit_amount is not None else None,
            "Credit_Amount": str(self.credit_amount) if self.credit_amount is not None else None,
            "Details": [line.to_dict() for line in self.details],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VoucherBlock":
        """Rebuild from the audit JSON shape.

        Accepts amounts as numbers or strings and tolerates a missing or
        malformed date (the block keeps ``date=None``).
        """
        issues: list[str] = []
        parsed_date = None
        raw_date = data.get("Date_iso") or ""
        if raw_date:
            try:
                parsed_date = date.fromisoformat(str(raw_date)[:10])
            except ValueError:
                issues.append(f"Unparsable date {raw_date!r}")

        serial = data.get("Date_serial")
        try:
            date_serial = int(serial) if serial not in (None, "") else None
        except (TypeError, ValueError):
            date_serial = None

        return cls(
            voucher_number=str(data.get("Voucher_Number") or ""),
            voucher_type=str(data.get("Vch_Type") or ""),
            party=str(data.get("Party") or ""),
            date=parsed_date,
            date_serial=date_serial,
            debit_amount=_to_decimal(data.get("Debit_Amount")),
            credit_amount=_to_decimal(data.get("Credit_Amount")),
            details=[DetailLine.from_dict(d) for d in data.get("Details") or []],
            issues=issues,
        )


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None
