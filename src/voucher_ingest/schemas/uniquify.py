"""
Per-voucher name uniquification.

Storage needs distinguishable keys inside one voucher, while the original
block must stay byte-for-byte for audit. make_block_unique() therefore
returns a copy in which repeated names within a category are numbered:

    "Acme Ltd", "Acme Ltd", "acme ltd"  ->  "Acme Ltd", "Acme Ltd 2", "acme ltd 3"

Counters live in a KeyCounter that is created per block and never carried
over to the next one.
"""

import copy

from .voucher_block import LineKind, VoucherBlock

CATEGORY_PARTY = "party"
CATEGORY_STAFF = "staff"
CATEGORY_ACCOUNT = "account"

_KIND_CATEGORIES = {
    LineKind.STAFF: CATEGORY_STAFF,
    LineKind.ACCOUNT: CATEGORY_ACCOUNT,
}


class KeyCounter:
    """Occurrence counters for one voucher block, one map per category."""

    def __init__(self) -> None:
        self._counts: dict[str, dict[str, int]] = {}
        self._emitted: dict[str, set[str]] = {}

    def rename(self, value: str | None, category: str) -> str | None:
        """Return the unique form of ``value`` within ``category``.

        The first occurrence is kept (trimmed); later ones get a space and
        their 1-based occurrence count. A numbered candidate that clashes
        with a value already handed out keeps counting upward.
        """
        if not value:
            return value

        name = str(value).strip()
        key = name.casefold()
        counts = self._counts.setdefault(category, {})
        emitted = self._emitted.setdefault(category, set())

        count = counts.get(key, 0) + 1
        candidate = name if count == 1 else f"{name} {count}"
        while candidate.casefold() in emitted:
            count += 1
            candidate = f"{name} {count}"

        counts[key] = count
        emitted.add(candidate.casefold())
        return candidate

    def count(self, value: str, category: str) -> int:
        """How many times ``value`` has been seen in ``category``."""
        return self._counts.get(category, {}).get(str(value).strip().casefold(), 0)


def make_block_unique(block: VoucherBlock, counter: KeyCounter | None = None) -> VoucherBlock:
    """
    Return a deep copy of ``block`` with unique names per category.

    Args:
        block: Parsed (and classified) voucher block; never modified
        counter: Counter to use; a fresh one is created when omitted

    Returns:
        Uniquified copy of the block
    """
    counter = counter or KeyCounter()
    clone = copy.deepcopy(block)

    if clone.party:
        clone.party = counter.rename(clone.party, CATEGORY_PARTY) or ""

    for line in clone.details:
        category = _KIND_CATEGORIES.get(line.kind)
        if category and line.description:
            line.description = counter.rename(line.description, category)

    return clone

