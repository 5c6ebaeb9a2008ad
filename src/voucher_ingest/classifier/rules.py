"""
Detail line classification.

Decides whether a detail row's description names a staff participant, a
ledger account, or nothing usable. The decision is an ordered rule table;
the first matching rule wins:

1. ledger_keyword     tax/ledger keywords (GST, IGST, SALE, ROUND, ...)  -> account
2. duplicate_hint     description repeated verbatim in the same voucher  -> staff
3. name_shape         "Firstname Lastname", "NAME (Location)", "NAME Uk"  -> staff
4. strict_short_caps  short all-caps token, strict mode only             -> unclassified
5. default                                                               -> account

Keyword matches always beat name shapes: a missed account line skews
reports more than a missed staff line. The heuristics are tuned on real
exports and are not an oracle; see tests/test_classifier.py for the pinned
fixture set.
"""

import re
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, replace

from ..schemas.voucher_block import ItemType, LineKind, VoucherBlock

LEDGER_KEYWORDS = [
    "GST",
    "CGST",
    "SGST",
    "IGST",
    "CESS",
    "TCS",
    "TDS",
    "SALE",
    "OUTPUT",
    "INPUT",
    "ROUND",
    "R.OFF",
    "FREIGHT",
    "DISCOUNT",
    "CASH",
    "BANK",
]

# Trailing location tokens, matched case-sensitively. "Head" and "UP" are
# recognised only in parentheses: bare, they end ordinary item names.
LOCATION_CODES = [
    "Uk",
    "Ap",
    "Mh",
    "Guj",
    "CHD",
    "KA",
    "J&K",
    "DL",
    "Delhi",
    "Mumbai",
]

LEDGER_KEYWORD_PATTERN = re.compile(
    r"(?<![A-Za-z])(?:" + "|".join(re.escape(k) for k in LEDGER_KEYWORDS) + r")",
    re.IGNORECASE,
)

# Human-name shapes
NAME_SHAPE_PATTERNS = [
    # "Rahul Sharma", "Sharma, Rahul"
    re.compile(r"^[A-Z][a-z]+,?\s+[A-Z][a-z]+"),
    # "Rahul Sharma (UK)", "SHUBHAM (CHD)", "Naresh (Head)"
    re.compile(r"\(\s*[A-Za-z][A-Za-z&.\s]*\)\s*$"),
    # "VINOD Mh", "ALOK KUMAR DL"
    re.compile(r"\s(?:" + "|".join(re.escape(c) for c in LOCATION_CODES) + r")\s*$"),
]

SHORT_CAPS_PATTERN = re.compile(r"^[A-Z]{2,9}$")
TRAILING_NUMBER_PATTERN = re.compile(r"\s+\d+$")

# Account line sub-typing, first match wins
ITEM_TYPE_PATTERNS = [
    (re.compile(r"(?<![A-Za-z])(?:[CSI]?GST|CESS|TCS|TDS)", re.IGNORECASE), ItemType.TAX),
    (re.compile(r"(?:SALES?|OUTPUT|INPUT)$", re.IGNORECASE), ItemType.LEDGER),
    (re.compile(r"^(?:LOCAL|DIRECT|INTERSTATE)", re.IGNORECASE), ItemType.LEDGER),
    (
        re.compile(r"R\.OFF|ROUND|FREIGHT|TRANSPORT|DISCOUNT", re.IGNORECASE),
        ItemType.LEDGER,
    ),
    (re.compile(r"CASH|BANK|ACCOUNT", re.IGNORECASE), ItemType.LEDGER),
]


@dataclass(frozen=True)
class LineContext:
    """Everything a rule may look at."""

    label: str
    strict: bool = False
    duplicate_count: int = 1


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the rule table."""

    name: str
    matches: Callable[[LineContext], bool]
    kind: LineKind
    confidence: float


@dataclass(frozen=True)
class Classification:
    """Result of classifying one description."""

    kind: LineKind
    label: str
    rule: str
    confidence: float
    item_type: ItemType | None = None


def normalize_label(description: str | None) -> str:
    """Collapse whitespace and trim."""
    return " ".join((description or "").split())


def has_ledger_keyword(context: LineContext) -> bool:
    return bool(LEDGER_KEYWORD_PATTERN.search(context.label))


def is_repeated(context: LineContext) -> bool:
    return context.duplicate_count > 1


def has_name_shape(context: LineContext) -> bool:
    return any(pattern.search(context.label) for pattern in NAME_SHAPE_PATTERNS)


def is_short_caps(context: LineContext) -> bool:
    if not context.strict:
        return False
    return bool(SHORT_CAPS_PATTERN.match(TRAILING_NUMBER_PATTERN.sub("", context.label)))


RULES: list[ClassificationRule] = [
    ClassificationRule("ledger_keyword", has_ledger_keyword, LineKind.ACCOUNT, 0.95),
    ClassificationRule("duplicate_hint", is_repeated, LineKind.STAFF, 0.8),
    ClassificationRule("name_shape", has_name_shape, LineKind.STAFF, 0.9),
    ClassificationRule("strict_short_caps", is_short_caps, LineKind.UNCLASSIFIED, 0.5),
]

DEFAULT_RULE = ClassificationRule("default", lambda _: True, LineKind.ACCOUNT, 0.6)


def item_type_for(label: str) -> ItemType:
    """Sub-type of an account line: tax, ledger, or product."""
    for pattern, item_type in ITEM_TYPE_PATTERNS:
        if pattern.search(label):
            return item_type
    return ItemType.PRODUCT


def classify_line(
    description: str | None,
    *,
    strict: bool = False,
    duplicate_count: int = 1,
    rules: list[ClassificationRule] | None = None,
) -> Classification:
    """
    Classify one detail line description.

    Args:
        description: Raw Particulars text
        strict: Send ambiguous short all-caps tokens to unclassified
        duplicate_count: Verbatim occurrences of this description in its voucher
        rules: Rule table override (defaults to RULES)

    Returns:
        Classification with kind, normalized label and the deciding rule
    """
    label = normalize_label(description)
    if not label:
        return Classification(LineKind.UNCLASSIFIED, "", "empty", 0.0)

    context = LineContext(label=label, strict=strict, duplicate_count=duplicate_count)
    rule = next((r for r in rules or RULES if r.matches(context)), DEFAULT_RULE)

    item_type = item_type_for(label) if rule.kind == LineKind.ACCOUNT else None
    return Classification(rule.kind, label, rule.name, rule.confidence, item_type)


def classify_block(block: VoucherBlock, strict: bool = False) -> VoucherBlock:
    """
    Return a copy of ``block`` with every detail line classified.

    Verbatim repeats of a description within the block feed the
    duplicate_hint rule.
    """
    counts = Counter(line.description for line in block.details if line.description)

    details = []
    for line in block.details:
        result = classify_line(
            line.description,
            strict=strict,
            duplicate_count=counts[line.description] if line.description else 0,
        )
        details.append(
            replace(
                line,
                kind=result.kind,
                item_type=result.item_type,
                confidence=result.confidence,
            )
        )

    return replace(block, details=details, issues=list(block.issues))
