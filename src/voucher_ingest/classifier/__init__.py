"""Detail line classification (staff / account / unclassified)."""

from .rules import (
    DEFAULT_RULE,
    RULES,
    Classification,
    ClassificationRule,
    LineContext,
    classify_block,
    classify_line,
    item_type_for,
    normalize_label,
)

__all__ = [
    "DEFAULT_RULE",
    "RULES",
    "Classification",
    "ClassificationRule",
    "LineContext",
    "classify_block",
    "classify_line",
    "item_type_for",
    "normalize_label",
]
