"""
Audit copies of parsed uploads.

Every import writes the classified blocks, before uniquification, as a
JSON document. The copy is never deleted, including when the job fails, and
can be replayed with the `seed` command.
"""

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from voucher_ingest.schemas import VoucherBlock

logger = logging.getLogger(__name__)


def audit_path_for(source_path: Path | str, audit_dir: Path | str | None = None) -> Path:
    """Where the audit copy of a source file goes (same name, .json suffix)."""
    source = Path(source_path)
    target_dir = Path(audit_dir) if audit_dir else source.parent
    return target_dir / f"{source.stem}.json"


def write_audit_copy(
    blocks: Iterable[VoucherBlock],
    source_path: Path | str,
    audit_dir: Path | str | None = None,
) -> Path:
    """
    Write blocks as a pretty-printed JSON list.

    Args:
        blocks: Classified blocks in sheet order
        source_path: The uploaded file the blocks came from
        audit_dir: Directory override (defaults to the source's directory)

    Returns:
        Path of the written JSON file
    """
    return dump_blocks(blocks, audit_path_for(source_path, audit_dir))


def dump_blocks(blocks: Iterable[VoucherBlock], target: Path | str) -> Path:
    """Write blocks to target as a pretty-printed JSON list."""
    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)

    payload = [block.to_dict() for block in blocks]
    with open(target, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)

    logger.info(f"Wrote {len(payload)} blocks to {target}")
    return target


def load_audit_blocks(path: Path | str) -> list[VoucherBlock]:
    """
    Read blocks back from an audit JSON document.

    Accepts either a bare list of blocks or an object with a "vouchers" list.
    """
    with open(path, encoding="utf-8") as f:
        data: Any = json.load(f)

    if isinstance(data, dict):
        data = data.get("vouchers", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of voucher blocks")

    return [VoucherBlock.from_dict(item) for item in data if isinstance(item, dict)]
