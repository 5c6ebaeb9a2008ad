"""
CLI main entry point.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from ..config import Config, ConfigValidationError, create_default_config, load_config
from ..exceptions import ReaderError
from ..extractors import read_blocks
from ..schemas.dedupe import compute_path_hash
from ..services import (
    JobTracker,
    TransactionalImporter,
    audit_path_for,
    dump_blocks,
    load_audit_blocks,
)
from ..services.importer import ImportResult
from ..state_store import StateStore

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="voucher-ingest",
        description="Import ledger spreadsheet exports into vouchers, items and participants",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # import command
    import_parser = subparsers.add_parser("import", help="Import a ledger export (.xlsx)")
    import_parser.add_argument("file", type=Path, help="Export file to import")

    # status command
    status_parser = subparsers.add_parser("status", help="Show job status")
    status_parser.add_argument(
        "job_id",
        type=int,
        nargs="?",
        help="Job ID (omit to list recent jobs)",
    )
    status_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Number of jobs to list (default: 20)",
    )

    # reprocess command
    reprocess_parser = subparsers.add_parser("reprocess", help="Re-run an import job")
    reprocess_parser.add_argument("job_id", type=int, help="Job ID")

    # convert command
    convert_parser = subparsers.add_parser(
        "convert", help="Convert an export to voucher JSON without importing"
    )
    convert_parser.add_argument("file", type=Path, help="Export file to convert")
    convert_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Output JSON path (default: next to the export)",
    )

    # seed command
    seed_parser = subparsers.add_parser("seed", help="Import vouchers from a JSON document")
    seed_parser.add_argument("json_file", type=Path, help="Voucher JSON (as written by convert)")

    subparsers.add_parser("stats", help="Show row counts")
    subparsers.add_parser("init-config", help="Write a default config file")

    return parser


def _open_store(config: Config) -> StateStore:
    return StateStore(config.state_db_path, busy_timeout=config.busy_timeout_seconds)


def _print_result(result: ImportResult) -> int:
    if result.fatal:
        print(f"❌ Job #{result.job_id} failed: {result.fatal}")
        return 1

    print(f"\n📊 Job #{result.job_id}: {result.summary()}")
    for message in result.messages:
        print(f"   - {message}")
    if result.raw_json_path:
        print(f"   Audit copy: {result.raw_json_path}")

    if result.success:
        print("✓ Import completed")
        return 0
    print("⚠️  Import completed with failed blocks")
    return 1


def cmd_import(config: Config, file_path: Path) -> int:
    """Import one export synchronously."""
    if not file_path.exists():
        print(f"❌ File not found: {file_path}")
        return 1

    store = _open_store(config)
    tracker = JobTracker(store)
    importer = TransactionalImporter(store, config.importer, tracker)

    file_hash = compute_path_hash(file_path)
    job_id = tracker.create(
        file_path.name,
        str(file_path.resolve()),
        original_name=file_path.name,
        file_hash=file_hash,
    )
    print(f"📥 Importing {file_path.name} as job #{job_id} (sha256 {file_hash[:12]})...")

    return _print_result(importer.run(job_id))


def cmd_status(config: Config, job_id: int | None, limit: int) -> int:
    """Show one job as JSON, or a table of recent jobs."""
    tracker = JobTracker(_open_store(config))

    if job_id is not None:
        status = tracker.get(job_id)
        if status is None:
            print(f"❌ Job #{job_id} not found")
            return 1
        print(json.dumps(status.to_dict(), indent=2, ensure_ascii=False))
        return 0

    jobs = tracker.list_jobs(limit)
    if not jobs:
        print("No jobs yet")
        return 0

    print(f"\n{'ID':>5}  {'Status':<11} {'Progress':>11}  {'Errors':>6}  File")
    print("-" * 60)
    for job in jobs:
        progress = f"{job.processed_rows}/{job.total_rows}"
        print(
            f"{job.job_id:>5}  {job.status.value:<11} {progress:>11}  "
            f"{len(job.errors):>6}  {job.original_name or job.filename}"
        )
    return 0


def cmd_reprocess(config: Config, job_id: int) -> int:
    """Re-run a job against its stored file."""
    store = _open_store(config)
    importer = TransactionalImporter(store, config.importer)

    print(f"🔁 Reprocessing job #{job_id}...")
    return _print_result(importer.reprocess(job_id))


def cmd_convert(config: Config, file_path: Path, output: Path | None) -> int:
    """Parse and classify an export, writing voucher JSON only."""
    try:
        blocks = read_blocks(
            file_path,
            header_offset=config.importer.header_offset,
            strict=config.importer.strict_classification,
        )
    except ReaderError as e:
        print(f"❌ {e}")
        return 1

    target = dump_blocks(blocks, output or audit_path_for(file_path, config.importer.audit_dir))
    print(f"✓ Wrote {len(blocks)} voucher(s) to {target}")
    return 0


def cmd_seed(config: Config, json_file: Path) -> int:
    """Import vouchers from a JSON document."""
    try:
        blocks = load_audit_blocks(json_file)
    except (OSError, ValueError) as e:
        print(f"❌ Cannot load {json_file}: {e}")
        return 1

    store = _open_store(config)
    tracker = JobTracker(store)
    importer = TransactionalImporter(store, config.importer, tracker)

    job_id = tracker.create(json_file.name, str(json_file.resolve()), original_name=json_file.name)
    print(f"🌱 Seeding {len(blocks)} voucher(s) from {json_file.name} as job #{job_id}...")
    return _print_result(importer.import_blocks(job_id, blocks))


def cmd_stats(config: Config) -> int:
    """Show row counts."""
    stats = _open_store(config).get_stats()

    print("\n📊 Voucher Store")
    print("=" * 40)
    print(f"  Vouchers:               {stats['vouchers']}")
    print(f"  Voucher items:          {stats['voucher_items']}")
    print(f"  Voucher participants:   {stats['voucher_participants']}")
    print(f"  Companies:              {stats['companies']}")
    print(f"  Employees:              {stats['employees']}")
    print(f"  Jobs total:             {stats['uploads_total']}")
    print(f"  Jobs done:              {stats['uploads_done']}")
    print(f"  Jobs failed:            {stats['uploads_failed']}")
    print()

    return 0


def cmd_init_config(config_path: Path) -> int:
    """Write a default config file."""
    if config_path.exists():
        print(f"⚠️  {config_path} already exists")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote {config_path}")
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config)

    # Load config
    try:
        config = load_config(parsed.config)
        problems = config.validate()
        if problems:
            raise ConfigValidationError("; ".join(problems))
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    if parsed.command == "import":
        return cmd_import(config, parsed.file)
    elif parsed.command == "status":
        return cmd_status(config, parsed.job_id, parsed.limit)
    elif parsed.command == "reprocess":
        return cmd_reprocess(config, parsed.job_id)
    elif parsed.command == "convert":
        return cmd_convert(config, parsed.file, parsed.output)
    elif parsed.command == "seed":
        return cmd_seed(config, parsed.json_file)
    elif parsed.command == "stats":
        return cmd_stats(config)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
