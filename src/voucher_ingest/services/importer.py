"""
Transactional voucher importer.

Drives one job from uploaded file to persisted rows:

    read + classify -> audit copy -> per block: fingerprint, uniquify, persist

Block lifecycle:

    PENDING -> FINGERPRINT_CHECKED -> SKIPPED (duplicate)
                                   -> PERSISTING -> COMMITTED | FAILED

Each block is written in its own unit of work. A failing block rolls back
completely, is recorded on the job, and processing continues with the next
block. Only problems that stop the job as a whole (unreadable source,
unavailable storage) move the job to failed.
"""

import logging
import sqlite3
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from pathlib import Path

from voucher_ingest.classifier import item_type_for
from voucher_ingest.config import ImporterConfig
from voucher_ingest.exceptions import (
    BlockRejectedError,
    DuplicateVoucherError,
    IngestError,
    JobNotFoundError,
    JobStateError,
)
from voucher_ingest.extractors import read_blocks
from voucher_ingest.schemas import (
    LineKind,
    VoucherBlock,
    block_fingerprint,
    make_block_unique,
)
from voucher_ingest.services.audit_trail import load_audit_blocks, write_audit_copy
from voucher_ingest.services.entity_resolver import EntityCategory, EntityResolver
from voucher_ingest.services.job_tracker import JobTracker
from voucher_ingest.state_store import StateStore, UnitOfWork

logger = logging.getLogger(__name__)


class BlockState(str, Enum):
    """Processing state of one voucher block."""

    PENDING = "pending"
    FINGERPRINT_CHECKED = "fingerprint_checked"
    SKIPPED = "skipped"
    PERSISTING = "persisting"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class BlockOutcome:
    """Final state of one block."""

    index: int
    voucher_number: str
    state: BlockState = BlockState.PENDING
    fingerprint: str = ""
    voucher_id: int | None = None
    message: str | None = None


@dataclass
class ImportResult:
    """Summary of one import run."""

    job_id: int
    total: int = 0
    committed: int = 0
    skipped: int = 0
    failed: int = 0
    messages: list[str] = field(default_factory=list)
    fatal: str | None = None
    raw_json_path: str | None = None

    @property
    def success(self) -> bool:
        """True when the job ran and no block failed (duplicates are fine)."""
        return self.fatal is None and self.failed == 0

    @property
    def handled(self) -> int:
        return self.committed + self.skipped + self.failed

    def record(self, outcome: BlockOutcome) -> None:
        if outcome.state == BlockState.COMMITTED:
            self.committed += 1
        elif outcome.state == BlockState.SKIPPED:
            self.skipped += 1
        elif outcome.state == BlockState.FAILED:
            self.failed += 1
        if outcome.message:
            self.messages.append(outcome.message)

    def summary(self) -> str:
        return (
            f"{self.committed} committed, {self.skipped} duplicates, "
            f"{self.failed} failed of {self.total}"
        )


class TransactionalImporter:
    """
    Imports voucher blocks for jobs tracked in the state store.

    One importer may serve several jobs; each job gets its own resolver and
    runs strictly sequentially over its blocks.
    """

    def __init__(
        self,
        store: StateStore,
        config: ImporterConfig | None = None,
        tracker: JobTracker | None = None,
    ):
        """
        Initialize the importer.

        Args:
            store: State store holding jobs and vouchers
            config: Importer settings (defaults if omitted)
            tracker: Job tracker (created over the store if omitted)
        """
        self.store = store
        self.config = config or ImporterConfig()
        self.tracker = tracker or JobTracker(store)

    # Job entry points

    def run(self, job_id: int, file_path: Path | str | None = None) -> ImportResult:
        """
        Run a job synchronously.

        Never raises for job-level failures: they end up in the job status
        and in ImportResult.fatal.

        Args:
            job_id: Job created with JobTracker.create()
            file_path: Export to read (defaults to the job's stored path)
        """
        result = ImportResult(job_id=job_id)

        try:
            job = self.tracker.get(job_id)
            if job is None:
                raise JobNotFoundError(f"Job #{job_id} not found")
            self.tracker.start(job_id)
        except (JobNotFoundError, JobStateError) as e:
            result.fatal = str(e)
            logger.error(result.fatal)
            return result
        except sqlite3.Error as e:
            logger.exception(f"Job #{job_id}: storage unavailable")
            return self._fail(result, str(e))

        path = Path(file_path or job.path)
        try:
            blocks, audit_path = self._load_blocks(path)
            result.raw_json_path = str(audit_path)
            self.tracker.set_total(job_id, len(blocks), raw_json_path=str(audit_path))
        except (IngestError, OSError, ValueError, sqlite3.Error) as e:
            logger.exception(f"Job #{job_id}: cannot read {path.name}")
            return self._fail(result, str(e))
        except Exception as e:
            logger.exception(f"Job #{job_id}: unexpected error reading {path.name}")
            return self._fail(result, f"Unexpected error: {e}")

        return self._process(job_id, blocks, result)

    def _load_blocks(self, path: Path) -> tuple[list[VoucherBlock], Path]:
        """
        Blocks of a job source and the path of their audit copy.

        A .json source is an audit document (seeded jobs); it is replayed
        as-is and serves as its own audit copy.
        """
        if path.suffix.lower() == ".json":
            return load_audit_blocks(path), path

        blocks = read_blocks(
            path,
            header_offset=self.config.header_offset,
            strict=self.config.strict_classification,
        )
        return blocks, write_audit_copy(blocks, path, self.config.audit_dir)

    def import_blocks(self, job_id: int, blocks: Sequence[VoucherBlock]) -> ImportResult:
        """
        Run a job over already-parsed blocks (no file, no audit copy).

        Blocks are expected to be classified.
        """
        result = ImportResult(job_id=job_id)
        try:
            self.tracker.start(job_id)
            self.tracker.set_total(job_id, len(blocks))
        except (JobNotFoundError, JobStateError) as e:
            result.fatal = str(e)
            logger.error(result.fatal)
            return result
        except sqlite3.Error as e:
            logger.exception(f"Job #{job_id}: storage unavailable")
            return self._fail(result, str(e))

        return self._process(job_id, blocks, result)

    def start_import(self, job_id: int, file_path: Path | str | None = None) -> threading.Thread:
        """Run a job on a background thread. Progress is visible via the tracker."""
        thread = threading.Thread(
            target=self.run,
            args=(job_id, file_path),
            name=f"voucher-import-{job_id}",
            daemon=True,
        )
        thread.start()
        logger.info(f"Started import thread for job #{job_id}")
        return thread

    def reprocess(self, job_id: int) -> ImportResult:
        """
        Re-run a job against its stored file. Already imported blocks are skipped.

        Seeded jobs replay their JSON document.
        """
        logger.info(f"Reprocessing job #{job_id}")
        return self.run(job_id)

    # Block processing

    def _process(
        self, job_id: int, blocks: Sequence[VoucherBlock], result: ImportResult
    ) -> ImportResult:
        result.total = len(blocks)
        resolver = EntityResolver(
            max_attempts=self.config.resolver_max_attempts,
            upload_id=job_id,
        )
        batch_size = max(1, self.config.batch_size)
        pending = 0

        try:
            for index, block in enumerate(blocks, start=1):
                outcome = self.process_block(job_id, index, block, resolver)
                result.record(outcome)
                if outcome.message:
                    self.tracker.append_error(job_id, outcome.message)

                pending += 1
                if pending >= batch_size:
                    self.tracker.advance(job_id, pending)
                    pending = 0

            self.tracker.advance(job_id, pending)
            self.tracker.complete(job_id, result.summary())
        except (JobNotFoundError, JobStateError, sqlite3.Error) as e:
            logger.exception(f"Job #{job_id}: tracking failed after {result.handled} blocks")
            return self._fail(result, str(e))

        logger.info(f"Job #{job_id}: {result.summary()}")
        return result

    def process_block(
        self,
        job_id: int,
        index: int,
        block: VoucherBlock,
        resolver: EntityResolver,
    ) -> BlockOutcome:
        """
        Persist one block atomically.

        Returns:
            BlockOutcome in state SKIPPED, COMMITTED or FAILED
        """
        outcome = BlockOutcome(index=index, voucher_number=block.voucher_number)

        outcome.fingerprint = block_fingerprint(block)
        outcome.state = BlockState.FINGERPRINT_CHECKED
        unique = make_block_unique(block)

        try:
            with self.store.unit_of_work() as uow:
                if uow.find_voucher_by_fingerprint(outcome.fingerprint) is not None:
                    raise DuplicateVoucherError(block.voucher_number, outcome.fingerprint)

                outcome.state = BlockState.PERSISTING
                outcome.voucher_id = self._persist(uow, job_id, block, unique, outcome, resolver)
        except DuplicateVoucherError as e:
            outcome.state = BlockState.SKIPPED
            outcome.message = str(e)
            logger.debug(f"Block {index}: {e}")
        except Exception as e:
            outcome.state = BlockState.FAILED
            outcome.voucher_id = None
            outcome.message = f"Block {index} (voucher {block.voucher_number}): {e}"
            logger.warning(outcome.message)
        else:
            outcome.state = BlockState.COMMITTED
            logger.debug(f"Block {index}: voucher {block.voucher_number} committed")

        return outcome

    def _persist(
        self,
        uow: UnitOfWork,
        job_id: int,
        block: VoucherBlock,
        unique: VoucherBlock,
        outcome: BlockOutcome,
        resolver: EntityResolver,
    ) -> int:
        if not block.voucher_number:
            raise BlockRejectedError("missing voucher number")
        if block.date is None:
            reason = "; ".join(block.issues) or "date cell is empty"
            raise BlockRejectedError(f"missing or unparsable date ({reason})")

        company = resolver.resolve(
            uow, unique.party, EntityCategory.COMPANY, key_name=block.party
        )
        voucher_id = uow.insert_voucher(
            voucher_number=block.voucher_number,
            date_iso=block.date_iso,
            total_amount=block.total_amount,
            currency=self.config.currency,
            company_id=company.id,
            upload_id=job_id,
            raw_original=block.to_dict(),
            raw_unique=unique.to_dict(),
            dedupe_hash=outcome.fingerprint,
        )

        for original, line in zip(block.details, unique.details):
            if line.kind == LineKind.ACCOUNT:
                if not line.description:
                    continue
                item_type = line.item_type or item_type_for(line.description)
                uow.insert_item(
                    voucher_id,
                    description=line.description,
                    amount=line.amount or Decimal("0"),
                    item_type=item_type.value,
                )
            elif line.kind == LineKind.STAFF:
                employee = resolver.resolve(
                    uow, original.description, EntityCategory.EMPLOYEE
                )
                uow.insert_participant(
                    voucher_id,
                    employee_id=employee.id,
                    staff_name=line.description or employee.name,
                    role=line.marker or "Dr",
                    confidence=line.confidence,
                )

        return voucher_id

    def _fail(self, result: ImportResult, message: str) -> ImportResult:
        result.fatal = message
        try:
            self.tracker.fail(result.job_id, message)
        except (IngestError, sqlite3.Error) as e:
            logger.error(f"Job #{result.job_id}: could not record failure: {e}")
        return result
