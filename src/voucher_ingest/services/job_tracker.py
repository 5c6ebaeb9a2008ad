"""
Import job tracking.

A job is one uploaded export moving through

    queued -> processing -> done | failed

with a processed/total counter and an append-only error list. State lives in
the uploads table, so progress survives process restarts and is visible to
any caller polling get(). A job that finishes with per-block errors is still
done; failed means the job as a whole could not run.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from voucher_ingest.exceptions import JobNotFoundError, JobStateError
from voucher_ingest.state_store import StateStore, UploadRecord, UploadStatus, utcnow_iso

logger = logging.getLogger(__name__)

# Status a job must be in for each transition
STARTABLE = {UploadStatus.QUEUED, UploadStatus.DONE, UploadStatus.FAILED}
RUNNING = {UploadStatus.PROCESSING}
FAILABLE = {UploadStatus.QUEUED, UploadStatus.PROCESSING}


@dataclass
class JobStatus:
    """Snapshot of a job."""

    job_id: int
    filename: str
    path: str
    status: UploadStatus
    processed_rows: int = 0
    total_rows: int = 0
    errors: list[str] = field(default_factory=list)
    message: str | None = None
    original_name: str | None = None
    raw_json_path: str | None = None
    file_hash: str | None = None
    created_at: str = ""
    updated_at: str = ""
    processed_at: str | None = None

    @classmethod
    def from_record(cls, record: UploadRecord) -> "JobStatus":
        return cls(
            job_id=record.id,
            filename=record.filename,
            path=record.path,
            status=record.status,
            processed_rows=record.processed_rows,
            total_rows=record.total_rows,
            errors=list(record.errors),
            message=record.message,
            original_name=record.original_name,
            raw_json_path=record.raw_json_path,
            file_hash=record.file_hash,
            created_at=record.created_at,
            updated_at=record.updated_at,
            processed_at=record.processed_at,
        )

    @property
    def is_finished(self) -> bool:
        return self.status in (UploadStatus.DONE, UploadStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        """Status shape returned to pollers."""
        return {
            "status": self.status.value,
            "processedRows": self.processed_rows,
            "totalRows": self.total_rows,
            "errors": list(self.errors),
        }


class JobTracker:
    """Records job lifecycle and progress in the state store."""

    def __init__(self, store: StateStore):
        self.store = store

    def create(
        self,
        filename: str,
        path: str,
        original_name: str | None = None,
        file_hash: str | None = None,
    ) -> int:
        """Register a queued job. Returns the job ID."""
        job_id = self.store.create_upload(
            filename, path, original_name=original_name, file_hash=file_hash
        )
        logger.info(f"Created job #{job_id} for {original_name or filename}")
        return job_id

    def get(self, job_id: int) -> JobStatus | None:
        record = self.store.get_upload(job_id)
        return JobStatus.from_record(record) if record else None

    def list_jobs(self, limit: int = 20) -> list[JobStatus]:
        return [JobStatus.from_record(r) for r in self.store.list_uploads(limit)]

    def start(self, job_id: int) -> None:
        """
        Move a job to processing and reset its counters and errors.

        Finished jobs may be started again (reprocessing); a job that is
        already processing may not.
        """
        self._transition(
            job_id,
            STARTABLE,
            "start",
            status=UploadStatus.PROCESSING,
            message=None,
            processed_rows=0,
            total_rows=0,
            errors=[],
            processed_at=None,
        )
        logger.info(f"Job #{job_id} processing")

    def set_total(self, job_id: int, total: int, raw_json_path: str | None = None) -> None:
        fields: dict[str, Any] = {"total_rows": total}
        if raw_json_path is not None:
            fields["raw_json_path"] = raw_json_path
        self._transition(job_id, RUNNING, "set total of", **fields)

    def advance(self, job_id: int, delta: int) -> None:
        """Add delta handled blocks to processed_rows (durable checkpoint)."""
        if delta <= 0:
            return
        if not self.store.increment_processed_rows(job_id, delta):
            raise JobNotFoundError(f"Job #{job_id} not found")
        logger.debug(f"Job #{job_id} advanced by {delta}")

    def append_error(self, job_id: int, message: str) -> None:
        if not self.store.append_upload_error(job_id, message):
            raise JobNotFoundError(f"Job #{job_id} not found")

    def fail(self, job_id: int, message: str) -> None:
        """Mark the job as failed as a whole."""
        self._transition(
            job_id,
            FAILABLE,
            "fail",
            status=UploadStatus.FAILED,
            message=message,
            processed_at=utcnow_iso(),
        )
        logger.error(f"Job #{job_id} failed: {message}")

    def complete(self, job_id: int, message: str | None = None) -> None:
        self._transition(
            job_id,
            RUNNING,
            "complete",
            status=UploadStatus.DONE,
            message=message,
            processed_at=utcnow_iso(),
        )
        logger.info(f"Job #{job_id} done" + (f": {message}" if message else ""))

    def _transition(
        self,
        job_id: int,
        allowed: set[UploadStatus],
        action: str,
        **fields: Any,
    ) -> None:
        before = self.store.update_upload(job_id, expected_status=allowed, **fields)
        if before is None:
            raise JobNotFoundError(f"Job #{job_id} not found")
        if before.status not in allowed:
            raise JobStateError(f"Cannot {action} job #{job_id} in status {before.status.value}")
