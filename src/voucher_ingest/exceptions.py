"""
Exception hierarchy for the ingestion pipeline.

Only job-level problems (unreadable source, broken storage) are fatal.
Everything raised inside a block's unit of work is caught by the importer,
rolled back and recorded on the job instead.
"""


class IngestError(Exception):
    """Base class for all ingestion errors."""

    pass


class ReaderError(IngestError):
    """Raised when the source sheet cannot be opened or read."""

    pass


class BlockRejectedError(IngestError):
    """Raised when a voucher block cannot be persisted as-is (e.g. no date)."""

    pass


class DuplicateVoucherError(IngestError):
    """Raised inside a unit of work when the block's fingerprint already exists."""

    def __init__(self, voucher_number: str, fingerprint: str):
        super().__init__(f"Voucher {voucher_number}: Already exists (duplicate)")
        self.voucher_number = voucher_number
        self.fingerprint = fingerprint


class EntityResolutionError(IngestError):
    """Raised when find-or-create keeps conflicting past the retry budget."""

    pass


class JobNotFoundError(IngestError):
    """Raised when a job id does not exist."""

    pass


class JobStateError(IngestError):
    """Raised on an illegal job status transition."""

    pass
