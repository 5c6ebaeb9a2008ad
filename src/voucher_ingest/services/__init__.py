"""Pipeline services: entity resolution, job tracking and the importer."""

from voucher_ingest.services.audit_trail import (
    audit_path_for,
    dump_blocks,
    load_audit_blocks,
    write_audit_copy,
)
from voucher_ingest.services.entity_resolver import (
    EntityCategory,
    EntityRef,
    EntityResolver,
    normalize_name,
)
from voucher_ingest.services.importer import (
    BlockOutcome,
    BlockState,
    ImportResult,
    TransactionalImporter,
)
from voucher_ingest.services.job_tracker import JobStatus, JobTracker

__all__ = [
    "BlockOutcome",
    "BlockState",
    "EntityCategory",
    "EntityRef",
    "EntityResolver",
    "ImportResult",
    "JobStatus",
    "JobTracker",
    "TransactionalImporter",
    "audit_path_for",
    "dump_blocks",
    "load_audit_blocks",
    "normalize_name",
    "write_audit_copy",
]
