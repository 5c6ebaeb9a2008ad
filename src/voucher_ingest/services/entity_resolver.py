"""
Company and employee resolution.

Maps display names found in voucher blocks to stable entity rows. Two names
denote the same entity when their normalized keys match:

    "ACME Traders Pvt. Ltd."  -> "acmetraderspvtltd"
    "Acme traders pvt ltd"    -> "acmetraderspvtltd"

The UNIQUE index on the normalized key is the guard against duplicates.
Concurrent jobs may race to create the same entity; the loser gets an
IntegrityError and re-reads the winner's row.
"""

import logging
import re
import sqlite3
import threading
from dataclasses import dataclass, replace
from enum import Enum

from voucher_ingest.exceptions import EntityResolutionError
from voucher_ingest.state_store import UnitOfWork

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


class EntityCategory(str, Enum):
    """Kinds of resolvable entity."""

    COMPANY = "company"
    EMPLOYEE = "employee"

    @property
    def table(self) -> str:
        return {"company": "companies", "employee": "employees"}[self.value]

    @property
    def fallback_name(self) -> str:
        """Display name used when the source cell is empty."""
        return {"company": "Unknown Party", "employee": "Unknown"}[self.value]


@dataclass(frozen=True)
class EntityRef:
    """Reference to a resolved entity row."""

    id: int
    name: str
    normalized: str
    category: EntityCategory
    created: bool = False


def normalize_name(value: str | None) -> str:
    """Case-fold and drop everything that is not a letter or digit."""
    return _NON_ALNUM.sub("", (value or "").casefold())


class EntityResolver:
    """
    Find-or-create for companies and employees.

    Keeps an in-memory cache of resolved rows per (category, normalized key).
    Lookups enter the cache only after their unit of work commits, so a
    rolled-back block cannot leave a dangling id behind.
    """

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS, upload_id: int | None = None):
        """
        Args:
            max_attempts: Lookup/insert rounds before giving up on a key
            upload_id: Provenance recorded on created rows
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.upload_id = upload_id
        self._cache: dict[tuple[EntityCategory, str], EntityRef] = {}
        self._lock = threading.Lock()

    def resolve(
        self,
        uow: UnitOfWork,
        name: str | None,
        category: EntityCategory,
        key_name: str | None = None,
    ) -> EntityRef:
        """
        Resolve a display name to an entity row, creating it if needed.

        Args:
            uow: Open unit of work of the current block
            name: Display name stored on a newly created row
            category: Company or employee
            key_name: Name the normalized key is derived from (defaults to name)

        Returns:
            EntityRef of the existing or newly created row

        Raises:
            EntityResolutionError: The key could not be read or written
                within max_attempts rounds
        """
        display = (name or "").strip() or category.fallback_name
        normalized = normalize_name(key_name if key_name is not None else display)
        if not normalized:
            normalized = normalize_name(category.fallback_name)

        cache_key = (category, normalized)
        with self._lock:
            cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            row = uow.find_entity(category.table, normalized)
            if row is not None:
                ref = EntityRef(row["id"], row["name"], row["normalized"], category)
                uow.on_commit(lambda ref=ref: self._remember(ref))
                return ref

            try:
                entity_id = uow.insert_entity(
                    category.table, display, normalized, upload_id=self.upload_id
                )
            except sqlite3.IntegrityError as e:
                last_error = e
                logger.debug(
                    f"{category.value} '{normalized}' created concurrently "
                    f"(attempt {attempt}/{self.max_attempts}), re-reading"
                )
                continue

            ref = EntityRef(entity_id, display, normalized, category, created=True)
            uow.on_commit(lambda ref=ref: self._remember(ref))
            logger.debug(f"Created {category.value} #{entity_id} '{display}'")
            return ref

        raise EntityResolutionError(
            f"Could not resolve {category.value} '{display}' after "
            f"{self.max_attempts} attempts: {last_error}"
        )

    def _remember(self, ref: EntityRef) -> None:
        with self._lock:
            self._cache[(ref.category, ref.normalized)] = replace(ref, created=False)

    def cached(self, category: EntityCategory, name: str) -> EntityRef | None:
        """Cached entry for a name, if any."""
        with self._lock:
            return self._cache.get((category, normalize_name(name)))

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
