"""Scan state store interface shared by the in-memory and SQLite backends."""

from __future__ import annotations

import abc
import dataclasses
from datetime import datetime
from typing import Any

from reposcan.errors import StoreError
from reposcan.scanner.jobs import ScanJob, ScanStatus

# Fields the pipeline may change after a job is created
UPDATABLE_FIELDS = frozenset({"status", "step", "language", "results", "error"})


class ScanStore(abc.ABC):
    """Keyed store of scan job records.

    Supports create, partial update-merge and point lookup. Timestamps are
    assigned by the store: ``started_at`` on create and ``completed_at`` on
    the update that moves a job into a terminal state.
    """

    @abc.abstractmethod
    async def create(self, job: ScanJob) -> ScanJob:
        """Insert a new job record and return it as stored."""

    @abc.abstractmethod
    async def update(self, scan_id: str, **fields: Any) -> ScanJob:
        """Merge *fields* into an existing record and return the result."""

    @abc.abstractmethod
    async def get(self, scan_id: str) -> ScanJob | None:
        """Return the record for *scan_id*, or None."""

    async def close(self) -> None:
        """Release backend resources."""


def merge_update(job: ScanJob | None, scan_id: str, fields: dict, now: datetime) -> ScanJob:
    """Apply a partial update to *job*, enforcing the record lifecycle."""
    if job is None:
        raise StoreError(f"Scan {scan_id} not found")
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise StoreError(f"Cannot update fields: {', '.join(sorted(unknown))}")
    if job.status.is_terminal:
        raise StoreError(f"Scan {scan_id} is already {job.status.value}")

    status = fields.get("status", job.status)
    if not isinstance(status, ScanStatus):
        raise StoreError(f"Invalid status: {status!r}")
    if status.rank < job.status.rank:
        raise StoreError(
            f"Scan {scan_id} cannot move from {job.status.value} to {status.value}"
        )

    updated = dataclasses.replace(job, **fields)
    if status.is_terminal:
        updated = dataclasses.replace(updated, completed_at=now)
    return updated
