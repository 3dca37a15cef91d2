"""Volatile scan store backed by a dict, with TTL and capacity eviction."""

from __future__ import annotations

import dataclasses
import logging
from collections import OrderedDict
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from reposcan.errors import StoreError
from reposcan.scanner.jobs import ScanJob, utcnow
from reposcan.storage.base import ScanStore, merge_update

logger = logging.getLogger(__name__)


class MemoryScanStore(ScanStore):
    """In-process store for single-instance deployments.

    Finished jobs are dropped once they are older than *ttl* seconds, and the
    oldest finished jobs are dropped whenever more than *max_jobs* records are
    held. Jobs still in progress are never evicted.
    """

    def __init__(
        self,
        ttl: float = 24 * 60 * 60,
        max_jobs: int = 1000,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._jobs: OrderedDict[str, ScanJob] = OrderedDict()
        self._ttl = timedelta(seconds=ttl)
        self._max_jobs = max_jobs
        self._clock = clock

    def __len__(self) -> int:
        return len(self._jobs)

    async def create(self, job: ScanJob) -> ScanJob:
        if job.id in self._jobs:
            raise StoreError(f"Scan {job.id} already exists")
        self._evict()
        job = dataclasses.replace(job, started_at=self._clock(), completed_at=None)
        self._jobs[job.id] = job
        return job

    async def update(self, scan_id: str, **fields: Any) -> ScanJob:
        job = merge_update(self._jobs.get(scan_id), scan_id, fields, self._clock())
        self._jobs[scan_id] = job
        return job

    async def get(self, scan_id: str) -> ScanJob | None:
        job = self._jobs.get(scan_id)
        if job is not None and self._expired(job, self._clock()):
            del self._jobs[scan_id]
            return None
        return job

    def _expired(self, job: ScanJob, now: datetime) -> bool:
        return job.completed_at is not None and now - job.completed_at > self._ttl

    def _evict(self) -> None:
        now = self._clock()
        for scan_id in [k for k, job in self._jobs.items() if self._expired(job, now)]:
            del self._jobs[scan_id]

        if len(self._jobs) < self._max_jobs:
            return
        finished = [k for k, job in self._jobs.items() if job.status.is_terminal]
        excess = len(self._jobs) - self._max_jobs + 1
        for scan_id in finished[:excess]:
            del self._jobs[scan_id]
        if finished[:excess]:
            logger.debug("Evicted %d finished scans", len(finished[:excess]))
