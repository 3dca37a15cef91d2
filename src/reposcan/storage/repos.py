"""Durable scan store on top of an aiosqlite connection."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import aiosqlite

from reposcan.errors import StoreError
from reposcan.scanner.jobs import ScanJob, ScanStatus, utcnow
from reposcan.scanner.models import FindingsReport
from reposcan.storage.base import ScanStore, merge_update


class SqliteScanStore(ScanStore):
    """CRUD for scan job records; finished jobs older than *ttl* are purged."""

    def __init__(
        self,
        db: aiosqlite.Connection,
        ttl: float = 24 * 60 * 60,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = db
        self._ttl = timedelta(seconds=ttl)
        self._clock = clock

    async def create(self, job: ScanJob) -> ScanJob:
        now = self._clock()
        stored = ScanJob(
            id=job.id,
            repo_url=job.repo_url,
            repo_name=job.repo_name,
            owner=job.owner,
            repo=job.repo,
            status=job.status,
            step=job.step,
            language=job.language,
            results=job.results,
            error=job.error,
            started_at=now,
        )
        try:
            await self._db.execute(
                "DELETE FROM scan_jobs "
                "WHERE completed_at IS NOT NULL AND completed_at < ?",
                ((now - self._ttl).timestamp(),),
            )
            await self._db.execute(
                "INSERT INTO scan_jobs "
                "(id, status, step, repo_url, repo_name, owner, repo, "
                "language, results, error, started_at, completed_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    stored.id,
                    stored.status.value,
                    stored.step,
                    stored.repo_url,
                    stored.repo_name,
                    stored.owner,
                    stored.repo,
                    stored.language,
                    _dump_results(stored.results),
                    stored.error,
                    stored.started_at.timestamp(),
                    None,
                ),
            )
            await self._db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"Failed to create scan {job.id}: {e}") from e
        return stored

    async def update(self, scan_id: str, **fields: Any) -> ScanJob:
        job = merge_update(await self.get(scan_id), scan_id, fields, self._clock())
        try:
            await self._db.execute(
                "UPDATE scan_jobs SET status = ?, step = ?, language = ?, "
                "results = ?, error = ?, completed_at = ? WHERE id = ?",
                (
                    job.status.value,
                    job.step,
                    job.language,
                    _dump_results(job.results),
                    job.error,
                    job.completed_at.timestamp() if job.completed_at else None,
                    scan_id,
                ),
            )
            await self._db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"Failed to update scan {scan_id}: {e}") from e
        return job

    async def get(self, scan_id: str) -> ScanJob | None:
        try:
            cursor = await self._db.execute(
                "SELECT * FROM scan_jobs WHERE id = ?", (scan_id,)
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreError(f"Failed to read scan {scan_id}: {e}") from e
        return _row_to_job(dict(row)) if row else None

    async def close(self) -> None:
        await self._db.close()


def _dump_results(results: FindingsReport | None) -> str | None:
    return json.dumps(results.to_dict()) if results is not None else None


def _from_timestamp(value: float | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _row_to_job(row: dict) -> ScanJob:
    results = row["results"]
    return ScanJob(
        id=row["id"],
        status=ScanStatus(row["status"]),
        step=row["step"],
        repo_url=row["repo_url"],
        repo_name=row["repo_name"],
        owner=row["owner"],
        repo=row["repo"],
        language=row["language"],
        results=FindingsReport.from_dict(json.loads(results)) if results else None,
        error=row["error"],
        started_at=_from_timestamp(row["started_at"]),
        completed_at=_from_timestamp(row["completed_at"]),
    )
