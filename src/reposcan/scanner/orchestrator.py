"""Scan orchestrator — drives one scan job from fetch to findings."""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Protocol

from reposcan.errors import RateLimitedError, StoreError, friendly_error
from reposcan.reference import RepositoryReference
from reposcan.scanner import sarif
from reposcan.scanner.detect import DEFAULT_LANGUAGE, detect_language
from reposcan.scanner.jobs import ScanJob, ScanStatus
from reposcan.scanner.models import FindingsReport
from reposcan.scanner.tools import (
    ToolRunner,
    clone_command,
    database_analyze_command,
    database_create_command,
)
from reposcan.storage.base import ScanStore

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Scan was interrupted before it finished."


class AccessChecker(Protocol):
    async def check(self, ref: RepositoryReference) -> None: ...


@asynccontextmanager
async def workspace(base_dir: str | Path, scan_id: str) -> AsyncIterator[Path]:
    """Create a private working directory and remove it on every exit path."""
    path = Path(base_dir) / f"reposcan-{scan_id}"
    path.mkdir(parents=True, exist_ok=True)
    try:
        yield path
    finally:
        await asyncio.to_thread(shutil.rmtree, path, ignore_errors=True)


class ScanOrchestrator:
    """Runs the scan pipeline for a job and records each transition.

    queued → cloning → detecting → creating_db → analyzing → parsing →
    complete, or error from any of them. The job record in the store is the
    only place progress is reported.
    """

    def __init__(
        self,
        store: ScanStore,
        runner: ToolRunner,
        access_checker: AccessChecker | None = None,
        work_dir: str | Path = "/tmp",
        git: str = "git",
        codeql: str = "codeql",
        query_suite: str = "security-extended",
        default_language: str = DEFAULT_LANGUAGE,
    ) -> None:
        self._store = store
        self._runner = runner
        self._access_checker = access_checker
        self._work_dir = Path(work_dir)
        self._git = git
        self._codeql = codeql
        self._query_suite = query_suite
        self._default_language = default_language
        self.store_failures = 0

    def workspace_path(self, scan_id: str) -> Path:
        return self._work_dir / f"reposcan-{scan_id}"

    async def run(self, job: ScanJob) -> None:
        """Run the whole pipeline for *job*; never raises except on cancellation.

        The terminal status is written only after the workspace is removed.
        """
        try:
            async with workspace(self._work_dir, job.id) as ws:
                results = await self._run_steps(job, ws)
        except asyncio.CancelledError:
            logger.warning("Scan %s cancelled", job.id)
            await self._update(
                job.id, status=ScanStatus.ERROR, step="Failed", error=INTERRUPTED_MESSAGE
            )
            raise
        except Exception as e:
            logger.warning("Scan %s of %s failed: %s", job.id, job.repo_name, e)
            logger.debug("Scan %s failure details", job.id, exc_info=True)
            await self._update(
                job.id, status=ScanStatus.ERROR, step="Failed", error=friendly_error(str(e))
            )
            return

        await self._update(
            job.id, status=ScanStatus.COMPLETE, step="Done", results=results
        )
        logger.info(
            "Scan %s of %s complete: %d findings",
            job.id,
            job.repo_name,
            results.summary.total,
        )

    async def _run_steps(self, job: ScanJob, ws: Path) -> FindingsReport:
        repo_dir = ws / "repo"
        db_dir = ws / "db"
        results_file = ws / "results.sarif"
        ref = job.reference

        await self._update(job.id, status=ScanStatus.QUEUED, step="Checking repository access...")
        await self._check_access(ref)

        await self._update(job.id, status=ScanStatus.CLONING, step="Cloning repository...")
        await self._runner.run(clone_command(self._git, ref.canonical_url, repo_dir))

        await self._update(job.id, status=ScanStatus.DETECTING, step="Detecting language...")
        language = await asyncio.to_thread(
            detect_language, repo_dir, self._default_language
        )
        logger.info("Scan %s: detected %s", job.id, language)

        await self._update(
            job.id,
            status=ScanStatus.CREATING_DB,
            step="Building analysis database...",
            language=language,
        )
        await self._runner.run(
            database_create_command(self._codeql, db_dir, language, repo_dir)
        )

        await self._update(job.id, status=ScanStatus.ANALYZING, step="Running security analysis...")
        await self._runner.run(
            database_analyze_command(
                self._codeql, db_dir, results_file, language, self._query_suite
            )
        )

        await self._update(job.id, status=ScanStatus.PARSING, step="Generating report...")
        return await asyncio.to_thread(sarif.normalize, results_file)

    async def _check_access(self, ref: RepositoryReference) -> None:
        if self._access_checker is None:
            return
        try:
            await self._access_checker.check(ref)
        except RateLimitedError as e:
            # Inconclusive; the clone step gives the definitive answer
            logger.warning("Access check for %s skipped: %s", ref.full_name, e)

    async def _update(self, scan_id: str, **fields: Any) -> None:
        """Write a progress update; a failed write is logged, never raised."""
        try:
            await self._store.update(scan_id, **fields)
        except StoreError as e:
            self.store_failures += 1
            logger.warning("Could not record progress for scan %s: %s", scan_id, e)
