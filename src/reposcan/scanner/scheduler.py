"""Scan scheduler — admission control and one background task per job."""

from __future__ import annotations

import asyncio
import logging

from reposcan.config import ReposcanConfig
from reposcan.errors import QueueFullError, StoreError
from reposcan.reference import RepositoryReference
from reposcan.scanner.github import GitHubAccessChecker
from reposcan.scanner.jobs import ScanJob, ScanStatus
from reposcan.scanner.orchestrator import INTERRUPTED_MESSAGE, ScanOrchestrator
from reposcan.scanner.tools import ToolRunner
from reposcan.storage.base import ScanStore

logger = logging.getLogger(__name__)


class ScanScheduler:
    """Accepts scan submissions and runs them as independent tasks.

    At most *max_concurrent* pipelines run at once; further jobs wait in
    ``queued``. Submissions beyond *max_queued* outstanding jobs are refused.
    """

    def __init__(
        self,
        store: ScanStore,
        orchestrator: ScanOrchestrator,
        max_concurrent: int = 2,
        max_queued: int = 100,
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._max_queued = max_queued
        self._slots = asyncio.Semaphore(max_concurrent)
        self._tasks: dict[str, asyncio.Task[None]] = {}
        # Submissions admitted but still waiting on the store
        self._admitting = 0

    @property
    def pending(self) -> int:
        """Number of jobs queued or running."""
        return len(self._tasks) + self._admitting

    async def submit(self, ref: RepositoryReference) -> str:
        """Record a new job for *ref* and start it in the background."""
        if self.pending >= self._max_queued:
            raise QueueFullError("Too many scans in progress. Please try again later.")

        self._admitting += 1
        try:
            job = await self._store.create(
                ScanJob.for_reference(ref, step="Waiting for a scan slot...")
            )
        finally:
            self._admitting -= 1
        task = asyncio.create_task(self._run(job), name=f"scan-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _t, scan_id=job.id: self._tasks.pop(scan_id, None))
        logger.info("Scan %s submitted for %s", job.id, job.repo_name)
        return job.id

    async def wait(self, scan_id: str) -> None:
        """Wait for a submitted job to finish (used by the CLI and tests)."""
        task = self._tasks.get(scan_id)
        if task is not None:
            await asyncio.wait({task})

    async def shutdown(self) -> None:
        """Cancel outstanding jobs and wait for their cleanup to finish."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d outstanding scans", len(tasks))

    async def _run(self, job: ScanJob) -> None:
        started = False
        try:
            async with self._slots:
                started = True
                await self._orchestrator.run(job)
        except asyncio.CancelledError:
            if not started:
                await self._mark_interrupted(job.id)
            raise
        except Exception:
            # Last line of defence: nothing may escape a scan task
            logger.exception("Unhandled error in scan %s", job.id)

    async def _mark_interrupted(self, scan_id: str) -> None:
        try:
            await self._store.update(
                scan_id,
                status=ScanStatus.ERROR,
                step="Failed",
                error=INTERRUPTED_MESSAGE,
            )
        except StoreError as e:
            logger.warning("Could not record cancellation of scan %s: %s", scan_id, e)


def build_orchestrator(config: ReposcanConfig, store: ScanStore) -> ScanOrchestrator:
    """Wire an orchestrator with the tools and pre-check named in *config*."""
    runner = ToolRunner(
        timeout=config.tool_timeout,
        max_output_bytes=config.max_output_bytes,
    )
    checker = GitHubAccessChecker(
        api_url=config.github_api_url,
        token=config.github_token or None,
    )
    return ScanOrchestrator(
        store,
        runner,
        access_checker=checker,
        work_dir=config.work_dir,
        git=config.git_path,
        codeql=config.codeql_path,
        query_suite=config.query_suite,
        default_language=config.default_language,
    )


def build_scheduler(
    config: ReposcanConfig,
    store: ScanStore,
    orchestrator: ScanOrchestrator | None = None,
) -> ScanScheduler:
    return ScanScheduler(
        store,
        orchestrator or build_orchestrator(config, store),
        max_concurrent=config.max_concurrent_scans,
        max_queued=config.max_queued_scans,
    )
