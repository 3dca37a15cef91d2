"""Tests for scan admission and background execution."""

from __future__ import annotations

import asyncio

import pytest
from conftest import FakeChecker, FakeRunner, run_async

from reposcan.config import ReposcanConfig
from reposcan.errors import QueueFullError
from reposcan.scanner.jobs import ScanJob, ScanStatus
from reposcan.scanner.orchestrator import INTERRUPTED_MESSAGE, ScanOrchestrator
from reposcan.scanner.scheduler import ScanScheduler, build_scheduler
from reposcan.storage.memory import MemoryScanStore


class BlockingOrchestrator:
    """Orchestrator stand-in whose runs finish only when released."""

    def __init__(self, error: Exception | None = None) -> None:
        self.release = asyncio.Event()
        self.active = 0
        self.max_active = 0
        self.started: list[str] = []
        self.error = error

    async def run(self, job: ScanJob) -> None:
        self.started.append(job.id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.error is not None:
                raise self.error
            await self.release.wait()
        finally:
            self.active -= 1


class SlowCreateStore(MemoryScanStore):
    """Memory store whose create suspends, as a database-backed one does."""

    async def create(self, job):
        await asyncio.sleep(0.01)
        return await super().create(job)


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class TestSubmit:
    def test_runs_scan_to_completion(self, hello_world, sample_sarif, work_dir):
        async def scenario():
            store = MemoryScanStore()
            orchestrator = ScanOrchestrator(
                store,
                FakeRunner(sarif=sample_sarif),
                access_checker=FakeChecker(),
                work_dir=work_dir,
            )
            scheduler = ScanScheduler(store, orchestrator)
            scan_id = await scheduler.submit(hello_world)
            queued = await store.get(scan_id)
            await scheduler.wait(scan_id)
            return queued, await store.get(scan_id), scheduler.pending

        queued, done, pending = run_async(scenario())
        assert queued.status is ScanStatus.QUEUED
        assert queued.step == "Waiting for a scan slot..."
        assert done.status is ScanStatus.COMPLETE
        assert done.results.summary.total == 5
        assert pending == 0

    def test_distinct_ids(self, hello_world):
        async def scenario():
            store = MemoryScanStore()
            orchestrator = BlockingOrchestrator()
            scheduler = ScanScheduler(store, orchestrator)
            ids = [await scheduler.submit(hello_world) for _ in range(3)]
            orchestrator.release.set()
            for scan_id in ids:
                await scheduler.wait(scan_id)
            return ids

        ids = run_async(scenario())
        assert len(set(ids)) == 3

    def test_queue_full(self, hello_world):
        async def scenario():
            store = MemoryScanStore()
            orchestrator = BlockingOrchestrator()
            scheduler = ScanScheduler(store, orchestrator, max_queued=2)
            await scheduler.submit(hello_world)
            await scheduler.submit(hello_world)
            with pytest.raises(QueueFullError):
                await scheduler.submit(hello_world)
            assert len(store) == 2
            await scheduler.shutdown()

        run_async(scenario())

    def test_concurrent_submissions_respect_queue_cap(self, hello_world):
        async def scenario():
            store = SlowCreateStore()
            orchestrator = BlockingOrchestrator()
            scheduler = ScanScheduler(store, orchestrator, max_queued=2)
            outcomes = await asyncio.gather(
                *(scheduler.submit(hello_world) for _ in range(4)),
                return_exceptions=True,
            )
            created = len(store)
            await scheduler.shutdown()
            return outcomes, created

        outcomes, created = run_async(scenario())
        accepted = [o for o in outcomes if isinstance(o, str)]
        refused = [o for o in outcomes if isinstance(o, QueueFullError)]
        assert len(accepted) == 2
        assert len(refused) == 2
        assert created == 2

    def test_orchestrator_crash_is_contained(self, hello_world):
        async def scenario():
            scheduler = ScanScheduler(
                MemoryScanStore(), BlockingOrchestrator(error=RuntimeError("bug"))
            )
            scan_id = await scheduler.submit(hello_world)
            await scheduler.wait(scan_id)
            return scheduler.pending

        assert run_async(scenario()) == 0


class TestConcurrency:
    def test_bounded_by_max_concurrent(self, hello_world):
        async def scenario():
            store = MemoryScanStore()
            orchestrator = BlockingOrchestrator()
            scheduler = ScanScheduler(store, orchestrator, max_concurrent=1)
            ids = [await scheduler.submit(hello_world) for _ in range(3)]
            await _settle()
            running_before = list(orchestrator.started)
            orchestrator.release.set()
            for scan_id in ids:
                await scheduler.wait(scan_id)
            return ids, running_before, orchestrator

        ids, running_before, orchestrator = run_async(scenario())
        assert running_before == ids[:1]
        assert orchestrator.started == ids
        assert orchestrator.max_active == 1


class TestShutdown:
    def test_cancels_and_marks_waiting_jobs(self, hello_world):
        async def scenario():
            store = MemoryScanStore()
            orchestrator = BlockingOrchestrator()
            scheduler = ScanScheduler(store, orchestrator, max_concurrent=1)
            running = await scheduler.submit(hello_world)
            waiting = await scheduler.submit(hello_world)
            await _settle()
            await scheduler.shutdown()
            return store, running, waiting, scheduler.pending, orchestrator

        store, running, waiting, pending, orchestrator = run_async(scenario())
        assert pending == 0
        assert orchestrator.started == [running]
        job = run_async(store.get(waiting))
        assert job.status is ScanStatus.ERROR
        assert job.error == INTERRUPTED_MESSAGE

    def test_shutdown_with_nothing_pending(self):
        scheduler = ScanScheduler(MemoryScanStore(), BlockingOrchestrator())
        run_async(scheduler.shutdown())


class TestBuildScheduler:
    def test_uses_config_limits(self, tmp_path, hello_world):
        config = ReposcanConfig(work_dir=tmp_path, max_queued_scans=1)

        async def scenario():
            store = MemoryScanStore()
            scheduler = build_scheduler(config, store, orchestrator=BlockingOrchestrator())
            await scheduler.submit(hello_world)
            with pytest.raises(QueueFullError):
                await scheduler.submit(hello_world)
            await scheduler.shutdown()

        run_async(scenario())
