"""Scan state stores and the factory that picks one from configuration."""

from __future__ import annotations

from reposcan.config import ReposcanConfig
from reposcan.storage.base import ScanStore
from reposcan.storage.memory import MemoryScanStore


async def open_store(config: ReposcanConfig) -> ScanStore:
    """Build the store selected by ``config.store_backend``."""
    if config.store_backend == "memory":
        return MemoryScanStore(ttl=config.job_ttl, max_jobs=config.max_jobs)
    if config.store_backend == "sqlite":
        from reposcan.storage.db import get_db
        from reposcan.storage.repos import SqliteScanStore

        db = await get_db(config.db_path)
        return SqliteScanStore(db, ttl=config.job_ttl)
    raise ValueError(f"Unknown store backend: {config.store_backend}")
