"""FastAPI application factory for the reposcan service."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from reposcan import __version__
from reposcan.config import ReposcanConfig
from reposcan.errors import ToolExecutionError
from reposcan.scanner.scheduler import ScanScheduler, build_scheduler
from reposcan.scanner.tools import ToolRunner, check_engine, download_query_packs
from reposcan.storage import open_store
from reposcan.storage.base import ScanStore

logger = logging.getLogger(__name__)

_FRONTEND_DIR = Path(__file__).parent / "frontend"


async def create_app(
    config: ReposcanConfig | None = None,
    store: ScanStore | None = None,
    scheduler: ScanScheduler | None = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    config = config or ReposcanConfig.load()

    app = FastAPI(
        title="reposcan",
        version=__version__,
        docs_url="/api/docs",
    )

    app.state.config = config
    app.state.engine_check = None
    app.state.store = store or await open_store(config)
    app.state.scheduler = scheduler or build_scheduler(config, app.state.store)

    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    from reposcan.web.api.health import router as health_router
    from reposcan.web.api.scans import router as scans_router

    app.include_router(health_router)
    app.include_router(scans_router, prefix="/api")

    # Serve frontend static files
    if _FRONTEND_DIR.is_dir():
        app.mount(
            "/",
            StaticFiles(directory=str(_FRONTEND_DIR), html=True),
            name="frontend",
        )

    @app.on_event("startup")
    async def startup() -> None:
        if config.check_engine_on_startup:
            app.state.engine_check = asyncio.create_task(_prepare_engine(config))

    @app.on_event("shutdown")
    async def shutdown() -> None:
        engine_check = app.state.engine_check
        if engine_check is not None and not engine_check.done():
            engine_check.cancel()
            await asyncio.gather(engine_check, return_exceptions=True)
        await app.state.scheduler.shutdown()
        await app.state.store.close()

    return app


async def _prepare_engine(config: ReposcanConfig) -> None:
    """Report whether the analysis engine is usable and prefetch query packs."""
    runner = ToolRunner(timeout=config.tool_timeout)
    version = await check_engine(runner, config.codeql_path)
    if version is None:
        logger.warning(
            "CodeQL CLI not found at %r; scans will fail until it is installed",
            config.codeql_path,
        )
        return
    logger.info("CodeQL: %s", version)
    try:
        await download_query_packs(runner, config.codeql_path)
    except ToolExecutionError as e:
        logger.warning("Could not download query packs: %s", str(e).split("\n")[0])
    else:
        logger.info("Query packs ready")
