"""CLI command: reposcan server — start the scan API."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console

from reposcan.config import ReposcanConfig

console = Console(stderr=True)


@click.command()
@click.option("--host", default=None, help="Interface to bind (default: 127.0.0.1).")
@click.option(
    "--port",
    type=int,
    default=None,
    help="Port to listen on (default: 8480).",
)
@click.pass_context
def server(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the reposcan web API."""
    import uvicorn

    from reposcan.web.app import create_app

    config = ReposcanConfig.load(ctx.obj.get("config_path"))
    config.verbose = ctx.obj.get("verbose", False)
    if host is not None:
        config.web_host = host
    if port is not None:
        config.web_port = port

    console.print(
        f"[bold]reposcan[/bold] API starting on "
        f"[cyan]http://{config.web_host}:{config.web_port}[/cyan] "
        f"([dim]{config.store_backend} store[/dim])\n"
    )

    async def _run() -> None:
        app = await create_app(config)
        server_config = uvicorn.Config(
            app,
            host=config.web_host,
            port=config.web_port,
            log_level="debug" if config.verbose else "info",
        )
        srv = uvicorn.Server(server_config)
        await srv.serve()

    asyncio.run(_run())
