"""CLI command: reposcan check — verify the external tools are usable."""

from __future__ import annotations

import asyncio
import sys

import click
from rich.console import Console

from reposcan.config import ReposcanConfig
from reposcan.errors import ToolExecutionError
from reposcan.scanner.tools import ToolRunner, check_engine, download_query_packs

console = Console(stderr=True)


@click.command()
@click.option(
    "--download-packs",
    is_flag=True,
    help="Also download the standard CodeQL query packs.",
)
@click.pass_context
def check(ctx: click.Context, download_packs: bool) -> None:
    """Check that git and the CodeQL CLI are installed."""
    config = ReposcanConfig.load(ctx.obj.get("config_path"))
    ok = asyncio.run(_check(config, download_packs))
    if not ok:
        sys.exit(1)


async def _check(config: ReposcanConfig, download_packs: bool) -> bool:
    runner = ToolRunner(timeout=60)
    ok = True

    try:
        git_version = (await runner.run([config.git_path, "--version"])).strip()
        console.print(f"[green]✓[/green] {git_version}")
    except ToolExecutionError as e:
        console.print(f"[red]✗ git unavailable:[/red] {e}")
        ok = False

    version = await check_engine(runner, config.codeql_path)
    if version is None:
        console.print(
            "[red]✗ CodeQL CLI not found.[/red] "
            "Install it from https://github.com/github/codeql-cli-binaries"
        )
        return False
    console.print(f"[green]✓[/green] CodeQL: {version}")

    if download_packs:
        try:
            await download_query_packs(runner, config.codeql_path)
            console.print("[green]✓[/green] Query packs ready")
        except ToolExecutionError as e:
            console.print(
                f"[yellow]⚠ Could not download query packs:[/yellow] "
                f"{str(e).splitlines()[0] if str(e) else e}"
            )
            ok = False
    return ok
