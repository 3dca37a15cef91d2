"""CLI command: reposcan scan <url> — run one scan in the foreground."""

from __future__ import annotations

import asyncio
import json
import sys

import click
from rich.console import Console
from rich.table import Table

from reposcan.config import ReposcanConfig
from reposcan.errors import InvalidReferenceError
from reposcan.reference import RepositoryReference, parse
from reposcan.scanner.jobs import ScanJob, ScanStatus
from reposcan.scanner.models import Severity
from reposcan.scanner.scheduler import build_orchestrator
from reposcan.storage.memory import MemoryScanStore

console = Console(stderr=True)

_SEVERITY_COLORS = {
    Severity.CRITICAL: "red",
    Severity.HIGH: "magenta",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}

_POLL_INTERVAL = 0.5


@click.command()
@click.argument("url")
@click.option("--json", "as_json", is_flag=True, help="Print the scan record as JSON.")
@click.pass_context
def scan(ctx: click.Context, url: str, as_json: bool) -> None:
    """Scan a public GitHub repository with CodeQL."""
    try:
        ref = parse(url)
    except InvalidReferenceError as e:
        raise click.BadParameter(str(e), param_hint="URL") from e

    config = ReposcanConfig.load(ctx.obj.get("config_path"))
    console.print(f"[bold]reposcan[/bold] scanning [cyan]{ref.canonical_url}[/cyan]\n")

    job = asyncio.run(_run_scan(config, ref))

    if as_json:
        click.echo(json.dumps(job.to_dict(), indent=2))

    if job.status is ScanStatus.ERROR:
        console.print(f"[red]Scan failed:[/red] {job.error}")
        sys.exit(2)

    report = job.results
    if report is None:
        console.print("[red]Scan finished without results.[/red]")
        sys.exit(2)

    if not as_json:
        _print_findings(job)

    if report.summary.critical > 0:
        console.print(f"\n[red]{report.summary.critical} critical finding(s)[/red]")
        sys.exit(1)


async def _run_scan(config: ReposcanConfig, ref: RepositoryReference) -> ScanJob:
    store = MemoryScanStore()
    orchestrator = build_orchestrator(config, store)
    job = await store.create(ScanJob.for_reference(ref))
    task = asyncio.create_task(orchestrator.run(job))

    with console.status("Starting...") as status:
        while not task.done():
            current = await store.get(job.id)
            if current is not None:
                status.update(current.step)
            await asyncio.wait({task}, timeout=_POLL_INTERVAL)

    final = await store.get(job.id)
    return final or job


def _print_findings(job: ScanJob) -> None:
    report = job.results
    console.print(f"Language: [cyan]{job.language}[/cyan]")

    if not report.findings:
        console.print("[green]No findings.[/green]")
        return

    table = Table(title="Findings", show_lines=False)
    table.add_column("Severity", style="bold", width=10)
    table.add_column("Rule")
    table.add_column("File", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Message", max_width=60)

    for finding in report.findings:
        color = _SEVERITY_COLORS.get(finding.severity, "white")
        table.add_row(
            f"[{color}]{finding.severity.value}[/{color}]",
            finding.name,
            finding.file,
            str(finding.line),
            finding.message[:60],
        )

    console.print(table)
    s = report.summary
    console.print(
        f"\nTotal findings: {s.total} "
        f"(critical {s.critical}, high {s.high}, medium {s.medium}, low {s.low})"
    )
