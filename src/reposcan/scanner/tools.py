"""Bounded execution of external tools (git, codeql) and their command lines."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from reposcan.errors import ToolExecutionError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600.0
DEFAULT_MAX_OUTPUT = 50 * 1024 * 1024

_READ_CHUNK = 64 * 1024

# Languages whose query packs are fetched ahead of the first scan
PREFETCH_LANGUAGES = ("javascript", "python", "java", "go", "ruby")


class _OutputLimitExceeded(Exception):
    pass


class ToolRunner:
    """Runs external commands with a timeout and a cap on captured output."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT,
        env: dict[str, str] | None = None,
    ) -> None:
        self._timeout = timeout
        self._max_output = max_output_bytes
        # Never let git block on a credential prompt
        self._env = {**os.environ, "GIT_TERMINAL_PROMPT": "0", **(env or {})}

    async def run(
        self,
        args: list[str],
        cwd: str | Path | None = None,
        timeout: float | None = None,
    ) -> str:
        """Run *args* and return its stdout; raise ToolExecutionError on failure."""
        tool = Path(args[0]).name
        timeout = self._timeout if timeout is None else timeout
        logger.debug("Running %s", " ".join(args))

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(cwd) if cwd else None,
                env=self._env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ToolExecutionError(f"{tool} is not installed or not on PATH") from e
        except OSError as e:
            raise ToolExecutionError(f"{tool}: {e}") from e

        stdout = bytearray()
        stderr = bytearray()
        try:
            await asyncio.wait_for(
                asyncio.gather(
                    self._drain(proc.stdout, stdout),
                    self._drain(proc.stderr, stderr),
                    proc.wait(),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            await _kill(proc)
            raise ToolExecutionError(
                f"{tool} timed out after {timeout:g} seconds"
            ) from e
        except _OutputLimitExceeded as e:
            await _kill(proc)
            raise ToolExecutionError(
                f"{tool} produced more than {self._max_output} bytes of output"
            ) from e
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        if proc.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise ToolExecutionError(
                message or f"{tool} exited with code {proc.returncode}",
                returncode=proc.returncode,
            )
        return stdout.decode("utf-8", errors="replace")

    async def _drain(self, stream: asyncio.StreamReader | None, sink: bytearray) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                return
            sink.extend(chunk)
            if len(sink) > self._max_output:
                raise _OutputLimitExceeded()


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()


def clone_command(git: str, repo_url: str, target: str | Path) -> list[str]:
    return [git, "clone", "--depth", "1", repo_url, str(target)]


def database_create_command(
    codeql: str,
    database: str | Path,
    language: str,
    source_root: str | Path,
) -> list[str]:
    return [
        codeql,
        "database",
        "create",
        str(database),
        f"--language={language}",
        f"--source-root={source_root}",
        "--overwrite",
    ]


def query_pack(language: str, suite: str = "security-extended") -> str:
    """Standard query suite reference for *language*."""
    return f"codeql/{language}-queries:codeql-suites/{language}-{suite}.qls"


def database_analyze_command(
    codeql: str,
    database: str | Path,
    output: str | Path,
    language: str,
    suite: str = "security-extended",
) -> list[str]:
    return [
        codeql,
        "database",
        "analyze",
        str(database),
        "--format=sarif-latest",
        f"--output={output}",
        query_pack(language, suite),
    ]


async def check_engine(runner: ToolRunner, codeql: str = "codeql") -> str | None:
    """Return the engine's version line, or None if it cannot be run."""
    try:
        output = await runner.run([codeql, "--version"], timeout=60)
    except ToolExecutionError as e:
        logger.debug("Analysis engine check failed: %s", e)
        return None
    return output.split("\n", 1)[0].strip()


async def download_query_packs(
    runner: ToolRunner,
    codeql: str = "codeql",
    languages: tuple[str, ...] = PREFETCH_LANGUAGES,
) -> None:
    """Download the standard query packs so first scans do not stall."""
    packs = [f"codeql/{lang}-queries" for lang in languages]
    await runner.run([codeql, "pack", "download", *packs], timeout=120)
