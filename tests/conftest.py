"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

import pytest

from reposcan.errors import ToolExecutionError
from reposcan.reference import RepositoryReference


def run_async(coro):
    """Run a coroutine to completion from a sync test."""
    return asyncio.run(coro)


class FakeRunner:
    """Stands in for ToolRunner: records commands and fakes their effects.

    ``git clone`` populates the target with *source_files*; ``codeql database
    analyze`` copies *sarif* to the requested output. Set *fail_on* to a
    command word ("clone", "create", "analyze") to make that step fail with
    *failure_message*.
    """

    def __init__(
        self,
        sarif: Path | None = None,
        source_files: dict[str, str] | None = None,
        fail_on: str | None = None,
        failure_message: str = "boom",
    ) -> None:
        self.sarif = sarif
        self.source_files = source_files or {"app.py": "print('hi')\n"}
        self.fail_on = fail_on
        self.failure_message = failure_message
        self.commands: list[list[str]] = []
        self.on_command = None

    async def run(self, args, cwd=None, timeout=None) -> str:
        self.commands.append(list(args))
        if self.on_command is not None:
            await self.on_command(args)
        word = args[1] if args[1] == "clone" else args[2]
        if word == self.fail_on:
            raise ToolExecutionError(self.failure_message, returncode=128)

        if word == "clone":
            target = Path(args[-1])
            for rel, content in self.source_files.items():
                path = target / rel
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(content)
        elif word == "create":
            Path(args[3]).mkdir(parents=True, exist_ok=True)
        elif word == "analyze":
            output = next(a for a in args if a.startswith("--output="))
            if self.sarif is not None:
                shutil.copy(self.sarif, output.split("=", 1)[1])
        return ""


class FakeChecker:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.checked: list[RepositoryReference] = []

    async def check(self, ref: RepositoryReference) -> None:
        self.checked.append(ref)
        if self.error is not None:
            raise self.error


@pytest.fixture
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_sarif(fixtures_dir: Path) -> Path:
    return fixtures_dir / "sample.sarif"


@pytest.fixture
def hello_world() -> RepositoryReference:
    return RepositoryReference(owner="octocat", name="Hello-World")


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path
