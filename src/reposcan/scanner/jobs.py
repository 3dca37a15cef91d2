"""Scan job data models — status lifecycle and the job record."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from reposcan.reference import RepositoryReference
from reposcan.scanner.models import FindingsReport


class ScanStatus(enum.Enum):
    """Lifecycle state of a scan job, in pipeline order."""

    QUEUED = "queued"
    CLONING = "cloning"
    DETECTING = "detecting"
    CREATING_DB = "creating_db"
    ANALYZING = "analyzing"
    PARSING = "parsing"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStatus.COMPLETE, ScanStatus.ERROR)

    @property
    def rank(self) -> int:
        # ERROR can follow any state, so it shares the top rank with COMPLETE
        if self is ScanStatus.ERROR:
            return _STATUS_RANK[ScanStatus.COMPLETE]
        return _STATUS_RANK[self]


_STATUS_RANK = {status: i for i, status in enumerate(ScanStatus)}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_scan_id() -> str:
    return uuid.uuid4().hex[:16]


@dataclass(frozen=True)
class ScanJob:
    """The progress record for one scan, as held by a scan store."""

    id: str
    repo_url: str
    repo_name: str
    owner: str
    repo: str
    status: ScanStatus = ScanStatus.QUEUED
    step: str = "Queued"
    language: str | None = None
    results: FindingsReport | None = None
    error: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    @classmethod
    def for_reference(
        cls,
        ref: RepositoryReference,
        scan_id: str | None = None,
        step: str = "Queued",
    ) -> ScanJob:
        return cls(
            id=scan_id or new_scan_id(),
            repo_url=ref.canonical_url,
            repo_name=ref.full_name,
            owner=ref.owner,
            repo=ref.name,
            step=step,
        )

    @property
    def reference(self) -> RepositoryReference:
        return RepositoryReference(owner=self.owner, name=self.repo)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form with camelCase keys and ISO-8601 timestamps."""
        data: dict[str, Any] = {
            "id": self.id,
            "status": self.status.value,
            "step": self.step,
            "repoUrl": self.repo_url,
            "repoName": self.repo_name,
            "owner": self.owner,
            "repo": self.repo,
            "startedAt": self.started_at.isoformat(),
        }
        if self.language is not None:
            data["language"] = self.language
        if self.results is not None:
            data["results"] = self.results.to_dict()
        if self.error is not None:
            data["error"] = self.error
        if self.completed_at is not None:
            data["completedAt"] = self.completed_at.isoformat()
        return data
