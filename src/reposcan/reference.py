"""Parse and normalize user-supplied GitHub repository references."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from reposcan.errors import InvalidReferenceError

SUPPORTED_HOST = "github.com"

USAGE_MESSAGE = "Invalid GitHub URL. Use format: https://github.com/owner/repo"

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_GIT_SUFFIX_RE = re.compile(r"\.git$", re.IGNORECASE)
# Characters GitHub allows in owner and repository names
_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass(frozen=True)
class RepositoryReference:
    """A canonical (owner, name, URL) triple for a repository."""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def canonical_url(self) -> str:
        return f"https://{SUPPORTED_HOST}/{self.owner}/{self.name}"


def parse(value: str | None) -> RepositoryReference:
    """Parse a repository locator such as ``github.com/owner/repo.git``.

    A missing scheme defaults to ``https://``. Anything after the repository
    segment (``/tree/main/...``), the query string and the fragment are
    ignored. Raises :class:`InvalidReferenceError` for anything that does not
    identify a repository on GitHub.
    """
    raw = (value or "").strip()
    if not raw:
        raise InvalidReferenceError("Repository URL is required.")
    if not _SCHEME_RE.match(raw):
        raw = f"https://{raw}"

    try:
        parts = urlsplit(raw)
        hostname = parts.hostname
        parts.port  # noqa: B018 (raises ValueError on a malformed port)
    except ValueError as e:
        raise InvalidReferenceError(USAGE_MESSAGE) from e

    if not hostname:
        raise InvalidReferenceError(USAGE_MESSAGE)
    if hostname.lower() != SUPPORTED_HOST:
        raise InvalidReferenceError("Only GitHub URLs are supported.")

    segments = [s for s in parts.path.split("/") if s]
    if len(segments) < 2:
        raise InvalidReferenceError(USAGE_MESSAGE)

    owner = segments[0]
    name = _GIT_SUFFIX_RE.sub("", segments[1])
    for segment in (owner, name):
        if not segment or segment in (".", "..") or not _SEGMENT_RE.match(segment):
            raise InvalidReferenceError(USAGE_MESSAGE)

    return RepositoryReference(owner=owner, name=name)


def is_valid(value: str | None) -> bool:
    """Return True if *value* parses as a GitHub repository reference."""
    try:
        parse(value)
    except InvalidReferenceError:
        return False
    return True
