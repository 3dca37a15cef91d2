"""Exception types and user-facing error messages."""

from __future__ import annotations

import re

PRIVATE_REPO_MESSAGE = (
    "This repository appears to be private or requires authentication. "
    "Only public GitHub repositories are supported right now."
)
NOT_FOUND_MESSAGE = (
    "Repository not found. Please check the URL and make sure the "
    "repository is public."
)
RATE_LIMIT_MESSAGE = "GitHub rate limit reached. Please try again in a few minutes."
GENERIC_FAILURE_MESSAGE = "Scan failed. Please try again."

_AUTH_PROMPT_RE = re.compile(
    r"could not read Username for 'https://github\.com'|terminal prompts disabled",
    re.IGNORECASE,
)
_NOT_FOUND_RE = re.compile(r"Repository not found|not found", re.IGNORECASE)
_RATE_LIMIT_RE = re.compile(r"rate limit", re.IGNORECASE)

# Lines of raw tool output kept when no known signature matches
_EXCERPT_LINES = 6


class ReposcanError(Exception):
    """Base exception for reposcan failures."""


class InvalidReferenceError(ReposcanError):
    """Raised when a repository URL is malformed or not on a supported host."""


class AccessError(ReposcanError):
    """Raised when a repository is private or does not exist."""


class RateLimitedError(ReposcanError):
    """Raised when the remote pre-check is throttled."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class ToolExecutionError(ReposcanError):
    """Raised when an external tool fails, times out, or floods its output."""

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode


class MalformedReportError(ReposcanError):
    """Raised when an analysis report is missing or cannot be parsed."""


class StoreError(ReposcanError):
    """Raised when the scan state store cannot apply a write."""


class QueueFullError(ReposcanError):
    """Raised when no more scans can be admitted."""


def friendly_error(message: str | None) -> str:
    """Reduce a raw failure message to something safe to show a user."""
    msg = str(message or "")
    if _AUTH_PROMPT_RE.search(msg):
        return PRIVATE_REPO_MESSAGE
    if _NOT_FOUND_RE.search(msg):
        return NOT_FOUND_MESSAGE
    if _RATE_LIMIT_RE.search(msg):
        return RATE_LIMIT_MESSAGE
    excerpt = " ".join(msg.split("\n")[:_EXCERPT_LINES]).strip()
    return excerpt or GENERIC_FAILURE_MESSAGE
