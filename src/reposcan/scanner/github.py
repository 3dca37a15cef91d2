"""Repository existence and visibility pre-check against the GitHub REST API."""

from __future__ import annotations

import logging

import httpx

from reposcan.errors import (
    NOT_FOUND_MESSAGE,
    PRIVATE_REPO_MESSAGE,
    AccessError,
    RateLimitedError,
)
from reposcan.reference import RepositoryReference

logger = logging.getLogger(__name__)

API_HEADERS = {
    "Accept": "application/vnd.github+json",
    "User-Agent": "reposcan",
    "X-GitHub-Api-Version": "2022-11-28",
}


class GitHubAccessChecker:
    """Checks that a repository exists and is public before fetching it.

    Only a definite answer fails the check: a private repository or a 404.
    Throttling raises :class:`RateLimitedError` so the caller can carry on,
    and anything else (other statuses, network errors) is inconclusive and
    left for the fetch step to settle.
    """

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = dict(API_HEADERS)
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def check(self, ref: RepositoryReference) -> None:
        url = f"{self._api_url}/repos/{ref.owner}/{ref.name}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.get(url, headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning("Access check for %s inconclusive: %s", ref.full_name, e)
            return

        if response.status_code == 200:
            try:
                private = bool(response.json().get("private"))
            except (ValueError, AttributeError):
                private = False
            if private:
                raise AccessError(PRIVATE_REPO_MESSAGE)
            return

        if response.status_code == 404:
            raise AccessError(NOT_FOUND_MESSAGE)

        if response.status_code in (403, 429):
            raise RateLimitedError(
                "GitHub rate limit reached",
                retry_after=_retry_after(response),
            )

        logger.warning(
            "Access check for %s returned HTTP %d; continuing",
            ref.full_name,
            response.status_code,
        )


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value:
        try:
            return float(value)
        except ValueError:
            pass
    return None
