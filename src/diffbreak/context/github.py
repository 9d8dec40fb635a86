"""GitHub API client for fetching tag, release and compare data.

This module talks to GitHub's REST API. It gathers:
- Tag names (paginated)
- Releases with their notes (paginated, consumed lazily)
- The commit/file delta between two refs

Design notes:
- Uses httpx for async HTTP requests
- Pages are pulled one at a time through an async generator, so a caller
  that stops early never fetches the remaining pages
- Every request is timed and reported to a ``RequestObserver``
- Errors are mapped into the domain taxonomy at this single call site
- Uses a Protocol so the aggregator doesn't depend on the concrete
  implementation

GitHub API docs: https://docs.github.com/en/rest
"""

from __future__ import annotations

import os
import time
from collections.abc import AsyncIterator
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from diffbreak.errors import (
    InternalError,
    TimedOutError,
    map_github_error,
    status_label,
)
from diffbreak.logging_config import get_logger
from diffbreak.metrics import NullObserver, RequestObserver
from diffbreak.repo_url import parse_repo_url
from diffbreak.schemas import RepoIdentity

logger = get_logger(__name__)

PAGE_SIZE = 100

# ---------------------------------------------------------------------------
# Protocol (Interface)
# ---------------------------------------------------------------------------


class GitHubClientProtocol(Protocol):
    """What the tag lister and the comparison aggregator need from GitHub."""

    async def list_tags(self, identity: RepoIdentity) -> list[str]: ...

    async def compare(self, identity: RepoIdentity, base: str, head: str) -> dict[str, Any]: ...

    def iter_release_pages(self, identity: RepoIdentity) -> AsyncIterator[list[dict[str, Any]]]: ...


# ---------------------------------------------------------------------------
# Concrete Implementation
# ---------------------------------------------------------------------------


class GitHubClient:
    """Real GitHub API client using httpx.

    Usage:
        client = GitHubClient(token="ghp_...")
        tags = await client.list_tags(RepoIdentity(owner="octo", name="hello"))
    """

    BASE_URL = "https://api.github.com"

    def __init__(
        self,
        token: str | None = None,
        observer: RequestObserver | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the GitHub client.

        Args:
            token: GitHub personal access token. Falls back to the
                   GITHUB_TOKEN environment variable; anonymous if neither.
            observer: Receives one observation per request.
            base_url: API root, overridable for tests.
            transport: Custom httpx transport (tests use MockTransport).
        """
        self._token = token or os.environ.get("GITHUB_TOKEN", "")
        self._headers: dict[str, str] = {
            "Accept": "application/vnd.github.v3+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            self._headers["Authorization"] = f"Bearer {self._token}"
        self._observer = observer or NullObserver()
        self._base_url = base_url or self.BASE_URL
        self._transport = transport

    def _http(self) -> httpx.AsyncClient:
        # No client-side timeout: callers bound every call with their own
        # deadline. Renamed or transferred repositories answer with a 301.
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=None,
            follow_redirects=True,
            transport=self._transport,
        )

    async def list_tags(self, identity: RepoIdentity) -> list[str]:
        """Return every tag name in provider order.

        Entries without a name are skipped. A repository without tags
        yields an empty list.
        """
        tags: list[str] = []
        async for page in self.iter_pages(_repo_path(identity, "tags"), "list_tags"):
            for entry in page:
                name = entry.get("name") if isinstance(entry, dict) else None
                if isinstance(name, str):
                    tags.append(name)
        return tags

    async def compare(self, identity: RepoIdentity, base: str, head: str) -> dict[str, Any]:
        """GET /repos/{owner}/{repo}/compare/{base}...{head}"""
        path = _repo_path(identity, f"compare/{quote(base, safe='')}...{quote(head, safe='')}")
        async with self._http() as http:
            _, data = await self._request(http, path, "compare_commits")
        if not isinstance(data, dict):
            raise InternalError("unexpected compare payload")
        return data

    def iter_release_pages(self, identity: RepoIdentity) -> AsyncIterator[list[dict[str, Any]]]:
        return self.iter_pages(_repo_path(identity, "releases"), "list_releases")

    async def iter_pages(self, path: str, operation: str) -> AsyncIterator[list[dict[str, Any]]]:
        """Yield one decoded page at a time until GitHub reports no next page.

        GitHub returns a 'Link' header with next/prev/last URLs for
        paginated responses. The sequence is lazy and cannot be restarted.
        """
        async with self._http() as http:
            next_url: str | None = path
            params: dict[str, int] | None = {"per_page": PAGE_SIZE}
            while next_url:
                resp, page = await self._request(http, next_url, operation, params)
                if not isinstance(page, list):
                    raise InternalError(f"unexpected {operation} payload")
                yield page
                params = None  # the next link already carries the query
                next_url = self._parse_next_link(resp.headers.get("link", ""))

    async def _request(
        self,
        http: httpx.AsyncClient,
        url: str,
        operation: str,
        params: dict[str, int] | None = None,
    ) -> tuple[httpx.Response, Any]:
        start = time.perf_counter()
        # Stays "timeout" only if the awaiting task is cancelled by its deadline.
        status = "timeout"
        try:
            resp = await http.get(url, params=params)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            mapped = map_github_error(exc)
            status = status_label(mapped)
            logger.warning(
                "github_request_failed",
                operation=operation,
                status_code=exc.response.status_code,
            )
            if mapped is exc:
                raise InternalError(
                    f"github {operation} failed: status {exc.response.status_code}"
                ) from exc
            raise mapped from exc
        except httpx.TimeoutException as exc:
            raise TimedOutError() from exc
        except httpx.HTTPError as exc:
            status = "error"
            raise InternalError(f"github {operation} failed: {exc}") from exc
        except ValueError as exc:
            status = "error"
            raise InternalError(f"github {operation} returned invalid JSON") from exc
        else:
            status = "ok"
            return resp, data
        finally:
            self._observer.observe_github(operation, status, time.perf_counter() - start)

    @staticmethod
    def _parse_next_link(link_header: str) -> str | None:
        """Extract the 'next' URL from a GitHub Link header."""
        if not link_header:
            return None
        for part in link_header.split(","):
            if 'rel="next"' in part:
                return part.split(";")[0].strip().strip("<>")
        return None


def _repo_path(identity: RepoIdentity, suffix: str) -> str:
    return f"/repos/{identity.owner}/{identity.name}/{suffix}"


async def get_repo_tags(client: GitHubClientProtocol, repo_url: str) -> list[str]:
    """Resolve ``repo_url`` and list its tags.

    Raises:
        InvalidRepoURLError: Before any request is made, for a bad URL.
        RepoNotFoundError, RateLimitedError: Mapped from GitHub responses.
    """
    identity = parse_repo_url(repo_url)
    return await client.list_tags(identity)
