"""Resolve a user-supplied repository URL into an owner/name pair.

Only ``https://github.com/<owner>/<name>`` is accepted, with an optional
trailing slash or ``.git`` suffix. Enterprise and self-hosted hosts,
other schemes and any other path shape are rejected.
"""

from __future__ import annotations

from urllib.parse import urlsplit

from diffbreak.errors import InvalidRepoURLError
from diffbreak.schemas import RepoIdentity

GITHUB_HOST = "github.com"


def parse_repo_url(repo_url: str) -> RepoIdentity:
    """Parse ``repo_url`` into a ``RepoIdentity``.

    Raises:
        InvalidRepoURLError: For empty input, a non-https scheme, a host
            other than github.com, or a path that is not exactly two
            non-empty segments.
    """
    repo_url = (repo_url or "").strip()
    if not repo_url:
        raise InvalidRepoURLError()

    try:
        parts = urlsplit(repo_url)
    except ValueError as exc:
        raise InvalidRepoURLError() from exc

    if parts.scheme != "https":
        raise InvalidRepoURLError()
    # user info is not part of the host; a port is
    host = parts.netloc.rpartition("@")[2]
    if host.lower() != GITHUB_HOST:
        raise InvalidRepoURLError()

    path = parts.path.strip("/")
    if not path:
        raise InvalidRepoURLError()
    path = path.removesuffix(".git")

    segments = path.split("/")
    if len(segments) != 2:
        raise InvalidRepoURLError()

    owner, name = segments
    if not owner or not name:
        raise InvalidRepoURLError()

    return RepoIdentity(owner=owner, name=name)
