"""Comparison aggregator: build the evidence for one tag window.

Given two tags this collects:
- One-line commit titles from a single compare call
- Changed file paths (deep mode only)
- Release notes for the releases between the two tags

Release listings are not ordered relative to the requested from/to, so
the release scan looks for whichever boundary tag shows up first and then
collects until it meets the other one (see ``ReleaseWindow``).
"""

from __future__ import annotations

from contextlib import aclosing
from enum import Enum
from typing import Any

from diffbreak.context.github import GitHubClientProtocol
from diffbreak.logging_config import get_logger
from diffbreak.schemas import ComparisonData, Mode, ReleaseNote, RepoIdentity

logger = get_logger(__name__)

MAX_RELEASE_BODY = 5000
SHORT_SHA_LENGTH = 7


class WindowState(str, Enum):
    SEEKING = "seeking"
    COLLECTING = "collecting"


class ReleaseWindow:
    """Single-pass scanner over releases in provider order.

    SEEKING: entries are skipped until one matches ``from_tag`` or
    ``to_tag``. That entry starts the window and the other tag becomes the
    end boundary.

    COLLECTING: every entry is kept (body truncated) until the end boundary
    is kept or ``max_releases`` notes are held, whichever comes first.

    ``offer`` returns True once the window is closed; no entry is accepted
    after that, so the note count can never exceed ``max_releases``.
    """

    def __init__(self, from_tag: str, to_tag: str, max_releases: int) -> None:
        self.from_tag = from_tag
        self.to_tag = to_tag
        self.max_releases = max_releases
        self.state = WindowState.SEEKING
        self.end_tag: str | None = None
        self.notes: list[ReleaseNote] = []
        self.closed = False

    def offer(self, tag: str, body: str) -> bool:
        if self.closed:
            return True

        if self.state is WindowState.SEEKING:
            if tag == self.from_tag:
                self.end_tag = self.to_tag
            elif tag == self.to_tag:
                self.end_tag = self.from_tag
            else:
                return False
            self.state = WindowState.COLLECTING

        self.notes.append(ReleaseNote(tag=tag, body=body[:MAX_RELEASE_BODY]))
        if tag == self.end_tag or len(self.notes) >= self.max_releases:
            self.closed = True
        return self.closed


def commit_titles(commits: list[Any], mode: Mode) -> list[str]:
    """First line of each commit message; ``<sha7>: `` prefixed in deep mode.

    Commits with an empty message are skipped.
    """
    titles: list[str] = []
    for entry in commits:
        if not isinstance(entry, dict):
            continue
        commit = entry.get("commit")
        if not isinstance(commit, dict):
            continue
        message = (commit.get("message") or "").strip()
        if not message:
            continue
        title = message.split("\n", 1)[0].strip()
        if mode == Mode.DEEP:
            sha = (entry.get("sha") or "")[:SHORT_SHA_LENGTH]
            if sha:
                title = f"{sha}: {title}"
        titles.append(title)
    return titles


def changed_files(files: list[Any]) -> list[str]:
    """Changed file paths, deduplicated, in first-seen order."""
    seen: set[str] = set()
    paths: list[str] = []
    for entry in files:
        if not isinstance(entry, dict):
            continue
        name = entry.get("filename") or ""
        if not name or name in seen:
            continue
        seen.add(name)
        paths.append(name)
    return paths


def clamp_release_notes(notes: list[ReleaseNote], max_releases: int) -> list[ReleaseNote]:
    """Bound ``notes`` to ``max_releases``; a non-positive bound means no bound."""
    if max_releases <= 0:
        return notes
    return notes[:max_releases]


async def fetch_release_notes(
    client: GitHubClientProtocol,
    identity: RepoIdentity,
    from_tag: str,
    to_tag: str,
    max_releases: int,
) -> list[ReleaseNote]:
    """Walk release pages in order, feeding each release to a ``ReleaseWindow``.

    Stops fetching as soon as the window closes, even mid-page. If neither
    tag is ever listed, every page is read and the result may be empty.
    """
    window = ReleaseWindow(from_tag, to_tag, max_releases)
    async with aclosing(client.iter_release_pages(identity)) as pages:
        async for page in pages:
            for release in page:
                if not isinstance(release, dict):
                    continue
                tag = (release.get("tag_name") or "").strip()
                if not tag:
                    continue
                if window.offer(tag, release.get("body") or ""):
                    return clamp_release_notes(window.notes, max_releases)

    return clamp_release_notes(window.notes, max_releases)


async def fetch_comparison_data(
    client: GitHubClientProtocol,
    identity: RepoIdentity,
    from_tag: str,
    to_tag: str,
    max_releases: int,
    mode: Mode,
) -> ComparisonData:
    """Collect release notes, commit titles and (deep) changed files.

    Any GitHub failure aborts the whole aggregation; no partial data is
    returned.
    """
    compare = await client.compare(identity, from_tag, to_tag)

    titles = commit_titles(compare.get("commits") or [], mode)
    files = changed_files(compare.get("files") or []) if mode == Mode.DEEP else None

    notes = await fetch_release_notes(client, identity, from_tag, to_tag, max_releases)

    logger.debug(
        "comparison_collected",
        repo=identity.full_name,
        commits=len(titles),
        files=None if files is None else len(files),
        releases=len(notes),
    )
    return ComparisonData(release_notes=notes, commit_titles=titles, changed_files=files)
