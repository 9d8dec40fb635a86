"""Closed error taxonomy shared by every component.

Every upstream call site funnels its failures into one of these kinds so
callers only ever branch on the taxonomy, never on transport details.

The API layer maps each kind to a distinct HTTP status and a short, fixed
message. Internal error text is logged, never returned to the client.
"""

from __future__ import annotations

from enum import Enum

import httpx


class ErrorKind(str, Enum):
    """Identity of a failure, independent of where it happened."""

    INVALID_REPO_URL = "invalid_repo_url"
    REPO_NOT_FOUND = "repo_not_found"
    RATE_LIMITED = "rate_limited"
    TIMED_OUT = "timed_out"
    MODEL_RESPONSE_INVALID = "model_response_invalid"
    INTERNAL = "internal"


# (HTTP status, user-facing message) per kind
ERROR_RESPONSES: dict[ErrorKind, tuple[int, str]] = {
    ErrorKind.INVALID_REPO_URL: (400, "invalid repoUrl"),
    ErrorKind.REPO_NOT_FOUND: (404, "repository not found"),
    ErrorKind.RATE_LIMITED: (429, "github rate limit exceeded"),
    ErrorKind.TIMED_OUT: (504, "request timed out"),
    ErrorKind.MODEL_RESPONSE_INVALID: (502, "model returned invalid JSON"),
    ErrorKind.INTERNAL: (500, "internal server error"),
}


class DiffBreakError(Exception):
    """Base class for all domain errors. Subclasses pin the ``kind``."""

    kind: ErrorKind = ErrorKind.INTERNAL

    @property
    def status_code(self) -> int:
        return ERROR_RESPONSES[self.kind][0]

    @property
    def public_message(self) -> str:
        return ERROR_RESPONSES[self.kind][1]


class InvalidRepoURLError(DiffBreakError):
    kind = ErrorKind.INVALID_REPO_URL

    def __init__(self, message: str = "invalid github repo url") -> None:
        super().__init__(message)


class RepoNotFoundError(DiffBreakError):
    kind = ErrorKind.REPO_NOT_FOUND

    def __init__(self, message: str = "repo not found") -> None:
        super().__init__(message)


class RateLimitedError(DiffBreakError):
    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str = "github rate limited") -> None:
        super().__init__(message)


class TimedOutError(DiffBreakError):
    kind = ErrorKind.TIMED_OUT

    def __init__(self, message: str = "deadline exceeded") -> None:
        super().__init__(message)


class ModelResponseInvalidError(DiffBreakError):
    kind = ErrorKind.MODEL_RESPONSE_INVALID


class InternalError(DiffBreakError):
    kind = ErrorKind.INTERNAL


def map_github_error(exc: Exception) -> Exception:
    """Map a provider error into the taxonomy.

    404 becomes ``RepoNotFoundError`` and 403 (GitHub's rate-limit signal)
    becomes ``RateLimitedError``. Anything else is returned unchanged.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 404:
            return RepoNotFoundError()
        if status == 403:
            return RateLimitedError()
    return exc


def status_label(exc: BaseException | None) -> str:
    """Short outcome label for metrics."""
    if exc is None:
        return "ok"
    if isinstance(exc, RepoNotFoundError):
        return "not_found"
    if isinstance(exc, RateLimitedError):
        return "rate_limited"
    if isinstance(exc, TimedOutError):
        return "timeout"
    return "error"
