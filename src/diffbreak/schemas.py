"""Pydantic models defining the data flowing through the analysis pipeline.

These schemas are the single source of truth for:
- The request/response bodies of the HTTP API
- The evidence bundle serialized into the model prompt
- The contract the model reply is validated against

Key design decisions:
- Wire names are camelCase (``fromTag``, ``behaviorChanges``); Python
  attributes stay snake_case via an alias generator
- The output contract never has a missing array: absent or ``null``
  collections validate to ``[]``
- Enum-like strings in the model reply (``severity``, ``confidence``,
  ``kind``) are plain strings and pass through unchecked
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import model_validator
from pydantic.alias_generators import to_camel

DEFAULT_MAX_RELEASES = 30
MIN_RELEASES = 1
MAX_RELEASES = 60


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Mode(str, Enum):
    """How much evidence to collect.

    FAST: commit titles and release notes only
    DEEP: hash-prefixed commit titles plus the changed file list
    """

    FAST = "fast"
    DEEP = "deep"


class RiskLevel(str, Enum):
    """Risk bucket derived from the numeric score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Repository identity
# ---------------------------------------------------------------------------


class RepoIdentity(BaseModel):
    """Canonical owner/name pair resolved from a repository URL."""

    model_config = ConfigDict(frozen=True)

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


# ---------------------------------------------------------------------------
# Evidence bundle (prompt input)
# ---------------------------------------------------------------------------


class ReleaseNote(BaseModel):
    """A single release's notes. ``body`` is truncated upstream."""

    tag: str
    body: str = ""


class ComparisonData(BaseModel):
    """What the aggregator collected for one tag window.

    ``changed_files`` is ``None`` in fast mode and a (possibly empty) list
    in deep mode.
    """

    release_notes: list[ReleaseNote] = Field(default_factory=list)
    commit_titles: list[str] = Field(default_factory=list)
    changed_files: list[str] | None = None


class EvidenceBundle(_CamelModel):
    """Everything the model gets to see, serialized into the prompt."""

    repo: str
    from_tag: str = Field(..., alias="from")
    to_tag: str = Field(..., alias="to")
    release_notes: list[ReleaseNote] = Field(default_factory=list)
    commit_titles: list[str] = Field(default_factory=list)
    changed_files: list[str] | None = None

    def to_json(self) -> str:
        """Canonical compact JSON; ``changedFiles`` is omitted when absent."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Output contract
# ---------------------------------------------------------------------------


class _ContractModel(_CamelModel):
    """Base for everything parsed out of the model reply.

    A JSON ``null`` is treated the same as an absent key, so the field
    default (an empty list, empty string or nested default) applies.
    """

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class RiskInfo(_ContractModel):
    level: str = ""
    score: int = 0
    confidence: str = ""
    reasons: list[str] = Field(default_factory=list)


class GroupedSummary(_ContractModel):
    title: str = ""
    items: list[str] = Field(default_factory=list)


class SummaryInfo(_ContractModel):
    highlights: list[str] = Field(default_factory=list)
    grouped: list[GroupedSummary] = Field(default_factory=list)


class EvidenceLink(_ContractModel):
    """Evidence reference nested under a breaker, change or step."""

    label: str = ""
    url: str = ""


class Breaker(_ContractModel):
    title: str = ""
    severity: str = ""
    reason: str = ""
    evidence: list[EvidenceLink] = Field(default_factory=list)


class BehaviorChange(_ContractModel):
    title: str = ""
    reason: str = ""
    evidence: list[EvidenceLink] = Field(default_factory=list)


class UpgradeStep(_ContractModel):
    step: str = ""
    why: str = ""
    evidence: list[EvidenceLink] = Field(default_factory=list)


class EvidenceItem(_ContractModel):
    """Top-level evidence entry; ``kind`` is release|pr|compare|commit."""

    label: str = ""
    url: str = ""
    kind: str = ""


class RepoMeta(_ContractModel):
    url: str = ""


class MetaInfo(_ContractModel):
    repo: RepoMeta = Field(default_factory=RepoMeta)
    from_tag: str = ""
    to_tag: str = ""
    generated_at: str = ""


class AnalysisResponse(_ContractModel):
    """Structured upgrade analysis returned by ``POST /api/analyze``.

    This mirrors what the model is asked to produce. After normalization
    every list is present and ``risk.level`` agrees with ``risk.score``.
    """

    risk: RiskInfo = Field(default_factory=RiskInfo)
    summary: SummaryInfo = Field(default_factory=SummaryInfo)
    breakers: list[Breaker] = Field(default_factory=list)
    behavior_changes: list[BehaviorChange] = Field(default_factory=list)
    upgrade_steps: list[UpgradeStep] = Field(default_factory=list)
    evidence: list[EvidenceItem] = Field(default_factory=list)
    meta: MetaInfo = Field(default_factory=MetaInfo)


# ---------------------------------------------------------------------------
# API request/response bodies
# ---------------------------------------------------------------------------


class Limits(_CamelModel):
    max_releases: int = 0

    @field_validator("max_releases", mode="before")
    @classmethod
    def null_is_default(cls, value: Any) -> Any:
        return 0 if value is None else value


class AnalyzeRequest(_CamelModel):
    """Input payload for ``POST /api/analyze``.

    Attributes:
        repo_url: ``https://github.com/<owner>/<name>``
        from_tag: Tag the caller is upgrading from
        to_tag: Tag the caller is upgrading to
        mode: ``fast`` or ``deep``
        limits: ``maxReleases`` bounds the release notes collected
    """

    repo_url: str
    from_tag: str
    to_tag: str
    mode: Mode
    limits: Limits = Field(default_factory=Limits)

    @field_validator("limits", mode="before")
    @classmethod
    def null_limits(cls, value: Any) -> Any:
        return Limits() if value is None else value

    @field_validator("repo_url")
    @classmethod
    def strip_repo_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("repoUrl is required")
        return value

    @field_validator("from_tag", "to_tag")
    @classmethod
    def require_tag(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("tag is required")
        return value

    @property
    def max_releases(self) -> int:
        """``limits.maxReleases`` with 0 meaning default, clamped to 1..60."""
        value = self.limits.max_releases or DEFAULT_MAX_RELEASES
        return max(MIN_RELEASES, min(MAX_RELEASES, value))


class RepoInfo(_CamelModel):
    url: str
    owner: str
    name: str
    provider: str = "github"


class DetectResponse(_CamelModel):
    """Response of ``GET /detect``: every tag of the repository."""

    repo: RepoInfo
    tags: list[str] = Field(default_factory=list)
    default_from: str | None = None
    default_to: str | None = None


class ErrorResponse(BaseModel):
    error: str
