"""Validate and normalize the model reply into the output contract.

The reply is untrusted: it may be empty, not JSON, partially filled, or
internally inconsistent. After normalization:
- ``risk.score`` is within [0, 100]
- ``risk.level`` is the bucket implied by the score, whatever the model said
- every array field is present (``[]`` when absent or null)

Enum-like strings (``severity``, ``confidence``, ``kind``) pass through.
"""

from __future__ import annotations

from pydantic import ValidationError

from diffbreak.errors import ModelResponseInvalidError
from diffbreak.schemas import AnalysisResponse, RiskLevel

MIN_SCORE = 0
MAX_SCORE = 100


def clamp_score(score: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, score))


def risk_level_for_score(score: int) -> RiskLevel:
    """Fixed buckets: <=24 low, 25..59 medium, >=60 high."""
    if score <= 24:
        return RiskLevel.LOW
    if score <= 59:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


def validate_and_normalize_response(raw: str | bytes) -> AnalysisResponse:
    """Parse ``raw`` against the contract and normalize it.

    Raises:
        ModelResponseInvalidError: If the reply is empty or is not a JSON
            object matching the response shape.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    raw = raw.strip()
    if not raw:
        raise ModelResponseInvalidError("empty model response")

    try:
        response = AnalysisResponse.model_validate_json(raw)
    except ValidationError as exc:
        raise ModelResponseInvalidError(
            f"model response failed validation ({exc.error_count()} errors)"
        ) from exc

    score = clamp_score(response.risk.score)
    response.risk.score = score
    response.risk.level = risk_level_for_score(score).value
    return response
