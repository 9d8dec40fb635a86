"""Prompt template for the upgrade analysis.

The model gets one instruction string: a fixed analyst persona, the
literal output schema, and the evidence bundle as compact JSON. The
prompt is a pure function of the bundle, so identical evidence always
produces an identical prompt.
"""

from __future__ import annotations

from diffbreak.schemas import EvidenceBundle

OUTPUT_SCHEMA = """{
  "risk": { "level": "low|medium|high", "score": 0-100, "confidence": "low|medium|high", "reasons": ["..."] },
  "summary": { "highlights": ["..."], "grouped": [ { "title": "...", "items": ["..."] } ] },
  "breakers": [ { "title": "...", "severity": "low|medium|high", "reason": "...", "evidence": [ { "label": "...", "url": "..." } ] } ],
  "behaviorChanges": [ { "title": "...", "reason": "...", "evidence": [ { "label": "...", "url": "..." } ] } ],
  "upgradeSteps": [ { "step": "...", "why": "...", "evidence": [ { "label": "...", "url": "..." } ] } ],
  "evidence": [ { "label": "...", "url": "...", "kind": "release|pr|compare|commit" } ],
  "meta": { "repo": { "url": "..." }, "fromTag": "...", "toTag": "...", "generatedAt": "RFC3339 timestamp" }
}"""

PROMPT_TEMPLATE = """You are a release risk analyst. Return ONLY valid JSON matching this schema exactly, with no extra keys and no markdown.
Schema:
{schema}
Input:
{payload}"""


def build_analysis_prompt(bundle: EvidenceBundle) -> str:
    """Build the instruction string for one analysis.

    Args:
        bundle: Release notes, commit titles and optional changed files

    Returns:
        The complete prompt demanding strict JSON output
    """
    return PROMPT_TEMPLATE.format(schema=OUTPUT_SCHEMA, payload=bundle.to_json())
