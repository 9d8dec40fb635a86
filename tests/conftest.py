"""Shared fixtures. No test touches the network: GitHub and Ollama are
simulated with ``httpx.MockTransport`` handlers."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from diffbreak.context.github import GitHubClient
from diffbreak.llm import LLMConfig, OllamaClient
from fakes import OLLAMA_URL, RecordingObserver

Handler = Callable[[httpx.Request], Any]


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def make_github(observer: RecordingObserver) -> Callable[[Handler], GitHubClient]:
    def factory(handler: Handler) -> GitHubClient:
        return GitHubClient(
            token="test-token",
            observer=observer,
            transport=httpx.MockTransport(handler),
        )

    return factory


@pytest.fixture
def make_ollama(observer: RecordingObserver) -> Callable[[Handler], OllamaClient]:
    def factory(handler: Handler) -> OllamaClient:
        return OllamaClient(
            config=LLMConfig(base_url=OLLAMA_URL),
            observer=observer,
            transport=httpx.MockTransport(handler),
        )

    return factory


@pytest.fixture
def sample_reply() -> dict:
    """A well-formed model reply whose level disagrees with its score."""
    return {
        "risk": {"level": "low", "score": 85, "confidence": "medium", "reasons": ["API removed"]},
        "summary": {
            "highlights": ["New config loader"],
            "grouped": [{"title": "Breaking", "items": ["Dropped Python 3.8"]}],
        },
        "breakers": [
            {
                "title": "Removed legacy client",
                "severity": "high",
                "reason": "LegacyClient no longer exported",
                "evidence": [
                    {"label": "v1.1.0", "url": "https://github.com/octo/hello/releases/tag/v1.1.0"}
                ],
            }
        ],
        "behaviorChanges": [],
        "upgradeSteps": [{"step": "Switch to Client", "why": "LegacyClient removed"}],
        "evidence": [
            {
                "label": "compare",
                "url": "https://github.com/octo/hello/compare/v1.0.0...v1.1.0",
                "kind": "compare",
            }
        ],
        "meta": {"repo": {"url": "made-up"}, "fromTag": "x", "toTag": "y", "generatedAt": "never"},
    }
