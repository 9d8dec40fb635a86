"""Request counters and latency histograms.

Components never touch a global registry. They receive a
``RequestObserver`` and report one outcome plus a duration per upstream
call, which keeps them testable without a metrics backend.

Usage:
    observer = PrometheusObserver()
    client = GitHubClient(observer=observer)
    ...
    body, content_type = observer.render()
"""

from __future__ import annotations

from typing import Protocol

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class RequestObserver(Protocol):
    """Sink for per-call outcomes. Implementations must be safe to call
    from concurrent requests."""

    def observe_github(self, operation: str, status: str, seconds: float) -> None: ...

    def observe_ollama(self, status: str, seconds: float) -> None: ...

    def observe_http(self, handler: str, method: str, status: int, seconds: float) -> None: ...


class NullObserver:
    """Discards every observation."""

    def observe_github(self, operation: str, status: str, seconds: float) -> None:
        pass

    def observe_ollama(self, status: str, seconds: float) -> None:
        pass

    def observe_http(self, handler: str, method: str, status: int, seconds: float) -> None:
        pass


class PrometheusObserver:
    """Prometheus-backed observer with its own registry."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()

        self.http_requests = Counter(
            "http_requests_total",
            "Total number of HTTP requests received",
            ["handler", "method", "status"],
            registry=self.registry,
        )
        self.http_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["handler", "method", "status"],
            registry=self.registry,
        )
        self.github_requests = Counter(
            "github_requests_total",
            "Total number of GitHub API requests",
            ["operation", "status"],
            registry=self.registry,
        )
        self.github_duration = Histogram(
            "github_request_duration_seconds",
            "GitHub API request latency in seconds",
            ["operation", "status"],
            registry=self.registry,
        )
        self.ollama_requests = Counter(
            "ollama_requests_total",
            "Total number of Ollama API requests",
            ["status"],
            registry=self.registry,
        )
        self.ollama_duration = Histogram(
            "ollama_request_duration_seconds",
            "Ollama API request latency in seconds",
            ["status"],
            registry=self.registry,
        )

    def observe_github(self, operation: str, status: str, seconds: float) -> None:
        self.github_requests.labels(operation, status).inc()
        self.github_duration.labels(operation, status).observe(seconds)

    def observe_ollama(self, status: str, seconds: float) -> None:
        self.ollama_requests.labels(status).inc()
        self.ollama_duration.labels(status).observe(seconds)

    def observe_http(self, handler: str, method: str, status: int, seconds: float) -> None:
        label = str(status)
        self.http_requests.labels(handler, method, label).inc()
        self.http_duration.labels(handler, method, label).observe(seconds)

    def render(self) -> tuple[bytes, str]:
        """Text exposition of the registry and its content type."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
