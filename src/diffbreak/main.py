"""FastAPI application for the upgrade analysis service.

This module sets up the web API layer that wraps the analyzer. It provides:
- GET /detect?repo=... - List the tags of a repository
- POST /api/analyze - Analyze the risk of upgrading between two tags
- GET /metrics - Prometheus exposition
- GET /health - Health check for load balancers and monitoring

Architecture notes:
- FastAPI handles HTTP concerns (routing, validation, serialization)
- The analyzer handles the pipeline (GitHub, prompt, model, normalization)
- Domain errors carry their kind; one handler maps kinds to statuses

To run locally:
    diffbreak --llm http://localhost:11434 --port 8080

or, with settings from the environment only:
    uvicorn diffbreak.main:create_app --factory --port 8080
"""

from __future__ import annotations

import argparse
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

from diffbreak.agent import UpgradeAnalyzer, build_analyzer
from diffbreak.config import Settings, load_settings
from diffbreak.errors import DiffBreakError
from diffbreak.logging_config import get_logger, setup_logging
from diffbreak.metrics import PrometheusObserver, RequestObserver
from diffbreak.schemas import AnalysisResponse, AnalyzeRequest, DetectResponse, ErrorResponse

logger = get_logger(__name__)

# path -> handler label used in logs and metrics
HANDLER_NAMES = {
    "/detect": "detect",
    "/api/analyze": "analyze",
}

DETECT_ERRORS = {status: {"model": ErrorResponse} for status in (400, 404, 429, 500, 504)}
ANALYZE_ERRORS = {status: {"model": ErrorResponse} for status in (400, 404, 429, 500, 502, 504)}


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every handled request and record its status and latency."""

    def __init__(self, app, observer: RequestObserver) -> None:
        super().__init__(app)
        self.observer = observer

    async def dispatch(self, request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        handler = HANDLER_NAMES.get(request.url.path)
        if handler is not None:
            self.observer.observe_http(handler, request.method, response.status_code, duration)
            logger.info(
                "request_completed",
                handler=handler,
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_s=round(duration, 4),
            )
        return response


def create_app(
    settings: Settings | None = None,
    analyzer: UpgradeAnalyzer | None = None,
    observer: PrometheusObserver | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Runtime configuration. Loaded from the environment if None.
        analyzer: Pre-built analyzer (tests inject one with mock transports).
        observer: Metrics sink shared by the middleware and the clients.
    """
    settings = settings or load_settings()
    observer = observer or PrometheusObserver()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # The analyzer is stateless; build it once at startup.
        app.state.analyzer = analyzer if analyzer is not None else build_analyzer(settings, observer)
        yield

    app = FastAPI(
        title="DiffBreak",
        description="What changed and what might break between two release tags",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.observer = observer

    app.add_middleware(RequestLoggingMiddleware, observer=observer)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.allowed_origin],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )

    # -----------------------------------------------------------------------
    # Error Handling
    # -----------------------------------------------------------------------

    @app.exception_handler(DiffBreakError)
    async def diffbreak_error_handler(request: Request, exc: DiffBreakError) -> JSONResponse:
        """Map a domain error to its status and fixed message."""
        if exc.status_code >= 500 and exc.status_code != 504:
            logger.error("request_failed", kind=exc.kind.value, error=str(exc))
        else:
            logger.warning("request_failed", kind=exc.kind.value)
        return error_response(exc.status_code, exc.public_message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed bodies and missing parameters are a 400, not a 422."""
        errors = exc.errors()
        first = errors[0] if errors else {}
        loc = first.get("loc") or ("request",)
        field = str(loc[-1])
        if first.get("type") == "json_invalid":
            message = "invalid JSON body"
        elif first.get("type") == "missing":
            message = f"{field} is required"
        else:
            message = f"invalid {field}"
        logger.warning("invalid_request", path=request.url.path, message=message)
        return error_response(400, message)

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all: log the details, return a generic message."""
        logger.error("unhandled_error", error=str(exc), exc_info=True)
        return error_response(500, "internal server error")

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/metrics")
    async def metrics() -> Response:
        body, content_type = observer.render()
        return Response(content=body, media_type=content_type)

    @app.get(
        "/detect",
        response_model=DetectResponse,
        response_model_exclude_none=True,
        responses=DETECT_ERRORS,
    )
    async def detect(request: Request, repo: str = Query(...)) -> DetectResponse:
        """Return every tag of the repository at ``repo``."""
        analyzer_: UpgradeAnalyzer = request.app.state.analyzer
        return await analyzer_.detect(repo)

    @app.post("/api/analyze", response_model=AnalysisResponse, responses=ANALYZE_ERRORS)
    async def analyze(body: AnalyzeRequest, request: Request) -> AnalysisResponse:
        """Analyze what changed and what might break between two tags."""
        analyzer_: UpgradeAnalyzer = request.app.state.analyzer
        return await analyzer_.analyze(body)

    return app


def serve() -> None:
    """Console entry point: parse flags and run the server with uvicorn."""
    import uvicorn

    parser = argparse.ArgumentParser(description="DiffBreak upgrade analysis service")
    parser.add_argument("--llm", help="Ollama base URL (e.g. http://localhost:11434)")
    parser.add_argument("--port", type=int, help="port to listen on")
    parser.add_argument("--interface", help="interface to listen on")
    parser.add_argument("--github", help="GitHub access token to evade rate limits a bit")
    parser.add_argument("--config", help="Path to a YAML settings file")
    args = parser.parse_args()

    settings = load_settings(args.config)
    if args.llm:
        settings.ollama_url = args.llm
    if args.port:
        settings.port = args.port
    if args.interface:
        settings.host = args.interface
    if args.github:
        settings.github_token = args.github

    setup_logging(environment=settings.environment, log_level=settings.log_level)
    logger.info("server_starting", host=settings.host, port=settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    serve()
