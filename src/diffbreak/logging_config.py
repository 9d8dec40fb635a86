"""structlog setup for the service and the command line tool.

The server logs to stdout: JSON lines when ``environment`` is
"production", colored key/value lines otherwise. ``diffbreak-analyze``
prints its result on stdout, so it sends its logs to stderr instead.

Events are snake_case with the request context as keys:

    logger = get_logger(__name__)
    logger.info("analysis_started", repo_url=url, mode="deep")
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, TextIO

import structlog


def setup_logging(
    environment: str | None = None,
    log_level: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """Point structlog (and stdlib logging, used by httpx and uvicorn) at ``stream``.

    Args:
        environment: Falls back to $ENVIRONMENT, then "development".
        log_level: Falls back to $LOG_LEVEL, then "INFO".
        stream: Where log lines go. Defaults to stdout.
    """
    env = environment or os.environ.get("ENVIRONMENT", "development")
    level = getattr(logging, (log_level or os.environ.get("LOG_LEVEL", "INFO")).upper())
    out = stream or sys.stdout

    if env == "production":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=out.isatty())

    # Loggers are not cached, so a later call re-targets module-level loggers too.
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=out),
        cache_logger_on_first_use=False,
    )
    logging.basicConfig(format="%(message)s", stream=out, level=level)


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)
