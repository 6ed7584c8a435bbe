from __future__ import annotations

import logging
import sys
from typing import Any

import orjson
import structlog


def _json_serializer(obj: Any, default: Any) -> str:
    """
    JSON serializer for structured logs.

    Patch paths are tuples and may hold non-string keys, so non-str dict
    keys are allowed and anything orjson cannot encode falls back to repr.
    """
    return orjson.dumps(
        obj,
        default=lambda o: default(o) if default is not None else repr(o),
        option=orjson.OPT_NON_STR_KEYS,
    ).decode("utf-8")


def configure_logging(*, level: str = "INFO", json: bool = True) -> None:
    """
    Configure structured logging for the entire application.

    This must be called exactly once at process startup. Library users that
    never call it get structlog's defaults.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    renderer: Any
    if json:
        renderer = structlog.processors.JSONRenderer(serializer=_json_serializer)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    processors: list[Any] = [
        # Merge context variables (store, request, etc.)
        structlog.contextvars.merge_contextvars,

        # Standard metadata
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),

        # Exception handling
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,

        renderer,
    ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )

    # Ensure stdlib logging flows through the same output
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def bind_context(**values: Any) -> None:
    """
    Bind contextual information to all future log entries.

    Example:
        bind_context(store="todos", component="api")
    """
    structlog.contextvars.bind_contextvars(**values)


def clear_context() -> None:
    """
    Clear all bound logging context.
    """
    structlog.contextvars.clear_contextvars()
