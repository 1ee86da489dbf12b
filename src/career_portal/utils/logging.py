"""Structured logging configuration using structlog."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import structlog
from rich.logging import RichHandler

from career_portal.config import settings


def _level(name: Optional[str]) -> int:
    return getattr(logging, (name or settings.log_level).upper(), logging.INFO)


def configure_logging(level: Optional[str] = None, console: Optional[bool] = None) -> None:
    """Configure structured logging with rich output.

    Args:
        level: Log level name, defaults to ``settings.log_level``
        console: Human-readable rendering instead of JSON lines,
            defaults to ``settings.debug``
    """
    log_level = _level(level)
    console = settings.debug if console is None else console

    # Standard library loggers (uvicorn, asyncio) go through rich
    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=[RichHandler(rich_tracebacks=True, markup=False, show_path=False)],
        force=True,
    )

    renderer = structlog.dev.ConsoleRenderer() if console else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="ISO", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


@contextmanager
def request_context(**values: Any) -> Iterator[None]:
    """Attach ``values`` to every log event emitted inside the block."""
    structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*values)


def log_actor(actor: Any) -> Dict[str, Any]:
    """Create a log context for the actor behind a mutation."""
    if actor is None:
        return {"actor": None}
    return {
        "actor": {
            "id": getattr(actor, "id", None),
            "role": getattr(getattr(actor, "role", None), "value", None),
            "organization_id": getattr(actor, "organization_id", None),
        }
    }
