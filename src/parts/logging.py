"""Structured logging configuration for parts."""

import logging
import sys
import uuid
from typing import Any, Dict

import structlog


def configure_logging(log_level: str = "WARNING", log_format: str = "console") -> None:
    """Configure standard logging and structlog.

    Library modules log through :mod:`logging`; run-level events from the
    change detector go through structlog and carry the bound ``run_id``.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: ``console`` for human readable lines, ``json`` for one JSON object per line
    """
    numeric_level = getattr(logging, log_level.upper(), logging.WARNING)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            _add_run_id,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )


def _add_run_id(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add run_id to log event if available in context."""
    from structlog.contextvars import get_contextvars

    context = get_contextvars()
    if "run_id" in context:
        event_dict["run_id"] = context["run_id"]

    return event_dict


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


def generate_run_id() -> str:
    return uuid.uuid4().hex[:12]


class RunContext:
    """Context manager binding a run ID into the structlog context."""

    def __init__(self, run_id: str | None = None):
        self.run_id = run_id or generate_run_id()
        self.tokens = None

    def __enter__(self):
        from structlog.contextvars import bind_contextvars
        self.tokens = bind_contextvars(run_id=self.run_id)
        return self.run_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        from structlog.contextvars import reset_contextvars
        if self.tokens:
            reset_contextvars(**self.tokens)
