"""Structured logging configuration for exposure-chain.

Modules log through the standard library (``logging.getLogger(__name__)``);
:func:`configure_logging` routes those records through structlog so that a run
can bind its report id once and have it appear on every line.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, TextIO

import structlog

if TYPE_CHECKING:
    from structlog.typing import Processor

_configured = False
_handler: logging.Handler | None = None


def configure_logging(
    level: str = "INFO",
    format: str = "json",
    stream: TextIO | None = None,
) -> None:
    """Configure structured logging.

    Installs a single root handler whose formatter runs standard library
    records through the same processors as structlog loggers, so context
    bound with :func:`bind_context` reaches every line. Calling it again
    replaces that handler instead of adding another.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format: "json" for production, "text" for colored console output.
        stream: Output stream. Defaults to stdout.
    """
    global _configured, _handler

    log_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Processor
    if format.lower() == "json":
        final_processors: list[Processor] = [structlog.processors.format_exc_info]
        renderer = structlog.processors.JSONRenderer()
    else:
        final_processors = []
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *final_processors,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)
    root.addHandler(handler)
    root.setLevel(log_level)
    _handler = handler

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()

    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: object) -> None:
    """Bind context variables (e.g. ``report_id``) to subsequent log lines."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


logger = get_logger("exposure_chain")
