"""Structured logging for dtinject.

JSON lines by default, a colorized console renderer when
``DTINJECT_OBSERVABILITY_LOG_FORMAT=console``. Logs go to stderr; stdout
belongs to the CLI, which prints the mutated pod there.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from dtinject.config.settings import ObservabilitySettings


def _enum_values(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Render enum fields (outcomes, reasons, volume types) by value."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def configure_logging(
    settings: ObservabilitySettings | None = None,
    *,
    verbose: bool = False,
    service_name: str = "dtinject",
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        settings: Observability settings; defaults are used when omitted.
        verbose: Force DEBUG regardless of the configured level.
        service_name: Bound to every log entry as ``service``.
    """
    if settings is None:
        from dtinject.config.settings import ObservabilitySettings

        settings = ObservabilitySettings()

    level = logging.DEBUG if verbose else getattr(logging, settings.log_level)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _enum_values,
    ]
    if settings.log_format == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    # kubernetes logs request bodies, including secret data, at DEBUG
    for name in ("kubernetes", "urllib3"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def admission_context(pod: str, namespace: str, **extra: Any) -> Iterator[None]:
    """Bind the admitted pod to every entry logged inside the block.

    Example:
        with admission_context("app-7d9f", "shop"):
            log.info("secret_replicated", secret="dynatrace-bootstrapper-config")
    """
    with structlog.contextvars.bound_contextvars(pod=pod, namespace=namespace, **extra):
        yield
