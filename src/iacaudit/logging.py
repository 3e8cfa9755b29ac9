"""structlog-backed rendering for the stdlib loggers used across iacaudit.

Modules log through ``logging.getLogger(__name__)``; this module only decides
how those records are rendered (console in dev, JSON in prod) and binds
per-run context such as platform and owner.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TextIO

import structlog

from iacaudit.config import Settings, get_settings

# HTTP client libraries log every request at INFO/DEBUG
_NOISY_LOGGERS = ("httpx", "httpcore")


def _shared_processors(json_output: bool) -> list[structlog.types.Processor]:
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors.append(structlog.processors.format_exc_info)
    return processors


def configure_logging(
    level: str | None = None,
    json_output: bool | None = None,
    *,
    settings: Settings | None = None,
    stream: TextIO | None = None,
) -> None:
    """Install a single structlog formatter on the root logger.

    ``level`` defaults to LOG_LEVEL and ``json_output`` to ``IACAUDIT_ENV == "prod"``.
    """
    settings = settings or get_settings()
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    if json_output is None:
        json_output = settings.app_env.strip().lower() == "prod"

    shared = _shared_processors(json_output)
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


@contextmanager
def log_context(**kwargs: object) -> Iterator[None]:
    """Bind ``kwargs`` for the duration of the block, restoring prior context after."""
    tokens = structlog.contextvars.bind_contextvars(**kwargs)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
