"""
Structured logging for Trust Verifier services.
structlog runs on top of stdlib logging so library records (httpx, redis) share
one format. Records go to stderr; stdout is reserved for CLI output.
"""
from __future__ import annotations

import logging
import sys
from typing import Any, ContextManager, Optional

import structlog
from shared.config import Environment, get_settings

_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "redis")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(json_logs: bool) -> structlog.types.Processor:
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def setup_logging(
    service_name: str,
    extra_context: dict[str, Any] | None = None,
    level: Optional[str] = None,
    json_logs: Optional[bool] = None,
) -> None:
    """
    Configure structured logging for a process.

    Args:
        service_name: Bound to every record as `service` (verifier, cli, worker).
        extra_context: Additional static fields bound to every record.
        level: Overrides TV_LOG_LEVEL.
        json_logs: Force JSON (True) or console (False); defaults to JSON outside dev.
    """
    settings = get_settings()
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    if json_logs is None:
        json_logs = settings.environment != Environment.DEV

    shared = _shared_processors()
    structlog.configure(
        processors=[
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    final: list[structlog.types.Processor] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if json_logs:
        final.append(structlog.processors.format_exc_info)
    final.append(_renderer(json_logs))
    formatter = structlog.stdlib.ProcessorFormatter(processors=final, foreign_pre_chain=shared)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        service=service_name,
        instance_id=settings.instance_id,
        **(extra_context or {}),
    )


def log_context(**fields: Any) -> ContextManager[None]:
    """Bind fields to every record emitted inside the block (e.g. job_id)."""
    return structlog.contextvars.bound_contextvars(**fields)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named structured logger."""
    return structlog.get_logger(name)
