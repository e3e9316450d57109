"""Structured logging (structlog, JSON to stdout).

Every entry emitted while a request is in flight carries the request
context: request_id, path, method and, once authenticated, user_key.

Session tokens, cookies and provider API keys are never logged; the
`drop_secret_fields` processor removes them if a caller passes one anyway.

Usage:
    from bananapod.logging import get_logger

    logger = get_logger(__name__)
    logger.info("history_record_inserted", history_id=record.id)
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog

CONTEXT_FIELDS = ("request_id", "user_key", "path", "method")
SECRET_FIELDS = frozenset({"api_key", "session_id", "cookie", "authorization", "x-goog-api-key"})

_request_context: ContextVar[dict[str, str] | None] = ContextVar("request_context", default=None)

# Loggers that would otherwise print full provider URLs or duplicate access logs
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def add_request_context(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Merge the current request context into the event."""
    context = _request_context.get()
    if context:
        for key, value in context.items():
            event_dict.setdefault(key, value)
    return event_dict


def drop_secret_fields(logger: Any, method_name: str, event_dict: dict) -> dict:
    for key in SECRET_FIELDS.intersection(event_dict):
        event_dict.pop(key)
    return event_dict


def configure_logging(json_format: bool = True, level: int = logging.INFO) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Args:
        json_format: JSON lines if True, otherwise the colored dev console.
        level: Root log level.
    """
    pre_chain = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_context,
        drop_secret_fields,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer()
                if json_format
                else structlog.dev.ConsoleRenderer(),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_context(request_id: str, **fields: str | None) -> None:
    """Start the logging context for one request.

    Extra fields must be among CONTEXT_FIELDS; None values are skipped.
    """
    context = {"request_id": request_id}
    context.update({k: v for k, v in fields.items() if k in CONTEXT_FIELDS and v is not None})
    _request_context.set(context)


def set_user_key(user_key: str | None) -> None:
    """Attach the authenticated user key to the current request context."""
    context = dict(_request_context.get() or {})
    if user_key is None:
        context.pop("user_key", None)
    else:
        context["user_key"] = user_key
    _request_context.set(context)


def clear_request_context() -> None:
    _request_context.set(None)


def get_request_id() -> str | None:
    """Current request ID, used to stamp error envelopes."""
    context = _request_context.get()
    return context.get("request_id") if context else None
