"""Structured logging for TutorLink.

Every log line is rendered by structlog, including records from stdlib
loggers such as uvicorn and sqlalchemy. Request context is carried in
structlog's contextvars and merged into each event:

    request_id  correlation id, echoed in X-Request-ID and error bodies
    user_id     authenticated viewer, once auth has run
    path        request path without query string
    method      HTTP method
    channel     realtime channel, for SSE streams

Services log snake_case events with keyword fields:

    logger = get_logger(__name__)
    logger.info("ticket_created", ticket_id=str(ticket.id), subject=ticket.subject)
"""

import logging
import sys

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, get_contextvars

_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def configure_logging(json_format: bool = True, level: str = "INFO") -> None:
    """Route structlog and stdlib logging through one renderer on stdout."""
    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    renderer = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=False)
    )

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
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_context(
    request_id: str | None,
    user_id: str | None = None,
    path: str | None = None,
    method: str | None = None,
) -> None:
    """Bind request fields for the current context. None leaves a field as it was."""
    fields = {"request_id": request_id, "user_id": user_id, "path": path, "method": method}
    bind_contextvars(**{k: v for k, v in fields.items() if v is not None})


def set_channel(channel: str | None) -> None:
    if channel is not None:
        bind_contextvars(channel=channel)


def clear_request_context() -> None:
    clear_contextvars()


def get_request_id() -> str | None:
    return get_contextvars().get("request_id")
