"""Structured logging for Huddle.

Every entry is a structlog event with an ISO timestamp, level and logger
name. Request-scoped fields live in structlog's contextvars and are merged
into each entry:

    request_id, path, method   set by RequestIDMiddleware
    user_id                    set by AuthMiddleware once the token verifies
    conversation_id            set by the message log engine
    group_id                   set by the group membership engine

Message text, image payloads and tokens are never logged; see
huddle.services.redact.safe_kv.
"""

import logging
import sys

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, get_contextvars

CONTEXT_KEYS = ("request_id", "user_id", "path", "method", "conversation_id", "group_id")

# Libraries that log every outbound call at INFO
_QUIET_LOGGERS = ("urllib3", "pusher", "uvicorn.access")


def add_request_context(logger: logging.Logger | None, method_name: str, event_dict: dict) -> dict:
    """Processor: copy bound context into the entry. Explicit fields win."""
    for key, value in get_contextvars().items():
        if key in CONTEXT_KEYS and value is not None:
            event_dict.setdefault(key, value)
    return event_dict


def configure_logging(json_format: bool = True, level: int = logging.INFO) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    JSON lines in deployed environments, console rendering for local work.
    """
    pre_chain = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
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
    root.setLevel(level)
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
    """Bind the per-request fields. None leaves a field unset."""
    fields = {"request_id": request_id, "user_id": user_id, "path": path, "method": method}
    bind_contextvars(**{k: v for k, v in fields.items() if v is not None})


def set_user_context(user_id: str) -> None:
    bind_contextvars(user_id=user_id)


def set_conversation_context(conversation_id: str | None) -> None:
    """Tag subsequent log entries with the conversation being mutated."""
    bind_contextvars(conversation_id=conversation_id)


def set_group_context(group_id: str | None) -> None:
    """Tag subsequent log entries with the group being mutated."""
    bind_contextvars(group_id=group_id)


def clear_request_context() -> None:
    clear_contextvars()


def get_request_id() -> str | None:
    """Request id of the request being handled, if any."""
    return get_contextvars().get("request_id")
