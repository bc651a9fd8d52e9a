"""
Logging for the wallet bot.

Every record goes out through structlog: JSON lines normally, coloured
console output when running at DEBUG. Records emitted while an update is
being handled carry the acting ``user_id`` and ``chat_id``.
"""

import logging
import sys
from typing import Any, Optional

import structlog

from .config import settings

# Event keys whose values must never reach a log sink
SECRET_KEYS = frozenset({"private_key", "privateKey", "operator_key", "token"})

# Bot API URLs embed the bot token, so request logging stays above INFO
QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx")


def redact_secrets(_logger: Any, _method: str, event_dict: dict) -> dict:
    for key in SECRET_KEYS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def setup_logging(log_level: Optional[str] = None) -> None:
    """Install the structlog formatter on the root logger.

    Args:
        log_level: Override log level (default: from settings.log_level)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if level == logging.DEBUG:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_update_context(*, user_id: Optional[int] = None, chat_id: Optional[int] = None) -> None:
    """Attach the acting user/chat to every log line emitted while handling an update."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(user_id=user_id, chat_id=chat_id)
