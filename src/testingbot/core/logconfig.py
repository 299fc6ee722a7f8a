"""Logging setup for the TestingBot CLI.

structlog renders every event; stdlib ``logging`` owns the handlers so that
libraries logging through ``logging.getLogger`` (aiohttp, socketio, our own
requester) end up in the same stream with the same format.
"""

from __future__ import annotations

import logging
import logging.config
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import structlog

from testingbot.core.configuration import TestingBotConfig
from testingbot.core.exceptions import ConfigError

TIMESTAMP_FORMAT = "%H:%M:%S"

# libraries that are chatty at INFO
QUIET_LOGGERS = ("aiohttp", "socketio", "engineio", "asyncio")


def _shared_processors() -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=TIMESTAMP_FORMAT),
    ]


def build_logconfig(level: str, colors: bool = True) -> Dict[str, Any]:
    """dictConfig for the console handler."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.dev.ConsoleRenderer(colors=colors),
                ],
                "foreign_pre_chain": _shared_processors(),
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            "testingbot": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
            **{
                name: {"handlers": ["console"], "level": "WARNING", "propagate": False}
                for name in QUIET_LOGGERS
            },
        },
    }


def configure_logging(
    debug: bool = False, config: Optional[TestingBotConfig] = None, colors: bool = True
) -> None:
    """Configure stdlib handlers and structlog. Safe to call more than once."""
    if debug:
        level = "DEBUG"
    else:
        config = config or TestingBotConfig()
        try:
            level = str(config.get("logging", "level")).upper()
        except ConfigError:
            level = "INFO"

    logging.config.dictConfig(build_logconfig(level, colors=colors))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@contextmanager
def bind_context(**context: Any) -> Iterator[None]:
    """Bind keys such as ``app_id`` or ``run_id`` for the duration of a block."""
    filtered = {k: v for k, v in context.items() if v is not None}
    if not filtered:
        yield
        return

    structlog.contextvars.bind_contextvars(**filtered)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*filtered.keys())
