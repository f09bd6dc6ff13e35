"""Logging configuration for the settlement domain.

Settlement logs carry money movement details (payout destinations, webhook
signatures), so every event passes through ``mask_sensitive_fields`` before
it is rendered.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any

import structlog

SENSITIVE_KEYS = frozenset({"destination", "payout_account_id", "signature", "stripe_signature", "api_key"})

_LEVELS = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

_QUIET_LOGGERS = ("protean", "httpx", "stripe")


def _environment() -> str:
    return (os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development").lower()


def get_log_level() -> str:
    """LOG_LEVEL wins; otherwise the level follows the environment."""
    return os.getenv("LOG_LEVEL", _LEVELS.get(_environment(), "INFO"))


def mask(value: Any) -> str:
    """Keep the last four characters of an identifier: ``acct_1Nv0FG`` -> ``***v0FG``."""
    text = str(value)
    if len(text) <= 4:
        return "***"
    return f"***{text[-4:]}"


def mask_sensitive_fields(logger, method_name: str, event_dict: dict) -> dict:
    """structlog processor that masks payout destinations and credentials."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = mask(event_dict[key])
    return event_dict


def _rotating_file(path: Path, level: int | str) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def setup_stdlib_logging(log_dir: str | Path = "logs") -> None:
    """Route stdlib logging to stdout, ``settlement.log`` and ``settlement_error.log``."""
    log_level = get_log_level()
    log_dir = Path(log_dir)
    log_dir.mkdir(exist_ok=True)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(log_level)

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers = [
        console,
        _rotating_file(log_dir / "settlement.log", log_level),
        # Transfer and label failures are reconciled by hand from this file
        _rotating_file(log_dir / "settlement_error.log", logging.ERROR),
    ]

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        mask_sensitive_fields,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def setup_structlog() -> None:
    """JSON lines in production and staging, rich console output elsewhere."""
    processors = shared_processors()

    if _environment() in ("production", "staging"):
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=False, max_frames=4),
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(log_dir: str | Path = "logs") -> None:
    setup_stdlib_logging(log_dir)
    setup_structlog()


def bind_event_context(**kwargs: Any) -> None:
    """Bind per-delivery fields (event id, event type) to every log line."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_event_context() -> None:
    structlog.contextvars.clear_contextvars()
