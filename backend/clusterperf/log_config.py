"""
Logging setup for the tracker and its jobs.

loguru carries the application log; structlog renders the structured summary
events emitted at the end of a cycle. Standard library loggers (urllib3,
apscheduler, sqlalchemy) are forwarded into loguru.

The Alpha Vantage key travels in query strings, so every sink scrubs it.
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from loguru import logger
from structlog.typing import EventDict, WrappedLogger

from clusterperf.config import settings

REDACTED = "[REDACTED]"

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

# Third-party loggers and the level they are capped at
STDLIB_LEVELS = {
    "urllib3": logging.WARNING,  # logs full request URLs
    "yfinance": logging.WARNING,
    "apscheduler": logging.INFO,
    "sqlalchemy.engine": logging.WARNING,
}


def scrub_provider_key(record: dict) -> bool:
    """loguru filter replacing the provider key wherever it appears in a message."""
    key = settings.alpha_vantage_api_key
    if key and key in record["message"]:
        record["message"] = record["message"].replace(key, REDACTED)
    return True


class SecretFilter:
    """structlog processor blanking fields whose name looks like a credential."""

    SECRET_FIELDS = ("apikey", "api_key", "token", "secret", "password", "database_url", "authorization")

    def __call__(self, logger: WrappedLogger, name: str, event_dict: EventDict) -> EventDict:
        for key in list(event_dict):
            if any(field in key.lower() for field in self.SECRET_FIELDS):
                event_dict[key] = REDACTED
        return event_dict


def add_cycle_metadata(logger: WrappedLogger, name: str, event_dict: EventDict) -> EventDict:
    event_dict["level"] = name.upper()
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    event_dict.setdefault("environment", settings.app_env)
    return event_dict


class InterceptHandler(logging.Handler):
    """Forward standard library log records to loguru, keeping the caller's location."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _add_sinks(as_json: bool) -> None:
    sink_options = {
        "format": "{message}" if as_json else TEXT_FORMAT,
        "serialize": as_json,
        "level": settings.log_level.upper(),
        "filter": scrub_provider_key,
        "backtrace": True,
    }

    logger.add(sys.stderr, diagnose=settings.is_development, **sink_options)

    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        # Jobs run for months; keep a bounded history
        logger.add(
            settings.log_file,
            rotation="100 MB",
            retention="10 days",
            compression="zip",
            diagnose=False,
            **sink_options,
        )


def _configure_structlog(as_json: bool) -> None:
    renderer = structlog.processors.JSONRenderer() if as_json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_cycle_metadata,
            SecretFilter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging() -> None:
    """Install sinks, structlog processors and the stdlib bridge."""
    as_json = settings.log_format == "json"

    logger.remove()
    _add_sinks(as_json)
    _configure_structlog(as_json)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, level in STDLIB_LEVELS.items():
        logging.getLogger(name).setLevel(level)

    logger.debug(f"Logging configured (level={settings.log_level}, format={settings.log_format})")


def get_logger(name: str) -> Any:
    """Structured logger for summary events."""
    return structlog.get_logger(name)


configure_logging()
