"""structlog setup shared by the API and the worker.

Reads LOG_LEVEL, JSON_LOGS and ENVIRONMENT straight from the environment so
it can run before the application config is loaded.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any

import structlog

# Chatty third-party loggers capped at WARNING unless LOG_LEVEL is DEBUG
_NOISY_LOGGERS = ("httpx", "aiosqlite", "arq.worker", "multipart")


def _json_logs() -> bool:
    flag = os.getenv("JSON_LOGS")
    if flag is not None:
        return flag.lower() == "true"
    return os.getenv("ENVIRONMENT", "development") == "production"


def configure_logging(level: str | None = None) -> None:
    """Configure structlog and route stdlib logging through the same handlers.

    JSON lines in production (or when ``JSON_LOGS=true``), the coloured
    console renderer otherwise. A ``logs/`` directory in the working
    directory also receives ``labbook.log``.
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if _json_logs():
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    log_dir = Path("logs")
    if log_dir.is_dir():
        handlers.append(logging.FileHandler(log_dir / "labbook.log"))

    logging.basicConfig(format="%(message)s", handlers=handlers, level=level, force=True)

    if level != "DEBUG":
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
