"""
Logging Configuration Module.

Centralized logging setup for the expert runtime, driven by ``Settings``.

Features:
- One console handler, plus an optional file handler under ``log_file_dir``
- Simple, detailed or JSON-shaped line formats
- Per-module levels, with noisy third-party loggers held at WARNING
"""

import logging
import logging.config
from pathlib import Path
from typing import Any, Dict, Optional

from expert_runtime.core.config import settings

LOG_FILE_NAME = "expert_runtime.log"

SIMPLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"

JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
    '"module": "%(filename)s", "function": "%(funcName)s", "line": %(lineno)d, '
    '"message": "%(message)s"}'
)

FORMATS = {"simple": SIMPLE_FORMAT, "detailed": DETAILED_FORMAT, "json": JSON_FORMAT}

MODULE_LOG_LEVELS = {
    "expert_runtime": "INFO",
    "expert_runtime.runtime": "DEBUG",
    "expert_runtime.skills": "DEBUG",
    "expert_runtime.llm": "DEBUG",
    "expert_runtime.repos": "INFO",
    # Third-party libraries (reduce noise)
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "mcp": "WARNING",
    "asyncio": "WARNING",
}


def build_logging_config(level: str, fmt: str, log_file: Optional[Path] = None) -> Dict[str, Any]:
    """Return a ``logging.config.dictConfig`` mapping for the runtime.

    Args:
        level: Console level name.
        fmt: One of ``simple``, ``detailed`` or ``json``; unknown names fall back to ``detailed``.
        log_file: Also log everything at DEBUG to this file when given.
    """
    handlers: Dict[str, Dict[str, Any]] = {
        "console": {"class": "logging.StreamHandler", "level": level, "formatter": "runtime"},
    }
    if log_file is not None:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "runtime",
            "filename": str(log_file),
        }
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "runtime": {"format": FORMATS.get(fmt, DETAILED_FORMAT), "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": handlers,
        "loggers": {name: {"level": module_level} for name, module_level in MODULE_LOG_LEVELS.items()},
        "root": {"level": "DEBUG", "handlers": list(handlers)},
    }


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    enable_file: bool = True,
) -> None:
    """
    Configure logging for the runtime, replacing any handlers on the root logger.

    Args:
        log_level: Override ``settings.log_level`` (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Override ``settings.log_format`` (simple, detailed, json)
        enable_file: Allow file logging; it is only written when ``settings.enable_file_logging`` is set
    """
    level = (log_level or settings.log_level).upper()
    fmt = log_format or settings.log_format

    log_file: Optional[Path] = None
    if enable_file and settings.enable_file_logging:
        log_dir = Path(settings.log_file_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / LOG_FILE_NAME

    logging.config.dictConfig(build_logging_config(level, fmt, log_file))
    logging.getLogger(__name__).info(
        "Logging configured: level=%s, format=%s, file=%s", level, fmt, log_file or "disabled"
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The module name (typically __name__)

    Returns:
        A configured logger instance
    """
    return logging.getLogger(name)


# Configure logging on module import
setup_logging()
