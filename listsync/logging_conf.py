"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
import os
import re
from pathlib import Path
from typing import Any, Iterable

import structlog

_LOGGING_INITIALISED = False
_LOG_DIR: Path | None = None

SENSITIVE_KEYS = {"api_key", "apikey", "x-api-key", "trakt-api-key", "password", "token"}
_QUERY_SECRET = re.compile(r"(?i)\b(apikey|api_key)=([^&\s]+)")


def _default_log_dir() -> Path:
    if _LOG_DIR is not None:
        return _LOG_DIR
    env_root = os.environ.get("LISTSYNC_HOME")
    if env_root:
        return Path(env_root).expanduser().resolve() / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


def redact_secrets(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor masking credentials in event values and logged URLs."""

    for key, value in list(event_dict.items()):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = "***"
        elif isinstance(value, str) and "=" in value:
            event_dict[key] = _QUERY_SECRET.sub(r"\1=***", value)
        elif isinstance(value, dict):
            event_dict[key] = {
                k: ("***" if str(k).lower() in SENSITIVE_KEYS else v) for k, v in value.items()
            }
    return event_dict


def configure_logging(verbose: bool = False, log_dir: Path | None = None) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return application logger."""

    global _LOGGING_INITIALISED, _LOG_DIR
    if log_dir is not None and not _LOGGING_INITIALISED:
        _LOG_DIR = Path(log_dir)
    log_dir = _default_log_dir()
    error_log = log_dir / "error.log"
    app_log = log_dir / "listsync.log"
    (log_dir / "lists").mkdir(parents=True, exist_ok=True)
    error_log.touch(exist_ok=True)
    app_log.touch(exist_ok=True)

    if not _LOGGING_INITIALISED:
        level = "DEBUG" if verbose else "INFO"
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "plain": {
                        "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    }
                },
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "level": level,
                        "formatter": "plain",
                    },
                    "app_file": {
                        "class": "logging.FileHandler",
                        "level": "INFO",
                        "filename": str(app_log),
                        "formatter": "plain",
                    },
                    "error_file": {
                        "class": "logging.FileHandler",
                        "level": "ERROR",
                        "filename": str(error_log),
                        "formatter": "plain",
                    },
                },
                "loggers": {
                    "listsync": {
                        "handlers": ["console", "app_file", "error_file"],
                        "level": level,
                        "propagate": False,
                    },
                    # APScheduler chatter goes to the same files
                    "apscheduler": {
                        "handlers": ["app_file", "error_file"],
                        "level": "WARNING",
                        "propagate": False,
                    },
                },
            }
        )

        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                redact_secrets,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger("listsync")


def list_log_path(list_id: int) -> Path:
    return _default_log_dir() / "lists" / f"list-{list_id}.log"


def list_logger(list_id: int, verbose: bool = False) -> structlog.BoundLogger:
    """Return a logger bound to ``list_id`` that also writes to the list's own file."""

    configure_logging(verbose)
    path = list_log_path(list_id)
    path.parent.mkdir(parents=True, exist_ok=True)

    logger_name = f"listsync.list.{list_id}"
    py_logger = logging.getLogger(logger_name)
    if not any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == str(path)
        for handler in py_logger.handlers
    ):
        file_handler = logging.FileHandler(path, encoding="utf-8")
        app_logger = logging.getLogger("listsync")
        if app_logger.handlers:
            file_handler.setFormatter(app_logger.handlers[0].formatter)
        file_handler.setLevel(logging.INFO)
        py_logger.addHandler(file_handler)

    return structlog.get_logger(logger_name).bind(list_id=list_id)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last N lines from a log file."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


def available_list_logs() -> Iterable[Path]:
    lists_dir = _default_log_dir() / "lists"
    if not lists_dir.exists():
        return []
    return sorted(lists_dir.glob("list-*.log"))


__all__ = [
    "available_list_logs",
    "configure_logging",
    "list_log_path",
    "list_logger",
    "redact_secrets",
    "tail_log",
]
