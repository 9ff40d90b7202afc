"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import json
import logging
import logging.config
import re
from pathlib import Path
from typing import Any, Mapping

import structlog

ROOT_LOGGER = "idl_crawler"

_LOGGING_INITIALISED = False


def configure_logging(log_dir: Path, verbose: bool = False) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return application logger."""

    global _LOGGING_INITIALISED
    log_dir.mkdir(parents=True, exist_ok=True)
    error_log = log_dir / "error.log"
    crawler_log = log_dir / "crawler.log"
    error_log.touch(exist_ok=True)
    crawler_log.touch(exist_ok=True)

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
                    "crawler_file": {
                        "class": "logging.FileHandler",
                        "level": "INFO",
                        "filename": str(crawler_log),
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
                    ROOT_LOGGER: {
                        "handlers": ["console", "crawler_file", "error_file"],
                        "level": level,
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
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger(ROOT_LOGGER)


def binding_file_name(binding: Mapping[str, Any]) -> str:
    """Stable log file name for a binding such as ``{"url": ...}``."""

    text = json.dumps(dict(binding), sort_keys=True, default=str)
    name = re.sub(r"[^A-Za-z0-9]+", " ", text).strip().replace(" ", "_")
    return f"{name or 'root'}.log"


def binding_logger(binding: Mapping[str, Any], log_dir: Path) -> structlog.BoundLogger:
    """Return a logger bound to ``binding`` that also writes its own log file."""

    path = log_dir / "bindings" / binding_file_name(binding)
    path.parent.mkdir(parents=True, exist_ok=True)

    logger_name = f"{ROOT_LOGGER}.binding.{path.stem}"
    py_logger = logging.getLogger(logger_name)
    if not any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == str(path)
        for handler in py_logger.handlers
    ):
        file_handler = logging.FileHandler(path, encoding="utf-8")
        root_logger = logging.getLogger(ROOT_LOGGER)
        if root_logger.handlers:
            file_handler.setFormatter(root_logger.handlers[0].formatter)
        file_handler.setLevel(logging.INFO)
        py_logger.addHandler(file_handler)

    return structlog.get_logger(logger_name).bind(**binding)


def win(logger: structlog.BoundLogger, event: str, **fields: Any) -> None:
    """Log a success milestone."""

    logger.info(event, outcome="win", **fields)


__all__ = ["binding_file_name", "binding_logger", "configure_logging", "win"]
