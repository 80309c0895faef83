"""structlog events rendered as JSON lines by python-json-logger.

Layout under ``<home>/logs``: ``harvester.log`` (INFO and up), ``error.log``
(ERROR and up) and one ``targets/<slug>.log`` per target. Events emitted
inside :func:`run_context` carry the run id, target and output path, and the
scrape loop adds the attempt number, so a target log can be split by run.
"""

from __future__ import annotations

import logging
import logging.config
import threading
import uuid
from collections import deque
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import structlog
from pythonjsonlogger import jsonlogger

from .config.loader import file_slug, harvester_home

ROOT_LOGGER = "harvester"
JSON_FIELDS = "%(asctime)s %(levelname)s %(name)s %(message)s"

_lock = threading.Lock()
_configured_dir: Path | None = None
# log path -> (stdlib logger name, file handler)
_target_handlers: dict[Path, tuple[str, logging.Handler]] = {}


def log_dir() -> Path:
    return harvester_home() / "logs"


def target_log_path(target_name: str) -> Path:
    return log_dir() / "targets" / f"{file_slug(target_name)}.log"


def _json_formatter() -> logging.Formatter:
    return jsonlogger.JsonFormatter(JSON_FIELDS)


def _dict_config(directory: Path, level: str) -> dict:
    def file_handler(name: str, handler_level: str) -> dict:
        return {
            "class": "logging.FileHandler",
            "level": handler_level,
            "filename": str(directory / name),
            "formatter": "json",
            "encoding": "utf-8",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": _json_formatter}},
        "handlers": {
            "console": {"class": "logging.StreamHandler", "level": level, "formatter": "json"},
            "main_file": file_handler("harvester.log", "INFO"),
            "error_file": file_handler("error.log", "ERROR"),
        },
        "loggers": {
            ROOT_LOGGER: {
                "handlers": ["console", "main_file", "error_file"],
                "level": level,
                "propagate": False,
            },
        },
    }


def _drop_target_handlers() -> None:
    for logger_name, handler in _target_handlers.values():
        logging.getLogger(logger_name).removeHandler(handler)
        handler.close()
    _target_handlers.clear()


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Install handlers for the current log directory and return the root logger.

    Calling it again is a no-op until the home directory changes.
    """

    global _configured_dir
    directory = log_dir()
    with _lock:
        if _configured_dir != directory:
            _drop_target_handlers()
            (directory / "targets").mkdir(parents=True, exist_ok=True)
            logging.config.dictConfig(_dict_config(directory, "DEBUG" if verbose else "INFO"))
            structlog.configure(
                processors=[
                    structlog.contextvars.merge_contextvars,
                    structlog.stdlib.add_log_level,
                    structlog.processors.TimeStamper(fmt="iso"),
                    structlog.processors.format_exc_info,
                    # Hand the event dict to the stdlib handler; JsonFormatter renders it
                    structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
                ],
                logger_factory=structlog.stdlib.LoggerFactory(),
                cache_logger_on_first_use=True,
            )
            _configured_dir = directory
    return structlog.get_logger(ROOT_LOGGER)


def target_logger(target_name: str, verbose: bool = False) -> structlog.BoundLogger:
    """Logger for one target; its events also land in ``targets/<slug>.log``."""

    configure_logging(verbose)
    path = target_log_path(target_name)
    logger_name = f"{ROOT_LOGGER}.target.{file_slug(target_name)}"
    with _lock:
        if path not in _target_handlers:
            handler = logging.FileHandler(path, encoding="utf-8")
            handler.setLevel(logging.INFO)
            handler.setFormatter(_json_formatter())
            logging.getLogger(logger_name).addHandler(handler)
            _target_handlers[path] = (logger_name, handler)
    return structlog.get_logger(logger_name).bind(target=target_name)


@contextmanager
def run_context(target_name: str, output_path: Path) -> Iterator[str]:
    """Bind a fresh run id, the target and its output path for the current thread."""

    run_id = uuid.uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(
        run_id=run_id, target=target_name, output=str(output_path)
    ):
        yield run_id


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="replace") as stream:
        return list(deque(stream, maxlen=line_count))


def available_target_logs() -> list[Path]:
    directory = log_dir() / "targets"
    if not directory.is_dir():
        return []
    return sorted(directory.glob("*.log"))


__all__ = [
    "available_target_logs",
    "configure_logging",
    "log_dir",
    "run_context",
    "tail_log",
    "target_log_path",
    "target_logger",
]
