from __future__ import annotations

import logging
from pathlib import Path
from tempfile import gettempdir
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import settings

LOGGER_NAME = "pathbench"
LOG_FILE_NAME = "engine.log.jsonl"


class EngineJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per record: ``message``/``event`` plus level, logger and the event fields."""

    def add_fields(self, log_record: dict[str, Any], record: logging.LogRecord, message_dict: dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault("level", record.levelname)
        log_record.setdefault("logger", record.name)


def _parse_level(name: str) -> int:
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else logging.INFO


def _writable_log_dir(out_dir: str) -> Path | None:
    """First of ``<out_dir>/logs``, ``./out/logs`` and a temp dir that accepts a probe file."""
    for log_dir in (
        Path(out_dir) / "logs",
        Path.cwd() / "out" / "logs",
        Path(gettempdir()) / LOGGER_NAME / "logs",
    ):
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            probe = log_dir / ".writetest"
            probe.touch(exist_ok=True)
            probe.unlink(missing_ok=True)
        except OSError:
            continue
        return log_dir
    return None


def configure_logging(
    *,
    level: str | None = None,
    log_to_file: bool | None = None,
    out_dir: str | None = None,
) -> logging.Logger:
    """(Re)install the stream handler and, when enabled, the JSONL file handler.

    Arguments left as None fall back to ``settings``. Calling again replaces earlier handlers.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(_parse_level(level or settings.log_level))
    logger.propagate = False
    formatter = EngineJsonFormatter()

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    to_file = settings.log_to_file if log_to_file is None else log_to_file
    log_dir = _writable_log_dir(out_dir or settings.out_dir) if to_file else None
    if log_dir is not None:
        try:
            file_handler = logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")
        except OSError:
            file_handler = None
        if file_handler is not None:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    logger._pathbench_configured = True  # type: ignore[attr-defined]
    return logger


def get_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    # Reloaders import twice; configure once.
    if getattr(logger, "_pathbench_configured", False):
        return logger
    return configure_logging()


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Emit ``event`` as the message and as a top-level ``event`` key, with ``fields`` beside it.

    ``fields`` must not use LogRecord attribute names (``message``, ``name``, ``msg``...).
    """
    get_logger().log(level, event, extra={"event": event, **fields})
