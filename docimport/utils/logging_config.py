"""
Application logging setup driven by the ``LOG_*`` monitoring settings.

``LOG_FORMAT=json`` emits one JSON object per record, including any
``importer_*`` fields passed through ``extra=``.
"""

from __future__ import annotations

import json
import logging
import os
from logging.handlers import RotatingFileHandler

from flask import Flask

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILENAME = "docimport.log"
EXTRA_PREFIXES = ("importer_", "user_")
_HANDLER_MARKER = "_docimport_handler"


class JSONFormatter(logging.Formatter):
    """Render records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key.startswith(EXTRA_PREFIXES):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _build_formatter(log_format: str) -> logging.Formatter:
    if str(log_format).lower() == "json":
        return JSONFormatter()
    return logging.Formatter(TEXT_FORMAT)


def _clear_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()


def setup_logging(app: Flask) -> None:
    """
    Attach console and rotating file handlers to the app and pipeline loggers.

    Safe to call repeatedly; handlers installed by a previous call are replaced.
    """
    config = app.config
    level = logging.getLevelName(str(config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO
    formatter = _build_formatter(config.get("LOG_FORMAT", "text"))

    handlers: list[logging.Handler] = []
    if config.get("ENABLE_CONSOLE_LOGGING", True):
        handlers.append(logging.StreamHandler())
    if config.get("ENABLE_FILE_LOGGING", False):
        log_dir = config.get("LOG_DIR", "logs")
        if not os.path.isabs(log_dir):
            log_dir = os.path.join(app.instance_path, log_dir)
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                os.path.join(log_dir, LOG_FILENAME),
                maxBytes=int(config.get("LOG_FILE_MAX_BYTES", 10485760)),
                backupCount=int(config.get("LOG_FILE_BACKUP_COUNT", 10)),
                encoding="utf-8",
            )
        )

    for logger in (app.logger, logging.getLogger("docimport")):
        _clear_handlers(logger)
        logger.setLevel(level)
        for handler in handlers:
            handler.setFormatter(formatter)
            setattr(handler, _HANDLER_MARKER, True)
            logger.addHandler(handler)

    app.logger.debug("Logging configured (level=%s, format=%s)", config.get("LOG_LEVEL"), config.get("LOG_FORMAT"))
