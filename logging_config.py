from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path


_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_THIRD_PARTY = ("asyncio", "httpcore", "httpx", "websockets")


def _env(*names: str, default: str) -> str:
    for name in names:
        value = os.getenv(name)
        if value is not None:
            return value
    return default


def setup_logging(logger_name: str | None = None) -> logging.Logger:
    """Configure a named logger once: stderr plus an optional rotating file.

    ``JOURNAL_LOG_LEVEL`` (or ``LOG_LEVEL``) picks the level.  ``JOURNAL_LOG_FILE``
    (or ``LOG_FILE``) picks the file; an empty value logs to stderr only.
    """
    level_name = _env("JOURNAL_LOG_LEVEL", "LOG_LEVEL", default="INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    log_file = _env("JOURNAL_LOG_FILE", "LOG_FILE", default="logs/trading_journal_client.log")

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=5)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def quiet_third_party_loggers(level: int = logging.ERROR) -> None:
    """Raise the threshold of chatty client libraries (used by the CLI)."""
    for name in _THIRD_PARTY:
        logging.getLogger(name).setLevel(level)


def get_sync_logger() -> logging.Logger:
    """REST gateway, list controllers and the notification reconciler."""
    return setup_logging("journal.sync")


def get_stream_logger() -> logging.Logger:
    """Live notification channel."""
    return setup_logging("journal.stream")
