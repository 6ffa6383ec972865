"""Logging setup and request-id helpers."""

from __future__ import annotations

import logging
from pathlib import Path
import secrets

from flashbacks.config import LoggingConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_NAME = "flashbacks.log"


def configure_logging(config: LoggingConfig) -> None:
    """Install the root handlers for the configured level and optional log directory."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.log_dir:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8"))
    logging.basicConfig(level=config.level.upper(), format=LOG_FORMAT, handlers=handlers, force=True)


def new_request_id() -> str:
    """Short random hex id used to correlate log lines for one request."""
    return secrets.token_hex(3)


__all__ = ["LOG_FORMAT", "configure_logging", "new_request_id"]
