from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from utils.paths import LOG_DIR

_LOG_CONFIGURED = False

FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | pid=%(process)d tid=%(threadName)s | %(message)s"
)


def configure_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """Install file and console handlers on the root logger once."""
    global _LOG_CONFIGURED
    if _LOG_CONFIGURED:
        return

    log_cfg = (config or {}).get('logging', {})
    log_file = Path(log_cfg.get('file') or LOG_DIR / "app.log")
    max_bytes = int(log_cfg.get('max_size_mb', 2)) * 1024 * 1024
    level = getattr(logging, str(log_cfg.get('level', "INFO")).upper(), logging.INFO)

    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=int(log_cfg.get('backup_count', 5)), encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FORMAT))

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter(FORMAT))

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(file_handler)
    root.addHandler(stream_handler)
    root.info("Log file: %s", file_handler.baseFilename)
    _LOG_CONFIGURED = True


def get_logger(name: str, config: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """Return a logger configured for the application."""
    configure_logging(config)
    return logging.getLogger(name)
