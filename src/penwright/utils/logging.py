"""Root logging setup for the Penwright command line."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["setup_logging"]

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_LOG_FILE_BYTES = 1_000_000
_LOG_FILE_BACKUPS = 3
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_log_path: Path | None = None


def setup_logging(level: int = logging.INFO, *, force: bool = False) -> Path:
    """Log to ``$PENWRIGHT_LOG_DIR/penwright.log`` and warnings to stderr.

    Later calls return the existing log path unless ``force`` is set.
    """

    global _log_path
    if _log_path is not None and not force:
        return _log_path

    log_dir = Path(os.environ.get("PENWRIGHT_LOG_DIR") or Path.home() / ".penwright" / "logs").expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "penwright.log"
    formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=_LOG_FILE_BYTES, backupCount=_LOG_FILE_BACKUPS, encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    # stderr is shared with the review prompt.
    console_handler = logging.StreamHandler()
    console_handler.setLevel(max(level, logging.WARNING))
    console_handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=[file_handler, console_handler], force=True)
    logging.captureWarnings(True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _log_path = log_path
    return log_path
