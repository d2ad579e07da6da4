"""Tests for the root logging setup."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import Iterator

import pytest

from penwright.utils import logging as logging_utils


@pytest.fixture
def restore_root_logging(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setattr(logging_utils, "_log_path", None)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.usefixtures("restore_root_logging")
def test_setup_logging_writes_to_log_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PENWRIGHT_LOG_DIR", str(tmp_path / "logs"))

    path = logging_utils.setup_logging(logging.DEBUG, force=True)
    logging.getLogger("penwright.test").debug("hello log file")

    assert path == tmp_path / "logs" / "penwright.log"
    handlers = logging.getLogger().handlers
    console = [h for h in handlers if not isinstance(h, logging.handlers.RotatingFileHandler)]
    assert console[0].level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING
    for handler in handlers:
        handler.flush()
    assert "hello log file" in path.read_text(encoding="utf-8")


@pytest.mark.usefixtures("restore_root_logging")
def test_setup_logging_is_idempotent_without_force(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PENWRIGHT_LOG_DIR", str(tmp_path / "first"))
    first = logging_utils.setup_logging(force=True)
    monkeypatch.setenv("PENWRIGHT_LOG_DIR", str(tmp_path / "second"))

    assert logging_utils.setup_logging() == first
    assert not (tmp_path / "second").exists()
