"""JSON file helpers shared by the persistence adapters."""

from __future__ import annotations

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Any

__all__ = ["read_json", "write_json_atomic", "safe_filename"]

LOGGER = logging.getLogger(__name__)
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(key: str, *, suffix: str = ".json") -> str:
    """Map an arbitrary identity key onto a stable, filesystem-safe name."""

    cleaned = _UNSAFE_CHARS_RE.sub("_", key).strip("._")
    if not cleaned:
        raise ValueError("Identity key must contain at least one usable character")
    if cleaned != key:
        # Distinct keys may clean to the same text; disambiguate with a digest.
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:8]
        cleaned = f"{cleaned[:64]}-{digest}"
    return f"{cleaned}{suffix}"


def read_json(path: Path) -> Any | None:
    """Return the decoded JSON at ``path`` or ``None`` when it is missing.

    Raises ``ValueError`` when the file exists but is not valid JSON.
    """

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc


def write_json_atomic(path: Path, payload: Any) -> Path:
    """Write ``payload`` as JSON through a temp file + replace."""

    body = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(body, encoding="utf-8")
    tmp_path.replace(path)
    LOGGER.debug("Wrote %s (%d bytes)", path, len(body))
    return path
