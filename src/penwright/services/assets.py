"""Image upload adapters used when inserting assets into an article."""

from __future__ import annotations

import base64
import hashlib
import logging
from pathlib import Path, PurePath
from typing import Any, Mapping, Protocol

import httpx

__all__ = [
    "ALLOWED_IMAGE_TYPES",
    "AssetUploadError",
    "AssetUploader",
    "HttpAssetUploader",
    "LocalAssetUploader",
    "MAX_IMAGE_BYTES",
    "image_markdown",
    "validate_image",
]

LOGGER = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 10 * 1024 * 1024
ALLOWED_IMAGE_TYPES: Mapping[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


class AssetUploadError(RuntimeError):
    """Raised when an image is rejected or cannot be uploaded."""


class AssetUploader(Protocol):
    async def upload(self, data: bytes, filename: str) -> str:
        """Store the image and return a URL the article can reference."""
        ...


def validate_image(data: bytes, filename: str) -> str:
    """Check type and size; returns the image content type."""

    suffix = PurePath(filename or "").suffix.lower()
    content_type = ALLOWED_IMAGE_TYPES.get(suffix)
    if content_type is None:
        raise AssetUploadError("Invalid file type. Only JPEG, PNG, GIF, and WebP are allowed.")
    if not data:
        raise AssetUploadError("The image file is empty.")
    if len(data) > MAX_IMAGE_BYTES:
        raise AssetUploadError("File too large. Maximum size is 10MB.")
    return content_type


def image_markdown(filename: str, url: str) -> str:
    """Markdown token inserted into the article for an uploaded image."""

    return f"\n![{filename}]({url})\n"


class HttpAssetUploader:
    """Uploads images as base64 data URLs to a JSON upload endpoint."""

    def __init__(
        self,
        endpoint: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        if not endpoint:
            raise ValueError("endpoint is required for uploads")
        self._endpoint = endpoint
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def upload(self, data: bytes, filename: str) -> str:
        content_type = validate_image(data, filename)
        encoded = base64.b64encode(data).decode("ascii")
        payload = {
            "filename": filename,
            "contentType": content_type,
            "data": f"data:{content_type};base64,{encoded}",
        }
        LOGGER.debug("Uploading %s (%d bytes) to %s", filename, len(data), self._endpoint)
        try:
            response = await self._client.post(self._endpoint, json=payload)
        except httpx.HTTPError as exc:
            raise AssetUploadError(f"Upload failed: {exc}") from exc
        body: Any = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if not response.is_success:
            message = "Upload failed"
            if isinstance(body, Mapping) and isinstance(body.get("error"), str):
                message = body["error"]
            raise AssetUploadError(f"{message} (HTTP {response.status_code})")
        url = body.get("url") if isinstance(body, Mapping) else None
        if not isinstance(url, str) or not url:
            raise AssetUploadError("Upload response did not include a URL")
        return url

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class LocalAssetUploader:
    """Copies images into a local directory under a content-addressed name."""

    def __init__(self, directory: Path | str, *, base_url: str | None = None) -> None:
        self._directory = Path(directory).expanduser()
        self._base_url = base_url.rstrip("/") if base_url else None

    @property
    def directory(self) -> Path:
        return self._directory

    async def upload(self, data: bytes, filename: str) -> str:
        validate_image(data, filename)
        digest = hashlib.sha256(data).hexdigest()[:16]
        name = f"{digest}{PurePath(filename).suffix.lower()}"
        target = self._directory / name
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            if not target.exists():
                target.write_bytes(data)
        except OSError as exc:
            raise AssetUploadError(f"Could not store image: {exc}") from exc
        LOGGER.debug("Stored image %s as %s", filename, target)
        if self._base_url:
            return f"{self._base_url}/{name}"
        return target.resolve().as_uri()
