"""Screenshot loading, fetching and encoding utilities."""

from __future__ import annotations

import asyncio
import base64
import io
import logging
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx
from PIL import Image, UnidentifiedImageError

from screenscope.errors.exceptions import FetchError

logger = logging.getLogger(__name__)

_MAX_IMAGE_SIZE_BYTES = 20 * 1024 * 1024  # 20 MB
_DEFAULT_TIMEOUT_S = 30.0

_EXTENSION_MIME = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}

_PIL_FORMAT_MIME = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


class ImageFetcher:
    """Reads screenshot bytes from http(s) URLs, file:// URLs or local paths."""

    def __init__(
        self,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s, follow_redirects=True)
        return self._client

    async def fetch_bytes(self, reference: str) -> bytes:
        scheme = urlparse(reference).scheme.lower()
        if scheme in ("http", "https"):
            return await self._fetch_remote(reference)
        if scheme == "file":
            path = Path(unquote(urlparse(reference).path))
        else:
            path = Path(reference)
        return await asyncio.to_thread(_read_local, path, reference)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _fetch_remote(self, url: str) -> bytes:
        try:
            response = await self.client.get(url)
        except httpx.TimeoutException as exc:
            raise FetchError(
                f"Image fetch timed out after {self._timeout_s}s: {url}", url=url
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Failed to fetch image {url}: {exc}", url=url) from exc

        if response.status_code >= 400:
            raise FetchError(
                f"Failed to fetch image: HTTP {response.status_code}",
                url=url,
                status_code=response.status_code,
            )
        data = response.content
        _check_size(data, url)
        return data


def _read_local(path: Path, reference: str) -> bytes:
    if not path.is_file():
        raise FetchError(f"Screenshot not found: {path}", url=reference)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise FetchError(f"Cannot read screenshot {path}: {exc}", url=reference) from exc
    _check_size(data, reference)
    return data


def _check_size(data: bytes, reference: str) -> None:
    if not data:
        raise FetchError(f"Screenshot is empty: {reference}", url=reference)
    if len(data) > _MAX_IMAGE_SIZE_BYTES:
        raise FetchError(
            f"Screenshot too large ({len(data) / 1024 / 1024:.1f} MB): {reference}",
            url=reference,
        )


def detect_mime_type(data: bytes, reference: str = "") -> str:
    """Sniff the image format with Pillow; fall back to the file extension."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            mime = _PIL_FORMAT_MIME.get(img.format or "")
            if mime:
                return mime
    except (UnidentifiedImageError, OSError):
        logger.debug("Pillow could not identify %s", reference or "image bytes")

    suffix = Path(urlparse(reference).path).suffix.lower()
    return _EXTENSION_MIME.get(suffix, "image/png")


def image_to_base64(image_bytes: bytes) -> str:
    """Encode raw image bytes to a base64 string."""
    return base64.b64encode(image_bytes).decode("ascii")


def to_data_url(image_bytes: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{image_to_base64(image_bytes)}"
