"""Download response images to disk over HTTP."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
import logging
from pathlib import Path
import re
from urllib.parse import urlsplit

import httpx

from .exceptions import NetworkError
from .models import ModelOutput, WebImage

LOGGER = logging.getLogger(__name__)

DEFAULT_IMAGE_DIR = Path.home() / ".geminiweb" / "images"
FULL_SIZE_SUFFIX = "=s2048"
TITLE_FILENAME_LIMIT = 50

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/133.0.0.0 Safari/537.36"
    ),
    "Accept": "image/webp,image/apng,image/*,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

_UNSAFE_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_HAS_EXTENSION_RE = re.compile(r"\.\w+$")


def _safe_name(name: str) -> str:
    return _UNSAFE_CHARS_RE.sub("_", name).strip()


def extension_for(content_type: str) -> str:
    for marker in ("png", "gif", "webp"):
        if marker in content_type:
            return f".{marker}"
    return ".jpg"


def generate_filename(url: str, title: str, content_type: str, now: datetime | None = None) -> str:
    """Pick a file name from the URL path, else the title, else a timestamp."""
    last_part = urlsplit(url).path.rsplit("/", 1)[-1]
    if _HAS_EXTENSION_RE.search(last_part):
        return _safe_name(last_part)
    ext = extension_for(content_type)
    if title:
        return _safe_name(title)[:TITLE_FILENAME_LIMIT] + ext
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"image_{stamp}{ext}"


def _unique_path(directory: Path, filename: str) -> Path:
    target = directory / filename
    counter = 1
    while target.exists():
        target = directory / f"{Path(filename).stem}_{counter}{Path(filename).suffix}"
        counter += 1
    return target


class ImageDownloader:
    """Fetch images with browser-like headers; used when the client has no helper."""

    def __init__(self, http_client: httpx.Client | None = None, timeout: float = 30.0) -> None:
        self._client = http_client or httpx.Client(
            headers=BROWSER_HEADERS, follow_redirects=True, timeout=timeout
        )

    def close(self) -> None:
        self._client.close()

    def download(self, image: WebImage, directory: str, full_size: bool = True) -> str:
        url = image.url
        if full_size and image.generated and "=s" not in url:
            url += FULL_SIZE_SUFFIX

        target_dir = Path(directory).expanduser()
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise NetworkError(f"failed to create directory: {exc}", endpoint=url) from exc

        try:
            response = self._client.get(url, headers=BROWSER_HEADERS)
        except httpx.HTTPError as exc:
            raise NetworkError(f"image download failed: {exc}", endpoint=url) from exc
        if response.status_code != 200:
            raise NetworkError(
                "image download failed",
                http_status=response.status_code,
                endpoint=url,
            )
        content_type = response.headers.get("content-type", "")
        if "image" not in content_type:
            raise NetworkError(f"response is not an image: {content_type}", endpoint=url)

        target = _unique_path(target_dir, generate_filename(url, image.title, content_type))
        try:
            target.write_bytes(response.content)
        except OSError as exc:
            raise NetworkError(f"failed to save file: {exc}", endpoint=url) from exc
        return str(target.resolve())

    def download_selected_images(
        self,
        output: ModelOutput,
        indices: Sequence[int],
        directory: str,
        full_size: bool = True,
    ) -> list[str]:
        """Download the images at ``indices``; fail only when nothing was saved."""
        images = output.images()
        paths: list[str] = []
        last_error: Exception | None = None
        for index in indices:
            if not 0 <= index < len(images):
                continue
            try:
                paths.append(self.download(images[index], directory, full_size))
            except NetworkError as exc:
                last_error = exc
                LOGGER.warning(
                    "download.image.failed",
                    extra={"event": "download.image.failed", "index": index, "error": str(exc)},
                )
        if not paths and last_error is not None:
            raise last_error
        return paths
