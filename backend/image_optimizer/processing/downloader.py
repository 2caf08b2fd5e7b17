"""
Remote image downloader.

Fetches an allow-listed URL into a per-URL temp file with bounded retries.
Failures come back as a DownloadResult, never as an exception. Deleting a
successful download is the caller's job (see cleanup.temp_source).
"""
import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

import httpx

from image_optimizer.processing.models import DownloadResult
from image_optimizer.processing.sources import REMOTE_IMAGE_EXTENSION

logger = logging.getLogger("optimizer.downloader")

DEFAULT_EXTENSION = ".jpg"


class PermanentDownloadError(Exception):
    """Failure that another attempt cannot fix."""


class ImageDownloader:
    """
    Usage:
        async with ImageDownloader(temp_dir) as downloader:
            result = await downloader.download(url)
    """

    def __init__(
        self,
        temp_dir: Path,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        max_bytes: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.temp_dir = Path(temp_dir)
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.max_bytes = max_bytes
        self._sleep = sleep
        self._owns_client = client is None
        self.http_client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={
                "User-Agent": "BlogImageOptimizer/1.0",
                "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
            },
        )

    async def __aenter__(self) -> "ImageDownloader":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self):
        """Close HTTP client if this downloader created it."""
        if self._owns_client:
            await self.http_client.aclose()

    def temp_path_for(self, url: str) -> Path:
        """Same URL, same temp name: sha256 prefix plus the URL's image extension."""
        url_hash = hashlib.sha256(url.encode()).hexdigest()[:16]
        match = REMOTE_IMAGE_EXTENSION.search(urlparse(url).path)
        ext = match.group(0).lower() if match else DEFAULT_EXTENSION
        return self.temp_dir / f"{url_hash}{ext}"

    async def _fetch(self, url: str) -> bytes:
        """Stream the body, giving up as soon as it passes max_bytes."""
        async with self.http_client.stream("GET", url) as response:
            response.raise_for_status()
            declared = response.headers.get("Content-Length", "")
            if self.max_bytes is not None and declared.isdigit() and int(declared) > self.max_bytes:
                raise PermanentDownloadError(f"File too large ({declared} bytes, max {self.max_bytes})")
            chunks = []
            total = 0
            async for chunk in response.aiter_bytes():
                total += len(chunk)
                if self.max_bytes is not None and total > self.max_bytes:
                    raise PermanentDownloadError(f"File too large (over {self.max_bytes} bytes)")
                chunks.append(chunk)
        return b"".join(chunks)

    async def download(self, url: str) -> DownloadResult:
        temp_path = self.temp_path_for(url)
        last_error = "unknown error"

        for attempt in range(1, self.max_retries + 1):
            try:
                logger.debug("Downloading %s (attempt %s/%s)", url, attempt, self.max_retries)
                data = await self._fetch(url)
            except httpx.InvalidURL as e:
                logger.error("Download rejected: %s - invalid URL: %s", url, e)
                return DownloadResult(success=False, original_url=url, error=f"Invalid URL: {e}", attempts=attempt)
            except PermanentDownloadError as e:
                logger.error("Download rejected: %s - %s", url, e)
                return DownloadResult(success=False, original_url=url, error=str(e), attempts=attempt)
            except httpx.TimeoutException:
                last_error = "Download timeout"
            except httpx.HTTPStatusError as e:
                last_error = f"HTTP {e.response.status_code}"
            except httpx.HTTPError as e:
                last_error = str(e) or type(e).__name__
            else:
                return await self._store(url, temp_path, data, attempt)

            logger.warning("Download attempt %s/%s failed for %s: %s", attempt, self.max_retries, url, last_error)
            if attempt < self.max_retries:
                await self._sleep(self.retry_delay * attempt)

        error = f"Failed after {self.max_retries} attempts: {last_error}"
        logger.error("Download failed: %s - %s", url, error)
        return DownloadResult(success=False, original_url=url, error=error, attempts=self.max_retries)

    async def _store(self, url: str, temp_path: Path, data: bytes, attempt: int) -> DownloadResult:
        try:
            await asyncio.to_thread(self._write, temp_path, data)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            logger.error("Could not write temp file %s: %s", temp_path, e)
            return DownloadResult(success=False, original_url=url, error=f"Temp write failed: {e}", attempts=attempt)
        logger.info("Downloaded %s -> %s (%sKB)", url, temp_path.name, len(data) // 1024)
        return DownloadResult(
            success=True,
            original_url=url,
            temp_path=temp_path,
            size_bytes=len(data),
            attempts=attempt,
        )

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
