"""Scoped ownership of downloaded temp files."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from image_optimizer.processing.models import DownloadResult

logger = logging.getLogger("optimizer.cleanup")

T = TypeVar("T")


def remove_temp_file(path: Optional[Path]) -> bool:
    """Best-effort delete. Returns False (and warns) if the file could not be removed."""
    if path is None:
        return True
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove temp file %s: %s", path, e)
        return False
    logger.debug("Removed temp file %s", path)
    return True


@asynccontextmanager
async def temp_source(download: DownloadResult) -> AsyncIterator[Optional[Path]]:
    """Yield the downloaded temp path and delete it once the block exits, however it exits."""
    try:
        yield download.temp_path
    finally:
        remove_temp_file(download.temp_path)


async def with_temp_source(download: DownloadResult, fn: Callable[[Optional[Path]], Awaitable[T]]) -> T:
    async with temp_source(download) as path:
        return await fn(path)
