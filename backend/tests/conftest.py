import io
from pathlib import Path

import httpx
import pytest
from PIL import Image, features

from image_optimizer.config import PipelineSettings
from image_optimizer.processing.downloader import ImageDownloader
from image_optimizer.processing.presets import DEFAULT_PRESETS, PresetRegistry

HAS_AVIF = features.check("avif")

UNSPLASH_URL = "https://images.unsplash.com/photo-x?w=800"


def make_image(path: Path, size=(1600, 1000), color=(200, 30, 30), mode="RGB", fmt=None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.new(mode, size, color)
    img.save(path, format=fmt)
    return path


def image_bytes(size=(800, 600), fmt="JPEG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, (20, 120, 220)).save(buf, format=fmt)
    return buf.getvalue()


class RecordingHandler:
    """httpx.MockTransport handler that replays queued responses and counts calls."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        item = self.responses[min(self.calls, len(self.responses)) - 1]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        return item


def mock_downloader(temp_dir: Path, client: httpx.AsyncClient, **kwargs) -> ImageDownloader:
    kwargs.setdefault("retry_delay", 0)
    return ImageDownloader(temp_dir, client=client, **kwargs)


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def settings(tmp_path: Path) -> PipelineSettings:
    return PipelineSettings(
        raw_dir=tmp_path / "images" / "raw",
        public_dir=tmp_path / "public" / "images",
        temp_dir=tmp_path / "temp" / "images",
        allowed_domains=("images.unsplash.com", "unsplash.com", "picsum.photos", "via.placeholder.com"),
        image_service_domains=("unsplash.com", "picsum.photos"),
        download_timeout=5,
        download_max_retries=3,
        download_retry_delay=0,
        download_max_bytes=5 * 1024 * 1024,
        lqip_blur=5,
        webp_effort=0,
        parallel_presets=False,
        max_workers=2,
    )


@pytest.fixture
def webp_registry() -> PresetRegistry:
    """Stock presets with an essential family that does not depend on AVIF support."""
    return PresetRegistry(DEFAULT_PRESETS, essential=("default", "og", "thumb"))


@pytest.fixture
def raw_cover(settings: PipelineSettings) -> Path:
    return make_image(settings.raw_dir / "p1" / "portada.jpg")
