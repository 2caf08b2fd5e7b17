"""Application configuration. Loads from environment and .env file."""
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
# Load .env from cwd, then backend/.env, then project root .env
load_dotenv()
load_dotenv(BASE_DIR / ".env")
load_dotenv(BASE_DIR.parent / ".env")


def _env_list(name: str, default: str) -> tuple[str, ...]:
    return tuple(v.strip().lower() for v in os.getenv(name, default).split(",") if v.strip())


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Paths (override with env). Relative values resolve against PROJECT_ROOT.
PROJECT_ROOT = Path(os.getenv("PROJECT_ROOT", str(Path.cwd()))).resolve()
RAW_DIR = PROJECT_ROOT / os.getenv("RAW_IMAGES_DIR", "images/raw")
PUBLIC_DIR = PROJECT_ROOT / os.getenv("PUBLIC_IMAGES_DIR", "public/images")
TEMP_DIR = PROJECT_ROOT / os.getenv("TEMP_IMAGES_DIR", "temp/images")

# Remote sources
ALLOWED_DOMAINS = _env_list(
    "ALLOWED_IMAGE_DOMAINS",
    "images.unsplash.com,unsplash.com,picsum.photos,via.placeholder.com",
)
# Hosts whose URLs always serve images, even without a file extension
IMAGE_SERVICE_DOMAINS = _env_list("IMAGE_SERVICE_DOMAINS", "unsplash.com,picsum.photos")
DOWNLOAD_TIMEOUT = float(os.getenv("DOWNLOAD_TIMEOUT", "30"))
DOWNLOAD_MAX_RETRIES = int(os.getenv("DOWNLOAD_MAX_RETRIES", "3"))
DOWNLOAD_RETRY_DELAY = float(os.getenv("DOWNLOAD_RETRY_DELAY", "1.0"))
DOWNLOAD_MAX_IMAGE_MB = int(os.getenv("DOWNLOAD_MAX_IMAGE_MB", "20"))
DOWNLOAD_MAX_IMAGE_BYTES = DOWNLOAD_MAX_IMAGE_MB * 1024 * 1024

# Source validation: smaller or heavier sources are rejected before processing
MIN_IMAGE_WIDTH = int(os.getenv("MIN_IMAGE_WIDTH", "100"))
MIN_IMAGE_HEIGHT = int(os.getenv("MIN_IMAGE_HEIGHT", "100"))
MAX_SOURCE_MB = int(os.getenv("MAX_SOURCE_MB", "10"))
MAX_SOURCE_BYTES = MAX_SOURCE_MB * 1024 * 1024

# Encoding options (env overrides)
LQIP_BLUR = float(os.getenv("LQIP_BLUR", "5"))
WEBP_EFFORT = int(os.getenv("WEBP_EFFORT", "4"))

# Concurrency
PARALLEL_PRESETS = _env_bool("PARALLEL_PRESETS")
MAX_WORKERS = int(os.getenv("MAX_WORKERS", str(min(32, (os.cpu_count() or 4) + 4))))

# Server (for uvicorn)
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
# CORS: comma-separated origins, e.g. "http://localhost:4321,http://127.0.0.1:4321"
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:4321,http://127.0.0.1:4321").split(",") if o.strip()]

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("optimizer")


@dataclass(frozen=True)
class PipelineSettings:
    """Immutable settings handed to every pipeline component at construction."""

    raw_dir: Path = RAW_DIR
    public_dir: Path = PUBLIC_DIR
    temp_dir: Path = TEMP_DIR
    allowed_domains: tuple[str, ...] = ALLOWED_DOMAINS
    image_service_domains: tuple[str, ...] = IMAGE_SERVICE_DOMAINS
    download_timeout: float = DOWNLOAD_TIMEOUT
    download_max_retries: int = DOWNLOAD_MAX_RETRIES
    download_retry_delay: float = DOWNLOAD_RETRY_DELAY
    download_max_bytes: int = DOWNLOAD_MAX_IMAGE_BYTES
    min_image_width: int = MIN_IMAGE_WIDTH
    min_image_height: int = MIN_IMAGE_HEIGHT
    max_source_bytes: int = MAX_SOURCE_BYTES
    lqip_blur: float = LQIP_BLUR
    webp_effort: int = WEBP_EFFORT
    parallel_presets: bool = PARALLEL_PRESETS
    max_workers: int = MAX_WORKERS


def get_settings() -> PipelineSettings:
    return PipelineSettings()
