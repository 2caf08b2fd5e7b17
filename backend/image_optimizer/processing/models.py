"""Pipeline value types: presets, sources and per-artifact results."""
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from image_optimizer.processing.errors import ConfigError


class ImageFormat(str, Enum):
    WEBP = "webp"
    AVIF = "avif"
    JPEG = "jpeg"
    PNG = "png"

    @property
    def mime_type(self) -> str:
        return f"image/{self.value}"


class FitMode(str, Enum):
    COVER = "cover"
    INSIDE = "inside"


class SourceKind(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class ErrorKind(str, Enum):
    INVALID_SOURCE = "invalid_source"
    DOWNLOAD_FAILURE = "download_failure"
    TRANSFORM_FAILURE = "transform_failure"
    LQIP_FAILURE = "lqip_failure"


@dataclass(frozen=True)
class Preset:
    """Named transformation: target box, output format, quality and fit."""

    name: str
    width: Optional[int]
    height: Optional[int]
    format: ImageFormat
    quality: int
    fit: FitMode = FitMode.INSIDE

    def __post_init__(self):
        if not self.name:
            raise ConfigError("Preset name is required")
        if not 1 <= self.quality <= 100:
            raise ConfigError(f"Preset {self.name!r}: quality must be 1-100, got {self.quality}")
        for label, value in (("width", self.width), ("height", self.height)):
            if value is not None and value <= 0:
                raise ConfigError(f"Preset {self.name!r}: {label} must be positive, got {value}")
        if self.fit == FitMode.COVER and (self.width is None or self.height is None):
            raise ConfigError(f"Preset {self.name!r}: cover fit needs both width and height")

    @property
    def extension(self) -> str:
        return self.format.value


@dataclass(frozen=True)
class SourceImage:
    kind: SourceKind
    path: Optional[Path] = None
    url: Optional[str] = None

    @classmethod
    def local(cls, path) -> "SourceImage":
        return cls(kind=SourceKind.LOCAL, path=Path(path))

    @classmethod
    def remote(cls, url: str) -> "SourceImage":
        return cls(kind=SourceKind.REMOTE, url=url)

    @property
    def is_remote(self) -> bool:
        return self.kind == SourceKind.REMOTE

    def __str__(self) -> str:
        return self.url if self.is_remote else str(self.path)


@dataclass
class DownloadResult:
    success: bool
    original_url: str
    temp_path: Optional[Path] = None
    size_bytes: int = 0
    error: Optional[str] = None
    attempts: int = 0


@dataclass(frozen=True)
class ImageMetadata:
    width: int
    height: int
    format: Optional[str]
    mode: str
    size_bytes: int
    has_alpha: bool = False


@dataclass
class ProcessingResult:
    """Outcome for one (source, preset) pair. A cache skip counts as success."""

    success: bool
    output_path: Path
    output_file_name: str
    preset: str
    format: ImageFormat
    size_bytes: int = 0
    error: Optional[str] = None
    skipped: bool = False


@dataclass
class LQIPResult:
    success: bool
    lqip_path: Path
    base64_path: Path
    data_uri: Optional[str] = None
    size_bytes: int = 0
    error: Optional[str] = None
    skipped: bool = False


@dataclass
class SourceReport:
    """Everything one pipeline invocation produced for a single source."""

    source: str
    kind: Optional[SourceKind] = None
    results: list[ProcessingResult] = field(default_factory=list)
    lqip: Optional[LQIPResult] = None
    download: Optional[DownloadResult] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def processed(self) -> int:
        return sum(1 for r in self.results if r.success and not r.skipped)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def ok(self) -> bool:
        lqip_ok = self.lqip is None or self.lqip.success
        return self.error is None and self.failed == 0 and lqip_ok

    def to_dict(self) -> dict:
        data = asdict(self)
        data["processed"] = self.processed
        data["skipped"] = self.skipped
        data["failed"] = self.failed
        data["ok"] = self.ok
        return _jsonable(data)


def _jsonable(value):
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    return value
