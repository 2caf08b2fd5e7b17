from .errors import ConfigError, InvalidSourceError, OptimizerError
from .models import DownloadResult, LQIPResult, Preset, ProcessingResult, SourceImage, SourceReport
from .presets import PresetRegistry, default_registry
from .service import ImagePipeline

__all__ = [
    "ConfigError",
    "DownloadResult",
    "ImagePipeline",
    "InvalidSourceError",
    "LQIPResult",
    "OptimizerError",
    "Preset",
    "PresetRegistry",
    "ProcessingResult",
    "SourceImage",
    "SourceReport",
    "default_registry",
]
