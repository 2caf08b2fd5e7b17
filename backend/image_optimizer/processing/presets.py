"""Preset registry and output file naming."""
import re
from collections.abc import Iterable, Sequence
from types import MappingProxyType
from typing import Optional

from image_optimizer.processing.errors import ConfigError
from image_optimizer.processing.models import FitMode, ImageFormat, Preset

DEFAULT_PRESET = "default"
LQIP_PRESET = "lqip"

# Preset names are referenced by page templates through the derived file names.
# Renaming or removing one breaks those templates.
DEFAULT_PRESETS = (
    Preset(DEFAULT_PRESET, 1200, None, ImageFormat.WEBP, 80, FitMode.INSIDE),
    Preset("og", 1200, 630, ImageFormat.WEBP, 80, FitMode.COVER),
    Preset("thumb", 600, 315, ImageFormat.WEBP, 80, FitMode.COVER),
    Preset("avif", 1200, None, ImageFormat.AVIF, 65, FitMode.INSIDE),
    Preset(LQIP_PRESET, 20, None, ImageFormat.WEBP, 20, FitMode.INSIDE),
)

# Generated for cover images. The LQIP pair is produced alongside by the LQIP generator.
ESSENTIAL_PRESETS = (DEFAULT_PRESET, "og", "thumb", "avif")

# Base names that would collide with the LQIP sidecars and metadata files.
RESERVED_NAMES = ("lqip", "base64", "metadata")
BASE_NAME = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]*$")


class PresetRegistry:
    """Read-only lookup table of presets, validated at construction."""

    def __init__(
        self,
        presets: Iterable[Preset],
        essential: Sequence[str] = ESSENTIAL_PRESETS,
        default_name: str = DEFAULT_PRESET,
    ):
        table: dict[str, Preset] = {}
        for preset in presets:
            if preset.name in table:
                raise ConfigError(f"Duplicate preset: {preset.name!r}")
            table[preset.name] = preset
        self._presets = MappingProxyType(table)
        missing = [n for n in (default_name, *essential) if n not in table]
        if missing:
            raise ConfigError(f"Registry is missing presets: {', '.join(missing)}")
        if LQIP_PRESET in essential or default_name == LQIP_PRESET:
            raise ConfigError(f"{LQIP_PRESET!r} is produced by the LQIP generator and cannot be a transform preset")
        self._essential = tuple(essential)
        self.default_name = default_name

    def __contains__(self, name: object) -> bool:
        return name in self._presets

    def __iter__(self):
        return iter(self._presets.values())

    def __len__(self) -> int:
        return len(self._presets)

    def names(self) -> list[str]:
        return list(self._presets)

    def transform_names(self) -> list[str]:
        """Names a caller may request as output variants."""
        return [n for n in self._presets if n != LQIP_PRESET]

    def lookup(self, name: str) -> Preset:
        preset = self._presets.get(name)
        if preset is None:
            available = ", ".join(self._presets)
            raise ConfigError(f"Unknown preset {name!r} (available: {available})")
        return preset

    def list_essential_presets(self) -> tuple[str, ...]:
        return self._essential

    def presets_for(self, cover: bool) -> tuple[str, ...]:
        """Full family for a cover image, the default preset for anything else."""
        return self._essential if cover else (self.default_name,)

    def resolve(self, names: Optional[Iterable[str]] = None) -> list[Preset]:
        """
        Look up names in order, dropping duplicates. None means the essential family.

        The LQIP preset is rejected: its output path belongs to the LQIP generator.
        """
        if names is None:
            names = self._essential
        elif isinstance(names, str):
            names = [names]
        result = []
        seen = set()
        for name in names:
            if name in seen:
                continue
            if name == LQIP_PRESET:
                raise ConfigError(f"{LQIP_PRESET!r} is not a transform preset; request the placeholder with lqip=True")
            result.append(self.lookup(name))
            seen.add(name)
        return result


def default_registry() -> PresetRegistry:
    return PresetRegistry(DEFAULT_PRESETS)


def output_file_name(base_name: str, preset: Preset) -> str:
    """`base.ext` for the default preset, `base-<preset>.ext` for the rest."""
    suffix = "" if preset.name == DEFAULT_PRESET else f"-{preset.name}"
    return f"{base_name}{suffix}.{preset.extension}"


def validate_base_name(base_name: str) -> str:
    """Reject base names that could escape the output directory or shadow reserved files."""
    name = (base_name or "").strip()
    if not BASE_NAME.match(name) or ".." in name:
        raise ConfigError(f"Invalid base name: {base_name!r}")
    if name.lower() in RESERVED_NAMES:
        raise ConfigError(f"Reserved base name: {name!r}")
    return name
