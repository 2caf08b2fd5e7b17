import pytest

from image_optimizer.processing.errors import ConfigError
from image_optimizer.processing.models import FitMode, ImageFormat, Preset
from image_optimizer.processing.presets import (
    DEFAULT_PRESETS,
    PresetRegistry,
    default_registry,
    output_file_name,
    validate_base_name,
)


def test_lookup_returns_wire_contract_presets():
    registry = default_registry()

    og = registry.lookup("og")
    assert (og.width, og.height, og.format, og.fit) == (1200, 630, ImageFormat.WEBP, FitMode.COVER)
    thumb = registry.lookup("thumb")
    assert (thumb.width, thumb.height) == (600, 315)
    assert registry.lookup("avif").format == ImageFormat.AVIF
    assert registry.lookup("lqip").width == 20
    assert set(registry.names()) == {"default", "og", "thumb", "avif", "lqip"}


def test_unknown_preset_is_a_config_error():
    registry = default_registry()

    with pytest.raises(ConfigError, match="og-jpg"):
        registry.lookup("og-jpg")
    assert "wsp" not in registry


def test_essential_family_and_single_default():
    registry = default_registry()

    assert registry.list_essential_presets() == ("default", "og", "thumb", "avif")
    assert registry.presets_for(cover=True) == ("default", "og", "thumb", "avif")
    assert registry.presets_for(cover=False) == ("default",)


def test_resolve_keeps_order_and_drops_duplicates():
    registry = default_registry()

    assert [p.name for p in registry.resolve(["thumb", "default", "thumb"])] == ["thumb", "default"]
    assert [p.name for p in registry.resolve("og")] == ["og"]
    assert [p.name for p in registry.resolve(None)] == ["default", "og", "thumb", "avif"]
    with pytest.raises(ConfigError):
        registry.resolve(["default", "nope"])


def test_output_file_name_convention():
    registry = default_registry()

    assert output_file_name("portada", registry.lookup("default")) == "portada.webp"
    assert output_file_name("portada", registry.lookup("thumb")) == "portada-thumb.webp"
    assert output_file_name("portada", registry.lookup("avif")) == "portada-avif.avif"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"quality": 0},
        {"quality": 101},
        {"width": -5},
        {"height": None, "fit": FitMode.COVER},
    ],
)
def test_invalid_preset_definitions_rejected(kwargs):
    base = {"name": "x", "width": 100, "height": 100, "format": ImageFormat.WEBP, "quality": 80, "fit": FitMode.INSIDE}
    base.update(kwargs)
    with pytest.raises(ConfigError):
        Preset(**base)


def test_registry_validates_its_own_contents():
    with pytest.raises(ConfigError, match="Duplicate"):
        PresetRegistry(DEFAULT_PRESETS + DEFAULT_PRESETS[:1])
    with pytest.raises(ConfigError, match="missing"):
        PresetRegistry(DEFAULT_PRESETS, essential=("default", "wsp"))


def test_registry_is_iterable_and_sized():
    registry = default_registry()

    assert len(registry) == len(DEFAULT_PRESETS)
    assert [p.name for p in registry] == registry.names()


def test_lqip_is_not_a_transform_preset():
    registry = default_registry()

    assert registry.transform_names() == ["default", "og", "thumb", "avif"]
    with pytest.raises(ConfigError, match="lqip=True"):
        registry.resolve(["default", "lqip"])
    with pytest.raises(ConfigError, match="LQIP generator"):
        PresetRegistry(DEFAULT_PRESETS, essential=("default", "lqip"))


@pytest.mark.parametrize(
    "name",
    ["../../../escaped", "a/b", "a\\b", ".hidden", "x..y", "", "   ", "lqip", "Base64", "metadata"],
)
def test_unsafe_or_reserved_base_names_rejected(name):
    with pytest.raises(ConfigError):
        validate_base_name(name)


def test_base_name_accepts_slugs():
    assert validate_base_name(" hero_2024-v2 ") == "hero_2024-v2"
    assert validate_base_name("portada") == "portada"
