"""Apply one preset to a source image and write the derived artifact."""
import logging
from pathlib import Path
from typing import Optional

from PIL import Image, ImageOps

from image_optimizer.processing.errors import InvalidSourceError
from image_optimizer.processing.models import ImageFormat, ImageMetadata, Preset, ProcessingResult
from image_optimizer.processing.presets import output_file_name
from image_optimizer.processing.resize import resize_for_fit

logger = logging.getLogger("optimizer.transformer")

PIL_FORMATS = {
    ImageFormat.WEBP: "WEBP",
    ImageFormat.AVIF: "AVIF",
    ImageFormat.JPEG: "JPEG",
    ImageFormat.PNG: "PNG",
}


def prepare_mode(img: Image.Image, fmt: ImageFormat) -> Image.Image:
    """Convert to a mode the encoder accepts; JPEG gets alpha flattened on white."""
    if fmt == ImageFormat.JPEG:
        if img.mode in ("RGBA", "LA", "P"):
            rgba = img.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.split()[3])
            return background
        if img.mode != "RGB":
            return img.convert("RGB")
        return img
    if img.mode in ("RGB", "RGBA"):
        return img
    if img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info):
        return img.convert("RGBA")
    return img.convert("RGB")


def get_image_metadata(source_path: Path) -> ImageMetadata:
    """Read dimensions and format from the image header without decoding pixels."""
    source_path = Path(source_path)
    with Image.open(source_path) as img:
        has_alpha = img.mode in ("RGBA", "LA", "PA") or "transparency" in img.info
        return ImageMetadata(
            width=img.width,
            height=img.height,
            format=img.format,
            mode=img.mode,
            size_bytes=source_path.stat().st_size,
            has_alpha=has_alpha,
        )


def validate_image(
    source_path: Path,
    min_width: int = 100,
    min_height: int = 100,
    max_bytes: Optional[int] = 10 * 1024 * 1024,
) -> ImageMetadata:
    """Raise InvalidSourceError unless the file is a readable image within the size limits."""
    try:
        meta = get_image_metadata(source_path)
    except (OSError, Image.DecompressionBombError) as e:
        raise InvalidSourceError(str(source_path), f"Unreadable image ({e})")
    if meta.width < min_width or meta.height < min_height:
        raise InvalidSourceError(
            str(source_path),
            f"Image too small ({meta.width}x{meta.height}, minimum {min_width}x{min_height})",
        )
    if max_bytes is not None and meta.size_bytes > max_bytes:
        raise InvalidSourceError(str(source_path), f"Image too large ({meta.size_bytes} bytes, max {max_bytes})")
    return meta


class ImageTransformer:
    """Resizes and encodes source images according to presets."""

    def __init__(self, webp_effort: int = 4):
        self.webp_effort = webp_effort

    def save_options(self, preset: Preset) -> dict:
        fmt = preset.format
        if fmt == ImageFormat.WEBP:
            return {"format": "WEBP", "quality": preset.quality, "method": self.webp_effort}
        if fmt == ImageFormat.JPEG:
            return {"format": "JPEG", "quality": preset.quality, "optimize": True, "progressive": True}
        if fmt == ImageFormat.PNG:
            return {"format": "PNG", "optimize": True, "compress_level": 9}
        return {"format": PIL_FORMATS[fmt], "quality": preset.quality}

    def render(self, source_path: Path, preset: Preset) -> Image.Image:
        with Image.open(source_path) as img:
            img = ImageOps.exif_transpose(img)
            img = prepare_mode(img, preset.format)
            return resize_for_fit(img, preset.fit, preset.width, preset.height)

    def _save(self, img: Image.Image, output_path: Path, preset: Preset) -> None:
        img.save(str(output_path), **self.save_options(preset))

    def transform(self, source_path: Path, preset: Preset, output_dir: Path, base_file_name: str) -> ProcessingResult:
        file_name = output_file_name(base_file_name, preset)
        output_path = Path(output_dir) / file_name
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            out_img = self.render(Path(source_path), preset)
            self._save(out_img, output_path, preset)
            size = output_path.stat().st_size
        except Exception as e:
            # A partial file would look current to the cache guard on the next run
            output_path.unlink(missing_ok=True)
            logger.error("Transform failed for %s [%s]: %s", source_path, preset.name, e)
            return ProcessingResult(
                success=False,
                output_path=output_path,
                output_file_name=file_name,
                preset=preset.name,
                format=preset.format,
                error=str(e) or type(e).__name__,
            )
        logger.debug("Generated %s (%sx%s, %s bytes)", file_name, out_img.width, out_img.height, size)
        return ProcessingResult(
            success=True,
            output_path=output_path,
            output_file_name=file_name,
            preset=preset.name,
            format=preset.format,
            size_bytes=size,
        )
