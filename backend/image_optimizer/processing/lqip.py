"""Low-quality image placeholder: a tiny blurred WebP plus a data URI sidecar."""
import base64
import logging
from pathlib import Path

from PIL import Image, ImageOps

from image_optimizer.processing.models import FitMode, ImageFormat, LQIPResult, Preset
from image_optimizer.processing.resize import blur, resize_inside
from image_optimizer.processing.transformer import prepare_mode

logger = logging.getLogger("optimizer.lqip")

LQIP_SUFFIX = "-lqip"


def lqip_paths(output_dir: Path, base_name: str) -> tuple[Path, Path]:
    output_dir = Path(output_dir)
    return output_dir / f"{base_name}{LQIP_SUFFIX}.webp", output_dir / f"{base_name}{LQIP_SUFFIX}.txt"


def to_data_uri(data: bytes, mime_type: str = "image/webp") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def read_data_uri(base64_path: Path) -> str:
    return Path(base64_path).read_text(encoding="utf-8").strip()


class LQIPGenerator:
    def __init__(self, width: int = 20, quality: int = 20, blur_radius: float = 5.0):
        self.width = width
        self.quality = quality
        self.blur_radius = blur_radius

    @classmethod
    def from_preset(cls, preset: Preset, blur_radius: float = 5.0) -> "LQIPGenerator":
        if preset.format != ImageFormat.WEBP or preset.fit != FitMode.INSIDE or preset.width is None:
            logger.warning("LQIP preset %r is not a width-bound WebP; using its width and quality only", preset.name)
        return cls(width=preset.width or 20, quality=preset.quality, blur_radius=blur_radius)

    def generate(self, source_path: Path, output_dir: Path, base_name: str) -> LQIPResult:
        lqip_path, base64_path = lqip_paths(output_dir, base_name)
        try:
            lqip_path.parent.mkdir(parents=True, exist_ok=True)
            with Image.open(source_path) as img:
                img = ImageOps.exif_transpose(img)
                img = prepare_mode(img, ImageFormat.WEBP)
                tiny = blur(resize_inside(img, target_width=self.width), self.blur_radius)
            tiny.save(str(lqip_path), format="WEBP", quality=self.quality)
            data = lqip_path.read_bytes()
            data_uri = to_data_uri(data)
            base64_path.write_text(data_uri, encoding="utf-8")
        except Exception as e:
            for p in (lqip_path, base64_path):
                p.unlink(missing_ok=True)
            logger.error("LQIP generation failed for %s: %s", source_path, e)
            return LQIPResult(
                success=False,
                lqip_path=lqip_path,
                base64_path=base64_path,
                error=str(e) or type(e).__name__,
            )
        logger.debug("Generated LQIP %s (%s bytes)", lqip_path.name, len(data))
        return LQIPResult(
            success=True,
            lqip_path=lqip_path,
            base64_path=base64_path,
            data_uri=data_uri,
            size_bytes=len(data),
        )
