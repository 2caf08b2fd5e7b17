"""Resize images for a preset's fit mode without ever enlarging the source."""
import logging
from typing import Optional

from PIL import Image, ImageFilter

from image_optimizer.processing.models import FitMode

logger = logging.getLogger("optimizer.resize")


def resize_cover(img: Image.Image, target_width: int, target_height: int) -> Image.Image:
    """
    Scale to cover (target_width, target_height) and center-crop the overflow.
    If covering would need upscaling, the target box is clamped to the source
    size and the source is center-cropped at native resolution instead.
    """
    w, h = img.size
    tw, th = target_width, target_height
    if w == tw and h == th:
        return img.copy()

    scale = max(tw / w, th / h)  # scale so image covers target
    if scale > 1:
        cw, ch = min(tw, w), min(th, h)
        left = (w - cw) // 2
        top = (h - ch) // 2
        return img.crop((left, top, left + cw, top + ch))

    new_w = max(tw, int(round(w * scale)))
    new_h = max(th, int(round(h * scale)))
    resized = img.resize((new_w, new_h), Image.Resampling.LANCZOS)
    left = (new_w - tw) // 2
    top = (new_h - th) // 2
    return resized.crop((left, top, left + tw, top + th))


def resize_inside(
    img: Image.Image,
    target_width: Optional[int] = None,
    target_height: Optional[int] = None,
) -> Image.Image:
    """
    Scale image to fit within target width and/or height, maintaining aspect ratio.
    If only one dimension is set, the other is computed from the image ratio.
    """
    w, h = img.size
    if target_width is None and target_height is None:
        return img.copy()
    if target_width is not None and target_height is not None:
        scale = min(target_width / w, target_height / h)
    elif target_width is not None:
        scale = target_width / w
    else:
        scale = target_height / h
    if scale >= 1:
        return img.copy()
    new_w = max(1, int(round(w * scale)))
    new_h = max(1, int(round(h * scale)))
    return img.resize((new_w, new_h), Image.Resampling.LANCZOS)


def resize_for_fit(
    img: Image.Image,
    fit: FitMode,
    target_width: Optional[int],
    target_height: Optional[int],
) -> Image.Image:
    if fit == FitMode.COVER and target_width and target_height:
        return resize_cover(img, target_width, target_height)
    if fit == FitMode.COVER:
        logger.warning("Cover fit needs both dimensions, using inside")
    return resize_inside(img, target_width, target_height)


def blur(img: Image.Image, radius: float) -> Image.Image:
    if radius <= 0:
        return img
    return img.filter(ImageFilter.GaussianBlur(radius=radius))
