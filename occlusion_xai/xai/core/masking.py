# occlusion_xai/xai/core/masking.py

# Image Utilities Shared By Scanner And Session
# Paints Occlusion Windows And Normalizes Input Photos To The Classifier Square

from __future__ import annotations

# Standard Library
from typing import Sequence

# Third-Party
from PIL import Image, ImageDraw

# Local Modules
from occlusion_xai.constants.geometry import MASK_FILL
from occlusion_xai.xai.core.types import ScanGeometry


def window_box(row: int, col: int, geometry: ScanGeometry):
    # Pixel Box (x1, y1, x2, y2) Of Mask Position, Right/Bottom Exclusive
    x1, y1 = col * geometry.step, row * geometry.step
    return [x1, y1, x1 + geometry.window, y1 + geometry.window]


def draw_mask_window(
    image: Image.Image,
    row: int,
    col: int,
    geometry: ScanGeometry,
    fill: Sequence[int] = MASK_FILL,
) -> Image.Image:
    # Copy Source And Paint One Opaque Window; Source Is Never Touched
    out = image.copy()
    x1, y1, x2, y2 = window_box(row, col, geometry)
    # ImageDraw Boxes Are Inclusive On Both Ends, Pixels Past The Edge Are Clipped
    ImageDraw.Draw(out).rectangle([x1, y1, x2 - 1, y2 - 1], fill=tuple(fill))
    return out


def crop_to_center(image: Image.Image) -> Image.Image:
    """Crop the longer side so the result is a centred square."""
    w, h = image.size
    if w == h:
        return image.copy()
    side = min(w, h)
    off_x = (w - side) // 2
    off_y = (h - side) // 2
    return image.crop((off_x, off_y, off_x + side, off_y + side))


def resize_to_fit(image: Image.Image, size: int) -> Image.Image:
    """Scale isotropically so the image fits inside size x size."""
    w, h = image.size
    scale = min(size / w, size / h)
    new_w, new_h = max(1, int(round(w * scale))), max(1, int(round(h * scale)))
    return image.resize((new_w, new_h), resample=Image.BILINEAR)


def prepare_image(image: Image.Image, size: int) -> Image.Image:
    # RGB -> Center Square -> Classifier Size
    return resize_to_fit(crop_to_center(image.convert("RGB")), size)


def check_square(image: Image.Image, size: int) -> None:
    if image.size != (size, size):
        raise ValueError(f"Expected a {size}x{size} image, got {image.size[0]}x{image.size[1]}")
