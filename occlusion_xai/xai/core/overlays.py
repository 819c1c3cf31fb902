# occlusion_xai/xai/core/overlays.py

# Saliency Renderer
# Turns A ScanResult Into Per-Cell Opacities And Composites A Black Overlay Onto A Copy Of The Image
# Pure Functions: The Grid And Baseline Are Only Read, Nothing Is Reclassified

from __future__ import annotations

# Standard Library
from typing import Optional

# Third-Party
import numpy as np
from PIL import Image

# Local Modules
from occlusion_xai.constants.geometry import SENSITIVITY, SENTINEL
from occlusion_xai.xai.core.types import ScanResult

MODES = ("drop", "spotlight")


def check_blend(blend: float) -> float:
    blend = float(blend)
    if not (0.0 <= blend <= 1.0):
        raise ValueError(f"blend weight must be in [0, 1], got {blend}")
    return blend


def neighborhood_mean(block: np.ndarray) -> Optional[float]:
    # Mean Over Non-Sentinel Values; None When The Block Carries No Signal
    vals = block[block != SENTINEL]
    if vals.size == 0:
        return None
    return float(vals.mean())


def cell_alpha(baseline: float, mean: float, sensitivity: float = SENSITIVITY) -> float:
    """Confidence-derived alpha: 1 when nothing dropped, 0 once the drop reaches 1/sensitivity."""
    drop = max(baseline - mean, 0.0)
    return min(max(1.0 - drop * sensitivity, 0.0), 1.0)


def cell_opacities(
    scan: ScanResult,
    blend: float,
    sensitivity: float = SENSITIVITY,
    mode: str = "drop",
) -> np.ndarray:
    """Paint opacity of the black fill for each display cell, shape (cells, cells).

    mode="drop" darkens regions whose occlusion lowered the confidence
    (opacity = (1 - alpha) * blend). mode="spotlight" is the inverse: it keeps
    those regions clear and darkens the rest (opacity = alpha * blend). Cells
    whose neighbourhood was never classified stay clear in both modes.
    """
    if mode not in MODES:
        raise ValueError(f"Unknown overlay mode: {mode}. Use {'|'.join(MODES)}.")
    blend = check_blend(blend)
    geo = scan.geometry
    n, k = geo.display_cells, geo.kernel

    out = np.zeros((n, n), dtype=np.float64)
    for r in range(n):
        for c in range(n):
            mean = neighborhood_mean(scan.grid[r:r + k, c:c + k])
            if mean is None:
                continue
            alpha = cell_alpha(scan.baseline, mean, sensitivity)
            weight = (1.0 - alpha) if mode == "drop" else alpha
            out[r, c] = weight * blend
    return out


def composite_cells(image: Image.Image, opacities: np.ndarray, cell: int) -> Image.Image:
    # Normal Blend Of Opaque Black: out = src * (1 - opacity)
    arr = np.asarray(image.convert("RGB"), dtype=np.float64)
    shade = np.kron(1.0 - opacities, np.ones((cell, cell)))
    h, w = arr.shape[:2]
    arr = arr * shade[:h, :w, None]
    return Image.fromarray(np.clip(np.rint(arr), 0, 255).astype(np.uint8))


def render_overlay(
    scan: ScanResult,
    blend: float,
    sensitivity: float = SENSITIVITY,
    mode: str = "drop",
    image: Optional[Image.Image] = None,
) -> Image.Image:
    """Render the scan over its own image (or a same-sized replacement)."""
    base = scan.image if image is None else image
    size = scan.geometry.image_size
    if base.size != (size, size):
        raise ValueError(f"Expected a {size}x{size} image, got {base.size[0]}x{base.size[1]}")
    opacities = cell_opacities(scan, blend, sensitivity=sensitivity, mode=mode)
    return composite_cells(base, opacities, scan.geometry.step)
