# occlusion_xai/utils/vis.py

# Visualization Utilities For Occlusion Reports
# Colormaps A Per-Cell Drop Map And Blends It Over The Scanned Image Using Pillow And Matplotlib

from __future__ import annotations
from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image
import matplotlib


def drop_heatmap_image(cells: np.ndarray, size: int, cmap: str = "jet") -> Image.Image:
    # cells: Square Matrix In [0, 1], Upscaled With Nearest Neighbour So Cell Borders Stay Visible
    hm = np.clip(np.asarray(cells, dtype=np.float32), 0, 1)
    colormap = matplotlib.colormaps[cmap]
    rgb = (colormap(hm)[:, :, :3] * 255).astype(np.uint8)
    return Image.fromarray(rgb).resize((size, size), resample=Image.NEAREST)


def save_heatmap_overlay(image: Image.Image, cells: np.ndarray, out_path: Path,
                         alpha: float = 0.5, cmap: str = "jet") -> Path:
    img = image.convert("RGB")
    heat = drop_heatmap_image(cells, img.size[0], cmap=cmap)
    if heat.size != img.size:
        heat = heat.resize(img.size, resample=Image.NEAREST)
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    Image.blend(img, heat, alpha=alpha).save(out_path)
    return out_path


def save_image(image: Image.Image, out_path: Path, fmt: Optional[str] = None) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    image.save(out_path, format=fmt)
    return out_path
