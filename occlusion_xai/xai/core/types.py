from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from PIL import Image

from occlusion_xai.constants.geometry import IMAGE_SIZE, STEP, WINDOW, SENTINEL


@dataclass(frozen=True)
class ScanGeometry:
    """Window layout shared by the scanner and the renderer.

    Mask position (row, col) sits at pixel offset (col*step, row*step) and is
    stored in the confidence grid at (row+margin, col+margin). Display cell
    (r, c) aggregates grid[r:r+kernel, c:c+kernel], i.e. every mask that
    covered it.
    """
    image_size: int = IMAGE_SIZE
    step: int = STEP
    window: int = WINDOW

    def __post_init__(self):
        if self.step <= 0:
            raise ValueError(f"step must be positive, got {self.step}")
        if self.image_size % self.step or self.window % self.step:
            raise ValueError(
                f"image_size={self.image_size} and window={self.window} must be multiples of step={self.step}")
        if not (0 < self.window <= self.image_size):
            raise ValueError(f"window={self.window} must fit inside image_size={self.image_size}")

    @property
    def display_cells(self) -> int:
        return self.image_size // self.step

    @property
    def kernel(self) -> int:
        return self.window // self.step

    @property
    def margin(self) -> int:
        return self.kernel - 1

    @property
    def positions(self) -> int:
        return (self.image_size - self.window) // self.step + 1

    @property
    def grid_size(self) -> int:
        return self.positions + 2 * self.margin

    def empty_grid(self) -> np.ndarray:
        return np.full((self.grid_size, self.grid_size), SENTINEL, dtype=np.float64)


@dataclass(frozen=True)
class ClassScore:
    class_name: str
    score: Optional[float]


@dataclass(frozen=True)
class ClassifierResult:
    model_id: str
    classes: List[ClassScore] = field(default_factory=list)


class ScanState(enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    RENDERED = "rendered"


@dataclass(frozen=True)
class ScanResult:
    """Immutable outcome of one occlusion scan, reused by every re-render."""
    image: Image.Image
    class_name: str
    baseline: float
    grid: np.ndarray
    geometry: ScanGeometry
    dispatched: int = 0
    failed: int = 0
    timed_out: int = 0

    def __post_init__(self):
        expected = (self.geometry.grid_size, self.geometry.grid_size)
        if self.grid.shape != expected:
            raise ValueError(f"grid shape {self.grid.shape} does not match geometry {expected}")
        grid = np.array(self.grid, dtype=np.float64, copy=True)
        grid.setflags(write=False)
        object.__setattr__(self, "grid", grid)

    @property
    def scanned(self) -> np.ndarray:
        # Grid Region Covered By Mask Positions (Without Padding Margin)
        m, p = self.geometry.margin, self.geometry.positions
        return self.grid[m:m + p, m:m + p]

    @property
    def coverage(self) -> float:
        scanned = self.scanned
        return float(np.count_nonzero(scanned != SENTINEL)) / float(scanned.size)
