import numpy as np
import pytest
from PIL import Image

from occlusion_xai.constants.geometry import SENTINEL
from occlusion_xai.xai.core.overlays import (
    cell_alpha,
    cell_opacities,
    composite_cells,
    neighborhood_mean,
    render_overlay,
)
from occlusion_xai.xai.core.types import ScanGeometry, ScanResult

GEO = ScanGeometry()


def _gray(value=200):
    return Image.new("RGB", (GEO.image_size, GEO.image_size), (value, value, value))


def _scan(fill=None, baseline=0.9, grid=None):
    if grid is None:
        grid = GEO.empty_grid()
        if fill is not None:
            m, p = GEO.margin, GEO.positions
            grid[m:m + p, m:m + p] = fill
    return ScanResult(image=_gray(), class_name="USB", baseline=baseline, grid=grid, geometry=GEO)


def test_no_drop_leaves_cells_clear():
    scan = _scan(fill=0.9, baseline=0.9)
    for blend in (0.0, 0.3, 1.0):
        assert np.allclose(cell_opacities(scan, blend), 0.0)
    assert render_overlay(scan, 1.0).tobytes() == scan.image.tobytes()


def test_drop_of_one_fifth_is_fully_dark():
    # 0.90 -> 0.70 With Sensitivity 5: alpha 0, Paint Opacity 1
    scan = _scan(fill=0.7, baseline=0.9)
    assert cell_alpha(0.9, 0.7, 5.0) == 0.0
    assert np.allclose(cell_opacities(scan, 1.0, sensitivity=5.0), 1.0)
    assert np.asarray(render_overlay(scan, 1.0)).max() == 0


def test_all_sentinel_neighbourhood_is_clear():
    scan = _scan()
    assert np.all(cell_opacities(scan, 1.0) == 0.0)
    assert np.all(cell_opacities(scan, 1.0, mode="spotlight") == 0.0)
    assert render_overlay(scan, 1.0).tobytes() == scan.image.tobytes()
    assert neighborhood_mean(np.full((4, 4), SENTINEL)) is None


def test_neighbourhood_mean_skips_sentinels():
    block = np.full((4, 4), SENTINEL)
    block[0, 0], block[3, 3] = 0.2, 0.6
    assert neighborhood_mean(block) == pytest.approx(0.4)


def test_corner_cell_reads_single_mask():
    grid = GEO.empty_grid()
    m = GEO.margin
    grid[m, m] = 0.8
    op = cell_opacities(_scan(grid=grid, baseline=0.9), 1.0)
    # Only Display Cells Covered By Mask (0, 0) See A Value
    assert op[0, 0] == pytest.approx(0.5)
    assert op[3, 3] == pytest.approx(0.5)
    assert op[4, 4] == 0.0
    assert op.shape == (14, 14)


def test_render_is_deterministic():
    rng = np.random.default_rng(0)
    grid = GEO.empty_grid()
    m, p = GEO.margin, GEO.positions
    grid[m:m + p, m:m + p] = rng.uniform(0.5, 1.0, size=(p, p))
    grid[m + 2, m + 5] = SENTINEL
    scan = _scan(grid=grid, baseline=0.95)
    a = render_overlay(scan, 0.6)
    b = render_overlay(scan, 0.6)
    assert a.tobytes() == b.tobytes()
    assert a.size == scan.image.size


def test_rerender_keeps_scan_data():
    scan = _scan(fill=0.75)
    grid_before = scan.grid.copy()
    for blend in (0.1, 0.9, 0.4):
        render_overlay(scan, blend)
    assert np.array_equal(scan.grid, grid_before)
    assert scan.baseline == 0.9


def test_opacity_monotone_in_blend():
    scan = _scan(fill=0.8)
    prev = None
    for blend in np.linspace(0, 1, 11):
        op = cell_opacities(scan, blend)
        if prev is not None:
            assert np.all(op >= prev)
        prev = op


def test_opacity_monotone_in_drop():
    prev = -1.0
    for mean in np.linspace(1.0, 0.0, 21):
        op = cell_opacities(_scan(fill=mean, baseline=0.9), 1.0)[7, 7]
        assert op >= prev
        prev = op


@pytest.mark.parametrize("baseline,mean", [(1.0, 0.0), (0.0, 1.0), (0.9, 0.9), (0.5, 0.45), (10.0, -5.0)])
def test_opacity_clamped(baseline, mean):
    for mode in ("drop", "spotlight"):
        op = cell_opacities(_scan(fill=mean, baseline=baseline), 1.0, mode=mode)
        assert np.all((op >= 0.0) & (op <= 1.0))


def test_spotlight_mode_inverts():
    scan = _scan(fill=0.9, baseline=0.9)
    assert np.allclose(cell_opacities(scan, 0.4, mode="spotlight"), 0.4)
    scan = _scan(fill=0.7, baseline=0.9)
    assert np.allclose(cell_opacities(scan, 1.0, mode="spotlight"), 0.0)


def test_bad_arguments():
    scan = _scan(fill=0.8)
    with pytest.raises(ValueError):
        cell_opacities(scan, 1.5)
    with pytest.raises(ValueError):
        cell_opacities(scan, -0.1)
    with pytest.raises(ValueError):
        cell_opacities(scan, 0.5, mode="invert")
    with pytest.raises(ValueError):
        render_overlay(scan, 0.5, image=Image.new("RGB", (100, 100)))


def test_composite_normal_blend():
    op = np.zeros((14, 14))
    op[0, 0] = 0.5
    out = np.asarray(composite_cells(_gray(200), op, 16))
    assert out[0, 0, 0] == 100
    assert out[15, 15, 1] == 100
    assert out[16, 16, 2] == 200
