import threading
import time

import numpy as np
import pytest
from PIL import Image

from occlusion_xai.xai.core.types import ClassScore, ClassifierResult

# Target Object Occupies Pixels [96, 128) x [96, 128)
TARGET = (96, 128)
PEAK = 0.9


def target_image(size=224):
    arr = np.full((size, size, 3), 60, dtype=np.uint8)
    lo, hi = TARGET
    arr[lo:hi, lo:hi] = 255
    return Image.fromarray(arr)


def mask_position(image, step=16):
    # (row, col) Of The Painted Magenta Window, None For The Unmasked Image
    arr = np.asarray(image)
    hit = (arr[..., 0] == 255) & (arr[..., 1] == 0) & (arr[..., 2] == 255)
    if not hit.any():
        return None
    ys, xs = np.nonzero(hit)
    return int(ys.min()) // step, int(xs.min()) // step


class FakeClassifier:
    """Scores "usb" by how much of the white target square is still visible."""

    def __init__(self, fail=(), miss=(), delay=None, hang=(), baseline_error=None):
        self.fail = set(fail)
        self.miss = set(miss)
        self.delay = delay
        self.hang = set(hang)
        self.baseline_error = baseline_error
        self.release = threading.Event()
        self._lock = threading.Lock()
        self.calls = 0
        self.finished = 0

    def _score(self, image):
        arr = np.asarray(image)
        lo, hi = TARGET
        region = arr[lo:hi, lo:hi]
        if region.size == 0:
            return 0.0
        visible = np.all(region == 255, axis=-1).mean()
        return PEAK * float(visible)

    def classify(self, image, model_ids, threshold=0.0):
        with self._lock:
            self.calls += 1
        try:
            pos = mask_position(image)
            if self.delay is not None:
                time.sleep(self.delay(pos))
            if pos is None and self.baseline_error is not None:
                raise self.baseline_error
            if pos in self.hang:
                self.release.wait(10)
            if pos in self.fail:
                raise RuntimeError(f"boom at {pos}")
            if pos in self.miss:
                return [ClassifierResult(model_ids[0], [ClassScore("cable", 0.5)])]
            classes = [ClassScore("USB", self._score(image)), ClassScore("cable", 0.05)]
            return [ClassifierResult(mid, classes) for mid in model_ids]
        finally:
            with self._lock:
                self.finished += 1


@pytest.fixture
def image():
    return target_image()


@pytest.fixture
def fake():
    clf = FakeClassifier()
    yield clf
    clf.release.set()
