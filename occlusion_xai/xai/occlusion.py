# occlusion_xai/xai/occlusion.py

# Occlusion Scanner
# Classifies The Unmasked Image Plus One Masked Copy Per Window Position, Concurrently,
# And Joins Every Task Before Handing Back An Immutable ScanResult

from __future__ import annotations

# Standard Library
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Dict, Optional, Sequence, Tuple

# Third-Party
from PIL import Image
from tqdm import tqdm

# Local Modules
from occlusion_xai.constants.geometry import MASK_FILL
from occlusion_xai.utils.echo import echo_line
from occlusion_xai.xai.classifiers import Classifier, extract_class_score
from occlusion_xai.xai.core.masking import check_square, draw_mask_window
from occlusion_xai.xai.core.types import ScanGeometry, ScanResult
from occlusion_xai.xai.errors import BaselineUnavailableError, ClassificationMiss

# Task Key: None For The Baseline, (row, col) For A Mask Position
TaskKey = Optional[Tuple[int, int]]

_BASELINE: TaskKey = None


class OcclusionScanner:
    def __init__(
        self,
        classifier: Classifier,
        model_ids: Sequence[str],
        geometry: Optional[ScanGeometry] = None,
        threshold: float = 0.0,
        fill: Sequence[int] = MASK_FILL,
        max_workers: int = 8,
        call_timeout: Optional[float] = 30.0,
        poll_interval: float = 0.05,
        progress: bool = False,
    ):
        if not model_ids:
            raise ValueError("At least one model id is required")
        if call_timeout is not None and call_timeout <= 0:
            raise ValueError(f"call_timeout must be positive or None, got {call_timeout}")
        self.classifier = classifier
        self.model_ids = list(model_ids)
        self.geometry = geometry or ScanGeometry()
        self.threshold = float(threshold)
        self.fill = tuple(fill)
        self.max_workers = int(max_workers)
        self.call_timeout = call_timeout
        self.poll_interval = float(poll_interval)
        self.progress = bool(progress)

    def score(self, image: Image.Image, class_name: str) -> float:
        results = self.classifier.classify(image, self.model_ids, self.threshold)
        return extract_class_score(results, class_name)

    def _run(self, key: TaskKey, image: Image.Image, class_name: str, started: Dict[TaskKey, float]) -> float:
        started[key] = time.monotonic()
        return self.score(image, class_name)

    def _expired(self, pending, keys: Dict[Future, TaskKey], started: Dict[TaskKey, float]):
        # Only Calls That Actually Started Can Time Out
        if self.call_timeout is None:
            return set()
        now = time.monotonic()
        return {f for f in pending
                if keys[f] in started and now - started[keys[f]] > self.call_timeout}

    def scan(self, image: Image.Image, class_name: str) -> ScanResult:
        geo = self.geometry
        check_square(image, geo.image_size)
        image = image.convert("RGB")

        grid = geo.empty_grid()
        baseline: Optional[float] = None
        baseline_error: Optional[BaseException] = None
        failed = timed_out = 0
        t0 = time.monotonic()

        echo_line("OCC_SCAN_START", {"class_name": class_name, "positions": geo.positions ** 2,
                                     "workers": self.max_workers}, order=["class_name"])

        started: Dict[TaskKey, float] = {}
        inputs: Dict[TaskKey, Image.Image] = {_BASELINE: image}
        keys: Dict[Future, TaskKey] = {}
        owner: Dict[Future, ThreadPoolExecutor] = {}
        pools = []

        def new_pool() -> ThreadPoolExecutor:
            pools.append(ThreadPoolExecutor(max_workers=self.max_workers,
                                            thread_name_prefix=f"occlusion-{len(pools)}"))
            return pools[-1]

        def submit(pool: ThreadPoolExecutor, key: TaskKey) -> Future:
            fut = pool.submit(self._run, key, inputs[key], class_name, started)
            keys[fut], owner[fut] = key, pool
            return fut

        try:
            pool = new_pool()
            submit(pool, _BASELINE)
            for row in range(geo.positions):
                for col in range(geo.positions):
                    inputs[(row, col)] = draw_mask_window(image, row, col, geo, self.fill)
                    submit(pool, (row, col))

            # Join Every Dispatched Task; Only This Thread Writes The Grid
            pending = set(keys)
            abandoned = set()
            with tqdm(total=len(inputs), desc="occlusion", leave=False, disable=not self.progress) as bar:
                while pending:
                    done, pending = wait(pending, timeout=self.poll_interval, return_when=FIRST_COMPLETED)
                    for fut in done:
                        key = keys[fut]
                        try:
                            value = fut.result()
                        except Exception as e:
                            if key is _BASELINE:
                                baseline_error = e
                            else:
                                failed += 1
                                if not isinstance(e, ClassificationMiss):
                                    echo_line("OCC_CELL_MISS", {"row": key[0], "col": key[1],
                                                                "error": type(e).__name__}, order=["row", "col"])
                            continue
                        if key is _BASELINE:
                            baseline = value
                        else:
                            grid[key[0] + geo.margin, key[1] + geo.margin] = value

                    expired = self._expired(pending, keys, started)
                    for fut in expired:
                        key = keys[fut]
                        if key is _BASELINE:
                            baseline_error = TimeoutError(f"baseline classification exceeded {self.call_timeout}s")
                        else:
                            timed_out += 1
                            echo_line("OCC_CELL_TIMEOUT", {"row": key[0], "col": key[1],
                                                           "timeout": float(self.call_timeout)}, order=["row", "col"])
                    abandoned |= expired
                    pending -= expired
                    bar.update(len(done) + len(expired))

                    # Every Worker Of The Current Pool Stuck In An Abandoned Call:
                    # Move Queued Tasks To A Fresh Pool So They Still Run
                    stuck = sum(1 for f in abandoned if owner[f] is pool and not f.done())
                    if stuck >= self.max_workers:
                        queued = [f for f in pending if keys[f] not in started and f.cancel()]
                        if queued:
                            pool = new_pool()
                            pending -= set(queued)
                            pending |= {submit(pool, keys[f]) for f in queued}
        finally:
            # Abandoned Calls Keep Their Thread But Never Reach The Grid
            for p in pools:
                p.shutdown(wait=False, cancel_futures=True)

        if baseline is None:
            raise BaselineUnavailableError(
                f"No baseline confidence for class {class_name!r}") from baseline_error

        result = ScanResult(
            image=image,
            class_name=class_name,
            baseline=float(baseline),
            grid=grid,
            geometry=geo,
            dispatched=len(inputs),
            failed=failed,
            timed_out=timed_out,
        )
        echo_line("OCC_SCAN_DONE", {"baseline": result.baseline, "coverage": result.coverage,
                                    "failed": failed, "timed_out": timed_out,
                                    "elapsed_sec": time.monotonic() - t0}, order=["baseline", "coverage"])
        return result
