# occlusion_xai/xai/pipelines/cls_occlusion.py

# Explanation Session: Idle -> Scanning -> Rendered -> Rendered(new blend)*
# Caches One Immutable ScanResult; Blend Changes Only Re-Render

from __future__ import annotations

from typing import Callable, Optional

from PIL import Image

from occlusion_xai.constants.geometry import SENSITIVITY
from occlusion_xai.utils.echo import echo_line
from occlusion_xai.xai.core.masking import prepare_image
from occlusion_xai.xai.core.overlays import check_blend, render_overlay
from occlusion_xai.xai.core.types import ScanResult, ScanState
from occlusion_xai.xai.occlusion import OcclusionScanner

# Display Sink: Receives The Rendered Image And The Blend It Was Rendered With
DisplaySink = Callable[[Image.Image, float], None]


class ExplanationSession:
    def __init__(
        self,
        scanner: OcclusionScanner,
        class_name: str,
        sink: Optional[DisplaySink] = None,
        sensitivity: float = SENSITIVITY,
        mode: str = "drop",
        prepare: bool = True,
    ):
        self.scanner = scanner
        self.class_name = class_name
        self.sink = sink
        self.sensitivity = float(sensitivity)
        self.mode = mode
        self.prepare = prepare
        self._state = ScanState.IDLE
        self._result: Optional[ScanResult] = None
        self._blend: Optional[float] = None

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def result(self) -> Optional[ScanResult]:
        return self._result

    @property
    def blend(self) -> Optional[float]:
        return self._blend

    def reset(self) -> None:
        self._result = None
        self._blend = None
        self._state = ScanState.IDLE

    def _render(self, blend: float) -> Image.Image:
        out = render_overlay(self._result, blend, sensitivity=self.sensitivity, mode=self.mode)
        self._blend = blend
        echo_line("OCC_RENDER", {"blend": blend, "mode": self.mode}, order=["blend"])
        if self.sink is not None:
            self.sink(out, blend)
        return out

    def explain(self, image: Image.Image, blend: float) -> Image.Image:
        blend = check_blend(blend)
        self.reset()
        if self.prepare:
            image = prepare_image(image, self.scanner.geometry.image_size)

        self._state = ScanState.SCANNING
        echo_line("OCC_SESSION", {"state": self._state.value, "class_name": self.class_name})
        try:
            self._result = self.scanner.scan(image, self.class_name)
        except Exception:
            self.reset()
            raise
        self._state = ScanState.RENDERED
        return self._render(blend)

    def set_blend(self, blend: float) -> Image.Image:
        blend = check_blend(blend)
        if self._state is not ScanState.RENDERED or self._result is None:
            raise RuntimeError("Nothing to re-render; call explain() first")
        return self._render(blend)
