# occlusion_xai/utils/config.py
from __future__ import annotations

import copy
from types import SimpleNamespace
from typing import Optional

import yaml

from occlusion_xai.constants.geometry import IMAGE_SIZE, MASK_FILL, SENSITIVITY, STEP, WINDOW

DEFAULTS = {
    "device": "auto",
    "image_size": IMAGE_SIZE,
    "class_name": "USB",
    "out_dir": "outputs/occlusion",
    "scan": {
        "step": STEP,
        "window": WINDOW,
        "fill": list(MASK_FILL),
        "threshold": 0.0,
        "max_workers": 8,
        "call_timeout": 30.0,
        "progress": True,
    },
    "render": {
        "sensitivity": SENSITIVITY,
        "mode": "drop",
        "blend": 0.5,
        "blends": [0.25, 0.5, 1.0],
    },
    "model": {
        "model_id": "resnet18",
        "model_name": "resnet18",
        "local_weights": None,
        "labels": None,
    },
}


def _merge(base: dict, over: dict) -> dict:
    out = copy.deepcopy(base)
    for k, v in (over or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def _to_namespace(obj):
    if isinstance(obj, dict):
        return SimpleNamespace(**{k: _to_namespace(v) for k, v in obj.items()})
    if isinstance(obj, list):
        return [_to_namespace(v) for v in obj]
    return obj


def load_config(path: Optional[str] = None, overrides: Optional[dict] = None):
    data = {}
    if path is not None:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a mapping: {path}")
    return _to_namespace(_merge(_merge(DEFAULTS, data), overrides or {}))


def scan_geometry_from_cfg(cfg):
    from occlusion_xai.xai.core.types import ScanGeometry
    return ScanGeometry(image_size=int(cfg.image_size), step=int(cfg.scan.step), window=int(cfg.scan.window))


def scanner_from_cfg(cfg, classifier):
    from occlusion_xai.xai.occlusion import OcclusionScanner
    timeout = cfg.scan.call_timeout
    return OcclusionScanner(
        classifier,
        model_ids=[cfg.model.model_id],
        geometry=scan_geometry_from_cfg(cfg),
        threshold=float(cfg.scan.threshold),
        fill=[int(v) for v in cfg.scan.fill],
        max_workers=int(cfg.scan.max_workers),
        call_timeout=None if timeout is None else float(timeout),
        progress=bool(cfg.scan.progress),
    )
