# scripts/explain.py

# Explains One Classification With Occlusion Saliency Using Configurable YAML Settings
# Scans Once, Then Renders One Overlay Per Configured Blend Weight Without Rescanning
# Saves Overlays, A Colormapped Drop Heatmap And A JSON Summary To Disk

from __future__ import annotations

# Standard Library
import argparse
import json
import sys
from pathlib import Path

# Third-Party
import yaml
from PIL import Image

# Local Modules
from occlusion_xai.utils.config import load_config, scanner_from_cfg
from occlusion_xai.utils.echo import echo_line
from occlusion_xai.utils.vis import save_heatmap_overlay, save_image
from occlusion_xai.xai.classifiers import build_torch_classifier
from occlusion_xai.xai.core.overlays import cell_opacities
from occlusion_xai.xai.errors import BaselineUnavailableError, ServiceError, describe_service_error
from occlusion_xai.xai.pipelines.cls_occlusion import ExplanationSession


# Prepare Output Directory And Save Config
def _prepare_out_dir(out_dir: str, raw_cfg: dict) -> Path:
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    (out / "config.used.yaml").write_text(yaml.safe_dump(raw_cfg, sort_keys=False))
    return out


def _ns_to_dict(ns):
    if hasattr(ns, "__dict__"):
        return {k: _ns_to_dict(v) for k, v in vars(ns).items()}
    if isinstance(ns, list):
        return [_ns_to_dict(v) for v in ns]
    return ns


def main(argv=None) -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--cfg", type=str, default="configs/occlusion.yaml", help="YAML Config File Path")
    parser.add_argument("--image", type=str, required=True, help="Image To Explain")
    parser.add_argument("--class-name", type=str, default=None, help="Override Target Class")
    parser.add_argument("--out-dir", type=str, default=None, help="Override Output Directory")
    args = parser.parse_args(argv)

    overrides = {}
    if args.class_name:
        overrides["class_name"] = args.class_name
    if args.out_dir:
        overrides["out_dir"] = args.out_dir
    cfg = load_config(args.cfg, overrides=overrides)
    out_dir = _prepare_out_dir(cfg.out_dir, _ns_to_dict(cfg))
    stem = Path(args.image).stem

    try:
        classifier = build_torch_classifier(cfg)
    except ServiceError as e:
        echo_line("OCC_ERROR", {"stage": "model", "category": e.category, "message": describe_service_error(e)})
        return 2

    # Display Sink Writes One File Per Blend Weight
    def sink(img: Image.Image, blend: float) -> None:
        path = save_image(img, out_dir / f"{stem}_overlay_{int(round(blend * 100)):03d}.png")
        echo_line("OCC_SAVE", {"blend": blend, "path": str(path)}, order=["blend"])

    session = ExplanationSession(
        scanner_from_cfg(cfg, classifier),
        class_name=cfg.class_name,
        sink=sink,
        sensitivity=float(cfg.render.sensitivity),
        mode=cfg.render.mode,
    )

    image = Image.open(args.image)
    try:
        session.explain(image, float(cfg.render.blend))
    except BaselineUnavailableError as e:
        cause = e.__cause__
        category = cause.category if isinstance(cause, ServiceError) else "miss"
        message = describe_service_error(cause) if isinstance(cause, ServiceError) else str(e)
        echo_line("OCC_ERROR", {"stage": "baseline", "category": category, "message": message})
        return 1

    for blend in cfg.render.blends:
        session.set_blend(float(blend))

    result = session.result
    drop = cell_opacities(result, 1.0, sensitivity=float(cfg.render.sensitivity), mode="drop")
    save_heatmap_overlay(result.image, drop, out_dir / f"{stem}_drop_heatmap.png")

    summary = {
        "image": args.image,
        "class_name": result.class_name,
        "baseline": result.baseline,
        "coverage": result.coverage,
        "dispatched": result.dispatched,
        "failed": result.failed,
        "timed_out": result.timed_out,
        "grid": result.grid.tolist(),
    }
    (out_dir / f"{stem}_summary.json").write_text(json.dumps(summary, indent=2))
    echo_line("OCC_DONE", {"baseline": result.baseline, "out_dir": str(out_dir)}, order=["baseline"])
    return 0


# Entry Point
if __name__ == "__main__":
    sys.exit(main())
