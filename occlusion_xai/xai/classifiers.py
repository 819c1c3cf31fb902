# occlusion_xai/xai/classifiers.py

# Classifier Boundary For Occlusion Scanning
# Any Object With classify(image, model_ids, threshold) Works; A Torchvision Adapter Is Provided
# Local Weights Only, Model Download Is Left To The Caller

from __future__ import annotations

# Standard Library
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

# Third-Party
import torch
import torch.nn as nn
import torchvision.transforms.functional as F
from PIL import Image
from torchvision.models import resnet18, resnet34, resnet50

# Local Modules
from occlusion_xai.constants.norms import get_norm_lists
from occlusion_xai.utils.device_utils import select_device
from occlusion_xai.utils.echo import echo_line
from occlusion_xai.xai.core.types import ClassScore, ClassifierResult
from occlusion_xai.xai.errors import ClassificationMiss, ModelNotFoundError

_IMAGENET_MEAN, _IMAGENET_STD = get_norm_lists()

_BACKBONES = {"resnet18": resnet18, "resnet34": resnet34, "resnet50": resnet50}


class Classifier(Protocol):
    def classify(
        self,
        image: Image.Image,
        model_ids: Sequence[str],
        threshold: float = 0.0,
    ) -> List[ClassifierResult]:
        ...


def extract_class_score(results: Sequence[ClassifierResult], class_name: str) -> float:
    # Only The First Model's Class List Is Consulted; Match Is Case-Insensitive And Exact
    if not results:
        raise ClassificationMiss("classifier returned no result")
    wanted = class_name.upper()
    matches = [c for c in results[0].classes if c.class_name.upper() == wanted]
    if not matches:
        raise ClassificationMiss(f"class {class_name!r} not in result of model {results[0].model_id!r}")
    if matches[0].score is None:
        raise ClassificationMiss(f"class {class_name!r} has no score")
    return float(matches[0].score)


class TorchClassifier:
    """Serve one or more torch image classifiers under string model ids.

    Inputs are RGB PIL images; they are converted to tensors, normalized with
    ImageNet statistics and passed through softmax. Each call is independent,
    so the scanner may invoke it from several threads at once.
    """

    def __init__(self, models: Dict[str, nn.Module], labels: Sequence[str], device: str = "auto"):
        self.device = select_device(device)
        self.models = {mid: m.to(self.device).eval() for mid, m in models.items()}
        self.labels = list(labels)

    def _to_tensor(self, image: Image.Image) -> torch.Tensor:
        x = F.to_tensor(image.convert("RGB"))
        x = F.normalize(x, mean=_IMAGENET_MEAN, std=_IMAGENET_STD)
        return x.unsqueeze(0).to(self.device)

    @torch.no_grad()
    def _scores(self, model: nn.Module, x: torch.Tensor) -> List[float]:
        probs = torch.softmax(model(x), dim=1)[0]
        return probs.cpu().tolist()

    def classify(
        self,
        image: Image.Image,
        model_ids: Sequence[str],
        threshold: float = 0.0,
    ) -> List[ClassifierResult]:
        x = self._to_tensor(image)
        results = []
        for mid in model_ids:
            model = self.models.get(mid)
            if model is None:
                raise ModelNotFoundError(f"unknown model id {mid!r}", model_id=mid)
            scores = self._scores(model, x)
            if len(scores) != len(self.labels):
                raise ValueError(f"Model {mid!r} outputs {len(scores)} scores for {len(self.labels)} labels")
            classes = [ClassScore(name, s) for name, s in zip(self.labels, scores) if s >= threshold]
            classes.sort(key=lambda c: c.score, reverse=True)
            results.append(ClassifierResult(model_id=mid, classes=classes))
        return results


def read_labels(path: str | Path) -> List[str]:
    # One Label Per Line, Blank Lines Ignored
    lines = Path(path).read_text(encoding="utf-8").splitlines()
    return [ln.strip() for ln in lines if ln.strip()]


def _load_backbone(name: str, num_classes: int, local_weights: Optional[str]) -> nn.Module:
    name = name.lower()
    if local_weights is None:
        raise ValueError("Must provide model.local_weights; models are never downloaded.")
    if name not in _BACKBONES:
        raise ValueError(f"Unsupported model_name: {name}. Use resnet18|resnet34|resnet50.")
    if not Path(local_weights).exists():
        raise ModelNotFoundError(f"weights not found at {local_weights}", model_id=name)

    m = _BACKBONES[name](weights=None, num_classes=num_classes)
    sd = torch.load(local_weights, map_location="cpu")
    sd = sd.get("model", sd) if isinstance(sd, dict) else sd
    try:
        m.load_state_dict(sd, strict=True)
    except RuntimeError as e:
        raise RuntimeError(f"Failed to load local weights from {local_weights}") from e

    echo_line("CLS_MODEL", {"model_name": name, "num_classes": num_classes, "weights": local_weights},
              order=["model_name", "num_classes"])
    return m


def build_torch_classifier(cfg) -> TorchClassifier:
    # cfg: Namespace From occlusion_xai.utils.config.load_config
    mcfg = cfg.model
    labels = read_labels(mcfg.labels)
    model = _load_backbone(mcfg.model_name, len(labels), mcfg.local_weights)
    return TorchClassifier({mcfg.model_id: model}, labels, device=cfg.device)
