# occlusion_xai/constants/norms.py

# ImageNet Normalization Constants For The Torch Classifier Adapter

from typing import List, Tuple

IMAGENET_MEAN: List[float] = [0.485, 0.456, 0.406]  # ImageNet Channel Means (R, G, B)
IMAGENET_STD:  List[float] = [0.229, 0.224, 0.225]  # ImageNet Channel Standard Deviations (R, G, B)


def get_norm_lists() -> Tuple[List[float], List[float]]:
    # Mean And Std As Python Lists For torchvision.transforms.functional.normalize
    return IMAGENET_MEAN, IMAGENET_STD
