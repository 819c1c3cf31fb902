# occlusion_xai/constants/geometry.py

# Reference Geometry For Occlusion Scanning And Overlay Rendering
# A 224px Square Image Is Swept By A 64px Window In 16px Steps

from typing import Tuple

IMAGE_SIZE = 224          # Classifier Input Size (Square)
STEP = 16                 # Window Stride And Display Cell Size
WINDOW = 64               # Occlusion Window Side (4 Steps)

SENTINEL = -1.0           # Never-Classified Grid Cell
SENSITIVITY = 5.0         # Confidence Drop Multiplier For Overlay Alpha

# Opaque Magenta Fill, Visually Neutral For Most Classifiers
MASK_FILL: Tuple[int, int, int] = (255, 0, 255)
