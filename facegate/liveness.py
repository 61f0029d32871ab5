"""
Texture/edge liveness heuristic for captured stills.

Not an anti-spoofing model. Printed photos and screens tend to be either too
flat or too noisy; live skin lands in a middle band of texture and edge
density. Anything implementing assess(image, box) -> LivenessResult can
replace it in FacePipeline.
"""

from __future__ import annotations
import logging
import random
from typing import Optional, Tuple
import numpy as np

from .config import LIVENESS_MODES, PipelineConfig
from .recognize.types import BoundingBox, LivenessResult

logger = logging.getLogger(__name__)

TEXTURE_BAND: Tuple[float, float] = (15.0, 100.0)
EDGE_RATIO_BAND: Tuple[float, float] = (0.1, 0.4)
TERM_WEIGHT = 0.4
PERMISSIVE_BONUS = 0.2


def texture_stats(region_bgr: np.ndarray, edge_delta: float = 30.0) -> Tuple[float, float]:
    """
    (normalized_texture, edge_ratio) for a face region.

    Every interior pixel is compared to its right and bottom neighbours on
    channel-mean brightness. Totals are divided by the full region pixel count.
    """
    h, w = region_bgr.shape[:2]
    total = float(h * w)
    if h < 3 or w < 3 or total <= 0:
        return 0.0, 0.0

    px = region_bgr.astype(np.float32)
    bright = px[..., :3].mean(axis=2) if px.ndim == 3 else px

    center = bright[1:-1, 1:-1]
    right = np.abs(center - bright[1:-1, 2:])
    bottom = np.abs(center - bright[2:, 1:-1])

    texture = float((right + bottom).sum()) / total
    edges = int(np.count_nonzero((right > edge_delta) | (bottom > edge_delta)))
    return texture, edges / total


class LivenessAssessor:
    def __init__(
        self,
        threshold: float = 0.6,
        mode: str = "strict",
        edge_delta: float = 30.0,
        rng: Optional[random.Random] = None,
    ):
        if mode not in LIVENESS_MODES:
            raise ValueError(f"unknown liveness mode: {mode!r}")
        self.threshold = float(threshold)
        self.mode = mode
        self.edge_delta = float(edge_delta)
        self.rng = rng or random.Random()

    @classmethod
    def from_config(cls, config: PipelineConfig, rng: Optional[random.Random] = None) -> "LivenessAssessor":
        return cls(config.liveness_threshold, config.liveness_mode, config.liveness_edge_delta, rng)

    def assess(self, image: np.ndarray, box: Optional[BoundingBox] = None) -> LivenessResult:
        if image is None or image.size == 0:
            return LivenessResult(score=0.0, is_live=False,
                                  subchecks={"texture": False, "edges": False, "region_valid": False},
                                  mode=self.mode)
        H, W = image.shape[:2]
        if box is None:
            region = image
        else:
            x1, y1, x2, y2 = box.clip_int(W, H)
            region = image[y1:y2, x1:x2]

        region_valid = region.shape[0] >= 3 and region.shape[1] >= 3
        texture, edge_ratio = texture_stats(region, self.edge_delta) if region_valid else (0.0, 0.0)

        texture_ok = TEXTURE_BAND[0] < texture < TEXTURE_BAND[1]
        edges_ok = EDGE_RATIO_BAND[0] < edge_ratio < EDGE_RATIO_BAND[1]

        score = (TERM_WEIGHT if texture_ok else 0.0) + (TERM_WEIGHT if edges_ok else 0.0)
        if self.mode == "permissive" and region_valid:
            score += self.rng.random() * PERMISSIVE_BONUS
        score = min(1.0, max(0.0, score))

        result = LivenessResult(
            score=score,
            is_live=score > self.threshold,
            subchecks={"texture": texture_ok, "edges": edges_ok, "region_valid": region_valid},
            texture=texture,
            edge_ratio=edge_ratio,
            mode=self.mode,
        )
        logger.debug("liveness: texture=%.2f edges=%.3f score=%.2f live=%s",
                     texture, edge_ratio, score, result.is_live)
        return result
