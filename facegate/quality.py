"""
Multi-factor face quality score.

overall = weighted sum of six sub-scores in [0, 1]:
size, position, angle, sharpness, lighting, symmetry.
"""

from __future__ import annotations
import logging
import math
from typing import Optional, Tuple
import numpy as np

from .config import PipelineConfig, QualityWeights
from .feedback import generate_feedback
from .recognize.types import Detection, QualityScore

logger = logging.getLogger(__name__)

NEUTRAL = 0.5
IDEAL_FACE_RATIO = (0.10, 0.60)


# -------------------------
# Sub-scores
# -------------------------

def size_score(face_ratio: float, band: Tuple[float, float] = IDEAL_FACE_RATIO) -> float:
    lo, hi = band
    if lo <= face_ratio <= hi:
        return 1.0
    if face_ratio < lo:
        return max(0.0, face_ratio / lo)
    return max(0.0, 1.0 - (face_ratio - hi) / (1.0 - hi))


def position_score(center: Tuple[float, float], W: int, H: int) -> Tuple[float, float, float]:
    """(score, offset_x, offset_y); offsets normalised by half the frame size."""
    off_x = abs(center[0] - W / 2.0) / (W / 2.0)
    off_y = abs(center[1] - H / 2.0) / (H / 2.0)
    return max(0.0, 1.0 - (off_x + off_y) / 2.0), off_x, off_y


def _line_angle_deg(p: np.ndarray, q: np.ndarray) -> float:
    dx = abs(float(q[0] - p[0]))
    dy = abs(float(q[1] - p[1]))
    if dx == 0.0:
        return 90.0 if dy > 0.0 else 0.0
    return math.degrees(math.atan(dy / dx))


def angle_score(landmarks: Optional[np.ndarray]) -> float:
    if landmarks is None or len(landmarks) < 5:
        return NEUTRAL
    le, re, _, lm, rm = np.asarray(landmarks, dtype=np.float32)[:5]
    avg = (_line_angle_deg(le, re) + _line_angle_deg(lm, rm)) / 2.0
    if avg < 5:
        return 1.0
    if avg < 10:
        return 0.8
    if avg < 15:
        return 0.6
    if avg < 25:
        return 0.4
    return 0.2


def sharpness_score(confidence: float) -> float:
    # detector confidence stands in for blur
    if confidence > 0.9:
        return 1.0
    if confidence > 0.8:
        return 0.8
    if confidence > 0.7:
        return 0.6
    if confidence > 0.6:
        return 0.4
    return 0.2


def lighting_score(brightness: Optional[float]) -> float:
    if brightness is None:
        return 0.7
    if 100 <= brightness <= 200:
        return 1.0
    if 80 <= brightness <= 220:
        return 0.8
    if 60 <= brightness <= 240:
        return 0.6
    return 0.4


def symmetry_score(landmarks: Optional[np.ndarray]) -> float:
    if landmarks is None or len(landmarks) < 5:
        return NEUTRAL
    le, re, no, lm, rm = np.asarray(landmarks, dtype=np.float32)[:5]

    def ratio(a: float, b: float) -> float:
        hi = max(a, b)
        return min(a, b) / hi if hi > 0 else 1.0

    eye = ratio(float(np.linalg.norm(le - no)), float(np.linalg.norm(re - no)))
    mouth = ratio(float(np.linalg.norm(lm - no)), float(np.linalg.norm(rm - no)))
    return max(0.3, (eye + mouth) / 2.0)


def region_brightness(image: Optional[np.ndarray], x1: int, y1: int, x2: int, y2: int) -> Optional[float]:
    """Mean of (R+G+B)/3 over the region, None if nothing to measure."""
    if image is None or x2 <= x1 or y2 <= y1:
        return None
    roi = image[y1:y2, x1:x2]
    if roi.size == 0:
        return None
    if roi.ndim == 3:
        roi = roi[..., :3]
    return float(roi.astype(np.float32).mean())


# -------------------------
# Scorer
# -------------------------

class QualityScorer:
    def __init__(
        self,
        weights: QualityWeights = QualityWeights(),
        feedback_threshold: float = 0.7,
        positive_threshold: float = 0.8,
    ):
        weights.validate()
        self.weights = weights
        self.feedback_threshold = float(feedback_threshold)
        self.positive_threshold = float(positive_threshold)

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "QualityScorer":
        return cls(config.quality_weights, config.feedback_threshold, config.positive_feedback_threshold)

    def _invalid(self, message: str) -> QualityScore:
        q = QualityScore(
            overall=0.0, size=0.0, position=0.0, angle=0.0,
            sharpness=0.0, lighting=0.0, symmetry=0.0, error=message,
        )
        q.feedback = generate_feedback(q)
        return q

    def score(
        self,
        detection: Optional[Detection],
        frame_size: Tuple[int, int],
        image: Optional[np.ndarray] = None,
    ) -> QualityScore:
        """
        detection: face to rate
        frame_size: (W, H) of the frame it came from
        image: optional BGR frame used for the lighting factor
        """
        if detection is None or detection.box is None:
            return self._invalid("No bounding box available")
        W, H = int(frame_size[0]), int(frame_size[1])
        if W <= 0 or H <= 0:
            return self._invalid("Invalid frame size")
        box = detection.box
        if not box.is_valid():
            return self._invalid("Invalid bounding box")

        face_ratio = box.area / float(W * H)
        s_size = size_score(face_ratio)
        s_pos, off_x, off_y = position_score(box.center, W, H)
        s_angle = angle_score(detection.landmarks)
        s_sharp = sharpness_score(detection.confidence)

        brightness = None
        if image is not None:
            brightness = region_brightness(image, *box.clip_int(W, H))
        s_light = lighting_score(brightness)
        s_sym = symmetry_score(detection.landmarks)

        w = self.weights
        overall = (
            s_size * w.size
            + s_pos * w.position
            + s_angle * w.angle
            + s_sharp * w.sharpness
            + s_light * w.lighting
            + s_sym * w.symmetry
        )

        factors = {"face_ratio": face_ratio, "offset_x": off_x, "offset_y": off_y}
        if brightness is not None:
            factors["brightness"] = brightness

        q = QualityScore(
            overall=max(0.0, min(1.0, overall)),
            size=s_size,
            position=s_pos,
            angle=s_angle,
            sharpness=s_sharp,
            lighting=s_light,
            symmetry=s_sym,
            factors=factors,
        )
        q.feedback = generate_feedback(
            q,
            threshold=self.feedback_threshold,
            positive_threshold=self.positive_threshold,
            max_face_ratio=IDEAL_FACE_RATIO[1],
        )
        return q
