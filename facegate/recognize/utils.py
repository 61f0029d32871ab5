from __future__ import annotations
from typing import Tuple
import numpy as np


def _clip_xyxy(x1: float, y1: float, x2: float, y2: float, W: int, H: int) -> Tuple[int, int, int, int]:
    x1 = int(max(0, min(W - 1, round(x1))))
    y1 = int(max(0, min(H - 1, round(y1))))
    x2 = int(max(0, min(W, round(x2))))
    y2 = int(max(0, min(H, round(y2))))
    return x1, y1, x2, y2


def _bbox_from_5pt(kps: np.ndarray, pad_x: float = 0.55, pad_y_top: float = 0.85, pad_y_bot: float = 1.15) -> np.ndarray:
    """
    Face box from 5 keypoints, padded asymmetrically:
    more forehead above the eyes, more chin below the mouth.
    """
    k = kps.astype(np.float32)
    x_min, x_max = float(np.min(k[:, 0])), float(np.max(k[:, 0]))
    y_min, y_max = float(np.min(k[:, 1])), float(np.max(k[:, 1]))

    w = max(1.0, x_max - x_min)
    h = max(1.0, y_max - y_min)

    return np.array(
        [x_min - pad_x * w, y_min - pad_y_top * h, x_max + pad_x * w, y_max + pad_y_bot * h],
        dtype=np.float32,
    )


def _kps_span_ok(kps: np.ndarray, min_eye_dist: float = 12.0) -> bool:
    """Eyes far enough apart, mouth corners below the nose."""
    k = kps.astype(np.float32)
    le, re, no, lm, rm = k[:5]
    if float(np.linalg.norm(re - le)) < min_eye_dist:
        return False
    return bool(lm[1] > no[1] and rm[1] > no[1])


def rms_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Euclidean distance normalised by descriptor length: sqrt(sum(d^2) / n)."""
    d = a.astype(np.float64) - b.astype(np.float64)
    return float(np.sqrt(np.sum(d * d) / d.size))
