"""
5-point face alignment to the ArcFace 112x112 template.
Keypoint order: [Leye, Reye, Nose, Lmouth, Rmouth].
"""

from __future__ import annotations
from typing import Tuple
import cv2
import numpy as np

# InsightFace ArcFace template for 112x112 crops
ARCFACE_DST = np.array([
    [38.2946, 51.6963],  # left eye
    [73.5318, 51.5014],  # right eye
    [56.0252, 71.7366],  # nose
    [41.5493, 92.3655],  # left mouth
    [70.7299, 92.2041],  # right mouth
], dtype=np.float32)


def estimate_norm_5pt(kps_5x2: np.ndarray, out_size: Tuple[int, int] = (112, 112)) -> np.ndarray:
    """2x3 similarity transform mapping the keypoints onto the template."""
    k = np.asarray(kps_5x2, dtype=np.float32)[:5]
    out_w, out_h = int(out_size[0]), int(out_size[1])

    dst = ARCFACE_DST
    if (out_w, out_h) != (112, 112):
        dst = dst * np.array([out_w / 112.0, out_h / 112.0], dtype=np.float32)

    M, _ = cv2.estimateAffinePartial2D(k, dst, method=cv2.LMEDS)
    if M is None:
        # eyes + nose only
        M = cv2.getAffineTransform(k[:3].copy(), dst[:3].copy())
    return M.astype(np.float32)


def align_face_5pt(
    frame_bgr: np.ndarray,
    kps_5x2: np.ndarray,
    out_size: Tuple[int, int] = (112, 112),
) -> Tuple[np.ndarray, np.ndarray]:
    """Returns (aligned_bgr, M)."""
    M = estimate_norm_5pt(kps_5x2, out_size=out_size)
    aligned = cv2.warpAffine(
        frame_bgr,
        M,
        (int(out_size[0]), int(out_size[1])),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(0, 0, 0),
    )
    return aligned, M
