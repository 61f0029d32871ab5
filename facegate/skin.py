"""
Skin-tone clustering detector.

Used when no model-backed detector is available. The frame is cut into square
blocks, a few pixels per block are classified as skin or not, skin blocks are
grouped by proximity and the largest group is expanded into a face-sized box.

Block size, sampling stride, radii and multipliers come from SkinClusterConfig.
"""

from __future__ import annotations
import logging
from typing import List, Tuple
import numpy as np

from .config import SkinClusterConfig
from .recognize.types import BoundingBox, Detection, Frame

logger = logging.getLogger(__name__)


# -------------------------
# Pixel classifier
# -------------------------

def skin_mask(img_bgr: np.ndarray) -> np.ndarray:
    """
    Boolean (H, W) mask of skin-coloured pixels.

    Near-black and near-white pixels are rejected outright. Anything else is
    skin if it matches one of four R/G/B ordering patterns covering light to
    dark complexions.
    """
    px = img_bgr.astype(np.int16)
    b, g, r = px[..., 0], px[..., 1], px[..., 2]

    too_dark = (r < 60) | (g < 40) | (b < 20)
    too_bright = (r > 250) & (g > 250) & (b > 250)

    hi = np.maximum(np.maximum(r, g), b)
    lo = np.minimum(np.minimum(r, g), b)
    rg = np.abs(r - g)

    p1 = (r > 95) & (g > 40) & (b > 20) & ((hi - lo) > 15) & (rg > 15) & (r > g) & (r > b)
    p2 = (r > 80) & (g > 60) & (b > 40) & (r >= g) & (g >= b)
    p3 = (r > 100) & (g > 80) & (b > 60) & (r > g) & (g > b) & (rg < 50)
    p4 = (r > 60) & (g > 40) & (b > 30) & (r >= g) & (g >= b) & (r < 130)

    return ~too_dark & ~too_bright & (p1 | p2 | p3 | p4)


def is_skin_tone(r: int, g: int, b: int) -> bool:
    px = np.array([[[b, g, r]]], dtype=np.uint8)
    return bool(skin_mask(px)[0, 0])


# -------------------------
# Blocks + clusters
# -------------------------

def classify_blocks(img_bgr: np.ndarray, cfg: SkinClusterConfig) -> List[Tuple[int, int, float]]:
    """
    Returns [(x, y, density)] for every block whose sampled skin fraction
    exceeds cfg.skin_fraction. Only blocks that fit strictly inside the frame
    are considered.
    """
    H, W = img_bgr.shape[:2]
    bs, st = int(cfg.block_size), int(cfg.sample_stride)
    ny, nx = (H - 1) // bs, (W - 1) // bs
    if ny <= 0 or nx <= 0:
        return []

    mask = skin_mask(img_bgr[: ny * bs, : nx * bs])
    sampled = mask[::st, ::st]
    k = bs // st
    density = sampled.reshape(ny, k, nx, k).mean(axis=(1, 3))

    ys, xs = np.nonzero(density > cfg.skin_fraction)
    return [(int(x) * bs, int(y) * bs, float(density[y, x])) for y, x in zip(ys, xs)]


def cluster_blocks(blocks: List[Tuple[int, int, float]], radius: float, min_size: int) -> List[List[int]]:
    """
    Groups block indices whose top-left corners lie closer than `radius`,
    growing each group transitively. Groups smaller than `min_size` are
    dropped. Largest group first; ties keep discovery order.
    """
    n = len(blocks)
    if n == 0:
        return []
    pos = np.array([(b[0], b[1]) for b in blocks], dtype=np.float32)
    diff = pos[:, None, :] - pos[None, :, :]
    near = np.sqrt((diff * diff).sum(axis=2)) < float(radius)

    used = np.zeros(n, dtype=bool)
    clusters: List[List[int]] = []
    for i in range(n):
        if used[i]:
            continue
        used[i] = True
        members = [i]
        queue = [i]
        while queue:
            j = queue.pop()
            for k in np.nonzero(near[j] & ~used)[0]:
                used[k] = True
                members.append(int(k))
                queue.append(int(k))
        if len(members) >= min_size:
            clusters.append(sorted(members))

    clusters.sort(key=len, reverse=True)
    return clusters


# -------------------------
# Detector
# -------------------------

class SkinToneDetector:
    name = "heuristic"

    def __init__(self, cfg: SkinClusterConfig = SkinClusterConfig()):
        cfg.validate()
        self.cfg = cfg

    def detect(self, frame: Frame) -> List[Detection]:
        if frame.is_empty:
            return []
        img = frame.image
        if img.ndim != 3 or img.shape[2] < 3:
            return []
        H, W = img.shape[:2]
        cfg = self.cfg

        blocks = classify_blocks(img[..., :3], cfg)
        if len(blocks) < cfg.min_skin_blocks:
            logger.debug("skin: %d skin blocks, need %d", len(blocks), cfg.min_skin_blocks)
            return []

        clusters = cluster_blocks(blocks, cfg.cluster_radius, cfg.min_cluster_blocks)
        if not clusters:
            return []
        main = clusters[0]

        bs = cfg.block_size
        xs = np.array([blocks[i][0] for i in main], dtype=np.float32)
        ys = np.array([blocks[i][1] for i in main], dtype=np.float32)
        min_x, max_x = float(xs.min()), float(xs.max()) + bs
        min_y, max_y = float(ys.min()), float(ys.max()) + bs
        cx, cy = (min_x + max_x) / 2.0, (min_y + max_y) / 2.0

        fw = max(float(cfg.min_face_size[0]), (max_x - min_x) * cfg.expand_x)
        fh = max(float(cfg.min_face_size[1]), (max_y - min_y) * cfg.expand_y)

        x1, y1 = max(0.0, cx - fw / 2.0), max(0.0, cy - fh / 2.0)
        x2, y2 = min(float(W), cx + fw / 2.0), min(float(H), cy + fh / 2.0)
        box = BoundingBox.from_xyxy(x1, y1, x2, y2)
        if not box.is_valid():
            return []

        conf = min(cfg.confidence_cap, cfg.confidence_base + len(main) / cfg.confidence_denominator)
        logger.debug("skin: cluster of %d blocks -> box %s conf %.2f", len(main), box, conf)
        return [Detection(box=box, confidence=float(conf), landmarks=None, source=self.name)]
