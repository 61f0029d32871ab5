from __future__ import annotations
import logging
from pathlib import Path
from typing import List, Optional, Protocol, Tuple
import cv2
import numpy as np
import onnxruntime as ort

from ..align import align_face_5pt
from ..config import PipelineConfig
from ..errors import DetectorUnavailable
from .types import ImageValidation

logger = logging.getLogger(__name__)

RETAKE_SUGGESTIONS = [
    "Ensure good lighting conditions",
    "Face should be clearly visible and well-lit",
    "Use a high-quality camera",
    "Avoid shadows on face",
    "Look directly at the camera",
]


# -------------------------
# Capture validation
# -------------------------

def validate_image_quality(image: Optional[np.ndarray], config: Optional[PipelineConfig] = None) -> ImageValidation:
    """Resolution, aspect ratio, brightness and contrast gate applied before detection."""
    config = config or PipelineConfig()
    if image is None or not isinstance(image, np.ndarray) or image.ndim < 2 or image.size == 0:
        return ImageValidation(is_valid=False, reasons=["Image could not be read"],
                               suggestions=["Try again with a different image"])

    H, W = image.shape[:2]
    px = image.astype(np.float32)
    if px.ndim == 2:
        px = px[..., None]
    px = px[..., :3]

    brightness = float(px.mean())
    # red channel spread (BGR order)
    contrast = float(px[..., min(2, px.shape[2] - 1)].std())
    aspect = W / float(H)

    reasons: List[str] = []
    if W < config.min_image_side or H < config.min_image_side:
        reasons.append(f"Image resolution too low (minimum {config.min_image_side}x{config.min_image_side} pixels)")
    if W > config.max_image_side or H > config.max_image_side:
        reasons.append(f"Image resolution too high (maximum {config.max_image_side}x{config.max_image_side} pixels)")
    if not 0.5 <= aspect <= 2.0:
        reasons.append("Unusual aspect ratio - use a standard camera frame")
    if brightness < config.min_brightness:
        reasons.append("Image too dark - ensure good lighting")
    if brightness > config.max_brightness:
        reasons.append("Image too bright - reduce lighting")
    if contrast < config.min_contrast:
        reasons.append("Poor image contrast - facial features not clear")

    ok = not reasons
    return ImageValidation(
        is_valid=ok,
        reasons=reasons,
        suggestions=[] if ok else list(RETAKE_SUGGESTIONS),
        width=int(W),
        height=int(H),
        brightness=brightness,
        contrast=contrast,
        aspect_ratio=aspect,
    )


# -------------------------
# Embedders
# -------------------------

class Embedder(Protocol):
    dim: int

    def embed(self, face_bgr: np.ndarray, landmarks: Optional[np.ndarray] = None) -> np.ndarray: ...


class LuminanceEmbedder:
    """
    Heuristic descriptor: the face crop is resized to a fixed grid and its
    brightness is averaged into `dim` contiguous bins, scaled to [-1, 1].

    Deterministic, but only tells apart very different images. Not biometric.
    """

    name = "luminance"

    def __init__(self, dim: int = 128, grid: Tuple[int, int] = (64, 64)):
        if dim <= 0:
            raise ValueError("dim must be positive")
        self.dim = int(dim)
        self.grid = (int(grid[0]), int(grid[1]))

    def embed(self, face_bgr: np.ndarray, landmarks: Optional[np.ndarray] = None) -> np.ndarray:
        if face_bgr is None or face_bgr.size == 0:
            raise ValueError("empty face region")
        img = face_bgr
        if img.ndim == 3:
            img = img[..., :3].astype(np.float32).mean(axis=2)
        small = cv2.resize(img.astype(np.float32), self.grid, interpolation=cv2.INTER_AREA)
        flat = small.reshape(-1)
        bins = np.array([chunk.mean() for chunk in np.array_split(flat, self.dim)], dtype=np.float32)
        return ((bins / 255.0 - 0.5) * 2.0).astype(np.float32)


class ArcFaceEmbedderONNX:
    """
    ArcFace-style ONNX embedder.
    Input: 112x112 BGR -> internally RGB + (x-127.5)/128, NCHW float32.
    Output: (1,D) or (D,), L2-normalised.
    """

    name = "arcface"

    def __init__(
        self,
        model_path: Path,
        input_size: Tuple[int, int] = (112, 112),
        expected_dim: Optional[int] = None,
    ):
        self.model_path = Path(model_path)
        self.in_w, self.in_h = int(input_size[0]), int(input_size[1])
        if not self.model_path.is_file():
            raise DetectorUnavailable(f"embedding model missing: {self.model_path}")
        try:
            self.sess = ort.InferenceSession(str(self.model_path), providers=["CPUExecutionProvider"])
        except Exception as e:
            raise DetectorUnavailable(f"embedding model failed to load: {e}") from e

        inp, out = self.sess.get_inputs()[0], self.sess.get_outputs()[0]
        self.in_name = inp.name
        self.out_name = out.name
        logger.info("embedder: %s input=%s %s output=%s %s",
                    self.model_path.name, inp.name, inp.shape, out.name, out.shape)

        dims = [d for d in (out.shape or [])[1:] if isinstance(d, int)]
        self.dim = int(np.prod(dims)) if dims else int(expected_dim or 0)
        if expected_dim is not None and self.dim != expected_dim:
            raise DetectorUnavailable(
                f"embedding model outputs {self.dim} values, templates need {expected_dim}"
            )

    def _preprocess(self, face_bgr: np.ndarray, landmarks: Optional[np.ndarray]) -> np.ndarray:
        if landmarks is not None and len(landmarks) >= 5:
            img, _ = align_face_5pt(face_bgr, landmarks, out_size=(self.in_w, self.in_h))
        else:
            img = face_bgr
        if img.shape[1] != self.in_w or img.shape[0] != self.in_h:
            img = cv2.resize(img, (self.in_w, self.in_h), interpolation=cv2.INTER_LINEAR)

        rgb = cv2.cvtColor(img, cv2.COLOR_BGR2RGB).astype(np.float32)
        rgb = (rgb - 127.5) / 128.0
        x = np.transpose(rgb, (2, 0, 1))[None, ...]
        return x.astype(np.float32)

    @staticmethod
    def _l2_normalize(v: np.ndarray, eps: float = 1e-12) -> np.ndarray:
        v = v.astype(np.float32).reshape(-1)
        n = float(np.linalg.norm(v) + eps)
        return (v / n).astype(np.float32)

    def embed(self, face_bgr: np.ndarray, landmarks: Optional[np.ndarray] = None) -> np.ndarray:
        """
        face_bgr: face crop, or the full frame when landmarks are given
        landmarks: (5,2) keypoints in face_bgr coordinates
        """
        x = self._preprocess(face_bgr, landmarks)
        y = self.sess.run([self.out_name], {self.in_name: x})[0]
        emb = self._l2_normalize(np.asarray(y, dtype=np.float32))
        if self.dim and emb.size != self.dim:
            raise ValueError(f"embedding has {emb.size} values, expected {self.dim}")
        return emb


def build_embedder(config: PipelineConfig) -> Embedder:
    """Trained model when it loads, otherwise the luminance descriptor."""
    try:
        return ArcFaceEmbedderONNX(config.embedder_model_path, expected_dim=config.descriptor_size)
    except DetectorUnavailable as e:
        logger.warning("falling back to luminance descriptor: %s", e)
        return LuminanceEmbedder(dim=config.descriptor_size)
