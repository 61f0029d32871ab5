from __future__ import annotations
import enum
import logging
from pathlib import Path
from typing import List, Optional, Tuple
import cv2
import numpy as np
try:
    import mediapipe as mp
    from mediapipe.tasks.python import vision
    from mediapipe.tasks.python import BaseOptions
except Exception as e:
    mp = None
    _MP_IMPORT_ERROR = e

from ..errors import DetectorUnavailable
from .types import BoundingBox, Detection, Frame
from .utils import _clip_xyxy, _bbox_from_5pt, _kps_span_ok

logger = logging.getLogger(__name__)

DEFAULT_HAAR_XML = cv2.data.haarcascades + "haarcascade_frontalface_default.xml"


# -------------------------
# Capability probe
# -------------------------

class Capability(enum.Flag):
    NONE = 0
    NATIVE = enum.auto()
    ML = enum.auto()


def probe_capabilities(landmarker_model_path: Optional[Path] = None, haar_xml: Optional[str] = None) -> Capability:
    """Resolved once at pipeline construction, never per tick."""
    caps = Capability.NONE
    cascade = cv2.CascadeClassifier(haar_xml or DEFAULT_HAAR_XML)
    if not cascade.empty():
        caps |= Capability.NATIVE
    else:
        logger.warning("Haar cascade not loadable: %s", haar_xml or DEFAULT_HAAR_XML)

    if mp is None:
        logger.info("mediapipe unavailable (%s), ML tier disabled", _MP_IMPORT_ERROR)
    elif landmarker_model_path is None or not Path(landmarker_model_path).is_file():
        logger.info("landmarker model not found at %s, ML tier disabled", landmarker_model_path)
    else:
        caps |= Capability.ML
    return caps


# -------------------------
# Native tier
# -------------------------

class HaarFaceDetector:
    name = "native"
    CONFIDENCE = 0.9  # the cascade gives no probability

    def __init__(self, haar_xml: Optional[str] = None, min_size: Tuple[int, int] = (70, 70)):
        self.min_size = tuple(map(int, min_size))
        haar_xml = haar_xml or DEFAULT_HAAR_XML
        self.face_cascade = cv2.CascadeClassifier(haar_xml)
        if self.face_cascade.empty():
            raise DetectorUnavailable(f"Failed to load Haar cascade: {haar_xml}")

    def faces(self, gray: np.ndarray) -> np.ndarray:
        faces = self.face_cascade.detectMultiScale(
            gray,
            scaleFactor=1.1,
            minNeighbors=5,
            flags=cv2.CASCADE_SCALE_IMAGE,
            minSize=self.min_size,
        )
        if faces is None or len(faces) == 0:
            return np.zeros((0, 4), dtype=np.int32)
        faces = np.asarray(faces, dtype=np.int32)  # (x,y,w,h)
        areas = faces[:, 2] * faces[:, 3]
        return faces[np.argsort(areas)[::-1]]

    def detect(self, frame: Frame) -> List[Detection]:
        if frame.is_empty:
            return []
        gray = cv2.cvtColor(frame.image, cv2.COLOR_BGR2GRAY)
        return [
            Detection(
                box=BoundingBox(float(x), float(y), float(w), float(h)),
                confidence=self.CONFIDENCE,
                source=self.name,
            )
            for (x, y, w, h) in self.faces(gray)
        ]


# -------------------------
# ML tier
# -------------------------

class FaceMesh5ptDetector:
    """
    Haar proposals confirmed by MediaPipe FaceLandmarker.

    Each Haar box is expanded, FaceMesh runs on the ROI, 5 keypoints are mapped
    back to the frame and the box is rebuilt around them. Haar false positives
    without landmarks are dropped. With no Haar proposal (or no cascade at all)
    the whole frame is used as a single ROI.
    """

    name = "ml"

    IDX_LEFT_EYE = 33
    IDX_RIGHT_EYE = 263
    IDX_NOSE_TIP = 1
    IDX_MOUTH_LEFT = 61
    IDX_MOUTH_RIGHT = 291

    def __init__(
        self,
        model_path: Path,
        haar: Optional[HaarFaceDetector] = None,
        min_size: Tuple[int, int] = (70, 70),
        max_faces: int = 5,
    ):
        if mp is None:
            raise DetectorUnavailable(f"mediapipe import failed: {_MP_IMPORT_ERROR}")
        model_path = Path(model_path)
        if not model_path.is_file():
            raise DetectorUnavailable(f"FaceLandmarker model missing: {model_path}")

        if haar is None:
            try:
                haar = HaarFaceDetector(min_size=min_size)
            except DetectorUnavailable as e:
                logger.info("no Haar proposals for FaceMesh: %s", e)
        self.haar = haar
        self.max_faces = int(max_faces)

        options = vision.FaceLandmarkerOptions(
            base_options=BaseOptions(model_asset_path=str(model_path)),
            num_faces=1,  # one face per ROI
            output_face_blendshapes=False,
            output_facial_transformation_matrixes=False,
        )
        try:
            self.landmarker = vision.FaceLandmarker.create_from_options(options)
        except Exception as e:
            raise DetectorUnavailable(f"FaceLandmarker init failed: {e}") from e

    def _roi_5pt(self, roi_bgr: np.ndarray) -> Optional[np.ndarray]:
        H, W = roi_bgr.shape[:2]
        if H < 20 or W < 20:
            return None

        rgb = cv2.cvtColor(roi_bgr, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=np.ascontiguousarray(rgb))
        res = self.landmarker.detect(mp_image)
        if not res.face_landmarks:
            return None

        lm = res.face_landmarks[0]
        idxs = [self.IDX_LEFT_EYE, self.IDX_RIGHT_EYE, self.IDX_NOSE_TIP, self.IDX_MOUTH_LEFT, self.IDX_MOUTH_RIGHT]
        kps = np.array([[lm[i].x * W, lm[i].y * H] for i in idxs], dtype=np.float32)

        # enforce left/right ordering
        if kps[0, 0] > kps[1, 0]:
            kps[[0, 1]] = kps[[1, 0]]
        if kps[3, 0] > kps[4, 0]:
            kps[[3, 4]] = kps[[4, 3]]
        return kps

    def detect(self, frame: Frame) -> List[Detection]:
        if frame.is_empty:
            return []
        img = frame.image
        H, W = img.shape[:2]
        proposals = np.zeros((0, 4), dtype=np.int32)
        if self.haar is not None:
            proposals = self.haar.faces(cv2.cvtColor(img, cv2.COLOR_BGR2GRAY))[: self.max_faces]
        whole_frame = proposals.shape[0] == 0
        if whole_frame:
            proposals = np.array([[0, 0, W, H]], dtype=np.int32)

        out: List[Detection] = []
        for (x, y, w, h) in proposals:
            if whole_frame:
                rx1, ry1, rx2, ry2 = 0, 0, W, H
            else:
                mx, my = 0.25 * w, 0.35 * h
                rx1, ry1, rx2, ry2 = _clip_xyxy(x - mx, y - my, x + w + mx, y + h + my, W, H)
            kps_roi = self._roi_5pt(img[ry1:ry2, rx1:rx2])
            if kps_roi is None:
                logger.debug("FaceMesh none for ROI -> skip")
                continue

            kps = kps_roi.copy()
            kps[:, 0] += float(rx1)
            kps[:, 1] += float(ry1)

            min_eye = 10.0 if whole_frame else max(10.0, 0.18 * float(w))
            if not _kps_span_ok(kps, min_eye_dist=min_eye):
                logger.debug("5pt geometry failed -> skip")
                continue

            bb = _bbox_from_5pt(kps, pad_x=0.55, pad_y_top=0.85, pad_y_bot=1.15)
            x1, y1, x2, y2 = _clip_xyxy(bb[0], bb[1], bb[2], bb[3], W, H)
            if x2 <= x1 or y2 <= y1:
                continue
            out.append(
                Detection(
                    box=BoundingBox.from_xyxy(x1, y1, x2, y2),
                    confidence=1.0,
                    landmarks=kps.astype(np.float32),
                    source=self.name,
                )
            )
        return out

    def close(self) -> None:
        close = getattr(self.landmarker, "close", None)
        if close is not None:
            close()


# -------------------------
# Synthetic tier
# -------------------------

class SyntheticCenteredDetector:
    """Best-effort box in the usual face position. Only used on forced requests."""

    name = "synthetic"
    CONFIDENCE = 0.75

    def detect(self, frame: Frame) -> List[Detection]:
        if frame.is_empty:
            return []
        W, H = float(frame.width), float(frame.height)
        fw = min(200.0, 0.30 * W)
        fh = min(240.0, 0.35 * H)
        cx, cy = 0.5 * W, 0.45 * H
        box = BoundingBox(cx - fw / 2.0, cy - fh / 2.0, fw, fh)
        return [Detection(box=box, confidence=self.CONFIDENCE, source=self.name)]
