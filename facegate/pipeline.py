"""
FacePipeline: one constructed instance per capture session.

Continuous path: frame source -> detector chain -> quality scorer -> feedback.
Capture path: still -> validation -> detection -> liveness -> embedding -> match.
"""

from __future__ import annotations
import logging
import threading
from typing import Callable, List, Optional, Sequence, Union
import cv2
import numpy as np

from .camera import FrameSource
from .chain import DetectorChain, build_detector_chain
from .config import PipelineConfig
from .errors import EnrollmentError, InvalidImage, LivenessRejected, MatchNotFound, NoFaceFound
from .liveness import LivenessAssessor
from .quality import QualityScorer
from .realtime import DetectionHandle, RealTimeDetectionLoop
from .recognize.detector import SyntheticCenteredDetector
from .recognize.embedder import Embedder, LuminanceEmbedder, build_embedder, validate_image_quality
from .recognize.logger import ActivityLogger
from .recognize.matcher import DescriptorLike, find_best_match, mean_descriptor
from .recognize.types import (
    EmbeddingResult,
    EnrollmentResult,
    FaceAnalysis,
    FaceTemplate,
    Frame,
    RejectedSample,
    TickResult,
    VerificationResult,
)
from .skin import SkinToneDetector

logger = logging.getLogger(__name__)

ImageLike = Union[np.ndarray, Frame]


def _as_frame(image: ImageLike) -> Frame:
    if isinstance(image, Frame):
        return image
    return Frame(image=image)


def _as_bgr(image: Optional[np.ndarray]) -> Optional[np.ndarray]:
    if image is None or not isinstance(image, np.ndarray) or image.size == 0:
        return image
    if image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image


class FacePipeline:
    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        chain: Optional[DetectorChain] = None,
        embedder: Optional[Embedder] = None,
        liveness: Optional[LivenessAssessor] = None,
        scorer: Optional[QualityScorer] = None,
        activity_logger: Optional[ActivityLogger] = None,
    ):
        self.config = config or PipelineConfig()
        cfg = self.config
        if chain is None:
            tiers = [SkinToneDetector(cfg.skin)] if cfg.enable_heuristic else []
            chain = DetectorChain(tiers, fallback=SyntheticCenteredDetector() if cfg.enable_synthetic else None)
        self.chain = chain
        self.embedder = embedder or LuminanceEmbedder(dim=cfg.descriptor_size)
        self.liveness = liveness or LivenessAssessor.from_config(cfg)
        self.scorer = scorer or QualityScorer.from_config(cfg)
        self.activity = activity_logger or ActivityLogger()

        self._loop: Optional[RealTimeDetectionLoop] = None
        self._loop_lock = threading.Lock()

    @classmethod
    def create(cls, config: Optional[PipelineConfig] = None, **kwargs) -> "FacePipeline":
        """Probes detector capabilities and loads models once."""
        config = config or PipelineConfig()
        chain = build_detector_chain(config)
        embedder = build_embedder(config)
        logger.info("pipeline ready: tiers=%s embedder=%s", chain.tier_names, getattr(embedder, "name", "?"))
        return cls(config, chain=chain, embedder=embedder, **kwargs)

    # -------------------------
    # Continuous path
    # -------------------------

    def detect_face_with_quality(self, frame: ImageLike, force: bool = False) -> Optional[FaceAnalysis]:
        """Single-shot detect + score. None when no tier finds a face."""
        frame = _as_frame(frame)
        if frame.is_empty:
            return None
        dets = self.chain.detect(frame, force=force)
        if not dets:
            return None
        det = dets[0]
        quality = self.scorer.score(det, (frame.width, frame.height), frame.image)
        return FaceAnalysis(detection=det, quality=quality)

    def start_real_time_detection(
        self,
        source: FrameSource,
        callback: Callable[[TickResult], None],
        interval_ms: Optional[int] = None,
        min_quality: Optional[float] = None,
    ) -> DetectionHandle:
        with self._loop_lock:
            if self._loop is not None and self._loop.active:
                raise RuntimeError("a real-time detection loop is already running on this pipeline")
            loop = RealTimeDetectionLoop(
                self.chain,
                self.scorer,
                source,
                callback,
                interval_ms=interval_ms if interval_ms is not None else self.config.interval_ms,
                min_quality=min_quality if min_quality is not None else self.config.min_quality,
                on_stopped=self._loop_stopped,
            )
            self._loop = loop
            return loop.start()

    def stop_real_time_detection(self, wait: bool = True) -> None:
        with self._loop_lock:
            loop = self._loop
        if loop is not None:
            loop.stop(wait=wait)

    def _loop_stopped(self, loop: RealTimeDetectionLoop) -> None:
        with self._loop_lock:
            if self._loop is loop:
                self._loop = None

    # -------------------------
    # Capture path
    # -------------------------

    def extract_embedding(self, image: ImageLike) -> EmbeddingResult:
        """Validated descriptor for the most confident face. Never raises on bad input."""
        img = _as_bgr(image.image if isinstance(image, Frame) else image)

        check = validate_image_quality(img, self.config)
        if not check.is_valid:
            return EmbeddingResult(success=False, error="; ".join(check.reasons),
                                   reason="invalid_image", suggestions=check.suggestions)

        dets = self.chain.detect(Frame(image=img))
        if not dets:
            return EmbeddingResult(success=False, error="No face detected in the image", reason="no_face",
                                   suggestions=["Look directly at the camera", "Ensure good lighting conditions"])
        if len(dets) > 1:
            logger.info("multiple faces detected (%d), using the most confident", len(dets))
        det = dets[0]

        liveness = self.liveness.assess(img, det.box)

        H, W = img.shape[:2]
        try:
            if det.has_landmarks:
                emb = self.embedder.embed(img, det.landmarks)
            else:
                x1, y1, x2, y2 = det.box.clip_int(W, H)
                emb = self.embedder.embed(img[y1:y2, x1:x2])
        except Exception as e:
            logger.warning("embedding failed: %s", e, exc_info=True)
            return EmbeddingResult(success=False, error=f"Embedding failed: {e}", reason="embedding_failed",
                                   confidence=det.confidence, box=det.box, landmarks=det.landmarks,
                                   liveness_check=liveness)

        return EmbeddingResult(
            success=True,
            embedding=np.asarray(emb, dtype=np.float32).reshape(-1),
            confidence=det.confidence,
            box=det.box,
            landmarks=det.landmarks,
            liveness_check=liveness,
        )

    def verify(
        self,
        image: ImageLike,
        templates: Sequence[DescriptorLike],
        threshold: Optional[float] = None,
        raise_on_reject: bool = False,
        subject: str = "unknown",
    ) -> VerificationResult:
        """
        Liveness gate, then best-match search over the enrolled templates.
        With raise_on_reject the matching FaceGateError is raised instead of
        returning a negative result.
        """
        threshold = self.config.match_threshold if threshold is None else float(threshold)
        res = self.extract_embedding(image)

        if not res.success:
            reason = res.reason or "invalid_image"
            self.activity.log_verification(subject, False, reason)
            if raise_on_reject:
                if reason == "no_face":
                    raise NoFaceFound(res.error)
                raise InvalidImage([res.error or "Invalid image"], res.suggestions)
            return VerificationResult(is_verified=False, reason=reason, liveness_check=res.liveness_check,
                                      error=res.error)

        live = res.liveness_check
        if live is not None and not live.is_live:
            self.activity.log_verification(subject, False, "liveness_rejected", liveness=live.score)
            if raise_on_reject:
                raise LivenessRejected(live)
            return VerificationResult(is_verified=False, reason="liveness_rejected", liveness_check=live,
                                      embedding=res.embedding, error="Liveness check failed, please try again")

        match = find_best_match(res.embedding, templates, threshold)
        if not match.is_match:
            self.activity.log_verification(subject, False, "match_not_found", match.best_similarity,
                                           live.score if live else None)
            if raise_on_reject:
                raise MatchNotFound(match)
            return VerificationResult(is_verified=False, reason="match_not_found", match=match,
                                      liveness_check=live, embedding=res.embedding,
                                      error="Face does not match any enrolled template")

        self.activity.log_verification(subject, True, "verified", match.best_similarity,
                                       live.score if live else None)
        return VerificationResult(is_verified=True, reason="verified", match=match,
                                  liveness_check=live, embedding=res.embedding)

    def enroll(self, owner_id: str, images: Sequence[ImageLike]) -> EnrollmentResult:
        """
        One template per accepted image. Liveness is recorded, not enforced.
        Raises EnrollmentError on a bad sample count or too few usable images.
        """
        cfg = self.config
        n = len(images)
        if n < cfg.min_enrollment_samples:
            msg = f"At least {cfg.min_enrollment_samples} face images are required (got {n})"
            self.activity.log_enrollment_failed(owner_id, msg)
            raise EnrollmentError(msg)
        if n > cfg.max_enrollment_samples:
            msg = f"At most {cfg.max_enrollment_samples} face images are allowed (got {n})"
            self.activity.log_enrollment_failed(owner_id, msg)
            raise EnrollmentError(msg)

        templates: List[FaceTemplate] = []
        rejected: List[RejectedSample] = []
        for i, image in enumerate(images):
            res = self.extract_embedding(image)
            if not res.success:
                rejected.append(RejectedSample(index=i, reason=res.error or res.reason or "rejected",
                                               suggestions=res.suggestions))
                continue
            if res.liveness_check is not None and not res.liveness_check.is_live:
                logger.info("enrollment sample %d for %s scored liveness %.2f", i, owner_id,
                            res.liveness_check.score)
            templates.append(FaceTemplate(descriptor=res.embedding, owner_id=owner_id))

        if len(templates) < cfg.min_enrollment_samples:
            msg = (f"Only {len(templates)} usable face images, "
                   f"{cfg.min_enrollment_samples} required")
            self.activity.log_enrollment_failed(owner_id, msg)
            raise EnrollmentError(msg, rejected)

        self.activity.log_enrollment(owner_id, len(templates), len(rejected))
        return EnrollmentResult(
            owner_id=owner_id,
            templates=templates,
            rejected=rejected,
            mean_descriptor=mean_descriptor(templates),
        )

    # -------------------------
    # Lifecycle
    # -------------------------

    def close(self) -> None:
        self.stop_real_time_detection(wait=True)
        self.chain.close()

    def __enter__(self) -> "FacePipeline":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
