"""
Detector chain: native -> ML -> heuristic, with an optional synthetic tier
for forced requests. The first tier to return a non-empty result wins.
"""

from __future__ import annotations
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Dict, List, Optional, Protocol, Sequence

from .config import PipelineConfig
from .errors import DetectorUnavailable
from .recognize.detector import (
    Capability,
    FaceMesh5ptDetector,
    HaarFaceDetector,
    SyntheticCenteredDetector,
    probe_capabilities,
)
from .recognize.types import Detection, Frame
from .skin import SkinToneDetector

logger = logging.getLogger(__name__)


class FaceDetector(Protocol):
    name: str

    def detect(self, frame: Frame) -> List[Detection]: ...


class DetectorChain:
    def __init__(
        self,
        tiers: Sequence[FaceDetector],
        fallback: Optional[FaceDetector] = None,
        timeout_s: Optional[float] = None,
        capabilities: Capability = Capability.NONE,
    ):
        self.tiers = list(tiers)
        self.fallback = fallback
        self.timeout_s = timeout_s
        self.capabilities = capabilities
        # one single-worker pool and at most one outstanding call per tier
        self._pools: Dict[int, ThreadPoolExecutor] = {}
        self._pending: Dict[int, Future] = {}
        self._lock = threading.Lock()

    @property
    def tier_names(self) -> List[str]:
        return [getattr(t, "name", type(t).__name__) for t in self.tiers]

    def _submit(self, tier: FaceDetector, frame: Frame) -> Optional[Future]:
        """None while the tier's previous call is still running."""
        key = id(tier)
        with self._lock:
            pending = self._pending.get(key)
            if pending is not None and not pending.done():
                return None
            pool = self._pools.get(key)
            if pool is None:
                name = getattr(tier, "name", type(tier).__name__)
                pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"facegate-{name}")
                self._pools[key] = pool
            fut = pool.submit(tier.detect, frame)
            self._pending[key] = fut
            return fut

    def _run(self, tier: FaceDetector, frame: Frame) -> Optional[List[Detection]]:
        if self.timeout_s is None:
            return list(tier.detect(frame) or [])
        fut = self._submit(tier, frame)
        if fut is None:
            return None
        return list(fut.result(timeout=self.timeout_s) or [])

    def detect(self, frame: Frame, force: bool = False) -> List[Detection]:
        """Detections from the first productive tier, highest confidence first. Never raises."""
        if frame is None or frame.is_empty:
            return []

        tiers = list(self.tiers)
        if force and self.fallback is not None:
            tiers.append(self.fallback)

        for tier in tiers:
            name = getattr(tier, "name", type(tier).__name__)
            try:
                dets = self._run(tier, frame)
            except FutureTimeout:
                logger.warning("detector tier '%s' timed out after %.3fs", name, self.timeout_s)
                continue
            except Exception:
                logger.warning("detector tier '%s' failed", name, exc_info=True)
                continue
            if dets is None:
                logger.debug("detector tier '%s' still busy with an earlier frame, skipped", name)
                continue
            dets = [d for d in dets if d.box.is_valid()]
            if dets:
                dets.sort(key=lambda d: d.confidence, reverse=True)
                return dets
            logger.debug("detector tier '%s' found nothing", name)
        return []

    def close(self) -> None:
        """Waits for in-flight tier calls before releasing tier resources."""
        with self._lock:
            pools = list(self._pools.values())
            self._pools.clear()
            self._pending.clear()
        for pool in pools:
            pool.shutdown(wait=True)
        for tier in self.tiers:
            close = getattr(tier, "close", None)
            if close is not None:
                close()


def build_detector_chain(config: PipelineConfig, capabilities: Optional[Capability] = None) -> DetectorChain:
    """Builds every enabled tier the probed capabilities allow. Init failures only disable that tier."""
    if capabilities is None:
        capabilities = probe_capabilities(config.landmarker_model_path)
    logger.info("detector capabilities: %s", capabilities)

    tiers: List[FaceDetector] = []
    haar: Optional[HaarFaceDetector] = None

    if Capability.NATIVE in capabilities and (config.enable_native or config.enable_ml):
        try:
            haar = HaarFaceDetector(min_size=config.haar_min_size)
        except DetectorUnavailable as e:
            logger.warning("native tier disabled: %s", e)

    if config.enable_native and haar is not None:
        tiers.append(haar)

    if config.enable_ml and Capability.ML in capabilities:
        try:
            tiers.append(FaceMesh5ptDetector(config.landmarker_model_path, haar=haar))
        except DetectorUnavailable as e:
            logger.warning("ML tier disabled: %s", e)

    if config.enable_heuristic:
        tiers.append(SkinToneDetector(config.skin))

    fallback = SyntheticCenteredDetector() if config.enable_synthetic else None
    return DetectorChain(tiers, fallback=fallback, timeout_s=config.tier_timeout_s, capabilities=capabilities)
