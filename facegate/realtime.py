"""
Cancellable real-time detection loop.

One tick at a time on a worker thread: read frame -> detect -> score -> emit.
The next tick is only scheduled once the previous one has returned. Stopping
is cooperative: the stop flag is checked at the top of each tick and right
before the callback, so at most one in-flight tick can still emit after
stop() and nothing emits after that.
"""

from __future__ import annotations
import enum
import logging
import threading
from typing import Callable, Optional

from .camera import FrameSource
from .chain import DetectorChain
from .quality import QualityScorer
from .recognize.types import TickResult

logger = logging.getLogger(__name__)


class LoopState(enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"
    DETECTING = "detecting"
    SCORING = "scoring"
    EMITTING = "emitting"
    STOPPED = "stopped"


class DetectionHandle:
    """Returned by start(). Call it (or .stop()) to cancel."""

    def __init__(self, loop: "RealTimeDetectionLoop"):
        self._loop = loop

    def __call__(self) -> None:
        self.stop()

    def stop(self, wait: bool = False, timeout: Optional[float] = None) -> None:
        self._loop.stop(wait=wait, timeout=timeout)

    def join(self, timeout: Optional[float] = None) -> None:
        self._loop.join(timeout)

    @property
    def active(self) -> bool:
        return self._loop.active

    @property
    def state(self) -> LoopState:
        return self._loop.state

    @property
    def ticks(self) -> int:
        return self._loop.ticks


class RealTimeDetectionLoop:
    def __init__(
        self,
        chain: DetectorChain,
        scorer: QualityScorer,
        source: FrameSource,
        callback: Callable[[TickResult], None],
        interval_ms: int = 200,
        min_quality: float = 0.6,
        on_stopped: Optional[Callable[["RealTimeDetectionLoop"], None]] = None,
    ):
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self.chain = chain
        self.scorer = scorer
        self.source = source
        self.callback = callback
        self.interval_s = interval_ms / 1000.0
        self.min_quality = float(min_quality)
        self._on_stopped = on_stopped

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state = LoopState.IDLE
        self._state_lock = threading.Lock()
        self.ticks = 0

    # -------------------------
    # State
    # -------------------------

    @property
    def state(self) -> LoopState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: LoopState) -> None:
        with self._state_lock:
            if self._state is not LoopState.STOPPED or state is LoopState.STOPPED:
                self._state = state

    @property
    def active(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    # -------------------------
    # Control
    # -------------------------

    def start(self) -> DetectionHandle:
        if self._thread is not None:
            raise RuntimeError("detection loop already started")
        self._set_state(LoopState.ACTIVE)
        self._thread = threading.Thread(target=self._run, name="facegate-realtime", daemon=True)
        self._thread.start()
        logger.info("real-time detection started (interval=%.0fms, min_quality=%.2f)",
                    self.interval_s * 1000, self.min_quality)
        return DetectionHandle(self)

    def stop(self, wait: bool = False, timeout: Optional[float] = None) -> None:
        if not self._stop.is_set():
            self._stop.set()
            logger.info("real-time detection stop requested")
        if wait and self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    # -------------------------
    # Ticks
    # -------------------------

    def tick(self) -> Optional[TickResult]:
        """One detect/score pass. None when the frame is not ready."""
        frame = self.source.read()
        if frame is None or frame.is_empty:
            return None

        self._set_state(LoopState.DETECTING)
        dets = self.chain.detect(frame)
        det = dets[0] if dets else None

        quality = None
        if det is not None:
            self._set_state(LoopState.SCORING)
            quality = self.scorer.score(det, (frame.width, frame.height), frame.image)

        return TickResult(
            detection=det,
            quality=quality,
            has_acceptable_quality=quality is not None and quality.overall >= self.min_quality,
            timestamp=frame.timestamp,
            frame_size=(frame.width, frame.height),
        )

    def _run(self) -> None:
        try:
            while not self._stop.is_set():
                try:
                    result = self.tick()
                except Exception:
                    logger.exception("detection tick failed")
                    result = None

                if result is not None and not self._stop.is_set():
                    self._set_state(LoopState.EMITTING)
                    self.ticks += 1
                    try:
                        self.callback(result)
                    except Exception:
                        logger.exception("detection callback raised")

                if self._stop.is_set():
                    break
                self._set_state(LoopState.ACTIVE)
                self._stop.wait(self.interval_s)
        finally:
            self._set_state(LoopState.STOPPED)
            logger.info("real-time detection stopped after %d ticks", self.ticks)
            if self._on_stopped is not None:
                self._on_stopped(self)


def start_real_time_detection(
    chain: DetectorChain,
    scorer: QualityScorer,
    source: FrameSource,
    callback: Callable[[TickResult], None],
    interval_ms: int = 200,
    min_quality: float = 0.6,
) -> DetectionHandle:
    loop = RealTimeDetectionLoop(chain, scorer, source, callback, interval_ms, min_quality)
    return loop.start()
