"""
Frame sources for the real-time loop, plus a webcam demo.

Run:
python -m facegate.camera --cam 0
"""

from __future__ import annotations
import argparse
import logging
import threading
import time
from typing import Optional, Protocol
import cv2
import numpy as np

from .recognize.types import Frame

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    def read(self) -> Optional[Frame]:
        """Current frame, or None when not ready (the tick is skipped)."""
        ...


class StaticFrameSource:
    """Serves the same still image on every read. Useful for captures and tests."""

    def __init__(self, image: Optional[np.ndarray] = None):
        self._lock = threading.Lock()
        self._image = image

    def set(self, image: Optional[np.ndarray]) -> None:
        with self._lock:
            self._image = image

    def read(self) -> Optional[Frame]:
        with self._lock:
            img = self._image
        if img is None:
            return None
        return Frame(image=img, timestamp=time.time())


class CameraFrameSource:
    def __init__(self, index: int = 0, width: Optional[int] = None, height: Optional[int] = None, mirror: bool = False):
        self.index = int(index)
        self.width = width
        self.height = height
        self.mirror = bool(mirror)
        self._cap: Optional[cv2.VideoCapture] = None
        self._lock = threading.Lock()

    def open(self) -> "CameraFrameSource":
        cap = cv2.VideoCapture(self.index)
        if not cap.isOpened():
            raise RuntimeError(f"Camera {self.index} not opened. Try changing index (0/1/2).")
        if self.width:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, int(self.width))
        if self.height:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, int(self.height))
        self._cap = cap
        logger.info("camera %d opened", self.index)
        return self

    def read(self) -> Optional[Frame]:
        with self._lock:
            if self._cap is None:
                return None
            ok, img = self._cap.read()
        if not ok or img is None or img.size == 0:
            return None
        if self.mirror:
            img = cv2.flip(img, 1)
        return Frame(image=img, timestamp=time.time())

    def release(self) -> None:
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
                logger.info("camera %d released", self.index)

    def __enter__(self) -> "CameraFrameSource":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.release()


# -------------------------
# Demo
# -------------------------

def _put_text(img, text: str, xy=(10, 30), scale=0.7, color=(0, 255, 0), thickness=2):
    cv2.putText(img, text, xy, cv2.FONT_HERSHEY_SIMPLEX, scale, color, thickness, cv2.LINE_AA)


def main():
    from .config import PipelineConfig
    from .pipeline import FacePipeline
    from .recognize.logger import setup_logging

    ap = argparse.ArgumentParser(description="Live face quality feedback")
    ap.add_argument("--cam", type=int, default=0)
    ap.add_argument("--interval-ms", type=int, default=None)
    ap.add_argument("--log-level", default="INFO")
    args = ap.parse_args()

    setup_logging(args.log_level)
    config = PipelineConfig.from_env()
    pipeline = FacePipeline.create(config)

    latest = {"result": None}
    lock = threading.Lock()

    def on_tick(result):
        with lock:
            latest["result"] = result

    with CameraFrameSource(args.cam, mirror=True) as cam:
        handle = pipeline.start_real_time_detection(cam, on_tick, interval_ms=args.interval_ms)
        print("Live quality feedback. Press 'q' to quit.")
        try:
            while True:
                frame = cam.read()
                if frame is None:
                    time.sleep(0.01)
                    continue
                vis = frame.image.copy()
                with lock:
                    res = latest["result"]
                if res is not None and res.detection is not None:
                    b = res.detection.box
                    color = (0, 255, 0) if res.has_acceptable_quality else (0, 165, 255)
                    cv2.rectangle(vis, (int(b.x), int(b.y)), (int(b.x + b.width), int(b.y + b.height)), color, 2)
                    _put_text(vis, f"{res.detection.source} q={res.quality.overall:.2f}", (10, 30), color=color)
                    for i, line in enumerate(res.quality.feedback[:4]):
                        _put_text(vis, line, (10, 60 + 25 * i), scale=0.55, color=color, thickness=1)
                else:
                    _put_text(vis, "no face", (10, 30), color=(0, 0, 255))
                cv2.imshow("facegate", vis)
                if (cv2.waitKey(1) & 0xFF) == ord("q"):
                    break
        finally:
            handle.stop(wait=True, timeout=2.0)
            pipeline.close()
            cv2.destroyAllWindows()


if __name__ == "__main__":
    main()
