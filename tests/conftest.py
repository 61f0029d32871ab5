import logging
import numpy as np
import cv2
import pytest

from facegate.config import PipelineConfig
from facegate.recognize.logger import ActivityLogger

SKIN_BGR = (120, 150, 200)
BACKGROUND_BGR = (140, 100, 60)


def skin_ellipse_frame(W=640, H=480, top_left=(220, 140), size=(200, 200), bg=BACKGROUND_BGR, noise=0, seed=0):
    img = np.zeros((H, W, 3), dtype=np.uint8)
    img[:] = bg
    x, y = top_left
    w, h = size
    cv2.ellipse(img, (x + w // 2, y + h // 2), (w // 2, h // 2), 0, 0, 360, SKIN_BGR, thickness=-1)
    if noise:
        rng = np.random.default_rng(seed)
        # same offset on all channels: texture without shifting hue
        n = rng.integers(-noise, noise + 1, size=(H, W, 1))
        img = np.clip(img.astype(np.int16) + n, 0, 255).astype(np.uint8)
    return img


@pytest.fixture
def ellipse_frame():
    return skin_ellipse_frame()


@pytest.fixture
def capture_image():
    """Textured skin ellipse that passes capture validation and strict liveness."""
    return skin_ellipse_frame(noise=25, seed=7)


@pytest.fixture
def config():
    return PipelineConfig(enable_native=False, enable_ml=False)


@pytest.fixture
def activity(tmp_path):
    return ActivityLogger(tmp_path / "activity.txt")


@pytest.fixture(autouse=True)
def _capture_debug_logs(caplog):
    caplog.set_level(logging.DEBUG, logger="facegate")
