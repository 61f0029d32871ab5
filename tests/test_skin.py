import numpy as np
import pytest

from facegate.config import SkinClusterConfig
from facegate.recognize.types import Frame
from facegate.skin import SkinToneDetector, classify_blocks, cluster_blocks, is_skin_tone, skin_mask

from conftest import skin_ellipse_frame


@pytest.mark.parametrize("rgb", [(200, 150, 120), (120, 90, 70), (230, 190, 160), (90, 65, 45)])
def test_skin_tones_accepted(rgb):
    assert is_skin_tone(*rgb)


@pytest.mark.parametrize("rgb", [(0, 0, 0), (255, 255, 255), (40, 200, 40), (60, 100, 140), (30, 20, 10)])
def test_non_skin_rejected(rgb):
    assert not is_skin_tone(*rgb)


def test_mask_matches_scalar_classifier():
    rng = np.random.default_rng(3)
    img = rng.integers(0, 256, size=(20, 20, 3), dtype=np.uint8)
    mask = skin_mask(img)
    for y in range(20):
        for x in range(20):
            b, g, r = (int(v) for v in img[y, x])
            assert mask[y, x] == is_skin_tone(r, g, b)


@pytest.mark.parametrize("color", [(0, 0, 0), (255, 255, 255), (255, 0, 0), (140, 100, 60)])
def test_no_skin_frame_returns_empty(color):
    img = np.zeros((480, 640, 3), dtype=np.uint8)
    img[:] = color
    assert SkinToneDetector().detect(Frame(img)) == []


def test_tiny_and_empty_frames():
    det = SkinToneDetector()
    assert det.detect(Frame(np.zeros((0, 0, 3), dtype=np.uint8))) == []
    assert det.detect(Frame(np.full((10, 10, 3), (120, 150, 200), dtype=np.uint8))) == []


def test_centered_ellipse_box_center():
    dets = SkinToneDetector().detect(Frame(skin_ellipse_frame()))
    assert len(dets) == 1
    cx, cy = dets[0].box.center
    assert abs(cx - 320) <= 30
    assert abs(cy - 240) <= 30
    assert dets[0].landmarks is None
    assert dets[0].source == "heuristic"


def test_confidence_capped_below_point_nine():
    img = np.zeros((480, 640, 3), dtype=np.uint8)
    img[:] = (120, 150, 200)
    dets = SkinToneDetector().detect(Frame(img))
    assert len(dets) == 1
    assert dets[0].confidence == pytest.approx(0.85)
    box = dets[0].box
    assert box.x >= 0 and box.y >= 0
    assert box.x + box.width <= 640 and box.y + box.height <= 480


def test_small_cluster_confidence_and_min_box():
    img = np.zeros((480, 640, 3), dtype=np.uint8)
    img[:] = (140, 100, 60)
    img[240:288, 320:336] = (120, 150, 200)  # 3 stacked blocks
    dets = SkinToneDetector().detect(Frame(img))
    assert len(dets) == 1
    assert dets[0].confidence == pytest.approx(0.5 + 3 / 15)
    assert dets[0].box.width == pytest.approx(100)
    assert dets[0].box.height == pytest.approx(120)


def test_too_few_skin_blocks():
    img = np.zeros((480, 640, 3), dtype=np.uint8)
    img[240:256, 320:352] = (120, 150, 200)  # 2 blocks
    assert SkinToneDetector().detect(Frame(img)) == []


def test_classify_blocks_threshold():
    cfg = SkinClusterConfig()
    img = np.zeros((64, 64, 3), dtype=np.uint8)
    img[0:16, 0:16] = (120, 150, 200)
    img[0:16, 16:20] = (120, 150, 200)  # one sampled column of four
    blocks = classify_blocks(img, cfg)
    assert [(x, y) for x, y, _ in blocks] == [(0, 0)]
    assert blocks[0][2] == pytest.approx(1.0)


def test_cluster_blocks_transitive_and_min_size():
    blocks = [(0, 0, 1.0), (32, 0, 1.0), (64, 0, 1.0), (300, 300, 1.0)]
    clusters = cluster_blocks(blocks, radius=40, min_size=2)
    assert clusters == [[0, 1, 2]]


def test_cluster_blocks_largest_first():
    blocks = [(0, 0, 1.0), (16, 0, 1.0), (200, 200, 1.0), (216, 200, 1.0), (232, 200, 1.0)]
    clusters = cluster_blocks(blocks, radius=40, min_size=2)
    assert clusters[0] == [2, 3, 4]
    assert clusters[1] == [0, 1]
