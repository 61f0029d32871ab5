import numpy as np
import pytest

from facegate.align import ARCFACE_DST, align_face_5pt
from facegate.config import PipelineConfig
from facegate.errors import DetectorUnavailable
from facegate.recognize.embedder import (
    ArcFaceEmbedderONNX,
    LuminanceEmbedder,
    build_embedder,
    validate_image_quality,
)

from conftest import skin_ellipse_frame


def test_valid_capture_passes(capture_image):
    v = validate_image_quality(capture_image)
    assert v.is_valid, v.reasons
    assert (v.width, v.height) == (640, 480)
    assert v.suggestions == []


@pytest.mark.parametrize("shape,fill,needle", [
    ((150, 150, 3), None, "too low"),
    ((2100, 1500, 3), None, "too high"),
    ((300, 900, 3), None, "aspect ratio"),
    ((480, 640, 3), 10, "too dark"),
    ((480, 640, 3), 240, "too bright"),
    ((480, 640, 3), 128, "contrast"),
])
def test_rejections(shape, fill, needle):
    if fill is None:
        rng = np.random.default_rng(0)
        img = rng.integers(60, 200, size=shape, dtype=np.uint8)
    else:
        img = np.full(shape, fill, dtype=np.uint8)
    v = validate_image_quality(img)
    assert not v.is_valid
    assert any(needle in r for r in v.reasons)
    assert v.suggestions


def test_unreadable_image():
    assert not validate_image_quality(None).is_valid
    assert not validate_image_quality(np.zeros((0, 0, 3), dtype=np.uint8)).is_valid


def test_limits_come_from_config():
    img = np.random.default_rng(1).integers(60, 200, size=(150, 150, 3), dtype=np.uint8)
    assert validate_image_quality(img, PipelineConfig(min_image_side=100)).is_valid


def test_luminance_descriptor_shape_and_range():
    img = skin_ellipse_frame()
    emb = LuminanceEmbedder().embed(img[100:380, 180:460])
    assert emb.shape == (128,)
    assert emb.dtype == np.float32
    assert emb.min() >= -1.0 and emb.max() <= 1.0


def test_luminance_descriptor_is_deterministic():
    img = skin_ellipse_frame(noise=20, seed=4)
    a = LuminanceEmbedder().embed(img)
    b = LuminanceEmbedder().embed(img.copy())
    assert np.array_equal(a, b)


def test_luminance_extremes():
    assert np.allclose(LuminanceEmbedder().embed(np.zeros((50, 50, 3), np.uint8)), -1.0)
    assert np.allclose(LuminanceEmbedder().embed(np.full((50, 50, 3), 255, np.uint8)), 1.0)


def test_luminance_custom_dim_and_empty():
    assert LuminanceEmbedder(dim=64).embed(np.full((30, 40, 3), 90, np.uint8)).shape == (64,)
    with pytest.raises(ValueError):
        LuminanceEmbedder().embed(np.zeros((0, 0, 3), np.uint8))


def test_missing_onnx_model_is_unavailable(tmp_path):
    with pytest.raises(DetectorUnavailable):
        ArcFaceEmbedderONNX(tmp_path / "nope.onnx")


def test_build_embedder_falls_back(tmp_path):
    emb = build_embedder(PipelineConfig(embedder_model_path=tmp_path / "nope.onnx"))
    assert isinstance(emb, LuminanceEmbedder)
    assert emb.dim == 128


def test_alignment_of_template_points_is_identity():
    img = np.random.default_rng(2).integers(0, 255, size=(112, 112, 3), dtype=np.uint8)
    aligned, M = align_face_5pt(img, ARCFACE_DST.copy())
    assert aligned.shape == (112, 112, 3)
    assert np.allclose(M, [[1, 0, 0], [0, 1, 0]], atol=1e-3)


def test_alignment_output_size_scales_template():
    img = np.zeros((300, 300, 3), dtype=np.uint8)
    kps = ARCFACE_DST * 2.0 + 20.0
    aligned, M = align_face_5pt(img, kps, out_size=(56, 56))
    assert aligned.shape == (56, 56, 3)
    assert np.allclose(M[:, :2], [[0.25, 0], [0, 0.25]], atol=1e-3)
