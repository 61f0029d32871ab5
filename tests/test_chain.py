import time

import numpy as np
import pytest

from facegate.chain import DetectorChain, build_detector_chain
from facegate.config import PipelineConfig
from facegate.recognize.detector import Capability, SyntheticCenteredDetector
from facegate.recognize.types import BoundingBox, Detection, Frame
from facegate.skin import SkinToneDetector


class FakeTier:
    def __init__(self, name, result=None, exc=None, delay=0.0):
        self.name = name
        self.result = result or []
        self.exc = exc
        self.delay = delay
        self.calls = 0
        self.finished = 0

    def detect(self, frame):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        self.finished += 1
        if self.exc is not None:
            raise self.exc
        return list(self.result)


def _det(conf, source="fake"):
    return Detection(box=BoundingBox(10, 10, 100, 100), confidence=conf, source=source)


@pytest.fixture
def frame():
    return Frame(np.zeros((480, 640, 3), dtype=np.uint8))


def test_first_non_empty_tier_wins(frame):
    a = FakeTier("a")
    b = FakeTier("b", [_det(0.6, "b"), _det(0.9, "b")])
    c = FakeTier("c", [_det(0.99, "c")])
    dets = DetectorChain([a, b, c]).detect(frame)
    assert [d.source for d in dets] == ["b", "b"]
    assert [d.confidence for d in dets] == [0.9, 0.6]
    assert (a.calls, b.calls, c.calls) == (1, 1, 0)


def test_failing_tier_falls_through(frame):
    bad = FakeTier("bad", exc=RuntimeError("boom"))
    good = FakeTier("good", [_det(0.8)])
    assert len(DetectorChain([bad, good]).detect(frame)) == 1


def test_invalid_boxes_are_ignored(frame):
    broken = FakeTier("broken", [Detection(box=BoundingBox(0, 0, 0, 10), confidence=0.9)])
    good = FakeTier("good", [_det(0.7, "good")])
    assert DetectorChain([broken, good]).detect(frame)[0].source == "good"


def test_all_tiers_exhausted_returns_empty(frame):
    chain = DetectorChain([FakeTier("a"), FakeTier("b", exc=ValueError("x"))])
    assert chain.detect(frame) == []


def test_empty_frame_skips_tiers():
    a = FakeTier("a", [_det(0.9)])
    assert DetectorChain([a]).detect(Frame(np.zeros((0, 0, 3), dtype=np.uint8))) == []
    assert a.calls == 0


def test_synthetic_only_when_forced(frame):
    chain = DetectorChain([FakeTier("a")], fallback=SyntheticCenteredDetector())
    assert chain.detect(frame) == []
    dets = chain.detect(frame, force=True)
    assert len(dets) == 1
    d = dets[0]
    assert d.source == "synthetic"
    assert d.confidence == pytest.approx(0.75)
    assert d.box.center == pytest.approx((320.0, 216.0))
    assert d.box.width == pytest.approx(192.0)
    assert d.box.height == pytest.approx(168.0)


def test_slow_tier_times_out(frame):
    slow = FakeTier("slow", [_det(0.99, "slow")], delay=0.5)
    fast = FakeTier("fast", [_det(0.7, "fast")])
    chain = DetectorChain([slow, fast], timeout_s=0.05)
    try:
        t0 = time.monotonic()
        dets = chain.detect(frame)
        elapsed = time.monotonic() - t0
    finally:
        chain.close()
    assert dets[0].source == "fast"
    assert elapsed < 0.4


def test_stuck_tier_does_not_starve_lower_tiers(frame):
    slow = FakeTier("slow", [_det(0.99, "slow")], delay=0.3)
    fast = FakeTier("fast", [_det(0.7, "fast")])
    chain = DetectorChain([slow, fast], timeout_s=0.05)
    try:
        per_tick = [len(chain.detect(frame)) for _ in range(8)]
    finally:
        chain.close()
    assert per_tick == [1] * 8
    assert fast.calls == 8


def test_busy_tier_is_skipped_not_queued(frame):
    slow = FakeTier("slow", [_det(0.99, "slow")], delay=0.3)
    chain = DetectorChain([slow], timeout_s=0.02)
    try:
        for _ in range(10):
            assert chain.detect(frame) == []
        assert slow.calls == 1
    finally:
        chain.close()


def test_close_waits_for_in_flight_tier_calls(frame):
    class ClosableTier(FakeTier):
        closed_with_call_running = None

        def close(self):
            self.closed_with_call_running = self.finished < self.calls

    slow = ClosableTier("slow", delay=0.2)
    chain = DetectorChain([slow], timeout_s=0.02)
    assert chain.detect(frame) == []
    chain.close()
    assert slow.finished == slow.calls == 1
    assert slow.closed_with_call_running is False


def test_build_chain_without_model_tiers(frame):
    cfg = PipelineConfig(enable_native=False, enable_ml=False)
    chain = build_detector_chain(cfg, capabilities=Capability.NONE)
    try:
        assert chain.tier_names == ["heuristic"]
        assert isinstance(chain.tiers[0], SkinToneDetector)
        assert isinstance(chain.fallback, SyntheticCenteredDetector)
    finally:
        chain.close()


def test_build_chain_skips_ml_when_model_missing(tmp_path):
    cfg = PipelineConfig(landmarker_model_path=tmp_path / "missing.task", enable_native=False)
    chain = build_detector_chain(cfg, capabilities=Capability.ML)
    try:
        assert chain.tier_names == ["heuristic"]
    finally:
        chain.close()


def test_build_chain_respects_disabled_fallback():
    cfg = PipelineConfig(enable_native=False, enable_ml=False, enable_heuristic=False, enable_synthetic=False)
    chain = build_detector_chain(cfg, capabilities=Capability.NONE)
    try:
        assert chain.tiers == []
        assert chain.fallback is None
    finally:
        chain.close()
