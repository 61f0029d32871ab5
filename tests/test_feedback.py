import pytest

from facegate.feedback import (
    ADJUST_DISTANCE,
    CENTER_FACE,
    FACE_STRAIGHT,
    HOLD_STILL,
    IMPROVE_LIGHTING,
    MOVE_BACK,
    MOVE_CLOSER,
    POSITIVE_FEEDBACK,
    SYMMETRY,
    UNASSESSABLE_FEEDBACK,
    generate_feedback,
)
from facegate.recognize.types import QualityScore


def _q(overall=0.6, size=1.0, position=1.0, angle=1.0, sharpness=1.0, lighting=1.0, symmetry=1.0, **factors):
    return QualityScore(overall=overall, size=size, position=position, angle=angle,
                        sharpness=sharpness, lighting=lighting, symmetry=symmetry, factors=factors)


@pytest.mark.parametrize("overall", [0.8, 0.85, 1.0])
def test_good_quality_is_single_acknowledgment(overall):
    q = _q(overall=overall, size=0.1, position=0.1, angle=0.2, lighting=0.4, sharpness=0.2, symmetry=0.3)
    assert generate_feedback(q) == [POSITIVE_FEEDBACK]


def test_all_weak_factors_in_order():
    q = _q(size=0.2, position=0.5, angle=0.4, sharpness=0.2, lighting=0.4, symmetry=0.5, face_ratio=0.02)
    assert generate_feedback(q) == [MOVE_CLOSER, CENTER_FACE, FACE_STRAIGHT, IMPROVE_LIGHTING, HOLD_STILL, SYMMETRY]


def test_size_messages():
    assert generate_feedback(_q(size=0.5, face_ratio=0.05)) == [ADJUST_DISTANCE]
    assert generate_feedback(_q(size=0.5, face_ratio=0.8)) == [MOVE_BACK]


def test_nothing_below_threshold_gives_empty_list():
    assert generate_feedback(_q(overall=0.75, size=0.7, position=0.7)) == []


def test_zero_overall_is_unassessable():
    assert generate_feedback(_q(overall=0.0)) == [UNASSESSABLE_FEEDBACK]


def test_custom_thresholds():
    q = _q(overall=0.7, position=0.85)
    assert generate_feedback(q, threshold=0.9) == [CENTER_FACE]
    assert generate_feedback(q, positive_threshold=0.7) == [POSITIVE_FEEDBACK]
