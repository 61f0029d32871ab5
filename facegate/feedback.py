from __future__ import annotations
from typing import List

from .recognize.types import QualityScore

POSITIVE_FEEDBACK = "Good face quality detected"
UNASSESSABLE_FEEDBACK = "Unable to assess face quality"

MOVE_CLOSER = "Move closer to the camera"
ADJUST_DISTANCE = "Adjust distance - face should fill more of the frame"
MOVE_BACK = "Move back - face is too close to the camera"
CENTER_FACE = "Center your face in the frame"
FACE_STRAIGHT = "Face the camera straight on"
IMPROVE_LIGHTING = "Improve lighting - face appears too dark or too bright"
HOLD_STILL = "Hold still for a clearer image"
SYMMETRY = "Position your face more symmetrically"


def generate_feedback(
    quality: QualityScore,
    threshold: float = 0.7,
    positive_threshold: float = 0.8,
    max_face_ratio: float = 0.6,
) -> List[str]:
    """
    Ordered guidance for the user. A single acknowledgment when the face is
    good enough, otherwise one corrective line per weak factor.
    """
    if quality.error is not None:
        return [quality.error]
    if quality.overall <= 0.0:
        return [UNASSESSABLE_FEEDBACK]
    if quality.overall >= positive_threshold:
        return [POSITIVE_FEEDBACK]

    out: List[str] = []
    if quality.size < threshold:
        if quality.factors.get("face_ratio", 0.0) > max_face_ratio:
            out.append(MOVE_BACK)
        elif quality.size < 0.3:
            out.append(MOVE_CLOSER)
        else:
            out.append(ADJUST_DISTANCE)
    if quality.position < threshold:
        out.append(CENTER_FACE)
    if quality.angle < threshold:
        out.append(FACE_STRAIGHT)
    if quality.lighting < threshold:
        out.append(IMPROVE_LIGHTING)
    if quality.sharpness < threshold:
        out.append(HOLD_STILL)
    if quality.symmetry < threshold:
        out.append(SYMMETRY)
    return out
