"""
Face quality, liveness and identity matching pipeline.

- Detector chain: Haar cascade -> MediaPipe 5-point landmarks -> skin-tone
  clustering -> synthetic centred box (forced requests only)
- Weighted quality score with user feedback
- Cancellable real-time polling loop
- Texture/edge liveness heuristic
- 128-d descriptors (ArcFace ONNX or luminance fallback) and template matching
"""

from .config import PipelineConfig, QualityWeights, SkinClusterConfig
from .errors import (
    ConfigError,
    DetectorUnavailable,
    EnrollmentError,
    FaceGateError,
    InvalidImage,
    LivenessRejected,
    LowQuality,
    MatchNotFound,
    NoFaceFound,
)
from .pipeline import FacePipeline
from .realtime import DetectionHandle, LoopState
from .recognize.matcher import compare_faces, find_best_match
from .recognize.types import (
    BoundingBox,
    Detection,
    FaceTemplate,
    Frame,
    LivenessResult,
    MatchResult,
    QualityScore,
)

__version__ = "1.0.0"
