from __future__ import annotations
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
import numpy as np


@dataclass
class Frame:
    image: np.ndarray  # (H,W,3) uint8 BGR
    timestamp: float = field(default_factory=time.time)

    @property
    def height(self) -> int:
        return int(self.image.shape[0]) if self.image is not None and self.image.ndim >= 2 else 0

    @property
    def width(self) -> int:
        return int(self.image.shape[1]) if self.image is not None and self.image.ndim >= 2 else 0

    @property
    def is_empty(self) -> bool:
        return self.image is None or self.image.size == 0 or self.width == 0 or self.height == 0


@dataclass(frozen=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> "BoundingBox":
        return cls(float(x1), float(y1), float(x2 - x1), float(y2 - y1))

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    @property
    def area(self) -> float:
        return self.width * self.height

    def is_valid(self) -> bool:
        vals = (self.x, self.y, self.width, self.height)
        return all(math.isfinite(v) for v in vals) and self.width > 0 and self.height > 0

    def to_xyxy(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    def clip_int(self, W: int, H: int) -> Tuple[int, int, int, int]:
        """Integer (x1, y1, x2, y2) clipped to a W x H image."""
        x1 = int(max(0, min(W, math.floor(self.x))))
        y1 = int(max(0, min(H, math.floor(self.y))))
        x2 = int(max(0, min(W, math.ceil(self.x + self.width))))
        y2 = int(max(0, min(H, math.ceil(self.y + self.height))))
        return x1, y1, x2, y2


@dataclass
class Detection:
    box: BoundingBox
    confidence: float
    landmarks: Optional[np.ndarray] = None  # (5,2) float32 in FULL-frame coords
    source: str = ""

    @property
    def has_landmarks(self) -> bool:
        return self.landmarks is not None and len(self.landmarks) >= 5


@dataclass
class QualityScore:
    overall: float
    size: float
    position: float
    angle: float
    sharpness: float
    lighting: float
    symmetry: float
    feedback: List[str] = field(default_factory=list)
    factors: Dict[str, float] = field(default_factory=dict)
    error: Optional[str] = None

    def sub_scores(self) -> Dict[str, float]:
        return {
            "size": self.size,
            "position": self.position,
            "angle": self.angle,
            "sharpness": self.sharpness,
            "lighting": self.lighting,
            "symmetry": self.symmetry,
        }


@dataclass
class FaceAnalysis:
    detection: Detection
    quality: QualityScore

    @property
    def feedback(self) -> List[str]:
        return self.quality.feedback


@dataclass
class TickResult:
    detection: Optional[Detection]
    quality: Optional[QualityScore]
    has_acceptable_quality: bool
    timestamp: float
    frame_size: Tuple[int, int] = (0, 0)  # (w, h)


@dataclass
class LivenessResult:
    score: float
    is_live: bool
    subchecks: Dict[str, bool] = field(default_factory=dict)
    texture: float = 0.0
    edge_ratio: float = 0.0
    mode: str = "strict"


@dataclass(frozen=True)
class FaceTemplate:
    descriptor: np.ndarray
    owner_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ComparisonResult:
    similarity: float
    distance: float
    is_match: bool
    threshold: float


@dataclass
class MatchResult:
    best_similarity: float
    match_index: int  # -1 when nothing was compared
    all_similarities: List[float]
    is_match: bool = False
    threshold: float = 0.6

    @property
    def matched_index(self) -> Optional[int]:
        return self.match_index if self.match_index >= 0 else None


@dataclass
class ImageValidation:
    is_valid: bool
    reasons: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    width: int = 0
    height: int = 0
    brightness: float = 0.0
    contrast: float = 0.0
    aspect_ratio: float = 0.0


@dataclass
class EmbeddingResult:
    success: bool
    embedding: Optional[np.ndarray] = None
    confidence: float = 0.0
    box: Optional[BoundingBox] = None
    landmarks: Optional[np.ndarray] = None
    liveness_check: Optional[LivenessResult] = None
    error: Optional[str] = None
    reason: Optional[str] = None  # invalid_image | no_face | None
    suggestions: List[str] = field(default_factory=list)


@dataclass
class VerificationResult:
    is_verified: bool
    reason: str  # verified | invalid_image | no_face | liveness_rejected | match_not_found
    match: Optional[MatchResult] = None
    liveness_check: Optional[LivenessResult] = None
    embedding: Optional[np.ndarray] = None
    error: Optional[str] = None

    @property
    def confidence(self) -> float:
        return self.match.best_similarity if self.match is not None else 0.0


@dataclass
class RejectedSample:
    index: int
    reason: str
    suggestions: List[str] = field(default_factory=list)


@dataclass
class EnrollmentResult:
    owner_id: str
    templates: List[FaceTemplate]
    rejected: List[RejectedSample]
    mean_descriptor: np.ndarray
