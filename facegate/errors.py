"""
Error taxonomy for the face pipeline.

Only capture-time callers ever see these raised. Detection and scoring paths
degrade to null results and feedback instead.
"""

from __future__ import annotations
from typing import List, Optional, Sequence


class FaceGateError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(FaceGateError, ValueError):
    """Raised when a PipelineConfig holds an unusable value."""


class DetectorUnavailable(FaceGateError, RuntimeError):
    """A detector tier or embedding model failed to initialize. Non-fatal: the tier is skipped."""


class NoFaceFound(FaceGateError):
    """Every detector tier came back empty."""


class LowQuality(FaceGateError):
    def __init__(self, quality, message: str = "Face quality below the required minimum"):
        super().__init__(message)
        self.quality = quality


class InvalidImage(FaceGateError, ValueError):
    def __init__(self, reasons: Sequence[str], suggestions: Optional[Sequence[str]] = None):
        self.reasons: List[str] = list(reasons)
        self.suggestions: List[str] = list(suggestions or [])
        super().__init__("; ".join(self.reasons) or "Invalid image")


class LivenessRejected(FaceGateError):
    def __init__(self, liveness, message: str = "Liveness check failed, please try again"):
        super().__init__(message)
        self.liveness = liveness


class MatchNotFound(FaceGateError):
    def __init__(self, match, message: str = "Face does not match any enrolled template"):
        super().__init__(message)
        self.match = match


class EnrollmentError(FaceGateError):
    def __init__(self, message: str, rejected: Optional[list] = None):
        super().__init__(message)
        self.rejected = list(rejected or [])
