"""
Pipeline configuration.

Every tunable constant of the pipeline lives here: tier switches, polling
cadence, quality/liveness/match thresholds, the quality weight table and the
skin-clustering heuristics. Values can be overridden from the environment with
PipelineConfig.from_env().
"""

from __future__ import annotations
import math
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Optional, Tuple

from .errors import ConfigError

LIVENESS_MODES = ("strict", "permissive")

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


# -------------------------
# Sub-configs
# -------------------------

@dataclass(frozen=True)
class QualityWeights:
    size: float = 0.20
    position: float = 0.15
    angle: float = 0.25
    sharpness: float = 0.15
    lighting: float = 0.15
    symmetry: float = 0.10

    def total(self) -> float:
        return self.size + self.position + self.angle + self.sharpness + self.lighting + self.symmetry

    def validate(self) -> None:
        for f in fields(self):
            v = getattr(self, f.name)
            if v < 0.0:
                raise ConfigError(f"quality weight '{f.name}' must be >= 0 (got {v})")
        if not math.isclose(self.total(), 1.0, abs_tol=1e-6):
            raise ConfigError(f"quality weights must sum to 1.0 (got {self.total():.4f})")


@dataclass(frozen=True)
class SkinClusterConfig:
    block_size: int = 16
    sample_stride: int = 4
    skin_fraction: float = 0.30
    cluster_radius: float = 40.0
    min_cluster_blocks: int = 2
    min_skin_blocks: int = 3
    expand_x: float = 1.5
    expand_y: float = 1.8
    min_face_size: Tuple[int, int] = (100, 120)  # (w, h)
    confidence_base: float = 0.5
    confidence_denominator: float = 15.0
    confidence_cap: float = 0.85

    def validate(self) -> None:
        if self.block_size <= 0 or self.sample_stride <= 0:
            raise ConfigError("skin block_size and sample_stride must be positive")
        if self.block_size % self.sample_stride != 0:
            raise ConfigError("skin block_size must be a multiple of sample_stride")
        if not 0.0 < self.skin_fraction < 1.0:
            raise ConfigError("skin_fraction must be in (0, 1)")
        if self.cluster_radius <= 0:
            raise ConfigError("cluster_radius must be positive")
        if self.confidence_cap >= 0.9:
            raise ConfigError("heuristic confidence_cap must stay below 0.9")


# -------------------------
# Pipeline config
# -------------------------

@dataclass
class PipelineConfig:
    # detector tiers
    enable_native: bool = True
    enable_ml: bool = True
    enable_heuristic: bool = True
    enable_synthetic: bool = True
    landmarker_model_path: Path = _PROJECT_ROOT / "face_landmarker.task"
    haar_min_size: Tuple[int, int] = (70, 70)

    # real-time loop
    interval_ms: int = 200
    min_quality: float = 0.6
    tier_timeout_ms: Optional[int] = None  # None: bounded by interval_ms

    # quality
    quality_weights: QualityWeights = field(default_factory=QualityWeights)
    feedback_threshold: float = 0.7
    positive_feedback_threshold: float = 0.8

    # liveness
    liveness_threshold: float = 0.6
    liveness_mode: str = "strict"
    liveness_edge_delta: float = 30.0

    # embedding / matching
    embedder_model_path: Path = _PROJECT_ROOT / "models" / "embedder_mobilefacenet.onnx"
    descriptor_size: int = 128
    match_threshold: float = 0.6

    # capture image validation
    min_image_side: int = 200
    max_image_side: int = 2000
    min_brightness: float = 50.0
    max_brightness: float = 220.0
    min_contrast: float = 20.0

    # enrollment
    min_enrollment_samples: int = 3
    max_enrollment_samples: int = 10

    skin: SkinClusterConfig = field(default_factory=SkinClusterConfig)

    def __post_init__(self):
        self.landmarker_model_path = Path(self.landmarker_model_path)
        self.embedder_model_path = Path(self.embedder_model_path)
        self.validate()

    @property
    def tier_timeout_s(self) -> float:
        ms = self.tier_timeout_ms if self.tier_timeout_ms is not None else self.interval_ms
        return ms / 1000.0

    def validate(self) -> None:
        if self.interval_ms <= 0:
            raise ConfigError(f"interval_ms must be positive (got {self.interval_ms})")
        if self.tier_timeout_ms is not None and self.tier_timeout_ms <= 0:
            raise ConfigError("tier_timeout_ms must be positive when set")
        for name in ("min_quality", "liveness_threshold", "match_threshold",
                     "feedback_threshold", "positive_feedback_threshold"):
            v = getattr(self, name)
            if not 0.0 <= v <= 1.0:
                raise ConfigError(f"{name} must be within [0, 1] (got {v})")
        if self.liveness_mode not in LIVENESS_MODES:
            raise ConfigError(f"liveness_mode must be one of {LIVENESS_MODES} (got {self.liveness_mode!r})")
        if self.descriptor_size <= 0:
            raise ConfigError("descriptor_size must be positive")
        if self.min_image_side > self.max_image_side:
            raise ConfigError("min_image_side cannot exceed max_image_side")
        if not 1 <= self.min_enrollment_samples <= self.max_enrollment_samples:
            raise ConfigError("enrollment sample bounds are inconsistent")
        self.quality_weights.validate()
        self.skin.validate()

    def with_overrides(self, **changes) -> "PipelineConfig":
        return replace(self, **changes)

    @classmethod
    def from_env(cls, prefix: str = "FACEGATE_", **defaults) -> "PipelineConfig":
        """
        Build a config from FACEGATE_* environment variables.
        Only scalar options are read; nested tables keep their defaults.
        """
        base = cls(**defaults)
        changes = {}
        for f in fields(cls):
            raw = os.getenv(prefix + f.name.upper())
            if raw is None:
                continue
            current = getattr(base, f.name)
            try:
                changes[f.name] = _coerce(raw, current)
            except ValueError as exc:
                raise ConfigError(f"{prefix}{f.name.upper()}={raw!r}: {exc}") from exc
        return replace(base, **changes) if changes else base


def _coerce(raw: str, current):
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, Path):
        return Path(raw)
    if current is None:
        return int(raw)
    if isinstance(current, str):
        return raw.strip()
    raise ValueError("option cannot be set from the environment")
