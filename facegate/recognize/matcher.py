from __future__ import annotations
import logging
from typing import List, Sequence, Union
import numpy as np

from .types import ComparisonResult, FaceTemplate, MatchResult
from .utils import rms_distance

logger = logging.getLogger(__name__)

DescriptorLike = Union[np.ndarray, Sequence[float], FaceTemplate]


def _as_vector(d: DescriptorLike) -> np.ndarray:
    if isinstance(d, FaceTemplate):
        d = d.descriptor
    return np.asarray(d, dtype=np.float32).reshape(-1)


def compare_faces(e1: DescriptorLike, e2: DescriptorLike, threshold: float = 0.6) -> ComparisonResult:
    """
    similarity = max(0, 1 - sqrt(sum((e1 - e2)^2) / n)), match when strictly above threshold.
    Descriptors of different length never match.
    """
    a, b = _as_vector(e1), _as_vector(e2)
    if a.size == 0 or a.size != b.size:
        logger.debug("descriptor length mismatch: %d vs %d", a.size, b.size)
        return ComparisonResult(similarity=0.0, distance=1.0, is_match=False, threshold=float(threshold))

    distance = rms_distance(a, b)
    if not np.isfinite(distance):
        return ComparisonResult(similarity=0.0, distance=1.0, is_match=False, threshold=float(threshold))
    similarity = max(0.0, 1.0 - distance)
    return ComparisonResult(
        similarity=similarity,
        distance=distance,
        is_match=similarity > threshold,
        threshold=float(threshold),
    )


def find_best_match(query: DescriptorLike, templates: Sequence[DescriptorLike], threshold: float = 0.6) -> MatchResult:
    """
    Scores every template (no early exit) and returns the first index with the
    highest similarity. Empty input gives best_similarity 0 and index -1.
    """
    if query is None or not templates:
        return MatchResult(best_similarity=0.0, match_index=-1, all_similarities=[],
                           is_match=False, threshold=float(threshold))

    q = _as_vector(query)
    sims: List[float] = []
    best_sim, best_i = 0.0, -1
    for i, t in enumerate(templates):
        s = compare_faces(q, t, threshold).similarity
        sims.append(s)
        if best_i < 0 or s > best_sim:
            best_sim, best_i = s, i

    logger.debug("compared against %d templates, best=%.3f at %d", len(sims), best_sim, best_i)
    return MatchResult(
        best_similarity=best_sim,
        match_index=best_i,
        all_similarities=sims,
        is_match=best_sim > threshold,
        threshold=float(threshold),
    )


def mean_descriptor(vectors: Sequence[DescriptorLike]) -> np.ndarray:
    if not vectors:
        raise ValueError("no descriptors to average")
    mat = np.stack([_as_vector(v) for v in vectors], axis=0)
    return mat.mean(axis=0).astype(np.float32)
