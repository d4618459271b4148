"""
Robust statistics helpers for layout calibration.

Pure functions over plain float sequences. Every reduction accepts an empty
input and returns a documented neutral value instead of raising, so callers
never see NaN leaking out of numpy.
"""

import math
from collections import Counter
from typing import Hashable, Iterable, List, Optional, Sequence, Tuple, TypeVar

import numpy as np

T = TypeVar('T', bound=Hashable)

KMEANS_MAX_ITERATIONS = 12
KMEANS_CONVERGENCE = 1e-3


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp01(value: float) -> float:
    return clamp(value, 0.0, 1.0)


def finite(values: Iterable[float]) -> List[float]:
    """Keep only finite numbers"""
    return [float(v) for v in values if v is not None and math.isfinite(v)]


def median(values: Sequence[float], default: float = 0.0) -> float:
    data = finite(values)
    if not data:
        return default
    return float(np.median(data))


def mean(values: Sequence[float], default: float = 0.0) -> float:
    data = finite(values)
    if not data:
        return default
    return float(np.mean(data))


def variance(values: Sequence[float]) -> float:
    """Population variance, 0 for empty input"""
    data = finite(values)
    if not data:
        return 0.0
    return float(np.var(data))


def percentile(values: Sequence[float], q: float, default: float = 0.0) -> float:
    """Nearest-rank percentile, q in [0, 1].

    Index is floor(n * q) clamped into the sorted data, which keeps p25 of a
    two-element line equal to its smaller gap.
    """
    data = np.sort(np.asarray(finite(values), dtype=float))
    if data.size == 0:
        return default
    idx = int(math.floor(data.size * q))
    idx = max(0, min(data.size - 1, idx))
    return float(data[idx])


def mode(values: Iterable[T], default: Optional[T] = None) -> Optional[T]:
    """Most common value; ties resolve to the first value seen"""
    counts = Counter(values)
    if not counts:
        return default
    return counts.most_common(1)[0][0]


def kmeans_1d(values: Sequence[float]) -> Tuple[float, float]:
    """Two-cluster 1-D k-means seeded at min/max.

    Returns (small, large) centroids. An empty cluster keeps its previous
    centroid; iteration stops after KMEANS_MAX_ITERATIONS or once both
    centroids move less than KMEANS_CONVERGENCE.
    """
    data = np.asarray(finite(values), dtype=float)
    if data.size == 0:
        return 0.0, 0.0

    small, large = float(data.min()), float(data.max())
    for _ in range(KMEANS_MAX_ITERATIONS):
        to_small = np.abs(data - small) <= np.abs(data - large)
        new_small = float(data[to_small].mean()) if to_small.any() else small
        new_large = float(data[~to_small].mean()) if (~to_small).any() else large
        converged = abs(new_small - small) < KMEANS_CONVERGENCE and abs(new_large - large) < KMEANS_CONVERGENCE
        small, large = new_small, new_large
        if converged:
            break

    if small > large:
        small, large = large, small
    return small, large


def find_clusters(values: Sequence[float], tolerance: float, min_members: int = 2) -> List[float]:
    """1-D tolerance clustering.

    Sorted values are chained while each value is within `tolerance` of its
    predecessor. Clusters with fewer than `min_members` points are dropped;
    the remaining cluster means are returned in ascending order.
    """
    data = sorted(finite(values))
    if not data:
        return []

    clusters: List[List[float]] = [[data[0]]]
    for prev, value in zip(data, data[1:]):
        if value - prev <= tolerance:
            clusters[-1].append(value)
        else:
            clusters.append([value])

    return [sum(c) / len(c) for c in clusters if len(c) >= min_members]
