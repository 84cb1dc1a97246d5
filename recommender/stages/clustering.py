"""
Interest clustering: k-means with k-means++ seeding.

Groups a user's positively rated item vectors into up to k interest clusters.
All randomness comes from the injected numpy Generator, so identical inputs and
generator state give identical output. No global optimum is sought.
"""

import logging
from typing import List, Sequence

import numpy as np

from ..models.cluster import ClusterResult
from ..utils.vectors import Vector, as_matrix

logger = logging.getLogger(__name__)


def _squared_distances(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """(n, k) matrix of squared Euclidean distances, float64."""
    diff = points[:, None, :] - centroids[None, :, :]
    return np.einsum("nkd,nkd->nk", diff, diff)


def _seed_centroids(points: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    """
    k-means++ seeding.

    First centroid is uniform over points. Each next centroid is drawn with
    probability proportional to squared distance to the nearest chosen centroid:
    target = rng.random() * total, pick the first index whose cumulative weight
    reaches target. When every distance is zero the first point is taken.
    """
    n = points.shape[0]
    centroids = [points[int(rng.integers(n))]]
    nearest = _squared_distances(points, np.asarray(centroids))[:, 0]
    for _ in range(1, k):
        total = float(nearest.sum())
        target = rng.random() * total
        cumulative = np.cumsum(nearest)
        idx = int(np.searchsorted(cumulative, target, side="left"))
        if idx >= n:
            idx = n - 1
        centroids.append(points[idx])
        nearest = np.minimum(nearest, _squared_distances(points, points[idx : idx + 1])[:, 0])
    return np.asarray(centroids)


def kmeans(
    points: Sequence[Vector],
    k: int,
    max_iterations: int,
    convergence_threshold: float,
    rng: np.random.Generator,
) -> ClusterResult:
    """
    Cluster points into k groups.

    - Empty points or k == 0: empty result.
    - k > len(points) is allowed; surplus clusters stay empty and keep their centroid.
    - Assignment ties go to the lowest cluster index.
    - Stops early when the largest centroid move is below convergence_threshold.
    """
    if k < 0:
        raise ValueError(f"k must be >= 0, got {k}")
    if len(points) == 0 or k == 0:
        return ClusterResult()

    data = as_matrix(points)
    centroids = _seed_centroids(data, k, rng)
    assignments = np.zeros(data.shape[0], dtype=np.int64)

    for iteration in range(max_iterations):
        # argmin returns the first minimum, so ties go to the lowest index
        assignments = np.argmin(_squared_distances(data, centroids), axis=1)

        new_centroids = centroids.copy()
        for c in range(k):
            members = data[assignments == c]
            if len(members):
                new_centroids[c] = members.mean(axis=0)

        movement = float(np.sqrt(((new_centroids - centroids) ** 2).sum(axis=1)).max())
        centroids = new_centroids
        if movement < convergence_threshold:
            logger.debug(
                "[kmeans] CONVERGED iteration=%s movement=%.6g", iteration + 1, movement
            )
            break

    return ClusterResult(
        centroids=centroids.astype(np.float32).tolist(),
        assignments=[int(a) for a in assignments],
    )


def count_cluster_assignments(assignments: Sequence[int], k: int) -> List[int]:
    """Members per cluster index 0..k-1. Out-of-range indices are ignored."""
    counts = [0] * k
    for a in assignments:
        if 0 <= a < k:
            counts[a] += 1
    return counts
