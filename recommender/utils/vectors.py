"""
Vector utilities: distances, sums, means and aggregate add/subtract.

All vectors passed to one call must have the same length; a mismatch raises
VectorDimensionError. Stored vectors are float32 values; distances are
accumulated in float64.
"""

from typing import List, Sequence

import numpy as np

from ..errors import VectorDimensionError

Vector = Sequence[float]


def as_matrix(vectors: Sequence[Vector]) -> np.ndarray:
    """Stack vectors into an (n, d) float64 array, checking they share one length."""
    if len(vectors) == 0:
        return np.empty((0, 0), dtype=np.float64)
    dim = len(vectors[0])
    for v in vectors:
        if len(v) != dim:
            raise VectorDimensionError(dim, len(v))
    return np.asarray(vectors, dtype=np.float64).reshape(len(vectors), dim)


def _check_same_dim(a: Vector, b: Vector) -> None:
    if len(a) != len(b):
        raise VectorDimensionError(len(a), len(b))


def _to_stored(arr: np.ndarray) -> List[float]:
    """Round to float32 precision, returned as plain floats."""
    return arr.astype(np.float32).tolist()


def squared_euclidean_distance(a: Vector, b: Vector) -> float:
    _check_same_dim(a, b)
    diff = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
    return float(np.dot(diff, diff))


def euclidean_distance(a: Vector, b: Vector) -> float:
    return float(np.sqrt(squared_euclidean_distance(a, b)))


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine similarity; 0.0 when either vector is empty or has zero norm."""
    if len(a) == 0 or len(b) == 0:
        return 0.0
    _check_same_dim(a, b)
    v1 = np.asarray(a, dtype=np.float64)
    v2 = np.asarray(b, dtype=np.float64)
    norm_product = np.linalg.norm(v1) * np.linalg.norm(v2)
    return float(np.dot(v1, v2) / norm_product) if norm_product > 0 else 0.0


def vector_sum(vectors: Sequence[Vector]) -> List[float]:
    """Elementwise sum. Empty input gives an empty vector."""
    if len(vectors) == 0:
        return []
    return _to_stored(as_matrix(vectors).sum(axis=0))


def vector_mean(vectors: Sequence[Vector]) -> List[float]:
    """Elementwise mean. Empty input gives an empty vector."""
    if len(vectors) == 0:
        return []
    return _to_stored(as_matrix(vectors).mean(axis=0))


def weighted_mean(vectors: Sequence[Vector], weights: Sequence[float]) -> List[float]:
    """
    sum(w_i * v_i) / sum(w_i).

    Caller guarantees a non-zero weight total; empty input gives an empty vector.
    """
    if len(vectors) != len(weights):
        raise ValueError(f"got {len(vectors)} vectors but {len(weights)} weights")
    if len(vectors) == 0:
        return []
    w = np.asarray(weights, dtype=np.float64)
    total = w.sum()
    if total == 0:
        raise ValueError("weights sum to zero")
    return _to_stored((as_matrix(vectors) * w[:, None]).sum(axis=0) / total)


def add_vectors(a: Vector, b: Vector) -> List[float]:
    _check_same_dim(a, b)
    return _to_stored(np.asarray(a, dtype=np.float64) + np.asarray(b, dtype=np.float64))


def subtract_vectors(a: Vector, b: Vector) -> List[float]:
    """a - b elementwise. No clamping: components may go negative."""
    _check_same_dim(a, b)
    return _to_stored(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64))
