"""Shared numeric helpers for the recommender."""

from .vectors import (
    add_vectors,
    as_matrix,
    cosine_similarity,
    euclidean_distance,
    squared_euclidean_distance,
    subtract_vectors,
    vector_mean,
    vector_sum,
    weighted_mean,
)

__all__ = [
    "add_vectors",
    "as_matrix",
    "cosine_similarity",
    "euclidean_distance",
    "squared_euclidean_distance",
    "subtract_vectors",
    "vector_mean",
    "vector_sum",
    "weighted_mean",
]
