"""Data models for the recommender."""

from .cluster import ClusterResult, InterestCluster
from .config import (
    DEFAULT_CONFIG,
    BatchConfig,
    ClusterConfig,
    GenerationConfig,
    RecommenderConfig,
    ServingConfig,
    resolve_config,
)
from .rating import RatedItemVector, RatingKind
from .records import (
    AggregateVector,
    ItemRecord,
    PrecomputedRecommendation,
    RegenerationStatus,
    RegenerationSummary,
)
from .scoring import CandidateSource, ScoredCandidate, SimilarItem

__all__ = [
    "DEFAULT_CONFIG",
    "AggregateVector",
    "BatchConfig",
    "CandidateSource",
    "ClusterConfig",
    "ClusterResult",
    "GenerationConfig",
    "InterestCluster",
    "ItemRecord",
    "PrecomputedRecommendation",
    "RatedItemVector",
    "RatingKind",
    "RecommenderConfig",
    "RegenerationStatus",
    "RegenerationSummary",
    "ScoredCandidate",
    "ServingConfig",
    "SimilarItem",
    "resolve_config",
]
