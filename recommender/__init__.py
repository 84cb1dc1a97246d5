"""
Interest-cluster recommender core.

Pure algorithm package: data models, configuration, vector math, temporal
weighting, k-means clustering and candidate scoring. No I/O happens here;
the server package supplies stores, similarity search and item catalogs.
"""

from .errors import VectorDimensionError
from .models import (
    DEFAULT_CONFIG,
    AggregateVector,
    BatchConfig,
    CandidateSource,
    ClusterConfig,
    ClusterResult,
    GenerationConfig,
    InterestCluster,
    ItemRecord,
    PrecomputedRecommendation,
    RatedItemVector,
    RatingKind,
    RecommenderConfig,
    RegenerationStatus,
    RegenerationSummary,
    ScoredCandidate,
    ServingConfig,
    SimilarItem,
    resolve_config,
)

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
    "VectorDimensionError",
    "resolve_config",
]
