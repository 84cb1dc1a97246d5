"""
Backing logic: stores, similarity search, item catalogs and the recommendation services.

Cloud backends (Pinecone, Qdrant, Firestore) live in their own modules and are
imported by server.state only when configured.
"""

from .candidate_generator import CandidateGenerator
from .cluster_updater import InterestClusterUpdater, user_rng
from .errors import RecommendationError, SignalFetchError
from .item_provider import (
    HttpItemProvider,
    InMemoryItemProvider,
    ItemProvider,
    JsonItemProvider,
)
from .rating_service import RatingService, rating_kind
from .recommendation_orchestrator import RecommendationOrchestrator
from .regeneration_job import BatchRegenerationJob
from .similarity_search import (
    InMemoryItemIndex,
    ItemVectorFetcher,
    ItemVectorWriter,
    SimilaritySearch,
    find_similar_items,
)
from .user_data_store import (
    AggregateVectorStore,
    InMemoryUserDataStore,
    InterestClusterStore,
    PrecomputedRecommendationStore,
    RatingStore,
    ReadItemStore,
    RegenerationStatusStore,
    UserDataStore,
)

__all__ = [
    "AggregateVectorStore",
    "BatchRegenerationJob",
    "CandidateGenerator",
    "HttpItemProvider",
    "InMemoryItemIndex",
    "InMemoryItemProvider",
    "InMemoryUserDataStore",
    "InterestClusterStore",
    "InterestClusterUpdater",
    "ItemProvider",
    "ItemVectorFetcher",
    "ItemVectorWriter",
    "JsonItemProvider",
    "PrecomputedRecommendationStore",
    "RatingService",
    "RatingStore",
    "ReadItemStore",
    "RecommendationError",
    "RecommendationOrchestrator",
    "RegenerationStatusStore",
    "SignalFetchError",
    "SimilaritySearch",
    "UserDataStore",
    "find_similar_items",
    "rating_kind",
    "user_rng",
]
