"""Application state: configured backends and the recommendation services built on them."""

import logging
from typing import Any, Optional

from recommender.models import RecommenderConfig

from .config import ServerConfig, get_config
from .services import (
    BatchRegenerationJob,
    CandidateGenerator,
    HttpItemProvider,
    InMemoryItemIndex,
    InMemoryItemProvider,
    InMemoryUserDataStore,
    InterestClusterUpdater,
    JsonItemProvider,
    RatingService,
    RecommendationOrchestrator,
)

logger = logging.getLogger(__name__)


class AppState:
    """
    Global application state.

    Backends come from ServerConfig (or are passed in directly, e.g. by tests);
    every service shares the same user data store and item index.
    """

    def __init__(
        self,
        config: ServerConfig,
        recommender_config: Optional[RecommenderConfig] = None,
        *,
        user_data: Any = None,
        item_index: Any = None,
        items: Any = None,
    ):
        self.config = config
        self.recommender_config = recommender_config or config.load_recommender_config()

        self.user_data = user_data if user_data is not None else self._create_user_data(config)
        self.items = items if items is not None else self._create_items(config)
        self.item_index = item_index if item_index is not None else self._create_item_index(config)
        logger.info(
            "[startup] BACKENDS user_data=%s item_index=%s items=%s",
            type(self.user_data).__name__,
            type(self.item_index).__name__,
            type(self.items).__name__,
        )

        rc = self.recommender_config
        self.generator = CandidateGenerator(
            self.user_data, self.user_data, self.user_data, self.item_index, rc.generation
        )
        self.cluster_updater = InterestClusterUpdater(
            self.user_data, self.user_data, rc.clustering, seed=rc.batch.seed
        )
        self.orchestrator = RecommendationOrchestrator(
            self.generator, self.user_data, self.user_data, self.user_data, self.items, rc.serving
        )
        self.regeneration_job = BatchRegenerationJob(
            self.cluster_updater, self.generator, self.user_data, self.user_data, rc.batch
        )
        self.rating_service = RatingService(
            self.user_data, self.user_data, self.user_data, self.user_data, self.item_index
        )

    def _create_user_data(self, config: ServerConfig) -> Any:
        """User data store: Firestore for DATA_SOURCE=firebase, else in-memory."""
        if config.data_source == "firebase":
            from .services.firestore_user_data_store import FirestoreUserDataStore

            return FirestoreUserDataStore(
                project_id=config.firebase_project_id,
                credentials_path=config.firebase_credentials_path,
            )
        return InMemoryUserDataStore()

    def _create_item_index(self, config: ServerConfig) -> Any:
        """Similarity search + vector fetch backend from VECTOR_BACKEND. Built after the catalog."""
        if config.vector_backend == "pinecone":
            from .services.pinecone_store import PineconeItemIndex

            return PineconeItemIndex(
                api_key=config.pinecone_api_key,
                index_name=config.pinecone_index_name,
                namespace=config.pinecone_namespace,
            )
        if config.vector_backend == "qdrant":
            from .services.qdrant_store import QdrantItemIndex

            return QdrantItemIndex(
                qdrant_url=config.qdrant_url, collection=config.qdrant_collection
            )
        # local runs search the catalog's own vectors
        vectors = self.items.vectors() if isinstance(self.items, InMemoryItemProvider) else {}
        return InMemoryItemIndex(vectors)

    def _create_items(self, config: ServerConfig) -> Any:
        """Item catalog from ITEMS_SOURCE. A missing JSON catalog yields an empty one."""
        if config.items_source == "firestore":
            from .services.item_provider import FirestoreItemProvider

            return FirestoreItemProvider(
                project_id=config.firebase_project_id,
                credentials_path=config.firebase_credentials_path,
            )
        if config.items_source == "http":
            return HttpItemProvider(config.items_api_url)
        if config.items_json_path and config.items_json_path.is_file():
            return JsonItemProvider(config.items_json_path)
        logger.warning(
            "[startup] ITEMS_JSON_MISSING path=%s; using an empty catalog", config.items_json_path
        )
        return InMemoryItemProvider()


# Global state instance
_state: Optional[AppState] = None


def get_state() -> AppState:
    """Get the global application state, building it from get_config() on first use."""
    global _state
    if _state is None:
        _state = AppState(get_config())
    return _state


def reset_state() -> None:
    global _state
    _state = None
