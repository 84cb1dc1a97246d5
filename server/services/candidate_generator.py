"""
Candidate generation: on-demand recommendations for one user.

Pipeline:
1. Read-item exclusion set (best-effort), applied to the final list only.
2. Positive rating vectors (required; failure aborts the call).
3. Negative vector: mean of negative rating vectors (best-effort, skipped at weight 0).
4. Cluster queries: one similarity search per stored interest cluster centroid.
5. Temporal query: one search for the recency-weighted mean of positive vectors.
6. Negative penalty, merge, dedupe, exclusion filter, sort, truncate.

Cluster and temporal searches run concurrently. Any cluster search failure drops
all cluster candidates; a temporal failure drops the temporal candidates.
Cancellation is never swallowed.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Set

from recommender.models import (
    CandidateSource,
    GenerationConfig,
    RatingKind,
    ScoredCandidate,
    SimilarItem,
)
from recommender.stages.ranking import rank_and_deduplicate, score_hits
from recommender.stages.temporal_weighting import weighted_average
from recommender.utils.vectors import vector_mean

from .errors import SignalFetchError
from .similarity_search import SimilaritySearch
from .user_data_store import InterestClusterStore, RatingStore, ReadItemStore

logger = logging.getLogger(__name__)

# The temporal query asks for this many times candidates_per_cluster.
TEMPORAL_LIMIT_MULTIPLIER = 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CandidateGenerator:
    """
    Generates ranked candidates from a user's ratings and interest clusters.

    Usage:
        generator = CandidateGenerator(store, store, store, index)
        candidates = await generator.generate("user-1", limit=20)
    """

    def __init__(
        self,
        ratings: RatingStore,
        read_items: ReadItemStore,
        clusters: InterestClusterStore,
        search: SimilaritySearch,
        config: Optional[GenerationConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._ratings = ratings
        self._read_items = read_items
        self._clusters = clusters
        self._search = search
        self._config = config or GenerationConfig()
        self._clock = clock

    async def _run_search(
        self,
        vector: List[float],
        limit: int,
        config: GenerationConfig,
    ) -> List[SimilarItem]:
        # read items are filtered after ranking, never pushed into retrieval
        call = self._search.search(set(), vector, limit)
        if config.search_timeout_seconds is None:
            return await call
        return await asyncio.wait_for(call, timeout=config.search_timeout_seconds)

    async def _exclusion_set(self, user_id: str) -> Set[str]:
        try:
            return set(await self._read_items.list_read_item_ids(user_id))
        except Exception as e:
            logger.warning("[generate] READ_ITEMS_UNAVAILABLE user_id=%s error=%s", user_id, e)
            return set()

    async def _negative_vector(
        self, user_id: str, config: GenerationConfig
    ) -> Optional[List[float]]:
        if config.negative_signal_weight <= 0:
            return None
        try:
            negatives = await self._ratings.get_rated_vectors(user_id, RatingKind.NEGATIVE)
            if not negatives:
                return None
            return vector_mean([n.vector for n in negatives])
        except Exception as e:
            logger.warning(
                "[generate] NEGATIVE_VECTORS_UNAVAILABLE user_id=%s error=%s", user_id, e
            )
            return None

    async def _cluster_candidates(
        self,
        user_id: str,
        negative_vector: Optional[List[float]],
        config: GenerationConfig,
    ) -> List[ScoredCandidate]:
        if not config.use_interest_clusters:
            return []
        try:
            clusters = await self._clusters.get_clusters(user_id)
        except Exception as e:
            logger.warning("[generate] CLUSTERS_UNAVAILABLE user_id=%s error=%s", user_id, e)
            return []
        if not clusters:
            return []

        results = await asyncio.gather(
            *(
                self._run_search(c.centroid, config.candidates_per_cluster, config)
                for c in clusters
            ),
            return_exceptions=True,
        )
        for cluster, result in zip(clusters, results):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
            if isinstance(result, Exception):
                logger.warning(
                    "[generate] CLUSTER_SEARCH_FAILED user_id=%s cluster=%s error=%r; dropping cluster candidates",
                    user_id, cluster.cluster_index, result,
                )
                return []

        out: List[ScoredCandidate] = []
        for cluster, hits in zip(clusters, results):
            out.extend(
                score_hits(
                    hits,
                    CandidateSource.cluster(cluster.cluster_index).tag,
                    negative_vector,
                    config.negative_signal_weight,
                )
            )
        return out

    async def _temporal_candidates(
        self,
        user_id: str,
        temporal_vector: Optional[List[float]],
        negative_vector: Optional[List[float]],
        config: GenerationConfig,
    ) -> List[ScoredCandidate]:
        if temporal_vector is None:
            return []
        limit = TEMPORAL_LIMIT_MULTIPLIER * config.candidates_per_cluster
        try:
            hits = await self._run_search(temporal_vector, limit, config)
        except Exception as e:
            logger.warning(
                "[generate] TEMPORAL_SEARCH_FAILED user_id=%s error=%r", user_id, e
            )
            return []
        return score_hits(
            hits,
            CandidateSource.temporal().tag,
            negative_vector,
            config.negative_signal_weight,
        )

    async def generate(
        self,
        user_id: str,
        limit: int,
        config: Optional[GenerationConfig] = None,
    ) -> List[ScoredCandidate]:
        """
        Ranked candidates for user_id, best first, at most limit.

        Raises SignalFetchError when positive ratings cannot be read. An empty
        list (no positive ratings, or nothing left after filtering) is a valid result.
        """
        cfg = config or self._config
        exclude_ids = await self._exclusion_set(user_id)

        try:
            positives = await self._ratings.get_rated_vectors(user_id, RatingKind.POSITIVE)
        except Exception as e:
            raise SignalFetchError(f"getting positive rating vectors for {user_id!r}: {e}") from e
        if not positives:
            logger.info("[generate] NO_POSITIVE_SIGNAL user_id=%s", user_id)
            return []

        negative_vector = await self._negative_vector(user_id, cfg)
        temporal_vector = weighted_average(
            [(p.vector, p.rated_at) for p in positives],
            cfg.temporal_half_life_days,
            self._clock(),
        )

        cluster_cands, temporal_cands = await asyncio.gather(
            self._cluster_candidates(user_id, negative_vector, cfg),
            self._temporal_candidates(user_id, temporal_vector, negative_vector, cfg),
        )
        ranked = rank_and_deduplicate(cluster_cands + temporal_cands, limit, exclude_ids)
        logger.info(
            "[generate] DONE user_id=%s cluster_candidates=%s temporal_candidates=%s returned=%s",
            user_id, len(cluster_cands), len(temporal_cands), len(ranked),
        )
        return ranked
