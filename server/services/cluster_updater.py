"""
Interest cluster update: recompute and persist a user's interest clusters.

Runs k-means over the user's positive rating vectors and replaces the stored
clusters as one set. Users with too few positive items have their clusters
cleared, so generation falls back to the temporal query alone.
"""

import logging
import zlib
from datetime import datetime, timezone
from typing import Callable, List, Optional

import numpy as np

from recommender.models import ClusterConfig, InterestCluster, RatingKind
from recommender.stages.clustering import count_cluster_assignments, kmeans

from .errors import SignalFetchError
from .user_data_store import InterestClusterStore, RatingStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def user_rng(seed: int, user_id: str) -> np.random.Generator:
    """Generator derived from a base seed and the user id, independent of processing order."""
    return np.random.default_rng([seed, zlib.crc32(user_id.encode("utf-8"))])


class InterestClusterUpdater:
    def __init__(
        self,
        ratings: RatingStore,
        clusters: InterestClusterStore,
        config: Optional[ClusterConfig] = None,
        seed: int = 0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._ratings = ratings
        self._clusters = clusters
        self._config = config or ClusterConfig()
        self._seed = seed
        self._clock = clock

    async def update_clusters(
        self,
        user_id: str,
        config: Optional[ClusterConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> List[InterestCluster]:
        """
        Recompute and store the user's clusters; returns what was stored.

        Empty clusters are not stored. Store write failures propagate, except
        the clear for users below min_items_for_clustering, which is best-effort.
        """
        cfg = config or self._config
        try:
            positives = await self._ratings.get_rated_vectors(user_id, RatingKind.POSITIVE)
        except Exception as e:
            raise SignalFetchError(f"getting positive rating vectors for {user_id!r}: {e}") from e

        if len(positives) < cfg.min_items_for_clustering:
            logger.info(
                "[clusters] TOO_FEW_ITEMS user_id=%s items=%s min=%s; clearing clusters",
                user_id, len(positives), cfg.min_items_for_clustering,
            )
            try:
                await self._clusters.delete_clusters(user_id)
            except Exception as e:
                logger.warning("[clusters] CLEAR_FAILED user_id=%s error=%s", user_id, e)
            return []

        k = min(cfg.num_clusters, len(positives))
        result = kmeans(
            [p.vector for p in positives],
            k,
            cfg.max_iterations,
            cfg.convergence_threshold,
            rng if rng is not None else user_rng(self._seed, user_id),
        )
        counts = count_cluster_assignments(result.assignments, k)
        now = self._clock()
        clusters = [
            InterestCluster(
                cluster_index=i,
                centroid=centroid,
                member_count=counts[i],
                updated_at=now,
            )
            for i, centroid in enumerate(result.centroids)
            if counts[i] > 0
        ]
        await self._clusters.replace_clusters(user_id, clusters)
        logger.info(
            "[clusters] UPDATED user_id=%s items=%s k=%s stored=%s",
            user_id, len(positives), k, len(clusters),
        )
        return clusters
