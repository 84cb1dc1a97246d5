"""
Batch regeneration: rebuild clusters and precomputed recommendations for every
user flagged as needing it.

Per user: update clusters -> generate candidates -> replace precomputed set ->
mark regenerated. Users run concurrently under a semaphore bound. One user's
failure is logged and counted and never stops the others. Safe to re-run: a
user that failed keeps its needs_regeneration flag.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from recommender.models import BatchConfig, RegenerationSummary

from .candidate_generator import CandidateGenerator
from .cluster_updater import InterestClusterUpdater, user_rng
from .user_data_store import PrecomputedRecommendationStore, RegenerationStatusStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchRegenerationJob:
    def __init__(
        self,
        cluster_updater: InterestClusterUpdater,
        generator: CandidateGenerator,
        precomputed: PrecomputedRecommendationStore,
        status: RegenerationStatusStore,
        config: Optional[BatchConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._cluster_updater = cluster_updater
        self._generator = generator
        self._precomputed = precomputed
        self._status = status
        self._config = config or BatchConfig()
        self._clock = clock

    async def regenerate_user(self, user_id: str) -> int:
        """Full regeneration for one user. Returns the number of recommendations stored."""
        started_at = self._clock()
        await self._cluster_updater.update_clusters(
            user_id, rng=user_rng(self._config.seed, user_id)
        )
        candidates = await self._generator.generate(user_id, self._config.candidate_limit)
        generated_at = self._clock()
        # an empty result still replaces the old set
        await self._precomputed.replace_precomputed(user_id, candidates, generated_at)
        await self._status.mark_regenerated(user_id, started_at, generated_at)
        return len(candidates)

    async def run(self, user_ids: Optional[List[str]] = None) -> RegenerationSummary:
        """
        Regenerate flagged users (or exactly user_ids when given).

        Failure to list flagged users raises; per-user failures are counted.
        """
        if user_ids is None:
            user_ids = await self._status.list_users_needing_regeneration()
        logger.info(
            "[batch] START users=%s concurrency=%s", len(user_ids), self._config.concurrency
        )
        semaphore = asyncio.Semaphore(self._config.concurrency)

        async def _one(user_id: str) -> bool:
            async with semaphore:
                try:
                    stored = await self.regenerate_user(user_id)
                except Exception:
                    logger.exception("[batch] USER_FAILED user_id=%s", user_id)
                    return False
                logger.info("[batch] USER_DONE user_id=%s stored=%s", user_id, stored)
                return True

        outcomes = await asyncio.gather(*(_one(u) for u in user_ids))
        summary = RegenerationSummary(
            success_count=sum(1 for ok in outcomes if ok),
            fail_count=sum(1 for ok in outcomes if not ok),
        )
        logger.info(
            "[batch] FINISHED success_count=%s fail_count=%s",
            summary.success_count, summary.fail_count,
        )
        return summary
