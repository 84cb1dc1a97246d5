"""
Recommendation serving: precomputed cache first, on-demand generation on miss.

    TryPrecomputed -> hit: filter read items, take limit
                   -> miss / stale / error: generate -> write back (best-effort)
    -> hydrate ids into ItemRecords, keeping scored order

A precomputed set is fresh while now - generated_at <= stale threshold.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from recommender.models import ItemRecord, ScoredCandidate, ServingConfig

from .candidate_generator import CandidateGenerator
from .errors import RecommendationError
from .item_provider import ItemProvider
from .user_data_store import (
    PrecomputedRecommendationStore,
    ReadItemStore,
    RegenerationStatusStore,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(ts: datetime) -> datetime:
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


class RecommendationOrchestrator:
    """
    Serves recommendations for one user per call.

    Usage:
        orchestrator = RecommendationOrchestrator(generator, store, store, store, items)
        records = await orchestrator.recommend_for("user-1", limit=20)
    """

    def __init__(
        self,
        generator: CandidateGenerator,
        precomputed: PrecomputedRecommendationStore,
        read_items: ReadItemStore,
        status: RegenerationStatusStore,
        items: ItemProvider,
        config: Optional[ServingConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._generator = generator
        self._precomputed = precomputed
        self._read_items = read_items
        self._status = status
        self._items = items
        self._config = config or ServingConfig()
        self._clock = clock

    def _is_fresh(self, generated_at: Optional[datetime], now: datetime) -> bool:
        if generated_at is None:
            return False
        age = _as_utc(now) - _as_utc(generated_at)
        return age <= timedelta(hours=self._config.stale_threshold_hours)

    async def _try_precomputed(self, user_id: str, limit: int, now: datetime) -> List[str]:
        """Fresh precomputed ids minus read items, or [] on miss / stale / error."""
        try:
            generated_at = await self._precomputed.get_generated_at(user_id)
            if not self._is_fresh(generated_at, now):
                logger.info(
                    "[serve] PRECOMPUTED_MISS user_id=%s generated_at=%s", user_id, generated_at
                )
                return []
            rows = await self._precomputed.list_precomputed(user_id, self._config.fetch_limit)
            read = await self._read_items.list_read_item_ids(user_id)
        except Exception as e:
            logger.warning(
                "[serve] PRECOMPUTED_UNAVAILABLE user_id=%s error=%s; generating on demand",
                user_id, e,
            )
            return []
        ids = [r.item_id for r in rows if r.item_id not in read][:limit]
        logger.info(
            "[serve] PRECOMPUTED_HIT user_id=%s rows=%s returned=%s", user_id, len(rows), len(ids)
        )
        return ids

    async def _write_back(
        self, user_id: str, candidates: Sequence[ScoredCandidate], started_at: datetime
    ) -> None:
        """Replace the cached set and mark the user regenerated. Failures are logged only."""
        generated_at = self._clock()
        try:
            await self._precomputed.replace_precomputed(user_id, candidates, generated_at)
        except Exception as e:
            logger.warning("[serve] CACHE_WRITE_FAILED user_id=%s error=%s", user_id, e)
            return
        try:
            await self._status.mark_regenerated(user_id, started_at, generated_at)
        except Exception as e:
            logger.warning("[serve] MARK_REGENERATED_FAILED user_id=%s error=%s", user_id, e)

    async def _hydrate(self, ids: List[str]) -> List[ItemRecord]:
        """Records in ids order; ids without a record are dropped."""
        if not ids:
            return []
        try:
            records = await self._items.fetch_records(ids)
        except Exception as e:
            raise RecommendationError(f"fetching item records: {e}") from e
        by_id = {r.item_id: r for r in records}
        missing = [i for i in ids if i not in by_id]
        if missing:
            logger.info("[serve] RECORDS_MISSING count=%s ids=%s", len(missing), missing[:10])
        return [by_id[i] for i in ids if i in by_id]

    async def recommend_for(self, user_id: str, limit: int) -> List[ItemRecord]:
        """
        Up to limit recommended items for user_id, best first.

        Raises SignalFetchError / RecommendationError when on-demand generation
        or hydration fails; cache write-back problems never surface.
        """
        if limit <= 0:
            return []
        started_at = self._clock()
        ids = await self._try_precomputed(user_id, limit, started_at)
        if not ids:
            candidates = await self._generator.generate(user_id, limit)
            if candidates:
                await self._write_back(user_id, candidates, started_at)
            ids = [c.item_id for c in candidates]
        return await self._hydrate(ids)
