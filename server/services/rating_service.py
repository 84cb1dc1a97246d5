"""
Rating service: record ratings and reads, keep the aggregate user vector in sync.

A thumbs-up adds the item's vector to the user's aggregate (once); anything
else removes it. Every rating change flags the user for regeneration so the
batch job rebuilds their clusters and precomputed recommendations.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from recommender.models import RatingKind

from .errors import RecommendationError
from .similarity_search import ItemVectorFetcher
from .user_data_store import (
    AggregateVectorStore,
    RatingStore,
    ReadItemStore,
    RegenerationStatusStore,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def rating_kind(thumbs_up: bool, thumbs_down: bool) -> Optional[RatingKind]:
    """Map the two rating toggles to a RatingKind; neither means cleared."""
    if thumbs_up and thumbs_down:
        raise ValueError("an item cannot be rated both thumbs up and thumbs down")
    if thumbs_up:
        return RatingKind.POSITIVE
    if thumbs_down:
        return RatingKind.NEGATIVE
    return None


class RatingService:
    def __init__(
        self,
        ratings: RatingStore,
        aggregates: AggregateVectorStore,
        read_items: ReadItemStore,
        status: RegenerationStatusStore,
        vectors: ItemVectorFetcher,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._ratings = ratings
        self._aggregates = aggregates
        self._read_items = read_items
        self._status = status
        self._vectors = vectors
        self._clock = clock

    async def _fetch_vector(self, item_id: str) -> Optional[List[float]]:
        try:
            return await self._vectors.fetch_item_vector(item_id)
        except Exception as e:
            logger.warning("[rating] ITEM_VECTOR_UNAVAILABLE item_id=%s error=%s", item_id, e)
            return None

    async def set_item_rating(
        self,
        user_id: str,
        item_id: str,
        thumbs_up: bool = False,
        thumbs_down: bool = False,
    ) -> Optional[RatingKind]:
        """
        Set (or clear) the user's rating of item_id and sync the aggregate vector.

        Rating and aggregate change together or not at all; the user is flagged
        for regeneration only after they do. The rating is stored even when the
        item has no vector; such a rating just carries no signal. Returns the
        stored kind (None when cleared).
        """
        kind = rating_kind(thumbs_up, thumbs_down)
        vector = await self._fetch_vector(item_id)
        now = self._clock()
        try:
            await self._ratings.record_rating(user_id, item_id, kind, vector, now)
        except ValueError:
            raise
        except Exception as e:
            raise RecommendationError(f"setting rating for {user_id!r}/{item_id!r}: {e}") from e

        try:
            await self._status.mark_needs_regeneration(user_id, now)
        except Exception as e:
            logger.warning("[rating] MARK_NEEDS_REGENERATION_FAILED user_id=%s error=%s", user_id, e)
        logger.info(
            "[rating] SET user_id=%s item_id=%s kind=%s has_vector=%s",
            user_id, item_id, kind.value if kind else None, vector is not None,
        )
        return kind

    async def add_item_to_user_vector(self, user_id: str, item_id: str) -> bool:
        """Count item_id in the user's aggregate vector. False when skipped or already counted."""
        try:
            vector = await self._vectors.fetch_item_vector(item_id)
        except Exception as e:
            logger.warning("[rating] ADD_SKIPPED item_id=%s error=%s", item_id, e)
            return False
        if vector is None:
            logger.info("[rating] ADD_SKIPPED_NO_VECTOR user_id=%s item_id=%s", user_id, item_id)
            return False
        try:
            return await self._aggregates.add_contribution(user_id, item_id, vector)
        except ValueError:
            raise
        except Exception as e:
            raise RecommendationError(f"adding {item_id!r} to user vector: {e}") from e

    async def remove_item_from_user_vector(self, user_id: str, item_id: str) -> bool:
        """
        Stop counting item_id in the user's aggregate vector.
        Without a vector only the flag and count change.
        """
        try:
            vector = await self._vectors.fetch_item_vector(item_id)
        except Exception as e:
            logger.warning("[rating] REMOVE_SKIPPED item_id=%s error=%s", item_id, e)
            return False
        try:
            return await self._aggregates.remove_contribution(user_id, item_id, vector)
        except ValueError:
            raise
        except Exception as e:
            raise RecommendationError(f"removing {item_id!r} from user vector: {e}") from e

    async def mark_item_read(self, user_id: str, item_id: str, read: bool = True) -> None:
        await self._read_items.set_read(user_id, item_id, read)
