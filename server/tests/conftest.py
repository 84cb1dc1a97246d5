"""
Shared fixtures for server tests: fixed clock, in-memory stores, scripted search.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Set

import pytest

from recommender.models import RatingKind, SimilarItem
from server.services import InMemoryUserDataStore

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class ScriptedSearch:
    """
    SimilaritySearch fake.

    respond(vector, exclude_ids, limit) decides the hits; by default every query
    returns `hits`. Calls are recorded as (exclude_ids, vector, limit).
    """

    def __init__(
        self,
        hits: Optional[List[SimilarItem]] = None,
        respond: Optional[Callable[[List[float], Set[str], int], List[SimilarItem]]] = None,
    ):
        self.hits = hits or []
        self.respond = respond
        self.calls: List[tuple] = []

    async def search(self, exclude_ids: Set[str], query_vector: List[float], limit: int):
        self.calls.append((set(exclude_ids), list(query_vector), limit))
        if self.respond is not None:
            return self.respond(list(query_vector), set(exclude_ids), limit)
        return [h for h in self.hits if h.item_id not in exclude_ids][:limit]


class StaticVectors:
    """ItemVectorFetcher fake over a dict; ids in `failing` raise."""

    def __init__(self, vectors: Dict[str, List[float]], failing: Set[str] = frozenset()):
        self.vectors = vectors
        self.failing = set(failing)

    async def fetch_item_vector(self, item_id: str):
        if item_id in self.failing:
            raise ConnectionError(f"vector backend down for {item_id}")
        return self.vectors.get(item_id)


def hits(*pairs) -> List[SimilarItem]:
    return [SimilarItem(item_id=i, score=s) for i, s in pairs]


async def rate(store, user_id: str, item_id: str, vector, kind=RatingKind.POSITIVE, at=NOW):
    await store.set_rating(user_id, item_id, kind, vector, at)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store() -> InMemoryUserDataStore:
    return InMemoryUserDataStore()
