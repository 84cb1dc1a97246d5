"""
User data store abstraction.

Per-user state read and written by the recommendation services: ratings with
their item vectors, read items, interest clusters, the aggregate user vector,
precomputed recommendations and regeneration status. Implementations:
in-memory (local testing, evaluation) and Firestore (production). Swap via
DATA_SOURCE.
"""

import threading
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Sequence, Set, Tuple

from recommender.models import (
    AggregateVector,
    InterestCluster,
    PrecomputedRecommendation,
    RatedItemVector,
    RatingKind,
    RegenerationStatus,
    ScoredCandidate,
)
from recommender.utils.vectors import add_vectors, subtract_vectors


class RatingStore(Protocol):
    async def get_rated_vectors(self, user_id: str, kind: RatingKind) -> List[RatedItemVector]:
        """Rated items of one kind that have a vector. Ratings stored without a vector are skipped."""
        ...

    async def set_rating(
        self,
        user_id: str,
        item_id: str,
        kind: Optional[RatingKind],
        vector: Optional[List[float]],
        rated_at: datetime,
    ) -> None:
        """Replace the user's rating of item_id. kind=None clears the rating."""
        ...

    async def get_rating(self, user_id: str, item_id: str) -> Optional[RatingKind]:
        ...

    async def record_rating(
        self,
        user_id: str,
        item_id: str,
        kind: Optional[RatingKind],
        vector: Optional[List[float]],
        rated_at: datetime,
    ) -> bool:
        """
        Write the rating and sync the aggregate vector as one atomic step.

        A positive rating with a vector counts the item once; any other rating,
        or clearing it, stops counting the item. If the aggregate update fails
        nothing is written. Returns True when the aggregate changed.
        """
        ...


class ReadItemStore(Protocol):
    async def list_read_item_ids(self, user_id: str) -> Set[str]:
        ...

    async def set_read(self, user_id: str, item_id: str, read: bool = True) -> None:
        ...


class InterestClusterStore(Protocol):
    async def get_clusters(self, user_id: str) -> List[InterestCluster]:
        """Stored clusters ordered by cluster_index."""
        ...

    async def replace_clusters(self, user_id: str, clusters: Sequence[InterestCluster]) -> None:
        """Delete all of the user's clusters and insert these, as one write."""
        ...

    async def delete_clusters(self, user_id: str) -> None:
        ...


class AggregateVectorStore(Protocol):
    async def add_contribution(self, user_id: str, item_id: str, vector: List[float]) -> bool:
        """
        Add item_id's vector to the user's aggregate unless already counted.
        Returns True when added, False when the contribution flag was already set.
        Atomic per (user, item); VectorDimensionError leaves state untouched.
        """
        ...

    async def remove_contribution(
        self, user_id: str, item_id: str, vector: Optional[List[float]]
    ) -> bool:
        """
        Remove item_id's contribution if counted. vector=None clears the flag and
        count without touching the sum. Returns True when a contribution was removed.
        """
        ...

    async def get_user_vector(self, user_id: str) -> Optional[AggregateVector]:
        ...


class PrecomputedRecommendationStore(Protocol):
    async def get_generated_at(self, user_id: str) -> Optional[datetime]:
        """Generation time of the user's precomputed set, or None when there is none."""
        ...

    async def list_precomputed(self, user_id: str, limit: int) -> List[PrecomputedRecommendation]:
        """Up to limit rows ordered by position."""
        ...

    async def replace_precomputed(
        self,
        user_id: str,
        candidates: Sequence[ScoredCandidate],
        generated_at: datetime,
    ) -> None:
        """Delete the user's set and insert candidates at positions 0..n-1. Empty deletes only."""
        ...


class RegenerationStatusStore(Protocol):
    async def mark_needs_regeneration(self, user_id: str, signal_at: datetime) -> None:
        ...

    async def mark_regenerated(
        self, user_id: str, started_at: datetime, generated_at: datetime
    ) -> None:
        """
        Record a finished regeneration. needs_regeneration is cleared only when no
        signal arrived after started_at.
        """
        ...

    async def list_users_needing_regeneration(self) -> List[str]:
        ...

    async def get_status(self, user_id: str) -> Optional[RegenerationStatus]:
        ...


class UserDataStore(
    RatingStore,
    ReadItemStore,
    InterestClusterStore,
    AggregateVectorStore,
    PrecomputedRecommendationStore,
    RegenerationStatusStore,
    Protocol,
):
    """All per-user stores behind one backend."""


def counted_aggregate(
    user_id: str, current: Optional[AggregateVector], vector: List[float]
) -> AggregateVector:
    """Aggregate after adding one item's vector. Raises VectorDimensionError on mismatch."""
    if current is None or not current.vector_sum:
        new_sum = add_vectors([0.0] * len(vector), vector)
    else:
        new_sum = add_vectors(current.vector_sum, vector)
    count = current.count if current is not None else 0
    return AggregateVector(user_id=user_id, vector_sum=new_sum, count=count + 1)


def uncounted_aggregate(
    user_id: str, current: Optional[AggregateVector], vector: Optional[List[float]]
) -> AggregateVector:
    """Aggregate after removing one item. Without a vector only the count changes."""
    current = current or AggregateVector(user_id=user_id)
    new_sum = list(current.vector_sum)
    if vector is not None and new_sum:
        new_sum = subtract_vectors(new_sum, vector)
    return AggregateVector(user_id=user_id, vector_sum=new_sum, count=max(current.count - 1, 0))


def precomputed_rows(
    user_id: str, candidates: Sequence[ScoredCandidate], generated_at: datetime
) -> List[PrecomputedRecommendation]:
    """Rows for a replacement set: one shared generated_at, positions in list order."""
    return [
        PrecomputedRecommendation(
            user_id=user_id,
            item_id=c.item_id,
            score=c.score,
            source=c.source,
            position=position,
            generated_at=generated_at,
        )
        for position, c in enumerate(candidates)
    ]


def regenerated_status(
    current: Optional[RegenerationStatus],
    user_id: str,
    started_at: datetime,
    generated_at: datetime,
) -> RegenerationStatus:
    """Status after a regeneration that began at started_at."""
    status = current or RegenerationStatus(user_id=user_id)
    signal_after_start = (
        status.last_signal_at is not None and status.last_signal_at > started_at
    )
    return status.model_copy(
        update={
            "last_generated_at": generated_at,
            "needs_regeneration": status.needs_regeneration and signal_after_start,
        }
    )


class InMemoryUserDataStore:
    """
    User data held in process memory.
    Used for local testing, evaluation and DATA_SOURCE=memory.

    One lock per user guards read-modify-write; critical sections never await,
    so the store is safe across threads and event-loop tasks alike.
    """

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()
        # user -> item -> (kind, vector, rated_at)
        self._ratings: Dict[str, Dict[str, Tuple[RatingKind, Optional[List[float]], datetime]]] = {}
        self._read: Dict[str, Set[str]] = {}
        self._clusters: Dict[str, List[InterestCluster]] = {}
        self._aggregates: Dict[str, AggregateVector] = {}
        # user -> item ids whose vector is counted in the aggregate
        self._contributions: Dict[str, Set[str]] = {}
        self._precomputed: Dict[str, List[PrecomputedRecommendation]] = {}
        self._status: Dict[str, RegenerationStatus] = {}

    def _lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks[user_id]

    # --- ratings ---

    async def get_rated_vectors(self, user_id: str, kind: RatingKind) -> List[RatedItemVector]:
        with self._lock(user_id):
            ratings = dict(self._ratings.get(user_id, {}))
        return [
            RatedItemVector(item_id=item_id, vector=list(vector), kind=k, rated_at=rated_at)
            for item_id, (k, vector, rated_at) in ratings.items()
            if k == kind and vector is not None
        ]

    async def set_rating(
        self,
        user_id: str,
        item_id: str,
        kind: Optional[RatingKind],
        vector: Optional[List[float]],
        rated_at: datetime,
    ) -> None:
        with self._lock(user_id):
            self._write_rating(user_id, item_id, kind, vector, rated_at)

    def _write_rating(self, user_id, item_id, kind, vector, rated_at) -> None:
        ratings = self._ratings.setdefault(user_id, {})
        if kind is None:
            ratings.pop(item_id, None)
        else:
            ratings[item_id] = (kind, list(vector) if vector is not None else None, rated_at)

    async def record_rating(
        self,
        user_id: str,
        item_id: str,
        kind: Optional[RatingKind],
        vector: Optional[List[float]],
        rated_at: datetime,
    ) -> bool:
        counted = kind == RatingKind.POSITIVE and vector is not None
        with self._lock(user_id):
            flagged = self._contributions.setdefault(user_id, set())
            current = self._aggregates.get(user_id)
            aggregate = None
            # computed before any write so a dimension error leaves nothing behind
            if counted and item_id not in flagged:
                aggregate = counted_aggregate(user_id, current, vector)
            elif not counted and item_id in flagged:
                aggregate = uncounted_aggregate(user_id, current, vector)
            self._write_rating(user_id, item_id, kind, vector, rated_at)
            if aggregate is None:
                return False
            self._aggregates[user_id] = aggregate
            if counted:
                flagged.add(item_id)
            else:
                flagged.discard(item_id)
            return True

    async def get_rating(self, user_id: str, item_id: str) -> Optional[RatingKind]:
        with self._lock(user_id):
            entry = self._ratings.get(user_id, {}).get(item_id)
        return entry[0] if entry else None

    # --- read items ---

    async def list_read_item_ids(self, user_id: str) -> Set[str]:
        with self._lock(user_id):
            return set(self._read.get(user_id, set()))

    async def set_read(self, user_id: str, item_id: str, read: bool = True) -> None:
        with self._lock(user_id):
            items = self._read.setdefault(user_id, set())
            if read:
                items.add(item_id)
            else:
                items.discard(item_id)

    # --- interest clusters ---

    async def get_clusters(self, user_id: str) -> List[InterestCluster]:
        with self._lock(user_id):
            clusters = list(self._clusters.get(user_id, []))
        return sorted(clusters, key=lambda c: c.cluster_index)

    async def replace_clusters(self, user_id: str, clusters: Sequence[InterestCluster]) -> None:
        with self._lock(user_id):
            self._clusters[user_id] = [c.model_copy() for c in clusters]

    async def delete_clusters(self, user_id: str) -> None:
        with self._lock(user_id):
            self._clusters.pop(user_id, None)

    # --- aggregate vector ---

    async def add_contribution(self, user_id: str, item_id: str, vector: List[float]) -> bool:
        with self._lock(user_id):
            flagged = self._contributions.setdefault(user_id, set())
            if item_id in flagged:
                return False
            self._aggregates[user_id] = counted_aggregate(
                user_id, self._aggregates.get(user_id), vector
            )
            flagged.add(item_id)
            return True

    async def remove_contribution(
        self, user_id: str, item_id: str, vector: Optional[List[float]]
    ) -> bool:
        with self._lock(user_id):
            flagged = self._contributions.setdefault(user_id, set())
            if item_id not in flagged:
                return False
            self._aggregates[user_id] = uncounted_aggregate(
                user_id, self._aggregates.get(user_id), vector
            )
            flagged.discard(item_id)
            return True

    async def get_user_vector(self, user_id: str) -> Optional[AggregateVector]:
        with self._lock(user_id):
            current = self._aggregates.get(user_id)
            return current.model_copy() if current is not None else None

    def has_contribution(self, user_id: str, item_id: str) -> bool:
        with self._lock(user_id):
            return item_id in self._contributions.get(user_id, set())

    # --- precomputed recommendations ---

    async def get_generated_at(self, user_id: str) -> Optional[datetime]:
        with self._lock(user_id):
            rows = self._precomputed.get(user_id)
            return rows[0].generated_at if rows else None

    async def list_precomputed(self, user_id: str, limit: int) -> List[PrecomputedRecommendation]:
        with self._lock(user_id):
            rows = list(self._precomputed.get(user_id, []))
        rows.sort(key=lambda r: r.position)
        return rows[: max(limit, 0)]

    async def replace_precomputed(
        self,
        user_id: str,
        candidates: Sequence[ScoredCandidate],
        generated_at: datetime,
    ) -> None:
        rows = precomputed_rows(user_id, candidates, generated_at)
        with self._lock(user_id):
            if rows:
                self._precomputed[user_id] = rows
            else:
                self._precomputed.pop(user_id, None)

    # --- regeneration status ---

    async def mark_needs_regeneration(self, user_id: str, signal_at: datetime) -> None:
        with self._lock(user_id):
            status = self._status.get(user_id) or RegenerationStatus(user_id=user_id)
            self._status[user_id] = status.model_copy(
                update={"needs_regeneration": True, "last_signal_at": signal_at}
            )

    async def mark_regenerated(
        self, user_id: str, started_at: datetime, generated_at: datetime
    ) -> None:
        with self._lock(user_id):
            self._status[user_id] = regenerated_status(
                self._status.get(user_id), user_id, started_at, generated_at
            )

    async def list_users_needing_regeneration(self) -> List[str]:
        with self._locks_guard:
            statuses = list(self._status.values())
        return sorted(s.user_id for s in statuses if s.needs_regeneration)

    async def get_status(self, user_id: str) -> Optional[RegenerationStatus]:
        with self._lock(user_id):
            status = self._status.get(user_id)
            return status.model_copy() if status is not None else None
