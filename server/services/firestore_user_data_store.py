"""
Firestore user data store.

Used when DATA_SOURCE=firebase. Document layout:

    users/{user_id}/ratings/{item_id}               kind, vector, rated_at
    users/{user_id}/read_items/{item_id}            read_at
    users/{user_id}/vector_contributions/{item_id}  added_at (the contribution flag)
    users/{user_id}/interest_clusters/{index}       centroid, member_count, updated_at
    users/{user_id}/precomputed_recommendations/{position}
    user_vectors/{user_id}                          vector_sum, count
    recommendation_status/{user_id}                 needs_regeneration, last_* timestamps

Contribution add/remove and regeneration marking run in Firestore transactions
(retried by the client on contention). Cluster and recommendation replacement
is a single batched write; a replacement that would not fit one batch is refused.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Union

from google.cloud.firestore import async_transactional

from recommender.models import (
    AggregateVector,
    InterestCluster,
    PrecomputedRecommendation,
    RatedItemVector,
    RatingKind,
    RegenerationStatus,
    ScoredCandidate,
)

from .firestore_client import get_async_client
from .user_data_store import (
    counted_aggregate,
    precomputed_rows,
    regenerated_status,
    uncounted_aggregate,
)

logger = logging.getLogger(__name__)

FIRESTORE_BATCH_LIMIT = 500

USERS = "users"
USER_VECTORS = "user_vectors"
RECOMMENDATION_STATUS = "recommendation_status"
RATINGS = "ratings"
READ_ITEMS = "read_items"
CONTRIBUTIONS = "vector_contributions"
CLUSTERS = "interest_clusters"
PRECOMPUTED = "precomputed_recommendations"


def _position_doc_id(position: int) -> str:
    """Zero-padded so document id order matches position order."""
    return f"{position:06d}"


class FirestoreUserDataStore:
    """
    User data store backed by Firestore (google.cloud.firestore.AsyncClient).
    Pass client directly in tests; otherwise one is built from credentials.
    """

    def __init__(
        self,
        project_id: Optional[str] = None,
        credentials_path: Optional[Union[Path, str]] = None,
        client: Any = None,
    ):
        self._db = client if client is not None else get_async_client(project_id, credentials_path)

    def _user(self, user_id: str):
        return self._db.collection(USERS).document(user_id)

    def _sub(self, user_id: str, name: str):
        return self._user(user_id).collection(name)

    async def _replace_collection(self, coll, docs: List[Tuple[str, Dict]]) -> None:
        """
        Make coll hold exactly docs, in one batched write.

        Documents are overwritten by id and only ids absent from docs are
        deleted, so readers see the old set or the new one, never a mix.
        Raises ValueError when that takes more than FIRESTORE_BATCH_LIMIT writes.
        """
        keep = {doc_id for doc_id, _ in docs}
        stale = []
        async for snap in coll.stream():
            if snap.id not in keep:
                stale.append(snap.reference)
        ops = len(docs) + len(stale)
        if ops == 0:
            return
        if ops > FIRESTORE_BATCH_LIMIT:
            raise ValueError(
                f"replacing {coll.id!r} needs {ops} writes, over the batch limit of {FIRESTORE_BATCH_LIMIT}"
            )
        batch = self._db.batch()
        for ref in stale:
            batch.delete(ref)
        for doc_id, data in docs:
            batch.set(coll.document(doc_id), data)
        await batch.commit()

    # --- ratings ---

    async def get_rated_vectors(self, user_id: str, kind: RatingKind) -> List[RatedItemVector]:
        query = self._sub(user_id, RATINGS).where("kind", "==", kind.value)
        out = []
        async for snap in query.stream():
            d = snap.to_dict() or {}
            if not d.get("vector"):
                continue
            out.append(
                RatedItemVector(
                    item_id=snap.id,
                    vector=d["vector"],
                    kind=kind,
                    rated_at=d.get("rated_at") or datetime.now(timezone.utc),
                )
            )
        return out

    async def set_rating(
        self,
        user_id: str,
        item_id: str,
        kind: Optional[RatingKind],
        vector: Optional[List[float]],
        rated_at: datetime,
    ) -> None:
        ref = self._sub(user_id, RATINGS).document(item_id)
        if kind is None:
            await ref.delete()
            return
        await ref.set({"kind": kind.value, "vector": vector, "rated_at": rated_at})

    async def get_rating(self, user_id: str, item_id: str) -> Optional[RatingKind]:
        snap = await self._sub(user_id, RATINGS).document(item_id).get()
        if not snap.exists:
            return None
        kind = (snap.to_dict() or {}).get("kind")
        return RatingKind(kind) if kind else None

    # --- read items ---

    async def list_read_item_ids(self, user_id: str) -> Set[str]:
        out = set()
        async for snap in self._sub(user_id, READ_ITEMS).stream():
            out.add(snap.id)
        return out

    async def set_read(self, user_id: str, item_id: str, read: bool = True) -> None:
        ref = self._sub(user_id, READ_ITEMS).document(item_id)
        if read:
            await ref.set({"read_at": datetime.now(timezone.utc)})
        else:
            await ref.delete()

    # --- interest clusters ---

    async def get_clusters(self, user_id: str) -> List[InterestCluster]:
        out = []
        async for snap in self._sub(user_id, CLUSTERS).stream():
            out.append(InterestCluster.model_validate(snap.to_dict() or {}))
        return sorted(out, key=lambda c: c.cluster_index)

    async def replace_clusters(self, user_id: str, clusters: Sequence[InterestCluster]) -> None:
        docs = [(str(c.cluster_index), c.model_dump()) for c in clusters]
        await self._replace_collection(self._sub(user_id, CLUSTERS), docs)

    async def delete_clusters(self, user_id: str) -> None:
        await self._replace_collection(self._sub(user_id, CLUSTERS), [])

    # --- aggregate vector ---

    def _aggregate_ref(self, user_id: str):
        return self._db.collection(USER_VECTORS).document(user_id)

    @staticmethod
    def _aggregate_from(user_id: str, snap) -> Optional[AggregateVector]:
        if not snap.exists:
            return None
        d = snap.to_dict() or {}
        return AggregateVector(
            user_id=user_id, vector_sum=d.get("vector_sum") or [], count=d.get("count", 0)
        )

    @staticmethod
    def _aggregate_fields(aggregate: AggregateVector) -> Dict:
        return {"vector_sum": aggregate.vector_sum, "count": aggregate.count}

    async def add_contribution(self, user_id: str, item_id: str, vector: List[float]) -> bool:
        flag_ref = self._sub(user_id, CONTRIBUTIONS).document(item_id)
        agg_ref = self._aggregate_ref(user_id)

        @async_transactional
        async def _add(transaction) -> bool:
            flag = await flag_ref.get(transaction=transaction)
            if flag.exists:
                return False
            current = self._aggregate_from(user_id, await agg_ref.get(transaction=transaction))
            aggregate = counted_aggregate(user_id, current, vector)
            transaction.set(agg_ref, self._aggregate_fields(aggregate))
            transaction.set(flag_ref, {"added_at": datetime.now(timezone.utc)})
            return True

        return await _add(self._db.transaction())

    async def remove_contribution(
        self, user_id: str, item_id: str, vector: Optional[List[float]]
    ) -> bool:
        flag_ref = self._sub(user_id, CONTRIBUTIONS).document(item_id)
        agg_ref = self._aggregate_ref(user_id)

        @async_transactional
        async def _remove(transaction) -> bool:
            flag = await flag_ref.get(transaction=transaction)
            if not flag.exists:
                return False
            current = self._aggregate_from(user_id, await agg_ref.get(transaction=transaction))
            aggregate = uncounted_aggregate(user_id, current, vector)
            transaction.set(agg_ref, self._aggregate_fields(aggregate))
            transaction.delete(flag_ref)
            return True

        return await _remove(self._db.transaction())

    async def record_rating(
        self,
        user_id: str,
        item_id: str,
        kind: Optional[RatingKind],
        vector: Optional[List[float]],
        rated_at: datetime,
    ) -> bool:
        rating_ref = self._sub(user_id, RATINGS).document(item_id)
        flag_ref = self._sub(user_id, CONTRIBUTIONS).document(item_id)
        agg_ref = self._aggregate_ref(user_id)
        counted = kind == RatingKind.POSITIVE and vector is not None

        @async_transactional
        async def _record(transaction) -> bool:
            flag = await flag_ref.get(transaction=transaction)
            current = self._aggregate_from(user_id, await agg_ref.get(transaction=transaction))
            aggregate = None
            if counted and not flag.exists:
                aggregate = counted_aggregate(user_id, current, vector)
            elif not counted and flag.exists:
                aggregate = uncounted_aggregate(user_id, current, vector)

            if kind is None:
                transaction.delete(rating_ref)
            else:
                transaction.set(
                    rating_ref, {"kind": kind.value, "vector": vector, "rated_at": rated_at}
                )
            if aggregate is None:
                return False
            transaction.set(agg_ref, self._aggregate_fields(aggregate))
            if counted:
                transaction.set(flag_ref, {"added_at": rated_at})
            else:
                transaction.delete(flag_ref)
            return True

        return await _record(self._db.transaction())

    async def get_user_vector(self, user_id: str) -> Optional[AggregateVector]:
        return self._aggregate_from(user_id, await self._aggregate_ref(user_id).get())

    # --- precomputed recommendations ---

    async def get_generated_at(self, user_id: str) -> Optional[datetime]:
        query = self._sub(user_id, PRECOMPUTED).order_by("position").limit(1)
        async for snap in query.stream():
            return (snap.to_dict() or {}).get("generated_at")
        return None

    async def list_precomputed(self, user_id: str, limit: int) -> List[PrecomputedRecommendation]:
        if limit <= 0:
            return []
        query = self._sub(user_id, PRECOMPUTED).order_by("position").limit(limit)
        out = []
        async for snap in query.stream():
            out.append(PrecomputedRecommendation.model_validate(snap.to_dict() or {}))
        return out

    async def replace_precomputed(
        self,
        user_id: str,
        candidates: Sequence[ScoredCandidate],
        generated_at: datetime,
    ) -> None:
        rows = precomputed_rows(user_id, candidates, generated_at)
        docs = [(_position_doc_id(r.position), r.model_dump()) for r in rows]
        await self._replace_collection(self._sub(user_id, PRECOMPUTED), docs)

    # --- regeneration status ---

    async def mark_needs_regeneration(self, user_id: str, signal_at: datetime) -> None:
        ref = self._db.collection(RECOMMENDATION_STATUS).document(user_id)
        await ref.set(
            {"user_id": user_id, "needs_regeneration": True, "last_signal_at": signal_at},
            merge=True,
        )

    async def mark_regenerated(
        self, user_id: str, started_at: datetime, generated_at: datetime
    ) -> None:
        ref = self._db.collection(RECOMMENDATION_STATUS).document(user_id)

        @async_transactional
        async def _mark(transaction) -> None:
            snap = await ref.get(transaction=transaction)
            current = None
            if snap.exists:
                current = RegenerationStatus.model_validate({"user_id": user_id, **(snap.to_dict() or {})})
            status = regenerated_status(current, user_id, started_at, generated_at)
            transaction.set(ref, status.model_dump())

        await _mark(self._db.transaction())

    async def list_users_needing_regeneration(self) -> List[str]:
        query = self._db.collection(RECOMMENDATION_STATUS).where("needs_regeneration", "==", True)
        out = []
        async for snap in query.stream():
            out.append(snap.id)
        return sorted(out)

    async def get_status(self, user_id: str) -> Optional[RegenerationStatus]:
        snap = await self._db.collection(RECOMMENDATION_STATUS).document(user_id).get()
        if not snap.exists:
            return None
        return RegenerationStatus.model_validate({"user_id": user_id, **(snap.to_dict() or {})})
