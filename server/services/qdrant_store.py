"""
Qdrant Item Index

Stores and searches item vectors in a Qdrant collection. Offers the same
interface as InMemoryItemIndex and PineconeItemIndex, so VECTOR_BACKEND can
swap between them.

Point ids are UUIDv5 of the item id (Qdrant only accepts integers or UUIDs);
the item id itself is kept in the payload and used for exclusion filters.
"""

import logging
import os
import uuid
from typing import Dict, List, Optional, Set

from qdrant_client import AsyncQdrantClient
from qdrant_client.http import models

from recommender.models import SimilarItem

logger = logging.getLogger(__name__)

ITEM_ID_FIELD = "item_id"
UPSERT_BATCH_SIZE = 100
_POINT_NAMESPACE = uuid.UUID("6f1f8d2e-4c4b-5a53-9a0e-7c5e2f1b9d10")


def point_id(item_id: str) -> str:
    """Stable Qdrant point id for an item."""
    return str(uuid.uuid5(_POINT_NAMESPACE, item_id))


class QdrantItemIndex:
    """
    Item vectors in a Qdrant collection (cosine distance).

    Usage:
        index = QdrantItemIndex(qdrant_url="http://localhost:6333", collection="items")
        hits = await index.search({"read-1"}, user_vector, limit=40)
    """

    DEFAULT_COLLECTION = "recommender_items"

    def __init__(
        self,
        qdrant_url: Optional[str] = None,
        collection: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.qdrant_url = qdrant_url or os.environ.get("QDRANT_URL", "http://localhost:6333")
        self.collection = collection or os.environ.get("QDRANT_COLLECTION") or self.DEFAULT_COLLECTION
        self.timeout = timeout
        self._client: Optional[AsyncQdrantClient] = None

    @property
    def client(self) -> AsyncQdrantClient:
        if self._client is None:
            self._client = AsyncQdrantClient(url=self.qdrant_url, timeout=int(self.timeout))
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def fetch_item_vector(self, item_id: str) -> Optional[List[float]]:
        records = await self.client.retrieve(
            collection_name=self.collection,
            ids=[point_id(item_id)],
            with_vectors=True,
            with_payload=False,
        )
        if not records or records[0].vector is None:
            return None
        return [float(v) for v in records[0].vector]

    async def search(
        self,
        exclude_ids: Set[str],
        query_vector: List[float],
        limit: int,
    ) -> List[SimilarItem]:
        if limit <= 0 or not query_vector:
            return []
        query_filter = None
        if exclude_ids:
            query_filter = models.Filter(
                must_not=[
                    models.FieldCondition(
                        key=ITEM_ID_FIELD,
                        match=models.MatchAny(any=sorted(exclude_ids)),
                    )
                ]
            )
        response = await self.client.query_points(
            collection_name=self.collection,
            query=list(query_vector),
            query_filter=query_filter,
            limit=limit,
            with_payload=True,
        )
        out: List[SimilarItem] = []
        for point in response.points:
            item_id = (point.payload or {}).get(ITEM_ID_FIELD)
            if item_id is None:
                logger.warning("[qdrant] POINT_WITHOUT_ITEM_ID point_id=%s", point.id)
                continue
            out.append(SimilarItem(item_id=str(item_id), score=float(point.score)))
        return out

    async def ensure_collection(self, dimension: int) -> None:
        """Create the collection (cosine) if it does not exist."""
        if await self.client.collection_exists(self.collection):
            return
        await self.client.create_collection(
            collection_name=self.collection,
            vectors_config=models.VectorParams(size=dimension, distance=models.Distance.COSINE),
        )
        await self.client.create_payload_index(
            collection_name=self.collection,
            field_name=ITEM_ID_FIELD,
            field_schema=models.PayloadSchemaType.KEYWORD,
        )
        logger.info("[qdrant] COLLECTION_CREATED name=%s dimension=%s", self.collection, dimension)

    async def upsert_item_vectors(self, vectors: Dict[str, List[float]]) -> int:
        if not vectors:
            return 0
        dimension = len(next(iter(vectors.values())))
        await self.ensure_collection(dimension)
        item_ids = list(vectors)
        for i in range(0, len(item_ids), UPSERT_BATCH_SIZE):
            points = [
                models.PointStruct(
                    id=point_id(item_id),
                    vector=list(vectors[item_id]),
                    payload={ITEM_ID_FIELD: item_id},
                )
                for item_id in item_ids[i : i + UPSERT_BATCH_SIZE]
            ]
            await self.client.upsert(collection_name=self.collection, points=points)
        logger.info("[qdrant] UPSERTED count=%s collection=%s", len(item_ids), self.collection)
        return len(item_ids)
