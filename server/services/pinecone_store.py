"""
Pinecone item index: similarity search and item vector fetch.

Requires pinecone[asyncio] (pip install 'pinecone[asyncio]'). Items are stored as
one or more chunk vectors with ids "<item_id>_<n>" and metadata {"item_id": ...}.
An item's vector is the mean of its chunk vectors; search results are
de-duplicated per item.
"""

import logging
import os
from typing import Dict, List, Optional, Set

from pinecone import Pinecone

from recommender.models import SimilarItem
from recommender.utils.vectors import vector_mean

logger = logging.getLogger(__name__)

PINECONE_ASYNC_REQUIRED_MSG = (
    "Pinecone asyncio support is required. Install with: pip install 'pinecone[asyncio]'"
)

# Metadata field holding the owning item id of each chunk vector.
ITEM_ID_FIELD = "item_id"
# Chunk ids listed per item when building its vector.
MAX_CHUNKS_PER_ITEM = 100
# Pinecone caps top_k per query.
MAX_TOP_K = 10000
UPSERT_BATCH_SIZE = 100


def chunk_vector_id(item_id: str, chunk: int) -> str:
    return f"{item_id}_{chunk}"


def item_id_from_chunk(vector_id: str, metadata: Optional[dict] = None) -> str:
    """Owning item id: metadata first, else the part before the last underscore."""
    if metadata and metadata.get(ITEM_ID_FIELD):
        return str(metadata[ITEM_ID_FIELD])
    if "_" not in vector_id:
        raise ValueError(f"unexpected Pinecone vector id format: {vector_id!r}")
    return vector_id.rsplit("_", 1)[0]


class PineconeItemIndex:
    """
    Item vectors in Pinecone, keyed by item id for catalog lookup.

    Uses PINECONE_API_KEY from env. Index name from PINECONE_INDEX_NAME or default.
    """

    DEFAULT_INDEX_NAME = "recommender-items"

    def __init__(
        self,
        api_key: Optional[str] = None,
        index_name: Optional[str] = None,
        namespace: str = "",
    ):
        self._api_key = (api_key or os.environ.get("PINECONE_API_KEY") or "").strip()
        if not self._api_key:
            raise ValueError("PINECONE_API_KEY is required for PineconeItemIndex")
        self._index_name = (
            index_name or os.environ.get("PINECONE_INDEX_NAME") or self.DEFAULT_INDEX_NAME
        ).strip()
        self._namespace = namespace
        self._client: Optional[Pinecone] = None
        self._index_host: Optional[str] = None

    @property
    def client(self) -> Pinecone:
        if self._client is None:
            self._client = Pinecone(api_key=self._api_key)
        return self._client

    def _get_index_host(self) -> str:
        """Resolve index host for IndexAsyncio (cached)."""
        if self._index_host is not None:
            return self._index_host
        try:
            desc = self.client.describe_index(self._index_name)
        except Exception as e:
            raise RuntimeError(
                f"Could not resolve Pinecone index host for {self._index_name!r}: {e}"
            ) from e
        host = getattr(desc, "host", None) or (desc.get("host") if isinstance(desc, dict) else None)
        if not host:
            raise RuntimeError(
                f"Pinecone index {self._index_name!r} has no host; check index exists and API key."
            )
        self._index_host = host
        logger.info("[pinecone] INDEX_HOST_RESOLVED index=%s host=%s", self._index_name, host)
        return host

    def _async_index(self):
        try:
            return self.client.IndexAsyncio(host=self._get_index_host())
        except Exception as e:
            err_msg = str(e).lower()
            if "asyncio" in err_msg or "additional dependencies" in err_msg:
                raise ImportError(PINECONE_ASYNC_REQUIRED_MSG) from e
            raise

    async def fetch_item_vector(self, item_id: str) -> Optional[List[float]]:
        """Mean of the item's chunk vectors, or None when the item has none."""
        async with self._async_index() as idx:
            listed = await idx.list_paginated(
                prefix=f"{item_id}_",
                limit=MAX_CHUNKS_PER_ITEM,
                namespace=self._namespace,
            )
            chunk_ids = [v.id for v in (listed.vectors or [])]
            if not chunk_ids:
                return None
            fetched = await idx.fetch(ids=chunk_ids, namespace=self._namespace)
        values = [
            list(record.values)
            for record in (fetched.vectors or {}).values()
            if record is not None and record.values
        ]
        if not values:
            return None
        return vector_mean(values)

    async def search(
        self,
        exclude_ids: Set[str],
        query_vector: List[float],
        limit: int,
    ) -> List[SimilarItem]:
        """
        Query by vector until limit distinct items are found or a round adds none.

        Each round filters out excluded and already-found items by metadata ($nin),
        so items with many chunks do not crowd out the rest.
        """
        if limit <= 0 or not query_vector:
            return []
        top_k = min(max(limit, 10), MAX_TOP_K)
        results: List[SimilarItem] = []
        seen: Set[str] = set()
        async with self._async_index() as idx:
            while len(results) < limit:
                blocked = sorted(set(exclude_ids) | seen)
                query_filter = {ITEM_ID_FIELD: {"$nin": blocked}} if blocked else None
                resp = await idx.query(
                    vector=list(query_vector),
                    top_k=top_k,
                    namespace=self._namespace,
                    filter=query_filter,
                    include_values=False,
                    include_metadata=True,
                )
                found_new = False
                for match in resp.matches or []:
                    item_id = item_id_from_chunk(match.id, match.metadata)
                    if item_id in seen or item_id in exclude_ids:
                        continue
                    seen.add(item_id)
                    found_new = True
                    if len(results) < limit:
                        results.append(SimilarItem(item_id=item_id, score=float(match.score)))
                if not found_new:
                    break
        logger.debug(
            "[pinecone] SEARCH_DONE limit=%s excluded=%s returned=%s",
            limit, len(exclude_ids), len(results),
        )
        return results

    async def upsert_item_vectors(self, vectors: Dict[str, List[float]]) -> int:
        """Write each item as a single chunk "<item_id>_0"."""
        if not vectors:
            return 0
        records = [
            {
                "id": chunk_vector_id(item_id, 0),
                "values": list(values),
                "metadata": {ITEM_ID_FIELD: item_id},
            }
            for item_id, values in vectors.items()
        ]
        async with self._async_index() as idx:
            for i in range(0, len(records), UPSERT_BATCH_SIZE):
                await idx.upsert(
                    vectors=records[i : i + UPSERT_BATCH_SIZE],
                    namespace=self._namespace,
                )
        logger.info(
            "[pinecone] UPSERTED count=%s index=%s namespace=%r",
            len(records), self._index_name, self._namespace,
        )
        return len(records)
