"""
Similarity search abstraction.

Nearest-neighbour lookup over item vectors, plus per-item vector fetch.
Implementations: in-memory (local testing), Pinecone and Qdrant (cloud).
Swap via VECTOR_BACKEND.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Protocol, Set, Tuple

import numpy as np

from recommender.errors import VectorDimensionError
from recommender.models import SimilarItem

logger = logging.getLogger(__name__)


class SimilaritySearch(Protocol):
    """Protocol for nearest-neighbour search. Implement for in-memory, Pinecone or Qdrant."""

    async def search(
        self,
        exclude_ids: Set[str],
        query_vector: List[float],
        limit: int,
    ) -> List[SimilarItem]:
        """
        Return up to limit items most similar to query_vector, best first.
        Items in exclude_ids are never returned; each item appears at most once.
        """
        ...


class ItemVectorFetcher(Protocol):
    async def fetch_item_vector(self, item_id: str) -> Optional[List[float]]:
        """Return the item's vector, or None when the item has no vector."""
        ...


class ItemVectorWriter(Protocol):
    async def upsert_item_vectors(self, vectors: Dict[str, List[float]]) -> int:
        """Insert or replace item vectors. Returns the number written."""
        ...


class InMemoryItemIndex:
    """
    Item index held in memory, scored by cosine similarity.
    Used for local testing, evaluation and VECTOR_BACKEND=memory.
    """

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None):
        self._lock = threading.Lock()
        self._ids: List[str] = []
        self._matrix: Optional[np.ndarray] = None
        self._vectors: Dict[str, List[float]] = {}
        if vectors:
            self._write(vectors.items())

    def _write(self, items: Iterable[Tuple[str, List[float]]]) -> int:
        written = 0
        with self._lock:
            for item_id, vector in items:
                if self._vectors:
                    dim = len(next(iter(self._vectors.values())))
                    if len(vector) != dim:
                        raise VectorDimensionError(dim, len(vector))
                self._vectors[item_id] = [float(v) for v in vector]
                written += 1
            self._ids = list(self._vectors)
            if self._ids:
                m = np.asarray([self._vectors[i] for i in self._ids], dtype=np.float64)
                norms = np.linalg.norm(m, axis=1, keepdims=True)
                norms[norms == 0] = 1.0
                self._matrix = m / norms
            else:
                self._matrix = None
        return written

    def __len__(self) -> int:
        return len(self._vectors)

    async def upsert_item_vectors(self, vectors: Dict[str, List[float]]) -> int:
        return self._write(vectors.items())

    async def fetch_item_vector(self, item_id: str) -> Optional[List[float]]:
        vector = self._vectors.get(item_id)
        return list(vector) if vector is not None else None

    async def search(
        self,
        exclude_ids: Set[str],
        query_vector: List[float],
        limit: int,
    ) -> List[SimilarItem]:
        if limit <= 0 or self._matrix is None or not query_vector:
            return []
        if len(query_vector) != self._matrix.shape[1]:
            raise VectorDimensionError(self._matrix.shape[1], len(query_vector))
        q = np.asarray(query_vector, dtype=np.float64)
        q_norm = np.linalg.norm(q)
        if q_norm == 0:
            return []
        scores = self._matrix @ (q / q_norm)
        # stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")
        out: List[SimilarItem] = []
        for idx in order:
            item_id = self._ids[idx]
            if item_id in exclude_ids:
                continue
            out.append(SimilarItem(item_id=item_id, score=float(scores[idx])))
            if len(out) >= limit:
                break
        return out


async def find_similar_items(index, item_id: str, limit: int) -> List[SimilarItem]:
    """
    Items most similar to item_id, excluding the item itself.

    index must implement both ItemVectorFetcher and SimilaritySearch.
    An item with no vector has no similar items.
    """
    vector = await index.fetch_item_vector(item_id)
    if vector is None:
        logger.info("[similar] ITEM_VECTOR_MISSING item_id=%s", item_id)
        return []
    return await index.search({item_id}, vector, limit)
