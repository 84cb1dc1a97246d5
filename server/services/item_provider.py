"""
Item Provider abstraction.

Hydrates scored item ids into full ItemRecords for callers.
Implementations: in-memory / JSON file, HTTP catalog API, Firestore (cloud).
Swap via ITEMS_SOURCE.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Union

import requests

from recommender.models import ItemRecord

logger = logging.getLogger(__name__)


def to_item_record(d: Dict) -> ItemRecord:
    """Build an ItemRecord from a catalog dict; "id" is accepted for item_id."""
    d = dict(d)
    if "item_id" not in d and "id" in d:
        d["item_id"] = d.pop("id")
    authors = d.get("authors")
    if isinstance(authors, str):
        d["authors"] = [a.strip() for a in authors.split(",") if a.strip()]
    return ItemRecord.model_validate(d)


class ItemProvider(Protocol):
    """Protocol for item catalog access. Implement for JSON, HTTP or Firestore."""

    async def fetch_records(self, item_ids: List[str]) -> List[ItemRecord]:
        """
        Return records for the ids that exist, in any order.
        Missing ids are omitted rather than raising.
        """
        ...


class InMemoryItemProvider:
    """
    Item provider over records already in memory.
    Used for local testing and as the base for JsonItemProvider.
    """

    def __init__(self, records: Iterable[Union[ItemRecord, Dict]] = ()):
        self._records: Dict[str, ItemRecord] = {}
        for r in records:
            record = r if isinstance(r, ItemRecord) else to_item_record(r)
            self._records[record.item_id] = record

    def __len__(self) -> int:
        return len(self._records)

    def vectors(self) -> Dict[str, List[float]]:
        """item_id -> vector for records carrying a "vector" field."""
        out = {}
        for item_id, record in self._records.items():
            vector = getattr(record, "vector", None)
            if vector:
                out[item_id] = [float(v) for v in vector]
        return out

    async def fetch_records(self, item_ids: List[str]) -> List[ItemRecord]:
        return [self._records[i] for i in item_ids if i in self._records]


class JsonItemProvider(InMemoryItemProvider):
    """
    Item provider backed by a JSON file (list of item objects).
    Used when ITEMS_SOURCE=json; path comes from ITEMS_JSON_PATH.
    """

    def __init__(self, items_path: Union[Path, str]):
        self._items_path = Path(items_path)
        if not self._items_path.exists():
            raise FileNotFoundError(f"Items JSON not found: {self._items_path}")
        with open(self._items_path) as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("items", [])
        super().__init__(data)
        logger.info("[items] JSON_LOADED path=%s count=%s", self._items_path, len(self))


class HttpItemProvider:
    """
    Item provider backed by a catalog HTTP API.

    GET {base_url}/items?ids=a,b,c returning {"items": [...]} or a bare list.
    Requests run in a worker thread so the event loop is not blocked.
    """

    def __init__(self, base_url: str, timeout: float = 10.0, batch_size: int = 100):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._batch_size = batch_size
        self._session = requests.Session()

    def _get_batch(self, item_ids: List[str]) -> List[Dict]:
        r = self._session.get(
            f"{self._base_url}/items",
            params={"ids": ",".join(item_ids)},
            timeout=self._timeout,
        )
        r.raise_for_status()
        data = r.json()
        if isinstance(data, dict):
            return data.get("items", [])
        return data

    async def fetch_records(self, item_ids: List[str]) -> List[ItemRecord]:
        out: List[ItemRecord] = []
        for i in range(0, len(item_ids), self._batch_size):
            batch = item_ids[i : i + self._batch_size]
            rows = await asyncio.to_thread(self._get_batch, batch)
            out.extend(to_item_record(d) for d in rows)
        return out


class FirestoreItemProvider:
    """
    Item provider backed by a Firestore collection (document id = item id).
    Used when ITEMS_SOURCE=firestore; shares the Firebase app with the user data store.
    """

    def __init__(
        self,
        project_id: Optional[str] = None,
        credentials_path: Optional[Union[Path, str]] = None,
        *,
        collection: str = "items",
        client: Any = None,
    ):
        if client is None:
            from .firestore_client import get_async_client

            client = get_async_client(project_id, credentials_path)
        self._db = client
        self._collection = collection

    async def fetch_records(self, item_ids: List[str]) -> List[ItemRecord]:
        if not item_ids:
            return []
        coll = self._db.collection(self._collection)
        refs = [coll.document(i) for i in item_ids]
        out = []
        async for snap in self._db.get_all(refs):
            if not snap.exists:
                continue
            d = snap.to_dict() or {}
            d["item_id"] = snap.id
            d.pop("vector", None)
            out.append(to_item_record(d))
        return out
