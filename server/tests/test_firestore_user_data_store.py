"""
Firestore store replacement tests against a small in-memory stand-in for the
async client (collections, document refs, batched writes).
"""

import asyncio
from datetime import datetime, timezone

import pytest

from recommender.models import ScoredCandidate
from server.services.firestore_user_data_store import (
    FIRESTORE_BATCH_LIMIT,
    FirestoreUserDataStore,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeSnapshot:
    def __init__(self, ref, data):
        self.reference = ref
        self.id = ref.id
        self._data = data

    def to_dict(self):
        return dict(self._data)


class FakeDocument:
    def __init__(self, db, path):
        self._db = db
        self.path = path
        self.id = path.rsplit("/", 1)[-1]

    def collection(self, name):
        return FakeCollection(self._db, f"{self.path}/{name}")


class FakeCollection:
    def __init__(self, db, path):
        self._db = db
        self.path = path
        self.id = path.rsplit("/", 1)[-1]

    def document(self, doc_id):
        return FakeDocument(self._db, f"{self.path}/{doc_id}")

    async def stream(self):
        prefix = self.path + "/"
        for path in sorted(self._db.docs):
            rest = path[len(prefix):]
            if path.startswith(prefix) and "/" not in rest:
                yield FakeSnapshot(FakeDocument(self._db, path), self._db.docs[path])


class FakeBatch:
    def __init__(self, db):
        self._db = db
        self._ops = []

    def set(self, ref, data):
        self._ops.append((ref.path, data))

    def delete(self, ref):
        self._ops.append((ref.path, None))

    async def commit(self):
        self._db.commits += 1
        for path, data in self._ops:
            if data is None:
                self._db.docs.pop(path, None)
            else:
                self._db.docs[path] = data


class FakeClient:
    def __init__(self):
        self.docs = {}
        self.commits = 0

    def collection(self, name):
        return FakeCollection(self, name)

    def batch(self):
        return FakeBatch(self)


def run(coro):
    return asyncio.run(coro)


def candidates(n, prefix="i"):
    return [ScoredCandidate(item_id=f"{prefix}{k}", score=1.0 - k / 1000, source="temporal") for k in range(n)]


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def fs_store(client):
    return FirestoreUserDataStore(client=client)


def precomputed_paths(client, user_id="u"):
    prefix = f"users/{user_id}/precomputed_recommendations/"
    return sorted(p for p in client.docs if p.startswith(prefix))


class TestReplacePrecomputed:
    def test_shorter_set_replaces_longer_in_one_commit(self, client, fs_store):
        run(fs_store.replace_precomputed("u", candidates(5, "old"), NOW))
        run(fs_store.replace_precomputed("u", candidates(3, "new"), NOW))
        assert client.commits == 2
        paths = precomputed_paths(client)
        assert [p.rsplit("/", 1)[-1] for p in paths] == ["000000", "000001", "000002"]
        assert [client.docs[p]["item_id"] for p in paths] == ["new0", "new1", "new2"]

    def test_empty_replacement_deletes_all(self, client, fs_store):
        run(fs_store.replace_precomputed("u", candidates(4), NOW))
        run(fs_store.replace_precomputed("u", [], NOW))
        assert precomputed_paths(client) == []

    def test_oversized_replacement_is_refused_untouched(self, client, fs_store):
        run(fs_store.replace_precomputed("u", candidates(3, "old"), NOW))
        with pytest.raises(ValueError):
            run(fs_store.replace_precomputed("u", candidates(FIRESTORE_BATCH_LIMIT + 1), NOW))
        assert client.commits == 1
        assert [client.docs[p]["item_id"] for p in precomputed_paths(client)] == [
            "old0", "old1", "old2"
        ]

    def test_full_batch_fits(self, client, fs_store):
        run(fs_store.replace_precomputed("u", candidates(FIRESTORE_BATCH_LIMIT), NOW))
        assert len(precomputed_paths(client)) == FIRESTORE_BATCH_LIMIT
        assert client.commits == 1

    def test_other_users_untouched(self, client, fs_store):
        run(fs_store.replace_precomputed("a", candidates(2), NOW))
        run(fs_store.replace_precomputed("b", [], NOW))
        assert len(precomputed_paths(client, "a")) == 2
