"""
Rating service tests: aggregate vector sync across rating transitions,
regeneration flagging, and the standalone add/remove commands.
"""

import asyncio

import pytest

from conftest import NOW, StaticVectors
from recommender.errors import VectorDimensionError
from recommender.models import RatingKind
from server.services import (
    InMemoryUserDataStore,
    RatingService,
    RecommendationError,
    rating_kind,
)

VECTORS = {"a": [1.0, 0.0], "b": [0.0, 2.0]}


def run(coro):
    return asyncio.run(coro)


def make(store, clock, vectors=None):
    return RatingService(store, store, store, store, vectors or StaticVectors(VECTORS), clock=clock)


class TestRatingKind:
    def test_mapping(self):
        assert rating_kind(True, False) == RatingKind.POSITIVE
        assert rating_kind(False, True) == RatingKind.NEGATIVE
        assert rating_kind(False, False) is None

    def test_both_raises(self):
        with pytest.raises(ValueError):
            rating_kind(True, True)


class TestSetItemRating:
    def test_thumbs_up_adds_contribution(self, store, clock):
        service = make(store, clock)
        assert run(service.set_item_rating("u", "a", thumbs_up=True)) == RatingKind.POSITIVE
        agg = run(store.get_user_vector("u"))
        assert (agg.vector_sum, agg.count) == ([1.0, 0.0], 1)
        positives = run(store.get_rated_vectors("u", RatingKind.POSITIVE))
        assert [(p.item_id, p.rated_at) for p in positives] == [("a", NOW)]

    def test_repeat_thumbs_up_counts_once(self, store, clock):
        service = make(store, clock)
        run(service.set_item_rating("u", "a", thumbs_up=True))
        run(service.set_item_rating("u", "a", thumbs_up=True))
        assert run(store.get_user_vector("u")).count == 1

    def test_flip_to_thumbs_down_removes_contribution(self, store, clock):
        service = make(store, clock)
        run(service.set_item_rating("u", "a", thumbs_up=True))
        run(service.set_item_rating("u", "b", thumbs_up=True))
        run(service.set_item_rating("u", "a", thumbs_down=True))
        agg = run(store.get_user_vector("u"))
        assert (agg.vector_sum, agg.count) == ([0.0, 2.0], 1)
        assert run(store.get_rating("u", "a")) == RatingKind.NEGATIVE

    def test_clear_rating(self, store, clock):
        service = make(store, clock)
        run(service.set_item_rating("u", "a", thumbs_up=True))
        assert run(service.set_item_rating("u", "a")) is None
        assert run(store.get_user_vector("u")).count == 0
        assert run(store.get_rating("u", "a")) is None

    def test_marks_needs_regeneration(self, store, clock):
        run(make(store, clock).set_item_rating("u", "a", thumbs_down=True))
        status = run(store.get_status("u"))
        assert status.needs_regeneration is True
        assert status.last_signal_at == NOW

    def test_vector_fetch_failure_still_stores_rating(self, store, clock):
        service = make(store, clock, StaticVectors(VECTORS, failing={"a"}))
        run(service.set_item_rating("u", "a", thumbs_up=True))
        assert run(store.get_rating("u", "a")) == RatingKind.POSITIVE
        assert run(store.get_rated_vectors("u", RatingKind.POSITIVE)) == []
        assert run(store.get_user_vector("u")) is None

    def test_both_toggles_rejected(self, store, clock):
        with pytest.raises(ValueError):
            run(make(store, clock).set_item_rating("u", "a", thumbs_up=True, thumbs_down=True))

    def test_rejected_aggregate_update_stores_nothing(self, store, clock):
        service = make(store, clock, StaticVectors({**VECTORS, "wide": [1.0, 0.0, 0.0]}))
        run(service.set_item_rating("u", "a", thumbs_up=True))
        with pytest.raises(VectorDimensionError):
            run(service.set_item_rating("u", "wide", thumbs_up=True))
        assert run(store.get_rating("u", "wide")) is None
        assert not store.has_contribution("u", "wide")
        assert run(store.get_user_vector("u")).count == 1

    def test_store_failure_leaves_user_unflagged(self, clock):
        class Unavailable(InMemoryUserDataStore):
            async def record_rating(self, user_id, item_id, kind, vector, rated_at):
                raise ConnectionError("store down")

        store = Unavailable()
        with pytest.raises(RecommendationError):
            run(make(store, clock).set_item_rating("u", "a", thumbs_up=True))
        assert run(store.get_rating("u", "a")) is None
        assert run(store.get_status("u")) is None

    def test_status_failure_is_swallowed(self, clock):
        class NoStatus(InMemoryUserDataStore):
            async def mark_needs_regeneration(self, user_id, signal_at):
                raise ConnectionError("status down")

        store = NoStatus()
        run(make(store, clock).set_item_rating("u", "a", thumbs_up=True))
        assert run(store.get_user_vector("u")).count == 1


class TestVectorCommands:
    def test_add_and_remove(self, store, clock):
        service = make(store, clock)
        assert run(service.add_item_to_user_vector("u", "b")) is True
        assert run(service.add_item_to_user_vector("u", "b")) is False
        assert run(service.remove_item_from_user_vector("u", "b")) is True
        agg = run(store.get_user_vector("u"))
        assert (agg.vector_sum, agg.count) == ([0.0, 0.0], 0)

    def test_add_without_vector_is_skipped(self, store, clock):
        assert run(make(store, clock).add_item_to_user_vector("u", "unknown")) is False
        assert run(store.get_user_vector("u")) is None

    def test_fetch_failure_skips(self, store, clock):
        service = make(store, clock, StaticVectors(VECTORS, failing={"a"}))
        assert run(service.add_item_to_user_vector("u", "a")) is False
        assert run(service.remove_item_from_user_vector("u", "a")) is False

    def test_remove_without_vector_clears_flag(self, store, clock):
        run(store.add_contribution("u", "gone", [1.0, 1.0]))
        assert run(make(store, clock).remove_item_from_user_vector("u", "gone")) is True
        assert run(store.get_user_vector("u")).count == 0

    def test_mark_item_read(self, store, clock):
        service = make(store, clock)
        run(service.mark_item_read("u", "a"))
        assert run(store.list_read_item_ids("u")) == {"a"}
        run(service.mark_item_read("u", "a", read=False))
        assert run(store.list_read_item_ids("u")) == set()
