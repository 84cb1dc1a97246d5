"""
Serving tests: precomputed freshness boundary, read filtering, on-demand
fallback with write-back, and hydration order.
"""

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, ScriptedSearch, hits, rate
from recommender.models import ScoredCandidate, ServingConfig
from server.services import (
    CandidateGenerator,
    InMemoryItemProvider,
    InMemoryUserDataStore,
    RecommendationError,
    RecommendationOrchestrator,
    SignalFetchError,
)

CATALOG = [{"id": i, "title": f"Title {i}"} for i in ("c1", "c2", "c3", "g1", "g2")]


def run(coro):
    return asyncio.run(coro)


def cand(item_id, score):
    return ScoredCandidate(item_id=item_id, score=score, source="temporal")


def make(store, clock, search=None, items=None, **serving):
    search = search or ScriptedSearch(hits(("g1", 0.9), ("g2", 0.8)))
    generator = CandidateGenerator(store, store, store, search, clock=clock)
    orchestrator = RecommendationOrchestrator(
        generator,
        store,
        store,
        store,
        items or InMemoryItemProvider(CATALOG),
        ServingConfig(**serving),
        clock=clock,
    )
    return orchestrator, search


def seed(store):
    run(rate(store, "u", "p1", [1.0, 0.0]))
    run(store.replace_precomputed("u", [cand("c1", 0.9), cand("c2", 0.8), cand("c3", 0.7)], NOW))


class TestFreshness:
    def test_just_under_threshold_is_hit(self, store, clock):
        seed(store)
        clock.advance(hours=47, minutes=59)
        orchestrator, search = make(store, clock)
        out = run(orchestrator.recommend_for("u", 10))
        assert [r.item_id for r in out] == ["c1", "c2", "c3"]
        assert search.calls == []

    def test_just_over_threshold_is_miss(self, store, clock):
        seed(store)
        clock.advance(hours=48, minutes=1)
        orchestrator, search = make(store, clock)
        out = run(orchestrator.recommend_for("u", 10))
        assert [r.item_id for r in out] == ["g1", "g2"]
        assert len(search.calls) == 1

    def test_no_precomputed_set_is_miss(self, store, clock):
        run(rate(store, "u", "p1", [1.0, 0.0]))
        orchestrator, _ = make(store, clock)
        assert [r.item_id for r in run(orchestrator.recommend_for("u", 10))] == ["g1", "g2"]


class TestPrecomputedHit:
    def test_read_items_filtered_then_limited(self, store, clock):
        seed(store)
        run(store.set_read("u", "c1"))
        orchestrator, _ = make(store, clock)
        out = run(orchestrator.recommend_for("u", 1))
        assert [r.item_id for r in out] == ["c2"]

    def test_fetch_limit_bounds_rows_read(self, store, clock):
        seed(store)
        run(store.set_read("u", "c1"))
        orchestrator, _ = make(store, clock, fetch_limit=2)
        out = run(orchestrator.recommend_for("u", 10))
        assert [r.item_id for r in out] == ["c2"]

    def test_everything_read_falls_back_to_generation(self, store, clock):
        seed(store)
        for i in ("c1", "c2", "c3"):
            run(store.set_read("u", i))
        orchestrator, search = make(store, clock)
        out = run(orchestrator.recommend_for("u", 10))
        assert [r.item_id for r in out] == ["g1", "g2"]
        assert len(search.calls) == 1


class TestOnDemand:
    def test_result_written_back_and_status_cleared(self, store, clock):
        run(rate(store, "u", "p1", [1.0, 0.0]))
        run(store.mark_needs_regeneration("u", NOW - timedelta(hours=1)))
        orchestrator, _ = make(store, clock)
        run(orchestrator.recommend_for("u", 10))
        rows = run(store.list_precomputed("u", 10))
        assert [(r.item_id, r.position, r.generated_at) for r in rows] == [
            ("g1", 0, NOW),
            ("g2", 1, NOW),
        ]
        assert run(store.get_status("u")).needs_regeneration is False

    def test_empty_result_is_not_written(self, store, clock):
        orchestrator, search = make(store, clock)
        assert run(orchestrator.recommend_for("u", 10)) == []
        assert search.calls == []
        assert run(store.get_generated_at("u")) is None

    def test_cache_write_failure_is_swallowed(self, clock):
        class ReadOnlyStore(InMemoryUserDataStore):
            async def replace_precomputed(self, user_id, candidates, generated_at):
                raise ConnectionError("write refused")

        store = ReadOnlyStore()
        run(rate(store, "u", "p1", [1.0, 0.0]))
        orchestrator, _ = make(store, clock)
        out = run(orchestrator.recommend_for("u", 10))
        assert [r.item_id for r in out] == ["g1", "g2"]

    def test_precomputed_read_failure_falls_back(self, clock):
        class BrokenCacheStore(InMemoryUserDataStore):
            async def get_generated_at(self, user_id):
                raise ConnectionError("cache down")

        store = BrokenCacheStore()
        run(rate(store, "u", "p1", [1.0, 0.0]))
        orchestrator, _ = make(store, clock)
        assert [r.item_id for r in run(orchestrator.recommend_for("u", 10))] == ["g1", "g2"]

    def test_generation_error_propagates(self, clock):
        class NoRatingsStore(InMemoryUserDataStore):
            async def get_rated_vectors(self, user_id, kind):
                raise ConnectionError("ratings down")

        orchestrator, _ = make(NoRatingsStore(), clock)
        with pytest.raises(SignalFetchError):
            run(orchestrator.recommend_for("u", 10))


class TestHydration:
    def test_missing_records_dropped_order_kept(self, store, clock):
        run(store.replace_precomputed(
            "u", [cand("c3", 0.9), cand("gone", 0.8), cand("c1", 0.7)], NOW
        ))
        orchestrator, _ = make(store, clock)
        out = run(orchestrator.recommend_for("u", 10))
        assert [r.item_id for r in out] == ["c3", "c1"]
        assert out[0].title == "Title c3"

    def test_hydration_failure_raises(self, store, clock):
        class DownCatalog:
            async def fetch_records(self, item_ids):
                raise ConnectionError("catalog down")

        seed(store)
        orchestrator, _ = make(store, clock, items=DownCatalog())
        with pytest.raises(RecommendationError):
            run(orchestrator.recommend_for("u", 10))
