"""
Batch regeneration tests: per-user isolation, counting, replacement of the
precomputed set, and regeneration flag handling.
"""

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, ScriptedSearch, hits, rate
from recommender.models import BatchConfig, ClusterConfig, ScoredCandidate
from server.services import (
    BatchRegenerationJob,
    CandidateGenerator,
    InMemoryUserDataStore,
    InterestClusterUpdater,
)


def run(coro):
    return asyncio.run(coro)


def make_job(store, clock, search=None, **batch):
    search = search or ScriptedSearch(hits(("r1", 0.9), ("r2", 0.8), ("r3", 0.7)))
    generator = CandidateGenerator(store, store, store, search, clock=clock)
    updater = InterestClusterUpdater(store, store, ClusterConfig(min_items_for_clustering=2), clock=clock)
    return BatchRegenerationJob(updater, generator, store, store, BatchConfig(**batch), clock=clock)


def flag(store, user_id, at=NOW - timedelta(hours=1)):
    run(store.mark_needs_regeneration(user_id, at))


class TestBatch:
    def test_regenerates_flagged_users(self, store, clock):
        for user in ("a", "b"):
            run(rate(store, user, "p1", [1.0, 0.0]))
            run(rate(store, user, "p2", [0.0, 1.0]))
            flag(store, user)
        summary = run(make_job(store, clock).run())
        assert (summary.success_count, summary.fail_count) == (2, 0)
        for user in ("a", "b"):
            rows = run(store.list_precomputed(user, 10))
            assert [r.item_id for r in rows] == ["r1", "r2", "r3"]
            assert len(run(store.get_clusters(user))) == 2
        assert run(store.list_users_needing_regeneration()) == []

    def test_unflagged_users_untouched(self, store, clock):
        run(rate(store, "quiet", "p1", [1.0, 0.0]))
        summary = run(make_job(store, clock).run())
        assert (summary.success_count, summary.fail_count) == (0, 0)
        assert run(store.list_precomputed("quiet", 10)) == []

    def test_candidate_limit(self, store, clock):
        run(rate(store, "a", "p1", [1.0, 0.0]))
        flag(store, "a")
        run(make_job(store, clock, candidate_limit=2).run())
        assert len(run(store.list_precomputed("a", 10))) == 2

    def test_empty_result_replaces_old_set(self, store, clock):
        run(store.replace_precomputed(
            "a", [ScoredCandidate(item_id="old", score=1.0, source="temporal")], NOW
        ))
        flag(store, "a")
        summary = run(make_job(store, clock).run())
        assert summary.success_count == 1
        assert run(store.list_precomputed("a", 10)) == []
        assert run(store.get_status("a")).needs_regeneration is False

    def test_failure_isolated_and_counted(self, clock):
        class OneBadUser(InMemoryUserDataStore):
            async def get_rated_vectors(self, user_id, kind):
                if user_id == "bad":
                    raise ConnectionError("ratings down")
                return await super().get_rated_vectors(user_id, kind)

        store = OneBadUser()
        for user in ("good1", "bad", "good2"):
            run(rate(store, user, "p1", [1.0, 0.0]))
            flag(store, user)
        summary = run(make_job(store, clock, concurrency=1).run())
        assert (summary.success_count, summary.fail_count) == (2, 1)
        assert run(store.list_users_needing_regeneration()) == ["bad"]

    def test_signal_during_run_keeps_flag(self, store, clock):
        run(rate(store, "a", "p1", [1.0, 0.0]))
        flag(store, "a")

        class RatingDuringSearch(ScriptedSearch):
            async def search(self, exclude_ids, query_vector, limit):
                await store.mark_needs_regeneration("a", NOW + timedelta(seconds=1))
                return await super().search(exclude_ids, query_vector, limit)

        run(make_job(store, clock, search=RatingDuringSearch(hits(("r1", 0.9)))).run())
        assert run(store.get_status("a")).needs_regeneration is True
        assert [r.item_id for r in run(store.list_precomputed("a", 10))] == ["r1"]

    def test_explicit_user_ids(self, store, clock):
        run(rate(store, "x", "p1", [1.0, 0.0]))
        summary = run(make_job(store, clock).run(["x"]))
        assert summary.success_count == 1
        assert len(run(store.list_precomputed("x", 10))) == 3

    def test_listing_failure_raises(self, clock):
        class NoListing(InMemoryUserDataStore):
            async def list_users_needing_regeneration(self):
                raise ConnectionError("status unavailable")

        with pytest.raises(ConnectionError):
            run(make_job(NoListing(), clock).run())

    def test_rerun_is_idempotent(self, store, clock):
        run(rate(store, "a", "p1", [1.0, 0.0]))
        flag(store, "a")
        job = make_job(store, clock)
        run(job.run(["a"]))
        first = run(store.list_precomputed("a", 10))
        run(job.run(["a"]))
        assert run(store.list_precomputed("a", 10)) == first
