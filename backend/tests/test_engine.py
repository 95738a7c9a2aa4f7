"""
Tests for the Match Engine

Tests cover:
- Single-pair computation, persistence and NotFound handling
- Batch recomputation for a candidate and for a job
- Partial failure: malformed data, missing rows and timeouts are skipped
- Bounded concurrency and completion-order independent ranking
- Cached reads (no recompute) with and without the Redis layer
- Ranked lists read during a write are not served afterwards
- Single-pair reads through the pair cache
- Wiring from settings
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.config import Settings
from app.services.aggregator import Band
from app.services.cache import MatchCache
from app.services.engine import (
    SKIP_ERROR,
    SKIP_NOT_FOUND,
    SKIP_TIMEOUT,
    BatchResult,
    MatchEngine,
    SkippedPair,
    build_match_engine,
)
from app.services.errors import ComputeTimeoutError, NotFoundError
from app.services.profiles import CandidateProfile, JobProfile, WorkRegime
from app.services.sources import InMemoryDataSource, SqlAlchemyDataSource
from app.services.store import InMemoryMatchScoreStore, SqlAlchemyMatchScoreStore
from app.services.taxonomy import Efficiency, Mitigation


def job_variants(accessible_job):
    """Jobs scoring 100, 75 (excluded subtype), 53 and 100 for the wheelchair candidate."""
    excluded = JobProfile(
        id=11,
        accepted_subtype_ids=frozenset({3}),
        offered_accessibility_ids=frozenset({100, 101, 102}),
        regime=WorkRegime.REMOTE,
    )
    bare = JobProfile(
        id=12,
        regime=WorkRegime.ONSITE,
        city="Recife",
        state="PE",
    )
    twin = JobProfile(
        id=13,
        accepted_subtype_ids=accessible_job.accepted_subtype_ids,
        offered_accessibility_ids=accessible_job.offered_accessibility_ids,
        education=accessible_job.education,
        regime=accessible_job.regime,
    )
    return [bare, twin, excluded, accessible_job]


class BrokenJobSource(InMemoryDataSource):
    """Raises for one job to simulate a malformed row."""

    def __init__(self, *args, broken_job_id: int, **kwargs):
        super().__init__(*args, **kwargs)
        self.broken_job_id = broken_job_id

    async def fetch_job_profile(self, job_id):
        if job_id == self.broken_job_id:
            raise ValueError("corrupt work_regime column")
        return await super().fetch_job_profile(job_id)


class DelayedJobSource(InMemoryDataSource):
    """Delays job fetches and tracks how many run at once."""

    def __init__(self, *args, delays=None, default_delay: float = 0.0, **kwargs):
        super().__init__(*args, **kwargs)
        self.delays = delays or {}
        self.default_delay = default_delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_job_profile(self, job_id):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(job_id, self.default_delay))
            return await super().fetch_job_profile(job_id)
        finally:
            self.in_flight -= 1


class SlowStore(InMemoryMatchScoreStore):
    async def upsert(self, result):
        await asyncio.sleep(1)
        await super().upsert(result)


class TestComputeMatch:
    """Test single-pair computation."""

    @pytest.mark.asyncio
    async def test_perfect_match_is_persisted(self, make_engine, wheelchair_candidate, accessible_job):
        engine = make_engine(candidates=[wheelchair_candidate], jobs=[accessible_job])

        result = await engine.compute_match(1, 10)

        assert result.total_score == 100
        assert result.band == Band.PERFECT
        assert result.compatible is True
        assert await engine.store.get(1, 10) == result

    @pytest.mark.asyncio
    async def test_recompute_is_stable(self, make_engine, wheelchair_candidate, accessible_job):
        engine = make_engine(candidates=[wheelchair_candidate], jobs=[accessible_job])

        first = await engine.compute_match(1, 10)
        second = await engine.compute_match(1, 10)

        assert first.total_score == second.total_score
        assert first.band == second.band
        assert first.dimensions == second.dimensions
        assert len(engine.store.rows) == 1

    @pytest.mark.asyncio
    async def test_unknown_candidate(self, make_engine, accessible_job):
        engine = make_engine(jobs=[accessible_job])

        with pytest.raises(NotFoundError) as exc_info:
            await engine.compute_match(404, 10)

        assert exc_info.value.entity == "candidate"
        assert str(exc_info.value) == "Candidate not found: 404"

    @pytest.mark.asyncio
    async def test_unknown_job(self, make_engine, wheelchair_candidate):
        engine = make_engine(candidates=[wheelchair_candidate])

        with pytest.raises(NotFoundError, match="Job not found: 99"):
            await engine.compute_match(1, 99)

    @pytest.mark.asyncio
    async def test_timeout_is_surfaced(self, make_engine, wheelchair_candidate, accessible_job):
        engine = make_engine(
            candidates=[wheelchair_candidate],
            jobs=[accessible_job],
            store=SlowStore(),
            pair_timeout=0.01,
        )

        with pytest.raises(ComputeTimeoutError):
            await engine.compute_match(1, 10)

    @pytest.mark.asyncio
    async def test_mitigations_are_applied(self, make_engine, taxonomy):
        candidate = CandidateProfile(id=2, subtype_ids=frozenset({3}))
        job = JobProfile(id=20, regime=WorkRegime.REMOTE)
        engine = make_engine(
            candidates=[candidate],
            jobs=[job],
            mitigations={2: [Mitigation(5, 12, Efficiency.HIGH, "Hearing aid")]},
        )

        result = await engine.compute_match(2, 20)

        assert result.dimensions.accessibility == 100
        assert result.breakdown["accessibility"]["neutralized_barriers"] == [12]


class TestRecomputeForCandidate:
    """Test batch recomputation across active jobs."""

    @pytest.mark.asyncio
    async def test_results_ranked_by_score_then_job_id(
        self, make_engine, wheelchair_candidate, accessible_job
    ):
        engine = make_engine(candidates=[wheelchair_candidate], jobs=job_variants(accessible_job))

        batch = await engine.recompute_for_candidate(1)

        assert [r.job_id for r in batch.results] == [10, 13, 11, 12]
        assert [r.total_score for r in batch.results] == [100, 100, 75, 53]
        assert batch.skipped == []
        assert batch.computed == 4

    @pytest.mark.asyncio
    async def test_limit_truncates_but_persists_all(
        self, make_engine, wheelchair_candidate, accessible_job
    ):
        engine = make_engine(candidates=[wheelchair_candidate], jobs=job_variants(accessible_job))

        batch = await engine.recompute_for_candidate(1, limit=2)

        assert [r.job_id for r in batch.results] == [10, 13]
        assert batch.computed == 4
        assert len(engine.store.rows) == 4

    @pytest.mark.asyncio
    async def test_inactive_jobs_excluded(self, taxonomy, make_engine, wheelchair_candidate, accessible_job):
        source = InMemoryDataSource(
            taxonomy=taxonomy,
            candidates=[wheelchair_candidate],
            jobs=job_variants(accessible_job),
            inactive_job_ids=[11, 12],
        )
        engine = make_engine(source=source)

        batch = await engine.recompute_for_candidate(1)

        assert [r.job_id for r in batch.results] == [10, 13]

    @pytest.mark.asyncio
    async def test_malformed_job_is_skipped(self, taxonomy, make_engine, wheelchair_candidate, accessible_job):
        jobs = job_variants(accessible_job)
        source = BrokenJobSource(
            taxonomy=taxonomy,
            candidates=[wheelchair_candidate],
            jobs=jobs,
            broken_job_id=12,
        )
        engine = make_engine(source=source)

        batch = await engine.recompute_for_candidate(1)

        assert len(batch.results) == len(jobs) - 1
        assert batch.skipped_count == 1
        skipped = batch.skipped[0]
        assert (skipped.candidate_id, skipped.job_id, skipped.reason) == (1, 12, SKIP_ERROR)
        assert "corrupt" in skipped.detail

    @pytest.mark.asyncio
    async def test_vanished_job_is_skipped(self, taxonomy, make_engine, wheelchair_candidate, accessible_job):
        source = InMemoryDataSource(
            taxonomy=taxonomy,
            candidates=[wheelchair_candidate],
            jobs=[accessible_job],
        )
        source.list_active_job_ids = AsyncMock(return_value=[10, 77])
        engine = make_engine(source=source)

        batch = await engine.recompute_for_candidate(1)

        assert [r.job_id for r in batch.results] == [10]
        assert batch.skipped == [SkippedPair(1, 77, SKIP_NOT_FOUND, "Job not found: 77")]

    @pytest.mark.asyncio
    async def test_slow_pair_times_out(self, taxonomy, make_engine, wheelchair_candidate, accessible_job):
        source = DelayedJobSource(
            taxonomy=taxonomy,
            candidates=[wheelchair_candidate],
            jobs=job_variants(accessible_job),
            delays={11: 1.0},
        )
        engine = make_engine(source=source, pair_timeout=0.05)

        batch = await engine.recompute_for_candidate(1)

        assert [r.job_id for r in batch.results] == [10, 13, 12]
        assert [(s.job_id, s.reason) for s in batch.skipped] == [(11, SKIP_TIMEOUT)]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, taxonomy, make_engine, wheelchair_candidate):
        jobs = [JobProfile(id=i, regime=WorkRegime.REMOTE) for i in range(1, 21)]
        source = DelayedJobSource(
            taxonomy=taxonomy,
            candidates=[wheelchair_candidate],
            jobs=jobs,
            default_delay=0.01,
        )
        engine = make_engine(source=source, concurrency=3)

        batch = await engine.recompute_for_candidate(1)

        assert batch.computed == 20
        assert 1 < source.max_in_flight <= 3

    @pytest.mark.asyncio
    async def test_ranking_ignores_completion_order(
        self, taxonomy, make_engine, wheelchair_candidate, accessible_job
    ):
        # Best jobs finish last
        source = DelayedJobSource(
            taxonomy=taxonomy,
            candidates=[wheelchair_candidate],
            jobs=job_variants(accessible_job),
            delays={10: 0.05, 13: 0.04, 11: 0.02, 12: 0.0},
        )
        engine = make_engine(source=source)

        batch = await engine.recompute_for_candidate(1)

        assert [r.job_id for r in batch.results] == [10, 13, 11, 12]

    @pytest.mark.asyncio
    async def test_unknown_candidate(self, make_engine, accessible_job):
        engine = make_engine(jobs=[accessible_job])

        with pytest.raises(NotFoundError):
            await engine.recompute_for_candidate(404)

    @pytest.mark.asyncio
    async def test_no_active_jobs(self, make_engine, wheelchair_candidate):
        engine = make_engine(candidates=[wheelchair_candidate])

        batch = await engine.recompute_for_candidate(1, limit=20)

        assert batch == BatchResult()


class TestRecomputeForJob:
    """Test batch recomputation across active candidates."""

    @pytest.fixture
    def candidates(self, wheelchair_candidate):
        deaf = CandidateProfile(id=2, subtype_ids=frozenset({3}), city="São Paulo", state="SP")
        no_subtypes = CandidateProfile(id=3, education="medio", city="Recife", state="PE")
        inactive = CandidateProfile(id=4, subtype_ids=frozenset({2}))
        return [wheelchair_candidate, deaf, no_subtypes, inactive]

    @pytest.mark.asyncio
    async def test_candidates_ranked(self, taxonomy, make_engine, candidates, accessible_job):
        source = InMemoryDataSource(
            taxonomy=taxonomy,
            candidates=candidates,
            jobs=[accessible_job],
            inactive_candidate_ids=[4],
        )
        engine = make_engine(source=source)

        batch = await engine.recompute_for_job(10)

        assert [r.candidate_id for r in batch.results] == [1, 3, 2]
        assert [r.total_score for r in batch.results] == [100, 88, 33]
        assert [r.compatible for r in batch.results] == [True, True, False]
        assert await engine.store.get(4, 10) is None

    @pytest.mark.asyncio
    async def test_mitigations_fetched_per_candidate(self, make_engine, candidates, accessible_job):
        engine = make_engine(
            candidates=candidates[:3],
            jobs=[accessible_job],
            mitigations={2: [Mitigation(5, 12, Efficiency.HIGH)]},
        )

        batch = await engine.recompute_for_job(10, limit=10)

        scores = {r.candidate_id: r.total_score for r in batch.results}
        assert scores[2] == 68

    @pytest.mark.asyncio
    async def test_unknown_job(self, make_engine, wheelchair_candidate):
        engine = make_engine(candidates=[wheelchair_candidate])

        with pytest.raises(NotFoundError):
            await engine.recompute_for_job(404)


class TestCachedReads:
    """Test reads that never recompute."""

    @pytest.mark.asyncio
    async def test_get_cached_matches_without_recompute(
        self, make_engine, wheelchair_candidate, accessible_job
    ):
        engine = make_engine(candidates=[wheelchair_candidate], jobs=job_variants(accessible_job))

        assert await engine.get_cached_matches(1) == []

        await engine.recompute_for_candidate(1, limit=1)
        cached = await engine.get_cached_matches(1)

        assert [r.job_id for r in cached] == [10, 13, 11, 12]
        assert [r.job_id for r in await engine.get_cached_matches(1, limit=2)] == [10, 13]

    @pytest.mark.asyncio
    async def test_get_compatible_matches(self, make_engine, wheelchair_candidate, accessible_job):
        engine = make_engine(candidates=[wheelchair_candidate], jobs=job_variants(accessible_job))
        await engine.recompute_for_candidate(1)

        compatible = await engine.get_compatible_matches(1)

        assert [r.job_id for r in compatible] == [10, 13, 12]
        assert [r.job_id for r in await engine.get_compatible_matches(1, limit=1)] == [10]

    @pytest.mark.asyncio
    async def test_get_cached_matches_for_job(self, make_engine, wheelchair_candidate, accessible_job):
        other = CandidateProfile(id=2, subtype_ids=frozenset({3}))
        engine = make_engine(candidates=[wheelchair_candidate, other], jobs=[accessible_job])
        await engine.recompute_for_job(10)

        cached = await engine.get_cached_matches_for_job(10)

        assert [r.candidate_id for r in cached] == [1, 2]


class FakeRedis:
    """Dict-backed stand-in for the redis.asyncio commands MatchCache uses."""

    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    async def setex(self, key, ttl, value):
        self.data[key] = value
        return True

    async def incr(self, key):
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value

    async def expire(self, key, ttl):
        return key in self.data


class PausingStore(InMemoryMatchScoreStore):
    """Holds the next candidate list read after it has taken its snapshot."""

    def __init__(self):
        super().__init__()
        self.pause_next = False
        self.snapshot_taken = asyncio.Event()
        self.release = asyncio.Event()

    async def list_for_candidate(self, candidate_id, limit=None, descending=True):
        snapshot = await super().list_for_candidate(candidate_id, limit, descending)
        if self.pause_next:
            self.pause_next = False
            self.snapshot_taken.set()
            await self.release.wait()
        return snapshot


class TestRedisLayer:
    """Test the engine's use of the Redis cache."""

    @pytest.fixture
    def mock_cache(self):
        cache = MagicMock()
        cache.get_match = AsyncMock(return_value=None)
        cache.fill_match = AsyncMock(return_value=True)
        cache.ranked_generation = AsyncMock(return_value=0)
        cache.get_ranked = AsyncMock(return_value=None)
        cache.set_ranked = AsyncMock(return_value=True)
        cache.set_match = AsyncMock(return_value=True)
        return cache

    @pytest.fixture
    def redis_cache(self):
        cache = MatchCache(redis_url="redis://test")
        cache.redis = FakeRedis()
        return cache

    @pytest.mark.asyncio
    async def test_compute_refreshes_pair_entry(
        self, make_engine, mock_cache, wheelchair_candidate, accessible_job
    ):
        engine = make_engine(candidates=[wheelchair_candidate], jobs=[accessible_job], cache=mock_cache)

        result = await engine.compute_match(1, 10)

        mock_cache.set_match.assert_awaited_once_with(result)

    @pytest.mark.asyncio
    async def test_ranked_miss_reads_store_and_fills_cache(
        self, make_engine, mock_cache, wheelchair_candidate, accessible_job
    ):
        engine = make_engine(candidates=[wheelchair_candidate], jobs=[accessible_job], cache=mock_cache)
        result = await engine.compute_match(1, 10)

        cached = await engine.get_cached_matches(1, limit=5)

        assert cached == [result]
        mock_cache.ranked_generation.assert_awaited_once_with("candidate", 1)
        mock_cache.set_ranked.assert_awaited_once_with("candidate", 1, 5, 0, [result])

    @pytest.mark.asyncio
    async def test_ranked_hit_skips_store(self, make_engine, mock_cache, wheelchair_candidate, accessible_job):
        engine = make_engine(candidates=[wheelchair_candidate], jobs=[accessible_job])
        result = await engine.compute_match(1, 10)
        mock_cache.get_ranked.return_value = [result]
        cached_engine = make_engine(cache=mock_cache)

        assert await cached_engine.get_cached_matches_for_job(10) == [result]
        mock_cache.get_ranked.assert_awaited_once_with("job", 10, None, 0)
        mock_cache.set_ranked.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redis_unavailable_reads_store(
        self, make_engine, mock_cache, wheelchair_candidate, accessible_job
    ):
        mock_cache.ranked_generation.return_value = None
        engine = make_engine(candidates=[wheelchair_candidate], jobs=[accessible_job], cache=mock_cache)
        result = await engine.compute_match(1, 10)

        assert await engine.get_cached_matches(1) == [result]
        mock_cache.get_ranked.assert_not_awaited()
        mock_cache.set_ranked.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_write_during_ranked_read_is_not_hidden(
        self, make_engine, redis_cache, wheelchair_candidate, accessible_job
    ):
        """A list loaded before a write must not be served after it."""
        store = PausingStore()
        engine = make_engine(
            candidates=[wheelchair_candidate], jobs=[accessible_job], store=store, cache=redis_cache
        )

        store.pause_next = True
        reader = asyncio.create_task(engine.get_cached_matches(1))
        await store.snapshot_taken.wait()

        await engine.compute_match(1, 10)
        store.release.set()

        assert await reader == []
        assert [r.job_id for r in await engine.get_cached_matches(1)] == [10]
        assert [r.job_id for r in await engine.get_cached_matches(1)] == [10]
        assert redis_cache.stats["hits"]["ranked"] == 1

    @pytest.mark.asyncio
    async def test_ranked_list_refreshed_after_recompute(
        self, make_engine, redis_cache, wheelchair_candidate, accessible_job
    ):
        engine = make_engine(candidates=[wheelchair_candidate], jobs=[accessible_job], cache=redis_cache)

        assert await engine.get_cached_matches_for_job(10) == []
        await engine.recompute_for_job(10)

        assert [r.candidate_id for r in await engine.get_cached_matches_for_job(10)] == [1]


class TestGetMatchResult:
    """Test the single-pair read path."""

    @pytest.mark.asyncio
    async def test_never_computed(self, make_engine, wheelchair_candidate, accessible_job):
        engine = make_engine(candidates=[wheelchair_candidate], jobs=[accessible_job])

        assert await engine.get_match_result(1, 10) is None
        assert engine.store.rows == {}

    @pytest.mark.asyncio
    async def test_reads_stored_score(self, make_engine, wheelchair_candidate, accessible_job):
        engine = make_engine(candidates=[wheelchair_candidate], jobs=[accessible_job])
        result = await engine.compute_match(1, 10)

        assert await engine.get_match_result(1, 10) == result

    @pytest.mark.asyncio
    async def test_store_read_fills_pair_entry(self, make_engine, wheelchair_candidate, accessible_job):
        engine = make_engine(candidates=[wheelchair_candidate], jobs=[accessible_job])
        result = await engine.compute_match(1, 10)
        cache = MagicMock()
        cache.get_match = AsyncMock(return_value=None)
        cache.fill_match = AsyncMock(return_value=True)
        engine.cache = cache

        assert await engine.get_match_result(1, 10) == result
        cache.fill_match.assert_awaited_once_with(result)

    @pytest.mark.asyncio
    async def test_pair_hit_skips_store(self, make_engine, wheelchair_candidate, accessible_job):
        engine = make_engine(candidates=[wheelchair_candidate], jobs=[accessible_job])
        result = await engine.compute_match(1, 10)
        cache = MagicMock()
        cache.get_match = AsyncMock(return_value=result)
        cache.fill_match = AsyncMock()
        engine.cache = cache
        engine.store = MagicMock()
        engine.store.get = AsyncMock()

        assert await engine.get_match_result(1, 10) == result
        engine.store.get.assert_not_awaited()
        cache.fill_match.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pair_entry_follows_writes(self, make_engine, wheelchair_candidate, accessible_job):
        cache = MatchCache(redis_url="redis://test")
        cache.redis = FakeRedis()
        engine = make_engine(candidates=[wheelchair_candidate], jobs=[accessible_job], cache=cache)
        first = await engine.compute_match(1, 10)

        assert await engine.get_match_result(1, 10) == first
        assert cache.stats["hits"]["match"] == 1

        second = await engine.compute_match(1, 10)
        assert await engine.get_match_result(1, 10) == second


class TestEngineWiring:
    """Test construction."""

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValueError):
            MatchEngine(source=InMemoryDataSource(), store=InMemoryMatchScoreStore(), concurrency=0)

    def test_build_from_settings(self):
        settings = Settings(
            cache_enabled=False,
            batch_concurrency=3,
            pair_timeout_seconds=1.5,
            match_compatibility_threshold=60,
        )

        engine = build_match_engine(MagicMock(), cache=MagicMock(), settings=settings)

        assert isinstance(engine.source, SqlAlchemyDataSource)
        assert isinstance(engine.store, SqlAlchemyMatchScoreStore)
        assert engine.cache is None
        assert engine.concurrency == 3
        assert engine.pair_timeout == 1.5
        assert engine.threshold == 60
        assert engine.weights["accessibility"] == 35
