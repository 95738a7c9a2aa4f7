"""
Match Engine - Single-pair scoring and bounded-parallel batch recomputation

Pipeline per pair:
    1. Fetch candidate/job read views, taxonomy snapshot and mitigations
    2. Resolve candidate needs (direct + barrier-derived, mitigated)
    3. Run the five dimension scorers and aggregate
    4. Upsert the MatchScore row (and refresh the Redis pair entry)

Batches fix one side (a candidate or a job), fetch it once together with
the taxonomy, then score every active counterpart in an asyncio task gated
by a Semaphore. Each pair runs under asyncio.wait_for; any per-pair failure
is logged and recorded as a SkippedPair and the batch carries on. Results
are sorted after every worker has finished:

    total_score desc, counterpart id asc

Usage:
    engine = build_match_engine(async_session, cache=await get_cache())
    batch = await engine.recompute_for_candidate(42, limit=20)
    for result in batch.results:
        print(result.job_id, result.total_score, result.band)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import Settings, get_settings
from app.middleware.metrics import (
    record_batch_latency,
    record_match_score_latency,
    record_pair_computed,
    record_pair_skipped,
)
from app.services.aggregator import (
    DEFAULT_COMPATIBILITY_THRESHOLD,
    MatchResult,
    WeightTable,
    score_pair,
)
from app.services.cache import MatchCache
from app.services.errors import ComputeTimeoutError, NotFoundError
from app.services.needs import ResolvedNeeds, resolve_needs
from app.services.profiles import CandidateProfile, JobProfile
from app.services.sources import MatchDataSource, SqlAlchemyDataSource
from app.services.store import MatchScoreStore, SqlAlchemyMatchScoreStore

logger = logging.getLogger(__name__)

SKIP_NOT_FOUND = "not_found"
SKIP_TIMEOUT = "timeout"
SKIP_ERROR = "error"


@dataclass(frozen=True)
class SkippedPair:
    """A pair a batch could not score."""
    candidate_id: int
    job_id: int
    reason: str  # not_found | timeout | error
    detail: str = ""

    def to_dict(self) -> dict:
        return {
            "candidate_id": self.candidate_id,
            "job_id": self.job_id,
            "reason": self.reason,
            "detail": self.detail,
        }


@dataclass
class BatchResult:
    """
    Outcome of a batch recomputation.

    Attributes:
        results: Ranked results, truncated to the requested limit
        skipped: Pairs that failed; never aborts the batch
        computed: Number of pairs scored and persisted (before truncation)
    """
    results: List[MatchResult] = field(default_factory=list)
    skipped: List[SkippedPair] = field(default_factory=list)
    computed: int = 0

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


PairWork = Callable[[], Awaitable[MatchResult]]


class MatchEngine:
    """
    Compatibility scoring engine.

    Attributes:
        source: Read-only candidate/job/taxonomy data source
        store: MatchScore persistence
        cache: Optional Redis read-through layer
        weights: Dimension weight table
        threshold: Minimum total for compatibility
        concurrency: Max pairs in flight during a batch
        pair_timeout: Seconds allowed per pair (None disables)
    """

    def __init__(
        self,
        source: MatchDataSource,
        store: MatchScoreStore,
        cache: Optional[MatchCache] = None,
        weights: Optional[WeightTable] = None,
        threshold: int = DEFAULT_COMPATIBILITY_THRESHOLD,
        concurrency: int = 8,
        pair_timeout: Optional[float] = 5.0,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.source = source
        self.store = store
        self.cache = cache
        self.weights = weights or WeightTable()
        self.threshold = threshold
        self.concurrency = concurrency
        self.pair_timeout = pair_timeout

    # ==================== Single Pair ====================

    async def compute_match(self, candidate_id: int, job_id: int) -> MatchResult:
        """
        Score one candidate against one job and persist the result.

        Raises:
            NotFoundError: If the candidate or job does not resolve
            ComputeTimeoutError: If scoring exceeds the per-pair timeout
        """
        candidate = await self._require_candidate(candidate_id)
        job = await self._require_job(job_id)
        taxonomy = await self.source.fetch_taxonomy_graph()
        mitigations = await self.source.fetch_assistive_resource_mitigations(candidate_id)
        needs = resolve_needs(candidate, taxonomy, mitigations)

        result = await self._with_timeout(
            candidate_id, job_id, lambda: self._score_and_persist(candidate, job, needs)
        )
        record_pair_computed("single")
        return result

    # ==================== Batches ====================

    async def recompute_for_candidate(
        self,
        candidate_id: int,
        limit: Optional[int] = None,
    ) -> BatchResult:
        """
        Rescore a candidate against every active job.

        Every pair is persisted; only the top `limit` are returned.

        Raises:
            NotFoundError: If the candidate does not resolve
        """
        start = time.perf_counter()
        candidate = await self._require_candidate(candidate_id)
        taxonomy = await self.source.fetch_taxonomy_graph()
        mitigations = await self.source.fetch_assistive_resource_mitigations(candidate_id)
        needs = resolve_needs(candidate, taxonomy, mitigations)
        job_ids = await self.source.list_active_job_ids()

        def work_for(job_id: int) -> PairWork:
            async def run() -> MatchResult:
                job = await self._require_job(job_id)
                return await self._score_and_persist(candidate, job, needs)
            return run

        batch = await self._run_batch(
            [(candidate_id, job_id, work_for(job_id)) for job_id in job_ids],
            mode="candidate_batch",
        )
        batch.results = _rank(batch.results, lambda r: r.job_id, limit)

        duration = time.perf_counter() - start
        record_batch_latency("candidate", duration)
        logger.info(
            f"Recomputed candidate {candidate_id}: {batch.computed} scored, "
            f"{batch.skipped_count} skipped in {duration:.2f}s"
        )
        return batch

    async def recompute_for_job(
        self,
        job_id: int,
        limit: Optional[int] = None,
    ) -> BatchResult:
        """
        Rescore a job against every active candidate.

        Raises:
            NotFoundError: If the job does not resolve
        """
        start = time.perf_counter()
        job = await self._require_job(job_id)
        taxonomy = await self.source.fetch_taxonomy_graph()
        candidate_ids = await self.source.list_active_candidate_ids()

        def work_for(candidate_id: int) -> PairWork:
            async def run() -> MatchResult:
                candidate = await self._require_candidate(candidate_id)
                mitigations = await self.source.fetch_assistive_resource_mitigations(candidate_id)
                needs = resolve_needs(candidate, taxonomy, mitigations)
                return await self._score_and_persist(candidate, job, needs)
            return run

        batch = await self._run_batch(
            [(candidate_id, job_id, work_for(candidate_id)) for candidate_id in candidate_ids],
            mode="job_batch",
        )
        batch.results = _rank(batch.results, lambda r: r.candidate_id, limit)

        duration = time.perf_counter() - start
        record_batch_latency("job", duration)
        logger.info(
            f"Recomputed job {job_id}: {batch.computed} scored, "
            f"{batch.skipped_count} skipped in {duration:.2f}s"
        )
        return batch

    # ==================== Cached Reads ====================

    async def get_match_result(self, candidate_id: int, job_id: int) -> Optional[MatchResult]:
        """Stored score for one pair, or None if never computed. Never recomputes."""
        if self.cache:
            cached = await self.cache.get_match(candidate_id, job_id)
            if cached is not None:
                return cached

        result = await self.store.get(candidate_id, job_id)

        if result is not None and self.cache:
            await self.cache.fill_match(result)
        return result

    async def get_cached_matches(
        self,
        candidate_id: int,
        limit: Optional[int] = None,
    ) -> List[MatchResult]:
        """Stored scores for a candidate, best first. Never recomputes."""
        return await self._ranked_read("candidate", candidate_id, limit, self.store.list_for_candidate)

    async def get_cached_matches_for_job(
        self,
        job_id: int,
        limit: Optional[int] = None,
    ) -> List[MatchResult]:
        """Stored scores for a job, best candidate first. Never recomputes."""
        return await self._ranked_read("job", job_id, limit, self.store.list_for_job)

    async def get_compatible_matches(
        self,
        candidate_id: int,
        limit: Optional[int] = None,
    ) -> List[MatchResult]:
        """Stored compatible scores for a candidate, best first."""
        results = await self.get_cached_matches(candidate_id)
        compatible = [r for r in results if r.compatible]
        return compatible[:limit] if limit is not None else compatible

    # ==================== Internals ====================

    async def _ranked_read(
        self,
        side: str,
        entity_id: int,
        limit: Optional[int],
        load: Callable[[int, Optional[int]], Awaitable[List[MatchResult]]],
    ) -> List[MatchResult]:
        # Generation is read before the store so a racing write invalidates this fill
        generation = await self.cache.ranked_generation(side, entity_id) if self.cache else None

        if generation is not None:
            cached = await self.cache.get_ranked(side, entity_id, limit, generation)
            if cached is not None:
                return cached

        results = await load(entity_id, limit)

        if generation is not None:
            await self.cache.set_ranked(side, entity_id, limit, generation, results)
        return results

    async def _require_candidate(self, candidate_id: int) -> CandidateProfile:
        candidate = await self.source.fetch_candidate_profile(candidate_id)
        if candidate is None:
            raise NotFoundError("candidate", candidate_id)
        return candidate

    async def _require_job(self, job_id: int) -> JobProfile:
        job = await self.source.fetch_job_profile(job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        return job

    async def _score_and_persist(
        self,
        candidate: CandidateProfile,
        job: JobProfile,
        needs: ResolvedNeeds,
    ) -> MatchResult:
        start = time.perf_counter()
        result = score_pair(candidate, job, needs, self.weights, self.threshold)
        await self.store.upsert(result)
        if self.cache:
            await self.cache.set_match(result)
        record_match_score_latency(time.perf_counter() - start)
        return result

    async def _with_timeout(self, candidate_id: int, job_id: int, work: PairWork) -> MatchResult:
        try:
            return await asyncio.wait_for(work(), timeout=self.pair_timeout)
        except asyncio.TimeoutError:
            raise ComputeTimeoutError(candidate_id, job_id, self.pair_timeout) from None

    async def _run_batch(
        self,
        pairs: List[Tuple[int, int, PairWork]],
        mode: str,
    ) -> BatchResult:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def worker(candidate_id: int, job_id: int, work: PairWork):
            async with semaphore:
                try:
                    return await self._with_timeout(candidate_id, job_id, work)
                except NotFoundError as e:
                    return self._skip(candidate_id, job_id, SKIP_NOT_FOUND, e)
                except ComputeTimeoutError as e:
                    return self._skip(candidate_id, job_id, SKIP_TIMEOUT, e)
                except Exception as e:
                    return self._skip(candidate_id, job_id, SKIP_ERROR, e)

        outcomes = await asyncio.gather(*(worker(c, j, w) for c, j, w in pairs))

        batch = BatchResult()
        for outcome in outcomes:
            if isinstance(outcome, SkippedPair):
                batch.skipped.append(outcome)
            else:
                batch.results.append(outcome)
                record_pair_computed(mode)
        batch.computed = len(batch.results)
        return batch

    def _skip(self, candidate_id: int, job_id: int, reason: str, error: Exception) -> SkippedPair:
        logger.warning(
            f"Skipping candidate {candidate_id} / job {job_id} ({reason}): "
            f"{type(error).__name__}: {error}"
        )
        record_pair_skipped(reason)
        return SkippedPair(candidate_id, job_id, reason, detail=str(error))


def _rank(
    results: List[MatchResult],
    tie_key: Callable[[MatchResult], int],
    limit: Optional[int],
) -> List[MatchResult]:
    ordered = sorted(results, key=lambda r: (-r.total_score, tie_key(r)))
    return ordered[:limit] if limit is not None else ordered


def build_match_engine(
    session_factory: async_sessionmaker,
    cache: Optional[MatchCache] = None,
    settings: Optional[Settings] = None,
) -> MatchEngine:
    """
    Wire a MatchEngine onto the platform database.

    Args:
        session_factory: async_sessionmaker for candidates, jobs and scores
        cache: Optional Redis cache (ignored when cache_enabled is off)
        settings: Settings override (tests)

    Returns:
        MatchEngine configured from settings
    """
    settings = settings or get_settings()
    return MatchEngine(
        source=SqlAlchemyDataSource(session_factory),
        store=SqlAlchemyMatchScoreStore(session_factory),
        cache=cache if settings.cache_enabled else None,
        weights=WeightTable(settings.match_weights),
        threshold=settings.match_compatibility_threshold,
        concurrency=settings.batch_concurrency,
        pair_timeout=settings.pair_timeout_seconds,
    )
