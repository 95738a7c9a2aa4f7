"""
Background Tasks for Match Recomputation

Celery tasks for:
- Rescoring one candidate against every active job
- Rescoring one job against every active candidate

Tasks are synchronous Celery entry points that run the async MatchEngine on
a fresh event loop with a NullPool database engine, so no connection or
Redis client outlives the loop it was created on.

All tasks support:
- Automatic retries on infrastructure failure
- Prometheus metrics
- Graceful handling of unknown ids (no retry)
"""

import asyncio
import logging
import time
from typing import Coroutine, Optional

from prometheus_client import Counter, Histogram
from sqlalchemy.ext.asyncio import AsyncEngine

from app.celery import celery_app
from app.config import get_settings
from app.database import create_session_factory, create_task_db_engine
from app.services.cache import MatchCache
from app.services.engine import BatchResult, MatchEngine, build_match_engine
from app.services.errors import NotFoundError

logger = logging.getLogger(__name__)

# ==================== Prometheus Metrics ====================

TASK_DURATION = Histogram(
    "celery_task_duration_seconds",
    "Time spent executing Celery tasks",
    ["task_name"]
)

TASK_FAILURES = Counter(
    "celery_task_failures_total",
    "Number of Celery task failures",
    ["task_name"]
)


# ==================== Helper Functions ====================

def run_async(coro: Coroutine):
    """Run a coroutine to completion on a new event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def build_task_engine(db_engine: AsyncEngine) -> MatchEngine:
    """MatchEngine bound to a per-task database engine and Redis client."""
    settings = get_settings()
    cache = MatchCache(redis_url=settings.redis_url) if settings.cache_enabled else None
    return build_match_engine(create_session_factory(db_engine), cache=cache, settings=settings)


async def _recompute(side: str, entity_id: int, limit: Optional[int]) -> BatchResult:
    db_engine = create_task_db_engine()
    engine = build_task_engine(db_engine)
    try:
        if side == "candidate":
            return await engine.recompute_for_candidate(entity_id, limit)
        return await engine.recompute_for_job(entity_id, limit)
    finally:
        if engine.cache:
            await engine.cache.close()
        await db_engine.dispose()


def _batch_stats(batch: BatchResult, id_field: str) -> dict:
    return {
        "computed": batch.computed,
        "skipped": batch.skipped_count,
        "returned": len(batch.results),
        "compatible": sum(1 for r in batch.results if r.compatible),
        "top": [
            {"id": getattr(r, id_field), "total_score": r.total_score, "band": r.band.value}
            for r in batch.results
        ],
    }


# ==================== Celery Tasks ====================

@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def recompute_candidate_matches(self, candidate_id: int, limit: Optional[int] = None) -> dict:
    """
    Rescore a candidate against all active jobs.

    Args:
        candidate_id: Candidate to rescore
        limit: Number of top results to report (all pairs are persisted)

    Returns:
        Dict with recomputation statistics
    """
    start_time = time.time()

    try:
        batch = run_async(_recompute("candidate", candidate_id, limit))

    except NotFoundError as e:
        logger.error(f"Recompute aborted: {e}")
        return {"candidate_id": candidate_id, "error": str(e)}

    except Exception as exc:
        TASK_FAILURES.labels(task_name="recompute_candidate_matches").inc()
        logger.error(f"Task failed for candidate {candidate_id}: {exc}")
        raise self.retry(exc=exc, countdown=60)

    finally:
        duration = time.time() - start_time
        TASK_DURATION.labels(task_name="recompute_candidate_matches").observe(duration)

    return {"candidate_id": candidate_id, **_batch_stats(batch, "job_id")}


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def recompute_job_matches(self, job_id: int, limit: Optional[int] = None) -> dict:
    """
    Rescore a job against all active candidates.

    Args:
        job_id: Job to rescore
        limit: Number of top results to report (all pairs are persisted)

    Returns:
        Dict with recomputation statistics
    """
    start_time = time.time()

    try:
        batch = run_async(_recompute("job", job_id, limit))

    except NotFoundError as e:
        logger.error(f"Recompute aborted: {e}")
        return {"job_id": job_id, "error": str(e)}

    except Exception as exc:
        TASK_FAILURES.labels(task_name="recompute_job_matches").inc()
        logger.error(f"Task failed for job {job_id}: {exc}")
        raise self.retry(exc=exc, countdown=60)

    finally:
        duration = time.time() - start_time
        TASK_DURATION.labels(task_name="recompute_job_matches").observe(duration)

    return {"job_id": job_id, **_batch_stats(batch, "candidate_id")}
