from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
from app.config import get_settings
from app.database import async_session
from app.schemas import (
    BatchMatchResponse,
    MatchListResponse,
    MatchResultResponse,
    TaskQueuedResponse,
)
from app.services.cache import get_cache
from app.services.engine import MatchEngine, build_match_engine
from app.services.errors import ComputeTimeoutError, NotFoundError

router = APIRouter()


async def get_engine() -> MatchEngine:
    settings = get_settings()
    cache = await get_cache() if settings.cache_enabled else None
    return build_match_engine(async_session, cache=cache, settings=settings)


@router.get("/candidates/{candidate_id}/jobs/{job_id}", response_model=MatchResultResponse)
async def compute_match(
    candidate_id: int,
    job_id: int,
    engine: MatchEngine = Depends(get_engine),
):
    try:
        result = await engine.compute_match(candidate_id, job_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ComputeTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))

    return MatchResultResponse.from_result(result)


@router.get("/candidates/{candidate_id}/jobs/{job_id}/cached", response_model=MatchResultResponse)
async def get_stored_match(
    candidate_id: int,
    job_id: int,
    engine: MatchEngine = Depends(get_engine),
):
    result = await engine.get_match_result(candidate_id, job_id)
    if result is None:
        raise HTTPException(
            status_code=404,
            detail=f"No stored score for candidate {candidate_id} and job {job_id}",
        )

    return MatchResultResponse.from_result(result)


@router.post("/candidates/{candidate_id}/recompute", response_model=BatchMatchResponse)
async def recompute_for_candidate(
    candidate_id: int,
    limit: Optional[int] = Query(None, ge=1, le=500),
    engine: MatchEngine = Depends(get_engine),
):
    limit = limit or get_settings().candidate_batch_limit
    try:
        batch = await engine.recompute_for_candidate(candidate_id, limit)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return BatchMatchResponse.from_batch(batch)


@router.post("/jobs/{job_id}/recompute", response_model=BatchMatchResponse)
async def recompute_for_job(
    job_id: int,
    limit: Optional[int] = Query(None, ge=1, le=500),
    engine: MatchEngine = Depends(get_engine),
):
    limit = limit or get_settings().job_batch_limit
    try:
        batch = await engine.recompute_for_job(job_id, limit)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return BatchMatchResponse.from_batch(batch)


@router.post(
    "/candidates/{candidate_id}/recompute/async",
    response_model=TaskQueuedResponse,
    status_code=202,
)
async def enqueue_candidate_recompute(
    candidate_id: int,
    limit: Optional[int] = Query(None, ge=1, le=500),
):
    # Import here to avoid loading Celery for sync-only callers
    from app.tasks.matches import recompute_candidate_matches

    limit = limit or get_settings().candidate_batch_limit
    task = recompute_candidate_matches.delay(candidate_id, limit)
    return TaskQueuedResponse(task_id=str(task.id))


@router.post(
    "/jobs/{job_id}/recompute/async",
    response_model=TaskQueuedResponse,
    status_code=202,
)
async def enqueue_job_recompute(
    job_id: int,
    limit: Optional[int] = Query(None, ge=1, le=500),
):
    from app.tasks.matches import recompute_job_matches

    limit = limit or get_settings().job_batch_limit
    task = recompute_job_matches.delay(job_id, limit)
    return TaskQueuedResponse(task_id=str(task.id))


@router.get("/candidates/{candidate_id}", response_model=MatchListResponse)
async def list_candidate_matches(
    candidate_id: int,
    limit: Optional[int] = Query(None, ge=1, le=500),
    compatible_only: bool = Query(False),
    engine: MatchEngine = Depends(get_engine),
):
    if compatible_only:
        results = await engine.get_compatible_matches(candidate_id, limit)
    else:
        results = await engine.get_cached_matches(candidate_id, limit)

    return MatchListResponse(
        matches=[MatchResultResponse.from_result(r) for r in results],
        total=len(results),
    )


@router.get("/jobs/{job_id}", response_model=MatchListResponse)
async def list_job_matches(
    job_id: int,
    limit: Optional[int] = Query(None, ge=1, le=500),
    engine: MatchEngine = Depends(get_engine),
):
    results = await engine.get_cached_matches_for_job(job_id, limit)

    return MatchListResponse(
        matches=[MatchResultResponse.from_result(r) for r in results],
        total=len(results),
    )
