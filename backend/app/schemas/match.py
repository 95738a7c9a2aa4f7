from pydantic import BaseModel
from datetime import datetime
from typing import Any, Optional

from app.services.aggregator import MatchResult
from app.services.engine import BatchResult


class DimensionScoresResponse(BaseModel):
    subtype: int
    accessibility: int
    education: int
    regime: int
    location: int


class MatchResultResponse(BaseModel):
    candidate_id: int
    job_id: int
    total_score: int
    band: str
    compatible: bool
    dimensions: DimensionScoresResponse
    signals: list[str]
    breakdown: dict[str, Any]
    computed_at: Optional[datetime] = None

    @classmethod
    def from_result(cls, result: MatchResult) -> "MatchResultResponse":
        return cls.model_validate(result.to_dict())


class SkippedPairResponse(BaseModel):
    candidate_id: int
    job_id: int
    reason: str
    detail: str = ""


class BatchMatchResponse(BaseModel):
    results: list[MatchResultResponse]
    computed: int
    skipped_count: int
    skipped: list[SkippedPairResponse]

    @classmethod
    def from_batch(cls, batch: BatchResult) -> "BatchMatchResponse":
        return cls(
            results=[MatchResultResponse.from_result(r) for r in batch.results],
            computed=batch.computed,
            skipped_count=batch.skipped_count,
            skipped=[SkippedPairResponse(**s.to_dict()) for s in batch.skipped],
        )


class MatchListResponse(BaseModel):
    matches: list[MatchResultResponse]
    total: int


class TaskQueuedResponse(BaseModel):
    task_id: str
    status: str = "queued"
