from app.schemas.match import (
    DimensionScoresResponse,
    MatchResultResponse,
    SkippedPairResponse,
    BatchMatchResponse,
    MatchListResponse,
    TaskQueuedResponse,
)

__all__ = [
    "DimensionScoresResponse",
    "MatchResultResponse",
    "SkippedPairResponse",
    "BatchMatchResponse",
    "MatchListResponse",
    "TaskQueuedResponse",
]
