"""
Match engine exceptions.

NotFoundError is always surfaced to the immediate caller. ComputeTimeoutError
is raised for a single pair that exceeds its time budget; batch operations
turn it (and any other per-pair failure) into a skipped pair.
"""

from typing import Optional


class MatchEngineError(Exception):
    """Base class for match engine errors."""
    pass


class NotFoundError(MatchEngineError):
    """Raised when a candidate or job id does not resolve."""

    def __init__(self, entity: str, entity_id: int):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} not found: {entity_id}")


class ComputeTimeoutError(MatchEngineError):
    """Raised when scoring a single pair exceeds the per-pair timeout."""

    def __init__(self, candidate_id: int, job_id: int, timeout: Optional[float]):
        self.candidate_id = candidate_id
        self.job_id = job_id
        self.timeout = timeout
        super().__init__(
            f"Scoring candidate {candidate_id} against job {job_id} "
            f"exceeded {timeout}s"
        )


class WeightTableError(ValueError):
    """Raised when a configured weight table is invalid."""
    pass
