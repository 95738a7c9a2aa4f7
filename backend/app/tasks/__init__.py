"""
Celery Task Modules

Background tasks for match scoring:
- matches.py: Candidate and job batch recomputation
"""

from app.tasks.matches import (
    recompute_candidate_matches,
    recompute_job_matches,
)

__all__ = [
    "recompute_candidate_matches",
    "recompute_job_matches",
]
