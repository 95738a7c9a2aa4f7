from app.models.taxonomy import (
    DisabilityType,
    DisabilitySubtype,
    Barrier,
    Accessibility,
    AssistiveResource,
    ResourceMitigation,
    subtype_barriers,
    barrier_accessibilities,
)
from app.models.candidate import (
    Candidate,
    CandidateSubtype,
    CandidateSubtypeBarrier,
    CandidateAccessibility,
    CandidateAssistiveResource,
)
from app.models.job import Company, Job, job_accessibilities, job_accepted_subtypes
from app.models.match_score import MatchScore

__all__ = [
    "DisabilityType",
    "DisabilitySubtype",
    "Barrier",
    "Accessibility",
    "AssistiveResource",
    "ResourceMitigation",
    "subtype_barriers",
    "barrier_accessibilities",
    "Candidate",
    "CandidateSubtype",
    "CandidateSubtypeBarrier",
    "CandidateAccessibility",
    "CandidateAssistiveResource",
    "Company",
    "Job",
    "job_accessibilities",
    "job_accepted_subtypes",
    "MatchScore",
]
