"""
Engine read views of candidates and jobs.

CandidateProfile and JobProfile are immutable projections fetched fresh for
each computation. They carry ids only; descriptions and display data stay
with the systems that own them.

Also holds the normalizers for free-text fields stored by the platform:
    - Education: 10-level ordered scale (incomplete primary → doctorate)
    - Work regime: remote | hybrid | onsite | unspecified
    - City/state: case and whitespace insensitive comparison keys
"""

import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from app.services.taxonomy import Priority


# Ordered lowest → highest; index is the level rank
EDUCATION_LEVELS = [
    "incomplete_primary",
    "primary",
    "incomplete_secondary",
    "secondary",
    "technical",
    "incomplete_higher",
    "higher",
    "postgraduate",
    "masters",
    "doctorate",
]

# Platform labels (Portuguese) and common English variants
EDUCATION_ALIASES = {
    "fundamental_incompleto": "incomplete_primary",
    "fundamental": "primary",
    "fundamental_completo": "primary",
    "medio_incompleto": "incomplete_secondary",
    "medio": "secondary",
    "medio_completo": "secondary",
    "tecnico": "technical",
    "superior_incompleto": "incomplete_higher",
    "superior": "higher",
    "superior_completo": "higher",
    "pos_graduacao": "postgraduate",
    "mestrado": "masters",
    "doutorado": "doctorate",
    "high_school": "secondary",
    "bachelor": "higher",
    "bachelors": "higher",
    "master": "masters",
    "phd": "doctorate",
}

_UNSPECIFIED_LABELS = {"", "nao_informado", "not_informed", "unspecified", "none"}


def normalize_label(value: Optional[str]) -> str:
    """
    Normalize a free-text label into a comparison key.

    Strips accents, lowercases, and joins words with underscores.
    e.g., "Pós-Graduação" -> "pos_graduacao"
    """
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    key = stripped.strip().lower()
    key = re.sub(r"[\s\-]+", "_", key)
    return key


def education_rank(value: Optional[str]) -> Optional[int]:
    """
    Position of an education label on the 10-level scale.

    Returns:
        Rank 0-9, or None when the label is missing or unrecognised.
        Use is_education_specified() to tell the two apart.
    """
    key = normalize_label(value)
    if key in _UNSPECIFIED_LABELS:
        return None
    key = EDUCATION_ALIASES.get(key, key)
    if key in EDUCATION_LEVELS:
        return EDUCATION_LEVELS.index(key)
    return None


def is_education_specified(value: Optional[str]) -> bool:
    return normalize_label(value) not in _UNSPECIFIED_LABELS


class WorkRegime(str, Enum):
    REMOTE = "remote"
    HYBRID = "hybrid"
    ONSITE = "onsite"
    UNSPECIFIED = "unspecified"

    @classmethod
    def parse(cls, value: Optional[str]) -> "WorkRegime":
        """
        Map a free-text regime to a WorkRegime.

        Checks remote first, then hybrid, then onsite, so labels such as
        "remote or hybrid" resolve to REMOTE.
        """
        key = normalize_label(value)
        if not key:
            return cls.UNSPECIFIED
        if any(word in key for word in ("remote", "remoto", "home")):
            return cls.REMOTE
        if any(word in key for word in ("hybrid", "hibrido")):
            return cls.HYBRID
        if any(word in key for word in ("onsite", "on_site", "presencial", "in_office")):
            return cls.ONSITE
        return cls.UNSPECIFIED


def location_key(value: Optional[str]) -> str:
    """Case and whitespace insensitive key for city/state equality."""
    if not value:
        return ""
    return " ".join(value.lower().split())


@dataclass(frozen=True)
class DirectNeed:
    """An accessibility the candidate asked for explicitly."""
    accessibility_id: int
    priority: Priority = Priority.IMPORTANT


@dataclass(frozen=True)
class CandidateProfile:
    """
    Candidate read view used by the match engine.

    Attributes:
        id: Candidate id
        subtype_ids: Disability subtypes of the candidate
        subtype_barriers: Barriers the candidate selected per subtype.
            Subtypes missing here use the taxonomy's barriers.
        direct_needs: Explicit accessibility needs with priority
        education: Education level label (free text)
        city: City (free text)
        state: State (free text)
    """
    id: int
    subtype_ids: FrozenSet[int] = frozenset()
    subtype_barriers: Dict[int, FrozenSet[int]] = field(default_factory=dict)
    direct_needs: Tuple[DirectNeed, ...] = ()
    education: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


@dataclass(frozen=True)
class JobProfile:
    """
    Job read view used by the match engine.

    Attributes:
        id: Job id
        accepted_subtype_ids: Accepted subtypes (empty = accepts all)
        offered_accessibility_ids: Accessibilities the job offers
        education: Required education label (None = no requirement)
        regime: Normalized work regime
        city: Employer city
        state: Employer state
    """
    id: int
    accepted_subtype_ids: FrozenSet[int] = frozenset()
    offered_accessibility_ids: FrozenSet[int] = frozenset()
    education: Optional[str] = None
    regime: WorkRegime = WorkRegime.UNSPECIFIED
    city: Optional[str] = None
    state: Optional[str] = None


@dataclass(frozen=True)
class JobOffer:
    """What a job offers, in the shape the scorers consume."""
    offered_accessibility_ids: FrozenSet[int]
    accepted_subtype_ids: FrozenSet[int]


def resolve_job_offer(job: JobProfile) -> JobOffer:
    """Project a job onto its offered accessibilities and accepted subtypes."""
    return JobOffer(
        offered_accessibility_ids=frozenset(job.offered_accessibility_ids),
        accepted_subtype_ids=frozenset(job.accepted_subtype_ids),
    )
