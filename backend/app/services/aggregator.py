"""
Aggregator - Weighted total, classification band and compatibility gate

Match Score Composition (default weights, sum = 100):
    - Accessibility coverage (35): needs the job satisfies
    - Subtype acceptance (25): disability subtypes the job accepts
    - Education (15): level vs requirement
    - Work regime (15): remote/hybrid/onsite
    - Location (10): city/state proximity

Total = round(Σ(sub_score × weight) / 100), clamped to 0-100

Bands:
    | Total | Band      |
    |-------|-----------|
    | ≥ 95  | perfect   |
    | ≥ 80  | excellent |
    | ≥ 60  | good      |
    | ≥ 40  | fair      |
    | < 40  | low       |

Compatible = total ≥ threshold (50) AND subtype score > 0. A job that
excludes all of the candidate's subtypes is never compatible.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.services.errors import WeightTableError
from app.services.needs import ResolvedNeeds
from app.services.profiles import CandidateProfile, JobProfile, resolve_job_offer
from app.services.scorers import SCORERS, Signal, clamp_score

DIMENSIONS = ("subtype", "accessibility", "education", "regime", "location")

DEFAULT_WEIGHTS = {
    "accessibility": 35,
    "subtype": 25,
    "education": 15,
    "regime": 15,
    "location": 10,
}

DEFAULT_COMPATIBILITY_THRESHOLD = 50


class Band(str, Enum):
    PERFECT = "perfect"
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    LOW = "low"

    @classmethod
    def for_score(cls, score: int) -> "Band":
        if score >= 95:
            return cls.PERFECT
        if score >= 80:
            return cls.EXCELLENT
        if score >= 60:
            return cls.GOOD
        if score >= 40:
            return cls.FAIR
        return cls.LOW


@dataclass(frozen=True)
class WeightTable:
    """
    Static, auditable weights per dimension.

    Raises:
        WeightTableError: If dimensions are missing/unknown, any weight is
            negative, or weights do not sum to 100
    """
    weights: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))

    def __post_init__(self):
        keys = set(self.weights)
        if keys != set(DIMENSIONS):
            missing = sorted(set(DIMENSIONS) - keys)
            unknown = sorted(keys - set(DIMENSIONS))
            raise WeightTableError(
                f"Weight table must cover {list(DIMENSIONS)} "
                f"(missing={missing}, unknown={unknown})"
            )
        if any(w < 0 for w in self.weights.values()):
            raise WeightTableError("Weights must be non-negative")
        total = sum(self.weights.values())
        if total != 100:
            raise WeightTableError(f"Weights must sum to 100, got {total}")

    def __getitem__(self, dimension: str) -> int:
        return self.weights[dimension]


@dataclass(frozen=True)
class DimensionScores:
    subtype: int
    accessibility: int
    education: int
    regime: int
    location: int

    def to_dict(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in DIMENSIONS}


@dataclass(frozen=True)
class MatchResult:
    """
    Scored (candidate, job) pair.

    Attributes:
        candidate_id: Candidate id
        job_id: Job id
        total_score: Weighted total (0-100)
        band: Classification band
        compatible: Passes threshold and subtype gate
        dimensions: Per-dimension sub-scores
        signals: Tags explaining the score
        breakdown: Opaque details payload (weights, met/unmet needs, ...)
        computed_at: When the score was computed (UTC)
    """
    candidate_id: int
    job_id: int
    total_score: int
    band: Band
    compatible: bool
    dimensions: DimensionScores
    signals: Tuple[str, ...] = ()
    breakdown: Dict[str, Any] = field(default_factory=dict)
    computed_at: Optional[datetime] = field(default=None, compare=False)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses and caching."""
        return {
            "candidate_id": self.candidate_id,
            "job_id": self.job_id,
            "total_score": self.total_score,
            "band": self.band.value,
            "compatible": self.compatible,
            "dimensions": self.dimensions.to_dict(),
            "signals": list(self.signals),
            "breakdown": self.breakdown,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MatchResult":
        computed_at = data.get("computed_at")
        if isinstance(computed_at, str):
            computed_at = datetime.fromisoformat(computed_at)
        return cls(
            candidate_id=data["candidate_id"],
            job_id=data["job_id"],
            total_score=data["total_score"],
            band=Band(data["band"]),
            compatible=data["compatible"],
            dimensions=DimensionScores(**data["dimensions"]),
            signals=tuple(data.get("signals") or ()),
            breakdown=dict(data.get("breakdown") or {}),
            computed_at=computed_at,
        )


def aggregate(
    sub_scores: Mapping[str, int],
    weights: WeightTable,
    threshold: int = DEFAULT_COMPATIBILITY_THRESHOLD,
) -> Tuple[int, Band, bool]:
    """
    Combine sub-scores into (total, band, compatible).

    Args:
        sub_scores: Dimension name -> 0-100 score
        weights: Weight table summing to 100
        threshold: Minimum total for compatibility

    Returns:
        Tuple of (total 0-100, band, compatible)
    """
    weighted = sum(sub_scores[name] * weights[name] for name in DIMENSIONS)
    total = clamp_score(weighted / 100)
    compatible = total >= threshold and sub_scores["subtype"] > 0
    return total, Band.for_score(total), compatible


def _build_breakdown(
    candidate: CandidateProfile,
    job: JobProfile,
    needs: ResolvedNeeds,
    sub_scores: Mapping[str, int],
    weights: WeightTable,
) -> Dict[str, Any]:
    offer = resolve_job_offer(job)
    needed = set(needs.accessibility_ids)

    met = [n.accessibility_id for n in needs if n.accessibility_id in offer.offered_accessibility_ids]
    unmet = [
        {"accessibility_id": n.accessibility_id, "priority": n.priority.value}
        for n in needs
        if n.accessibility_id not in offer.offered_accessibility_ids
    ]
    partially_mitigated = [
        n.accessibility_id for n in needs
        if n.partially_mitigated and n.accessibility_id not in offer.offered_accessibility_ids
    ]
    extras = sorted(offer.offered_accessibility_ids - needed)

    return {
        "dimensions": {
            name: {
                "score": sub_scores[name],
                "weight": weights[name],
                "contribution": round(sub_scores[name] * weights[name] / 100, 2),
            }
            for name in DIMENSIONS
        },
        "accessibility": {
            "met": met,
            "unmet": unmet,
            "partially_mitigated": partially_mitigated,
            "extras": extras,
            "neutralized_barriers": sorted(needs.neutralized_barrier_ids),
        },
        "subtypes": {
            "accepted": len(candidate.subtype_ids & offer.accepted_subtype_ids),
            "total": len(candidate.subtype_ids),
            "open_to_all": not offer.accepted_subtype_ids,
        },
        "invalid_references": [ref.to_dict() for ref in needs.invalid_references],
    }


def score_pair(
    candidate: CandidateProfile,
    job: JobProfile,
    needs: ResolvedNeeds,
    weights: Optional[WeightTable] = None,
    threshold: int = DEFAULT_COMPATIBILITY_THRESHOLD,
    now: Optional[datetime] = None,
) -> MatchResult:
    """
    Run every dimension scorer and aggregate into a MatchResult.

    Pure apart from the computed_at timestamp.

    Args:
        candidate: Candidate read view
        job: Job read view
        needs: Resolved needs of the candidate
        weights: Weight table (default 35/25/15/15/10)
        threshold: Compatibility threshold
        now: Timestamp override (tests)

    Returns:
        MatchResult
    """
    weights = weights or WeightTable()
    sub_scores: Dict[str, int] = {}
    signals: List[str] = []

    for name, scorer in SCORERS.items():
        score, dimension_signals = scorer(candidate, job, needs)
        sub_scores[name] = score
        signals.extend(s.value for s in dimension_signals)

    if needs.invalid_references:
        signals.append(Signal.INVALID_REFERENCE.value)

    total, band, compatible = aggregate(sub_scores, weights, threshold)

    return MatchResult(
        candidate_id=candidate.id,
        job_id=job.id,
        total_score=total,
        band=band,
        compatible=compatible,
        dimensions=DimensionScores(**sub_scores),
        signals=tuple(signals),
        breakdown=_build_breakdown(candidate, job, needs, sub_scores, weights),
        computed_at=now or datetime.now(timezone.utc),
    )
