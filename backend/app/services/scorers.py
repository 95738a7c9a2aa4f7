"""
Dimension Scorers - Independent 0-100 sub-scores per compatibility dimension

Dimensions:
    - Subtype acceptance: does the job accept the candidate's disability subtypes
    - Accessibility coverage: weighted share of needs the job satisfies
    - Education: candidate level vs job requirement on a 10-level scale
    - Work regime: remote > hybrid > unspecified > onsite
    - Location: flat city/state equality (no geocoding)

Every scorer has the signature

    (CandidateProfile, JobProfile, ResolvedNeeds) -> (score, signals)

and is total: empty or missing optional data yields a documented neutral
score rather than an exception. Signals are structured tags for the UI to
render; no prose is produced here.

Neutral Fallbacks:
    | Case                                  | Score |
    |---------------------------------------|-------|
    | Candidate has no subtypes             | 50    |
    | Candidate has no accessibility needs  | 100   |
    | Job has no education requirement      | 100   |
    | Candidate education not informed      | 50    |
    | Education label not recognised        | 75    |
    | Work regime not specified             | 75    |
    | Candidate location missing            | 50    |
    | Employer location missing             | 75    |
"""

import math
from enum import Enum
from typing import Callable, Dict, Tuple

from app.services.needs import ResolvedNeeds
from app.services.profiles import (
    CandidateProfile,
    JobProfile,
    WorkRegime,
    education_rank,
    is_education_specified,
    location_key,
    resolve_job_offer,
)


class Signal(str, Enum):
    """Structured tags explaining a score. Values are '<dimension>.<fact>'."""

    SUBTYPE_OPEN_TO_ALL = "subtype.open_to_all"
    SUBTYPE_FULLY_ACCEPTED = "subtype.fully_accepted"
    SUBTYPE_PARTIALLY_ACCEPTED = "subtype.partially_accepted"
    SUBTYPE_NOT_ACCEPTED = "subtype.not_accepted"
    SUBTYPE_PROFILE_INCOMPLETE = "subtype.complete_profile"

    ACCESSIBILITY_NO_NEEDS = "accessibility.no_needs"
    ACCESSIBILITY_ALL_MET = "accessibility.all_needs_met"
    ACCESSIBILITY_SOME_MET = "accessibility.some_needs_met"
    ACCESSIBILITY_UNMET = "accessibility.needs_unmet"
    ACCESSIBILITY_PARTIALLY_MITIGATED = "accessibility.partially_mitigated"
    ACCESSIBILITY_ASSISTIVE_BONUS = "accessibility.assistive_bonus"
    ACCESSIBILITY_BARRIERS_NEUTRALIZED = "accessibility.barriers_neutralized"

    EDUCATION_NO_REQUIREMENT = "education.no_requirement"
    EDUCATION_MEETS = "education.meets_requirement"
    EDUCATION_EXCEEDS = "education.exceeds_requirement"
    EDUCATION_ONE_LEVEL_BELOW = "education.one_level_below"
    EDUCATION_BELOW = "education.below_requirement"
    EDUCATION_COMPLETE_PROFILE = "education.complete_profile"
    EDUCATION_UNRECOGNIZED = "education.unrecognized_level"

    REGIME_REMOTE = "regime.remote"
    REGIME_HYBRID = "regime.hybrid"
    REGIME_ONSITE_VERIFY = "regime.verify_site_accessibility"
    REGIME_UNSPECIFIED = "regime.unspecified"

    LOCATION_REMOTE = "location.remote"
    LOCATION_SAME_CITY = "location.same_city"
    LOCATION_SAME_STATE = "location.same_state"
    LOCATION_OTHER_STATE = "location.other_state"
    LOCATION_COMPLETE_PROFILE = "location.complete_profile"
    LOCATION_EMPLOYER_UNKNOWN = "location.employer_unknown"

    INVALID_REFERENCE = "data.invalid_reference"


ScoreResult = Tuple[int, Tuple[Signal, ...]]
Scorer = Callable[[CandidateProfile, JobProfile, ResolvedNeeds], ScoreResult]

NEUTRAL_NO_SUBTYPES = 50
NEUTRAL_EDUCATION_MISSING = 50
NEUTRAL_EDUCATION_UNRECOGNIZED = 75
NEUTRAL_REGIME = 75
NEUTRAL_CANDIDATE_LOCATION = 50
NEUTRAL_EMPLOYER_LOCATION = 75

EDUCATION_PENALTY_PER_LEVEL = 25
MITIGATION_BONUS_PER_BARRIER = 5
MITIGATION_BONUS_CAP = 15

REGIME_SCORES = {
    WorkRegime.REMOTE: (100, Signal.REGIME_REMOTE),
    WorkRegime.HYBRID: (85, Signal.REGIME_HYBRID),
    WorkRegime.ONSITE: (60, Signal.REGIME_ONSITE_VERIFY),
    WorkRegime.UNSPECIFIED: (NEUTRAL_REGIME, Signal.REGIME_UNSPECIFIED),
}


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


def score_subtype(
    candidate: CandidateProfile,
    job: JobProfile,
    needs: ResolvedNeeds,
) -> ScoreResult:
    """Share of the candidate's subtypes the job accepts."""
    accepted = resolve_job_offer(job).accepted_subtype_ids

    if not accepted:
        return 100, (Signal.SUBTYPE_OPEN_TO_ALL,)

    if not candidate.subtype_ids:
        return NEUTRAL_NO_SUBTYPES, (Signal.SUBTYPE_PROFILE_INCOMPLETE,)

    matched = len(candidate.subtype_ids & accepted)
    score = round_half_up(100 * matched / len(candidate.subtype_ids))

    if score == 100:
        return score, (Signal.SUBTYPE_FULLY_ACCEPTED,)
    if score > 0:
        return score, (Signal.SUBTYPE_PARTIALLY_ACCEPTED,)
    return score, (Signal.SUBTYPE_NOT_ACCEPTED,)


def mitigation_bonus(needs: ResolvedNeeds) -> int:
    """Bonus points for barriers fully neutralized by assistive resources."""
    return min(
        MITIGATION_BONUS_CAP,
        MITIGATION_BONUS_PER_BARRIER * len(needs.neutralized_barrier_ids),
    )


def score_accessibility(
    candidate: CandidateProfile,
    job: JobProfile,
    needs: ResolvedNeeds,
) -> ScoreResult:
    """
    Weighted share of the candidate's needs the job satisfies.

    Weights: essential=3, important=2, desirable=1. An offered need earns
    full weight; a partially mitigated need that is not offered earns half.
    """
    signals = []
    if needs.neutralized_barrier_ids:
        signals.append(Signal.ACCESSIBILITY_BARRIERS_NEUTRALIZED)

    if not needs.needs:
        signals.insert(0, Signal.ACCESSIBILITY_NO_NEEDS)
        return 100, tuple(signals)

    offered = resolve_job_offer(job).offered_accessibility_ids
    satisfied = 0.0
    total = 0
    met = 0
    mitigated = 0

    for need in needs.needs:
        weight = need.priority.weight
        total += weight
        if need.accessibility_id in offered:
            satisfied += weight
            met += 1
        elif need.partially_mitigated:
            satisfied += weight / 2
            mitigated += 1

    score = round_half_up(100 * satisfied / total)

    bonus = mitigation_bonus(needs)
    if bonus and score < 100:
        score = min(100, score + bonus)
        signals.append(Signal.ACCESSIBILITY_ASSISTIVE_BONUS)

    if met == len(needs.needs):
        signals.insert(0, Signal.ACCESSIBILITY_ALL_MET)
    else:
        if met:
            signals.insert(0, Signal.ACCESSIBILITY_SOME_MET)
        signals.append(Signal.ACCESSIBILITY_UNMET)
    if mitigated:
        signals.append(Signal.ACCESSIBILITY_PARTIALLY_MITIGATED)

    return score, tuple(signals)


def score_education(
    candidate: CandidateProfile,
    job: JobProfile,
    needs: ResolvedNeeds,
) -> ScoreResult:
    """Candidate education against the job requirement (-25 per level short)."""
    if not is_education_specified(job.education):
        return 100, (Signal.EDUCATION_NO_REQUIREMENT,)

    if not is_education_specified(candidate.education):
        return NEUTRAL_EDUCATION_MISSING, (Signal.EDUCATION_COMPLETE_PROFILE,)

    candidate_rank = education_rank(candidate.education)
    job_rank = education_rank(job.education)
    if candidate_rank is None or job_rank is None:
        return NEUTRAL_EDUCATION_UNRECOGNIZED, (Signal.EDUCATION_UNRECOGNIZED,)

    gap = job_rank - candidate_rank
    if gap <= -2:
        return 100, (Signal.EDUCATION_EXCEEDS,)
    if gap <= 0:
        return 100, (Signal.EDUCATION_MEETS,)

    score = max(0, 100 - EDUCATION_PENALTY_PER_LEVEL * gap)
    if gap == 1:
        return score, (Signal.EDUCATION_ONE_LEVEL_BELOW,)
    return score, (Signal.EDUCATION_BELOW,)


def score_regime(
    candidate: CandidateProfile,
    job: JobProfile,
    needs: ResolvedNeeds,
) -> ScoreResult:
    score, signal = REGIME_SCORES[job.regime]
    return score, (signal,)


def score_location(
    candidate: CandidateProfile,
    job: JobProfile,
    needs: ResolvedNeeds,
) -> ScoreResult:
    """Flat city/state equality; remote jobs ignore geography."""
    if job.regime == WorkRegime.REMOTE:
        return 100, (Signal.LOCATION_REMOTE,)

    candidate_city = location_key(candidate.city)
    candidate_state = location_key(candidate.state)
    employer_city = location_key(job.city)
    employer_state = location_key(job.state)

    if not candidate_city and not candidate_state:
        return NEUTRAL_CANDIDATE_LOCATION, (Signal.LOCATION_COMPLETE_PROFILE,)

    if not employer_city and not employer_state:
        return NEUTRAL_EMPLOYER_LOCATION, (Signal.LOCATION_EMPLOYER_UNKNOWN,)

    if candidate_city and candidate_city == employer_city:
        return 100, (Signal.LOCATION_SAME_CITY,)

    if candidate_state and candidate_state == employer_state:
        return 80, (Signal.LOCATION_SAME_STATE,)

    return 40, (Signal.LOCATION_OTHER_STATE,)


# Dimension name -> scorer, in breakdown order
SCORERS: Dict[str, Scorer] = {
    "subtype": score_subtype,
    "accessibility": score_accessibility,
    "education": score_education,
    "regime": score_regime,
    "location": score_location,
}
