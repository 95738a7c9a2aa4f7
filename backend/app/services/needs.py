"""
Candidate Need Resolver - What accessibilities a candidate needs

Resolution Steps:
    1. Direct needs: accessibilities the candidate asked for, with priority
    2. Derived needs: for each subtype → barrier → accessibility, add an
       "important" need unless a higher priority is already present
    3. Mitigation: the strongest assistive-resource mitigation per barrier
       - high:   needs derived from that barrier are dropped (neutralized)
       - medium: needs are kept and flagged partially mitigated
       - low:    no effect
    4. Deduplicate by accessibility id, keeping the highest priority and
       the strongest mitigation flag

References to ids missing from the taxonomy snapshot are dropped and
reported as InvalidReference records instead of failing resolution.

Complexity: O(S * B * A) over subtypes, barriers per subtype and
accessibilities per barrier, all via adjacency lookups.
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Tuple

from app.services.profiles import CandidateProfile
from app.services.taxonomy import (
    Efficiency,
    Mitigation,
    Priority,
    TaxonomyGraph,
    best_mitigations,
)

logger = logging.getLogger(__name__)

SOURCE_DIRECT = "direct"
SOURCE_BARRIER = "barrier"


@dataclass(frozen=True)
class InvalidReference:
    """A profile reference that does not exist in the taxonomy snapshot."""
    kind: str  # subtype | barrier | accessibility
    ref_id: int

    def to_dict(self) -> dict:
        return {"kind": self.kind, "id": self.ref_id}


@dataclass(frozen=True)
class ResolvedNeed:
    """
    One deduplicated accessibility need.

    Attributes:
        accessibility_id: Accessibility needed
        priority: Highest priority seen for it
        partially_mitigated: A medium-efficiency resource covers a barrier
            behind this need (earns half credit when not offered)
        source: "direct" if the candidate asked for it, else "barrier"
        barrier_ids: Barriers this need was derived from
    """
    accessibility_id: int
    priority: Priority
    partially_mitigated: bool = False
    source: str = SOURCE_DIRECT
    barrier_ids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class ResolvedNeeds:
    """
    Result of need resolution for one candidate.

    Attributes:
        needs: Ordered, deduplicated needs
        neutralized_barrier_ids: Barriers fully neutralized by a resource
        invalid_references: Dropped references to unknown taxonomy ids
    """
    needs: Tuple[ResolvedNeed, ...] = ()
    neutralized_barrier_ids: FrozenSet[int] = frozenset()
    invalid_references: Tuple[InvalidReference, ...] = ()

    def __len__(self) -> int:
        return len(self.needs)

    def __iter__(self):
        return iter(self.needs)

    @property
    def accessibility_ids(self) -> List[int]:
        return [need.accessibility_id for need in self.needs]


class _NeedBuilder:
    """Accumulates needs keyed by accessibility id, preserving first-seen order."""

    def __init__(self):
        self._needs: Dict[int, ResolvedNeed] = {}

    def add(self, need: ResolvedNeed) -> None:
        existing = self._needs.get(need.accessibility_id)
        if existing is None:
            self._needs[need.accessibility_id] = need
            return

        priority = need.priority if need.priority.rank > existing.priority.rank else existing.priority
        barrier_ids = existing.barrier_ids + tuple(
            b for b in need.barrier_ids if b not in existing.barrier_ids
        )
        self._needs[need.accessibility_id] = ResolvedNeed(
            accessibility_id=existing.accessibility_id,
            priority=priority,
            partially_mitigated=existing.partially_mitigated or need.partially_mitigated,
            source=existing.source,
            barrier_ids=barrier_ids,
        )

    def build(self) -> Tuple[ResolvedNeed, ...]:
        return tuple(self._needs.values())


def candidate_barriers(
    candidate: CandidateProfile,
    taxonomy: TaxonomyGraph,
) -> Dict[int, FrozenSet[int]]:
    """
    Barriers per subtype for a candidate.

    Uses the candidate's own selection for a subtype when present,
    otherwise the subtype's barriers from the taxonomy.
    """
    result: Dict[int, FrozenSet[int]] = {}
    for subtype_id in sorted(candidate.subtype_ids):
        selected = candidate.subtype_barriers.get(subtype_id)
        if selected:
            result[subtype_id] = frozenset(selected)
        else:
            result[subtype_id] = taxonomy.barriers_for_subtype(subtype_id)
    return result


def resolve_needs(
    candidate: CandidateProfile,
    taxonomy: TaxonomyGraph,
    mitigations: Iterable[Mitigation] = (),
) -> ResolvedNeeds:
    """
    Resolve a candidate's full accessibility need set.

    Args:
        candidate: Candidate read view
        taxonomy: Taxonomy snapshot for this request
        mitigations: Mitigations from the candidate's assistive resources

    Returns:
        ResolvedNeeds (deterministic for a fixed snapshot)
    """
    builder = _NeedBuilder()
    invalid: List[InvalidReference] = []

    # 1. Direct needs
    for direct in sorted(candidate.direct_needs, key=lambda n: n.accessibility_id):
        if not taxonomy.has_accessibility(direct.accessibility_id):
            invalid.append(InvalidReference("accessibility", direct.accessibility_id))
            continue
        builder.add(ResolvedNeed(
            accessibility_id=direct.accessibility_id,
            priority=direct.priority,
            source=SOURCE_DIRECT,
        ))

    # 2-3. Derived needs, filtered by mitigation
    best = best_mitigations(mitigations)
    neutralized = set()

    for subtype_id, barrier_ids in candidate_barriers(candidate, taxonomy).items():
        if not taxonomy.has_subtype(subtype_id):
            invalid.append(InvalidReference("subtype", subtype_id))
            continue

        for barrier_id in sorted(barrier_ids):
            if not taxonomy.has_barrier(barrier_id):
                invalid.append(InvalidReference("barrier", barrier_id))
                continue

            efficiency = best.get(barrier_id)
            if efficiency == Efficiency.HIGH:
                neutralized.add(barrier_id)
                continue

            for accessibility_id in sorted(taxonomy.accessibilities_for_barrier(barrier_id)):
                if not taxonomy.has_accessibility(accessibility_id):
                    invalid.append(InvalidReference("accessibility", accessibility_id))
                    continue
                builder.add(ResolvedNeed(
                    accessibility_id=accessibility_id,
                    priority=Priority.IMPORTANT,
                    partially_mitigated=efficiency == Efficiency.MEDIUM,
                    source=SOURCE_BARRIER,
                    barrier_ids=(barrier_id,),
                ))

    # Same reference can be hit from several subtypes
    unique_invalid = tuple(dict.fromkeys(invalid))
    for ref in unique_invalid:
        logger.warning(
            f"Candidate {candidate.id} references unknown {ref.kind} {ref.ref_id}; "
            f"dropped from scoring"
        )

    return ResolvedNeeds(
        needs=builder.build(),
        neutralized_barrier_ids=frozenset(neutralized),
        invalid_references=unique_invalid,
    )
