"""
Taxonomy Accessor - Disability reference graph as adjacency maps

The graph is walked as:

    Subtype → Barrier → Accessibility

Instead of repeated joins, the graph is loaded once per request (or once per
batch) into an immutable TaxonomyGraph holding precomputed adjacency maps.
Lookups are O(1) and unknown ids resolve to an empty set.

Also defines the two orderings the engine relies on:
    - Priority: essential > important > desirable
    - Mitigation efficiency: high > medium > low

Usage:
    graph = TaxonomyGraph.from_rows(
        subtype_ids=[1, 2],
        barrier_ids=[10],
        accessibility_ids=[100, 101],
        subtype_barrier_pairs=[(1, 10)],
        barrier_accessibility_pairs=[(10, 100), (10, 101)],
    )
    graph.accessibilities_for_barrier(10)  # frozenset({100, 101})
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Tuple


class Priority(str, Enum):
    """Candidate accessibility need priority, ordered by rank."""

    ESSENTIAL = "essential"
    IMPORTANT = "important"
    DESIRABLE = "desirable"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @property
    def weight(self) -> int:
        """Weight used by accessibility coverage scoring."""
        return _PRIORITY_RANK[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> "Priority":
        """
        Parse a stored priority label.

        Accepts English values and the platform's Portuguese labels.
        Missing or unknown values read as IMPORTANT.
        """
        if not value:
            return cls.IMPORTANT
        key = value.strip().lower()
        return _PRIORITY_ALIASES.get(key, cls.IMPORTANT)


class Efficiency(str, Enum):
    """Assistive resource mitigation efficiency, ordered by rank."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _EFFICIENCY_RANK[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> "Efficiency":
        """Parse a stored efficiency label. Missing or unknown values read as LOW."""
        if not value:
            return cls.LOW
        key = value.strip().lower()
        return _EFFICIENCY_ALIASES.get(key, cls.LOW)


_PRIORITY_RANK = {
    Priority.ESSENTIAL: 3,
    Priority.IMPORTANT: 2,
    Priority.DESIRABLE: 1,
}

_PRIORITY_ALIASES = {
    "essential": Priority.ESSENTIAL,
    "essencial": Priority.ESSENTIAL,
    "important": Priority.IMPORTANT,
    "importante": Priority.IMPORTANT,
    "desirable": Priority.DESIRABLE,
    "desejavel": Priority.DESIRABLE,
    "desejável": Priority.DESIRABLE,
}

_EFFICIENCY_RANK = {
    Efficiency.HIGH: 3,
    Efficiency.MEDIUM: 2,
    Efficiency.LOW: 1,
}

_EFFICIENCY_ALIASES = {
    "high": Efficiency.HIGH,
    "alta": Efficiency.HIGH,
    "medium": Efficiency.MEDIUM,
    "media": Efficiency.MEDIUM,
    "média": Efficiency.MEDIUM,
    "low": Efficiency.LOW,
    "baixa": Efficiency.LOW,
}


@dataclass(frozen=True)
class Mitigation:
    """
    One assistive-resource mitigation in effect for a candidate.

    Attributes:
        resource_id: Assistive resource providing the mitigation
        barrier_id: Barrier it mitigates
        efficiency: How strongly it neutralizes the barrier
        resource_name: Display name (informational)
    """
    resource_id: int
    barrier_id: int
    efficiency: Efficiency
    resource_name: str = ""


def best_mitigations(mitigations: Iterable[Mitigation]) -> Dict[int, Efficiency]:
    """
    Collapse mitigations to the highest efficiency per barrier.

    Args:
        mitigations: Mitigations from all of a candidate's resources

    Returns:
        Dict mapping barrier_id to its strongest efficiency
    """
    best: Dict[int, Efficiency] = {}
    for mitigation in mitigations:
        current = best.get(mitigation.barrier_id)
        if current is None or mitigation.efficiency.rank > current.rank:
            best[mitigation.barrier_id] = mitigation.efficiency
    return best


_EMPTY: FrozenSet[int] = frozenset()


@dataclass(frozen=True)
class TaxonomyGraph:
    """
    Immutable snapshot of the subtype → barrier → accessibility graph.

    Attributes:
        subtype_ids: All known subtype ids
        barrier_ids: All known barrier ids
        accessibility_ids: All known accessibility ids
        subtype_barriers: subtype_id → barrier ids
        barrier_accessibilities: barrier_id → accessibility ids resolving it
    """
    subtype_ids: FrozenSet[int] = _EMPTY
    barrier_ids: FrozenSet[int] = _EMPTY
    accessibility_ids: FrozenSet[int] = _EMPTY
    subtype_barriers: Dict[int, FrozenSet[int]] = field(default_factory=dict)
    barrier_accessibilities: Dict[int, FrozenSet[int]] = field(default_factory=dict)

    @classmethod
    def from_rows(
        cls,
        subtype_ids: Iterable[int],
        barrier_ids: Iterable[int],
        accessibility_ids: Iterable[int],
        subtype_barrier_pairs: Iterable[Tuple[int, int]],
        barrier_accessibility_pairs: Iterable[Tuple[int, int]],
    ) -> "TaxonomyGraph":
        """
        Build adjacency maps from flat join-table rows.

        Args:
            subtype_ids: Ids from the subtypes table
            barrier_ids: Ids from the barriers table
            accessibility_ids: Ids from the accessibilities table
            subtype_barrier_pairs: (subtype_id, barrier_id) rows
            barrier_accessibility_pairs: (barrier_id, accessibility_id) rows

        Returns:
            TaxonomyGraph
        """
        by_subtype: Dict[int, set] = {}
        for subtype_id, barrier_id in subtype_barrier_pairs:
            by_subtype.setdefault(subtype_id, set()).add(barrier_id)

        by_barrier: Dict[int, set] = {}
        for barrier_id, accessibility_id in barrier_accessibility_pairs:
            by_barrier.setdefault(barrier_id, set()).add(accessibility_id)

        return cls(
            subtype_ids=frozenset(subtype_ids),
            barrier_ids=frozenset(barrier_ids),
            accessibility_ids=frozenset(accessibility_ids),
            subtype_barriers={k: frozenset(v) for k, v in by_subtype.items()},
            barrier_accessibilities={k: frozenset(v) for k, v in by_barrier.items()},
        )

    def has_subtype(self, subtype_id: int) -> bool:
        return subtype_id in self.subtype_ids

    def has_barrier(self, barrier_id: int) -> bool:
        return barrier_id in self.barrier_ids

    def has_accessibility(self, accessibility_id: int) -> bool:
        return accessibility_id in self.accessibility_ids

    def barriers_for_subtype(self, subtype_id: int) -> FrozenSet[int]:
        return self.subtype_barriers.get(subtype_id, _EMPTY)

    def accessibilities_for_barrier(self, barrier_id: int) -> FrozenSet[int]:
        return self.barrier_accessibilities.get(barrier_id, _EMPTY)
