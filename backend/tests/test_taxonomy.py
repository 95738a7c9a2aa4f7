"""
Tests for the Taxonomy Accessor

Tests cover:
- Priority and efficiency orderings and label parsing
- Adjacency lookups, including unknown ids
- Strongest mitigation per barrier
"""

from app.services.taxonomy import (
    Efficiency,
    Mitigation,
    Priority,
    TaxonomyGraph,
    best_mitigations,
)


class TestPriority:
    """Test Priority ordering and parsing."""

    def test_rank_order(self):
        assert Priority.ESSENTIAL.rank > Priority.IMPORTANT.rank > Priority.DESIRABLE.rank

    def test_weights(self):
        assert [p.weight for p in Priority] == [3, 2, 1]

    def test_parse_portuguese_labels(self):
        assert Priority.parse("Essencial") == Priority.ESSENTIAL
        assert Priority.parse("desejável") == Priority.DESIRABLE
        assert Priority.parse("importante") == Priority.IMPORTANT

    def test_missing_priority_reads_as_important(self):
        assert Priority.parse(None) == Priority.IMPORTANT
        assert Priority.parse("") == Priority.IMPORTANT
        assert Priority.parse("urgent") == Priority.IMPORTANT


class TestEfficiency:
    """Test Efficiency ordering and parsing."""

    def test_rank_order(self):
        assert Efficiency.HIGH.rank > Efficiency.MEDIUM.rank > Efficiency.LOW.rank

    def test_parse(self):
        assert Efficiency.parse("ALTA") == Efficiency.HIGH
        assert Efficiency.parse("média") == Efficiency.MEDIUM
        assert Efficiency.parse("low") == Efficiency.LOW

    def test_missing_efficiency_reads_as_low(self):
        assert Efficiency.parse(None) == Efficiency.LOW
        assert Efficiency.parse("unknown") == Efficiency.LOW


class TestTaxonomyGraph:
    """Test adjacency lookups."""

    def test_barriers_for_subtype(self, taxonomy):
        assert taxonomy.barriers_for_subtype(1) == frozenset({10, 13})
        assert taxonomy.barriers_for_subtype(4) == frozenset()

    def test_accessibilities_for_barrier(self, taxonomy):
        assert taxonomy.accessibilities_for_barrier(11) == frozenset({101, 102})

    def test_unknown_ids_return_empty_sets(self, taxonomy):
        assert taxonomy.barriers_for_subtype(999) == frozenset()
        assert taxonomy.accessibilities_for_barrier(999) == frozenset()

    def test_membership(self, taxonomy):
        assert taxonomy.has_subtype(3)
        assert not taxonomy.has_subtype(99)
        assert taxonomy.has_barrier(12)
        assert not taxonomy.has_barrier(99)
        assert taxonomy.has_accessibility(105)
        assert not taxonomy.has_accessibility(99)

    def test_empty_graph(self):
        graph = TaxonomyGraph()
        assert not graph.has_subtype(1)
        assert graph.barriers_for_subtype(1) == frozenset()


class TestBestMitigations:
    """Test collapsing mitigations to the strongest per barrier."""

    def test_highest_efficiency_wins(self):
        mitigations = [
            Mitigation(resource_id=1, barrier_id=10, efficiency=Efficiency.LOW),
            Mitigation(resource_id=2, barrier_id=10, efficiency=Efficiency.HIGH),
            Mitigation(resource_id=3, barrier_id=10, efficiency=Efficiency.MEDIUM),
            Mitigation(resource_id=3, barrier_id=11, efficiency=Efficiency.MEDIUM),
        ]

        assert best_mitigations(mitigations) == {
            10: Efficiency.HIGH,
            11: Efficiency.MEDIUM,
        }

    def test_no_mitigations(self):
        assert best_mitigations([]) == {}
