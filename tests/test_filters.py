"""
Tests for the subgraph filter: per-mode rules and the invariant that a
visible edge always has both endpoints visible.
"""

import pytest

from spatialgraph.events import LoadGraph
from spatialgraph.filters import FILTER_RULES, FilterMode, compute_visibility
from spatialgraph.mirror import GraphMirror
from spatialgraph.models import Edge, EdgeKind, Node, NodeKind


@pytest.fixture
def mirror():
    nodes = (
        Node("c1", None, kind=NodeKind.CONCEPT),
        Node("c2", None, kind=NodeKind.CONCEPT),
        Node("r1", None, kind=NodeKind.ADR),
        Node("p1", None, kind=NodeKind.PATTERN),
        Node("g1", None, kind=NodeKind.GENERIC),
    )
    edges = (
        Edge("hm", "c1", "c2", EdgeKind.HAS_MANY),
        Edge("bt", "c2", "c1", EdgeKind.BELONGS_TO),
        Edge("cs", "r1", "c1", EdgeKind.CONSTRAINS),
        Edge("at", "p1", "c2", EdgeKind.APPLIES_TO),
        Edge("gen", "g1", "c1", EdgeKind.GENERIC),
        # constrains edge whose source is a pattern: hidden under 'adrs'
        Edge("cs2", "p1", "c1", EdgeKind.CONSTRAINS),
    )
    m = GraphMirror()
    m.apply_event(LoadGraph(nodes=nodes, edges=edges))
    return m


class TestFilterModes:
    def test_all(self, mirror):
        vis = compute_visibility("all", mirror)
        assert vis.node_ids == set(mirror.nodes)
        assert vis.edge_ids == set(mirror.edges)

    def test_concepts(self, mirror):
        vis = compute_visibility(FilterMode.CONCEPTS, mirror)
        assert vis.node_ids == {"c1", "c2"}
        assert vis.edge_ids == {"hm", "bt"}

    def test_adrs(self, mirror):
        vis = compute_visibility("adrs", mirror)
        assert vis.node_ids == {"c1", "c2", "r1"}
        assert vis.edge_ids == {"cs"}

    def test_patterns(self, mirror):
        vis = compute_visibility("patterns", mirror)
        assert vis.node_ids == {"c1", "c2", "p1"}
        assert vis.edge_ids == {"at"}

    def test_relationships(self, mirror):
        vis = compute_visibility("relationships", mirror)
        assert vis.node_ids == {"c1", "c2"}
        assert vis.edge_ids == {"hm", "bt"}

    @pytest.mark.parametrize("mode", list(FilterMode))
    def test_visible_edges_have_visible_endpoints(self, mirror, mode):
        vis = compute_visibility(mode, mirror)
        for edge_id in vis.edge_ids:
            edge = mirror.edge(edge_id)
            assert edge.source_id in vis.node_ids
            assert edge.target_id in vis.node_ids

    @pytest.mark.parametrize("mode", list(FilterMode))
    def test_empty_mirror(self, mode):
        vis = compute_visibility(mode, GraphMirror())
        assert vis.node_ids == frozenset()
        assert vis.edge_ids == frozenset()

    def test_every_mode_has_a_rule(self):
        assert set(FILTER_RULES) == set(FilterMode)


class TestFilterModeParse:
    @pytest.mark.parametrize("raw,expected", [
        ("adr", FilterMode.ADRS),
        ("Patterns", FilterMode.PATTERNS),
        ("concept", FilterMode.CONCEPTS),
        (FilterMode.RELATIONSHIPS, FilterMode.RELATIONSHIPS),
    ])
    def test_aliases(self, raw, expected):
        assert FilterMode.parse(raw) == expected

    def test_unknown_falls_back_to_all(self, caplog):
        assert FilterMode.parse("everything-but") == FilterMode.ALL
        assert "Unknown filter mode" in caplog.text
