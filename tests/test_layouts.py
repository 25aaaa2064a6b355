import pytest

from spatialgraph.layouts import LAYOUT_NAMES, build_graph, canonical_layout_name, compute_layout
from spatialgraph.models import Edge, Position

NODES = ["a", "b", "c", "d", "e"]
EDGES = [Edge("e1", "a", "b"), Edge("e2", "b", "c"), Edge("e3", "c", "d"), Edge("x", "d", "outside")]


class TestLayoutNames:
    @pytest.mark.parametrize("raw,expected", [
        ("cose", "force"),
        ("COSE", "force"),
        ("circle", "circle"),
        ("shell", "concentric"),
        ("preset", "preset"),
        ("tree", "breadthfirst"),
        ("hyperbolic", None),
    ])
    def test_canonical(self, raw, expected):
        assert canonical_layout_name(raw) == expected


class TestBuildGraph:
    def test_only_edges_inside_subset(self):
        G = build_graph(NODES, EDGES)
        assert set(G.nodes) == set(NODES)
        assert G.number_of_edges() == 3


class TestComputeLayout:
    @pytest.mark.parametrize("name", [n for n in LAYOUT_NAMES if n != "preset"] + ["cose"])
    def test_every_node_gets_a_distinct_position(self, name):
        result = compute_layout(name, NODES, EDGES)

        assert set(result) == set(NODES)
        assert len({(round(p.x, 6), round(p.y, 6)) for p in result.values()}) == len(NODES)

    def test_preset_keeps_positions(self):
        positions = {"a": Position(1, 2), "b": Position(3, 4)}
        assert compute_layout("preset", ["a", "b"], [], positions) == positions

    def test_centred_on_current_positions(self):
        positions = {n: Position(1000.0, 500.0) for n in NODES}
        result = compute_layout("grid", NODES, EDGES, positions)

        cx = sum(p.x for p in result.values()) / len(result)
        assert cx == pytest.approx(1000.0, abs=200)

    def test_force_is_reproducible(self):
        assert compute_layout("cose", NODES, EDGES) == compute_layout("cose", NODES, EDGES)

    def test_single_node(self):
        result = compute_layout("circle", ["a"], [], {"a": Position(7, 8)})
        assert result == {"a": Position(7.0, 8.0)}

    def test_unknown_layout(self, caplog):
        assert compute_layout("hyperbolic", NODES, EDGES) == {}
        assert "Unknown layout" in caplog.text

    def test_empty_subset(self):
        assert compute_layout("grid", [], EDGES) == {}

    def test_breadthfirst_layers(self):
        result = compute_layout("breadthfirst", ["a", "b", "c"], [Edge("1", "b", "a"), Edge("2", "b", "c")])
        # b has the highest degree and becomes the root row
        assert result["b"].y < result["a"].y
        assert result["a"].y == result["c"].y
