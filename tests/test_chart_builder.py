import pytest

from spatialgraph.chart_builder import (
    FRAME_NODE_PREFIX,
    MARKER_COLOR,
    build_echart_options,
    normalize_click_payload,
    resolve_element_id,
)
from spatialgraph.models import Edge, EdgeKind, Node, NodeKind, Position


@pytest.fixture
def graph():
    nodes = {
        "a": Node("a", 1, Position(10, 20), NodeKind.CONCEPT, "Alpha"),
        "b": Node("b", 2, Position(30, 40), NodeKind.ADR),
        "c": Node("c", None, Position(50, 60)),
    }
    edges = {
        "e1": Edge("e1", "a", "b", EdgeKind.CONSTRAINS),
        "e2": Edge("e2", "b", "c"),
    }
    return nodes, edges


def series_of(options):
    return options["series"][0]


def real_nodes(options):
    return [n for n in series_of(options)["data"] if not n["id"].startswith(FRAME_NODE_PREFIX)]


class TestBuildEchartOptions:
    def test_nodes_placed_at_graph_positions(self, graph):
        options = build_echart_options(*graph)

        a = next(n for n in real_nodes(options) if n["id"] == "a")
        assert (a["x"], a["y"]) == (10, 20)
        assert a["label"]["formatter"] == "Alpha"
        assert series_of(options)["layout"] == "none"

    def test_label_falls_back_to_entity_then_id(self, graph):
        labels = {n["id"]: n["label"]["formatter"] for n in real_nodes(build_echart_options(*graph))}
        assert labels == {"a": "Alpha", "b": "2", "c": "c"}

    def test_hidden_elements_left_out(self, graph):
        options = build_echart_options(*graph, visible_node_ids={"a", "b"}, visible_edge_ids={"e1", "e2"})

        assert [n["id"] for n in real_nodes(options)] == ["a", "b"]
        # e2 is listed visible but its endpoint c is hidden
        assert [l["id"] for l in series_of(options)["links"]] == ["e1"]

    def test_marker_and_selection(self, graph):
        options = build_echart_options(*graph, marked_node_ids={"a"}, selected_ids={"b", "e1"})
        nodes = {n["id"]: n for n in real_nodes(options)}
        links = {l["id"]: l for l in series_of(options)["links"]}

        assert nodes["a"]["itemStyle"]["borderColor"] == MARKER_COLOR
        assert nodes["b"]["itemStyle"]["borderWidth"] == 3
        assert links["e1"]["lineStyle"]["width"] == 4

    def test_frame_anchors_and_zoom_limits(self, graph):
        options = build_echart_options(*graph, width=800, height=600, min_zoom=0.3, max_zoom=3.0)
        anchors = [n for n in series_of(options)["data"] if n["id"].startswith(FRAME_NODE_PREFIX)]

        assert [(n["x"], n["y"]) for n in anchors] == [(0, 0), (800, 600)]
        assert series_of(options)["scaleLimit"] == {"min": 0.3, "max": 3.0}

    def test_read_only_nodes_not_draggable(self, graph):
        options = build_echart_options(*graph, editable=False)
        assert not any(n["draggable"] for n in real_nodes(options))


class TestClickPayloads:
    def test_node_click(self):
        payload = normalize_click_payload(["series", "node", "a", {"id": "a"}])
        assert resolve_element_id(payload) == "a"

    def test_edge_click(self):
        payload = {"componentType": "series", "dataType": "edge", "data": {"id": "e1", "source": "a"}}
        assert resolve_element_id(payload) == "e1"

    def test_frame_anchor_is_not_an_element(self):
        payload = {"componentType": "series", "dataType": "node", "name": f"{FRAME_NODE_PREFIX}0"}
        assert resolve_element_id(payload) is None

    @pytest.mark.parametrize("raw", [None, {}, {"componentType": "title"}, 42])
    def test_background(self, raw):
        assert resolve_element_id(normalize_click_payload(raw)) is None
