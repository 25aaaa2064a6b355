"""
Tests for the local graph mirror: event effects, idempotence, cascade
removal, single-notification deltas and the pending-edge buffer.
"""

import pytest

from spatialgraph.events import (
    AddEdge,
    AddNode,
    ClearCanvas,
    LoadGraph,
    NodeMoved,
    RemoveEdges,
    RemoveNodes,
    decode_event,
)
from spatialgraph.mirror import GraphMirror, MirrorDelta
from spatialgraph.models import Edge, Node, NodeKind, Position


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def node(node_id, x=0.0, y=0.0, kind=NodeKind.GENERIC, entity_ref=None):
    return Node(id=node_id, entity_ref=entity_ref, position=Position(x, y), kind=kind)


def edge(edge_id, source_id, target_id):
    return Edge(id=edge_id, source_id=source_id, target_id=target_id)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mirror(clock):
    return GraphMirror(pending_edge_ttl=30.0, pending_edge_limit=3, clock=clock)


@pytest.fixture
def deltas(mirror):
    received = []
    mirror.add_listener(received.append)
    return received


def snapshot(mirror):
    return mirror.nodes, mirror.edges


class TestLoadGraph:
    def test_replaces_everything(self, mirror):
        mirror.apply_event(AddNode(node("old")))
        mirror.apply_event(LoadGraph(nodes=(node("a"), node("b")), edges=(edge("e1", "a", "b"),)))

        assert set(mirror.nodes) == {"a", "b"}
        assert set(mirror.edges) == {"e1"}

    def test_drops_edges_with_missing_endpoint(self, mirror):
        mirror.apply_event(LoadGraph(nodes=(node("a"),), edges=(edge("e1", "a", "ghost"),)))

        assert mirror.edges == {}
        assert mirror.check_integrity() == []

    def test_unpositioned_nodes_land_at_origin(self, mirror, caplog):
        event = decode_event("load_graph", {"nodes": [{"id": "a"}, {"id": "b", "position": {"x": 5, "y": 6}}]})
        mirror.apply_event(event)

        assert mirror.node("a").position == Position(0.0, 0.0)
        assert mirror.node("b").position == Position(5.0, 6.0)
        assert "placed at (0, 0): a" in caplog.text

    def test_delta_is_reset(self, mirror, deltas):
        mirror.apply_event(LoadGraph(nodes=(node("a"),)))
        assert len(deltas) == 1
        assert deltas[0].reset is True


class TestAddNodeAndEdge:
    def test_add_node(self, mirror, deltas):
        mirror.apply_event(AddNode(node("a", 1, 2)))

        assert mirror.node("a").position == Position(1, 2)
        assert [n.id for n in deltas[0].added_nodes] == ["a"]

    def test_duplicate_node_keeps_first(self, mirror):
        mirror.apply_event(AddNode(node("a", 1, 2)))
        delta = mirror.apply_event(AddNode(node("a", 9, 9)))

        assert delta.is_empty
        assert mirror.node("a").position == Position(1, 2)

    def test_add_edge_between_existing_nodes(self, mirror):
        mirror.apply_event(AddNode(node("a")))
        mirror.apply_event(AddNode(node("b")))
        mirror.apply_event(AddEdge(edge("e1", "a", "b")))

        assert "e1" in mirror.edges
        assert [e.id for e in mirror.incident_edges("a")] == ["e1"]


class TestNodeMoved:
    def test_moves_existing_node(self, mirror):
        mirror.apply_event(AddNode(node("a", entity_ref=42)))
        delta = mirror.apply_event(NodeMoved("a", Position(10, 20)))

        moved = mirror.node("a")
        assert moved.position == Position(10, 20)
        assert moved.entity_ref == 42
        assert [n.id for n in delta.moved_nodes] == ["a"]

    def test_unknown_node_is_silent_noop(self, mirror, deltas):
        delta = mirror.apply_event(NodeMoved("ghost", Position(1, 1)))

        assert delta.is_empty
        assert deltas == []
        assert mirror.nodes == {}


class TestRemoval:
    def test_remove_nodes_cascades_in_one_delta(self, mirror, deltas):
        """Removing a node takes its edges with it, observed once."""
        mirror.apply_event(LoadGraph(
            nodes=(node("a"), node("b"), node("c")),
            edges=(edge("e1", "a", "b"), edge("e2", "b", "c")),
        ))
        deltas.clear()

        def check_consistent(delta):
            assert mirror.check_integrity() == []
        mirror.add_listener(check_consistent)

        mirror.apply_event(RemoveNodes(("b",)))

        assert set(mirror.nodes) == {"a", "c"}
        assert mirror.edges == {}
        assert len(deltas) == 1
        assert set(deltas[0].removed_edge_ids) == {"e1", "e2"}
        assert deltas[0].removed_node_ids == ("b",)

    def test_remove_unknown_ids_ignored(self, mirror):
        mirror.apply_event(AddNode(node("a")))
        mirror.apply_event(RemoveNodes(("ghost",)))
        mirror.apply_event(RemoveEdges(("ghost",)))

        assert set(mirror.nodes) == {"a"}

    def test_remove_edges(self, mirror):
        mirror.apply_event(LoadGraph(nodes=(node("a"), node("b")), edges=(edge("e1", "a", "b"),)))
        mirror.apply_event(RemoveEdges(("e1",)))

        assert mirror.edges == {}
        assert set(mirror.nodes) == {"a", "b"}

    def test_clear(self, mirror, deltas):
        mirror.apply_event(LoadGraph(nodes=(node("a"), node("b")), edges=(edge("e1", "a", "b"),)))
        mirror.apply_event(ClearCanvas())

        assert len(mirror) == 0
        assert mirror.edges == {}
        assert deltas[-1].reset is True

    def test_clear_on_empty_mirror_is_noop(self, mirror, deltas):
        assert mirror.apply_event(ClearCanvas()).is_empty
        assert deltas == []


class TestIdempotence:
    """Applying any event twice leaves the same state as applying it once."""

    @pytest.fixture
    def seeded(self, mirror):
        mirror.apply_event(LoadGraph(
            nodes=(node("a"), node("b"), node("c")),
            edges=(edge("e1", "a", "b"),),
        ))
        return mirror

    @pytest.mark.parametrize("event", [
        LoadGraph(nodes=(node("x"), node("y")), edges=(edge("ex", "x", "y"),)),
        AddNode(node("d", 3, 3)),
        AddEdge(edge("e2", "b", "c")),
        NodeMoved("a", Position(7, 7)),
        RemoveNodes(("a",)),
        RemoveEdges(("e1",)),
        ClearCanvas(),
    ])
    def test_twice_equals_once(self, seeded, event):
        seeded.apply_event(event)
        once = snapshot(seeded)
        second = seeded.apply_event(event)

        assert snapshot(seeded) == once
        # Only load_graph re-announces itself; everything else is a silent no-op
        if not isinstance(event, LoadGraph):
            assert second.is_empty

    def test_no_dangling_edges_after_mixed_sequence(self, mirror):
        events = [
            AddNode(node("a")),
            AddEdge(edge("e1", "a", "b")),
            AddNode(node("b")),
            AddNode(node("c")),
            AddEdge(edge("e2", "b", "c")),
            RemoveNodes(("b",)),
            AddEdge(edge("e3", "a", "c")),
            NodeMoved("c", Position(4, 4)),
        ]
        for event in events:
            mirror.apply_event(event)
            assert mirror.check_integrity() == []
        assert set(mirror.edges) == {"e3"}


class TestPendingEdges:
    def test_edge_before_endpoints_is_buffered_then_applied(self, mirror, deltas, caplog):
        """The edge waits for its endpoint and lands with it."""
        mirror.apply_event(AddNode(node("a")))
        mirror.apply_event(AddEdge(edge("e1", "a", "b")))

        assert mirror.edges == {}
        assert mirror.pending_edge_ids == ["e1"]
        assert "e1" in caplog.text

        delta = mirror.apply_event(AddNode(node("b")))

        assert "e1" in mirror.edges
        assert [n.id for n in delta.added_nodes] == ["b"]
        assert [e.id for e in delta.added_edges] == ["e1"]
        assert mirror.pending_edge_ids == []

    def test_pending_edge_expires(self, mirror, clock):
        mirror.apply_event(AddEdge(edge("e1", "a", "b")))
        clock.now = 31.0
        mirror.apply_event(AddNode(node("a")))
        mirror.apply_event(AddNode(node("b")))

        assert mirror.edges == {}
        assert mirror.pending_edge_ids == []

    def test_buffer_is_bounded(self, mirror):
        for i in range(5):
            mirror.apply_event(AddEdge(edge(f"e{i}", "a", f"t{i}")))

        assert mirror.pending_edge_ids == ["e2", "e3", "e4"]

    def test_remove_edges_discards_pending(self, mirror):
        mirror.apply_event(AddEdge(edge("e1", "a", "b")))
        mirror.apply_event(RemoveEdges(("e1",)))
        mirror.apply_event(AddNode(node("a")))
        mirror.apply_event(AddNode(node("b")))

        assert mirror.edges == {}

    def test_remove_nodes_discards_pending_for_that_node(self, mirror):
        mirror.apply_event(AddNode(node("a")))
        mirror.apply_event(AddEdge(edge("e1", "a", "b")))
        mirror.apply_event(RemoveNodes(("a",)))
        mirror.apply_event(AddNode(node("a")))
        mirror.apply_event(AddNode(node("b")))

        assert mirror.edges == {}

    def test_load_graph_discards_pending(self, mirror):
        mirror.apply_event(AddEdge(edge("e1", "a", "b")))
        mirror.apply_event(LoadGraph(nodes=(node("a"),)))
        mirror.apply_event(AddNode(node("b")))

        assert mirror.edges == {}


class TestListeners:
    def test_removed_listener_is_not_called(self, mirror):
        received = []
        mirror.add_listener(received.append)
        mirror.remove_listener(received.append)
        mirror.apply_event(AddNode(node("a")))

        assert received == []

    def test_non_mirror_event_rejected(self, mirror):
        with pytest.raises(TypeError):
            mirror.apply_event(object())

    def test_empty_delta(self):
        assert MirrorDelta().is_empty
