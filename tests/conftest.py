"""
Shared fixtures: a recording rendering engine, channels, an authority with
predictable ids and mounted controllers in both modes.
"""

import itertools
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from spatialgraph.authority import LocalAuthority
from spatialgraph.channel import QueuedChannel
from spatialgraph.interaction import CanvasController, CanvasMode
from spatialgraph.models import Edge, Node, Position


class FakeEngine:
    """In-memory rendering engine that records every call."""

    def __init__(self, fail_mount: bool = False):
        self.fail_mount = fail_mount
        self.mounted = False
        self.destroyed = False
        self.nodes: Dict[str, Node] = {}
        self.edges: Dict[str, Edge] = {}
        self.markers: set = set()
        self.visible: Optional[Tuple[set, set]] = None
        self.layouts: List[Tuple[str, List[str]]] = []
        # Positions a layout run will assign, keyed by node id
        self.layout_positions: Dict[str, Position] = {}
        self.fit_count = 0
        self.calls: List[Tuple] = []
        self.pan = (0.0, 0.0)
        self.zoom = 1.0
        self.origin = (0.0, 0.0)
        self.selection: Tuple[List[str], List[str]] = ([], [])
        self.callbacks: Dict[str, list] = {
            'tap_element': [], 'tap_background': [], 'drag_end': [],
            'context': [], 'selection_change': [],
        }

    def mount(self):
        if self.fail_mount:
            raise RuntimeError("no rendering surface")
        self.mounted = True

    def destroy(self):
        self.destroyed = True

    def add_node(self, node):
        self.calls.append(('add_node', node.id))
        self.nodes[node.id] = node

    def add_edge(self, edge):
        self.calls.append(('add_edge', edge.id))
        assert edge.source_id in self.nodes and edge.target_id in self.nodes
        self.edges[edge.id] = edge

    def remove_elements(self, element_ids):
        ids = list(element_ids)
        self.calls.append(('remove_elements', tuple(ids)))
        for element_id in ids:
            self.nodes.pop(element_id, None)
            self.edges.pop(element_id, None)

    def clear(self):
        self.calls.append(('clear',))
        self.nodes.clear()
        self.edges.clear()

    def get_position(self, node_id):
        node = self.nodes.get(node_id)
        return node.position if node else None

    def set_position(self, node_id, position):
        self.calls.append(('set_position', node_id))
        if node_id in self.nodes:
            self.nodes[node_id] = self.nodes[node_id].moved_to(position)

    def get_pan(self):
        return self.pan

    def get_zoom(self):
        return self.zoom

    def get_viewport_origin(self):
        return self.origin

    def get_selection(self):
        return list(self.selection[0]), list(self.selection[1])

    def set_marker(self, node_id, active):
        self.calls.append(('set_marker', node_id, active))
        if active:
            self.markers.add(node_id)
        else:
            self.markers.discard(node_id)

    def set_visibility(self, node_ids, edge_ids):
        self.visible = (set(node_ids), set(edge_ids))

    def run_layout(self, layout_name, element_ids):
        ids = list(element_ids)
        self.layouts.append((layout_name, ids))
        for node_id in ids:
            if node_id in self.layout_positions and node_id in self.nodes:
                self.nodes[node_id] = self.nodes[node_id].moved_to(self.layout_positions[node_id])

    def fit(self):
        self.fit_count += 1

    def on_tap_element(self, callback):
        self.callbacks['tap_element'].append(callback)

    def on_tap_background(self, callback):
        self.callbacks['tap_background'].append(callback)

    def on_drag_end(self, callback):
        self.callbacks['drag_end'].append(callback)

    def on_context(self, callback):
        self.callbacks['context'].append(callback)

    def on_selection_change(self, callback):
        self.callbacks['selection_change'].append(callback)

    # --- Test helpers that simulate user gestures ---

    def fire(self, event, *args):
        for callback in self.callbacks[event]:
            callback(*args)

    def drag(self, node_id, position):
        self.nodes[node_id] = self.nodes[node_id].moved_to(position)
        self.fire('drag_end', node_id)

    def select(self, node_ids=(), edge_ids=()):
        self.selection = (list(node_ids), list(edge_ids))
        self.fire('selection_change', list(node_ids), list(edge_ids))


class RecordingChannel(QueuedChannel):
    """QueuedChannel that also keeps every request it was asked to send."""

    def __init__(self, name: str = "test"):
        super().__init__(name=name)
        self.sent: List[Tuple[str, dict]] = []

    def send(self, name, payload):
        self.sent.append((name, dict(payload)))
        super().send(name, payload)

    def sent_names(self) -> List[str]:
        return [name for name, _ in self.sent]


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def authority():
    """Authority with ids n1, n2, ... so tests can predict them."""
    counter = itertools.count(1)
    return LocalAuthority(id_factory=lambda: f"n{next(counter)}")


@pytest.fixture
def controller(engine, channel):
    """Mounted editor controller with no authority attached."""
    ctrl = CanvasController(engine, channel, mode=CanvasMode.EDITOR)
    ctrl.mount()
    return ctrl


@pytest.fixture
def browser(engine, channel):
    """Mounted browser controller with no authority attached."""
    ctrl = CanvasController(engine, channel, mode=CanvasMode.BROWSER)
    ctrl.mount()
    return ctrl


@pytest.fixture
def connected(engine, channel, authority):
    """Editor controller wired to a local authority."""
    ctrl = CanvasController(engine, channel, mode=CanvasMode.EDITOR)
    ctrl.mount()
    authority.connect(channel)
    return ctrl


def node_payload(node_id, x=0.0, y=0.0, kind="generic", entity_ref=None, **extra):
    payload = {"id": node_id, "position": {"x": x, "y": y}, "kind": kind}
    if entity_ref is not None:
        payload["entity_ref"] = entity_ref
    payload.update(extra)
    return payload


def edge_payload(edge_id, source_id, target_id, kind="generic"):
    return {"id": edge_id, "source_id": source_id, "target_id": target_id, "kind": kind}
