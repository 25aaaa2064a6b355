"""
Canvas Controller - the single writer between gestures, channel, mirror and engine.

Data flow:
    gesture -> engine callback -> controller -> channel request
    channel event -> controller -> mirror.apply_event -> delta -> engine

Gestures only ever produce requests. The mirror changes only when the
authority's confirmation comes back through the channel, and the engine is
then told about it. The engine never writes back into the mirror.

All interaction state (the edge-source slot, the active filter and layout,
the inspected node) lives on the controller instance, so several canvases in
one process do not interfere.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from spatialgraph.channel import require_channel
from spatialgraph.config import CanvasSettings
from spatialgraph.coordinates import Camera
from spatialgraph.engine import require_engine
from spatialgraph.errors import CanvasInitError, EventDecodeError, UnknownEventError
from spatialgraph.events import (
    MIRROR_EVENT_TYPES,
    ApplyLayout,
    ChangeLayout,
    FilterGraph,
    Request,
    create_edge_request,
    decode_event,
    delete_edges_request,
    delete_nodes_request,
    node_deselected_request,
    node_moved_request,
    node_selected_request,
)
from spatialgraph.export import serialize
from spatialgraph.filters import FilterMode, Visibility, compute_visibility
from spatialgraph.interaction.constants import BROWSER_LAYOUT, EDITOR_LAYOUT, MOVE_EPSILON
from spatialgraph.interaction.drop import DropIngestion
from spatialgraph.interaction.edge_creation import EdgeCreationStateMachine
from spatialgraph.mirror import GraphMirror, MirrorDelta
from spatialgraph.models import Position

logger = logging.getLogger(__name__)

ExportSink = Callable[[Dict[str, Any]], None]


class CanvasMode(str, Enum):
    EDITOR = "editor"
    BROWSER = "browser"


class CanvasStatus(Enum):
    NEW = "new"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


def _moved(a: Position, b: Position) -> bool:
    return abs(a.x - b.x) > MOVE_EPSILON or abs(a.y - b.y) > MOVE_EPSILON


class CanvasController:
    """Interaction and synchronization controller for one canvas."""

    def __init__(
        self,
        engine,
        channel,
        mode: CanvasMode = CanvasMode.EDITOR,
        settings: Optional[CanvasSettings] = None,
        mirror: Optional[GraphMirror] = None,
        export_sink: Optional[ExportSink] = None,
    ):
        # Fail now, not at the first gesture that needs a missing capability
        require_engine(engine)
        require_channel(channel)

        self._engine = engine
        self._channel = channel
        self._mode = CanvasMode(mode)
        self._settings = settings or CanvasSettings()
        self.mirror = mirror or GraphMirror(
            pending_edge_ttl=self._settings.pending_edge_ttl,
            pending_edge_limit=self._settings.pending_edge_limit,
        )
        self._export_sink = export_sink

        self._edge_gesture = EdgeCreationStateMachine(on_marker=self._set_marker)
        self._drops = DropIngestion()
        self._filter_mode = FilterMode.ALL
        self._layout_name = self._default_layout()
        self._inspected_node_id: Optional[str] = None
        self._selected_node_ids: Set[str] = set()
        self._status = CanvasStatus.NEW
        self._status_error: Optional[str] = None
        self._latest_export = serialize(self.mirror)

        self.mirror.add_listener(self._on_mirror_delta)

    # --- Properties ---

    @property
    def mode(self) -> CanvasMode:
        return self._mode

    @property
    def status(self) -> CanvasStatus:
        return self._status

    @property
    def status_error(self) -> Optional[str]:
        return self._status_error

    @property
    def is_editable(self) -> bool:
        return self._mode == CanvasMode.EDITOR

    @property
    def edge_gesture(self) -> EdgeCreationStateMachine:
        return self._edge_gesture

    @property
    def filter_mode(self) -> FilterMode:
        return self._filter_mode

    @property
    def layout_name(self) -> str:
        return self._layout_name

    @property
    def inspected_node_id(self) -> Optional[str]:
        return self._inspected_node_id

    @property
    def visibility(self) -> Visibility:
        return compute_visibility(self._filter_mode, self.mirror)

    @property
    def latest_export(self) -> Dict[str, Any]:
        """Snapshot recomputed after the last mutating event."""
        return self._latest_export

    def _default_layout(self) -> str:
        if self._mode == CanvasMode.BROWSER:
            return self._settings.default_layout or BROWSER_LAYOUT
        return EDITOR_LAYOUT

    # --- Lifecycle ---

    def mount(self) -> None:
        """
        Mount the engine, wire its callbacks and start listening to the channel.

        Raises:
            CanvasInitError: the engine failed to mount. The canvas stays in
                the ERROR state: gestures are refused and the engine is not
                driven, though inbound events still keep the mirror current.
        """
        try:
            self._engine.mount()
        except Exception as e:
            self._status = CanvasStatus.ERROR
            self._status_error = str(e)
            logger.error(f"Rendering engine failed to mount, canvas disabled: {e}")
            self._channel.subscribe(self.handle_event)
            raise CanvasInitError(f"Rendering engine failed to mount: {e}") from e

        self._engine.on_tap_element(self.on_tap_element)
        self._engine.on_tap_background(self.on_tap_background)
        self._engine.on_drag_end(self.on_drag_end)
        self._engine.on_context(self.on_context)
        self._engine.on_selection_change(self.on_selection_change)
        self._channel.subscribe(self.handle_event)
        self._status = CanvasStatus.READY
        logger.info(f"Canvas mounted in {self._mode.value} mode")

        # Anything the mirror already holds (e.g. a shared mirror) is drawn now
        if len(self.mirror):
            self._redraw()

    def teardown(self) -> None:
        """Release the engine and channel subscription; reset per-canvas state."""
        self._channel.unsubscribe(self.handle_event)
        self.mirror.remove_listener(self._on_mirror_delta)
        self._edge_gesture.cancel()
        self._inspected_node_id = None
        self._selected_node_ids.clear()
        if self._status == CanvasStatus.READY:
            self._engine.destroy()
        self._status = CanvasStatus.CLOSED
        logger.info("Canvas torn down")

    def set_mode(self, mode: CanvasMode) -> None:
        """Switch between editor and browser. Transient gesture state is reset."""
        mode = CanvasMode(mode)
        if mode == self._mode:
            return
        self._edge_gesture.cancel()
        self._inspected_node_id = None
        self._selected_node_ids.clear()
        self._mode = mode
        self._layout_name = self._default_layout()
        logger.info(f"Canvas switched to {mode.value} mode")

    # --- Inbound events ---

    def handle_event(self, name: str, payload: Optional[Dict[str, Any]]) -> None:
        """Channel subscriber: decode one inbound event and apply it."""
        try:
            event = decode_event(name, payload)
        except UnknownEventError as e:
            logger.warning(f"Ignoring inbound event: {e}")
            return
        except EventDecodeError as e:
            logger.error(f"Dropped malformed inbound event: {e}")
            return

        if isinstance(event, MIRROR_EVENT_TYPES):
            self.mirror.apply_event(event)
        elif isinstance(event, (ApplyLayout, ChangeLayout)):
            self.apply_layout(event.layout_name)
        elif isinstance(event, FilterGraph):
            self.apply_filter(event.filter_mode)

    def _on_mirror_delta(self, delta: MirrorDelta) -> None:
        gone = [nid for nid in delta.removed_node_ids if not self.mirror.has_node(nid)]
        if gone:
            self._edge_gesture.nodes_removed(gone)
            if self._inspected_node_id in gone:
                self._inspected_node_id = None
            self._selected_node_ids.difference_update(gone)

        if self._status == CanvasStatus.READY:
            self._reflect(delta)

        self._latest_export = serialize(self.mirror)
        if self._export_sink:
            self._export_sink(self._latest_export)

    # --- Driving the engine ---

    def _reflect(self, delta: MirrorDelta) -> None:
        engine = self._engine
        if delta.reset:
            self._redraw()
            return

        if delta.removed_edge_ids:
            engine.remove_elements(delta.removed_edge_ids)
        if delta.removed_node_ids:
            engine.remove_elements(delta.removed_node_ids)
        for node in delta.added_nodes:
            engine.add_node(node)
        for node in delta.moved_nodes:
            engine.set_position(node.id, node.position)
        for edge in delta.added_edges:
            engine.add_edge(edge)

        if self._filter_mode != FilterMode.ALL and (delta.added_nodes or delta.added_edges):
            self._push_visibility()

    def _redraw(self) -> None:
        engine = self._engine
        engine.clear()
        for node in self.mirror.nodes.values():
            engine.add_node(node)
        for edge in self.mirror.edges.values():
            engine.add_edge(edge)

        source_id = self._edge_gesture.source_id
        if source_id and self.mirror.has_node(source_id):
            engine.set_marker(source_id, True)

        visibility = self._push_visibility()
        if self._mode == CanvasMode.BROWSER and visibility.node_ids:
            engine.run_layout(self._layout_name, self._visible_element_ids(visibility))
        if len(self.mirror):
            engine.fit()

    def _push_visibility(self) -> Visibility:
        visibility = self.visibility
        self._engine.set_visibility(visibility.node_ids, visibility.edge_ids)
        return visibility

    @staticmethod
    def _visible_element_ids(visibility: Visibility) -> List[str]:
        return sorted(visibility.node_ids) + sorted(visibility.edge_ids)

    def _set_marker(self, node_id: str, active: bool) -> None:
        if self._status == CanvasStatus.READY:
            self._engine.set_marker(node_id, active)

    # --- View commands (layout / filter) ---

    def apply_layout(self, layout_name: str) -> None:
        """Run a named layout over the visible subset."""
        self._layout_name = layout_name
        if not self._live("apply_layout"):
            return
        visibility = self.visibility
        if not visibility.node_ids:
            logger.debug(f"Layout '{layout_name}' skipped, nothing visible")
            return
        self._engine.run_layout(layout_name, self._visible_element_ids(visibility))
        if self.is_editable:
            self._report_layout_positions(visibility.node_ids)

    def _report_layout_positions(self, node_ids: Iterable[str]) -> List[Request]:
        """
        Ask the authority to confirm positions the layout produced.

        The engine moved the nodes, but the mirror (and so the export) only
        follows once node_moved confirmations come back.
        """
        sent = []
        for node_id in sorted(node_ids):
            node = self.mirror.node(node_id)
            position = self._engine.get_position(node_id)
            if node is None or position is None or not _moved(position, node.position):
                continue
            sent.append(self._send(node_moved_request(node_id, position)))
        return sent

    def apply_filter(self, mode: Any) -> Visibility:
        """Show the subgraph for a filter mode and lay out only what is visible."""
        self._filter_mode = FilterMode.parse(mode)
        visibility = self.visibility
        logger.info(
            f"Filter '{self._filter_mode.value}': {len(visibility.node_ids)} node(s), "
            f"{len(visibility.edge_ids)} edge(s) visible"
        )
        if not self._live("filter_graph"):
            return visibility
        self._engine.set_visibility(visibility.node_ids, visibility.edge_ids)
        if visibility.node_ids:
            self._engine.run_layout(self._layout_name, self._visible_element_ids(visibility))
            if self.is_editable:
                self._report_layout_positions(visibility.node_ids)
        return visibility

    # --- Gestures ---

    def on_tap_element(self, element_id: str) -> Optional[Request]:
        if not self._live("tap"):
            return None
        node = self.mirror.node(element_id)
        if node is None:
            return None
        if self._mode == CanvasMode.BROWSER:
            self._inspected_node_id = node.id
            return self._send(node_selected_request(node.id, node.entity_ref))
        return None

    def on_tap_background(self) -> Optional[Request]:
        if not self._live("background tap"):
            return None
        self._edge_gesture.cancel()
        if self._inspected_node_id is None:
            return None
        self._inspected_node_id = None
        return self._send(node_deselected_request())

    def on_drag_end(self, node_id: str) -> Optional[Request]:
        if not self._editing("drag"):
            return None
        node = self.mirror.node(node_id)
        position = self._engine.get_position(node_id)
        if node is None or position is None:
            logger.debug(f"Drag end on unknown node {node_id}, ignoring")
            return None
        if not _moved(position, node.position):
            return None
        return self._send(node_moved_request(node_id, position))

    def on_context(self, node_id: str) -> Optional[Request]:
        """Secondary activation on a node: mark the edge source, or complete the edge."""
        if not self._editing("edge gesture"):
            return None
        if not self.mirror.has_node(node_id):
            logger.debug(f"Context gesture on unknown node {node_id}, ignoring")
            return None
        pair = self._edge_gesture.mark(node_id)
        if pair is None:
            return None
        return self._send(create_edge_request(*pair))

    def on_selection_change(self, node_ids: List[str], edge_ids: List[str]) -> List[Request]:
        """Report nodes that just became selected."""
        if self._mode != CanvasMode.EDITOR or self._status != CanvasStatus.READY:
            return []
        current = {nid for nid in node_ids if self.mirror.has_node(nid)}
        newly = sorted(current - self._selected_node_ids)
        self._selected_node_ids = current
        return [
            self._send(node_selected_request(nid, self.mirror.node(nid).entity_ref))
            for nid in newly
        ]

    def delete_selection(self) -> Optional[Request]:
        """Delete the selected nodes, or the selected edges if no node is selected."""
        if not self._editing("delete"):
            return None
        node_ids, edge_ids = self._engine.get_selection()
        nodes = [nid for nid in node_ids if self.mirror.has_node(nid)]
        if nodes:
            return self._send(delete_nodes_request(nodes))
        edges = [eid for eid in edge_ids if self.mirror.edge(eid) is not None]
        if edges:
            return self._send(delete_edges_request(edges))
        return None

    def handle_drop(self, raw_payload: Dict[str, Any], pointer_x: float,
                    pointer_y: float) -> Optional[Request]:
        """Palette drop: camera is read now, at drop time."""
        if not self._editing("drop"):
            return None
        request = self._drops.ingest(raw_payload, pointer_x, pointer_y, Camera.read(self._engine))
        if request is None:
            return None
        return self._send(request)

    # --- Export ---

    def export_snapshot(self, timestamp: Optional[str] = None) -> Dict[str, Any]:
        return serialize(self.mirror, timestamp=timestamp)

    # --- Helpers ---

    def _send(self, request: Request) -> Request:
        self._channel.send(request.name, request.payload)
        return request

    def _live(self, what: str) -> bool:
        if self._status != CanvasStatus.READY:
            logger.warning(f"Canvas is {self._status.value}, ignoring {what}")
            return False
        return True

    def _editing(self, what: str) -> bool:
        if not self._live(what):
            return False
        if self._mode != CanvasMode.EDITOR:
            logger.debug(f"Read-only canvas, ignoring {what}")
            return False
        return True
