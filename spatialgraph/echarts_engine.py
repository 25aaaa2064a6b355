"""
NiceGUI ui.echart implementation of the rendering engine interface.

The engine keeps its own copy of the drawn elements (positions included,
since dragging and layouts move them before the authority confirms
anything) and re-renders the ECharts graph series from it. Pan and zoom are
tracked in Python from 'graphroam' events so the controller can read the
camera synchronously at gesture time.

Callback events (registered via the on_* capability methods):
- tap_element(element_id)
- tap_background()
- drag_end(node_id)
- context(node_id)
- selection_change(node_ids, edge_ids)
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from nicegui import ui

from spatialgraph.chart_builder import (
    REQUESTED_EVENT_KEYS,
    build_echart_options,
    normalize_click_payload,
    resolve_element_id,
)
from spatialgraph.layouts import compute_layout
from spatialgraph.models import Edge, Node, Position

logger = logging.getLogger(__name__)


class ViewportState:
    """
    Camera of the chart as the controller sees it.

    pan is the offset of graph origin on the surface, in pixels; zoom is the
    roam scale. Both follow the ECharts graphroam events:
    {dx, dy} for a pan, {zoom, originX, originY} for a zoom step.
    """

    def __init__(self, min_zoom: float = 0.3, max_zoom: float = 2.0):
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom
        self.pan: Tuple[float, float] = (0.0, 0.0)
        self.zoom: float = 1.0
        self.origin: Tuple[float, float] = (0.0, 0.0)

    def apply_roam(self, params: Dict[str, Any]) -> None:
        if params.get('zoom') is not None:
            factor = float(params['zoom'])
            new_zoom = min(self.max_zoom, max(self.min_zoom, self.zoom * factor))
            applied = new_zoom / self.zoom
            ox = float(params.get('originX') or 0.0)
            oy = float(params.get('originY') or 0.0)
            # Keep the point under the cursor fixed
            self.pan = (ox - (ox - self.pan[0]) * applied, oy - (oy - self.pan[1]) * applied)
            self.zoom = new_zoom
        else:
            self.pan = (
                self.pan[0] + float(params.get('dx') or 0.0),
                self.pan[1] + float(params.get('dy') or 0.0),
            )

    def reset(self) -> None:
        self.pan = (0.0, 0.0)
        self.zoom = 1.0


class EChartsEngine:
    """Rendering engine backed by a NiceGUI ECharts graph."""

    def __init__(self, width: int = 1200, height: int = 800, min_zoom: float = 0.3,
                 max_zoom: float = 2.0, editable: bool = True):
        self.width = width
        self.height = height
        self.editable = editable
        self.viewport = ViewportState(min_zoom, max_zoom)
        self.chart = None

        self._nodes: Dict[str, Node] = {}
        self._edges: Dict[str, Edge] = {}
        self._markers: set = set()
        self._selected_nodes: List[str] = []
        self._selected_edges: List[str] = []
        self._visible_nodes: Optional[set] = None
        self._visible_edges: Optional[set] = None

        self._callbacks: Dict[str, List[Callable]] = {
            'tap_element': [],
            'tap_background': [],
            'drag_end': [],
            'context': [],
            'selection_change': [],
        }

    # --- Lifecycle ---

    def mount(self) -> None:
        """Create the chart in the current NiceGUI container."""
        self.chart = ui.echart(self._options())
        self.chart.style(f'width: {self.width}px; height: {self.height}px;')
        self.chart.on('chart:click', self._handle_click, REQUESTED_EVENT_KEYS)
        self.chart.on('chart:contextmenu', self._handle_context, REQUESTED_EVENT_KEYS)
        self.chart.on('chart:mouseup', self._handle_mouse_up, REQUESTED_EVENT_KEYS)
        self.chart.on('chart:graphroam', self._handle_roam)
        self.chart.on('dragenter', self.refresh_viewport_origin)

        background_event = f'spatialgraph_background_{self.chart.id}'
        ui.on(background_event, lambda _: self._handle_background())

        # Background taps and the native context menu are only visible on the zrender layer
        ui.run_javascript(f'''
            setTimeout(function() {{
                const vueComponent = getElement({self.chart.id});
                if (!vueComponent || !vueComponent.chart) return;
                const zr = vueComponent.chart.getZr();
                zr.on('click', function(e) {{ if (!e.target) emitEvent('{background_event}'); }});
                zr.dom.addEventListener('contextmenu', function(e) {{ e.preventDefault(); }});
            }}, 100);
        ''')
        ui.timer(0.2, self.refresh_viewport_origin, once=True)
        logger.info(f"ECharts engine mounted ({self.width}x{self.height})")

    def destroy(self) -> None:
        if self.chart is not None:
            self.chart.delete()
            self.chart = None
        self._nodes.clear()
        self._edges.clear()
        self._markers.clear()
        self._selected_nodes = []
        self._selected_edges = []
        for handlers in self._callbacks.values():
            handlers.clear()

    # --- Elements ---

    def add_node(self, node: Node) -> None:
        self._nodes[node.id] = node
        self._refresh()

    def add_edge(self, edge: Edge) -> None:
        self._edges[edge.id] = edge
        self._refresh()

    def remove_elements(self, element_ids: Iterable[str]) -> None:
        ids = set(element_ids)
        for element_id in ids:
            self._nodes.pop(element_id, None)
            self._edges.pop(element_id, None)
            self._markers.discard(element_id)
        self._selected_nodes = [n for n in self._selected_nodes if n not in ids]
        self._selected_edges = [e for e in self._selected_edges if e not in ids]
        self._refresh()

    def clear(self) -> None:
        self._nodes.clear()
        self._edges.clear()
        self._markers.clear()
        self._selected_nodes = []
        self._selected_edges = []
        self._refresh()

    def get_position(self, node_id: str) -> Optional[Position]:
        node = self._nodes.get(node_id)
        return node.position if node else None

    def set_position(self, node_id: str, position: Position) -> None:
        node = self._nodes.get(node_id)
        if node is None:
            return
        self._nodes[node_id] = node.moved_to(position)
        self._refresh()

    # --- Camera and selection ---

    def get_pan(self) -> Tuple[float, float]:
        return self.viewport.pan

    def get_zoom(self) -> float:
        return self.viewport.zoom

    def get_viewport_origin(self) -> Tuple[float, float]:
        return self.viewport.origin

    def get_selection(self) -> Tuple[List[str], List[str]]:
        return list(self._selected_nodes), list(self._selected_edges)

    async def refresh_viewport_origin(self) -> None:
        """Read the chart's client rect; the page may have scrolled or resized."""
        if self.chart is None:
            return
        try:
            rect = await ui.run_javascript(f'''
                const el = getElement({self.chart.id}).$el;
                const r = el.getBoundingClientRect();
                return [r.left, r.top];
            ''')
        except TimeoutError as e:
            logger.warning(f"Could not read chart position: {e}")
            return
        if isinstance(rect, (list, tuple)) and len(rect) == 2:
            self.viewport.origin = (float(rect[0]), float(rect[1]))

    # --- Visual state ---

    def set_marker(self, node_id: str, active: bool) -> None:
        if active:
            self._markers.add(node_id)
        else:
            self._markers.discard(node_id)
        self._refresh()

    def set_visibility(self, node_ids: Iterable[str], edge_ids: Iterable[str]) -> None:
        self._visible_nodes = set(node_ids)
        self._visible_edges = set(edge_ids)
        self._refresh()

    def run_layout(self, layout_name: str, element_ids: Iterable[str]) -> None:
        node_ids = [i for i in element_ids if i in self._nodes]
        positions = {nid: n.position for nid, n in self._nodes.items()}
        layout = compute_layout(layout_name, node_ids, self._edges.values(), positions)
        for node_id, position in layout.items():
            self._nodes[node_id] = self._nodes[node_id].moved_to(position)
        self._refresh()

    def fit(self) -> None:
        """Return the camera to identity: frame anchors fill the surface."""
        self.viewport.reset()
        if self.chart is not None:
            self.chart.run_chart_method(
                'setOption',
                {'series': [{'zoom': 1, 'center': [self.width / 2, self.height / 2]}]},
            )

    # --- Gesture callbacks ---

    def on_tap_element(self, callback: Callable[[str], None]) -> None:
        self._callbacks['tap_element'].append(callback)

    def on_tap_background(self, callback: Callable[[], None]) -> None:
        self._callbacks['tap_background'].append(callback)

    def on_drag_end(self, callback: Callable[[str], None]) -> None:
        self._callbacks['drag_end'].append(callback)

    def on_context(self, callback: Callable[[str], None]) -> None:
        self._callbacks['context'].append(callback)

    def on_selection_change(self, callback: Callable[[List[str], List[str]], None]) -> None:
        self._callbacks['selection_change'].append(callback)

    def _emit(self, event: str, *args) -> None:
        for callback in list(self._callbacks.get(event, [])):
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Error in {event} callback: {e}")

    # --- Chart event handlers ---

    def _handle_click(self, event) -> None:
        payload = normalize_click_payload(event.args if hasattr(event, 'args') else event)
        element_id = resolve_element_id(payload)
        if element_id is None:
            return
        if element_id in self._nodes:
            self._select([element_id], [])
        elif element_id in self._edges:
            self._select([], [element_id])
        self._emit('tap_element', element_id)

    def _handle_background(self) -> None:
        self._select([], [])
        self._emit('tap_background')

    def _handle_context(self, event) -> None:
        payload = normalize_click_payload(event.args if hasattr(event, 'args') else event)
        element_id = resolve_element_id(payload)
        if element_id in self._nodes:
            self._emit('context', element_id)

    async def _handle_mouse_up(self, event) -> None:
        """A drag on a node ends with mouseup; read where ECharts left it."""
        if not self.editable or self.chart is None:
            return
        payload = normalize_click_payload(event.args if hasattr(event, 'args') else event)
        if payload.get('dataType') != 'node':
            return
        node_id = resolve_element_id(payload)
        if node_id not in self._nodes:
            return
        try:
            layout = await ui.run_javascript(f'''
                const chart = getElement({self.chart.id}).chart;
                const data = chart.getModel().getSeriesByIndex(0).getData();
                return data.getItemLayout(data.indexOfName({node_id!r}));
            ''')
        except TimeoutError as e:
            logger.warning(f"Could not read position of dragged node {node_id}: {e}")
            return
        if not isinstance(layout, (list, tuple)) or len(layout) < 2:
            return
        # Record without re-rendering; ECharts already shows the node there
        self._nodes[node_id] = self._nodes[node_id].moved_to(Position(float(layout[0]), float(layout[1])))
        self._emit('drag_end', node_id)

    def _handle_roam(self, event) -> None:
        params = event.args if hasattr(event, 'args') else event
        if isinstance(params, dict):
            self.viewport.apply_roam(params)

    def _select(self, node_ids: List[str], edge_ids: List[str]) -> None:
        if node_ids == self._selected_nodes and edge_ids == self._selected_edges:
            return
        self._selected_nodes = node_ids
        self._selected_edges = edge_ids
        self._refresh()
        self._emit('selection_change', list(node_ids), list(edge_ids))

    # --- Rendering ---

    def _options(self) -> Dict[str, Any]:
        return build_echart_options(
            self._nodes,
            self._edges,
            visible_node_ids=self._visible_nodes,
            visible_edge_ids=self._visible_edges,
            marked_node_ids=self._markers,
            selected_ids=self._selected_nodes + self._selected_edges,
            editable=self.editable,
            width=self.width,
            height=self.height,
            min_zoom=self.viewport.min_zoom,
            max_zoom=self.viewport.max_zoom,
        )

    def _refresh(self) -> None:
        if self.chart is None:
            return
        self.chart.options.clear()
        self.chart.options.update(self._options())
        self.chart.update()
