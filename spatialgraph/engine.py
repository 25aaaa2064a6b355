"""
Rendering engine capability interface.

The engine owns pixels, hit testing, pan/zoom, selection highlighting and
layout algorithms. The controller drives it one way from the mirror and
reads camera and selection state from it at gesture time. An engine must
implement every capability below; the controller checks this once at
construction rather than probing for optional methods at runtime.
"""

from typing import Callable, Iterable, List, Optional, Protocol, Tuple, runtime_checkable

from spatialgraph.errors import MissingCapabilityError
from spatialgraph.models import Edge, Node, Position

ElementCallback = Callable[[str], None]
BackgroundCallback = Callable[[], None]
SelectionCallback = Callable[[List[str], List[str]], None]


@runtime_checkable
class RenderingEngine(Protocol):

    # --- Lifecycle ---

    def mount(self) -> None:
        """Create the rendering surface. Raises on failure."""
        ...

    def destroy(self) -> None:
        ...

    # --- Elements ---

    def add_node(self, node: Node) -> None:
        """Add a visual node at node.position, styled by node.kind."""
        ...

    def add_edge(self, edge: Edge) -> None:
        ...

    def remove_elements(self, element_ids: Iterable[str]) -> None:
        """Remove nodes and/or edges by id. Unknown ids are ignored."""
        ...

    def clear(self) -> None:
        ...

    def get_position(self, node_id: str) -> Optional[Position]:
        ...

    def set_position(self, node_id: str, position: Position) -> None:
        ...

    # --- Camera and selection ---

    def get_pan(self) -> Tuple[float, float]:
        ...

    def get_zoom(self) -> float:
        ...

    def get_viewport_origin(self) -> Tuple[float, float]:
        """Top-left corner of the rendering surface in client coordinates."""
        ...

    def get_selection(self) -> Tuple[List[str], List[str]]:
        """Return (selected node ids, selected edge ids)."""
        ...

    # --- Visual state ---

    def set_marker(self, node_id: str, active: bool) -> None:
        """Toggle the transient 'edge source' marker on a node."""
        ...

    def set_visibility(self, node_ids: Iterable[str], edge_ids: Iterable[str]) -> None:
        """Show exactly these elements and hide the rest."""
        ...

    def run_layout(self, layout_name: str, element_ids: Iterable[str]) -> None:
        """Run a named layout over a subset; elements outside it do not move."""
        ...

    def fit(self) -> None:
        ...

    # --- Gesture callbacks ---

    def on_tap_element(self, callback: ElementCallback) -> None:
        ...

    def on_tap_background(self, callback: BackgroundCallback) -> None:
        ...

    def on_drag_end(self, callback: ElementCallback) -> None:
        ...

    def on_context(self, callback: ElementCallback) -> None:
        ...

    def on_selection_change(self, callback: SelectionCallback) -> None:
        ...


ENGINE_CAPABILITIES = (
    "mount", "destroy",
    "add_node", "add_edge", "remove_elements", "clear",
    "get_position", "set_position",
    "get_pan", "get_zoom", "get_viewport_origin", "get_selection",
    "set_marker", "set_visibility", "run_layout", "fit",
    "on_tap_element", "on_tap_background", "on_drag_end", "on_context", "on_selection_change",
)


def require_capabilities(obj, capabilities: Iterable[str], collaborator: str) -> None:
    """Raise MissingCapabilityError unless every named capability is a callable on obj."""
    missing = [name for name in capabilities if not callable(getattr(obj, name, None))]
    if missing:
        raise MissingCapabilityError(collaborator, missing)


def require_engine(engine) -> None:
    require_capabilities(engine, ENGINE_CAPABILITIES, f"Rendering engine {type(engine).__name__}")
