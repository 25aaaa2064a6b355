"""
Local graph mirror.

The mirror is the client's copy of the canonical graph. It is written only
by confirmed inbound events; gestures never touch it. Every event is applied
in two phases: the full effect is computed against the current maps, then
committed in one assignment, then listeners are told about it through a
single MirrorDelta. A listener therefore never sees a node removed while one
of its edges is still present.

All events are idempotent, since the channel may redeliver.

Edges that arrive before their endpoints are held in a short-lived pending
buffer and applied as soon as a later add_node supplies the missing node.
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from spatialgraph.events import (
    AddEdge,
    AddNode,
    ClearCanvas,
    LoadGraph,
    MirrorEvent,
    NodeMoved,
    RemoveEdges,
    RemoveNodes,
)
from spatialgraph.models import Edge, Node

logger = logging.getLogger(__name__)

DEFAULT_PENDING_EDGE_TTL = 30.0
DEFAULT_PENDING_EDGE_LIMIT = 500


@dataclass(frozen=True)
class MirrorDelta:
    """What one applied event changed. Empty when the event was a no-op."""
    added_nodes: Tuple[Node, ...] = ()
    moved_nodes: Tuple[Node, ...] = ()
    removed_node_ids: Tuple[str, ...] = ()
    added_edges: Tuple[Edge, ...] = ()
    removed_edge_ids: Tuple[str, ...] = ()
    # True when the whole mirror was replaced (load_graph / clear_canvas)
    reset: bool = False

    @property
    def is_empty(self) -> bool:
        return not (
            self.reset
            or self.added_nodes
            or self.moved_nodes
            or self.removed_node_ids
            or self.added_edges
            or self.removed_edge_ids
        )


@dataclass
class _PendingEdge:
    edge: Edge
    received_at: float


@dataclass
class _Staged:
    """Working copy of the maps for one apply step."""
    nodes: Dict[str, Node]
    edges: Dict[str, Edge]
    pending: "OrderedDict[str, _PendingEdge]"
    added_nodes: List[Node] = field(default_factory=list)
    moved_nodes: List[Node] = field(default_factory=list)
    removed_node_ids: List[str] = field(default_factory=list)
    added_edges: List[Edge] = field(default_factory=list)
    removed_edge_ids: List[str] = field(default_factory=list)
    reset: bool = False


MirrorListener = Callable[[MirrorDelta], None]


class GraphMirror:
    """In-memory nodes and edges keyed by id, mutated only by confirmed events."""

    def __init__(
        self,
        pending_edge_ttl: float = DEFAULT_PENDING_EDGE_TTL,
        pending_edge_limit: int = DEFAULT_PENDING_EDGE_LIMIT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._nodes: Dict[str, Node] = {}
        self._edges: Dict[str, Edge] = {}
        self._pending: "OrderedDict[str, _PendingEdge]" = OrderedDict()
        self._pending_ttl = pending_edge_ttl
        self._pending_limit = pending_edge_limit
        self._clock = clock
        self._listeners: List[MirrorListener] = []

    # --- Read access ---

    @property
    def nodes(self) -> Dict[str, Node]:
        return dict(self._nodes)

    @property
    def edges(self) -> Dict[str, Edge]:
        return dict(self._edges)

    @property
    def pending_edge_ids(self) -> List[str]:
        return list(self._pending)

    def node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def edge(self, edge_id: str) -> Optional[Edge]:
        return self._edges.get(edge_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def incident_edges(self, node_id: str) -> List[Edge]:
        return [e for e in self._edges.values() if e.touches(node_id)]

    def __len__(self) -> int:
        return len(self._nodes)

    def check_integrity(self) -> List[str]:
        """Return ids of edges with a missing endpoint. Always empty unless a bug slipped in."""
        return [
            e.id for e in self._edges.values()
            if e.source_id not in self._nodes or e.target_id not in self._nodes
        ]

    # --- Listeners ---

    def add_listener(self, listener: MirrorListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: MirrorListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # --- Applying events ---

    def apply_event(self, event: MirrorEvent) -> MirrorDelta:
        """
        Apply one confirmed event and notify listeners once.

        Args:
            event: A decoded mirror event (see spatialgraph.events)

        Returns:
            The delta that was committed; empty for no-ops and redeliveries.
        """
        staged = _Staged(
            nodes=dict(self._nodes),
            edges=dict(self._edges),
            pending=OrderedDict(self._pending),
        )

        if isinstance(event, LoadGraph):
            self._stage_load_graph(staged, event)
        elif isinstance(event, AddNode):
            self._stage_add_node(staged, event)
        elif isinstance(event, AddEdge):
            self._stage_add_edge(staged, event.edge)
        elif isinstance(event, NodeMoved):
            self._stage_node_moved(staged, event)
        elif isinstance(event, RemoveNodes):
            self._stage_remove_nodes(staged, event.node_ids)
        elif isinstance(event, RemoveEdges):
            self._stage_remove_edges(staged, event.edge_ids)
        elif isinstance(event, ClearCanvas):
            self._stage_clear(staged)
        else:
            raise TypeError(f"Not a mirror event: {event!r}")

        self._expire_pending(staged)

        # Commit
        self._nodes = staged.nodes
        self._edges = staged.edges
        self._pending = staged.pending

        delta = MirrorDelta(
            added_nodes=tuple(staged.added_nodes),
            moved_nodes=tuple(staged.moved_nodes),
            removed_node_ids=tuple(staged.removed_node_ids),
            added_edges=tuple(staged.added_edges),
            removed_edge_ids=tuple(staged.removed_edge_ids),
            reset=staged.reset,
        )
        if not delta.is_empty:
            self._notify(delta)
        return delta

    def _notify(self, delta: MirrorDelta) -> None:
        for listener in list(self._listeners):
            listener(delta)

    # --- Staging, one method per event ---

    def _stage_load_graph(self, staged: _Staged, event: LoadGraph) -> None:
        if event.unpositioned:
            logger.warning(
                f"load_graph: {len(event.unpositioned)} node(s) without a position, "
                f"placed at (0, 0): {', '.join(event.unpositioned)}"
            )
        nodes: Dict[str, Node] = {}
        for node in event.nodes:
            nodes[node.id] = node
        edges: Dict[str, Edge] = {}
        for edge in event.edges:
            if edge.source_id in nodes and edge.target_id in nodes:
                edges[edge.id] = edge
            else:
                logger.warning(
                    f"load_graph: dropping edge {edge.id} with missing endpoint "
                    f"({edge.source_id} -> {edge.target_id})"
                )
        if staged.pending:
            logger.info(f"load_graph: discarding {len(staged.pending)} pending edge(s)")

        staged.removed_edge_ids.extend(staged.edges)
        staged.removed_node_ids.extend(staged.nodes)
        staged.nodes = nodes
        staged.edges = edges
        staged.pending = OrderedDict()
        staged.added_nodes.extend(nodes.values())
        staged.added_edges.extend(edges.values())
        staged.reset = True

    def _stage_add_node(self, staged: _Staged, event: AddNode) -> None:
        node = event.node
        if node.id in staged.nodes:
            logger.debug(f"add_node: {node.id} already present, ignoring redelivery")
            return
        if not event.positioned:
            logger.warning(f"add_node: {node.id} arrived without a position, placed at (0, 0)")
        staged.nodes[node.id] = node
        staged.added_nodes.append(node)
        self._reconcile_pending(staged)

    def _stage_add_edge(self, staged: _Staged, edge: Edge) -> None:
        if edge.id in staged.edges:
            logger.debug(f"add_edge: {edge.id} already present, ignoring redelivery")
            return
        if edge.source_id in staged.nodes and edge.target_id in staged.nodes:
            staged.edges[edge.id] = edge
            staged.added_edges.append(edge)
            staged.pending.pop(edge.id, None)
            return

        missing = [n for n in (edge.source_id, edge.target_id) if n not in staged.nodes]
        if edge.id not in staged.pending:
            logger.warning(
                f"add_edge: {edge.id} arrived before endpoint(s) {', '.join(missing)}; "
                f"holding it for up to {self._pending_ttl:g}s"
            )
            staged.pending[edge.id] = _PendingEdge(edge=edge, received_at=self._clock())
            while len(staged.pending) > self._pending_limit:
                evicted_id, _ = staged.pending.popitem(last=False)
                logger.warning(f"add_edge: pending buffer full, dropping edge {evicted_id}")

    def _stage_node_moved(self, staged: _Staged, event: NodeMoved) -> None:
        node = staged.nodes.get(event.node_id)
        if node is None:
            logger.debug(f"node_moved: unknown node {event.node_id}, ignoring")
            return
        if node.position == event.position:
            return
        moved = node.moved_to(event.position)
        staged.nodes[node.id] = moved
        staged.moved_nodes.append(moved)

    def _stage_remove_nodes(self, staged: _Staged, node_ids: Iterable[str]) -> None:
        doomed = {nid for nid in node_ids if nid in staged.nodes}
        # Edges first, so the delta lists every incident edge with its endpoint
        for edge_id, edge in list(staged.edges.items()):
            if edge.source_id in doomed or edge.target_id in doomed:
                del staged.edges[edge_id]
                staged.removed_edge_ids.append(edge_id)
        for nid in node_ids:
            if nid in staged.nodes:
                del staged.nodes[nid]
                staged.removed_node_ids.append(nid)
        for edge_id, pending in list(staged.pending.items()):
            if pending.edge.source_id in doomed or pending.edge.target_id in doomed:
                del staged.pending[edge_id]

    def _stage_remove_edges(self, staged: _Staged, edge_ids: Iterable[str]) -> None:
        for edge_id in edge_ids:
            if edge_id in staged.edges:
                del staged.edges[edge_id]
                staged.removed_edge_ids.append(edge_id)
            elif staged.pending.pop(edge_id, None) is not None:
                logger.debug(f"remove_edges: discarded pending edge {edge_id}")

    def _stage_clear(self, staged: _Staged) -> None:
        staged.removed_edge_ids.extend(staged.edges)
        staged.removed_node_ids.extend(staged.nodes)
        had_content = bool(staged.nodes or staged.edges)
        staged.nodes = {}
        staged.edges = {}
        staged.pending = OrderedDict()
        staged.reset = had_content

    # --- Pending edge buffer ---

    def _reconcile_pending(self, staged: _Staged) -> None:
        for edge_id, pending in list(staged.pending.items()):
            edge = pending.edge
            if edge.source_id in staged.nodes and edge.target_id in staged.nodes:
                del staged.pending[edge_id]
                if edge_id not in staged.edges:
                    staged.edges[edge_id] = edge
                    staged.added_edges.append(edge)
                    logger.info(f"add_edge: applied pending edge {edge_id} now that its endpoints exist")

    def _expire_pending(self, staged: _Staged) -> None:
        if not staged.pending:
            return
        now = self._clock()
        for edge_id, pending in list(staged.pending.items()):
            if now - pending.received_at > self._pending_ttl:
                del staged.pending[edge_id]
                logger.warning(
                    f"add_edge: dropping edge {edge_id}, endpoints never arrived "
                    f"({pending.edge.source_id} -> {pending.edge.target_id})"
                )
