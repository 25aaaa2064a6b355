"""
Local authority for the spatial graph canvas.

Owns the canonical graph and answers canvas requests with confirmed events,
broadcast to every connected channel. This is the in-process stand-in for
the remote authority, so the app runs standalone and tests can drive the
full request -> confirmation round trip.

Policy:
- node and edge ids are assigned here (uuid4)
- create_edge needs both endpoints, rejects self-loops and duplicate
  (source, target) pairs
- delete_nodes removes incident edges too; canvases cascade the same way
- rejected requests are logged and produce no event

Storage is an optional JSON file holding nodes, edges and the palette catalog.
"""

import json
import logging
import uuid
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from spatialgraph.errors import EventDecodeError
from spatialgraph.events import (
    ADD_EDGE,
    ADD_NODE,
    ADD_NODE_FROM_PALETTE,
    APPLY_LAYOUT,
    CHANGE_LAYOUT,
    CLEAR_CANVAS,
    CREATE_EDGE,
    DELETE_EDGES,
    DELETE_NODES,
    FILTER_GRAPH,
    LOAD_GRAPH,
    NODE_DESELECTED,
    NODE_MOVED,
    NODE_SELECTED,
    REMOVE_EDGES,
    REMOVE_NODES,
    coerce_entity_ref,
    decode_edge,
    decode_node,
    encode_edge,
    encode_node,
)
from spatialgraph.models import Edge, EdgeKind, EntityRef, Node, NodeKind, Position

logger = logging.getLogger(__name__)


@dataclass
class CatalogEntry:
    """An entity that can be dragged from the palette."""
    entity_ref: EntityRef
    label: str
    kind: str = NodeKind.GENERIC.value
    origin_ref: Optional[str] = None


class LocalAuthority:
    """Canonical graph plus request handling for connected canvases."""

    def __init__(self, store_path: Optional[Path] = None,
                 id_factory: Optional[Callable[[], str]] = None):
        self._store_path = Path(store_path) if store_path else None
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._nodes: Dict[str, Node] = {}
        self._edges: Dict[str, Edge] = {}
        self._catalog: Dict[EntityRef, CatalogEntry] = {}
        self._channels: List = []
        self._selected: Optional[Dict[str, Any]] = None
        self._handlers = {
            ADD_NODE_FROM_PALETTE: self._add_node_from_palette,
            NODE_MOVED: self._node_moved,
            NODE_SELECTED: self._node_selected,
            NODE_DESELECTED: self._node_deselected,
            CREATE_EDGE: self._create_edge,
            DELETE_NODES: self._delete_nodes,
            DELETE_EDGES: self._delete_edges,
        }

    # --- Read access ---

    @property
    def nodes(self) -> Dict[str, Node]:
        return dict(self._nodes)

    @property
    def edges(self) -> Dict[str, Edge]:
        return dict(self._edges)

    @property
    def last_selected(self) -> Optional[Dict[str, Any]]:
        """Payload of the most recent node_selected request, None once deselected."""
        return self._selected

    def palette(self) -> List[CatalogEntry]:
        return sorted(self._catalog.values(), key=lambda e: str(e.entity_ref))

    def add_catalog_entry(self, entry: CatalogEntry) -> None:
        self._catalog[entry.entity_ref] = entry

    # --- Channels ---

    def connect(self, channel) -> None:
        """Start answering a channel's requests and broadcasting to it."""
        if channel in self._channels:
            return
        channel.on_request(self.handle_request)
        self._channels.append(channel)
        logger.info(f"Canvas channel '{channel.name}' connected ({len(self._channels)} total)")

    def disconnect(self, channel) -> None:
        if channel not in self._channels:
            return
        channel.off('request', self.handle_request)
        self._channels.remove(channel)
        logger.info(f"Canvas channel '{channel.name}' disconnected")

    def _broadcast(self, name: str, payload: Optional[Dict[str, Any]] = None) -> None:
        for channel in list(self._channels):
            channel.publish(name, payload or {})

    def send_snapshot(self, channel=None) -> None:
        """Send load_graph to one channel, or to all of them."""
        payload = self._snapshot_payload()
        if channel is None:
            self._broadcast(LOAD_GRAPH, payload)
        else:
            channel.publish(LOAD_GRAPH, payload)

    def _snapshot_payload(self) -> Dict[str, Any]:
        return {
            "nodes": [encode_node(n) for n in self._nodes.values()],
            "edges": [encode_edge(e) for e in self._edges.values()],
        }

    # --- Requests ---

    def handle_request(self, name: str, payload: Dict[str, Any]) -> None:
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning(f"Authority ignoring unknown request '{name}'")
            return
        handler(payload or {})

    def _add_node_from_palette(self, payload: Dict[str, Any]) -> None:
        entity_ref = coerce_entity_ref(payload.get("entity_ref"))
        if entity_ref is None:
            logger.warning(f"Rejected add_node_from_palette without entity_ref: {payload!r}")
            return
        try:
            position = Position.from_value(payload.get("position")) or Position()
        except (TypeError, ValueError) as e:
            logger.warning(f"Rejected add_node_from_palette with bad position: {e}")
            return
        entry = self._catalog.get(entity_ref)
        node = Node(
            id=self._new_id(),
            entity_ref=entity_ref,
            position=position,
            kind=NodeKind.parse(entry.kind if entry else None),
            label=entry.label if entry else "",
            origin_ref=payload.get("origin_ref") or (entry.origin_ref if entry else None),
        )
        self._nodes[node.id] = node
        logger.info(f"Added node {node.id} for entity {entity_ref}")
        self._broadcast(ADD_NODE, encode_node(node))
        self.save()

    def _node_moved(self, payload: Dict[str, Any]) -> None:
        node = self._nodes.get(str(payload.get("id")))
        if node is None:
            logger.debug(f"node_moved for unknown node {payload.get('id')}, ignoring")
            return
        try:
            position = Position.from_value(payload.get("position"))
        except (TypeError, ValueError) as e:
            logger.warning(f"Rejected node_moved with bad position: {e}")
            return
        if position is None:
            return
        self._nodes[node.id] = node.moved_to(position)
        self._broadcast(NODE_MOVED, {"id": node.id, "position": position.to_dict()})
        self.save()

    def _node_selected(self, payload: Dict[str, Any]) -> None:
        self._selected = dict(payload)
        logger.debug(f"Node selected: {payload.get('id')} (entity {payload.get('entity_ref')})")

    def _node_deselected(self, payload: Dict[str, Any]) -> None:
        self._selected = None
        logger.debug("Node selection cleared")

    def _create_edge(self, payload: Dict[str, Any]) -> None:
        source_id = str(payload.get("source_id", ""))
        target_id = str(payload.get("target_id", ""))
        if source_id not in self._nodes or target_id not in self._nodes:
            logger.warning(f"Rejected create_edge {source_id} -> {target_id}: unknown endpoint")
            return
        if source_id == target_id:
            logger.warning(f"Rejected create_edge: self-loop on {source_id}")
            return
        if any(e.source_id == source_id and e.target_id == target_id for e in self._edges.values()):
            logger.warning(f"Rejected create_edge: {source_id} -> {target_id} already exists")
            return
        edge = Edge(
            id=self._new_id(),
            source_id=source_id,
            target_id=target_id,
            kind=EdgeKind.parse(payload.get("kind")),
        )
        self._edges[edge.id] = edge
        logger.info(f"Added edge {edge.id}: {source_id} -> {target_id}")
        self._broadcast(ADD_EDGE, encode_edge(edge))
        self.save()

    def _delete_nodes(self, payload: Dict[str, Any]) -> None:
        ids = [str(i) for i in payload.get("node_ids") or [] if str(i) in self._nodes]
        if not ids:
            return
        doomed = set(ids)
        for edge_id, edge in list(self._edges.items()):
            if edge.source_id in doomed or edge.target_id in doomed:
                del self._edges[edge_id]
        for node_id in ids:
            del self._nodes[node_id]
        logger.info(f"Deleted {len(ids)} node(s)")
        self._broadcast(REMOVE_NODES, {"node_ids": ids})
        self.save()

    def _delete_edges(self, payload: Dict[str, Any]) -> None:
        ids = [str(i) for i in payload.get("edge_ids") or [] if str(i) in self._edges]
        if not ids:
            return
        for edge_id in ids:
            del self._edges[edge_id]
        logger.info(f"Deleted {len(ids)} edge(s)")
        self._broadcast(REMOVE_EDGES, {"edge_ids": ids})
        self.save()

    # --- Operator commands ---

    def load(self, nodes: List[Node], edges: List[Edge]) -> None:
        """Replace the graph and push it to every canvas."""
        self._nodes = {n.id: n for n in nodes}
        self._edges = {
            e.id: e for e in edges
            if e.source_id in self._nodes and e.target_id in self._nodes
        }
        self.send_snapshot()
        self.save()

    def clear(self) -> None:
        self._nodes.clear()
        self._edges.clear()
        self._broadcast(CLEAR_CANVAS)
        self.save()

    def apply_layout(self, layout_name: str) -> None:
        self._broadcast(APPLY_LAYOUT, {"layout_name": layout_name})

    def change_layout(self, layout_name: str) -> None:
        self._broadcast(CHANGE_LAYOUT, {"layout_name": layout_name})

    def filter(self, filter_mode: str) -> None:
        self._broadcast(FILTER_GRAPH, {"filter_mode": filter_mode})

    # --- Persistence ---

    def save(self) -> None:
        if self._store_path is None:
            return
        data = {
            "nodes": [encode_node(n) for n in self._nodes.values()],
            "edges": [encode_edge(e) for e in self._edges.values()],
            "catalog": [asdict(entry) for entry in self.palette()],
        }
        self._store_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._store_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def load_store(self) -> bool:
        """Load the graph from the store file. Returns False if there is nothing to load."""
        if self._store_path is None or not self._store_path.exists():
            return False
        try:
            with open(self._store_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to load graph from {self._store_path}: {e}")
            return False

        try:
            nodes = [decode_node(LOAD_GRAPH, raw)[0] for raw in data.get("nodes", [])]
            edges = [decode_edge(LOAD_GRAPH, raw) for raw in data.get("edges", [])]
        except EventDecodeError as e:
            logger.warning(f"Graph file {self._store_path} is malformed: {e}")
            return False
        for raw in data.get("catalog", []):
            entity_ref = coerce_entity_ref(raw.get("entity_ref"))
            if entity_ref is not None:
                self.add_catalog_entry(CatalogEntry(
                    entity_ref=entity_ref,
                    label=str(raw.get("label") or entity_ref),
                    kind=raw.get("kind") or NodeKind.GENERIC.value,
                    origin_ref=raw.get("origin_ref"),
                ))
        self._nodes = {n.id: n for n in nodes}
        self._edges = {
            e.id: e for e in edges
            if e.source_id in self._nodes and e.target_id in self._nodes
        }
        logger.info(f"Loaded {len(self._nodes)} node(s), {len(self._edges)} edge(s) from {self._store_path}")
        return True

    # --- Demo content ---

    def seed_demo(self) -> None:
        """A small architecture knowledge graph plus a palette of draggable entities."""
        for entry in DEMO_CATALOG:
            self.add_catalog_entry(entry)

        nodes = [
            Node(id=node_id, entity_ref=None, position=Position(x, y), kind=NodeKind(kind), label=label)
            for node_id, kind, label, x, y in DEMO_NODES
        ]
        edges = [
            Edge(id=f"e-{source}-{target}", source_id=source, target_id=target, kind=EdgeKind(kind))
            for source, target, kind in DEMO_EDGES
        ]
        self.load(nodes, edges)
        logger.info(f"Seeded demo graph: {len(nodes)} node(s), {len(edges)} edge(s)")


DEMO_CATALOG = [
    CatalogEntry(101, "Whiteboard sketch", NodeKind.GENERIC.value, "https://picsum.photos/id/101/120"),
    CatalogEntry(102, "Sequence diagram", NodeKind.GENERIC.value, "https://picsum.photos/id/102/120"),
    CatalogEntry(103, "Meeting notes", NodeKind.GENERIC.value, "https://picsum.photos/id/103/120"),
    CatalogEntry("invoice", "Invoice", NodeKind.CONCEPT.value),
    CatalogEntry("adr-queue", "Use a message queue", NodeKind.ADR.value),
    CatalogEntry("retry", "Retry with backoff", NodeKind.PATTERN.value),
]

# (id, kind, label, x, y)
DEMO_NODES = [
    ("customer", "concept", "Customer", 200, 200),
    ("order", "concept", "Order", 450, 200),
    ("line-item", "concept", "Line item", 700, 200),
    ("product", "concept", "Product", 700, 420),
    ("adr-event-sourcing", "adr", "Event-source orders", 450, 420),
    ("adr-rest", "adr", "REST for public API", 200, 420),
    ("repository", "pattern", "Repository", 450, 620),
    ("saga", "pattern", "Saga", 200, 620),
]

# (source, target, kind)
DEMO_EDGES = [
    ("customer", "order", "has_many"),
    ("order", "customer", "belongs_to"),
    ("order", "line-item", "has_many"),
    ("line-item", "product", "belongs_to"),
    ("adr-event-sourcing", "order", "constrains"),
    ("adr-rest", "customer", "constrains"),
    ("repository", "product", "applies_to"),
    ("saga", "order", "applies_to"),
]
