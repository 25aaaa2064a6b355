"""
Wire codec for the command channel.

Outbound requests ask the remote authority for a change. Inbound events are
the authority's confirmed decisions and are the only thing allowed to mutate
the local mirror.

Inbound payloads are decoded into frozen event records here, so the mirror
never sees raw dicts. Decoding accepts the field names used by the older
LiveView hooks (media_id, image_url, position_x/position_y, layout_type,
layoutName, filterType, type) as aliases of the current ones.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from spatialgraph.errors import EventDecodeError, UnknownEventError
from spatialgraph.models import Edge, EdgeKind, EntityRef, Node, NodeKind, Position

# Outbound request names (controller -> authority)
NODE_MOVED = "node_moved"
NODE_SELECTED = "node_selected"
NODE_DESELECTED = "node_deselected"
CREATE_EDGE = "create_edge"
DELETE_NODES = "delete_nodes"
DELETE_EDGES = "delete_edges"
ADD_NODE_FROM_PALETTE = "add_node_from_palette"

_INT_REF = re.compile(r"-?[0-9]+")

# Inbound event names (authority -> controller)
ADD_NODE = "add_node"
ADD_EDGE = "add_edge"
REMOVE_NODES = "remove_nodes"
REMOVE_EDGES = "remove_edges"
CLEAR_CANVAS = "clear_canvas"
LOAD_GRAPH = "load_graph"
APPLY_LAYOUT = "apply_layout"
CHANGE_LAYOUT = "change_layout"
FILTER_GRAPH = "filter_graph"
# NODE_MOVED is also an inbound event: the authority echoes accepted moves.


@dataclass(frozen=True)
class Request:
    """A named outbound message."""
    name: str
    payload: Dict[str, Any]


# --- Inbound events ---

@dataclass(frozen=True)
class LoadGraph:
    nodes: Tuple[Node, ...] = ()
    edges: Tuple[Edge, ...] = ()
    # ids of nodes that arrived without a position and were placed at (0, 0)
    unpositioned: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AddNode:
    node: Node
    positioned: bool = True


@dataclass(frozen=True)
class AddEdge:
    edge: Edge


@dataclass(frozen=True)
class NodeMoved:
    node_id: str
    position: Position


@dataclass(frozen=True)
class RemoveNodes:
    node_ids: Tuple[str, ...]


@dataclass(frozen=True)
class RemoveEdges:
    edge_ids: Tuple[str, ...]


@dataclass(frozen=True)
class ClearCanvas:
    pass


@dataclass(frozen=True)
class ApplyLayout:
    layout_name: str


@dataclass(frozen=True)
class ChangeLayout:
    layout_name: str


@dataclass(frozen=True)
class FilterGraph:
    filter_mode: str


MirrorEvent = Union[LoadGraph, AddNode, AddEdge, NodeMoved, RemoveNodes, RemoveEdges, ClearCanvas]
ViewEvent = Union[ApplyLayout, ChangeLayout, FilterGraph]
InboundEvent = Union[MirrorEvent, ViewEvent]

MIRROR_EVENT_TYPES = (LoadGraph, AddNode, AddEdge, NodeMoved, RemoveNodes, RemoveEdges, ClearCanvas)


# --- Decoding helpers ---

def _first(payload: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _require_id(event_name: str, payload: Dict[str, Any], *keys: str) -> str:
    value = _first(payload, *keys)
    if value is None or str(value) == "":
        raise EventDecodeError(event_name, f"missing '{keys[0]}'")
    return str(value)


def _id_list(event_name: str, payload: Dict[str, Any], key: str) -> Tuple[str, ...]:
    value = payload.get(key)
    if not isinstance(value, (list, tuple)):
        raise EventDecodeError(event_name, f"'{key}' must be a list")
    return tuple(str(v) for v in value)


def coerce_entity_ref(value: Any) -> Optional[EntityRef]:
    """Entity refs are ints when they look like ints, opaque strings otherwise."""
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    if _INT_REF.fullmatch(text):
        return int(text)
    return text


def _position(event_name: str, payload: Dict[str, Any]) -> Optional[Position]:
    try:
        pos = Position.from_value(payload.get("position"))
        if pos is None and "position_x" in payload and "position_y" in payload:
            pos = Position(float(payload["position_x"]), float(payload["position_y"]))
    except (TypeError, ValueError) as e:
        raise EventDecodeError(event_name, str(e)) from e
    return pos


def decode_node(event_name: str, payload: Dict[str, Any]) -> Tuple[Node, bool]:
    """
    Decode a node record.

    Returns the node and whether the payload carried a position. Nodes
    without one are placed at the graph origin.
    """
    if not isinstance(payload, dict):
        raise EventDecodeError(event_name, "node record must be an object")
    node_id = _require_id(event_name, payload, "id")
    pos = _position(event_name, payload)
    origin = _first(payload, "origin_ref", "image_url")
    node = Node(
        id=node_id,
        entity_ref=coerce_entity_ref(_first(payload, "entity_ref", "media_id")),
        position=pos or Position(0.0, 0.0),
        kind=NodeKind.parse(_first(payload, "kind", "type")),
        label=str(_first(payload, "label", "name") or ""),
        origin_ref=str(origin) if origin is not None else None,
    )
    return node, pos is not None


def decode_edge(event_name: str, payload: Dict[str, Any]) -> Edge:
    if not isinstance(payload, dict):
        raise EventDecodeError(event_name, "edge record must be an object")
    return Edge(
        id=_require_id(event_name, payload, "id"),
        source_id=_require_id(event_name, payload, "source_id", "source"),
        target_id=_require_id(event_name, payload, "target_id", "target"),
        kind=EdgeKind.parse(_first(payload, "kind", "type")),
        label=str(_first(payload, "label") or ""),
    )


def _decode_load_graph(payload: Dict[str, Any]) -> LoadGraph:
    raw_nodes = payload.get("nodes") or []
    raw_edges = payload.get("edges") or []
    if not isinstance(raw_nodes, list) or not isinstance(raw_edges, list):
        raise EventDecodeError(LOAD_GRAPH, "'nodes' and 'edges' must be lists")
    nodes: List[Node] = []
    unpositioned: List[str] = []
    for raw in raw_nodes:
        node, positioned = decode_node(LOAD_GRAPH, raw)
        nodes.append(node)
        if not positioned:
            unpositioned.append(node.id)
    edges = [decode_edge(LOAD_GRAPH, raw) for raw in raw_edges]
    return LoadGraph(nodes=tuple(nodes), edges=tuple(edges), unpositioned=tuple(unpositioned))


def _decode_node_moved(payload: Dict[str, Any]) -> NodeMoved:
    node_id = _require_id(NODE_MOVED, payload, "id")
    pos = _position(NODE_MOVED, payload)
    if pos is None:
        raise EventDecodeError(NODE_MOVED, "missing 'position'")
    return NodeMoved(node_id=node_id, position=pos)


def _layout_name(event_name: str, payload: Dict[str, Any]) -> str:
    name = _first(payload, "layout_name", "layout_type", "layoutName")
    if not name:
        raise EventDecodeError(event_name, "missing 'layout_name'")
    return str(name)


def decode_event(name: str, payload: Optional[Dict[str, Any]]) -> InboundEvent:
    """
    Decode a named inbound payload into an event record.

    Raises:
        UnknownEventError: name is not an inbound event
        EventDecodeError: payload is malformed; nothing from it may be applied
    """
    payload = payload if payload is not None else {}
    if not isinstance(payload, dict):
        raise EventDecodeError(name, "payload must be an object")

    if name == LOAD_GRAPH:
        return _decode_load_graph(payload)
    if name == ADD_NODE:
        node, positioned = decode_node(ADD_NODE, payload)
        return AddNode(node=node, positioned=positioned)
    if name == ADD_EDGE:
        return AddEdge(edge=decode_edge(ADD_EDGE, payload))
    if name == NODE_MOVED:
        return _decode_node_moved(payload)
    if name == REMOVE_NODES:
        return RemoveNodes(node_ids=_id_list(name, payload, "node_ids"))
    if name == REMOVE_EDGES:
        return RemoveEdges(edge_ids=_id_list(name, payload, "edge_ids"))
    if name == CLEAR_CANVAS:
        return ClearCanvas()
    if name == APPLY_LAYOUT:
        return ApplyLayout(layout_name=_layout_name(name, payload))
    if name == CHANGE_LAYOUT:
        return ChangeLayout(layout_name=_layout_name(name, payload))
    if name == FILTER_GRAPH:
        mode = _first(payload, "filter_mode", "filterType")
        if not mode:
            raise EventDecodeError(name, "missing 'filter_mode'")
        return FilterGraph(filter_mode=str(mode))
    raise UnknownEventError(name)


# --- Outbound request builders ---

def node_moved_request(node_id: str, position: Position) -> Request:
    return Request(NODE_MOVED, {"id": node_id, "position": position.to_dict()})


def node_selected_request(node_id: str, entity_ref: Optional[EntityRef]) -> Request:
    return Request(NODE_SELECTED, {"id": node_id, "entity_ref": entity_ref})


def node_deselected_request() -> Request:
    return Request(NODE_DESELECTED, {})


def create_edge_request(source_id: str, target_id: str) -> Request:
    return Request(CREATE_EDGE, {"source_id": source_id, "target_id": target_id})


def delete_nodes_request(node_ids: Iterable[str]) -> Request:
    return Request(DELETE_NODES, {"node_ids": list(node_ids)})


def delete_edges_request(edge_ids: Iterable[str]) -> Request:
    return Request(DELETE_EDGES, {"edge_ids": list(edge_ids)})


def add_node_from_palette_request(entity_ref: EntityRef, position: Position,
                                  origin_ref: Optional[str] = None) -> Request:
    payload: Dict[str, Any] = {"entity_ref": entity_ref, "position": position.to_dict()}
    if origin_ref:
        payload["origin_ref"] = origin_ref
    return Request(ADD_NODE_FROM_PALETTE, payload)


# --- Encoding records for the wire (used by the authority) ---

def encode_node(node: Node) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "id": node.id,
        "entity_ref": node.entity_ref,
        "position": node.position.to_dict(),
        "kind": node.kind.value,
    }
    if node.label:
        record["label"] = node.label
    if node.origin_ref:
        record["origin_ref"] = node.origin_ref
    return record


def encode_edge(edge: Edge) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "id": edge.id,
        "source_id": edge.source_id,
        "target_id": edge.target_id,
        "kind": edge.kind.value,
    }
    if edge.label:
        record["label"] = edge.label
    return record
