"""
Export serializer.

Produces the snapshot handed to the copy/download collaborator. Output is
deterministic for a given mirror: records are sorted by id, keys are emitted
in a fixed order and coordinates are rounded to a fixed precision. Only the
timestamp varies, and callers can pin it.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from spatialgraph.models import Edge, Node

POSITION_PRECISION = 3


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _coord(value: float) -> float:
    rounded = round(float(value), POSITION_PRECISION)
    # avoid "-0.0" in the output
    return rounded + 0.0


def node_record(node: Node) -> Dict[str, Any]:
    return {
        "id": node.id,
        "entity_ref": node.entity_ref,
        "kind": node.kind.value,
        "label": node.label,
        "origin_ref": node.origin_ref,
        "position": {"x": _coord(node.position.x), "y": _coord(node.position.y)},
    }


def edge_record(edge: Edge) -> Dict[str, Any]:
    return {
        "id": edge.id,
        "source_id": edge.source_id,
        "target_id": edge.target_id,
        "kind": edge.kind.value,
    }


def serialize(mirror, timestamp: Optional[str] = None) -> Dict[str, Any]:
    """
    Build an export snapshot of the mirror.

    Args:
        mirror: GraphMirror (or anything with `nodes`/`edges` mappings)
        timestamp: ISO-8601 timestamp to embed; defaults to now (UTC)

    Returns:
        {timestamp, node_count, edge_count, nodes, edges}
    """
    nodes = mirror.nodes
    edges = mirror.edges
    return {
        "timestamp": timestamp or _now_iso(),
        "node_count": len(nodes),
        "edge_count": len(edges),
        "nodes": [node_record(nodes[nid]) for nid in sorted(nodes)],
        "edges": [edge_record(edges[eid]) for eid in sorted(edges)],
    }


def to_json(snapshot: Dict[str, Any]) -> str:
    return json.dumps(snapshot, indent=2, ensure_ascii=False)
