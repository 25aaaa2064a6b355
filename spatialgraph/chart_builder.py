"""
ECharts options builder for the spatial canvas.

Converts mirror records into a single ECharts 'graph' series with
layout 'none', so every node sits at its graph-space position. Hidden
elements are left out of the series, the edge-source marker and the
selection are drawn as borders, and two invisible frame anchors pin the
series bounding box to the canvas size so that at zoom 1 graph units map
onto surface pixels.
"""

from typing import Any, Dict, Iterable, List, Optional

from spatialgraph.models import Edge, EdgeKind, Node, NodeKind

# Event keys we request from ECharts click/contextmenu events
REQUESTED_EVENT_KEYS = ['componentType', 'dataType', 'name', 'data']

FRAME_NODE_PREFIX = '__frame_'

BACKGROUND_COLOR = '#1e1e1e'

NODE_COLORS = {
    NodeKind.CONCEPT: '#3b82f6',
    NodeKind.ADR: '#f59e0b',
    NodeKind.PATTERN: '#10b981',
    NodeKind.GENERIC: '#94a3b8',
}

NODE_SYMBOLS = {
    NodeKind.CONCEPT: 'circle',
    NodeKind.ADR: 'rect',
    NodeKind.PATTERN: 'diamond',
    NodeKind.GENERIC: 'roundRect',
}

EDGE_COLORS = {
    EdgeKind.HAS_MANY: '#60a5fa',
    EdgeKind.BELONGS_TO: '#a78bfa',
    EdgeKind.CONSTRAINS: '#f87171',
    EdgeKind.APPLIES_TO: '#34d399',
    EdgeKind.GENERIC: '#64748b',
}

MARKER_COLOR = '#ffd700'
SELECTED_COLOR = '#ffffff'


def node_label(node: Node) -> str:
    if node.label:
        return node.label
    if node.entity_ref is not None:
        return str(node.entity_ref)
    return node.id


def build_node_item(node: Node, marked: bool = False, selected: bool = False,
                    editable: bool = True) -> Dict[str, Any]:
    color = NODE_COLORS.get(node.kind, NODE_COLORS[NodeKind.GENERIC])
    item_style: Dict[str, Any] = {'color': color, 'borderColor': 'transparent', 'borderWidth': 0}
    if selected:
        item_style.update({'borderColor': SELECTED_COLOR, 'borderWidth': 3})
    if marked:
        # Marker wins over selection, it is the pending edge source
        item_style.update({'borderColor': MARKER_COLOR, 'borderWidth': 4, 'borderType': 'dashed'})

    item: Dict[str, Any] = {
        'id': node.id,
        'name': node.id,
        'x': node.position.x,
        'y': node.position.y,
        'value': node_label(node),
        'kind': node.kind.value,
        'symbol': NODE_SYMBOLS.get(node.kind, 'circle'),
        'symbolSize': 36 if node.kind == NodeKind.CONCEPT else 30,
        'draggable': editable,
        'itemStyle': item_style,
        'label': {'show': True, 'formatter': node_label(node), 'position': 'bottom', 'color': '#e2e8f0'},
    }
    if node.origin_ref:
        item['tooltip'] = {'formatter': f"{node_label(node)}<br/><img src='{node.origin_ref}' width='120'/>"}
    else:
        item['tooltip'] = {'formatter': node_label(node)}
    return item


def build_edge_item(edge: Edge, selected: bool = False) -> Dict[str, Any]:
    line_style: Dict[str, Any] = {
        'color': EDGE_COLORS.get(edge.kind, EDGE_COLORS[EdgeKind.GENERIC]),
        'width': 2,
        'curveness': 0.1 if edge.source_id == edge.target_id else 0,
        'opacity': 0.9,
    }
    if selected:
        line_style.update({'color': SELECTED_COLOR, 'width': 4})
    item: Dict[str, Any] = {
        'id': edge.id,
        'source': edge.source_id,
        'target': edge.target_id,
        'kind': edge.kind.value,
        'lineStyle': line_style,
        'symbol': ['none', 'arrow'],
    }
    if edge.label or edge.kind != EdgeKind.GENERIC:
        item['label'] = {'show': True, 'formatter': edge.label or edge.kind.value, 'fontSize': 10}
    return item


def frame_anchors(width: float, height: float) -> List[Dict[str, Any]]:
    """Invisible, non-interactive nodes at the canvas corners."""
    return [
        {
            'id': f'{FRAME_NODE_PREFIX}{i}',
            'name': f'{FRAME_NODE_PREFIX}{i}',
            'x': x,
            'y': y,
            'symbolSize': 0,
            'silent': True,
            'draggable': False,
            'label': {'show': False},
            'tooltip': {'show': False},
        }
        for i, (x, y) in enumerate([(0, 0), (width, height)])
    ]


def is_frame_anchor(name: Optional[str]) -> bool:
    return bool(name) and str(name).startswith(FRAME_NODE_PREFIX)


def build_echart_options(
    nodes: Dict[str, Node],
    edges: Dict[str, Edge],
    visible_node_ids: Optional[Iterable[str]] = None,
    visible_edge_ids: Optional[Iterable[str]] = None,
    marked_node_ids: Iterable[str] = (),
    selected_ids: Iterable[str] = (),
    editable: bool = True,
    width: float = 1200,
    height: float = 800,
    min_zoom: float = 0.3,
    max_zoom: float = 2.0,
) -> Dict[str, Any]:
    """
    Build ECharts options from the engine's element maps.

    Args:
        nodes: node_id -> Node
        edges: edge_id -> Edge
        visible_node_ids / visible_edge_ids: elements to draw (None = all)
        marked_node_ids: nodes carrying the edge-source marker
        selected_ids: selected node and edge ids
        editable: whether nodes can be dragged
        width, height: canvas size in pixels, used for the frame anchors
        min_zoom, max_zoom: roam zoom limits

    Returns:
        ECharts options dict ready for ui.echart()
    """
    shown_nodes = set(nodes) if visible_node_ids is None else set(visible_node_ids) & set(nodes)
    shown_edges = set(edges) if visible_edge_ids is None else set(visible_edge_ids) & set(edges)
    marked = set(marked_node_ids)
    selected = set(selected_ids)

    e_nodes = frame_anchors(width, height)
    for node_id in sorted(shown_nodes):
        e_nodes.append(build_node_item(
            nodes[node_id],
            marked=node_id in marked,
            selected=node_id in selected,
            editable=editable,
        ))

    e_links = []
    for edge_id in sorted(shown_edges):
        edge = edges[edge_id]
        # Never draw an edge whose endpoint is hidden
        if edge.source_id not in shown_nodes or edge.target_id not in shown_nodes:
            continue
        e_links.append(build_edge_item(edge, selected=edge_id in selected))

    return {
        'backgroundColor': BACKGROUND_COLOR,
        'tooltip': {},
        'animation': False,
        'series': [{
            'type': 'graph',
            'layout': 'none',
            'roam': True,
            'scaleLimit': {'min': min_zoom, 'max': max_zoom},
            'left': 0,
            'top': 0,
            'width': width,
            'height': height,
            'edgeSymbolSize': 8,
            'data': e_nodes,
            'links': e_links,
        }],
    }


def normalize_click_payload(raw_payload: Any) -> Dict[str, Any]:
    """Normalize NiceGUI chart event payloads into a dictionary for easier parsing."""
    if isinstance(raw_payload, dict):
        return raw_payload
    if isinstance(raw_payload, (list, tuple)):
        return {
            REQUESTED_EVENT_KEYS[i]: raw_payload[i]
            for i in range(min(len(raw_payload), len(REQUESTED_EVENT_KEYS)))
        }
    if isinstance(raw_payload, str):
        return {'name': raw_payload}
    return {}


def resolve_element_id(payload: Dict[str, Any]) -> Optional[str]:
    """Return the node or edge id a chart event refers to, or None for background/anchors."""
    if not isinstance(payload, dict) or payload.get('componentType') != 'series':
        return None
    data = payload.get('data')
    if payload.get('dataType') == 'edge':
        return data.get('id') if isinstance(data, dict) else None
    name = payload.get('name')
    if not name and isinstance(data, dict):
        name = data.get('id')
    if not name or is_frame_anchor(name):
        return None
    return str(name)
