"""
Named layout algorithms for the canvas, computed with NetworkX.

A layout runs over a subset of nodes (the visible ones). Only edges between
nodes of the subset take part, and nodes outside the subset keep their
positions. The result is centred on the subset's current centroid so that
laying out a filtered view does not throw it across the canvas.

Layout names follow the browser canvas vocabulary:
    cose, force, spring  -> force-directed (spring_layout)
    circle               -> circular_layout
    concentric, shell    -> shell_layout, high-degree nodes in the middle
    breadthfirst         -> BFS layers from the highest-degree node
    grid                 -> rows and columns in id order
    random               -> random_layout (seeded)
    preset               -> keep current positions
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Tuple

import networkx as nx

from spatialgraph.models import Edge, Position

logger = logging.getLogger(__name__)

DEFAULT_SCALE = 300.0
DEFAULT_SPACING = 120.0
DEFAULT_SEED = 42

_ALIASES = {
    "cose": "force",
    "spring": "force",
    "cola": "force",
    "fcose": "force",
    "circular": "circle",
    "shell": "concentric",
    "bfs": "breadthfirst",
    "tree": "breadthfirst",
}

LAYOUT_NAMES = ("preset", "force", "circle", "concentric", "breadthfirst", "grid", "random")


def canonical_layout_name(name: str) -> Optional[str]:
    """Return the canonical layout name, or None if the name is unknown."""
    key = (name or "").strip().lower()
    key = _ALIASES.get(key, key)
    return key if key in LAYOUT_NAMES else None


def build_graph(node_ids: Iterable[str], edges: Iterable[Edge]) -> nx.Graph:
    """Undirected NetworkX graph of the subset; edges leaving the subset are skipped."""
    G = nx.Graph()
    G.add_nodes_from(sorted(node_ids))
    for edge in edges:
        if edge.source_id in G and edge.target_id in G and edge.source_id != edge.target_id:
            G.add_edge(edge.source_id, edge.target_id)
    return G


def _centroid(node_ids: List[str], positions: Dict[str, Position]) -> Tuple[float, float]:
    known = [positions[n] for n in node_ids if n in positions]
    if not known:
        return 0.0, 0.0
    return (
        sum(p.x for p in known) / len(known),
        sum(p.y for p in known) / len(known),
    )


def _to_positions(layout, center: Tuple[float, float], scale: float) -> Dict[str, Position]:
    # NetworkX returns coordinates in [-1, 1] unless told otherwise
    return {
        node_id: Position(float(xy[0]) * scale + center[0], float(xy[1]) * scale + center[1])
        for node_id, xy in layout.items()
    }


def _grid(node_ids: List[str], center: Tuple[float, float], spacing: float) -> Dict[str, Position]:
    cols = max(1, math.ceil(math.sqrt(len(node_ids))))
    rows = math.ceil(len(node_ids) / cols)
    x0 = center[0] - (cols - 1) * spacing / 2
    y0 = center[1] - (rows - 1) * spacing / 2
    return {
        node_id: Position(x0 + (i % cols) * spacing, y0 + (i // cols) * spacing)
        for i, node_id in enumerate(node_ids)
    }


def _shells(G: nx.Graph) -> List[List[str]]:
    by_degree: Dict[int, List[str]] = {}
    for node_id in G.nodes:
        by_degree.setdefault(G.degree(node_id), []).append(node_id)
    return [sorted(by_degree[d]) for d in sorted(by_degree, reverse=True)]


def _breadthfirst(G: nx.Graph, center: Tuple[float, float], spacing: float) -> Dict[str, Position]:
    """Layer each connected component from its highest-degree node, components side by side."""
    positions: Dict[str, Position] = {}
    components = sorted(nx.connected_components(G), key=lambda c: (-len(c), min(c)))
    columns: List[List[List[str]]] = []
    for component in components:
        root = max(sorted(component), key=G.degree)
        depths = nx.single_source_shortest_path_length(G, root)
        layers: Dict[int, List[str]] = {}
        for node_id, depth in depths.items():
            layers.setdefault(depth, []).append(node_id)
        columns.append([sorted(layers[d]) for d in sorted(layers)])

    total_width = sum(max(len(layer) for layer in layers) for layers in columns)
    depth = max(len(layers) for layers in columns)
    x_cursor = center[0] - (total_width - 1) * spacing / 2
    y0 = center[1] - (depth - 1) * spacing / 2
    for layers in columns:
        width = max(len(layer) for layer in layers)
        for level, layer in enumerate(layers):
            offset = (width - len(layer)) * spacing / 2
            for i, node_id in enumerate(layer):
                positions[node_id] = Position(x_cursor + offset + i * spacing, y0 + level * spacing)
        x_cursor += width * spacing
    return positions


def compute_layout(
    layout_name: str,
    node_ids: Iterable[str],
    edges: Iterable[Edge],
    positions: Optional[Dict[str, Position]] = None,
    scale: float = DEFAULT_SCALE,
    spacing: float = DEFAULT_SPACING,
    seed: int = DEFAULT_SEED,
) -> Dict[str, Position]:
    """
    Compute new positions for a subset of nodes.

    Args:
        layout_name: any name accepted by canonical_layout_name()
        node_ids: the nodes to lay out
        edges: candidate edges; only those inside the subset are used
        positions: current positions, used for the centre and by 'preset'
        scale: radius of the force/circle/concentric/random layouts
        spacing: distance between neighbours for grid and breadthfirst
        seed: random seed, so a layout is reproducible

    Returns:
        node_id -> Position for every node in the subset; empty for an
        unknown layout name or an empty subset.
    """
    positions = positions or {}
    ids = sorted(set(node_ids))
    name = canonical_layout_name(layout_name)
    if name is None:
        logger.warning(f"Unknown layout '{layout_name}', leaving positions unchanged")
        return {}
    if not ids:
        return {}
    if name == "preset":
        return {n: positions.get(n, Position()) for n in ids}

    center = _centroid(ids, positions)
    G = build_graph(ids, edges)
    logger.debug(f"Layout '{name}' over {G.number_of_nodes()} node(s), {G.number_of_edges()} edge(s)")

    if name == "grid":
        return _grid(ids, center, spacing)
    if name == "breadthfirst":
        return _breadthfirst(G, center, spacing)
    if len(ids) == 1:
        return {ids[0]: Position(*center)}
    if name == "force":
        layout = nx.spring_layout(G, seed=seed)
    elif name == "circle":
        layout = nx.circular_layout(G)
    elif name == "concentric":
        layout = nx.shell_layout(G, nlist=_shells(G))
    else:
        # random_layout samples [0, 1) + center
        layout = nx.random_layout(G, seed=seed, center=(-0.5, -0.5))
        layout = {n: (2 * xy[0], 2 * xy[1]) for n, xy in layout.items()}
    return _to_positions(layout, center, scale)
