"""
Subgraph filter engine.

Visibility is derived, never stored: a pure function of the filter mode and
the mirror. Whatever the mode, an edge is only visible when both of its
endpoints are.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from spatialgraph.models import Edge, EdgeKind, Node, NodeKind

logger = logging.getLogger(__name__)


class FilterMode(str, Enum):
    ALL = "all"
    CONCEPTS = "concepts"
    ADRS = "adrs"
    PATTERNS = "patterns"
    RELATIONSHIPS = "relationships"

    @classmethod
    def parse(cls, value: Any) -> "FilterMode":
        """Accepts singular aliases ('adr', 'pattern', 'concept'); unknown modes show everything."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        text = _ALIASES.get(text, text)
        try:
            return cls(text)
        except ValueError:
            logger.warning(f"Unknown filter mode {value!r}, showing all")
            return cls.ALL


_ALIASES = {
    "concept": "concepts",
    "adr": "adrs",
    "pattern": "patterns",
    "relationship": "relationships",
}


@dataclass(frozen=True)
class FilterRule:
    # None means "every kind"
    node_kinds: Optional[FrozenSet[NodeKind]]
    edge_kinds: Optional[FrozenSet[EdgeKind]]


FILTER_RULES: Dict[FilterMode, FilterRule] = {
    FilterMode.ALL: FilterRule(None, None),
    FilterMode.CONCEPTS: FilterRule(frozenset({NodeKind.CONCEPT}), None),
    FilterMode.ADRS: FilterRule(
        frozenset({NodeKind.ADR, NodeKind.CONCEPT}),
        frozenset({EdgeKind.CONSTRAINS}),
    ),
    FilterMode.PATTERNS: FilterRule(
        frozenset({NodeKind.PATTERN, NodeKind.CONCEPT}),
        frozenset({EdgeKind.APPLIES_TO}),
    ),
    FilterMode.RELATIONSHIPS: FilterRule(
        frozenset({NodeKind.CONCEPT}),
        frozenset({EdgeKind.HAS_MANY, EdgeKind.BELONGS_TO}),
    ),
}


@dataclass(frozen=True)
class Visibility:
    node_ids: FrozenSet[str]
    edge_ids: FrozenSet[str]


def compute_visibility(mode: Any, mirror) -> Visibility:
    """
    Compute the visible node and edge ids for a filter mode.

    Args:
        mode: FilterMode or its wire name
        mirror: anything with `nodes` and `edges` id->record mappings (GraphMirror)

    Returns:
        Visibility with both id sets; empty for an empty mirror.
    """
    return visibility_for(FilterMode.parse(mode), mirror.nodes, mirror.edges)


def visibility_for(mode: FilterMode, nodes: Dict[str, Node], edges: Dict[str, Edge]) -> Visibility:
    rule = FILTER_RULES[mode]
    if rule.node_kinds is None:
        visible_nodes = frozenset(nodes)
    else:
        visible_nodes = frozenset(nid for nid, n in nodes.items() if n.kind in rule.node_kinds)

    visible_edges = frozenset(
        eid for eid, e in edges.items()
        if (rule.edge_kinds is None or e.kind in rule.edge_kinds)
        and e.source_id in visible_nodes
        and e.target_id in visible_nodes
    )
    return Visibility(node_ids=visible_nodes, edge_ids=visible_edges)
