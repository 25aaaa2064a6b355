"""
Graph data model for the spatial canvas.

Nodes and edges are immutable records. A node that moves is replaced by a
copy with the new position; nothing else about it ever changes.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

EntityRef = Union[int, str]


class NodeKind(str, Enum):
    CONCEPT = "concept"
    ADR = "adr"
    PATTERN = "pattern"
    GENERIC = "generic"

    @classmethod
    def parse(cls, value: Any) -> "NodeKind":
        """Map a wire value to a kind; missing or unknown values become GENERIC."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            if value not in (None, ""):
                logger.debug(f"Unknown node kind {value!r}, using generic")
            return cls.GENERIC


class EdgeKind(str, Enum):
    HAS_MANY = "has_many"
    BELONGS_TO = "belongs_to"
    CONSTRAINS = "constrains"
    APPLIES_TO = "applies_to"
    GENERIC = "generic"

    @classmethod
    def parse(cls, value: Any) -> "EdgeKind":
        """Map a wire value to a kind; missing or unknown values become GENERIC."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            if value not in (None, ""):
                logger.debug(f"Unknown edge kind {value!r}, using generic")
            return cls.GENERIC


@dataclass(frozen=True)
class Position:
    """A point in graph space, independent of pan, zoom and viewport."""
    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_value(cls, value: Any) -> Optional["Position"]:
        """
        Build a Position from a {x, y} dict, an (x, y) pair, or a Position.

        Returns None when the value is absent. Raises ValueError when a value
        is present but cannot be read as two numbers.
        """
        if value is None:
            return None
        if isinstance(value, Position):
            return value
        if isinstance(value, dict):
            if "x" not in value or "y" not in value:
                raise ValueError(f"position needs x and y, got {value!r}")
            return cls(float(value["x"]), float(value["y"]))
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return cls(float(value[0]), float(value[1]))
        raise ValueError(f"unreadable position {value!r}")


@dataclass(frozen=True)
class Node:
    id: str
    entity_ref: Optional[EntityRef]
    position: Position = Position()
    kind: NodeKind = NodeKind.GENERIC
    label: str = ""
    origin_ref: Optional[str] = None

    def moved_to(self, position: Position) -> "Node":
        return replace(self, position=position)


@dataclass(frozen=True)
class Edge:
    id: str
    source_id: str
    target_id: str
    kind: EdgeKind = EdgeKind.GENERIC
    label: str = ""

    def touches(self, node_id: str) -> bool:
        return self.source_id == node_id or self.target_id == node_id
