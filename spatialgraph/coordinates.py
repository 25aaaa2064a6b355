"""
Pointer/viewport to graph-space conversion.

    graph = ((pointer - viewport_origin) - pan) / zoom

Pan and zoom change continuously while the user navigates, so they are read
from the engine at the moment of each gesture via Camera.read() and never
kept between gestures.
"""

from dataclasses import dataclass
from typing import Tuple

from spatialgraph.models import Position

Point = Tuple[float, float]


def to_graph_space(pointer_x: float, pointer_y: float, viewport_origin: Point,
                   pan: Point, zoom: float) -> Tuple[float, float]:
    """
    Convert a pointer location (page/client coordinates) to graph space.

    Args:
        pointer_x, pointer_y: pointer location in client coordinates
        viewport_origin: top-left of the rendering surface in client coordinates
        pan: current pan offset of the camera, in rendered pixels
        zoom: current zoom factor, must be > 0

    Returns:
        (graph_x, graph_y)
    """
    if zoom <= 0:
        raise ValueError(f"zoom must be positive, got {zoom}")
    local_x = pointer_x - viewport_origin[0]
    local_y = pointer_y - viewport_origin[1]
    return (local_x - pan[0]) / zoom, (local_y - pan[1]) / zoom


def to_viewport(graph_x: float, graph_y: float, viewport_origin: Point,
                pan: Point, zoom: float) -> Tuple[float, float]:
    """Inverse of to_graph_space: project a graph-space point to client coordinates."""
    if zoom <= 0:
        raise ValueError(f"zoom must be positive, got {zoom}")
    return (
        graph_x * zoom + pan[0] + viewport_origin[0],
        graph_y * zoom + pan[1] + viewport_origin[1],
    )


@dataclass(frozen=True)
class Camera:
    """Snapshot of the engine camera taken at gesture time."""
    viewport_origin: Point = (0.0, 0.0)
    pan: Point = (0.0, 0.0)
    zoom: float = 1.0

    @classmethod
    def read(cls, engine) -> "Camera":
        return cls(
            viewport_origin=tuple(engine.get_viewport_origin()),
            pan=tuple(engine.get_pan()),
            zoom=float(engine.get_zoom()),
        )

    def to_graph(self, pointer_x: float, pointer_y: float) -> Position:
        gx, gy = to_graph_space(pointer_x, pointer_y, self.viewport_origin, self.pan, self.zoom)
        return Position(gx, gy)

    def to_viewport(self, position: Position) -> Tuple[float, float]:
        return to_viewport(position.x, position.y, self.viewport_origin, self.pan, self.zoom)
