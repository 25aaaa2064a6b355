"""
Canvas interaction for the spatial graph.

This package turns gestures into requests and confirmed events into
engine updates:
- CanvasController: single writer between gestures, channel, mirror, engine
- EdgeCreationStateMachine: two-step contextual edge gesture
- DropIngestion: palette drops -> add_node_from_palette
- setup_canvas_handlers: NiceGUI event handlers for app.py integration

Usage:
    from spatialgraph.interaction import CanvasController, CanvasMode
    from spatialgraph.interaction.handlers import setup_canvas_handlers
"""

from spatialgraph.interaction.constants import (
    BROWSER_LAYOUT,
    EDITOR_LAYOUT,
    DELETE_KEYS,
    MOVE_EPSILON,
)
from spatialgraph.interaction.controller import CanvasController, CanvasMode, CanvasStatus
from spatialgraph.interaction.drop import DropIngestion, DropPayload
from spatialgraph.interaction.edge_creation import (
    EdgeCreationState,
    EdgeCreationStateMachine,
)

__all__ = [
    'CanvasController',
    'CanvasMode',
    'CanvasStatus',
    'DropIngestion',
    'DropPayload',
    'EdgeCreationState',
    'EdgeCreationStateMachine',
    'BROWSER_LAYOUT',
    'EDITOR_LAYOUT',
    'DELETE_KEYS',
    'MOVE_EPSILON',
]
