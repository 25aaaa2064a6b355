"""
Canvas Handlers - NiceGUI event handlers for the canvas pages in app.py

Keeps keyboard, palette drag-and-drop and export handling out of app.py so
the page functions stay focused on layout. Every handler ends in a
controller call; none of them touch the mirror.
"""

from typing import Any, Callable, Dict, Optional

from nicegui import ui

from spatialgraph.export import to_json
from spatialgraph.interaction.constants import DELETE_KEYS
from spatialgraph.interaction.controller import CanvasController


def setup_canvas_handlers(
    state: Dict[str, Any],
    controller: CanvasController,
    on_export: Optional[Callable[[Dict[str, Any]], None]] = None,
):
    """
    Set up the editor page event handlers.

    Args:
        state: Page state dictionary ('drag_payload' is written here)
        controller: CanvasController for this page
        on_export: Called with the snapshot after an export

    Returns:
        Dict with handler functions for binding to UI events
    """

    def handle_keyboard(e):
        """Delete/Backspace removes the current selection."""
        if not e.action.keydown or e.action.repeat:
            return
        if e.key.name in DELETE_KEYS:
            request = controller.delete_selection()
            if request is not None:
                count = len(next(iter(request.payload.values())))
                ui.notify(f'Deleting {count} element(s)', position='bottom', timeout=800)
        elif e.key.name == 'Escape':
            controller.on_tap_background()

    def handle_drag_start(item: Dict[str, Any]):
        """Remember what is being dragged; the drop event carries no payload of its own."""
        state['drag_payload'] = dict(item)

    def handle_drag_end(_=None):
        state['drag_payload'] = None

    def handle_drop(event):
        """Palette item released over the canvas."""
        raw = event.args if hasattr(event, 'args') else event
        payload = state.get('drag_payload')
        state['drag_payload'] = None
        if payload is None:
            return

        if isinstance(raw, dict):
            x, y = raw.get('clientX'), raw.get('clientY')
        elif isinstance(raw, (list, tuple)) and len(raw) >= 2:
            x, y = raw[0], raw[1]
        else:
            return
        if x is None or y is None:
            return

        request = controller.handle_drop(payload, float(x), float(y))
        if request is None:
            ui.notify('Could not add that item', type='warning', position='bottom')

    def handle_export():
        """Download the current snapshot as JSON."""
        snapshot = controller.export_snapshot()
        ui.download(
            to_json(snapshot).encode('utf-8'),
            f"canvas-{snapshot['timestamp'].replace(':', '-')}.json",
        )
        ui.notify(
            f"Exported {snapshot['node_count']} node(s), {snapshot['edge_count']} edge(s)",
            type='positive', position='bottom', timeout=1500,
        )
        if on_export:
            on_export(snapshot)

    return {
        'handle_keyboard': handle_keyboard,
        'handle_drag_start': handle_drag_start,
        'handle_drag_end': handle_drag_end,
        'handle_drop': handle_drop,
        'handle_export': handle_export,
    }
