"""
Main NiceGUI application for the spatial graph canvas.

Two pages share one in-process authority:
- /        editor: drag palette entities onto the canvas, move nodes, draw
           edges (right-click source, right-click target), delete with
           Delete/Backspace, export a JSON snapshot
- /browse  browser: read-only knowledge graph with filters, layouts and a
           node inspector

Each page gets its own channel and CanvasController. Gestures become
requests on the channel; the canvas only changes once the authority's
confirmation is pumped back.
"""

import logging
import sys

from nicegui import ui
from dotenv import load_dotenv
load_dotenv()

from spatialgraph.paths import ensure_db_dir
from spatialgraph.config import get_settings, resolve_store_path

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger('spatialgraph.app')

# Ensure required directories exist on startup
ensure_db_dir()

from spatialgraph.authority import LocalAuthority
from spatialgraph.channel import QueuedChannel
from spatialgraph.echarts_engine import EChartsEngine
from spatialgraph.errors import CanvasInitError
from spatialgraph.filters import FilterMode
from spatialgraph.chart_builder import node_label
from spatialgraph.interaction import CanvasController, CanvasMode
from spatialgraph.interaction.handlers import setup_canvas_handlers
from spatialgraph.layouts import LAYOUT_NAMES

authority = LocalAuthority(store_path=resolve_store_path(settings))
if not authority.load_store():
    authority.seed_demo()


def create_canvas(mode: CanvasMode, export_sink=None):
    """Build channel, engine and controller for one page and connect them to the authority."""
    channel = QueuedChannel(name=f'{mode.value}-{ui.context.client.id}')
    engine = EChartsEngine(
        width=settings.canvas_width,
        height=settings.canvas_height,
        min_zoom=settings.min_zoom,
        max_zoom=settings.browser_max_zoom if mode == CanvasMode.BROWSER else settings.max_zoom,
        editable=mode == CanvasMode.EDITOR,
    )
    controller = CanvasController(engine, channel, mode=mode, settings=settings, export_sink=export_sink)
    authority.connect(channel)

    try:
        controller.mount()
    except CanvasInitError as e:
        ui.notify(f'Canvas unavailable: {e}', type='negative', position='bottom')

    authority.send_snapshot(channel)
    ui.timer(settings.pump_interval, channel.pump)

    def cleanup():
        controller.teardown()
        authority.disconnect(channel)
        channel.close()

    ui.context.client.on_disconnect(cleanup)
    return controller, engine


@ui.page('/')
def editor_page():
    state = {'drag_payload': None}

    with ui.row().classes('w-full items-center gap-4 p-2'):
        ui.label('Spatial Graph Editor').classes('text-lg font-bold')
        ui.link('Browse knowledge graph', '/browse')
        export_status = ui.label('').classes('text-xs text-gray-400')

    def show_export(snapshot):
        export_status.text = f"{snapshot['node_count']} node(s), {snapshot['edge_count']} edge(s)"

    with ui.row().classes('w-full no-wrap gap-4'):
        palette = ui.column().classes('w-56 gap-2')
        with ui.column():
            controller, engine = create_canvas(CanvasMode.EDITOR, export_sink=show_export)
            ui.label('Right-click a node, then another, to connect them. Click the background to cancel.') \
                .classes('text-xs text-gray-400')

    handlers = setup_canvas_handlers(state, controller)
    ui.keyboard(on_key=handlers['handle_keyboard'])

    if engine.chart is not None:
        engine.chart.on('dragover.prevent', lambda _: None)
        engine.chart.on('drop.prevent', handlers['handle_drop'], ['clientX', 'clientY'])

    with palette:
        ui.label('Palette').classes('font-bold')
        for entry in authority.palette():
            item = {'entity_ref': entry.entity_ref, 'origin_ref': entry.origin_ref}
            with ui.card().props('draggable').classes('w-full cursor-grab p-2') as card:
                if entry.origin_ref:
                    ui.image(entry.origin_ref).classes('w-full h-16')
                ui.label(entry.label).classes('text-sm')
                ui.label(entry.kind).classes('text-xs text-gray-400')
            card.on('dragstart', lambda _, item=item: handlers['handle_drag_start'](item))
            card.on('dragend', handlers['handle_drag_end'])
        ui.button('Export JSON', on_click=handlers['handle_export']).props('outline')

    show_export(controller.latest_export)


@ui.page('/browse')
def browser_page():
    with ui.row().classes('w-full items-center gap-4 p-2'):
        ui.label('Knowledge Graph').classes('text-lg font-bold')
        ui.link('Back to editor', '/')
        filter_toggle = ui.toggle([m.value for m in FilterMode], value=FilterMode.ALL.value)
        layout_select = ui.select(list(LAYOUT_NAMES) + ['cose'], value=settings.default_layout, label='Layout') \
            .classes('w-40')

    with ui.row().classes('w-full no-wrap gap-4'):
        with ui.column():
            controller, engine = create_canvas(CanvasMode.BROWSER)
        inspector = ui.card().classes('w-72')
        inspector.set_visibility(False)

    filter_toggle.on_value_change(lambda e: controller.apply_filter(e.value))
    layout_select.on_value_change(lambda e: controller.apply_layout(e.value))

    def show_inspector(_=None):
        node = controller.mirror.node(controller.inspected_node_id) if controller.inspected_node_id else None
        inspector.clear()
        inspector.set_visibility(node is not None)
        if node is None:
            return
        with inspector:
            ui.label(node_label(node)).classes('text-lg font-bold')
            ui.label(f'Kind: {node.kind.value}').classes('text-sm')
            incident = controller.mirror.incident_edges(node.id)
            ui.label(f'{len(incident)} connection(s)').classes('text-xs text-gray-400')
            for edge in incident:
                other = edge.target_id if edge.source_id == node.id else edge.source_id
                other_node = controller.mirror.node(other)
                ui.label(f'{edge.kind.value} {node_label(other_node) if other_node else other}').classes('text-xs')

    # Registered after the controller's own callbacks, so inspection state is current
    engine.on_tap_element(show_inspector)
    engine.on_tap_background(show_inspector)


if __name__ in {"__main__", "__mp_main__"}:
    ui.run(
        title='Spatial Graph',
        port=settings.port,
        reload=not getattr(sys, 'frozen', False),
    )
