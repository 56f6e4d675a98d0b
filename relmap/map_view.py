"""
NiceGUI page for the relationship map.

Renders the canvas with ui.interactive_image (SVG content over a blank
image), forwards pointer and wheel events to the MapSession, and provides
the legend, zoom controls and the bottom panels (focus, add node, add link,
notes) with ui.card / ui.row.
"""

import logging
from typing import Dict, Optional

from nicegui import ui

from relmap.canvas import legend_swatch
from relmap.config import Settings
from relmap.models import LinkType, LINK_TYPE_STYLES, LINK_HIGHLIGHT_STYLE
from relmap.session import MapSession, CANVAS_SIZE

logger = logging.getLogger(__name__)

MOUSE_EVENTS = ['mousedown', 'mousemove', 'mouseup', 'mouseleave']

LINK_TYPE_OPTIONS: Dict[str, str] = {t.value: LINK_TYPE_STYLES[t]["label"] for t in LinkType}


def build_map_page(settings: Settings, origin: Optional[str] = None) -> MapSession:
    """Build the map UI for the current client and start its timers."""
    session = MapSession(settings, origin=origin)
    store = session.store
    state = {'focused_id': None}

    ui.query('body').style('margin: 0; padding: 0; overflow: hidden; background: #e7e5e4;')

    # --- Canvas ---

    def handle_mouse(e):
        if session.handle_mouse(e.type, e.image_x, e.image_y, getattr(e, 'button', 0)):
            refresh()

    def handle_wheel(e):
        delta = (e.args or {}).get('deltaY', 0) or 0
        if session.handle_wheel(float(delta)):
            refresh()

    with ui.element('div').classes('fixed inset-0'):
        canvas = ui.interactive_image(
            size=CANVAS_SIZE,
            content=session.render(),
            events=MOUSE_EVENTS,
            on_mouse=handle_mouse,
            cross=False,
        ).classes('w-full h-full')
        canvas.on('wheel', handle_wheel, ['deltaY'])

    # --- Header, legend, controls ---

    with ui.column().classes('fixed top-4 left-4 gap-0'):
        ui.label('RELMAP').classes('text-3xl font-extrabold tracking-wide text-indigo-500')
        ui.label('Relationship Map').classes('text-stone-600')
        ui.label('drag to pan · scroll to zoom · click a node to focus').classes(
            'text-xs text-stone-600 bg-white/70 rounded-xl px-2 py-1 shadow mt-2')
        offline_badge = ui.label('Offline: showing demo data').classes(
            'text-xs text-white bg-red-600 rounded-xl px-2 py-1 mt-1')
        offline_badge.set_visibility(False)

    with ui.card().classes('fixed top-6 right-44 bg-white/80 p-3'):
        ui.label('Map Key').classes('font-semibold')
        for link_type in LinkType:
            style = LINK_TYPE_STYLES[link_type]
            with ui.row().classes('items-center gap-2 text-sm'):
                ui.html(legend_swatch(style))
                ui.label(style["label"])
        with ui.row().classes('items-center gap-2 text-sm'):
            ui.html(legend_swatch(LINK_HIGHLIGHT_STYLE))
            ui.label(LINK_HIGHLIGHT_STYLE["label"])

    def zoom(direction: int):
        if direction > 0:
            session.zoom_in()
        else:
            session.zoom_out()
        refresh()

    def reset_view():
        session.fit()
        refresh()

    with ui.row().classes('fixed top-3 right-3 bg-white/80 rounded-2xl shadow p-2 gap-2'):
        ui.button('+', on_click=lambda: zoom(1)).props('flat dense')
        ui.button('−', on_click=lambda: zoom(-1)).props('flat dense')
        ui.button('Reset', on_click=reset_view).props('flat dense')

    # --- Bottom panels ---

    with ui.row().classes('fixed bottom-3 left-3 right-3 gap-3 flex-nowrap overflow-x-auto'):
        with ui.card().classes('w-72 bg-white/90'):
            ui.label('Focused').classes('font-semibold')
            focus_label = ui.label('Click a node to focus.').classes('text-sm')
            focus_meta = ui.label('').classes('text-sm text-stone-600')

        with ui.card().classes('w-72 bg-white/90'):
            ui.label('Add Node').classes('font-semibold')
            with ui.row().classes('w-full gap-2 flex-nowrap'):
                node_label = ui.input(placeholder='Name / Label').props('dense outlined').classes('grow')
                node_group = ui.select({}, value=None).props('dense outlined')
            node_desc = ui.textarea(placeholder='Description / notes (optional)').props(
                'dense outlined rows=2').classes('w-full')

            async def do_add_node():
                ok = await session.actions.add_node(
                    node_label.value or '', node_group.value or 'team', node_desc.value or '', session.size)
                if ok:
                    node_label.value = ''
                    node_desc.value = ''
                report(ok, 'Node added')

            ui.button('Add', on_click=do_add_node).props('dense')

        with ui.card().classes('w-80 bg-white/90'):
            ui.label('Add Link').classes('font-semibold')
            with ui.row().classes('w-full gap-2 flex-nowrap'):
                link_source = ui.input(placeholder='source id (e.g., t1)').props('dense outlined')
                link_target = ui.input(placeholder='target id (e.g., main)').props('dense outlined')
            with ui.row().classes('w-full gap-2 items-center'):
                link_type = ui.select(LINK_TYPE_OPTIONS, value=LinkType.SOLID.value).props('dense outlined')

                async def do_add_link():
                    ok = await session.actions.add_link(
                        link_source.value or '', link_target.value or '', link_type.value)
                    report(ok, 'Link added')

                ui.button('Link', on_click=do_add_link).props('dense')
            error_label = ui.label('').classes('text-xs text-red-600')

        with ui.card().classes('w-72 bg-white/90'):
            ui.label('Notes for Focused').classes('font-semibold')
            notes = ui.textarea(placeholder='Type notes about this person').props(
                'dense outlined rows=3').classes('w-full')

            async def do_save_notes():
                ok = await session.actions.save_note(notes.value or '')
                report(ok, 'Notes saved')

            with ui.row().classes('gap-2'):
                save_button = ui.button('Save', on_click=do_save_notes).props('dense')
                ui.button('Clear', on_click=lambda: notes.set_value('')).props('dense flat')

    # --- Refresh ---

    def report(ok: bool, message: str):
        error_label.text = session.actions.last_error
        if ok:
            ui.notify(message, type='positive')
        elif session.actions.last_error:
            ui.notify(session.actions.last_error, type='negative')

    def refresh_panels():
        groups = {gid: g.label for gid, g in store.groups.items()}
        if groups != node_group.options:
            node_group.set_options(groups, value=node_group.value if node_group.value in groups
                                   else next(iter(groups), None))

        node = store.get_node(store.focused_id) if store.focused_id else None
        if node is None:
            focus_label.text = 'Click a node to focus.'
            focus_meta.text = ''
        else:
            focus_label.text = node.label
            focus_meta.text = f'ID: {node.id} · Group: {node.group}'
        # Load the note text only when focus moves to another node
        if store.focused_id != state['focused_id']:
            state['focused_id'] = store.focused_id
            notes.value = node.description if node else ''
        notes.set_enabled(node is not None)
        save_button.set_enabled(node is not None)
        offline_badge.set_visibility(session.sync.is_read_only)

    def refresh():
        canvas.content = session.render()

    def on_store_change(_store):
        refresh()
        refresh_panels()

    unsubscribe = store.subscribe(on_store_change)
    refresh_panels()

    # --- Timers ---

    async def initial_load():
        await session.initial_load()
        refresh()
        refresh_panels()

    async def poll():
        await session.poll()

    ui.timer(0.1, initial_load, once=True)
    ui.timer(settings.poll_seconds, poll)

    async def on_disconnect():
        unsubscribe()
        await session.close()

    ui.context.client.on_disconnect(on_disconnect)
    return session
