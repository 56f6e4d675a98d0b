"""
MapSession - one browser tab's worth of map state.

Wires the store, the viewport and drag controllers, the sync client, the
user actions and the renderer together, and translates raw canvas events
into calls on them. The NiceGUI page only forwards events here and pushes
``render()`` back to the browser.
"""

import logging
import random
from typing import Optional, Tuple

import httpx

from relmap.actions import MapActions
from relmap.canvas import MapCanvas
from relmap.config import Settings
from relmap.drag import DragController, PointerRouter, PointerResult
from relmap.geometry import DEFAULT_FIT_PADDING
from relmap.graph_store import GraphStore
from relmap.sync_client import SyncClient, LoadOutcome
from relmap.viewport import ViewportController

logger = logging.getLogger(__name__)

# Logical canvas size; the image scales to the window, event coordinates stay in this space
CANVAS_SIZE = (1200, 800)

# The map page allows slightly less zoom-out than fit-to-content does
PAGE_SCALE_LIMITS = (0.5, 2.5)


class MapSession:
    """Per-client state and event dispatch for the map page."""

    def __init__(
        self,
        settings: Settings,
        origin: Optional[str] = None,
        canvas_size: Tuple[float, float] = CANVAS_SIZE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rng: Optional[random.Random] = None,
    ):
        self.size = canvas_size
        self.store = GraphStore(rng=rng)
        self.viewport = ViewportController(*PAGE_SCALE_LIMITS)
        self.drag = DragController(self.store, self.viewport)
        self.router = PointerRouter(self.store, self.viewport, self.drag)
        self.sync = SyncClient(
            self.store,
            api_url=settings.api_url,
            api_key=settings.api_key,
            origin=origin,
            transport=transport,
        )
        self.actions = MapActions(self.store, self.sync, self.viewport, rng=rng)
        self.canvas = MapCanvas()
        self.has_fitted = False
        self._cursor = (canvas_size[0] / 2, canvas_size[1] / 2)

        self.sync.on('loaded', self._on_loaded)
        self.sync.on('fallback', self._on_fallback)

    # --- Fit handling ---

    def _on_loaded(self, data) -> None:
        # Fit once when content first arrives, and again when live data replaces the demo
        if not self.has_fitted or data.get('replaced_fallback'):
            self.fit()

    def _on_fallback(self, data) -> None:
        if not self.has_fitted:
            self.fit()

    def fit(self) -> None:
        if self.store.is_empty:
            return
        self.viewport.fit_to_content(self.store.nodes, self.size, DEFAULT_FIT_PADDING)
        self.has_fitted = True

    # --- Canvas events ---

    def handle_mouse(self, event_type: str, x: float, y: float, button: int = 0) -> bool:
        """
        Dispatch one canvas mouse event.

        Returns True when the canvas needs a redraw that store listeners
        have not already triggered, i.e. the change was to the view only.
        """
        version = self.store.version
        pos = (x, y)
        if event_type == 'mousedown':
            result = self.router.on_pointer_down(pos, button)
        elif event_type == 'mousemove':
            self._cursor = pos
            result = self.router.on_pointer_move(pos)
        elif event_type in ('mouseup', 'mouseleave'):
            result = self.router.on_pointer_up()
        else:
            result = PointerResult()
        return result.changed and self.store.version == version

    def handle_wheel(self, delta_y: float) -> bool:
        """Zoom around the last known cursor position."""
        self.viewport.on_wheel(self._cursor, delta_y)
        return True

    def zoom_in(self) -> None:
        self.viewport.zoom_in(self.size)

    def zoom_out(self) -> None:
        self.viewport.zoom_out(self.size)

    def render(self) -> str:
        return self.canvas.render(
            list(self.store.nodes),
            self.store.renderable_links(),
            self.store.groups,
            self.viewport.view,
            self.store.focused_id,
        )

    # --- Sync ---

    async def initial_load(self) -> LoadOutcome:
        return await self.sync.initial_load()

    async def poll(self) -> LoadOutcome:
        return await self.sync.poll()

    async def close(self) -> None:
        await self.sync.close()
