"""
Drag Controller - moves a single node while a pointer gesture is active.

``PointerRouter`` sits in front of both controllers and decides, per press,
whether the gesture is a node drag or a canvas pan. A press on a node is
consumed by the drag and never reaches the viewport, so at most one of
{panning, dragging} is ever active.

Drag positions are local only: releasing a node does not write anything to
the backend.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from relmap.geometry import screen_to_world
from relmap.graph_store import GraphStore
from relmap.viewport import ViewportController, PRIMARY_BUTTON


class DragController:
    """Converts screen deltas into world deltas for the grabbed node."""

    def __init__(self, store: GraphStore, viewport: ViewportController):
        self._store = store
        self._viewport = viewport
        self._node_id: Optional[str] = None
        self._last: Tuple[float, float] = (0.0, 0.0)

    @property
    def dragging_node_id(self) -> Optional[str]:
        return self._node_id

    @property
    def is_dragging(self) -> bool:
        return self._node_id is not None

    def on_node_grab(self, node_id: str, pos: Tuple[float, float]) -> bool:
        """
        Begin dragging ``node_id``.

        Returns True: the event is consumed and must not start a pan.
        """
        self._viewport.on_pan_end()
        self._node_id = node_id
        self._last = (pos[0], pos[1])
        return True

    def on_pointer_move(self, pos: Tuple[float, float]) -> bool:
        """Apply the move to the dragged node. Returns False if nothing moved."""
        if self._node_id is None:
            return False
        scale = self._viewport.view.scale or 1.0
        dx = (pos[0] - self._last[0]) / scale
        dy = (pos[1] - self._last[1]) / scale
        self._last = (pos[0], pos[1])
        # The node may have been dropped by a reconcile mid-gesture
        return self._store.move_node(self._node_id, dx, dy)

    def on_release(self) -> None:
        self._node_id = None


@dataclass(frozen=True)
class PointerResult:
    """What a pointer event did, so the view knows whether to re-render."""
    changed: bool = False
    consumed_by: Optional[str] = None  # 'drag' | 'pan' | None


class PointerRouter:
    """Dispatches canvas pointer events to the drag or pan gesture."""

    def __init__(self, store: GraphStore, viewport: ViewportController, drag: DragController):
        self._store = store
        self._viewport = viewport
        self._drag = drag

    def node_at(self, pos: Tuple[float, float]) -> Optional[str]:
        """Topmost node whose disc contains the screen point, if any."""
        v = self._viewport.view
        wx, wy = screen_to_world(pos[0], pos[1], v.scale, v.tx, v.ty)
        # Later nodes are drawn on top
        for node in reversed(self._store.nodes):
            if math.hypot(wx - node.x, wy - node.y) <= node.radius:
                return node.id
        return None

    def on_pointer_down(self, pos: Tuple[float, float], button: int = PRIMARY_BUTTON) -> PointerResult:
        if button != PRIMARY_BUTTON:
            return PointerResult()
        node_id = self.node_at(pos)
        if node_id is not None:
            self._store.focus(node_id)
            self._drag.on_node_grab(node_id, pos)
            return PointerResult(changed=True, consumed_by='drag')
        self._store.clear_focus()
        self._viewport.on_pan_start(pos, button)
        return PointerResult(changed=True, consumed_by='pan')

    def on_pointer_move(self, pos: Tuple[float, float]) -> PointerResult:
        if self._drag.is_dragging:
            return PointerResult(changed=self._drag.on_pointer_move(pos), consumed_by='drag')
        if self._viewport.is_panning:
            self._viewport.on_pan_move(pos)
            return PointerResult(changed=True, consumed_by='pan')
        return PointerResult()

    def on_pointer_up(self) -> PointerResult:
        was_active = self._drag.is_dragging or self._viewport.is_panning
        self._drag.on_release()
        self._viewport.on_pan_end()
        return PointerResult(changed=was_active)

    on_pointer_leave = on_pointer_up
