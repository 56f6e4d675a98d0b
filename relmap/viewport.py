"""
Viewport Controller - owns the pan/zoom transform of the map canvas.

The controller is a small state machine driven by pointer and wheel events.
It never touches the graph or the network; the renderer and the drag
controller read ``controller.view`` to convert between screen and world.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Iterable, Optional, Tuple

from relmap.geometry import clamp, compute_fit_view, screen_to_world, DEFAULT_FIT_PADDING

logger = logging.getLogger(__name__)

# Wheel delta to zoom exponent. exp(-deltaY * k) keeps every step positive.
ZOOM_INTENSITY = 0.0015

# Synthetic wheel delta used by the zoom buttons
ZOOM_BUTTON_DELTA = 500.0

PRIMARY_BUTTON = 0


@dataclass(frozen=True)
class Viewport:
    """Immutable snapshot of the current transform."""
    scale: float = 1.0
    tx: float = 0.0
    ty: float = 0.0


class ViewportController:
    """Continuous pan/zoom with anchor-preserving wheel zoom."""

    def __init__(self, min_scale: float = 0.4, max_scale: float = 2.5, initial: float = 1.0):
        if min_scale <= 0 or min_scale > max_scale:
            raise ValueError(f"Invalid scale bounds: {min_scale}..{max_scale}")
        self.min_scale = min_scale
        self.max_scale = max_scale
        self._view = Viewport(scale=clamp(initial, min_scale, max_scale))
        self._panning = False
        self._last: Tuple[float, float] = (0.0, 0.0)

    @property
    def view(self) -> Viewport:
        return self._view

    @property
    def limits(self) -> Tuple[float, float]:
        return self.min_scale, self.max_scale

    @property
    def is_panning(self) -> bool:
        return self._panning

    # --- Zoom ---

    def on_wheel(self, cursor: Tuple[float, float], delta_y: float) -> Viewport:
        """
        Zoom around the cursor.

        The world point under ``cursor`` stays under it: with
        ``w = (c - t) / scale`` the new offset is ``c - w * new_scale``.
        """
        cx, cy = cursor
        v = self._view
        new_scale = clamp(v.scale * math.exp(-delta_y * ZOOM_INTENSITY), self.min_scale, self.max_scale)
        wx, wy = screen_to_world(cx, cy, v.scale, v.tx, v.ty)
        self._view = Viewport(scale=new_scale, tx=cx - wx * new_scale, ty=cy - wy * new_scale)
        return self._view

    def zoom_in(self, viewport_size: Tuple[float, float]) -> Viewport:
        return self.on_wheel(self._center(viewport_size), -ZOOM_BUTTON_DELTA)

    def zoom_out(self, viewport_size: Tuple[float, float]) -> Viewport:
        return self.on_wheel(self._center(viewport_size), ZOOM_BUTTON_DELTA)

    # --- Pan ---

    def on_pan_start(self, pos: Tuple[float, float], button: int = PRIMARY_BUTTON) -> bool:
        """Idle -> Panning on a primary press. Returns True if panning started."""
        if button != PRIMARY_BUTTON:
            return False
        self._panning = True
        self._last = (pos[0], pos[1])
        return True

    def on_pan_move(self, pos: Tuple[float, float]) -> Viewport:
        if not self._panning:
            return self._view
        dx = pos[0] - self._last[0]
        dy = pos[1] - self._last[1]
        self._last = (pos[0], pos[1])
        # Offsets live in screen space, so no scale correction
        self._view = replace(self._view, tx=self._view.tx + dx, ty=self._view.ty + dy)
        return self._view

    def on_pan_end(self) -> None:
        self._panning = False

    on_pointer_leave = on_pan_end

    # --- Explicit views ---

    def set_view(self, scale: Optional[float] = None, tx: Optional[float] = None,
                 ty: Optional[float] = None) -> Viewport:
        v = self._view
        self._view = Viewport(
            scale=clamp(v.scale if scale is None else scale, self.min_scale, self.max_scale),
            tx=v.tx if tx is None else tx,
            ty=v.ty if ty is None else ty,
        )
        return self._view

    def fit_to_content(self, nodes: Iterable, viewport_size: Tuple[float, float],
                       padding: float = DEFAULT_FIT_PADDING) -> Viewport:
        w, h = viewport_size
        fit = compute_fit_view(nodes, w, h, padding, self.limits)
        logger.debug(f"Fit view to content: {fit}")
        return self.set_view(**fit)

    def view_center_world(self, viewport_size: Tuple[float, float]) -> Tuple[float, float]:
        cx, cy = self._center(viewport_size)
        v = self._view
        return screen_to_world(cx, cy, v.scale, v.tx, v.ty)

    @staticmethod
    def _center(viewport_size: Tuple[float, float]) -> Tuple[float, float]:
        w, h = viewport_size
        return (w or 900) / 2, (h or 700) / 2
