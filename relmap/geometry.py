"""
Pure geometry helpers for the map canvas.

No state, no I/O. Screen coordinates are canvas pixels; world coordinates are
the node positions stored in the graph. The two are related by the viewport
transform ``screen = world * scale + (tx, ty)``.
"""

import math
from typing import Iterable, Tuple, Dict

from relmap.models import DEFAULT_NODE_RADIUS

DEFAULT_FIT_PADDING = 80.0
DEFAULT_SCALE_LIMITS = (0.4, 2.5)

IDENTITY_VIEW = {"scale": 1.0, "tx": 0.0, "ty": 0.0}


def clamp(value: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, value))


def screen_to_world(sx: float, sy: float, scale: float, tx: float, ty: float) -> Tuple[float, float]:
    scale = scale or 1.0
    return (sx - tx) / scale, (sy - ty) / scale


def world_to_screen(wx: float, wy: float, scale: float, tx: float, ty: float) -> Tuple[float, float]:
    return wx * scale + tx, wy * scale + ty


def compute_fit_view(
    nodes: Iterable,
    viewport_w: float,
    viewport_h: float,
    padding: float = DEFAULT_FIT_PADDING,
    limits: Tuple[float, float] = DEFAULT_SCALE_LIMITS,
) -> Dict[str, float]:
    """
    Compute the view that frames every node inside the viewport.

    The bounding box of all nodes (each inflated by its radius) is scaled to
    the largest size that fits both axes after padding, clamped to ``limits``,
    then centred.

    Args:
        nodes: Objects with ``x``, ``y`` and optional ``r`` attributes
        viewport_w: Canvas width in pixels
        viewport_h: Canvas height in pixels
        padding: Margin kept free on every side
        limits: (min_scale, max_scale)

    Returns:
        Dict with ``scale``, ``tx``, ``ty``. The identity view when there is
        nothing to fit or the viewport has no area.
    """
    nodes = list(nodes or [])
    if not nodes or viewport_w <= 0 or viewport_h <= 0:
        return dict(IDENTITY_VIEW)

    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for n in nodes:
        r = getattr(n, "r", None) or DEFAULT_NODE_RADIUS
        min_x = min(min_x, n.x - r)
        max_x = max(max_x, n.x + r)
        min_y = min(min_y, n.y - r)
        max_y = max(max_y, n.y + r)

    width = max_x - min_x
    height = max_y - min_y
    sx = (viewport_w - padding * 2) / (width or 1)
    sy = (viewport_h - padding * 2) / (height or 1)
    scale = clamp(min(sx, sy), limits[0], limits[1])
    tx = padding + (viewport_w - padding * 2 - width * scale) / 2 - min_x * scale
    ty = padding + (viewport_h - padding * 2 - height * scale) / 2 - min_y * scale
    return {"scale": scale, "tx": tx, "ty": ty}


def curve_control_point(ax: float, ay: float, bx: float, by: float, bend: float = 0.2) -> Tuple[float, float]:
    """
    Control point of a quadratic curve from A to B.

    The point sits on the perpendicular through the midpoint, at a distance of
    ``bend * |AB|``. It varies continuously with the endpoints and collapses to
    the midpoint when A == B.
    """
    mx = (ax + bx) / 2
    my = (ay + by) / 2
    dx = bx - ax
    dy = by - ay
    # (-dy, dx) scaled by bend is the unit normal times bend * length
    return mx - dy * bend, my + dx * bend
