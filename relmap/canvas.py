"""
SVG renderer for the relationship map.

Produces the inner SVG content for NiceGUI's ``ui.interactive_image``: group
labels, typed links and avatar nodes, all inside one group carrying the
viewport transform.

This implementation uses NetworkX to hold the drawable graph, so a link is
only drawn when both of its endpoints are present.
"""

from html import escape
from typing import Dict, Any, List, Mapping, Optional, Tuple

import networkx as nx

from relmap.demo import GROUP_LABEL_POSITIONS
from relmap.geometry import curve_control_point, world_to_screen
from relmap.models import Node, Link, Group, LINK_TYPE_STYLES, LINK_HIGHLIGHT_STYLE
from relmap.viewport import Viewport

FOCUS_COLOR = "#FF7043"
PLAIN_NODE_COLOR = "#4B3F72"

# Floating note sits to the right of and slightly above the focused node
NOTE_OFFSET = (24.0, -20.0)
NOTE_SIZE = (260, 140)


def _num(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def link_path(a: Node, b: Node, link: Link) -> str:
    """SVG path data for a link: a quadratic curve for curved types, else a line."""
    style = LINK_TYPE_STYLES[link.type]
    if style.get("curve"):
        cx, cy = curve_control_point(a.x, a.y, b.x, b.y, style.get("bend", 0.2))
        return f"M {_num(a.x)} {_num(a.y)} Q {_num(cx)} {_num(cy)} {_num(b.x)} {_num(b.y)}"
    return f"M {_num(a.x)} {_num(a.y)} L {_num(b.x)} {_num(b.y)}"


def note_position(node: Optional[Node], view: Viewport) -> Optional[Tuple[float, float]]:
    """Screen position (left, top) of the floating note for ``node``."""
    if node is None:
        return None
    sx, sy = world_to_screen(node.x, node.y, view.scale, view.tx, view.ty)
    return sx + NOTE_OFFSET[0], sy + NOTE_OFFSET[1]


class MapCanvas:
    """
    Build SVG markup for the map.

    Expected input: the immutable node, link and group views exposed by
    GraphStore, the focused node id and the current Viewport.
    """

    def __init__(self, label_positions: Optional[Mapping[str, Mapping[str, float]]] = None):
        self.label_positions = dict(label_positions if label_positions is not None else GROUP_LABEL_POSITIONS)
        self.G = nx.MultiDiGraph()

    def build_graph(self, nodes: List[Node], links: List[Link]) -> nx.MultiDiGraph:
        """Rebuild the drawable graph. Dangling links are skipped, parallel links kept."""
        self.G = nx.MultiDiGraph()
        for node in nodes:
            self.G.add_node(node.id, node=node)
        for link in links:
            # Only add edges if both nodes exist
            if link.source in self.G.nodes and link.target in self.G.nodes:
                self.G.add_edge(link.source, link.target, link=link)
        return self.G

    def render(
        self,
        nodes: List[Node],
        links: List[Link],
        groups: Mapping[str, Group],
        view: Viewport,
        focused_id: Optional[str] = None,
        show_note: bool = True,
    ) -> str:
        self.build_graph(nodes, links)
        parts = [
            f'<g transform="translate({_num(view.tx)},{_num(view.ty)}) scale({view.scale:.4f})">'
        ]
        parts.extend(self._group_labels(groups))
        parts.extend(self._edges(focused_id))
        parts.extend(self._nodes(focused_id))
        parts.append('</g>')
        if show_note and focused_id is not None and focused_id in self.G.nodes:
            parts.append(self._note(self.G.nodes[focused_id]["node"], view))
        return ''.join(parts)

    @staticmethod
    def _note(node: Node, view: Viewport) -> str:
        """Floating note next to the focused node, in screen space."""
        left, top = note_position(node, view)
        text = escape(node.description or "No notes yet.")
        return (
            f'<foreignObject x="{_num(left)}" y="{_num(top)}" width="{NOTE_SIZE[0]}" height="{NOTE_SIZE[1]}">'
            f'<div xmlns="http://www.w3.org/1999/xhtml" style="background:rgba(255,255,255,0.95);'
            f'border:1px solid #e7e5e4;border-radius:12px;padding:8px;font-size:13px;'
            f'max-height:{NOTE_SIZE[1] - 4}px;overflow:hidden;white-space:pre-wrap">'
            f'<div style="font-weight:600;margin-bottom:4px">{escape(node.label)}</div>{text}</div>'
            f'</foreignObject>'
        )

    def _group_labels(self, groups: Mapping[str, Group]) -> List[str]:
        out = []
        for gid, pos in self.label_positions.items():
            group = groups.get(gid)
            if group is None:
                continue
            out.append(
                f'<text x="{_num(pos["x"])}" y="{_num(pos["y"])}" font-size="28" font-weight="900" '
                f'fill="#44403c" style="user-select:none">{escape(group.label)}</text>'
            )
        return out

    def _edges(self, focused_id: Optional[str]) -> List[str]:
        out = []
        for src, tgt, attrs in self.G.edges(data=True):
            link: Link = attrs["link"]
            a = self.G.nodes[src]["node"]
            b = self.G.nodes[tgt]["node"]
            style: Dict[str, Any] = LINK_TYPE_STYLES[link.type]
            highlight = focused_id is not None and focused_id in (src, tgt)
            color = LINK_HIGHLIGHT_STYLE["color"] if highlight else style["color"]
            width = LINK_HIGHLIGHT_STYLE["width"] if highlight else style.get("width", 2)
            opacity = LINK_HIGHLIGHT_STYLE["opacity"] if highlight else style.get("opacity", 0.85)
            dash = f' stroke-dasharray="{style["dash"]}"' if style.get("dash") else ''
            out.append(
                f'<path d="{link_path(a, b, link)}" stroke="{color}" stroke-width="{width}" '
                f'fill="none" opacity="{opacity}" stroke-linecap="round"{dash} />'
            )
        return out

    def _nodes(self, focused_id: Optional[str]) -> List[str]:
        out = []
        for node_id, attrs in self.G.nodes(data=True):
            node: Node = attrs["node"]
            r = node.radius
            is_focused = node_id == focused_id
            body = [
                f'<g transform="translate({_num(node.x)},{_num(node.y)})" style="cursor:pointer">',
                f'<text y="{_num(-r - 6)}" text-anchor="middle" font-weight="700" '
                f'font-size="{_num(r * 0.4)}" fill="#1c1917" style="user-select:none">'
                f'{escape(node.label)}</text>',
            ]
            if node.avatar:
                clip_id = f"clip-{escape(node_id)}"
                body.append(
                    f'<defs><clipPath id="{clip_id}"><circle r="{_num(r)}" cx="0" cy="0" /></clipPath></defs>'
                    f'<image href="{escape(node.avatar)}" x="{_num(-r)}" y="{_num(-r)}" '
                    f'width="{_num(r * 2)}" height="{_num(r * 2)}" clip-path="url(#{clip_id})" '
                    f'preserveAspectRatio="xMidYMid slice" />'
                )
                if is_focused:
                    body.append(f'<circle r="{_num(r + 3)}" fill="none" stroke="{FOCUS_COLOR}" stroke-width="3" />')
            else:
                fill = FOCUS_COLOR if is_focused else PLAIN_NODE_COLOR
                body.append(f'<circle r="{_num(r)}" fill="{fill}" opacity="0.95" />')
            body.append('</g>')
            out.append(''.join(body))
        return out


def legend_swatch(style: Mapping[str, Any]) -> str:
    """Small inline SVG sample of a link style for the map key."""
    path = "M 2 10 Q 16 0 30 10" if style.get("curve") else "M 2 6 L 30 6"
    dash = f' stroke-dasharray="{style["dash"]}"' if style.get("dash") else ''
    return (
        f'<svg width="32" height="16" viewBox="0 0 32 12"><path d="{path}" stroke="{style["color"]}" '
        f'stroke-width="{style.get("width", 2)}" stroke-opacity="{style.get("opacity", 0.85)}" '
        f'fill="none" stroke-linecap="round"{dash} /></svg>'
    )
