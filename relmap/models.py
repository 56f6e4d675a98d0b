"""
Graph data model for RELMAP.

Nodes, links and groups are immutable dataclasses. The GraphStore replaces
entries instead of mutating them, so any reference handed to the renderer or a
controller is a stable read-only view.

Two kinds of ingestion live here:
- ``parse_node`` / ``parse_link``: strict, used by the HTTP API and the
  backends. Missing or invalid required fields raise ValidationError.
- ``normalize_graph``: lenient, used when the client ingests a server
  snapshot. Bad entries are dropped instead of failing the whole snapshot.
"""

import random
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, Any, List, Optional, Mapping, Callable

from relmap.demo import DEFAULT_AVATAR_BY_ID, AVATAR_POOL
from relmap.errors import ValidationError

DEFAULT_NODE_RADIUS = 36.0


class LinkType(str, Enum):
    TRUST = "trust"
    MIXED = "mixed"
    SOLID = "solid"


# Legacy spellings accepted from older clients and stores
LINK_TYPE_ALIASES = {
    "dashed": LinkType.TRUST,
    "curved": LinkType.MIXED,
}

LINK_TYPE_STYLES: Dict[LinkType, Dict[str, Any]] = {
    LinkType.TRUST: {
        "label": "Trust issues",
        "color": "#DC2626",
        "dash": "6 6",
        "curve": False,
        "width": 2,
        "opacity": 0.85,
    },
    LinkType.MIXED: {
        "label": "Mixed feelings",
        "color": "#FACC15",
        "dash": None,
        "curve": True,
        "bend": 0.28,
        "width": 2,
        "opacity": 0.85,
    },
    LinkType.SOLID: {
        "label": "Solid Terms",
        "color": "#16A34A",
        "dash": None,
        "curve": False,
        "width": 2,
        "opacity": 0.85,
    },
}

LINK_HIGHLIGHT_STYLE = {
    "label": "Highlighted (for focus)",
    "color": "#111827",
    "width": 3,
    "opacity": 0.95,
}


def normalize_link_type(value: Any) -> LinkType:
    """Fold any raw link type (legacy alias, odd casing, garbage) into LinkType."""
    if isinstance(value, LinkType):
        return value
    if not isinstance(value, str):
        return LinkType.SOLID
    normalized = value.strip().lower()
    if normalized in LINK_TYPE_ALIASES:
        return LINK_TYPE_ALIASES[normalized]
    try:
        return LinkType(normalized)
    except ValueError:
        return LinkType.SOLID


def random_avatar(rng: Optional[random.Random] = None) -> Optional[str]:
    if not AVATAR_POOL:
        return None
    return (rng or random).choice(AVATAR_POOL)


def explicit_avatar(raw: Mapping[str, Any]) -> Optional[str]:
    """Return the payload's avatar if it is a non-blank string."""
    avatar = raw.get("avatar")
    if isinstance(avatar, str) and avatar.strip():
        return avatar.strip()
    return None


def resolve_avatar(raw: Mapping[str, Any], rng: Optional[random.Random] = None) -> Optional[str]:
    return explicit_avatar(raw) or DEFAULT_AVATAR_BY_ID.get(raw.get("id")) or random_avatar(rng)


@dataclass(frozen=True)
class Group:
    label: str
    color: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"label": self.label}
        if self.color:
            data["color"] = self.color
        return data


@dataclass(frozen=True)
class Node:
    id: str
    label: str
    group: str
    x: float
    y: float
    r: Optional[float] = None
    avatar: Optional[str] = None
    description: str = ""

    @property
    def radius(self) -> float:
        return self.r if self.r else DEFAULT_NODE_RADIUS

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data["r"] is None:
            del data["r"]
        return data


@dataclass(frozen=True)
class Link:
    id: str
    source: str
    target: str
    type: LinkType = LinkType.SOLID

    @property
    def style(self) -> Dict[str, Any]:
        return LINK_TYPE_STYLES[self.type]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "source": self.source, "target": self.target, "type": self.type.value}


@dataclass
class GraphState:
    groups: Dict[str, Group] = field(default_factory=dict)
    nodes: List[Node] = field(default_factory=list)
    links: List[Link] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "groups": {gid: g.to_dict() for gid, g in self.groups.items()},
            "nodes": [n.to_dict() for n in self.nodes],
            "links": [l.to_dict() for l in self.links],
        }


# --- Strict parsing (API / backends) ---

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def parse_node(payload: Any) -> Node:
    """Validate a POST /nodes body and build a Node."""
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object")
    missing = [k for k in ("id", "label", "group") if not _non_empty_str(payload.get(k))]
    missing += [k for k in ("x", "y") if not _is_number(payload.get(k))]
    if missing:
        raise ValidationError("id, label, group, x, y required", fields=missing)

    r = payload.get("r")
    if r is not None and (not _is_number(r) or r <= 0):
        raise ValidationError("r must be a positive number", fields=["r"])
    description = payload.get("description") or ""
    if not isinstance(description, str):
        raise ValidationError("description must be a string", fields=["description"])

    return Node(
        id=payload["id"],
        label=payload["label"],
        group=payload["group"],
        x=float(payload["x"]),
        y=float(payload["y"]),
        r=float(r) if r is not None else None,
        avatar=explicit_avatar(payload),
        description=description,
    )


def parse_link(payload: Any) -> Link:
    """Validate a POST /links body and build a Link with a folded type."""
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object")
    missing = [k for k in ("id", "source", "target") if not _non_empty_str(payload.get(k))]
    if missing:
        raise ValidationError("id, source, target required", fields=missing)
    return Link(
        id=payload["id"],
        source=payload["source"],
        target=payload["target"],
        type=normalize_link_type(payload.get("type", "solid")),
    )


def parse_note(payload: Any) -> str:
    """Extract the description from a PATCH /nodes/{id} body."""
    if payload is None:
        return ""
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object")
    description = payload.get("description", "")
    if description is None:
        return ""
    if not isinstance(description, str):
        raise ValidationError("description must be a string", fields=["description"])
    return description


# --- Lenient normalization (client ingestion) ---

def _as_float(value: Any, default: float = 0.0) -> float:
    if _is_number(value):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def normalize_node(raw: Any, avatar_for: Callable[[Mapping[str, Any]], Optional[str]]) -> Optional[Node]:
    """
    Build a Node from an untrusted payload, or return None if it has no usable id.

    Args:
        raw: The payload dict from the server (or the demo table)
        avatar_for: Resolves the avatar for this payload (stickiness lives in the caller)
    """
    if not isinstance(raw, Mapping) or not _non_empty_str(raw.get("id")):
        return None
    r = raw.get("r")
    description = raw.get("description")
    return Node(
        id=raw["id"],
        label=str(raw.get("label") or raw["id"]),
        group=str(raw.get("group") or ""),
        x=_as_float(raw.get("x")),
        y=_as_float(raw.get("y")),
        r=float(r) if _is_number(r) and r > 0 else None,
        avatar=avatar_for(raw),
        description=description if isinstance(description, str) else "",
    )


def normalize_link(raw: Any) -> Optional[Link]:
    if not isinstance(raw, Mapping) or not isinstance(raw.get("id"), str):
        return None
    return Link(
        id=raw["id"],
        source=str(raw.get("source") or ""),
        target=str(raw.get("target") or ""),
        type=normalize_link_type(raw.get("type")),
    )


def normalize_groups(raw: Any) -> Dict[str, Group]:
    if not isinstance(raw, Mapping):
        return {}
    groups = {}
    for gid, g in raw.items():
        if isinstance(g, Mapping):
            groups[str(gid)] = Group(label=str(g.get("label") or gid), color=g.get("color") or None)
        elif isinstance(g, Group):
            groups[str(gid)] = g
    return groups


def normalize_graph(raw: Any, avatar_for: Callable[[Mapping[str, Any]], Optional[str]]) -> GraphState:
    """Turn a ``{groups, nodes, links}`` payload into a GraphState, dropping bad entries."""
    if isinstance(raw, GraphState):
        raw = raw.to_dict()
    if not isinstance(raw, Mapping):
        raw = {}
    raw_nodes = raw.get("nodes") if isinstance(raw.get("nodes"), list) else []
    raw_links = raw.get("links") if isinstance(raw.get("links"), list) else []

    nodes = [n for n in (normalize_node(item, avatar_for) for item in raw_nodes) if n is not None]
    links = [l for l in (normalize_link(item) for item in raw_links) if l is not None]
    return GraphState(groups=normalize_groups(raw.get("groups")), nodes=nodes, links=links)
