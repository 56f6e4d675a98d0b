"""
Built-in demo content.

Shown read-only when the live API cannot be reached on first load, and used by
``scripts/seed.py`` to populate a fresh store.
"""

from typing import Dict, Any

# Images live in the static avatars folder served by the app at /avatars.
DEFAULT_AVATAR_BY_ID: Dict[str, str] = {
    "main": "/avatars/main-guy.jpeg",
    "t1": "/avatars/ari.jpeg",
    "t2": "/avatars/moe.jpeg",
    "t3": "/avatars/ned.jpeg",
    "t4": "/avatars/lee.jpeg",
    "p1": "/avatars/ivy.jpeg",
    "p2": "/avatars/bud.jpeg",
    "s1": "/avatars/ada.jpeg",
    "s2": "/avatars/bo.jpeg",
    "s3": "/avatars/cy.jpeg",
}

AVATAR_POOL = list(dict.fromkeys(DEFAULT_AVATAR_BY_ID.values()))


DEMO_GRAPH: Dict[str, Any] = {
    "groups": {
        "team": {"label": "Competitors", "color": "#5B8DEF"},
        "planters": {"label": "Suppliers", "color": "#44C4A1"},
        "scientists": {"label": "Manufacturers", "color": "#FF9171"},
        "main": {"label": "The Main Guy", "color": "#9B7DFF"},
    },
    "nodes": [
        {
            "id": "main", "label": "Noah", "group": "main", "x": 615, "y": 304, "r": 56,
            "description": (
                "The ice seller who keeps the whole network running. He sits at the centre of the "
                "supply chain, managing deals, negotiating with suppliers and staying ahead of "
                "competitors like Moe, Ari and Ned."
            ),
            "avatar": DEFAULT_AVATAR_BY_ID["main"],
        },
        {
            "id": "t1", "label": "Ari", "group": "team", "x": 327, "y": 203,
            "description": "Runs a rival ice operation and loves to brag about outselling Noah.",
            "avatar": DEFAULT_AVATAR_BY_ID["t1"],
        },
        {
            "id": "t2", "label": "Moe", "group": "team", "x": 412, "y": 143,
            "description": "Noah's best friend and, technically, his competitor on the other side of town.",
            "avatar": DEFAULT_AVATAR_BY_ID["t2"],
        },
        {
            "id": "t3", "label": "Ned", "group": "team", "x": 505, "y": 137,
            "description": "Once tried to poach Noah's best supplier. Not trusted since.",
            "avatar": DEFAULT_AVATAR_BY_ID["t3"],
        },
        {
            "id": "t4", "label": "Lee", "group": "team", "x": 292, "y": 663,
            "description": "Inseparable co-worker of Bo; they get shipments out faster than anyone.",
            "avatar": DEFAULT_AVATAR_BY_ID["t4"],
        },
        {
            "id": "p1", "label": "Ivy", "group": "planters", "x": 790, "y": 203,
            "description": "A polite but guarded supplier. Noah wishes Ivy were more open to new ideas.",
            "avatar": DEFAULT_AVATAR_BY_ID["p1"],
        },
        {
            "id": "p2", "label": "Bud", "group": "planters", "x": 875, "y": 298,
            "description": "One of Noah's main suppliers. Casual, professional, always on time.",
            "avatar": DEFAULT_AVATAR_BY_ID["p2"],
        },
        {
            "id": "s1", "label": "Ada", "group": "scientists", "x": 457, "y": 521,
            "description": "Shorted Noah on a shipment once and called him out publicly. Bad blood.",
            "avatar": DEFAULT_AVATAR_BY_ID["s1"],
        },
        {
            "id": "s2", "label": "Bo", "group": "scientists", "x": 457, "y": 663,
            "description": "Ada's best friend on the manufacturing floor.",
            "avatar": DEFAULT_AVATAR_BY_ID["s2"],
        },
        {
            "id": "s3", "label": "Cy", "group": "scientists", "x": 615, "y": 520,
            "description": "Works with Ada on the manufacturing team, mostly focused on production.",
            "avatar": DEFAULT_AVATAR_BY_ID["s3"],
        },
    ],
    "links": [
        {"id": "l1", "source": "t1", "target": "main", "type": "trust"},
        {"id": "l2", "source": "t3", "target": "main", "type": "trust"},
        {"id": "l3", "source": "t4", "target": "s2", "type": "solid"},
        {"id": "l4", "source": "p1", "target": "main", "type": "mixed"},
        {"id": "l5", "source": "p2", "target": "main", "type": "mixed"},
        {"id": "l6", "source": "s1", "target": "s2", "type": "solid"},
        {"id": "l7", "source": "s1", "target": "main", "type": "trust"},
        {"id": "l8", "source": "t2", "target": "main", "type": "solid"},
        {"id": "l9", "source": "s3", "target": "s1", "type": "mixed"},
    ],
}

# Canvas positions of the group captions in the demo layout.
GROUP_LABEL_POSITIONS: Dict[str, Dict[str, float]] = {
    "team": {"x": 360, "y": 80},
    "planters": {"x": 700, "y": 130},
    "scientists": {"x": 380, "y": 460},
    "main": {"x": 520, "y": 220},
}
