"""
Map Actions Module

Executes user edits against the GraphStore and the persistence API.

Every action follows the same flow: apply the change optimistically, send
it, then commit on success or roll back exactly the touched entity on
failure. Failures are reported through ``last_error``; the canvas keeps
working on the last known good state.
"""

import logging
import random
import re
import time
from typing import Optional, Tuple

from relmap.errors import RelmapError, ConflictError, ValidationError, NotFoundError
from relmap.graph_store import GraphStore, AddNode, AddLink, UpdateNote
from relmap.models import Node, Link, normalize_link_type, random_avatar
from relmap.sync_client import SyncClient
from relmap.viewport import ViewportController

logger = logging.getLogger(__name__)

# New nodes land near the view centre, +/- half of this in each axis
PLACEMENT_JITTER = 80.0

OFFLINE_MESSAGE = "Offline: showing demo data, changes are not saved."


def slug(text: Optional[str]) -> str:
    """Lowercase, runs of non-alphanumerics to ``_``, outer underscores trimmed."""
    return re.sub(r'[^a-z0-9]+', '_', (text or '').lower().strip()).strip('_')


def _base36(number: int) -> str:
    digits = '0123456789abcdefghijklmnopqrstuvwxyz'
    if number == 0:
        return '0'
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(digits[rem])
    return ''.join(reversed(out))


def time_token() -> str:
    """Current time in milliseconds, base 36."""
    return _base36(int(time.time() * 1000))


def describe_failure(error: RelmapError, fallback: str) -> str:
    """User-facing text for a failed save. Conflict, not-found and validation errors say what went wrong."""
    if isinstance(error, (ConflictError, NotFoundError, ValidationError)):
        return error.message
    return fallback


class MapActions:
    """
    Handles add-node, add-link and save-note for one session.

    Each method returns True when the change reached the server.
    """

    def __init__(self, store: GraphStore, sync: SyncClient, viewport: ViewportController,
                 rng: Optional[random.Random] = None):
        self.store = store
        self.sync = sync
        self.viewport = viewport
        self._rng = rng or random.Random()
        self.last_error = ""

    def _refuse_offline(self) -> bool:
        if self.sync.is_read_only:
            self.last_error = OFFLINE_MESSAGE
            return True
        return False

    async def add_node(self, label: str, group: str, description: str = "",
                       viewport_size: Tuple[float, float] = (900, 700)) -> bool:
        """
        Create a node at the centre of the current view.

        Args:
            label: Display label, also the source of the id
            group: Group id
            description: Initial note
            viewport_size: Canvas (width, height) in pixels

        Returns:
            True if the server accepted the node
        """
        self.last_error = ""
        if self._refuse_offline():
            return False

        node_id = slug(label) or f"n_{time_token()}"
        if self.store.has_node(node_id):
            self.last_error = f"Node id already exists: {node_id}"
            return False

        x, y = self.viewport.view_center_world(viewport_size)
        half = PLACEMENT_JITTER / 2
        node = Node(
            id=node_id,
            label=label or node_id,
            group=group,
            x=x + self._rng.uniform(-half, half),
            y=y + self._rng.uniform(-half, half),
            avatar=random_avatar(self._rng),
            description=description or "",
        )

        try:
            handle = self.store.apply_optimistic(AddNode(node))
        except ConflictError as e:
            self.last_error = e.message
            return False

        try:
            result = await self.sync.create_node(node)
        except RelmapError as e:
            logger.warning(f"Failed to save node {node_id}: {e}")
            handle.rollback()
            self.last_error = describe_failure(e, "Failed to save node.")
            return False

        handle.commit(result)
        await self.sync.load_map(allow_fallback=False, supersede=True)
        return True

    async def add_link(self, source: str, target: str, link_type: str = "solid") -> bool:
        """Connect two existing nodes with a typed link."""
        self.last_error = ""
        if self._refuse_offline():
            return False

        link = Link(
            id=f"e_{time_token()}",
            source=(source or "").strip(),
            target=(target or "").strip(),
            type=normalize_link_type(link_type),
        )
        try:
            handle = self.store.apply_optimistic(AddLink(link))
        except (ValidationError, ConflictError) as e:
            self.last_error = e.message
            return False

        try:
            result = await self.sync.create_link(link)
        except RelmapError as e:
            logger.warning(f"Failed to save link {link.id}: {e}")
            handle.rollback()
            self.last_error = describe_failure(e, "Failed to save link.")
            return False

        handle.commit(result)
        await self.sync.load_map(allow_fallback=False, supersede=True)
        return True

    async def save_note(self, text: str) -> bool:
        """Save the note of the focused node. No-op without a focus."""
        self.last_error = ""
        node_id = self.store.focused_id
        if not node_id:
            return False
        if self._refuse_offline():
            return False

        try:
            handle = self.store.apply_optimistic(UpdateNote(node_id, text or ""))
        except NotFoundError as e:
            self.last_error = e.message
            return False

        try:
            result = await self.sync.update_note(node_id, text or "")
        except RelmapError as e:
            logger.warning(f"Failed to save notes for {node_id}: {e}")
            handle.rollback()
            self.last_error = describe_failure(e, "Failed to save notes.")
            return False

        handle.commit(result)
        return True
