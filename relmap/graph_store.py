"""
GraphStore - the client-side authoritative cache of groups, nodes and links.

Every other component reads immutable views from here and asks the store to
change state; nothing else holds a mutable reference to the graph.

State changes come from three places:
- optimistic user edits (``apply_optimistic``), reversible per entity
- server snapshots (``load`` / ``reconcile``), which replace state wholesale
- pointer drags (``move_node``), which are local only
"""

import logging
import random
from dataclasses import dataclass, replace
from typing import Dict, Any, List, Optional, Callable, Mapping, Tuple, Union

from relmap.errors import ConflictError, NotFoundError, ValidationError
from relmap.models import (
    Group, Node, Link, GraphState,
    normalize_graph, explicit_avatar, resolve_avatar, normalize_link_type,
)

logger = logging.getLogger(__name__)

DEFAULT_FOCUS_ID = "main"


# --- Mutations ---

@dataclass(frozen=True)
class AddNode:
    node: Node


@dataclass(frozen=True)
class AddLink:
    link: Link


@dataclass(frozen=True)
class UpdateNote:
    node_id: str
    description: str


Mutation = Union[AddNode, AddLink, UpdateNote]


class OptimisticHandle:
    """
    Outcome handle returned by ``GraphStore.apply_optimistic``.

    Exactly one of ``commit`` / ``rollback`` takes effect; later calls are
    ignored.
    """

    def __init__(self, mutation: Mutation, undo: Callable[[], None]):
        self.mutation = mutation
        self._undo = undo
        self._settled = False
        self.server_result: Any = None

    @property
    def settled(self) -> bool:
        return self._settled

    def commit(self, server_result: Any = None) -> None:
        """The optimistic value already matches the server; just settle."""
        if self._settled:
            return
        self._settled = True
        self.server_result = server_result

    def rollback(self) -> None:
        """Revert the entity this mutation touched, and nothing else."""
        if self._settled:
            return
        self._settled = True
        self._undo()


class GraphStore:
    """Holds GraphState and the derived indexes the renderer needs."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._state = GraphState()
        self._rng = rng or random.Random()
        self._avatar_by_id: Dict[str, str] = {}
        self._focused_id: Optional[str] = None
        self._nodes_by_id: Optional[Dict[str, Node]] = None
        self._version = 0
        self._listeners: List[Callable[["GraphStore"], None]] = []

    # --- Read accessors ---

    @property
    def groups(self) -> Mapping[str, Group]:
        return dict(self._state.groups)

    @property
    def nodes(self) -> Tuple[Node, ...]:
        return tuple(self._state.nodes)

    @property
    def links(self) -> Tuple[Link, ...]:
        return tuple(self._state.links)

    @property
    def state(self) -> GraphState:
        """A detached copy of the current state."""
        return GraphState(
            groups=dict(self._state.groups),
            nodes=list(self._state.nodes),
            links=list(self._state.links),
        )

    @property
    def version(self) -> int:
        """Bumped on every change; cheap dirty check for the UI."""
        return self._version

    @property
    def is_empty(self) -> bool:
        return not self._state.nodes

    def nodes_by_id(self) -> Dict[str, Node]:
        if self._nodes_by_id is None:
            self._nodes_by_id = {n.id: n for n in self._state.nodes}
        return dict(self._nodes_by_id)

    def get_node(self, node_id: str) -> Optional[Node]:
        if self._nodes_by_id is None:
            self.nodes_by_id()
        return self._nodes_by_id.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return self.get_node(node_id) is not None

    def renderable_links(self) -> List[Link]:
        """Links whose endpoints both exist. Dangling links are skipped, not errors."""
        index = self.nodes_by_id()
        return [l for l in self._state.links if l.source in index and l.target in index]

    # --- Focus ---

    @property
    def focused_id(self) -> Optional[str]:
        return self._focused_id

    def focus(self, node_id: Optional[str]) -> None:
        self._focused_id = node_id if node_id and self.has_node(node_id) else None
        self._notify()

    def clear_focus(self) -> None:
        if self._focused_id is not None:
            self._focused_id = None
            self._notify()

    # --- Listeners ---

    def subscribe(self, callback: Callable[["GraphStore"], None]) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes it."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    def _notify(self) -> None:
        self._version += 1
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Error in graph store listener: {e}")

    def _set_nodes(self, nodes: List[Node]) -> None:
        self._state.nodes = nodes
        self._nodes_by_id = None

    # --- Server snapshots ---

    def _avatar_for(self, raw: Mapping[str, Any]) -> Optional[str]:
        """
        Avatar stickiness: an explicit server avatar wins and is remembered;
        otherwise a previously resolved avatar for this id is kept; otherwise a
        fallback is resolved once and remembered.
        """
        node_id = raw.get("id")
        explicit = explicit_avatar(raw)
        if explicit:
            self._avatar_by_id[node_id] = explicit
            return explicit
        cached = self._avatar_by_id.get(node_id)
        if cached:
            return cached
        resolved = resolve_avatar(raw, self._rng)
        if resolved:
            self._avatar_by_id[node_id] = resolved
        return resolved

    def load(self, initial: Any) -> None:
        """Hydrate the store from its first snapshot."""
        self.reconcile(initial)
        if self._focused_id is None and self.has_node(DEFAULT_FOCUS_ID):
            self._focused_id = DEFAULT_FOCUS_ID

    def reconcile(self, server_state: Any) -> None:
        """
        Replace groups, nodes and links with a normalized server snapshot.

        Applying the same snapshot twice yields the same state.
        """
        incoming = normalize_graph(server_state, self._avatar_for)
        self._state.groups = incoming.groups
        self._state.links = incoming.links
        self._set_nodes(incoming.nodes)
        if self._focused_id is not None and not self.has_node(self._focused_id):
            logger.debug(f"Focused node {self._focused_id} vanished; clearing focus")
            self._focused_id = None
        self._notify()

    # --- Local geometry ---

    def move_node(self, node_id: str, dx: float, dy: float) -> bool:
        """Shift a node by a world-space delta. Returns False if it no longer exists."""
        nodes = self._state.nodes
        for i, n in enumerate(nodes):
            if n.id == node_id:
                nodes = list(nodes)
                nodes[i] = replace(n, x=n.x + dx, y=n.y + dy)
                self._set_nodes(nodes)
                self._notify()
                return True
        return False

    # --- Optimistic mutations ---

    def apply_optimistic(self, mutation: Mutation) -> OptimisticHandle:
        """
        Apply a user edit immediately and return its commit/rollback handle.

        Raises:
            ConflictError: AddNode with an id that is already present
            ValidationError: AddLink whose endpoints do not exist
            NotFoundError: UpdateNote for a missing node
        """
        if isinstance(mutation, AddNode):
            undo = self._add_node(mutation.node)
        elif isinstance(mutation, AddLink):
            undo = self._add_link(mutation.link)
        elif isinstance(mutation, UpdateNote):
            undo = self._update_note(mutation.node_id, mutation.description)
        else:
            raise TypeError(f"Unsupported mutation: {mutation!r}")
        self._notify()
        return OptimisticHandle(mutation, undo)

    def _add_node(self, node: Node) -> Callable[[], None]:
        if not node.id:
            raise ValidationError("Node id must be non-empty")
        if self.has_node(node.id):
            raise ConflictError("node", node.id)
        if node.avatar:
            self._avatar_by_id[node.id] = node.avatar
        self._set_nodes(self._state.nodes + [node])

        def undo():
            self._set_nodes([n for n in self._state.nodes if n.id != node.id])
            if self._focused_id == node.id:
                self._focused_id = None
            self._notify()
        return undo

    def _add_link(self, link: Link) -> Callable[[], None]:
        if not self.has_node(link.source) or not self.has_node(link.target):
            raise ValidationError("Both source and target ids must exist.",
                                  source=link.source, target=link.target)
        if any(l.id == link.id for l in self._state.links):
            raise ConflictError("link", link.id)
        link = replace(link, type=normalize_link_type(link.type))
        self._state.links = self._state.links + [link]

        def undo():
            self._state.links = [l for l in self._state.links if l.id != link.id]
            self._notify()
        return undo

    def _update_note(self, node_id: str, description: str) -> Callable[[], None]:
        before = self.get_node(node_id)
        if before is None:
            raise NotFoundError("node", node_id)
        self._replace_node(node_id, lambda n: replace(n, description=description))

        def undo():
            # Only the note is reverted; a drag made meanwhile is kept
            self._replace_node(node_id, lambda n: replace(n, description=before.description))
            self._notify()
        return undo

    def _replace_node(self, node_id: str, fn: Callable[[Node], Node]) -> None:
        self._set_nodes([fn(n) if n.id == node_id else n for n in self._state.nodes])
