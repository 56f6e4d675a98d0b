"""
PersistenceService Protocol Definition.

This module defines the interface that every storage backend must implement.
The JSON file, SQLite and Supabase backends all conform to this protocol, and
the HTTP API only ever talks to it.

Conflicts raise ConflictError and missing entities raise NotFoundError
regardless of the engine underneath.
"""

from typing import Protocol, Dict, Any, runtime_checkable

from relmap.models import Group, Node, Link


@runtime_checkable
class PersistenceService(Protocol):
    """
    Abstract protocol for storage backends.

    All storage backends must implement these methods to provide CRUD
    operations for groups, nodes and links.
    """

    @property
    def backend_type(self) -> str:
        """Return the backend type identifier ('json', 'sqlite' or 'supabase')."""
        ...

    def get_graph(self) -> Dict[str, Any]:
        """
        Load the whole map.

        Returns:
            Dict with keys:
            - groups: Dict[group_id -> {label, color?}]
            - nodes: List of node dicts
            - links: List of link dicts
        """
        ...

    def insert_node(self, node: Node) -> None:
        """
        Insert a new node.

        Raises:
            ConflictError: A node with this id already exists
        """
        ...

    def insert_link(self, link: Link) -> None:
        """
        Insert a new link. Endpoints are not checked here.

        Raises:
            ConflictError: A link with this id already exists
        """
        ...

    def update_node_note(self, node_id: str, description: str) -> None:
        """
        Replace a node's description.

        Raises:
            NotFoundError: No node with this id
        """
        ...

    def insert_group(self, group_id: str, group: Group) -> None:
        """
        Insert a group (used when seeding).

        Raises:
            ConflictError: A group with this id already exists
        """
        ...

    def delete_node(self, node_id: str) -> None:
        """
        Delete a node (used by diagnostics cleanup).

        Raises:
            NotFoundError: No node with this id
        """
        ...

    def ping(self) -> Dict[str, Any]:
        """
        Check the store is reachable.

        Returns:
            Dict with ``ok``, ``backend`` and ``groups`` / ``nodes`` / ``links`` counts
        """
        ...

    def close(self) -> None:
        """Release connections and worker threads."""
        ...
