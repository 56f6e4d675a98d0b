"""
Supabase Storage Backend for RELMAP.

Implements the PersistenceService protocol using Supabase PostgreSQL
(tables ``groups``, ``nodes`` and ``links``, each keyed by ``id``).

Unique violations (Postgres code 23505 or a "duplicate key" message) become
ConflictError. A transient connectivity failure drops the client, creates a
fresh one and retries the operation once.
"""

import logging
import os
import time
from typing import Dict, Any, Callable, Optional, TypeVar

from supabase import create_client, Client

from relmap.errors import (
    ConflictError, NotFoundError, TransientNetworkError, FatalError, RelmapError, is_transient_error,
)
from relmap.models import Group, Node, Link

logger = logging.getLogger(__name__)

# How long to cache the graph before re-fetching
CACHE_TTL_SECONDS = 2

UNIQUE_VIOLATION_CODE = "23505"

T = TypeVar("T")


def is_unique_violation(exc: BaseException) -> bool:
    code = getattr(exc, "code", None)
    if code is not None and str(code) == UNIQUE_VIOLATION_CODE:
        return True
    return "duplicate key" in str(exc).lower()


class SupabaseBackend:
    """
    Cloud-based storage backend using Supabase.

    Features:
    - PostgreSQL storage for groups, nodes and links
    - One reconnect-and-retry on transient failures
    - Short-lived graph cache, invalidated on every write
    """

    def __init__(
        self,
        client: Optional[Client] = None,
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None,
        client_factory: Optional[Callable[[], Client]] = None,
    ):
        """
        Initialize SupabaseBackend.

        Args:
            client: Optional pre-configured Supabase client
            supabase_url: Supabase project URL (or use SUPABASE_URL env)
            supabase_key: Supabase key (or use SUPABASE_KEY env)
            client_factory: Creates a new client after a reset; defaults to
                            ``create_client(url, key)``
        """
        url = supabase_url or os.environ.get("SUPABASE_URL")
        key = supabase_key or os.environ.get("SUPABASE_KEY")

        if client_factory is not None:
            self._client_factory = client_factory
        elif url and key:
            self._client_factory = lambda: create_client(url, key)
        elif client is not None:
            # No credentials to reconnect with; a reset reuses the given client
            self._client_factory = lambda: client
        else:
            raise ValueError(
                "Supabase URL and key required. "
                "Set SUPABASE_URL and SUPABASE_KEY environment variables."
            )

        self._client: Optional[Client] = client
        self._graph_cache: Optional[Dict[str, Any]] = None
        self._graph_cache_time: float = 0

    @property
    def backend_type(self) -> str:
        return "supabase"

    # --- Connection handling ---

    def _get_client(self) -> Client:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def reset_client(self) -> None:
        """Drop the current client; the next operation creates a new one."""
        self._client = None

    def invalidate_cache(self) -> None:
        self._graph_cache = None
        self._graph_cache_time = 0

    def _run(self, operation: Callable[[Client], T], entity: str = "", entity_id: str = "") -> T:
        """
        Run ``operation(client)``, retrying once after a reset on transient errors.

        Raises:
            ConflictError: unique violation
            TransientNetworkError: still unreachable after the retry
            FatalError: anything else the driver raised
        """
        last_error: Optional[Exception] = None
        for attempt in range(2):
            try:
                return operation(self._get_client())
            except RelmapError:
                raise
            except Exception as e:
                last_error = e
                if is_unique_violation(e):
                    raise ConflictError(entity or "row", entity_id) from e
                if is_transient_error(e) and attempt == 0:
                    logger.warning(f"Transient Supabase error, reconnecting: {e}")
                    self.reset_client()
                    continue
                break

        if is_transient_error(last_error):
            raise TransientNetworkError(f"Supabase unreachable: {last_error}") from last_error
        logger.error(f"Supabase operation failed: {last_error}")
        raise FatalError(str(last_error)) from last_error

    # --- PersistenceService ---

    def get_graph(self, force_refresh: bool = False) -> Dict[str, Any]:
        """Get the full map. Uses a short cache to absorb polling bursts."""
        if not force_refresh and self._graph_cache is not None:
            cache_age = time.time() - self._graph_cache_time
            if cache_age < CACHE_TTL_SECONDS:
                logger.debug(f"Returning cached graph (age: {cache_age:.1f}s)")
                return self._graph_cache

        def fetch(client: Client) -> Dict[str, Any]:
            groups = client.table("groups").select("*").execute().data or []
            nodes = client.table("nodes").select("*").execute().data or []
            links = client.table("links").select("*").execute().data or []
            return {
                "groups": {
                    row["id"]: Group(label=row.get("label") or row["id"], color=row.get("color")).to_dict()
                    for row in groups
                },
                "nodes": [self._node_from_row(row) for row in nodes],
                "links": [
                    {"id": row["id"], "source": row["source"], "target": row["target"],
                     "type": row.get("type") or "solid"}
                    for row in links
                ],
            }

        result = self._run(fetch)
        self._graph_cache = result
        self._graph_cache_time = time.time()
        return result

    @staticmethod
    def _node_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
        node = {
            "id": row["id"],
            "label": row.get("label", ""),
            "group": row.get("group", ""),
            "x": row.get("x", 0),
            "y": row.get("y", 0),
            "description": row.get("description") or "",
            "avatar": row.get("avatar"),
        }
        if row.get("r") is not None:
            node["r"] = row["r"]
        return node

    def insert_node(self, node: Node) -> None:
        self._run(lambda c: c.table("nodes").insert(node.to_dict()).execute(), "node", node.id)
        self.invalidate_cache()
        logger.info(f"Inserted node {node.id}")

    def insert_link(self, link: Link) -> None:
        self._run(lambda c: c.table("links").insert(link.to_dict()).execute(), "link", link.id)
        self.invalidate_cache()
        logger.info(f"Inserted link {link.id}")

    def update_node_note(self, node_id: str, description: str) -> None:
        response = self._run(
            lambda c: c.table("nodes").update({"description": description}).eq("id", node_id).execute(),
            "node", node_id,
        )
        self.invalidate_cache()
        if not response.data:
            raise NotFoundError("node", node_id)

    def insert_group(self, group_id: str, group: Group) -> None:
        row = {"id": group_id, **group.to_dict()}
        self._run(lambda c: c.table("groups").insert(row).execute(), "group", group_id)
        self.invalidate_cache()

    def delete_node(self, node_id: str) -> None:
        response = self._run(
            lambda c: c.table("nodes").delete().eq("id", node_id).execute(),
            "node", node_id,
        )
        self.invalidate_cache()
        if not response.data:
            raise NotFoundError("node", node_id)

    def ping(self) -> Dict[str, Any]:
        def count(client: Client) -> Dict[str, Any]:
            counts: Dict[str, Any] = {}
            for table in ("groups", "nodes", "links"):
                response = client.table(table).select("id", count="exact").execute()
                counts[table] = response.count if response.count is not None else len(response.data or [])
            return counts

        counts = self._run(count)
        return {"ok": True, "backend": self.backend_type, **counts}

    def close(self) -> None:
        self.reset_client()
