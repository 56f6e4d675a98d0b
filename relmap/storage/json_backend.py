"""
JSON file Storage Backend for RELMAP.

Implements the PersistenceService protocol with a single JSON document on
local disk:

    {"groups": {...}, "nodes": [...], "links": [...]}

Every write is a read-modify-write of the whole document, run inside the
MutationQueue so concurrent requests are applied one at a time. The file is
replaced atomically, so readers never see a half-written document.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Any, Callable, Optional, Union

from relmap.errors import ConflictError, NotFoundError, FatalError
from relmap.models import Group, Node, Link
from relmap.storage.mutation_queue import MutationQueue

logger = logging.getLogger(__name__)


def empty_document() -> Dict[str, Any]:
    return {"groups": {}, "nodes": [], "links": []}


class JsonFileBackend:
    """
    Local file-based storage backend.

    Structure:
    - {data_path}: the whole map as one JSON document
    """

    def __init__(self, data_path: Union[str, Path], mutation_queue: Optional[MutationQueue] = None):
        """
        Initialize JsonFileBackend.

        Args:
            data_path: Path to the JSON document (created on first write)
            mutation_queue: Optional queue to share; one is created otherwise
        """
        self.data_path = Path(data_path)
        self.data_path.parent.mkdir(parents=True, exist_ok=True)
        self._owns_queue = mutation_queue is None
        self._queue = mutation_queue or MutationQueue(name=f"relmap-json-{self.data_path.name}")

    @property
    def backend_type(self) -> str:
        return "json"

    # --- Document I/O ---

    def _read(self) -> Dict[str, Any]:
        """Load the document. A missing file is an empty graph."""
        if not self.data_path.exists():
            return empty_document()
        try:
            with open(self.data_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise FatalError(f"Corrupt data file {self.data_path}: {e}") from e
        if not isinstance(data, dict):
            raise FatalError(f"Data file {self.data_path} does not hold a JSON object")
        doc = empty_document()
        doc["groups"] = data.get("groups") if isinstance(data.get("groups"), dict) else {}
        doc["nodes"] = data.get("nodes") if isinstance(data.get("nodes"), list) else []
        doc["links"] = data.get("links") if isinstance(data.get("links"), list) else []
        return doc

    def _write(self, doc: Dict[str, Any]) -> None:
        """Write to a temp file next to the target, then replace the target."""
        fd, tmp_path = tempfile.mkstemp(dir=str(self.data_path.parent), prefix=".graph-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(doc, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.data_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _mutate(self, mutator: Callable[[Dict[str, Any]], Any]) -> Any:
        """Run ``mutator(doc)`` in the queue and persist the document it changed."""
        def step():
            doc = self._read()
            result = mutator(doc)
            self._write(doc)
            return result
        return self._queue.run(step)

    # --- PersistenceService ---

    def get_graph(self) -> Dict[str, Any]:
        return self._read()

    def insert_node(self, node: Node) -> None:
        def mutator(doc):
            if any(n.get("id") == node.id for n in doc["nodes"]):
                raise ConflictError("node", node.id)
            doc["nodes"].append(node.to_dict())
        self._mutate(mutator)
        logger.info(f"Inserted node {node.id}")

    def insert_link(self, link: Link) -> None:
        def mutator(doc):
            if any(l.get("id") == link.id for l in doc["links"]):
                raise ConflictError("link", link.id)
            doc["links"].append(link.to_dict())
        self._mutate(mutator)
        logger.info(f"Inserted link {link.id}")

    def update_node_note(self, node_id: str, description: str) -> None:
        def mutator(doc):
            for n in doc["nodes"]:
                if n.get("id") == node_id:
                    n["description"] = description
                    return
            raise NotFoundError("node", node_id)
        self._mutate(mutator)

    def insert_group(self, group_id: str, group: Group) -> None:
        def mutator(doc):
            if group_id in doc["groups"]:
                raise ConflictError("group", group_id)
            doc["groups"][group_id] = group.to_dict()
        self._mutate(mutator)

    def delete_node(self, node_id: str) -> None:
        def mutator(doc):
            remaining = [n for n in doc["nodes"] if n.get("id") != node_id]
            if len(remaining) == len(doc["nodes"]):
                raise NotFoundError("node", node_id)
            doc["nodes"] = remaining
        self._mutate(mutator)

    def ping(self) -> Dict[str, Any]:
        doc = self._read()
        return {
            "ok": True,
            "backend": self.backend_type,
            "groups": len(doc["groups"]),
            "nodes": len(doc["nodes"]),
            "links": len(doc["links"]),
        }

    def close(self) -> None:
        if self._owns_queue:
            self._queue.close()
