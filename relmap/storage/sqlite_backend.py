"""
SQLite Storage Backend for RELMAP.

Implements the PersistenceService protocol on an embedded SQLite database
with three tables: groups, nodes and links. Primary keys on ``id`` make
duplicate inserts fail inside the engine, which is mapped to ConflictError.

A fresh connection is opened per call so the backend can be used from the
API's worker threads.
"""

import logging
import sqlite3
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Dict, Any, Iterator, Union

from relmap.errors import ConflictError, NotFoundError
from relmap.models import Group, Node, Link

logger = logging.getLogger(__name__)

SCHEMA = (
    """CREATE TABLE IF NOT EXISTS groups (
        id TEXT PRIMARY KEY,
        label TEXT NOT NULL,
        color TEXT
    )""",
    """CREATE TABLE IF NOT EXISTS nodes (
        id TEXT PRIMARY KEY,
        label TEXT NOT NULL,
        "group" TEXT NOT NULL,
        x REAL NOT NULL,
        y REAL NOT NULL,
        r REAL,
        description TEXT DEFAULT '',
        avatar TEXT
    )""",
    """CREATE TABLE IF NOT EXISTS links (
        id TEXT PRIMARY KEY,
        source TEXT NOT NULL,
        target TEXT NOT NULL,
        type TEXT DEFAULT 'solid'
    )""",
)


class SqliteBackend:
    """Embedded SQL storage backend."""

    def __init__(self, db_path: Union[str, Path], timeout: float = 10.0):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._timeout = timeout
        with self._connect() as conn:
            for statement in SCHEMA:
                conn.execute(statement)

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Connection that commits on success, rolls back on error and always closes."""
        with closing(sqlite3.connect(str(self.db_path), timeout=self._timeout)) as conn:
            conn.row_factory = sqlite3.Row
            with conn:
                yield conn

    def _insert(self, entity: str, entity_id: str, sql: str, params: tuple) -> None:
        try:
            with self._connect() as conn:
                conn.execute(sql, params)
        except sqlite3.IntegrityError as e:
            logger.debug(f"Duplicate {entity} {entity_id}: {e}")
            raise ConflictError(entity, entity_id) from e

    # --- PersistenceService ---

    def get_graph(self) -> Dict[str, Any]:
        with self._connect() as conn:
            group_rows = conn.execute("SELECT id, label, color FROM groups").fetchall()
            node_rows = conn.execute(
                'SELECT id, label, "group", x, y, r, description, avatar FROM nodes ORDER BY rowid'
            ).fetchall()
            link_rows = conn.execute("SELECT id, source, target, type FROM links ORDER BY rowid").fetchall()

        groups = {}
        for row in group_rows:
            groups[row["id"]] = Group(label=row["label"], color=row["color"]).to_dict()

        nodes = []
        for row in node_rows:
            node = dict(row)
            if node["r"] is None:
                del node["r"]
            node["description"] = node["description"] or ""
            nodes.append(node)

        links = [dict(row) for row in link_rows]
        return {"groups": groups, "nodes": nodes, "links": links}

    def insert_node(self, node: Node) -> None:
        self._insert(
            "node", node.id,
            'INSERT INTO nodes (id, label, "group", x, y, r, description, avatar) VALUES (?,?,?,?,?,?,?,?)',
            (node.id, node.label, node.group, node.x, node.y, node.r, node.description, node.avatar),
        )
        logger.info(f"Inserted node {node.id}")

    def insert_link(self, link: Link) -> None:
        self._insert(
            "link", link.id,
            "INSERT INTO links (id, source, target, type) VALUES (?,?,?,?)",
            (link.id, link.source, link.target, link.type.value),
        )
        logger.info(f"Inserted link {link.id}")

    def update_node_note(self, node_id: str, description: str) -> None:
        with self._connect() as conn:
            cursor = conn.execute("UPDATE nodes SET description = ? WHERE id = ?", (description, node_id))
            if cursor.rowcount == 0:
                raise NotFoundError("node", node_id)

    def insert_group(self, group_id: str, group: Group) -> None:
        self._insert(
            "group", group_id,
            "INSERT INTO groups (id, label, color) VALUES (?,?,?)",
            (group_id, group.label, group.color),
        )

    def delete_node(self, node_id: str) -> None:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM nodes WHERE id = ?", (node_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("node", node_id)

    def ping(self) -> Dict[str, Any]:
        with self._connect() as conn:
            counts = {
                table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in ("groups", "nodes", "links")
            }
        return {"ok": True, "backend": self.backend_type, **counts}

    def close(self) -> None:
        pass
