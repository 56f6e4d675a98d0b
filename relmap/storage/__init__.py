"""
Storage backend abstraction for RELMAP.

Supports multiple storage backends:
- JsonFileBackend: a single JSON document, writes serialized by a MutationQueue (default)
- SqliteBackend: embedded SQLite database
- SupabaseBackend: Cloud PostgreSQL
"""

from relmap.storage.protocol import PersistenceService
from relmap.storage.mutation_queue import MutationQueue
from relmap.storage.json_backend import JsonFileBackend
from relmap.storage.sqlite_backend import SqliteBackend
from relmap.storage.factory import create_backend

__all__ = [
    'PersistenceService',
    'MutationQueue',
    'JsonFileBackend',
    'SqliteBackend',
    'create_backend',
]
