"""
Backend Factory for RELMAP.

Creates the configured storage backend from resolved Settings.
"""

import logging
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from relmap.config import Settings, get_settings, DEFAULT_BACKEND
from relmap.paths import get_data_dir
from relmap.storage.json_backend import JsonFileBackend
from relmap.storage.sqlite_backend import SqliteBackend

if TYPE_CHECKING:
    from relmap.storage.protocol import PersistenceService

logger = logging.getLogger(__name__)


def create_backend(
    settings: Optional[Settings] = None,
    force_backend: Optional[str] = None,
    supabase_client=None,
) -> "PersistenceService":
    """
    Create a storage backend instance.

    Args:
        settings: Resolved settings; read from env/config.json when omitted
        force_backend: Override the configured backend type
        supabase_client: Optional pre-configured Supabase client

    Returns:
        PersistenceService instance (JsonFileBackend, SqliteBackend or SupabaseBackend)
    """
    settings = settings or get_settings()
    backend_type = (force_backend or settings.storage_backend or DEFAULT_BACKEND).lower()

    if backend_type == "supabase":
        # Imported here so file-based setups never touch the supabase client
        from relmap.storage.supabase_backend import SupabaseBackend
        logger.info("Using Supabase storage backend")
        return SupabaseBackend(
            client=supabase_client,
            supabase_url=settings.supabase_url,
            supabase_key=settings.supabase_key,
        )

    if backend_type == "sqlite":
        path = Path(settings.data_path) if settings.data_path else get_data_dir() / "relmap.db"
        logger.info(f"Using SQLite storage backend at {path}")
        return SqliteBackend(path)

    if backend_type != "json":
        logger.warning(f"Unknown backend '{backend_type}', using JSON file storage")
    path = Path(settings.data_path) if settings.data_path else get_data_dir() / "graph.json"
    logger.info(f"Using JSON file storage backend at {path}")
    return JsonFileBackend(path)
