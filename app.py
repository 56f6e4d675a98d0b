"""
Main NiceGUI application for RELMAP.

Serves the relationship map page at ``/`` and the persistence API under
``/api`` from one process. The page's SyncClient reaches the API over HTTP
like any other client, so pointing ``RELMAP_API_URL`` at a remote API works
without code changes.
"""

import logging
import sys

from dotenv import load_dotenv
from nicegui import app, ui

load_dotenv()

from relmap.api import create_api
from relmap.config import get_settings
from relmap.map_view import build_map_page
from relmap.paths import ensure_data_dir, get_avatars_dir
from relmap.storage import create_backend

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger('relmap')

settings = get_settings(use_dotenv=False)
ensure_data_dir()

backend = create_backend(settings)
app.mount('/api', create_api(backend, settings.api_key))
app.on_shutdown(backend.close)

avatars_dir = get_avatars_dir()
if avatars_dir.exists():
    app.add_static_files('/avatars', str(avatars_dir))
else:
    logger.info(f"No avatars folder at {avatars_dir}; avatar images will not load")


@ui.page('/')
def main_page():
    # Server-side client talks to the API mounted in this same process
    build_map_page(settings, origin=f'http://127.0.0.1:{settings.port}')


if __name__ in {"__main__", "__mp_main__"}:
    ui.run(
        title='RELMAP',
        port=settings.port,
        reload=not getattr(sys, 'frozen', False),
    )
