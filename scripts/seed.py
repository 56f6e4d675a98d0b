"""Seed the configured store with the built-in demo map.

Usage:
  python scripts/seed.py [--backend json|sqlite|supabase]

Inserts the demo groups, nodes and links into the backend selected by
RELMAP_STORAGE_BACKEND (or --backend). Entries whose id already exists are
left untouched, so running it twice is harmless.
"""
import argparse
import logging

from dotenv import load_dotenv

from relmap.demo import DEMO_GRAPH
from relmap.errors import ConflictError
from relmap.models import Group, parse_node, parse_link
from relmap.storage import create_backend

logger = logging.getLogger('relmap.seed')


def seed(backend, data=DEMO_GRAPH) -> dict:
    """Insert ``data`` into ``backend``. Returns inserted/skipped counts per kind."""
    counts = {"inserted": 0, "skipped": 0}

    def attempt(insert, *args):
        try:
            insert(*args)
            counts["inserted"] += 1
        except ConflictError:
            counts["skipped"] += 1

    for group_id, group in data.get("groups", {}).items():
        attempt(backend.insert_group, group_id, Group(label=group["label"], color=group.get("color")))
    for raw in data.get("nodes", []):
        attempt(backend.insert_node, parse_node(raw))
    for raw in data.get("links", []):
        attempt(backend.insert_link, parse_link(raw))
    return counts


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('--backend', choices=['json', 'sqlite', 'supabase'], default=None)
    args = parser.parse_args()

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(message)s')

    backend = create_backend(force_backend=args.backend)
    try:
        counts = seed(backend)
    finally:
        backend.close()
    print(f"Seeded {backend.backend_type} store: {counts['inserted']} inserted, {counts['skipped']} already present.")


if __name__ == '__main__':
    main()
