"""Check that the configured store (and optionally the HTTP API) is healthy.

Usage:
  python scripts/diagnose.py [--backend json|sqlite|supabase] [--api http://localhost:8080/api]

Steps:
  1. ping the store and print its group/node/link counts
  2. print up to five sample nodes
  3. insert a temporary diagnostics node, then delete it again
  4. with --api: call GET /health with the configured bearer key
"""
import argparse
import logging
import sys
import time

import httpx
from dotenv import load_dotenv

from relmap.config import get_settings
from relmap.models import Node
from relmap.storage import create_backend

logger = logging.getLogger('relmap.diagnose')


def check_store(backend) -> None:
    status = backend.ping()
    print(f"✔ Ping successful. {status['backend']} store has "
          f"{status['groups']} groups, {status['nodes']} nodes and {status['links']} links.")

    sample = [
        {"id": n.get("id"), "label": n.get("label"), "group": n.get("group")}
        for n in backend.get_graph().get("nodes", [])[:5]
    ]
    if not sample:
        print("ℹ No nodes found in the store.")
    else:
        print(f"ℹ Sample nodes: {sample}")

    diagnostics_id = f"diagnostic_{int(time.time() * 1000)}"
    backend.insert_node(Node(
        id=diagnostics_id,
        label='Diagnostics Check',
        group='diagnostics',
        x=0,
        y=0,
        description='Temporary node inserted by diagnostics script.',
    ))
    print("✔ Write check succeeded. Temporary diagnostics node inserted.")

    backend.delete_node(diagnostics_id)
    print("✔ Cleanup succeeded. Temporary diagnostics node removed.")


def check_api(api_url: str, api_key: str) -> None:
    url = api_url.rstrip('/') + '/health'
    response = httpx.get(url, headers={"Authorization": f"Bearer {api_key}"}, timeout=10.0)
    response.raise_for_status()
    print(f"✔ API reachable at {url}: {response.json()}")


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('--backend', choices=['json', 'sqlite', 'supabase'], default=None)
    parser.add_argument('--api', default=None, help='Base URL of a running API, e.g. http://localhost:8080/api')
    args = parser.parse_args()

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(message)s')
    settings = get_settings(use_dotenv=False)

    print("Running RELMAP diagnostics...")
    backend = create_backend(settings, force_backend=args.backend)
    try:
        check_store(backend)
        if args.api:
            check_api(args.api, settings.api_key)
    except Exception as e:
        print(f"Diagnostics failed: {e}")
        sys.exit(1)
    finally:
        backend.close()
    print("Diagnostics complete. Store connectivity looks healthy.")


if __name__ == '__main__':
    main()
