import copy
import json
import random
from urllib.parse import unquote

import httpx
import pytest

from relmap.graph_store import GraphStore
from relmap.sync_client import SyncClient

API_KEY = "test-key"
API_URL = "https://relmap.test/api"

SMALL_GRAPH = {
    "groups": {"team": {"label": "Competitors", "color": "#5B8DEF"}},
    "nodes": [
        {"id": "main", "label": "Noah", "group": "team", "x": 0, "y": 0, "avatar": "/avatars/main-guy.jpeg"},
        {"id": "t1", "label": "Ari", "group": "team", "x": 200, "y": 0, "avatar": "/avatars/ari.jpeg"},
    ],
    "links": [
        {"id": "l1", "source": "t1", "target": "main", "type": "trust"},
    ],
}


class FakeMapServer:
    """In-memory stand-in for the persistence API, served through httpx.MockTransport.

    Only paths under /api answer; anything else is a 404, like a web server
    that does not host the API at its root.
    """

    def __init__(self, snapshot=None, api_key=API_KEY):
        self.state = copy.deepcopy(snapshot if snapshot is not None else SMALL_GRAPH)
        self.api_key = api_key
        self.requests = []
        self.fail_with = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.host, request.url.path))
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": "forced failure"})
        if request.headers.get("authorization") != f"Bearer {self.api_key}":
            return httpx.Response(401, json={"error": "Unauthorized"})
        if not request.url.path.startswith("/api/"):
            return httpx.Response(404, json={"error": "Not found"})

        path = request.url.path[len("/api"):]
        body = json.loads(request.content) if request.content else None

        if request.method == "GET" and path == "/map":
            return httpx.Response(200, json=self.state)
        if request.method == "POST" and path == "/nodes":
            if any(n["id"] == body["id"] for n in self.state["nodes"]):
                return httpx.Response(409, json={"error": "Node exists"})
            self.state["nodes"].append(body)
            return httpx.Response(201, json={"ok": True})
        if request.method == "POST" and path == "/links":
            if any(l["id"] == body["id"] for l in self.state["links"]):
                return httpx.Response(409, json={"error": "Link exists"})
            self.state["links"].append(body)
            return httpx.Response(201, json={"ok": True})
        if request.method == "PATCH" and path.startswith("/nodes/"):
            node_id = unquote(path[len("/nodes/"):])
            for node in self.state["nodes"]:
                if node["id"] == node_id:
                    node["description"] = body.get("description", "")
                    return httpx.Response(200, json={"ok": True})
            return httpx.Response(404, json={"error": "Node not found"})
        return httpx.Response(404, json={"error": "Not found"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def server():
    return FakeMapServer()


@pytest.fixture
def store():
    return GraphStore(rng=random.Random(7))


@pytest.fixture
def make_sync(store):
    """Build a SyncClient bound to ``store`` and a given fake server."""
    def _make(server, api_url=API_URL, origin=None):
        return SyncClient(store, api_url=api_url, api_key=API_KEY, origin=origin, transport=server.transport())
    return _make
