"""
Tests for the persistence API.

Uses FastAPI's TestClient against a JsonFileBackend in a temp directory.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from relmap.api import bearer_token, create_api, is_authorized
from relmap.storage import JsonFileBackend

API_KEY = "secret"
AUTH = {"Authorization": f"Bearer {API_KEY}"}

NODE = {"id": "n1", "label": "One", "group": "team", "x": 10, "y": 20}


@pytest.fixture
def backend(tmp_path):
    instance = JsonFileBackend(tmp_path / "graph.json")
    yield instance
    instance.close()


@pytest.fixture
def api(backend):
    return create_api(backend, API_KEY)


@pytest.fixture
def client(api):
    return TestClient(api)


def test_bearer_token_parsing():
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("bearer   abc ") == "abc"
    assert bearer_token("Basic abc") is None
    assert bearer_token("Bearer ") is None
    assert bearer_token(None) is None
    assert is_authorized("Bearer secret", "secret")
    assert not is_authorized("Bearer secreT", "secret")


class TestAuth:

    @pytest.mark.parametrize("headers", [
        {},
        {"Authorization": "Bearer wrong"},
        {"Authorization": f"Basic {API_KEY}"},
        {"Authorization": API_KEY},
    ])
    def test_rejected_without_valid_bearer(self, client, headers):
        response = client.get("/map", headers=headers)
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_rejected_writes_do_not_touch_store(self, client, backend):
        response = client.post("/nodes", json=NODE)
        assert response.status_code == 401
        assert backend.get_graph()["nodes"] == []

    def test_preflight_needs_no_credential(self, client):
        response = client.options("/nodes", headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Authorization, Content-Type",
        })
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert "PATCH" in response.headers["access-control-allow-methods"]

    def test_bare_options_is_ok(self, client):
        assert client.options("/map").status_code == 200

    def test_cors_headers_on_errors(self, client):
        response = client.get("/map", headers={"Origin": "http://localhost:5173"})
        assert response.status_code == 401
        assert response.headers["access-control-allow-origin"] == "*"


class TestNodes:

    def test_create_then_read(self, client):
        response = client.post("/nodes", json=NODE, headers=AUTH)
        assert response.status_code == 201
        assert response.json() == {"ok": True, "id": "n1"}

        graph = client.get("/map", headers=AUTH).json()
        assert [n["id"] for n in graph["nodes"]] == ["n1"]
        assert graph["nodes"][0]["x"] == 10

    def test_duplicate_is_conflict(self, client):
        client.post("/nodes", json=NODE, headers=AUTH)
        response = client.post("/nodes", json={**NODE, "label": "Again"}, headers=AUTH)
        assert response.status_code == 409
        assert response.json() == {"error": "Node already exists: n1"}
        assert client.get("/map", headers=AUTH).json()["nodes"][0]["label"] == "One"

    def test_missing_fields(self, client):
        response = client.post("/nodes", json={"id": "n1", "label": "One"}, headers=AUTH)
        assert response.status_code == 400
        assert response.json() == {"error": "id, label, group, x, y required"}

    def test_invalid_json(self, client):
        response = client.post("/nodes", content="{broken", headers={**AUTH, "Content-Type": "application/json"})
        assert response.status_code == 400
        assert "error" in response.json()

    def test_empty_body(self, client):
        response = client.post("/nodes", headers=AUTH)
        assert response.status_code == 400

    def test_concurrent_duplicate_posts(self, api):
        def post(_):
            with TestClient(api) as local:
                return local.post("/nodes", json=NODE, headers=AUTH).status_code

        with ThreadPoolExecutor(max_workers=4) as pool:
            statuses = sorted(pool.map(post, range(4)))

        assert statuses == [201, 409, 409, 409]


class TestLinks:

    def test_create_folds_legacy_type(self, client):
        response = client.post("/links", json={"id": "e1", "source": "a", "target": "b", "type": "curved"},
                               headers=AUTH)
        assert response.status_code == 201
        assert client.get("/map", headers=AUTH).json()["links"] == [
            {"id": "e1", "source": "a", "target": "b", "type": "mixed"},
        ]

    def test_type_defaults_to_solid(self, client):
        client.post("/links", json={"id": "e1", "source": "a", "target": "b"}, headers=AUTH)
        assert client.get("/map", headers=AUTH).json()["links"][0]["type"] == "solid"

    def test_missing_fields(self, client):
        response = client.post("/links", json={"id": "e1"}, headers=AUTH)
        assert response.status_code == 400
        assert response.json() == {"error": "id, source, target required"}

    def test_duplicate_is_conflict(self, client):
        link = {"id": "e1", "source": "a", "target": "b"}
        client.post("/links", json=link, headers=AUTH)
        assert client.post("/links", json=link, headers=AUTH).status_code == 409


class TestNotes:

    def test_update_note(self, client):
        client.post("/nodes", json=NODE, headers=AUTH)
        response = client.patch("/nodes/n1", json={"description": "likes ice"}, headers=AUTH)
        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert client.get("/map", headers=AUTH).json()["nodes"][0]["description"] == "likes ice"

    def test_missing_node_is_not_found(self, client):
        response = client.patch("/nodes/ghost", json={"description": "x"}, headers=AUTH)
        assert response.status_code == 404
        assert response.json() == {"error": "Node not found: ghost"}
        assert client.get("/map", headers=AUTH).json()["nodes"] == []

    def test_non_string_description(self, client):
        client.post("/nodes", json=NODE, headers=AUTH)
        response = client.patch("/nodes/n1", json={"description": 3}, headers=AUTH)
        assert response.status_code == 400


def test_health_reports_backend(client):
    client.post("/nodes", json=NODE, headers=AUTH)
    assert client.get("/health", headers=AUTH).json() == {
        "ok": True, "backend": "json", "groups": 0, "nodes": 1, "links": 0,
    }
