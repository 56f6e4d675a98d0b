import asyncio
import random

import httpx
import pytest

from relmap.actions import MapActions, OFFLINE_MESSAGE, PLACEMENT_JITTER, slug, time_token
from relmap.models import LinkType
from relmap.sync_client import LoadOutcome
from relmap.viewport import ViewportController

from tests.conftest import FakeMapServer


def test_slug():
    assert slug("New Person") == "new_person"
    assert slug("  Dr. Who?! ") == "dr_who"
    assert slug("***") == ""
    assert slug(None) == ""


def test_time_token_is_base36():
    token = time_token()
    assert token and all(c in "0123456789abcdefghijklmnopqrstuvwxyz" for c in token)


class HeldPollServer(FakeMapServer):
    """Snapshots the map when a request arrives and holds the second map request until ``gate`` opens."""

    def __init__(self):
        super().__init__()
        self.gate = None
        self.map_calls = 0

    async def held_handler(self, request):
        response = self.handler(request)
        if request.method == "GET" and request.url.path.endswith("/map"):
            self.map_calls += 1
            if self.map_calls == 2:
                await self.gate.wait()
        return response

    def transport(self):
        return httpx.MockTransport(self.held_handler)


@pytest.fixture
def session(store, make_sync):
    """Run ``steps(actions, server)`` against a freshly loaded store."""
    def _run(steps, server=None):
        server = server or FakeMapServer()

        async def scenario():
            sync = make_sync(server)
            actions = MapActions(store, sync, ViewportController(), rng=random.Random(0))
            await sync.initial_load()
            try:
                return await steps(actions, server)
            finally:
                await sync.close()

        return asyncio.run(scenario()), server
    return _run


class TestAddNode:

    def test_success_persists_and_reloads(self, store, session):
        async def steps(actions, server):
            return await actions.add_node("New Person", "team", "likes ice")

        ok, server = session(steps)
        assert ok is True
        node = store.get_node("new_person")
        assert node is not None
        assert node.description == "likes ice"
        assert abs(node.x - 450) <= PLACEMENT_JITTER / 2
        assert abs(node.y - 350) <= PLACEMENT_JITTER / 2
        assert any(n["id"] == "new_person" for n in server.state["nodes"])

    def test_empty_label_gets_generated_id(self, store, session):
        async def steps(actions, server):
            return await actions.add_node("", "team")

        ok, server = session(steps)
        assert ok is True
        assert server.state["nodes"][-1]["id"].startswith("n_")

    def test_existing_id_is_refused_locally(self, session):
        async def steps(actions, server):
            server.requests.clear()
            ok = await actions.add_node("Main", "team")
            return ok, actions.last_error, list(server.requests)

        (ok, error, requests), _ = session(steps)
        assert ok is False
        assert error == "Node id already exists: main"
        assert requests == []

    def test_server_failure_rolls_back(self, store, session):
        async def steps(actions, server):
            server.fail_with = 500
            ok = await actions.add_node("Ghost", "team")
            return ok, actions.last_error

        (ok, error), _ = session(steps)
        assert ok is False
        assert error == "Failed to save node."
        assert not store.has_node("ghost")
        assert [n.id for n in store.nodes] == ["main", "t1"]

    def test_id_taken_on_server_reports_conflict(self, store, session):
        async def steps(actions, server):
            server.state["nodes"].append({"id": "zed", "label": "Zed", "group": "team", "x": 5, "y": 5})
            ok = await actions.add_node("Zed", "team")
            return ok, actions.last_error

        (ok, error), _ = session(steps)
        assert ok is False
        assert error == "Node already exists: zed"
        assert not store.has_node("zed")

    def test_refresh_replaces_poll_started_before_the_write(self, store, session):
        async def steps(actions, server):
            server.gate = asyncio.Event()
            poll = asyncio.ensure_future(actions.sync.poll())
            while server.map_calls < 2:
                await asyncio.sleep(0)

            ok = await actions.add_node("Zed", "team")
            server.gate.set()
            return ok, await poll

        (ok, poll_outcome), server = session(steps, HeldPollServer())
        assert ok is True
        assert poll_outcome is LoadOutcome.SKIPPED
        assert server.map_calls == 3
        assert any(n["id"] == "zed" for n in server.state["nodes"])
        assert store.has_node("zed")


class TestAddLink:

    def test_success_folds_type(self, store, session):
        async def steps(actions, server):
            return await actions.add_link(" t1 ", "main", "dashed")

        ok, server = session(steps)
        assert ok is True
        assert server.state["links"][-1]["type"] == "trust"
        assert server.state["links"][-1]["id"].startswith("e_")
        assert len(store.links) == 2
        assert store.links[-1].type is LinkType.TRUST

    def test_missing_endpoint(self, session):
        async def steps(actions, server):
            server.requests.clear()
            ok = await actions.add_link("t1", "nobody")
            return ok, actions.last_error, list(server.requests)

        (ok, error, requests), _ = session(steps)
        assert ok is False
        assert error == "Both source and target ids must exist."
        assert requests == []


class TestSaveNote:

    def test_saves_focused_note(self, store, session):
        async def steps(actions, server):
            return await actions.save_note("remember the ice")

        ok, server = session(steps)
        assert ok is True
        assert store.get_node("main").description == "remember the ice"
        assert server.state["nodes"][0]["description"] == "remember the ice"

    def test_without_focus_is_noop(self, store, session):
        async def steps(actions, server):
            store.clear_focus()
            return await actions.save_note("text")

        ok, _ = session(steps)
        assert ok is False

    def test_missing_on_server_rolls_back(self, store, session):
        async def steps(actions, server):
            store.focus("t1")
            server.state["nodes"] = [n for n in server.state["nodes"] if n["id"] != "t1"]
            ok = await actions.save_note("lost")
            return ok, actions.last_error

        (ok, error), _ = session(steps)
        assert ok is False
        assert error == "Node not found: t1"
        assert store.get_node("t1").description == ""


def test_edits_are_refused_while_showing_demo(store, session):
    server = FakeMapServer()
    server.fail_with = 503

    async def steps(actions, srv):
        results = [
            await actions.add_node("Someone", "team"),
            await actions.add_link("t1", "main"),
            await actions.save_note("nope"),
        ]
        return results, actions.last_error

    (results, error), _ = session(steps, server)
    assert results == [False, False, False]
    assert error == OFFLINE_MESSAGE
    assert len(store.nodes) == 10
