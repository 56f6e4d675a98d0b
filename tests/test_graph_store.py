import random

import pytest

from relmap.demo import AVATAR_POOL, DEMO_GRAPH
from relmap.errors import ConflictError, NotFoundError, ValidationError
from relmap.graph_store import AddLink, AddNode, GraphStore, UpdateNote
from relmap.models import Link, LinkType, Node

from tests.conftest import SMALL_GRAPH


@pytest.fixture
def loaded(store):
    store.load(SMALL_GRAPH)
    return store


def new_node(node_id="n2", **kwargs):
    return Node(id=node_id, label=node_id.upper(), group="team", x=10, y=20, **kwargs)


class TestLoading:

    def test_load_demo_graph_focuses_main(self, store):
        store.load(DEMO_GRAPH)
        assert len(store.nodes) == 10
        assert len(store.links) == 9
        assert store.focused_id == "main"

    def test_reconcile_is_idempotent(self, loaded):
        loaded.reconcile(SMALL_GRAPH)
        first = loaded.state.to_dict()
        loaded.reconcile(SMALL_GRAPH)
        assert loaded.state.to_dict() == first

    def test_reconcile_folds_link_types(self, store):
        store.load({"nodes": SMALL_GRAPH["nodes"], "links": [
            {"id": "x", "source": "t1", "target": "main", "type": "dashed"},
        ]})
        assert store.links[0].type is LinkType.TRUST

    def test_focus_cleared_when_node_vanishes(self, loaded):
        loaded.focus("t1")
        loaded.reconcile({"groups": {}, "nodes": [SMALL_GRAPH["nodes"][0]], "links": []})
        assert loaded.focused_id is None

    def test_focus_on_unknown_node_clears_it(self, loaded):
        loaded.focus("ghost")
        assert loaded.focused_id is None

    def test_renderable_links_skip_dangling(self, store):
        store.load({"nodes": SMALL_GRAPH["nodes"], "links": [
            {"id": "ok", "source": "t1", "target": "main"},
            {"id": "dangling", "source": "t1", "target": "gone"},
        ]})
        assert [l.id for l in store.renderable_links()] == ["ok"]
        assert len(store.links) == 2


class TestAvatarStickiness:

    def test_fallback_avatar_survives_reconcile(self):
        store = GraphStore(rng=random.Random(3))
        snapshot = {"nodes": [{"id": "zz", "label": "Z", "group": "g", "x": 0, "y": 0}]}
        store.load(snapshot)
        first = store.get_node("zz").avatar
        assert first in AVATAR_POOL

        for _ in range(5):
            store.reconcile(snapshot)
            assert store.get_node("zz").avatar == first

    def test_explicit_avatar_replaces_and_is_remembered(self, store):
        store.load({"nodes": [{"id": "zz", "label": "Z", "group": "g", "x": 0, "y": 0}]})
        store.reconcile({"nodes": [{"id": "zz", "label": "Z", "group": "g", "x": 0, "y": 0, "avatar": "/me.png"}]})
        assert store.get_node("zz").avatar == "/me.png"

        store.reconcile({"nodes": [{"id": "zz", "label": "Z", "group": "g", "x": 0, "y": 0}]})
        assert store.get_node("zz").avatar == "/me.png"


class TestOptimisticMutations:

    def test_add_node_commit_keeps_node(self, loaded):
        handle = loaded.apply_optimistic(AddNode(new_node()))
        assert loaded.has_node("n2")
        handle.commit({"ok": True})
        assert handle.settled
        assert loaded.has_node("n2")

    def test_add_node_rollback_removes_only_that_node(self, loaded):
        handle = loaded.apply_optimistic(AddNode(new_node()))
        handle.rollback()
        assert [n.id for n in loaded.nodes] == ["main", "t1"]

    def test_settling_twice_is_ignored(self, loaded):
        handle = loaded.apply_optimistic(AddNode(new_node()))
        handle.commit()
        handle.rollback()
        assert loaded.has_node("n2")

    def test_duplicate_node_id_is_rejected(self, loaded):
        before = loaded.state.to_dict()
        with pytest.raises(ConflictError):
            loaded.apply_optimistic(AddNode(new_node("main")))
        assert loaded.state.to_dict() == before

    def test_link_requires_both_endpoints(self, loaded):
        with pytest.raises(ValidationError) as exc:
            loaded.apply_optimistic(AddLink(Link(id="e1", source="main", target="ghost")))
        assert str(exc.value) == "Both source and target ids must exist."
        assert len(loaded.links) == 1

    def test_note_on_missing_node(self, loaded):
        with pytest.raises(NotFoundError):
            loaded.apply_optimistic(UpdateNote("ghost", "hi"))

    def test_rollback_restores_only_the_affected_entity(self, loaded):
        add = loaded.apply_optimistic(AddNode(new_node()))
        note = loaded.apply_optimistic(UpdateNote("t1", "changed"))
        link = loaded.apply_optimistic(AddLink(Link(id="e9", source="n2", target="main")))

        note.rollback()

        assert loaded.get_node("t1").description == ""
        assert loaded.has_node("n2")
        assert any(l.id == "e9" for l in loaded.links)
        add.commit()
        link.commit()

    def test_note_rollback_keeps_concurrent_drag(self, loaded):
        handle = loaded.apply_optimistic(UpdateNote("t1", "draft"))
        loaded.move_node("t1", 15, -5)
        handle.rollback()

        node = loaded.get_node("t1")
        assert node.description == ""
        assert (node.x, node.y) == (215, -5)

    def test_rollback_of_focused_new_node_clears_focus(self, loaded):
        handle = loaded.apply_optimistic(AddNode(new_node()))
        loaded.focus("n2")
        handle.rollback()
        assert loaded.focused_id is None


class TestListeners:

    def test_subscribe_and_unsubscribe(self, store):
        seen = []
        unsubscribe = store.subscribe(lambda s: seen.append(s.version))
        store.load(SMALL_GRAPH)
        assert seen
        unsubscribe()
        count = len(seen)
        store.move_node("main", 1, 1)
        assert len(seen) == count

    def test_failing_listener_does_not_break_store(self, store):
        def broken(_):
            raise RuntimeError("boom")
        store.subscribe(broken)
        store.load(SMALL_GRAPH)
        assert len(store.nodes) == 2

    def test_move_missing_node(self, loaded):
        assert loaded.move_node("ghost", 1, 1) is False
        assert loaded.move_node("main", 1, 2) is True
        assert loaded.nodes_by_id()["main"].x == 1
