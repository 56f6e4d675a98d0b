import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from relmap.storage.mutation_queue import MutationQueue, QueueClosedError


@pytest.fixture
def mq():
    queue = MutationQueue(name="test-mutations")
    yield queue
    queue.close(timeout=5)


def test_run_returns_result(mq):
    assert mq.run(lambda: 41 + 1, timeout=5) == 42


def test_mutators_run_in_submission_order(mq):
    seen = []
    futures = [mq.submit(lambda i=i: seen.append(i)) for i in range(50)]
    for future in futures:
        future.result(timeout=5)
    assert seen == list(range(50))


def test_failure_only_fails_its_own_future(mq):
    def boom():
        raise ValueError("bad mutator")

    failed = mq.submit(boom)
    ok = mq.submit(lambda: "fine")

    with pytest.raises(ValueError):
        failed.result(timeout=5)
    assert ok.result(timeout=5) == "fine"
    with pytest.raises(ValueError):
        mq.run(boom, timeout=5)


def test_mutators_never_overlap(mq):
    state = {"value": 0, "active": 0, "overlap": False}
    lock = threading.Lock()

    def increment():
        with lock:
            state["active"] += 1
            state["overlap"] = state["overlap"] or state["active"] > 1
        current = state["value"]
        state["value"] = current + 1
        with lock:
            state["active"] -= 1

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: mq.run(increment, timeout=5), range(200)))

    assert state["value"] == 200
    assert state["overlap"] is False


def test_close_drains_then_rejects():
    queue = MutationQueue()
    seen = []
    queue.submit(lambda: seen.append("queued"))
    queue.close(timeout=5)

    assert seen == ["queued"]
    assert queue.is_closed
    with pytest.raises(QueueClosedError):
        queue.submit(lambda: None)
    queue.close()
