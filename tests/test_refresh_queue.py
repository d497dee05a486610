import threading

import pytest

from services.refresh_queue import RefreshQueue


@pytest.fixture
def queue():
    refresh_queue = RefreshQueue(workers=1, maxsize=1, submit_timeout=0)
    refresh_queue.start()
    yield refresh_queue
    refresh_queue.stop(drain=False)


def test_runs_submitted_tasks(refresh_queue):
    results = []
    for i in range(10):
        assert refresh_queue.submit(f"task-{i}", results.append, i)

    assert refresh_queue.join(timeout=5)
    assert sorted(results) == list(range(10))
    assert refresh_queue.stats()["processed"] == 10
    assert refresh_queue.stats()["pending"] == 0


def test_failed_task_is_logged_not_retried(refresh_queue, caplog):
    calls = []

    def _fail():
        calls.append(1)
        raise RuntimeError("store unavailable")

    refresh_queue.submit("song_analytics:s1", _fail)
    assert refresh_queue.join(timeout=5)

    assert calls == [1]
    assert refresh_queue.stats()["failed"] == 1
    assert "Refresh task song_analytics:s1 failed" in caplog.text


def test_full_queue_drops_tasks(queue):
    started = threading.Event()
    release = threading.Event()

    def _block():
        started.set()
        release.wait(5)

    assert queue.submit("blocker", _block)
    assert started.wait(5)
    assert queue.submit("queued", lambda: None)
    assert queue.submit("overflow", lambda: None) is False

    release.set()
    assert queue.join(timeout=5)
    stats = queue.stats()
    assert stats["dropped"] == 1
    assert stats["processed"] == 2


def test_submit_before_start_is_rejected():
    refresh_queue = RefreshQueue()
    assert refresh_queue.submit("task", lambda: None) is False
    assert refresh_queue.stats()["dropped"] == 1


def test_stop_drains_pending_tasks():
    refresh_queue = RefreshQueue(workers=1)
    refresh_queue.start()
    results = []
    for i in range(5):
        refresh_queue.submit(f"task-{i}", results.append, i)

    refresh_queue.stop(drain=True, timeout=5)

    assert results == list(range(5))
    assert refresh_queue.running is False
    assert refresh_queue.submit("late", results.append, 99) is False


def test_join_times_out_while_busy(queue):
    release = threading.Event()
    queue.submit("slow", release.wait, 5)

    assert queue.join(timeout=0.1) is False
    release.set()
    assert queue.join(timeout=5)


def test_submit_racing_stop_leaves_nothing_pending(monkeypatch):
    refresh_queue = RefreshQueue(workers=1)
    refresh_queue.start()
    put = refresh_queue._queue.put

    def _stop_then_put(item, timeout=None):
        refresh_queue.stop(drain=False)
        put(item, timeout=timeout)

    monkeypatch.setattr(refresh_queue._queue, "put", _stop_then_put)

    assert refresh_queue.submit("song_analytics:s1", lambda: None) is False
    assert refresh_queue.join(timeout=1)
    stats = refresh_queue.stats()
    assert stats["pending"] == 0
    assert stats["dropped"] == 1
