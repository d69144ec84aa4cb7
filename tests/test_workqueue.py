"""Tests for the work queue and controller loop."""
import threading
import time

from strata.core.workqueue import Controller, WorkQueue
from strata.models.meta import ObjectMeta
from strata.models.node import Node


class TestWorkQueue:
    def test_deduplicates_queued_keys(self):
        queue = WorkQueue()
        queue.add("a")
        queue.add("a")
        queue.add("b")

        assert len(queue) == 2

    def test_key_readded_while_processing_runs_again(self):
        """A key is never handed to two workers, but is not lost either."""
        queue = WorkQueue()
        queue.add("a")

        key = queue.get(timeout=0.1)
        queue.add("a")
        assert len(queue) == 0

        queue.done(key)
        assert queue.get(timeout=0.1) == "a"

    def test_rate_limited_backoff_grows(self):
        queue = WorkQueue(base_delay=10, max_delay=25)

        delays = [queue.add_rate_limited("a") for _ in range(3)]
        queue.shutdown()

        assert delays == [10, 20, 25]
        assert queue.num_requeues("a") == 3

    def test_forget_resets_backoff(self):
        queue = WorkQueue(base_delay=10)
        queue.add_rate_limited("a")
        queue.forget("a")
        queue.shutdown()

        assert queue.num_requeues("a") == 0

    def test_get_returns_none_after_shutdown(self):
        queue = WorkQueue()
        queue.shutdown()

        assert queue.get(timeout=0.1) is None
        queue.add("a")
        assert len(queue) == 0


class TestController:
    def test_run_once_counts_failures(self):
        seen = []

        def reconcile(key):
            seen.append(key)
            if key == "bad":
                raise RuntimeError("boom")

        controller = Controller("test", reconcile, lambda: ["good", "bad"])

        assert controller.run_once() == 1
        assert seen == ["good", "bad"]

    def test_failed_key_is_requeued(self):
        attempts = []

        def reconcile(key):
            attempts.append(key)
            if len(attempts) == 1:
                raise RuntimeError("transient")

        controller = Controller("test", reconcile, lambda: [], queue=WorkQueue(base_delay=0.01))
        controller.enqueue("a")

        controller.process_next(timeout=0.1)
        assert controller.queue.num_requeues("a") == 1

        deadline = time.time() + 2
        while len(attempts) < 2 and time.time() < deadline:
            controller.process_next(timeout=0.1)

        assert attempts == ["a", "a"]
        assert controller.queue.num_requeues("a") == 0

    def test_watch_enqueues_changed_objects(self, store):
        controller = Controller("test", lambda key: None, lambda: [])
        controller.watch(store, Node.kind)

        store.create(Node(metadata=ObjectMeta(name="node-1")))
        store.create(Node(metadata=ObjectMeta(name="node-2", namespace="other")))

        assert len(controller.queue) == 1
        assert controller.queue.get(timeout=0.1) == "node-1"

    def test_watch_limited_to_names(self, store):
        controller = Controller("test", lambda key: None, lambda: [])
        controller.watch(store, Node.kind, names={"node-2"})

        store.create(Node(metadata=ObjectMeta(name="node-1")))
        store.create(Node(metadata=ObjectMeta(name="node-2")))

        assert len(controller.queue) == 1
        assert controller.queue.get(timeout=0.1) == "node-2"

    def test_workers_process_every_key(self):
        done = set()
        lock = threading.Lock()
        finished = threading.Event()

        def reconcile(key):
            with lock:
                done.add(key)
                if len(done) == 5:
                    finished.set()

        keys = [f"k{i}" for i in range(5)]
        controller = Controller("test", reconcile, lambda: keys, workers=3, resync_interval=60)
        controller.start()
        try:
            assert finished.wait(timeout=5)
        finally:
            controller.stop()

        assert done == set(keys)
