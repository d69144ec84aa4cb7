"""Work queue and worker pool that drive the reconcile functions.

A key is handed to at most one worker at a time. Adding a key that is
already being processed marks it dirty so it is picked up again once the
current worker calls done().
"""
import threading
from collections import deque
from itertools import islice
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set

from strata.core.logger import get_logger
from strata.core.retry import backoff_delays

logger = get_logger(__name__)


class WorkQueue:
    """De-duplicating FIFO of object keys with per-key retry backoff."""

    def __init__(self, base_delay: float = 0.5, max_delay: float = 300.0):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._cond = threading.Condition()
        self._queue: Deque[str] = deque()
        self._dirty: Set[str] = set()
        self._processing: Set[str] = set()
        self._failures: Dict[str, int] = {}
        self._timers: List[threading.Timer] = []
        self._shutting_down = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def add(self, key: str) -> None:
        with self._cond:
            if self._shutting_down or key in self._dirty:
                return
            self._dirty.add(key)
            if key in self._processing:
                return
            self._queue.append(key)
            self._cond.notify()

    def add_after(self, key: str, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return
        timer = threading.Timer(delay, self.add, args=(key,))
        timer.daemon = True
        with self._cond:
            if self._shutting_down:
                return
            self._timers = [t for t in self._timers if t.is_alive()]
            self._timers.append(timer)
        timer.start()

    def add_rate_limited(self, key: str) -> float:
        """Requeue key after an exponential per-key delay; returns the delay."""
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        delays = backoff_delays(self.base_delay, 2.0, self.max_delay)
        delay = next(islice(delays, failures, None))
        self.add_after(key, delay)
        return delay

    def forget(self, key: str) -> None:
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """Next key, or None on shutdown or timeout."""
        with self._cond:
            if not self._queue and not self._shutting_down:
                self._cond.wait(timeout)
            if not self._queue:
                return None
            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key

    def done(self, key: str) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shutdown(self) -> None:
        with self._cond:
            self._shutting_down = True
            timers, self._timers = self._timers, []
            self._cond.notify_all()
        for timer in timers:
            timer.cancel()

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down


class Controller:
    """Runs one reconcile function over a work queue with a fixed worker pool."""

    def __init__(
        self,
        name: str,
        reconcile: Callable[[str], None],
        list_keys: Callable[[], Iterable[str]],
        workers: int = 2,
        resync_interval: float = 30.0,
        queue: Optional[WorkQueue] = None,
    ):
        self.name = name
        self.reconcile = reconcile
        self.list_keys = list_keys
        self.workers = workers
        self.resync_interval = resync_interval
        self.queue = queue or WorkQueue()
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []

    def enqueue(self, key: str) -> None:
        self.queue.add(key)

    def watch(self, store, kind: str, names: Optional[Set[str]] = None) -> "Controller":
        """Enqueue objects of kind as the store reports them changed.

        With names given, changes to other objects are ignored.
        """
        def on_change(event: str, changed_kind: str, namespace: str, name: str) -> None:
            if changed_kind != kind or namespace != store.namespace:
                return
            if names is None or name in names:
                logger.debug(f"{self.name}: {event} {kind}/{name}")
                self.enqueue(name)

        store.subscribe(on_change)
        return self

    def resync(self) -> None:
        for key in self.list_keys():
            self.queue.add(key)

    def reconcile_key(self, key: str) -> bool:
        """Reconcile one key; returns False when it failed."""
        try:
            self.reconcile(key)
        except Exception as e:
            logger.error(f"{self.name}: failed to sync '{key}': {e}", exc_info=True)
            return False
        return True

    def process_next(self, timeout: Optional[float] = None) -> bool:
        """Handle one queued key; returns False once the queue shuts down."""
        key = self.queue.get(timeout=timeout)
        if key is None:
            return not self.queue.shutting_down
        try:
            if self.reconcile_key(key):
                self.queue.forget(key)
            else:
                delay = self.queue.add_rate_limited(key)
                logger.info(f"{self.name}: requeued '{key}' in {delay:.1f}s")
        finally:
            self.queue.done(key)
        return True

    def run_once(self) -> int:
        """Reconcile every current key once, serially; returns the failure count."""
        failures = 0
        for key in list(self.list_keys()):
            if not self.reconcile_key(key):
                failures += 1
        return failures

    def _worker_loop(self) -> None:
        while not self._stop_event.is_set():
            if not self.process_next(timeout=1.0):
                break

    def _resync_loop(self) -> None:
        while not self._stop_event.wait(self.resync_interval):
            try:
                self.resync()
            except Exception as e:
                logger.error(f"{self.name}: resync failed: {e}", exc_info=True)

    def start(self) -> None:
        if self._threads:
            logger.warning(f"{self.name} controller already running")
            return
        self._stop_event.clear()
        self.resync()
        for i in range(self.workers):
            thread = threading.Thread(
                target=self._worker_loop, name=f"{self.name}-worker-{i}", daemon=True
            )
            thread.start()
            self._threads.append(thread)
        resync_thread = threading.Thread(
            target=self._resync_loop, name=f"{self.name}-resync", daemon=True
        )
        resync_thread.start()
        self._threads.append(resync_thread)
        logger.info(f"{self.name} controller started with {self.workers} workers")

    def stop(self) -> None:
        self._stop_event.set()
        self.queue.shutdown()
        for thread in self._threads:
            thread.join(timeout=5)
        self._threads = []
        logger.info(f"{self.name} controller stopped")
