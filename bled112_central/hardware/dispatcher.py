"""Per-key ordered dispatch of BGAPI events to their handlers.

Every event is routed to the most specific registered key: an exact
(class, event id) match wins over a (class, WILDCARD) match.  Each key has
its own FIFO queue.  When an event arrives on an idle key, a drain task is
submitted to a small shared worker pool and keeps running until the queue is
empty.  Only one drain task per key is ever active so events under the same
key are delivered strictly in arrival order while different keys run in
parallel with no ordering guarantee between them.
"""

from collections import deque
from concurrent.futures import ThreadPoolExecutor
import functools
import logging
import threading

WILDCARD = None


class EventDispatcher:
    """Demultiplex BGAPI events into ordered per-key queues.

    Args:
        max_workers (int): The maximum number of keys that can be drained in
            parallel.
    """

    def __init__(self, max_workers=4):
        self._max_workers = max_workers
        self._handlers = {}
        self._queues = {}
        self._active = set()
        self._lock = threading.Lock()
        self._executor = None
        self._generation = 0
        self._local = threading.local()

        self._logger = logging.getLogger(__name__)
        self._logger.addHandler(logging.NullHandler())

    @property
    def running(self):
        return self._executor is not None

    def register_handler(self, class_id, command_id, handler):
        """Register a handler for one event or, with WILDCARD, a whole class.

        Handlers are kept across stop() and start() so they survive the
        adapter being unplugged and plugged back in.
        """

        key = (class_id, command_id)
        with self._lock:
            self._handlers.setdefault(key, []).append(handler)

    def register_class_handler(self, class_id, handler):
        self.register_handler(class_id, WILDCARD, handler)

    def start(self):
        """Begin dispatching events."""

        with self._lock:
            if self._executor is not None:
                return

            self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="bgapi-event")

    def stop(self):
        """Stop dispatching and discard every queued event.

        Drain tasks that are currently running a handler finish that handler
        and then exit.  If called from inside a handler, this does not wait
        for the pool to shut down.
        """

        with self._lock:
            executor = self._executor
            self._executor = None
            self._generation += 1
            self._queues.clear()
            self._active.clear()

        if executor is None:
            return

        executor.shutdown(wait=not getattr(self._local, 'in_handler', False))

    def dispatch(self, packet) -> bool:
        """Queue an event packet for its handler.

        Returns:
            bool: Whether the event was queued.  Events with no matching
                handler, or received while stopped, are dropped.
        """

        key = self._match(packet.class_, packet.cmd)
        if key is None:
            self._logger.log(5, "Dropping unhandled event class=%d, cmd=%d", packet.class_, packet.cmd)
            return False

        with self._lock:
            if self._executor is None:
                self._logger.debug("Dropping event class=%d, cmd=%d because dispatcher is stopped",
                                   packet.class_, packet.cmd)
                return False

            self._enqueue_locked(key, packet)

        return True

    def call_soon(self, key, func, *args) -> bool:
        """Run func(*args) on the worker pool, ordered with other calls on key.

        Calls share the per-key queues used for events, so calls made under
        the same key run one at a time in the order they were made.  Keys
        must not collide with the (class, event id) keys of registered
        handlers.  This lets an event handler hand user callbacks off to a
        separate queue so the callbacks can wait for later events.

        Returns:
            bool: Whether the call was queued.  Calls made while stopped are
                dropped.
        """

        with self._lock:
            if self._executor is None:
                self._logger.debug("Dropping deferred call on %r because dispatcher is stopped", key)
                return False

            self._enqueue_locked(key, functools.partial(func, *args))

        return True

    def _enqueue_locked(self, key, item):
        self._queues.setdefault(key, deque()).append(item)

        if key in self._active:
            return

        self._active.add(key)
        self._executor.submit(self._drain, key, self._generation)

    def _match(self, class_id, command_id):
        with self._lock:
            if (class_id, command_id) in self._handlers:
                return (class_id, command_id)

            if (class_id, WILDCARD) in self._handlers:
                return (class_id, WILDCARD)

        return None

    def _drain(self, key, generation):
        self._local.in_handler = True

        try:
            while True:
                with self._lock:
                    queue = self._queues.get(key)
                    if generation != self._generation:
                        return

                    if not queue:
                        self._active.discard(key)
                        return

                    event = queue.popleft()
                    handlers = list(self._handlers.get(key, []))

                if isinstance(event, functools.partial):
                    try:
                        event()
                    except Exception:  #pylint:disable=broad-except;Deferred call errors must not stop the queue
                        self._logger.exception("Error in deferred call on %r", key)
                    continue

                for handler in handlers:
                    try:
                        handler(event)
                    except Exception:  #pylint:disable=broad-except;Handler errors must not stop the queue
                        self._logger.exception("Error in event handler for class=%d, cmd=%d", event.class_, event.cmd)
        finally:
            self._local.in_handler = False
