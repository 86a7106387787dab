import itertools
import logging
import threading

logger = logging.getLogger(__name__)


class Subscription:
    """Handle returned by every ``subscribe`` call.

    The owner releases it with ``cancel()``; the release callback runs once,
    later calls do nothing. Usable as a context manager.
    """

    def __init__(self, release):
        self._release = release
        self._lock = threading.Lock()
        self._active = True

    @property
    def active(self):
        return self._active

    def cancel(self):
        with self._lock:
            if not self._active:
                return False
            self._active = False
        self._release()
        return True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cancel()


class Broadcaster:
    """Fan-out of values to listeners, in subscription order.

    With ``replay=True`` a new listener gets the last published value right
    away (if there is one).
    """

    _NOTHING = object()

    def __init__(self, replay=True):
        self._replay = replay
        self._last = self._NOTHING
        self._listeners = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._listeners)

    def subscribe(self, listener):
        with self._lock:
            key = next(self._ids)
            self._listeners[key] = listener
            last = self._last
        if self._replay and last is not self._NOTHING:
            listener(last)
        return Subscription(lambda: self._remove(key))

    def publish(self, value):
        with self._lock:
            self._last = value
            listeners = list(self._listeners.values())
        for listener in listeners:
            listener(value)

    def _remove(self, key):
        with self._lock:
            self._listeners.pop(key, None)
        logger.debug('Listener %s removed', key)
