"""Fixed-capacity, newest-first history buffer."""
import threading
from collections import deque


class BoundedHistory:
    """Thread-safe ring buffer. New items go to the front; once full, the oldest is evicted."""

    def __init__(self, maxlen):
        if maxlen <= 0:
            raise ValueError("maxlen must be positive")
        self._items = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    @property
    def maxlen(self):
        return self._items.maxlen

    def push(self, item):
        with self._lock:
            self._items.appendleft(item)

    def items(self, limit=None):
        """Return a snapshot list, newest first."""
        with self._lock:
            snapshot = list(self._items)
        return snapshot if limit is None else snapshot[:max(0, limit)]

    def find(self, predicate):
        with self._lock:
            for item in self._items:
                if predicate(item):
                    return item
        return None

    def count(self, predicate):
        with self._lock:
            return sum(1 for item in self._items if predicate(item))

    def clear(self):
        with self._lock:
            self._items.clear()

    def __len__(self):
        with self._lock:
            return len(self._items)

    def __iter__(self):
        return iter(self.items())
