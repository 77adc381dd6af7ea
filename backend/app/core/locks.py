"""Process-local locks keyed by row id.

``SELECT ... FOR UPDATE`` is ignored by SQLite, so ledger writes that read a
balance and then write it back are also serialized here, one lock per key.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class KeyedLock:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            yield


_invoice_locks = KeyedLock()


def invoice_lock(invoice_id: int):
    """Serialize balance and status writes for one invoice until commit."""
    return _invoice_locks.hold(invoice_id)
