"""Per-key mutual exclusion for read-modify-write on keyed records"""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List


class KeyedLock:
    """
    Hands out one lock per key. Operations on the same key are serialized,
    different keys never wait on each other. Entries are dropped once no
    thread holds or waits on them, so the registry stays bounded by the
    number of in-flight keys.
    """

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._entries: Dict[Hashable, List] = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._registry_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._entries[key] = entry
            entry[1] += 1

        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._registry_lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._entries)
