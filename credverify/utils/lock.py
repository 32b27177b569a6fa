from contextlib import contextmanager
import threading
import zlib


class StripedLock:
    """
    Per-key re-entrant locks backed by a fixed pool of stripes.

    Two keys may share a stripe, but one key
    always maps to the same stripe, so every operation on that key is
    serialized. Memory stays bounded no matter how many keys are seen.
    """

    def __init__(self, stripes: int = 64):
        self._locks = [threading.RLock() for _ in range(max(1, int(stripes)))]

    def _stripe(self, key: str) -> threading.RLock:
        idx = zlib.crc32(str(key).encode("utf-8")) % len(self._locks)
        return self._locks[idx]

    @contextmanager
    def hold(self, key: str):
        lock = self._stripe(key)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
