import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Tuple

from .errors import SyncInProgress


class UserLocks:
    """Process-local mutex per (service, user) pair.

    Acquisition never blocks: a second caller for the same key gets
    SyncInProgress instead of queueing behind the first run.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[str, int], threading.Lock] = {}

    def _lock_for(self, key: Tuple[str, int]) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, service: str, user_id: int) -> Iterator[None]:
        lock = self._lock_for((service, user_id))
        if not lock.acquire(blocking=False):
            raise SyncInProgress(f"{service} sync already running for user {user_id}")
        try:
            yield
        finally:
            lock.release()

    def is_held(self, service: str, user_id: int) -> bool:
        return self._lock_for((service, user_id)).locked()


user_locks = UserLocks()
