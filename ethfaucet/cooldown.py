import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from .utils import now_ts


class ReadWriteLock:
    """Many concurrent readers or a single writer. Waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class CooldownTable:
    """Last successful disbursement time per recipient address.

    Keys are lower-cased so checksummed and plain spellings of one address
    share a cooldown. Nothing here is persisted.
    """

    def __init__(self, cooldown: float, clock: Callable[[], float] = now_ts) -> None:
        if cooldown <= 0:
            raise ValueError("cooldown must be > 0")
        self.cooldown = cooldown
        self.clock = clock
        self._used: Dict[str, float] = {}
        self._lock = ReadWriteLock()

    @staticmethod
    def _key(address: str) -> str:
        return address.lower()

    def last_used(self, address: str) -> Optional[float]:
        with self._lock.read_locked():
            return self._used.get(self._key(address))

    def remaining(self, address: str, now: Optional[float] = None) -> float:
        """Seconds until ``address`` may be served again, 0 if it may be served now."""
        last = self.last_used(address)
        if last is None:
            return 0.0
        if now is None:
            now = self.clock()
        elapsed = now - last
        if elapsed >= self.cooldown:
            return 0.0
        return self.cooldown - elapsed

    def record(self, address: str, now: Optional[float] = None) -> float:
        if now is None:
            now = self.clock()
        with self._lock.write_locked():
            self._used[self._key(address)] = now
        return now

    def prune(self, factor: float, now: Optional[float] = None) -> int:
        """Drop entries older than ``factor`` cooldowns. ``factor`` below 1 is a no-op."""
        if factor < 1:
            return 0
        if now is None:
            now = self.clock()
        horizon = factor * self.cooldown
        with self._lock.write_locked():
            stale = [addr for addr, ts in self._used.items() if now - ts >= horizon]
            for addr in stale:
                del self._used[addr]
        return len(stale)

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._used)

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, str):
            return False
        return self.last_used(address) is not None


class AddressLocks:
    """One mutex per address, dropped again once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, List] = {}

    @contextmanager
    def hold(self, address: str) -> Iterator[None]:
        key = address.lower()
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
