from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from threading import Condition, Lock


class _ReadWriteLock:
    """Many concurrent readers or a single writer."""

    def __init__(self) -> None:
        self._cond = Condition(Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class HitCounter:
    """A single monotonically increasing counter."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._value = 0

    def add(self, delta: int = 1) -> int:
        with self._lock:
            self._value += delta
            return self._value

    @property
    def value(self) -> int:
        return self._value


class CounterTable:
    """Thread-safe, per-instance hit counters keyed by sanitized URL.

    Counters are created on first use and never removed.
    """

    def __init__(self) -> None:
        self._lock = _ReadWriteLock()
        self._counters: dict[str, HitCounter] = {}

    def _counter_for(self, key: str) -> HitCounter:
        with self._lock.read():
            counter = self._counters.get(key)
        if counter is not None:
            return counter

        with self._lock.write():
            # Another caller may have created it between the two locks.
            return self._counters.setdefault(key, HitCounter())

    def increment(self, key: str, delta: int = 1) -> int:
        return self._counter_for(key).add(delta)

    def get(self, key: str) -> int | None:
        with self._lock.read():
            counter = self._counters.get(key)
        return None if counter is None else counter.value

    def snapshot(self) -> dict[str, int]:
        with self._lock.read():
            return {key: counter.value for key, counter in self._counters.items()}

    def __contains__(self, key: object) -> bool:
        with self._lock.read():
            return key in self._counters

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._counters)
