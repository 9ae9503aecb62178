"""Thread-safe log of client operations for linearizability checking."""

from __future__ import annotations

import threading

from distlab.models import Operation


class OpLog:
    """Append-only list of operations shared by concurrent clients."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._operations: list[Operation] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._operations)

    def append(self, op: Operation) -> None:
        """Record one operation."""
        with self._lock:
            self._operations.append(op)

    def read(self) -> list[Operation]:
        """Return a copy of the recorded operations, in order."""
        with self._lock:
            return list(self._operations)