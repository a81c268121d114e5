"""Lamport logical clock."""

from __future__ import annotations

import threading


class LamportClock:
    """A process-local Lamport clock.

    ``tick()`` marks a local event (including the one right before a
    message is sent); ``observe()`` merges a peer's advertised value on
    receipt. Both are atomic with respect to each other.
    """

    def __init__(self, initial: int = 0) -> None:
        if initial < 0:
            raise ValueError(f"initial clock value must not be negative, got {initial}")
        self._value = initial
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def tick(self) -> int:
        """Advance for a local event and return the new value."""
        with self._lock:
            self._value += 1
            return self._value

    def observe(self, remote: int) -> int:
        """Merge a received clock value: ``max(local, remote) + 1``."""
        with self._lock:
            self._value = max(self._value, remote, 0) + 1
            return self._value

    def __repr__(self) -> str:
        return f"LamportClock(value={self.value})"
