"""
In-flight scan registry: at most one discovery cycle per operator.
"""

import threading
from typing import Set


class InFlightRegistry:
    """Set of operators with a running cycle. Acquire/release are atomic."""

    def __init__(self):
        self._active: Set[str] = set()
        self._lock = threading.Lock()

    def try_acquire(self, operator: str) -> bool:
        with self._lock:
            if operator in self._active:
                return False
            self._active.add(operator)
            return True

    def release(self, operator: str) -> None:
        with self._lock:
            self._active.discard(operator)

    def is_active(self, operator: str) -> bool:
        with self._lock:
            return operator in self._active


_default_registry = InFlightRegistry()


def get_default_registry() -> InFlightRegistry:
    """Process-wide registry shared by discoverers that are not given one."""
    return _default_registry
