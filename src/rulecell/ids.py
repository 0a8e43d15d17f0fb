"""Process-scoped unique id generation for generated rule units.

Generated class names must never collide while the process lives, even when
two threads compile rules for the same table at the same moment. The
generator is plain state with a lock; the compiler receives one by
injection, and ``default_id_generator()`` is the shared process-wide
instance (created on first use, monotonic for the process lifetime, never
persisted).
"""

from __future__ import annotations

import threading


class UniqueIdGenerator:
    """A monotonically increasing, thread-safe id source."""

    def __init__(self, start: int = 1):
        self._next = start
        self._lock = threading.Lock()

    def next_id(self) -> int:
        """Return the next id; never returns the same value twice."""
        with self._lock:
            value = self._next
            self._next += 1
            return value


_default: UniqueIdGenerator | None = None
_default_lock = threading.Lock()


def default_id_generator() -> UniqueIdGenerator:
    """Process-wide generator shared by compilers created without one."""
    global _default
    with _default_lock:
        if _default is None:
            _default = UniqueIdGenerator()
        return _default


__all__ = ["UniqueIdGenerator", "default_id_generator"]
