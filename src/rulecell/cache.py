"""
Compiled unit cache.

Maps ``CompiledUnitKey`` (table name, table version, body fingerprint) to
the ``CompiledUnit`` compiled for it, and guarantees that each key is
compiled at most once no matter how many threads ask for it together.

Manifesto:
    Compiling a rule is expensive and deterministic; evaluating it is cheap
    and happens constantly. The cache makes the first evaluation pay and
    every other one free.

    - **Lock-free hits:** A hit is a single dict read
    - **Single flight:** One compile per key; everyone else waits on it
    - **No negative entries:** A failed compile is retried on the next call
    - **Group eviction:** Redefining a table drops all of its units at once

Architecture:
    ::

        get_or_compile(source, compile_fn)
            │
            ├── _units[key]            hit → return (no lock)
            │
            └── with _lock:
                  ├── _units[key]      hit (raced) → return
                  ├── _inflight[key]   join → wait on the Future
                  └── register Future  lead → compile outside the lock
                                              │
                        success ──────────────┼──► publish unless the table
                                              │    was invalidated meanwhile
                        failure ──────────────┴──► same exception to every
                                                   waiter, nothing stored

Examples:
    >>> cache = CompiledUnitCache()
    >>> unit = cache.get_or_compile(source, compiler.compile)
    >>> cache.get_or_compile(source, compiler.compile) is unit
    True
    >>> cache.invalidate("rates", "1.0.0")
    1

Guardrails:
    ❌ DON'T: Fetch remote cell content inside compile_fn
    ✅ DO: Fetch first, then call get_or_compile with the fetched source

Tags:
    cache, single-flight, concurrency, rulecell

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future

from rulecell.compiler import CompiledUnit
from rulecell.logging import get_logger
from rulecell.models import CompiledUnitKey, RuleSource

logger = get_logger(__name__)

CompileFn = Callable[[RuleSource], CompiledUnit]


class CompiledUnitCache:
    """Thread-safe store of compiled units with at-most-one compile per key."""

    def __init__(self) -> None:
        self._units: dict[CompiledUnitKey, CompiledUnit] = {}
        self._inflight: dict[CompiledUnitKey, Future[CompiledUnit]] = {}
        self._generations: dict[tuple[str, str], int] = {}
        self._lock = threading.Lock()

    def get(self, key: CompiledUnitKey) -> CompiledUnit | None:
        """Cached unit for ``key``, or ``None``."""
        return self._units.get(key)

    def get_or_compile(self, rule_source: RuleSource, compile_fn: CompileFn) -> CompiledUnit:
        """Return the unit for ``rule_source``, compiling it on first use.

        Concurrent callers for the same key block until the single compile
        finishes and all receive the same unit, or the same exception.
        """
        key = rule_source.key
        unit = self._units.get(key)
        if unit is not None:
            return unit

        with self._lock:
            unit = self._units.get(key)
            if unit is not None:
                return unit
            future = self._inflight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._inflight[key] = future
                generation = self._generations.get(key.table, 0)

        if not leader:
            logger.debug("unit_compile_joined", key=str(key))
            return future.result()

        try:
            unit = compile_fn(rule_source)
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(key, None)
                self._prune_generations()
            future.set_exception(exc)
            raise

        with self._lock:
            self._inflight.pop(key, None)
            if self._generations.get(key.table, 0) == generation:
                self._units[key] = unit
            else:
                logger.debug("unit_discarded_after_invalidation", key=str(key), unit=unit.name)
            self._prune_generations()
        future.set_result(unit)
        return unit

    def invalidate(self, table_name: str, table_version: str | None = None) -> int:
        """Evict every unit of a table (one version, or all versions).

        Compiles in flight for the evicted identity still complete for their
        callers but are not stored.

        Returns:
            Number of units evicted
        """
        with self._lock:
            doomed = [
                key for key in self._units
                if key.table_name == table_name
                and (table_version is None or key.table_version == table_version)
            ]
            for key in doomed:
                del self._units[key]

            tables = {
                key.table for key in self._inflight
                if key.table_name == table_name
                and (table_version is None or key.table_version == table_version)
            }
            self._bump(tables)

        if doomed:
            logger.info(
                "units_invalidated",
                table_name=table_name,
                table_version=table_version,
                count=len(doomed),
            )
        return len(doomed)

    def keys(self) -> list[CompiledUnitKey]:
        return list(self._units)

    def clear(self) -> None:
        """Drop every cached unit (in-flight compiles are not published)."""
        with self._lock:
            self._units.clear()
            self._bump({key.table for key in self._inflight})

    def _bump(self, tables: set[tuple[str, str]]) -> None:
        for table in tables:
            self._generations[table] = self._generations.get(table, 0) + 1

    def _prune_generations(self) -> None:
        # only leaders still in flight compare generations; caller holds the lock
        live = {key.table for key in self._inflight}
        self._generations = {table: gen for table, gen in self._generations.items() if table in live}

    def __contains__(self, key: object) -> bool:
        return key in self._units

    def __len__(self) -> int:
        return len(self._units)


__all__ = ["CompiledUnitCache", "CompileFn"]
