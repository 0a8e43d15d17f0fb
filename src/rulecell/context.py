"""Per-invocation execution context for compiled rule units.

A compiled unit sees the outside world only through its context:

.. code-block:: text

    ExecutionContext
    ├── .input   → read-only view of the coordinate that selected the cell
    ├── .output  → mutable dict, shared with the top-level caller
    ├── .ncube   → owning RuleTable (for nested lookups)
    └── .stack   → InvocationStack, current frame first

Nested lookups never touch the caller's stack. ``nested()`` pushes a frame
onto a *new* stack that shares its tail with the caller's, so concurrent
evaluations and sibling calls cannot observe each other's frames and no
locking is needed::

    caller.stack  = [rates{state:OH}]
    child.stack   = [tax{bu:agr}] → [rates{state:OH}]   (same tail object)

Contexts are created per invocation and never reused. Recursion depth is
not limited here; cycle detection belongs to the lookup engine.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from rulecell.models import RuleTable


@dataclass(frozen=True)
class StackFrame:
    """One active table call: the table's name and the coordinate used."""

    table_name: str
    coordinate: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "coordinate", MappingProxyType(dict(self.coordinate)))

    def to_dict(self) -> dict[str, Any]:
        return {"table": self.table_name, "coordinate": dict(self.coordinate)}

    def __repr__(self) -> str:
        return f"StackFrame({self.table_name!r}, {dict(self.coordinate)!r})"


class InvocationStack:
    """Immutable, prepend-only stack of frames (a cons-list).

    Index 0 is the most recent frame. ``push`` allocates one node and shares
    everything below it.
    """

    __slots__ = ("_head", "_tail", "_size")

    def __init__(self, head: StackFrame | None = None, tail: InvocationStack | None = None):
        self._head = head
        self._tail = tail
        if head is None:
            self._size = 0
        else:
            self._size = 1 + (len(tail) if tail is not None else 0)

    @classmethod
    def empty(cls) -> InvocationStack:
        return cls()

    def push(self, frame: StackFrame) -> InvocationStack:
        return InvocationStack(frame, self if self._head is not None else None)

    @property
    def current(self) -> StackFrame | None:
        return self._head

    @property
    def parent(self) -> InvocationStack:
        """The stack as the caller saw it before this frame was pushed."""
        return self._tail if self._tail is not None else InvocationStack()

    def __len__(self) -> int:
        return self._size

    def __bool__(self) -> bool:
        return self._head is not None

    def __iter__(self) -> Iterator[StackFrame]:
        node: InvocationStack | None = self
        while node is not None and node._head is not None:
            yield node._head
            node = node._tail

    def __getitem__(self, index: int) -> StackFrame:
        if index < 0:
            index += self._size
        if not 0 <= index < self._size:
            raise IndexError("invocation stack index out of range")
        for i, frame in enumerate(self):
            if i == index:
                return frame
        raise IndexError("invocation stack index out of range")

    def table_names(self) -> list[str]:
        return [frame.table_name for frame in self]

    def to_list(self) -> list[dict[str, Any]]:
        return [frame.to_dict() for frame in self]

    def __repr__(self) -> str:
        return f"InvocationStack({list(self)!r})"


@dataclass
class ExecutionContext:
    """The bag handed to a compiled unit's constructor."""

    input: Mapping[str, Any]
    output: dict[str, Any]
    ncube: RuleTable
    stack: InvocationStack = field(default_factory=InvocationStack)

    def __post_init__(self) -> None:
        if not isinstance(self.input, MappingProxyType):
            self.input = MappingProxyType(dict(self.input))

    @classmethod
    def begin(
        cls,
        table: RuleTable,
        coordinate: Mapping[str, Any],
        *,
        output: dict[str, Any] | None = None,
        stack: InvocationStack | None = None,
    ) -> ExecutionContext:
        """Context for calling ``table`` at ``coordinate`` on top of ``stack``."""
        base = stack if stack is not None else InvocationStack()
        return cls(
            input=coordinate,
            output=output if output is not None else {},
            ncube=table,
            stack=base.push(StackFrame(table.name, coordinate)),
        )

    def nested(self, coordinate: Mapping[str, Any], table: RuleTable | None = None) -> ExecutionContext:
        """Child context for a nested lookup (same table unless given).

        The child shares this context's output mapping so writes made by
        nested cells reach the top-level caller.
        """
        return ExecutionContext.begin(
            table if table is not None else self.ncube,
            coordinate,
            output=self.output,
            stack=self.stack,
        )

    @property
    def table_name(self) -> str:
        return self.ncube.name

    @property
    def table_version(self) -> str:
        return str(self.ncube.version)


__all__ = ["ExecutionContext", "InvocationStack", "StackFrame"]
