"""Value types shared by the compiler, the cache and the engine.

.. code-block:: text

    CellContent ──(fetch if URL)──► RuleSource ──► CompiledUnitKey
     value, is_inline                body            table_name
                                     table_name      table_version
                                     table_version   fingerprint (sha256 of body)
                                     cell_id

``RuleTable`` is the protocol the excluded lookup engine implements; the
harness only needs its identity, a way to evaluate a cell for a context, and
a way to reach other tables by name.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from rulecell.context import ExecutionContext


def fingerprint(text: str) -> str:
    """SHA-256 hex digest of rule text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CompiledUnitKey:
    """Cache identity of a compiled unit.

    Units are scoped per owning table: the same body in two tables gives two
    keys, because generated class names embed the table name.
    """

    table_name: str
    table_version: str
    fingerprint: str

    @property
    def table(self) -> tuple[str, str]:
        return (self.table_name, self.table_version)

    def __str__(self) -> str:
        return f"{self.table_name}:{self.table_version}:{self.fingerprint[:12]}"


@dataclass(frozen=True)
class RuleSource:
    """Raw rule text plus the identity of the table that owns it."""

    body: str
    table_name: str
    table_version: str
    cell_id: str | None = None

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.body)

    @property
    def key(self) -> CompiledUnitKey:
        return CompiledUnitKey(self.table_name, self.table_version, self.fingerprint)

    @classmethod
    def for_table(cls, body: str, table: RuleTable, cell_id: str | None = None) -> RuleSource:
        return cls(body=body, table_name=table.name, table_version=str(table.version), cell_id=cell_id)


@dataclass(frozen=True)
class CellContent:
    """Content of a table cell as stored in the table definition.

    When ``is_inline`` is false, ``value`` is a URL to fetch the content from.
    ``is_binary`` marks cells whose content is returned as bytes instead of
    being compiled.
    """

    value: str | bytes
    is_inline: bool = True
    is_binary: bool = False

    @classmethod
    def url(cls, url: str, *, binary: bool = False) -> CellContent:
        return cls(value=url, is_inline=False, is_binary=binary)


@runtime_checkable
class RuleTable(Protocol):
    """The decision table that owns a rule cell.

    Implemented by the lookup engine. ``evaluate`` selects the cell for
    ``context.input`` and runs it with ``context``; ``get_table`` resolves
    another table for nested lookups.
    """

    @property
    def name(self) -> str: ...

    @property
    def version(self) -> str: ...

    def evaluate(self, context: ExecutionContext) -> Any: ...

    def get_table(self, name: str) -> RuleTable: ...


__all__ = [
    "CellContent",
    "CompiledUnitKey",
    "RuleSource",
    "RuleTable",
    "fingerprint",
]
