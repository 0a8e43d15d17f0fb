"""Base class every generated rule unit extends.

The calling contract is fixed: construct with one ``ExecutionContext``,
call ``run()`` with no arguments, read the return value, then read
``context.output`` for anything the rule wrote on the side.

Inside a rule body the context is available through the names ``input``,
``output``, ``ncube``, ``stack`` and the helper ``at``::

    if input["state"] == "OH":
        output["note"] = "ohio surcharge"
    return at({"bu": input["bu"]}, "surcharges") * 1.045
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from rulecell.context import ExecutionContext, InvocationStack
from rulecell.models import RuleTable


class RuleCell:
    """Fixed run contract for compiled rule units."""

    def __init__(self, context: ExecutionContext):
        self.context = context

    @property
    def input(self) -> Mapping[str, Any]:
        return self.context.input

    @property
    def output(self) -> dict[str, Any]:
        return self.context.output

    @property
    def ncube(self) -> RuleTable:
        return self.context.ncube

    @property
    def stack(self) -> InvocationStack:
        return self.context.stack

    def at(self, coordinate: Mapping[str, Any], table_name: str | None = None) -> Any:
        """Evaluate another cell, in this table or in ``table_name``.

        Errors raised by the nested evaluation propagate unchanged.
        """
        table = self.ncube if table_name is None else self.ncube.get_table(table_name)
        child = self.context.nested(coordinate, table)
        return table.evaluate(child)

    def run(self) -> Any:
        raise NotImplementedError(f"{type(self).__name__} does not implement run()")


__all__ = ["RuleCell"]
