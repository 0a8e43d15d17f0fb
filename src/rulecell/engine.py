"""Rule engine facade.

``RuleEngine`` is what the table lookup layer talks to once it has picked a
cell. It follows one fixed order for every evaluation:

.. code-block:: text

    execute(cell, table, coordinate)
        │
        ├── 1. source_for()   URL cell → ContentFetcher.fetch_text()
        │                     (no cache lock held during the network call)
        ├── 2. unit_for()     CompiledUnitCache.get_or_compile(
        │                         source, ExpressionCompiler.compile)
        ├── 3. context        ExecutionContext.begin(table, coordinate,
        │                         output, stack)
        └── 4. invoke         unit.invoke(context) → cell value
                              context.output     → side results

Errors from any step propagate unchanged; they are logged on the way out,
never swallowed.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from rulecell.cache import CompiledUnitCache
from rulecell.compiler import CompiledUnit, ExpressionCompiler
from rulecell.context import ExecutionContext, InvocationStack
from rulecell.converter import TargetKind, convert
from rulecell.errors import RuleCellError
from rulecell.fetcher import ContentFetcher
from rulecell.logging import LogContext, get_logger
from rulecell.models import CellContent, RuleSource, RuleTable
from rulecell.settings import RuleCellSettings, get_settings

logger = get_logger(__name__)


class RuleEngine:
    """Fetches, compiles (once) and runs rule cells.

    Args:
        settings: Shared settings; defaults to the process settings
        compiler: Expression compiler (built from settings when omitted)
        cache: Compiled unit cache (a private one when omitted)
        fetcher: Content fetcher (built from settings when omitted)
    """

    def __init__(
        self,
        settings: RuleCellSettings | None = None,
        *,
        compiler: ExpressionCompiler | None = None,
        cache: CompiledUnitCache | None = None,
        fetcher: ContentFetcher | None = None,
    ):
        self.settings = settings or get_settings()
        self.compiler = compiler or ExpressionCompiler(self.settings)
        self.cache = cache if cache is not None else CompiledUnitCache()
        self.fetcher = fetcher or ContentFetcher(self.settings)

    def source_for(self, cell: CellContent, table: RuleTable, cell_id: str | None = None) -> RuleSource:
        """Rule source for a cell, fetching it first when the cell is a URL."""
        if cell.is_inline:
            body = cell.value.decode("utf-8") if isinstance(cell.value, bytes) else cell.value
        else:
            body = self.fetcher.fetch_text(str(cell.value), table.name, str(table.version))
        return RuleSource.for_table(body, table, cell_id)

    def unit_for(self, rule_source: RuleSource) -> CompiledUnit:
        """Compiled unit for ``rule_source``, compiled at most once per key."""
        return self.cache.get_or_compile(rule_source, self.compiler.compile)

    def execute(
        self,
        cell: CellContent,
        table: RuleTable,
        coordinate: Mapping[str, Any],
        *,
        output: dict[str, Any] | None = None,
        stack: InvocationStack | None = None,
        cell_id: str | None = None,
    ) -> Any:
        """Evaluate a rule cell and return its value.

        Pass ``output`` to collect what the rule (and every nested rule)
        writes; pass ``stack`` when this call is nested inside another one.
        """
        with LogContext(table_name=table.name, table_version=str(table.version)):
            try:
                source = self.source_for(cell, table, cell_id)
                unit = self.unit_for(source)
                context = ExecutionContext.begin(table, coordinate, output=output, stack=stack)
                return unit.invoke(context)
            except RuleCellError as exc:
                logger.error("cell_evaluation_failed", cell_id=cell_id, **exc.to_dict())
                raise

    def run(self, rule_source: RuleSource, context: ExecutionContext) -> Any:
        """Run already-fetched rule source with a caller-built context."""
        return self.unit_for(rule_source).invoke(context)

    def binary_content(self, cell: CellContent, table: RuleTable) -> bytes:
        """Bytes of a binary cell: inline content verbatim, or fetched from its URL."""
        if not cell.is_inline:
            return self.fetcher.fetch(str(cell.value), table.name, str(table.version))
        if isinstance(cell.value, bytes):
            return cell.value
        return cell.value.encode("utf-8")

    def convert(self, value: Any, target: TargetKind | str) -> Any:
        return convert(value, target)

    def invalidate(self, table_name: str, table_version: str | None = None) -> int:
        """Forget every compiled unit of a redefined or retired table."""
        return self.cache.invalidate(table_name, table_version)

    def close(self) -> None:
        self.fetcher.close()

    def __enter__(self) -> RuleEngine:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


__all__ = ["RuleEngine"]
