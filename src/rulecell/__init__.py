"""
rulecell - rule-cell harness for multidimensional decision tables.

Cells of a decision table may hold small rule programs instead of plain
values. rulecell compiles such a rule into a uniquely named unit, caches it
per owning table, runs it against a per-invocation context, fetches cell
content stored behind a URL, and converts loosely-typed values into
strongly-typed ones.

Usage:
    from rulecell import CellContent, RuleEngine

    with RuleEngine() as engine:
        value = engine.execute(CellContent("input['amount'] * 1.045"), table, {"amount": 100})
"""

__version__ = "0.1.0"

from rulecell.cache import CompiledUnitCache
from rulecell.cell import RuleCell
from rulecell.compiler import CompiledUnit, ExpressionCompiler, ParsedSource, parse_source
from rulecell.context import ExecutionContext, InvocationStack, StackFrame
from rulecell.converter import TargetKind, ValueShape, convert
from rulecell.engine import RuleEngine
from rulecell.errors import (
    CompilationError,
    ConfigError,
    ContentFetchError,
    ConversionError,
    ErrorCategory,
    ErrorContext,
    RuleCellError,
    UnsupportedConversionError,
    UnsupportedTargetError,
    is_retryable,
)
from rulecell.fetcher import ContentFetcher, FetchedContent
from rulecell.ids import UniqueIdGenerator
from rulecell.models import CellContent, CompiledUnitKey, RuleSource, RuleTable
from rulecell.settings import RuleCellSettings, get_settings

__all__ = [
    # Engine
    "RuleEngine",
    # Compilation
    "CompiledUnit",
    "CompiledUnitCache",
    "ExpressionCompiler",
    "ParsedSource",
    "RuleCell",
    "UniqueIdGenerator",
    "parse_source",
    # Context
    "ExecutionContext",
    "InvocationStack",
    "StackFrame",
    # Model
    "CellContent",
    "CompiledUnitKey",
    "RuleSource",
    "RuleTable",
    # Conversion
    "TargetKind",
    "ValueShape",
    "convert",
    # Fetching
    "ContentFetcher",
    "FetchedContent",
    # Errors
    "CompilationError",
    "ConfigError",
    "ContentFetchError",
    "ConversionError",
    "ErrorCategory",
    "ErrorContext",
    "RuleCellError",
    "UnsupportedConversionError",
    "UnsupportedTargetError",
    "is_retryable",
    # Settings
    "RuleCellSettings",
    "get_settings",
]
