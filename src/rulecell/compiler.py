"""
Rule expression compiler.

Turns the free-form rule text stored in a cell into a uniquely named class
that extends ``RuleCell``, compiles it, and hands back a ``CompiledUnit``.

Manifesto:
    A rule author writes only the interesting part::

        import math
        if input["state"] == "OH":
            output["note"] = "surcharge"
        return math.ceil(input["amount"] * 1.045)

    or even a bare expression (its value becomes the cell's value)::

        input["amount"] * 1.045

    The compiler supplies everything else: the imports hoisted to module
    level, the class, the constructor, the entry method and the local names
    a rule body expects.

Architecture:
    ::

        RuleSource.body
            │  parse_source()      unindented import/from lines → declarations
            │                      (first-seen order, exact duplicates dropped)
            │                      everything else → body (order, whitespace kept)
            ▼
        ParsedSource
            │  synthesize()        name = <prefix><SanitizedTable>_<unique id>
            ▼
        SynthesizedUnit.source_text
            │                      import A
            │                      import B
            │
            │                      class RuleExpRates_17(RuleCell):
            │                          def __init__(self, context): ...
            │                          def run(self):
            │                              <prologue>
            │                              <body>
            │  compile() + exec    fresh module namespace
            ▼
        CompiledUnit  (name, unit_class, source, generated_source)

    The compiler never caches; ``CompiledUnitCache`` sits above it.

Guardrails:
    ❌ DON'T: Compile the same RuleSource repeatedly in a hot path
    ✅ DO: Go through CompiledUnitCache.get_or_compile()

    ❌ DON'T: Retry a CompilationError without changing the rule text
    ✅ DO: Surface it to the rule author with the attached body

Tags:
    compiler, code-generation, rules, rulecell

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

import ast
import re
import textwrap
import time
import types
from dataclasses import dataclass
from typing import Any

from rulecell.cell import RuleCell
from rulecell.context import ExecutionContext
from rulecell.errors import CompilationError
from rulecell.ids import UniqueIdGenerator, default_id_generator
from rulecell.logging import get_logger
from rulecell.models import CompiledUnitKey, RuleSource
from rulecell.settings import RuleCellSettings, get_settings

logger = get_logger(__name__)

_DECLARATION = re.compile(r"^(?:import\s+[A-Za-z_]|from\s+[A-Za-z_.][\w.]*\s+import\s+\S)")
_NON_IDENTIFIER = re.compile(r"[^A-Za-z0-9_]")

_BODY_INDENT = " " * 8
_PROLOGUE = "input, output, ncube, stack, at = self.input, self.output, self.ncube, self.stack, self.at"


@dataclass(frozen=True)
class ParsedSource:
    """Rule text split into hoisted declarations and the executable body."""

    declarations: tuple[str, ...]
    body: str


@dataclass(frozen=True)
class SynthesizedUnit:
    """Generated class name and module source, not yet compiled."""

    name: str
    source_text: str
    parsed: ParsedSource


@dataclass(frozen=True)
class CompiledUnit:
    """An invokable rule unit.

    Shared read-only by every evaluation that resolves to the same key;
    each invocation builds its own instance around its own context.
    """

    name: str
    unit_class: type[RuleCell]
    source: RuleSource
    generated_source: str
    declarations: tuple[str, ...] = ()

    @property
    def key(self) -> CompiledUnitKey:
        return self.source.key

    def instantiate(self, context: ExecutionContext) -> RuleCell:
        return self.unit_class(context)

    def invoke(self, context: ExecutionContext) -> Any:
        """Construct the unit around ``context`` and run its entry method."""
        return self.instantiate(context).run()


def is_declaration(line: str) -> bool:
    """True for an unindented ``import x`` / ``from x import y`` line."""
    return bool(_DECLARATION.match(line))


def parse_source(text: str) -> ParsedSource:
    """Split rule text into declarations and body.

    Declarations keep their first-seen order; exact duplicates (after
    trailing whitespace is dropped) appear once. Body lines keep their order
    and their whitespace.
    """
    declarations: dict[str, None] = {}
    body_lines: list[str] = []
    for line in text.splitlines():
        if is_declaration(line):
            declarations.setdefault(line.rstrip(), None)
        else:
            body_lines.append(line)
    return ParsedSource(declarations=tuple(declarations), body="\n".join(body_lines))


def sanitize_name(name: str) -> str:
    """Strip characters that cannot appear in a Python identifier."""
    return _NON_IDENTIFIER.sub("", name)


def _is_expression(code: str) -> bool:
    try:
        ast.parse(code, mode="eval")
    except SyntaxError:
        return False
    return True


def _method_body(body: str) -> str:
    code = textwrap.dedent(body).strip("\n")
    if not code.strip():
        code = "return None"
    elif _is_expression(code):
        code = f"return (\n{code}\n)"
    return textwrap.indent(code, _BODY_INDENT)


class ExpressionCompiler:
    """Synthesizes and compiles rule units.

    Args:
        settings: Naming settings (``unit_name_prefix``); defaults to
            the process settings
        id_generator: Source of unique suffixes; defaults to the process-wide
            generator so names stay unique across compiler instances
    """

    def __init__(
        self,
        settings: RuleCellSettings | None = None,
        id_generator: UniqueIdGenerator | None = None,
    ):
        self._settings = settings or get_settings()
        self._ids = id_generator or default_id_generator()

    def unit_name(self, table_name: str) -> str:
        """Fresh class name for a unit owned by ``table_name``.

        The id always follows the last underscore, so ``a1`` with id 23 and
        ``a12`` with id 3 stay distinct (``..a1_23`` / ``..a12_3``).
        """
        return f"{self._settings.unit_name_prefix}{sanitize_name(table_name)}_{self._ids.next_id()}"

    def synthesize(self, rule_source: RuleSource) -> SynthesizedUnit:
        """Generate module source for ``rule_source`` without compiling it."""
        parsed = parse_source(rule_source.body)
        name = self.unit_name(rule_source.table_name)

        lines = list(parsed.declarations)
        if lines:
            lines.append("")
        lines += [
            "",
            f"class {name}(RuleCell):",
            "    def __init__(self, context):",
            "        super().__init__(context)",
            "",
            "    def run(self):",
            f"{_BODY_INDENT}{_PROLOGUE}",
            _method_body(parsed.body),
            "",
        ]
        return SynthesizedUnit(name=name, source_text="\n".join(lines), parsed=parsed)

    def compile(self, rule_source: RuleSource) -> CompiledUnit:
        """Synthesize, compile and load a unit for ``rule_source``.

        Raises:
            CompilationError: the generated module failed to compile or to load
                (syntax error in the body, unresolvable import, ...)
        """
        started = time.perf_counter()
        unit = self.synthesize(rule_source)
        filename = f"<rule {rule_source.table_name}:{unit.name}>"

        module = types.ModuleType(f"rulecell.generated.{unit.name}")
        module.__dict__["RuleCell"] = RuleCell
        try:
            code = compile(unit.source_text, filename, "exec")
            exec(code, module.__dict__)
        except Exception as exc:
            error = self._failure(rule_source, unit, exc)
            logger.warning("rule_compilation_failed", **error.context.to_dict(), error=str(exc))
            raise error from exc

        compiled = CompiledUnit(
            name=unit.name,
            unit_class=module.__dict__[unit.name],
            source=rule_source,
            generated_source=unit.source_text,
            declarations=unit.parsed.declarations,
        )
        logger.debug(
            "rule_compiled",
            unit=unit.name,
            table_name=rule_source.table_name,
            table_version=rule_source.table_version,
            cell_id=rule_source.cell_id,
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
        )
        return compiled

    @staticmethod
    def _failure(rule_source: RuleSource, unit: SynthesizedUnit, exc: Exception) -> CompilationError:
        if isinstance(exc, SyntaxError) and exc.lineno is not None:
            detail = f"{exc.msg} (line {exc.lineno} of generated source)"
        else:
            detail = f"{type(exc).__name__}: {exc}"
        return CompilationError(
            f"Failed to compile rule for {rule_source.table_name}:{rule_source.table_version}: {detail}",
            rule_body=rule_source.body,
            cause=exc,
        ).with_context(
            table_name=rule_source.table_name,
            table_version=rule_source.table_version,
            cell_id=rule_source.cell_id,
            unit_name=unit.name,
        )


__all__ = [
    "CompiledUnit",
    "ExpressionCompiler",
    "ParsedSource",
    "SynthesizedUnit",
    "is_declaration",
    "parse_source",
    "sanitize_name",
]
