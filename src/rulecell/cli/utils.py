"""
CLI utility helpers: output formatting, argument parsing and a one-cell table.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape

from rulecell.context import ExecutionContext
from rulecell.engine import RuleEngine
from rulecell.errors import ConfigError, RuleCellError
from rulecell.models import RuleSource

console = Console()
err_console = Console(stderr=True)


def fail(error: RuleCellError) -> NoReturn:
    """Print a rulecell error and exit with status 1."""
    err_console.print(
        f"[bold red]Error[/bold red] ({error.category.value}): {escape(error.message)}",
        soft_wrap=True,
    )
    raise typer.Exit(code=1)


def parse_pairs(pairs: list[str]) -> dict[str, str]:
    """``["state=OH", "bu=agr"]`` → ``{"state": "OH", "bu": "agr"}``."""
    result: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected key=value, got {pair!r}")
        result[key.strip()] = value
    return result


def parse_json_object(text: str | None) -> dict[str, Any]:
    """Parse a ``--json-input`` value; it must be a JSON object."""
    if not text:
        return {}
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(value, dict):
        raise typer.BadParameter(f"expected a JSON object, got {type(value).__name__}")
    return value


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


class ScriptTable:
    """A table with a single rule cell, for running a rule file on its own.

    Every coordinate selects the same cell; nested lookups into other tables
    are not available.
    """

    def __init__(self, name: str, version: str, body: str, engine: RuleEngine):
        self._name = name
        self._version = version
        self._source = RuleSource(body=body, table_name=name, table_version=version, cell_id="script")
        self._engine = engine

    @property
    def name(self) -> str:
        return self._name

    @property
    def version(self) -> str:
        return self._version

    def evaluate(self, context: ExecutionContext) -> Any:
        return self._engine.run(self._source, context)

    def get_table(self, name: str) -> ScriptTable:
        raise ConfigError(f"Table '{name}' is not available when running a single rule file")

    def evaluate_at(self, coordinate: Mapping[str, Any], output: dict[str, Any]) -> Any:
        return self.evaluate(ExecutionContext.begin(self, coordinate, output=output))
