"""
Root Typer application for the rulecell CLI.

Commands:
    convert   Convert a value to a target kind
    compile   Show the source generated for a rule file
    fetch     Fetch remote cell content
    run       Run a rule file against a coordinate
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.syntax import Syntax

from rulecell.cli.utils import ScriptTable, console, fail, parse_json_object, parse_pairs, print_json
from rulecell.compiler import ExpressionCompiler
from rulecell.converter import TargetKind, convert
from rulecell.engine import RuleEngine
from rulecell.errors import RuleCellError
from rulecell.fetcher import ContentFetcher
from rulecell.logging import configure_logging
from rulecell.models import RuleSource
from rulecell.settings import RuleCellSettings

app = typer.Typer(
    name="rulecell",
    help="Compile, cache and run the rule cells of decision tables.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("rulecell")
        except PackageNotFoundError:
            v = "0.1.0"
        typer.echo(f"rulecell {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR."),
) -> None:
    """Try rule cells from the terminal."""
    configure_logging(level=log_level, force=log_level is not None)


def _settings(owner_kind: str | None = None) -> RuleCellSettings:
    settings = RuleCellSettings()
    if owner_kind:
        settings = settings.model_copy(update={"owner_kind_label": owner_kind})
    return settings


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("convert")
def convert_value(
    value: str = typer.Argument(..., help="Value as text."),
    kind: str = typer.Argument(..., help=f"One of: {', '.join(k.value for k in TargetKind)}."),
) -> None:
    """Convert a textual value to a target kind and print it."""
    try:
        result = convert(value, kind)
        typer.echo(convert(result, TargetKind.TEXT))
    except RuleCellError as exc:
        fail(exc)


@app.command("compile")
def compile_rule(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Rule file."),
    table: str = typer.Option("script", "--table", "-t", help="Owning table name."),
    table_version: str = typer.Option("0.0.0", "--table-version", help="Owning table version."),
    check: bool = typer.Option(False, "--check", help="Also compile the generated source."),
    pretty: bool = typer.Option(False, "--pretty", help="Syntax-highlight the output."),
) -> None:
    """Print the Python source generated for a rule file."""
    source = RuleSource(body=path.read_text(encoding="utf-8"), table_name=table, table_version=table_version)
    compiler = ExpressionCompiler(_settings())
    try:
        if check:
            text = compiler.compile(source).generated_source
        else:
            text = compiler.synthesize(source).source_text
    except RuleCellError as exc:
        fail(exc)

    if pretty:
        console.print(Syntax(text, "python", line_numbers=True))
    else:
        typer.echo(text)


@app.command("fetch")
def fetch_content(
    url: str = typer.Argument(..., help="URL of the cell content."),
    table: str = typer.Option(..., "--table", "-t", help="Owning table name."),
    table_version: str = typer.Option("0.0.0", "--table-version", help="Owning table version."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write bytes to this file."),
    owner_kind: str | None = typer.Option(None, "--owner-kind", help="Owner label used in errors."),
) -> None:
    """Fetch cell content from a URL."""
    with ContentFetcher(_settings(owner_kind)) as fetcher:
        try:
            if output is not None:
                data = fetcher.fetch(url, table, table_version)
            else:
                text = fetcher.fetch_text(url, table, table_version)
        except RuleCellError as exc:
            fail(exc)

    if output is not None:
        output.write_bytes(data)
        typer.echo(f"Wrote {len(data)} bytes to {output}")
    else:
        typer.echo(text, nl=False)


@app.command("run")
def run_rule(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Rule file."),
    table: str = typer.Option("script", "--table", "-t", help="Owning table name."),
    table_version: str = typer.Option("0.0.0", "--table-version", help="Owning table version."),
    inputs: list[str] = typer.Option([], "--input", "-i", help="Coordinate entry key=value."),
    json_input: str | None = typer.Option(None, "--json-input", help="Coordinate as a JSON object."),
) -> None:
    """Run a rule file and print its value and output map as JSON."""
    coordinate = parse_json_object(json_input)
    coordinate.update(parse_pairs(inputs))

    with RuleEngine(_settings()) as engine:
        script = ScriptTable(table, table_version, path.read_text(encoding="utf-8"), engine)
        output: dict = {}
        try:
            value = script.evaluate_at(coordinate, output)
        except RuleCellError as exc:
            fail(exc)

    print_json({"value": value, "output": output})
