"""Tests for rulecell.cli: command smoke tests via CliRunner.

Rule files live in tmp_path; the fetch command is pointed at an
httpx.MockTransport so no real network is touched.
"""

from __future__ import annotations

import importlib
import json

import httpx
import pytest
import typer
from typer.testing import CliRunner

from rulecell.cli.app import app
from rulecell.cli.utils import parse_json_object, parse_pairs
from rulecell.fetcher import ContentFetcher

runner = CliRunner()


@pytest.fixture
def rule_file(tmp_path):
    def write(body: str, name: str = "rule.py"):
        path = tmp_path / name
        path.write_text(body, encoding="utf-8")
        return path

    return write


@pytest.fixture
def mock_remote(monkeypatch):
    """Route the fetch command through a MockTransport serving ``served``."""
    served: dict[str, bytes] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        body = served.get(str(request.url))
        return httpx.Response(200, content=body) if body is not None else httpx.Response(404)

    def make_fetcher(settings=None):
        return ContentFetcher(settings, transport=httpx.MockTransport(handler))

    # the package re-exports the Typer object under the submodule's name
    cli_module = importlib.import_module("rulecell.cli.app")
    monkeypatch.setattr(cli_module, "ContentFetcher", make_fetcher)
    return served


# ─── Root ────────────────────────────────────────────────────────────────


class TestRoot:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.startswith("rulecell ")

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("convert", "compile", "fetch", "run"):
            assert command in result.output


# ─── convert ─────────────────────────────────────────────────────────────


class TestConvertCommand:
    def test_convert_int(self):
        result = runner.invoke(app, ["convert", " 42 ", "int32"])
        assert result.exit_code == 0
        assert result.output.strip() == "42"

    def test_convert_decimal(self):
        result = runner.invoke(app, ["convert", "10.500", "big_decimal"])
        assert result.exit_code == 0
        assert result.output.strip() == "10.5"

    def test_convert_date(self):
        result = runner.invoke(app, ["convert", "2021-03-04", "date"])
        assert result.exit_code == 0
        assert result.output.strip() == "2021-03-04T00:00:00"

    def test_unparseable_value(self):
        result = runner.invoke(app, ["convert", "abc", "int32"])
        assert result.exit_code == 1
        assert "[builtins.str]" in result.output

    def test_unknown_kind(self):
        result = runner.invoke(app, ["convert", "1", "uuid"])
        assert result.exit_code == 1
        assert "uuid" in result.output


# ─── compile ─────────────────────────────────────────────────────────────


class TestCompileCommand:
    def test_prints_generated_source(self, rule_file):
        path = rule_file("import math\nreturn math.pi")
        result = runner.invoke(app, ["compile", str(path), "--table", "rates"])
        assert result.exit_code == 0
        assert result.output.startswith("import math\n")
        assert "class RuleExprates" in result.output
        assert "def run(self):" in result.output

    def test_check_compiles(self, rule_file):
        path = rule_file("input['x'] + 1")
        result = runner.invoke(app, ["compile", str(path), "--check"])
        assert result.exit_code == 0
        assert "class RuleExpscript" in result.output

    def test_check_reports_errors(self, rule_file):
        path = rule_file("return (")
        result = runner.invoke(app, ["compile", str(path), "--check"])
        assert result.exit_code == 1
        assert "COMPILE" in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["compile", str(tmp_path / "nope.py")])
        assert result.exit_code == 2


# ─── fetch ───────────────────────────────────────────────────────────────


class TestFetchCommand:
    def test_fetch_to_stdout(self, mock_remote):
        mock_remote["http://rules.test/rule.py"] = b"return 1"
        result = runner.invoke(app, ["fetch", "http://rules.test/rule.py", "--table", "rates"])
        assert result.exit_code == 0
        assert result.output == "return 1"

    def test_fetch_to_file(self, mock_remote, tmp_path):
        mock_remote["http://rules.test/logo.png"] = b"\x89PNG"
        target = tmp_path / "logo.png"
        result = runner.invoke(
            app, ["fetch", "http://rules.test/logo.png", "--table", "rates", "-o", str(target)]
        )
        assert result.exit_code == 0
        assert target.read_bytes() == b"\x89PNG"
        assert "Wrote 4 bytes" in result.output

    def test_fetch_failure_message(self, mock_remote):
        result = runner.invoke(
            app,
            ["fetch", "http://www.cedarsoftware.com", "--table", "foo", "--owner-kind", "Table"],
        )
        assert result.exit_code == 1
        assert "Failed to load binary content from URL: http://www.cedarsoftware.com, Table 'foo'" in result.output

    def test_fetch_undecodable_body(self, mock_remote):
        mock_remote["http://rules.test/blob.bin"] = b"\xff\xfe"
        result = runner.invoke(app, ["fetch", "http://rules.test/blob.bin", "--table", "foo"])
        assert result.exit_code == 1
        assert "Failed to load binary content from URL: http://rules.test/blob.bin, NCube 'foo'" in result.output


# ─── run ─────────────────────────────────────────────────────────────────


class TestRunCommand:
    def test_run_with_pairs(self, rule_file):
        path = rule_file("output['doubled'] = True\nreturn int(input['amount']) * 2")
        result = runner.invoke(app, ["run", str(path), "-i", "amount=21"])
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"value": 42, "output": {"doubled": True}}

    def test_run_with_json_input(self, rule_file):
        path = rule_file("input['a'] + input['b']")
        result = runner.invoke(app, ["run", str(path), "--json-input", '{"a": 2, "b": 3}'])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["value"] == 5

    def test_pairs_override_json(self, rule_file):
        path = rule_file("input['a']")
        result = runner.invoke(app, ["run", str(path), "--json-input", '{"a": "json"}', "-i", "a=pair"])
        assert json.loads(result.stdout)["value"] == "pair"

    def test_nested_lookup_unavailable(self, rule_file):
        path = rule_file("at({}, 'other')")
        result = runner.invoke(app, ["run", str(path)])
        assert result.exit_code == 1
        assert "CONFIG" in result.output

    def test_bad_pair(self, rule_file):
        path = rule_file("return 1")
        result = runner.invoke(app, ["run", str(path), "-i", "oops"])
        assert result.exit_code == 2

    @pytest.mark.parametrize("payload", ["{not json", "[1]", '"text"'])
    def test_bad_json_input(self, rule_file, payload):
        path = rule_file("return 1")
        result = runner.invoke(app, ["run", str(path), "--json-input", payload])
        assert result.exit_code == 2


class TestParsePairs:
    def test_parse(self):
        assert parse_pairs(["state=OH", "note=a=b"]) == {"state": "OH", "note": "a=b"}

    @pytest.mark.parametrize("pair", ["novalue", "=x"])
    def test_invalid(self, pair):
        with pytest.raises(typer.BadParameter):
            parse_pairs([pair])


class TestParseJsonObject:
    def test_empty(self):
        assert parse_json_object(None) == {}
        assert parse_json_object("") == {}

    def test_object(self):
        assert parse_json_object('{"state": "OH", "n": 2}') == {"state": "OH", "n": 2}

    @pytest.mark.parametrize("text", ["{not json", "[1]", "3"])
    def test_invalid(self, text):
        with pytest.raises(typer.BadParameter):
            parse_json_object(text)
