"""
Shared pytest fixtures for rulecell tests.

This module provides:
- Fresh settings and a deterministic id generator per test
- An in-memory "remote" served through httpx.MockTransport
- ``StubTable``, a minimal decision table implementing ``RuleTable``

Usage:
    def test_something(engine, remote):
        remote["http://rules.test/rates.py"] = b"return 1"
        ...
"""

from __future__ import annotations

import sys
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import httpx
import pytest

# Ensure rulecell package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from rulecell.cache import CompiledUnitCache
from rulecell.compiler import ExpressionCompiler
from rulecell.context import ExecutionContext
from rulecell.engine import RuleEngine
from rulecell.fetcher import ContentFetcher
from rulecell.ids import UniqueIdGenerator
from rulecell.models import CellContent
from rulecell.settings import RuleCellSettings, get_settings


# =============================================================================
# Test Markers Configuration
# =============================================================================

_INTEGRATION_MODULES = {"test_engine.py", "test_cli_commands.py"}


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests: end-to-end modules are integration, the rest unit."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if markers.intersection({"unit", "integration"}):
            continue
        if Path(str(item.fspath)).name in _INTEGRATION_MODULES:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Decision Table Stub
# =============================================================================


class StubTable:
    """A decision table with one axis (or a single cell when ``axis`` is None).

    Cells are rule text or ``CellContent``; every table registers itself in
    ``registry`` so rules can reach siblings by name.
    """

    def __init__(
        self,
        name: str,
        engine: RuleEngine,
        cells: Mapping[str, str | CellContent],
        *,
        axis: str | None = None,
        version: str = "1.0.0",
        registry: dict[str, StubTable] | None = None,
    ):
        self.name = name
        self.version = version
        self._engine = engine
        self._cells = dict(cells)
        self._axis = axis
        self._registry = registry if registry is not None else {}
        self._registry[name] = self

    def cell_at(self, coordinate: Mapping[str, Any]) -> tuple[str, CellContent]:
        key = str(coordinate[self._axis]) if self._axis else "*"
        cell = self._cells[key]
        return key, cell if isinstance(cell, CellContent) else CellContent(cell)

    def evaluate(self, context: ExecutionContext) -> Any:
        key, cell = self.cell_at(context.input)
        source = self._engine.source_for(cell, self, cell_id=key)
        return self._engine.run(source, context)

    def get_table(self, name: str) -> StubTable:
        return self._registry[name]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_settings() -> Iterator[None]:
    """Settings are read per test, never from a previous test's cache."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> RuleCellSettings:
    return RuleCellSettings()


@pytest.fixture
def id_generator() -> UniqueIdGenerator:
    return UniqueIdGenerator(start=1)


@pytest.fixture
def compiler(settings: RuleCellSettings, id_generator: UniqueIdGenerator) -> ExpressionCompiler:
    return ExpressionCompiler(settings, id_generator)


@pytest.fixture
def cache() -> CompiledUnitCache:
    return CompiledUnitCache()


@pytest.fixture
def remote() -> dict[str, bytes]:
    """URL → body served by ``transport``; anything else is a 404."""
    return {}


@pytest.fixture
def transport(remote: dict[str, bytes]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        body = remote.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, content=body)

    return httpx.MockTransport(handler)


@pytest.fixture
def fetcher(settings: RuleCellSettings, transport: httpx.MockTransport) -> Iterator[ContentFetcher]:
    with ContentFetcher(settings, transport=transport) as client:
        yield client


@pytest.fixture
def engine(
    settings: RuleCellSettings,
    compiler: ExpressionCompiler,
    cache: CompiledUnitCache,
    fetcher: ContentFetcher,
) -> RuleEngine:
    return RuleEngine(settings, compiler=compiler, cache=cache, fetcher=fetcher)


@pytest.fixture
def registry() -> dict[str, StubTable]:
    return {}
