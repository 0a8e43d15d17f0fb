"""
CLI layer for rulecell.

Provides a Typer application for trying rule cells from a terminal:
converting values, looking at the source generated for a rule, fetching
remote cell content and running a rule against a coordinate.

Entry point::

    rulecell --help
"""

from rulecell.cli.app import app

__all__ = ["app"]
