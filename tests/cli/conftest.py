"""CLI test fixtures."""

import pytest

from willregistry.cli import main, output


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    """Render Rich output wide enough that table cells never wrap."""
    monkeypatch.setattr(output.console, "width", 200)
    monkeypatch.setattr(main.console, "width", 200)
