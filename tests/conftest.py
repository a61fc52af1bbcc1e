"""Shared test fixtures for fleetd tests."""

import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from rich.console import Console

from fleetd.daemon import Channel


@pytest.fixture
def console() -> Console:
    return Console(
        width=70,
        force_terminal=True,
        highlight=False,
        color_system=None,
        legacy_windows=False,
    )


@pytest.fixture
def channel_pair() -> Iterator[tuple[Channel, Channel]]:
    """Create a connected (reader, writer) pair, closed after the test."""
    reader, writer = Channel.pipe()
    try:
        yield reader, writer
    finally:
        reader.close()
        writer.close()


@pytest.fixture(autouse=True)
def _clean_fleetd_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the caller's FLEETD_* variables out of every test."""
    for key in list(os.environ):
        if key.startswith("FLEETD_"):
            monkeypatch.delenv(key)


_MARKERS = {
    "unit": pytest.mark.unit,
    "properties": pytest.mark.property,
    "integration": pytest.mark.integration,
}


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    root = Path(__file__).parent
    for item in items:
        suite = Path(item.path).relative_to(root).parts[0]
        if suite in _MARKERS:
            item.add_marker(_MARKERS[suite])
