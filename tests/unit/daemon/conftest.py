from collections.abc import Callable
from pathlib import Path

import pytest
import structlog
from fakes import FakeProcesses, FakeSignals, FakeSpawner

from fleetd.daemon import EventLoop, Terminator


@pytest.fixture
def signals() -> FakeSignals:
    return FakeSignals()


@pytest.fixture
def processes(signals: FakeSignals) -> FakeProcesses:
    return FakeProcesses(signals)


@pytest.fixture
def spawner(processes: FakeProcesses) -> FakeSpawner:
    return FakeSpawner(processes)


@pytest.fixture
def make_loop(
    signals: FakeSignals, processes: FakeProcesses
) -> Callable[[], EventLoop]:
    return lambda: EventLoop(signal_receiver=signals, reaper=processes.reap)


@pytest.fixture
def terminator(processes: FakeProcesses) -> Terminator:
    return Terminator(kill=processes.kill)


@pytest.fixture
def logger() -> structlog.typing.FilteringBoundLogger:
    return structlog.get_logger()


@pytest.fixture
def runner_path(tmp_path: Path) -> Path:
    """Create an executable stand-in for the service runner."""
    path = tmp_path / "bin" / "fleetd-runner"
    path.parent.mkdir()
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(0o755)
    return path
