from collections.abc import Iterator
from pathlib import Path

import pytest
from processes import DaemonProcess, RecordingRunner


@pytest.fixture
def recording_runner(tmp_path: Path) -> RecordingRunner:
    return RecordingRunner.create(tmp_path)


@pytest.fixture
def daemon(tmp_path: Path, recording_runner: RecordingRunner) -> Iterator[DaemonProcess]:
    """Start `python -m fleetd` and tear its process tree down afterwards."""
    process = DaemonProcess.start(tmp_path, recording_runner)
    try:
        yield process
    finally:
        process.stop()
