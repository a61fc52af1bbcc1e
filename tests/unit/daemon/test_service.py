import signal
from collections.abc import Callable
from pathlib import Path

import pytest
import structlog
from fakes import FakeProcesses, FakeSignals, FakeSpawner
from structlog.testing import capture_logs

from fleetd.daemon import (
    Channel,
    ChildExit,
    EventLoop,
    Frame,
    ServiceLauncher,
    ServiceRecord,
    ServiceSupervisor,
    Terminator,
)

LoopFactory = Callable[[], EventLoop]
SupervisorFactory = Callable[..., ServiceSupervisor]


@pytest.fixture
def make_supervisor(
    channel_pair: tuple[Channel, Channel],
    runner_path: Path,
    spawner: FakeSpawner,
    processes: FakeProcesses,
    terminator: Terminator,
    make_loop: LoopFactory,
) -> SupervisorFactory:
    reader, _ = channel_pair

    def _make(runner: str | None = None) -> ServiceSupervisor:
        return ServiceSupervisor(
            reader,
            logger=structlog.get_logger(),
            launcher=ServiceLauncher(
                runner=runner or str(runner_path),
                spawn=spawner,
                environ={"PATH": "/usr/bin"},
            ),
            terminator=terminator,
            loop_factory=make_loop,
            spawn_placeholder=processes.start,
        )

    return _make


@pytest.fixture
def supervisor(make_supervisor: SupervisorFactory) -> ServiceSupervisor:
    return make_supervisor()


@pytest.fixture
def writer(channel_pair: tuple[Channel, Channel]) -> Channel:
    return channel_pair[1]


class TestWake:
    def test_add_spawns_runner_once(
        self,
        supervisor: ServiceSupervisor,
        writer: Channel,
        signals: FakeSignals,
        spawner: FakeSpawner,
        runner_path: Path,
    ) -> None:
        _ = writer.write(b"ADD\tobj-1\t--flag\t\t")
        signals.send(signal.SIGUSR1)

        assert supervisor.run() == 0

        assert len(spawner.calls) == 1
        call = spawner.calls[0]
        assert call.argv == [str(runner_path), "--", "--flag"]
        assert call.env["FLEETD_OBJECT_ID"] == "obj-1"
        assert supervisor.registry.object_ids == frozenset({"obj-1"})

    def test_restore_spawns_runner_with_restore_flag(
        self,
        supervisor: ServiceSupervisor,
        writer: Channel,
        spawner: FakeSpawner,
        runner_path: Path,
    ) -> None:
        _ = writer.write(b"RESTORE\tobj-7\t\t")

        supervisor.handle_wake(signal.SIGUSR1)

        assert spawner.calls[0].argv == [str(runner_path), "--restore", "obj-7"]
        assert "obj-7" in supervisor.registry

    def test_every_queued_frame_runs_on_one_wake(
        self,
        supervisor: ServiceSupervisor,
        writer: Channel,
        spawner: FakeSpawner,
    ) -> None:
        _ = writer.write(b"ADD\ta\t\tADD\tb\t\tRESTORE\tc\t\t")

        supervisor.handle_wake(signal.SIGUSR1)

        assert [call.env["FLEETD_OBJECT_ID"] for call in spawner.calls] == [
            "a",
            "b",
            "c",
        ]

    def test_partial_frame_completes_on_later_wake(
        self,
        supervisor: ServiceSupervisor,
        writer: Channel,
        spawner: FakeSpawner,
    ) -> None:
        _ = writer.write(b"ADD\tob")
        supervisor.handle_wake(signal.SIGUSR1)
        assert spawner.calls == []

        _ = writer.write(b"j\t\t")
        supervisor.handle_wake(signal.SIGUSR1)

        assert [call.env["FLEETD_OBJECT_ID"] for call in spawner.calls] == ["obj"]

    def test_wake_with_nothing_pending(
        self, supervisor: ServiceSupervisor, spawner: FakeSpawner
    ) -> None:
        supervisor.handle_wake(signal.SIGUSR1)

        assert spawner.calls == []

    def test_commands_written_before_start_are_drained(
        self,
        supervisor: ServiceSupervisor,
        writer: Channel,
        spawner: FakeSpawner,
    ) -> None:
        _ = writer.write(b"ADD\tearly\t\t")

        with capture_logs() as logs:
            _ = supervisor.run()

        assert [call.env["FLEETD_OBJECT_ID"] for call in spawner.calls] == ["early"]
        events = [log["event"] for log in logs]
        assert events.index("service_worker_ready") < events.index("service_spawned")

    def test_spawned_pid_is_supervised(
        self,
        supervisor: ServiceSupervisor,
        writer: Channel,
    ) -> None:
        _ = writer.write(b"ADD\tobj-1\t\t")

        supervisor.handle_wake(signal.SIGUSR1)

        record = supervisor.registry.get("obj-1")
        assert record is not None
        assert record.pid in supervisor.loop.pids


class TestCommandErrors:
    def test_duplicate_add_is_rejected(
        self,
        supervisor: ServiceSupervisor,
        writer: Channel,
        spawner: FakeSpawner,
    ) -> None:
        _ = writer.write(b"ADD\tobj-1\t\tADD\tobj-1\t--again\t\t")

        with capture_logs() as logs:
            supervisor.handle_wake(signal.SIGUSR1)

        assert len(spawner.calls) == 1
        failed = [log for log in logs if log["event"] == "command_failed"]
        assert failed[0]["error_type"] == "DuplicateServiceError"

    def test_unknown_command_is_skipped(
        self,
        supervisor: ServiceSupervisor,
        writer: Channel,
        spawner: FakeSpawner,
    ) -> None:
        _ = writer.write(b"PING\tx\t\tADD\tobj-1\t\t")

        with capture_logs() as logs:
            supervisor.handle_wake(signal.SIGUSR1)

        assert len(spawner.calls) == 1
        unknown = [log for log in logs if log["event"] == "unknown_command"]
        assert unknown[0]["word"] == "PING"
        assert unknown[0]["log_level"] == "warning"

    def test_malformed_frame_is_logged(
        self, supervisor: ServiceSupervisor, spawner: FakeSpawner
    ) -> None:
        with capture_logs() as logs:
            supervisor.execute(Frame("RESTORE", ("a", "b")))

        assert spawner.calls == []
        assert logs[0]["event"] == "command_failed"
        assert logs[0]["error_type"] == "ProtocolError"

    def test_missing_runner_is_logged(
        self,
        make_supervisor: SupervisorFactory,
        tmp_path: Path,
        spawner: FakeSpawner,
    ) -> None:
        supervisor = make_supervisor(runner=str(tmp_path / "missing"))

        with capture_logs() as logs:
            supervisor.execute(Frame("ADD", ("obj-1",)))

        assert spawner.calls == []
        assert logs[0]["error_type"] == "RunnerNotFoundError"
        assert len(supervisor.registry) == 0

    def test_closed_channel_is_logged(
        self,
        supervisor: ServiceSupervisor,
        channel_pair: tuple[Channel, Channel],
    ) -> None:
        channel_pair[0].close()

        with capture_logs() as logs:
            supervisor.handle_wake(signal.SIGUSR1)

        assert logs[0]["event"] == "channel_read_failed"


class TestChildExit:
    def test_service_exit_leaves_siblings_alone(
        self,
        supervisor: ServiceSupervisor,
        writer: Channel,
        processes: FakeProcesses,
    ) -> None:
        _ = writer.write(b"ADD\ta\t\tADD\tb\t\t")
        supervisor.handle_wake(signal.SIGUSR1)
        record = supervisor.registry.get("a")
        assert record is not None
        processes.exit(record.pid, 1)

        _ = supervisor.run()

        assert processes.kills == []
        assert supervisor.registry.object_ids == frozenset({"b"})
        assert supervisor.placeholder_pid in supervisor.loop.pids

    def test_registry_tracks_live_services(
        self,
        supervisor: ServiceSupervisor,
        writer: Channel,
        processes: FakeProcesses,
    ) -> None:
        _ = writer.write(b"ADD\ta\t\tADD\tb\t\tADD\tc\t\t")
        supervisor.handle_wake(signal.SIGUSR1)
        for object_id in ("a", "c"):
            record = supervisor.registry.get(object_id)
            assert record is not None
            processes.exit(record.pid)

        _ = supervisor.run()

        live = {pid for pid in processes.running if pid != supervisor.placeholder_pid}
        assert supervisor.registry.pids == frozenset(live)
        assert list(supervisor.registry) == [
            ServiceRecord(object_id="b", pid=next(iter(live)))
        ]

    def test_object_can_be_added_again_after_exit(
        self,
        supervisor: ServiceSupervisor,
        writer: Channel,
        spawner: FakeSpawner,
    ) -> None:
        _ = writer.write(b"ADD\ta\t\t")
        supervisor.handle_wake(signal.SIGUSR1)
        record = supervisor.registry.get("a")
        assert record is not None
        supervisor.handle_child_exit(ChildExit(pid=record.pid, status=0), frozenset())

        _ = writer.write(b"ADD\ta\t\t")
        supervisor.handle_wake(signal.SIGUSR1)

        assert len(spawner.calls) == 2
        assert "a" in supervisor.registry

    def test_unknown_child_is_logged(self, supervisor: ServiceSupervisor) -> None:
        with capture_logs() as logs:
            supervisor.handle_child_exit(ChildExit(pid=4242), frozenset())

        assert logs[0]["event"] == "unknown_child_exited"


class TestTerminate:
    def test_sigterm_requests_termination_of_everything(
        self,
        supervisor: ServiceSupervisor,
        writer: Channel,
        processes: FakeProcesses,
        signals: FakeSignals,
    ) -> None:
        _ = writer.write(b"ADD\ta\t\tADD\tb\t\t")
        supervisor.handle_wake(signal.SIGUSR1)
        service_pids = supervisor.registry.pids
        signals.send(signal.SIGTERM)

        assert supervisor.run() == 0

        assert supervisor.placeholder_pid is not None
        assert sorted(processes.signalled()) == sorted(
            [supervisor.placeholder_pid, *service_pids]
        )
        assert len(supervisor.registry) == 0
        assert supervisor.loop.pids == frozenset()

    def test_channel_closed_after_run(
        self,
        supervisor: ServiceSupervisor,
        channel_pair: tuple[Channel, Channel],
        signals: FakeSignals,
    ) -> None:
        signals.send(signal.SIGTERM)

        _ = supervisor.run()

        assert channel_pair[0].closed
