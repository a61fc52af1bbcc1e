"""Service worker: supervisor of dynamically spawned service processes.

The service worker reads ADD and RESTORE frames from its channel whenever
it is woken with SIGUSR1, spawns the runner for each command, and keeps a
registry of which object each live pid is serving. A single service dying
is logged and forgotten; it never affects its siblings.
"""

import signal
from collections.abc import Callable, Iterable
from typing import Self, final

from structlog.typing import FilteringBoundLogger

from fleetd.config import DaemonConfig
from fleetd.enums import Role
from fleetd.exceptions import ChannelError, FleetdError

from ._channel import Channel
from ._fork import fork_worker, idle
from ._frames import Frame, FrameDecoder, parse_command
from ._loop import EventLoop
from ._models import (
    AddCommand,
    ChildExit,
    RestoreCommand,
    ServiceRecord,
    UnknownCommand,
    WorkerHandle,
)
from ._registry import ServiceRegistry
from ._runner import ServiceLauncher
from ._terminate import Terminator

WAKE_SIGNAL = signal.SIGUSR1
TERMINATE_SIGNAL = signal.SIGTERM


@final
class ServiceSupervisor:
    """Supervises the placeholder process and every spawned service.

    Attributes:
        registry: Live object id to pid mappings.
    """

    __slots__ = (
        "_channel",
        "_decoder",
        "_launcher",
        "_logger",
        "_loop",
        "_loop_factory",
        "_placeholder_pid",
        "_spawn_placeholder",
        "_terminator",
        "registry",
    )

    def __init__(
        self,
        channel: Channel,
        *,
        logger: FilteringBoundLogger,
        launcher: ServiceLauncher | None = None,
        terminator: Terminator | None = None,
        loop_factory: Callable[[], EventLoop] | None = None,
        spawn_placeholder: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the supervisor.

        Args:
            channel: Read end of the command channel.
            logger: Logger bound to this process.
            launcher: Spawns runner processes.
            terminator: Delivers termination requests.
            loop_factory: Builds the event loop.
            spawn_placeholder: Starts the idle placeholder, returning its pid.
        """
        self._channel = channel
        self._logger = logger
        self._launcher = launcher if launcher is not None else ServiceLauncher()
        self._terminator = (
            terminator if terminator is not None else Terminator(logger=logger)
        )
        self._loop_factory = (
            loop_factory
            if loop_factory is not None
            else lambda: EventLoop(logger=self._logger)
        )
        self._spawn_placeholder = (
            spawn_placeholder if spawn_placeholder is not None else self._fork_placeholder
        )
        self._decoder = FrameDecoder()
        self._loop: EventLoop | None = None
        self._placeholder_pid: int | None = None
        self.registry = ServiceRegistry()

    @classmethod
    def from_config(cls, channel: Channel, config: DaemonConfig) -> Self:
        """Build a supervisor with its own logger and configured runner."""
        return cls(
            channel,
            logger=config.create_logger(Role.SERVICE_WORKER),
            launcher=ServiceLauncher(runner=config.runner),
        )

    @classmethod
    def reexec(
        cls,
        config: DaemonConfig,
        *,
        close: Iterable[Channel] = (),
    ) -> WorkerHandle:
        """Fork the service worker.

        Args:
            config: Daemon configuration for the child.
            close: Other parent-held channels the child must not keep.

        Returns:
            Handle holding the writer end of the command channel.
        """
        reader, writer = Channel.pipe()

        def main() -> int:
            # Commands written before the loop is armed wait in the pipe.
            signal.signal(WAKE_SIGNAL, signal.SIG_IGN)
            return cls.from_config(reader, config).run()

        pid = fork_worker(
            Role.SERVICE_WORKER,
            main,
            close=[writer, *close],
        )
        reader.close()
        return WorkerHandle(pid=pid, role=Role.SERVICE_WORKER, channel=writer)

    @property
    def loop(self) -> EventLoop:
        """Return the event loop, building it on first access."""
        if self._loop is None:
            self._loop = self._build_loop()
        return self._loop

    @property
    def placeholder_pid(self) -> int | None:
        return self._placeholder_pid

    def run(self) -> int:
        """Start the placeholder and serve commands until terminated."""
        self._placeholder_pid = self._spawn_placeholder()
        loop = self.loop
        loop.add_pid(self._placeholder_pid)
        self._logger.info("service_worker_started", placeholder_pid=self._placeholder_pid)

        result = loop.run()

        self._channel.close()
        self._logger.info("service_worker_stopped", reaped=len(result or ()))
        return 0

    def _build_loop(self) -> EventLoop:
        loop = self._loop_factory()
        loop.register_handler(WAKE_SIGNAL, self.handle_wake, restart_on_interrupt=False)
        loop.register_handler(TERMINATE_SIGNAL, self.handle_terminate)
        loop.on_child_exit(self.handle_child_exit)
        loop.on_ready(self._on_ready)
        return loop

    def _on_ready(self) -> None:
        self._logger.info("service_worker_ready")
        self.handle_wake(WAKE_SIGNAL)

    def _fork_placeholder(self) -> int:
        return fork_worker(Role.SERVICE_WORKER, idle, close=[self._channel])

    def handle_wake(self, _signum: int) -> None:
        """Drain the channel and execute every complete frame."""
        try:
            data = self._channel.read_available()
        except (ChannelError, OSError) as e:
            self._logger.error("channel_read_failed", error=str(e))
            self._decoder.reset()
            return

        for frame in self._decoder.feed(data):
            self.execute(frame)

    def execute(self, frame: Frame) -> None:
        """Execute one frame. Failures are logged and never propagate."""
        try:
            command = parse_command(frame)
            match command:
                case UnknownCommand(word=word):
                    self._logger.warning("unknown_command", word=word, argc=len(frame.args))
                case AddCommand() | RestoreCommand():
                    self._start(command)
        except FleetdError as e:
            self._logger.error(
                "command_failed",
                word=frame.word,
                error_type=type(e).__name__,
                error=str(e),
            )

    def _start(self, command: AddCommand | RestoreCommand) -> None:
        self.registry.check_available(command.object_id)
        pid = self._launcher.launch(command)
        self.registry.add(ServiceRecord(object_id=command.object_id, pid=pid))
        self.loop.add_pid(pid)
        self._logger.info(
            "service_spawned",
            object_id=command.object_id,
            service_pid=pid,
            restore=isinstance(command, RestoreCommand),
        )

    def handle_terminate(self, _signum: int) -> None:
        """Ask every supervised process to terminate, without waiting."""
        pids = self.loop.pids
        signalled = self._terminator.request(pids)
        self._logger.info("terminating_services", requested=len(signalled))

    def handle_child_exit(self, exited: ChildExit, remaining: frozenset[int]) -> None:
        """Forget a reaped service. Siblings are left alone."""
        record = self.registry.remove_pid(exited.pid)
        if record is not None:
            self._logger.info(
                "service_exited",
                object_id=record.object_id,
                service_pid=exited.pid,
                exit_code=exited.exit_code,
                remaining=len(remaining),
            )
        elif exited.pid == self._placeholder_pid:
            self._logger.info("placeholder_exited", exit_code=exited.exit_code)
        else:
            self._logger.warning("unknown_child_exited", child_pid=exited.pid)
