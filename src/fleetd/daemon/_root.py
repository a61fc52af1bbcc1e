"""Root supervisor: forks the category workers and fails fast.

The first unexpected worker exit, or the first SIGINT, triggers a single
cascade that asks every remaining worker to terminate. Later exits are the
expected consequence of that cascade and are only logged.
"""

import signal
from collections.abc import Callable, Sequence
from typing import Any, Self, final

from structlog.typing import FilteringBoundLogger

from fleetd.config import DaemonConfig
from fleetd.enums import Role

from ._loop import EventLoop
from ._models import ChildExit, WorkerHandle
from ._protocol import WorkerLauncher
from ._terminate import Terminator

INTERRUPT_SIGNAL = signal.SIGINT


@final
class RootSupervisor:
    """Top-level supervisor of the image, service and HTTP workers."""

    __slots__ = (
        "_failure",
        "_first_fail",
        "_handles",
        "_launcher",
        "_logger",
        "_loop",
        "_loop_factory",
        "_terminator",
    )

    def __init__(
        self,
        launcher: WorkerLauncher,
        *,
        logger: FilteringBoundLogger,
        terminator: Terminator | None = None,
        loop_factory: Callable[[], EventLoop] | None = None,
    ) -> None:
        """Initialize the root supervisor.

        Args:
            launcher: Creates the three category workers.
            logger: Logger bound to the root process.
            terminator: Delivers termination requests.
            loop_factory: Builds the event loop.
        """
        self._launcher = launcher
        self._logger = logger
        self._terminator = (
            terminator if terminator is not None else Terminator(logger=logger)
        )
        self._loop_factory = (
            loop_factory
            if loop_factory is not None
            else lambda: EventLoop(logger=self._logger)
        )
        self._first_fail = True
        self._failure: ChildExit | None = None
        self._handles: tuple[WorkerHandle, ...] = ()
        self._loop: EventLoop | None = None

    @classmethod
    def from_config(cls, config: DaemonConfig, launcher: WorkerLauncher) -> Self:
        """Build a root supervisor logging as the root role."""
        return cls(launcher, logger=config.create_logger(Role.ROOT))

    @property
    def first_fail(self) -> bool:
        """Return True until the shutdown cascade has fired."""
        return self._first_fail

    @property
    def failure(self) -> ChildExit | None:
        """Return the unexpected exit that started the cascade, if any."""
        return self._failure

    @property
    def handles(self) -> tuple[WorkerHandle, ...]:
        return self._handles

    def spawn_workers(self) -> tuple[WorkerHandle, ...]:
        """Start the three workers and hand the writer channels to the HTTP worker.

        The root closes its own copies of the writers once the HTTP worker
        holds them, so the HTTP worker is their only owner.
        """
        image = self._launcher.image()
        service = self._launcher.service()

        writers = {
            handle.role: handle.channel
            for handle in (image, service)
            if handle.channel is not None
        }
        http = self._launcher.http(writers, service.pid)
        for writer in writers.values():
            writer.close()

        self._handles = (image, service, http)
        for handle in self._handles:
            self._logger.info("worker_started", worker=handle.role.value, worker_pid=handle.pid)
        return self._handles

    def build_loop(self, handles: Sequence[WorkerHandle]) -> EventLoop:
        """Build the event loop supervising handles."""
        loop = self._loop_factory()
        loop.set_supervised(handle.pid for handle in handles)
        loop.register_handler(INTERRUPT_SIGNAL, self.handle_interrupt)
        loop.on_child_exit(self.handle_child_exit)
        loop.on_ready(lambda: self._logger.info("root_ready", worker_pids=sorted(loop.pids)))
        self._loop = loop
        return loop

    def run(self) -> Any:  # noqa: ANN401
        """Spawn the workers and supervise them until all have exited.

        Returns:
            The event loop's terminal value.
        """
        loop = self.build_loop(self.spawn_workers())
        result = loop.run()
        self._logger.info("root_stopped", result=_describe(result))
        return result

    def handle_interrupt(self, signum: int) -> None:
        """Start the shutdown cascade on operator interrupt."""
        if not self._first_fail:
            self._logger.debug("interrupt_ignored", reason="cascade_in_progress")
            return
        self._logger.warning("interrupt_received", signal=signal.Signals(signum).name)
        self._cascade(self._supervised())

    def handle_child_exit(self, exited: ChildExit, remaining: frozenset[int]) -> None:
        """Treat the first exit as a failure and take every other worker down."""
        role = self._role_of(exited.pid)
        if not self._first_fail:
            self._logger.info(
                "worker_exited",
                worker=role,
                worker_pid=exited.pid,
                exit_code=exited.exit_code,
            )
            return

        self._logger.error(
            "worker_failed",
            worker=role,
            worker_pid=exited.pid,
            exit_code=exited.exit_code,
            signaled=exited.signaled,
        )
        self._failure = exited
        self._cascade(remaining)

    def _cascade(self, pids: frozenset[int]) -> None:
        self._first_fail = False
        signalled = self._terminator.request(pids)
        self._logger.warning("terminating_workers", worker_pids=signalled)

    def _supervised(self) -> frozenset[int]:
        if self._loop is None:
            return frozenset(handle.pid for handle in self._handles)
        return self._loop.pids

    def _role_of(self, pid: int) -> str | None:
        for handle in self._handles:
            if handle.pid == pid:
                return handle.role.value
        return None


def _describe(result: Any) -> Any:  # noqa: ANN401
    if isinstance(result, tuple):
        return [
            {"pid": exited.pid, "exit_code": exited.exit_code}
            for exited in result
            if isinstance(exited, ChildExit)
        ]
    return result

