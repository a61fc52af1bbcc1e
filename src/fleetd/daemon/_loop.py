"""Single-threaded event loop multiplexing signals and child exits.

The loop waits on one anyio signal receiver that covers every registered
signal plus SIGCHLD. Each delivery is dispatched synchronously before the
next one is awaited, so handlers never overlap each other or the loop's own
bookkeeping. SIGCHLD is consumed internally: the supervised pids are polled
and every reaped child is handed to the child-exit handler.
"""

import contextlib
import os
import signal
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass
from typing import Any, final

import anyio
import structlog
from structlog.typing import FilteringBoundLogger

from ._models import ChildExit

SignalHandler = Callable[[int], None]
ExitHandler = Callable[[ChildExit, frozenset[int]], None]
Reaper = Callable[[int], ChildExit | None]
SignalReceiverFactory = Callable[..., contextlib.AbstractContextManager[AsyncIterator[int]]]


def reap_child(pid: int) -> ChildExit | None:
    """Reap pid without blocking.

    Returns:
        The exit record if the child has exited, None if it is still running.
        A child that is no longer ours to wait on is reported with no status.
    """
    try:
        waited, status = os.waitpid(pid, os.WNOHANG)
    except ChildProcessError:
        return ChildExit(pid=pid)
    if waited == 0:
        return None
    return ChildExit(pid=pid, status=status)


@dataclass(frozen=True, slots=True)
class _Registration:
    handler: SignalHandler
    restart_on_interrupt: bool


@final
class EventLoop:
    """Reactor that owns signal handlers and a supervised pid set.

    The loop ends when the supervised set becomes empty or a handler calls
    stop(). It applies no failure policy of its own: every exit, expected or
    not, is reported to the child-exit handler.
    """

    __slots__ = (
        "_exit_handler",
        "_exits",
        "_handlers",
        "_logger",
        "_pids",
        "_ready_handler",
        "_reaper",
        "_signal_receiver",
        "_stop_value",
        "_stopped",
    )

    def __init__(
        self,
        *,
        logger: FilteringBoundLogger | None = None,
        signal_receiver: SignalReceiverFactory = anyio.open_signal_receiver,
        reaper: Reaper = reap_child,
    ) -> None:
        """Initialize the loop.

        Args:
            logger: Logger for loop events.
            signal_receiver: Factory returning a context manager that yields
                an async iterator of delivered signal numbers.
            reaper: Non-blocking wait for a single pid.
        """
        self._logger: FilteringBoundLogger = (
            logger if logger is not None else structlog.get_logger()
        )
        self._signal_receiver = signal_receiver
        self._reaper = reaper
        self._handlers: dict[int, _Registration] = {}
        self._pids: set[int] = set()
        self._exit_handler: ExitHandler | None = None
        self._ready_handler: Callable[[], None] | None = None
        self._exits: list[ChildExit] = []
        self._stopped = False
        self._stop_value: Any = None

    @property
    def pids(self) -> frozenset[int]:
        """Return the pids currently supervised."""
        return frozenset(self._pids)

    def register_handler(
        self,
        signum: int,
        handler: SignalHandler,
        *,
        restart_on_interrupt: bool = True,
    ) -> None:
        """Dispatch handler whenever signum is delivered.

        Args:
            signum: Signal number to intercept.
            handler: Called with the signal number on the loop's thread.
            restart_on_interrupt: If False, system calls interrupted by this
                signal fail with EINTR instead of being resumed.

        Raises:
            ValueError: If signum is SIGCHLD, which the loop owns.
        """
        if signum == signal.SIGCHLD:
            msg = "SIGCHLD is reserved for child exit handling"
            raise ValueError(msg)
        self._handlers[signum] = _Registration(handler, restart_on_interrupt)

    def set_supervised(self, pids: Iterable[int]) -> None:
        """Replace the supervised set."""
        self._pids = set(pids)

    def add_pid(self, pid: int) -> None:
        """Start supervising one more pid."""
        self._pids.add(pid)

    def on_child_exit(self, handler: ExitHandler) -> None:
        """Set the handler called with each reaped child and the remaining pids."""
        self._exit_handler = handler

    def on_ready(self, handler: Callable[[], None]) -> None:
        """Set a handler called once signal delivery is armed, before the first wait."""
        self._ready_handler = handler

    def stop(self, value: Any = None) -> None:  # noqa: ANN401
        """Request termination; run() returns value after the current dispatch."""
        self._stopped = True
        self._stop_value = value

    def run(self) -> Any:  # noqa: ANN401
        """Run until the supervised set is empty or stop() is called.

        Returns:
            The value passed to stop(), otherwise a tuple of every ChildExit
            reaped by this loop in order.
        """
        return anyio.run(self._run)

    async def _run(self) -> Any:  # noqa: ANN401
        signums = (*self._handlers, signal.SIGCHLD)
        with self._signal_receiver(*signums) as receiver:
            for signum, registration in self._handlers.items():
                if not registration.restart_on_interrupt:
                    signal.siginterrupt(signum, True)

            if self._ready_handler is not None:
                self._ready_handler()

            # Children may have exited before the receiver was installed.
            self._reap()
            if not self._finished():
                async for signum in receiver:
                    self._dispatch(signum)
                    if self._finished():
                        break

        if self._stopped:
            return self._stop_value
        return tuple(self._exits)

    def _finished(self) -> bool:
        return self._stopped or not self._pids

    def _dispatch(self, signum: int) -> None:
        if signum == signal.SIGCHLD:
            self._reap()
            return

        registration = self._handlers.get(signum)
        if registration is None:
            self._logger.debug("signal_ignored", signal=signal.Signals(signum).name)
            return

        self._logger.debug("signal_received", signal=signal.Signals(signum).name)
        registration.handler(signum)

    def _reap(self) -> None:
        for pid in sorted(self._pids):
            if self._stopped:
                return
            exited = self._reaper(pid)
            if exited is None:
                continue
            self._pids.discard(pid)
            self._exits.append(exited)
            self._logger.debug(
                "child_reaped",
                child_pid=pid,
                exit_code=exited.exit_code,
            )
            if self._exit_handler is not None:
                self._exit_handler(exited, frozenset(self._pids))
