"""Termination requests for supervised processes."""

import os
import signal
from collections.abc import Callable, Iterable
from typing import final

import structlog
from structlog.typing import FilteringBoundLogger

KillFunc = Callable[[int, int], None]


@final
class Terminator:
    """Sends termination requests to a set of pids.

    Termination is request-then-observe: request() signals each pid and
    returns immediately, and the caller's event loop observes the exits.
    force_kill() is the escalation step for children that ignore the request.
    """

    __slots__ = ("_kill", "_logger", "_signum")

    def __init__(
        self,
        *,
        signum: int = signal.SIGTERM,
        kill: KillFunc = os.kill,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the terminator.

        Args:
            signum: Signal used for termination requests.
            kill: Function used to deliver signals.
            logger: Logger for delivery failures.
        """
        self._signum = signum
        self._kill = kill
        self._logger: FilteringBoundLogger = (
            logger if logger is not None else structlog.get_logger()
        )

    def request(self, pids: Iterable[int]) -> list[int]:
        """Send the termination signal to every pid.

        Returns:
            The pids that were signalled. Pids that no longer exist are
            logged and skipped.
        """
        return self._send(pids, self._signum)

    def force_kill(self, pids: Iterable[int]) -> list[int]:
        """Send SIGKILL to every pid."""
        return self._send(pids, signal.SIGKILL)

    def _send(self, pids: Iterable[int], signum: int) -> list[int]:
        delivered: list[int] = []
        for pid in sorted(pids):
            try:
                self._kill(pid, signum)
            except ProcessLookupError:
                self._logger.warning(
                    "signal_target_missing",
                    target_pid=pid,
                    signal=signal.Signals(signum).name,
                )
                continue
            delivered.append(pid)
        return delivered
