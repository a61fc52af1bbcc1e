"""Protocol definitions for the daemon process tree.

This module defines the interfaces that decouple the supervisors from the
code that actually creates processes:
- Worker: Anything a forked child can run
- WorkerLauncher: Creates the three category workers for the root
"""

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from fleetd.enums import Role

from ._channel import Channel
from ._models import WorkerHandle


@runtime_checkable
class Worker(Protocol):
    """A category worker run inside its own process."""

    def run(self) -> int | None:
        """Run until the worker is asked to stop.

        Returns:
            The process exit code, None meaning success.
        """
        ...


@runtime_checkable
class WorkerLauncher(Protocol):
    """Creates the category workers supervised by the root.

    Calls happen in order: image(), service(), then http() with the writer
    channels returned by the first two. The launcher must make sure each new
    child holds only the channels handed to it.
    """

    def image(self) -> WorkerHandle:
        """Start the image worker and return its handle with a writer channel."""
        ...

    def service(self) -> WorkerHandle:
        """Start the service worker and return its handle with a writer channel."""
        ...

    def http(
        self,
        writers: Mapping[Role, Channel],
        service_pid: int,
    ) -> WorkerHandle:
        """Start the HTTP worker, transferring the writer channels to it.

        Args:
            writers: Writer channels keyed by the role that reads them.
            service_pid: Pid of the service worker to wake after each command.
        """
        ...
