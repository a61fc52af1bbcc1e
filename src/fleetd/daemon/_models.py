"""Data models for the daemon process tree.

This module defines the value types shared by the supervisors:
- WorkerHandle: Parent-side record of a forked worker
- ChildExit: A reaped child and its decoded exit status
- ServiceRecord: A live object id to pid mapping
- AddCommand, RestoreCommand, UnknownCommand: Decoded control commands
"""

import os
from dataclasses import dataclass
from typing import TypeAlias

from fleetd.enums import Role

from ._channel import Channel


@dataclass(frozen=True, slots=True)
class WorkerHandle:
    """Parent-side handle to a forked worker.

    Attributes:
        pid: Process ID of the worker.
        role: Role the worker was spawned with.
        channel: Writer end owned by the parent, if the worker reads commands.
    """

    pid: int
    role: Role
    channel: Channel | None = None


@dataclass(frozen=True, slots=True)
class ChildExit:
    """A supervised child that has been reaped.

    Attributes:
        pid: Process ID of the reaped child.
        status: Raw wait status, or None if the child was already gone.
    """

    pid: int
    status: int | None = None

    @property
    def exit_code(self) -> int | None:
        """Return the exit code, negative when terminated by a signal."""
        if self.status is None:
            return None
        return os.waitstatus_to_exitcode(self.status)

    @property
    def signaled(self) -> bool:
        """Return True if the child was terminated by a signal."""
        return self.status is not None and os.WIFSIGNALED(self.status)


@dataclass(frozen=True, slots=True)
class ServiceRecord:
    """A live service process.

    Attributes:
        object_id: Opaque identifier of the object the service runs.
        pid: Process ID running the service.
    """

    object_id: str
    pid: int


@dataclass(frozen=True, slots=True)
class AddCommand:
    """Spawn a new service for an object."""

    object_id: str
    args: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RestoreCommand:
    """Restore an existing service for an object."""

    object_id: str


@dataclass(frozen=True, slots=True)
class UnknownCommand:
    """A well-formed frame with an unrecognized command word."""

    word: str
    args: tuple[str, ...] = ()


Command: TypeAlias = AddCommand | RestoreCommand | UnknownCommand
