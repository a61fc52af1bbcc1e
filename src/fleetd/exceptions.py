"""fleetd exceptions."""

from collections.abc import Sequence
from pathlib import Path


class FleetdError(Exception):
    """Base exception for fleetd errors."""


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigError(FleetdError):
    """Raised when configuration values are invalid."""


class ConfigLoadError(ConfigError):
    """Raised when configuration cannot be loaded or parsed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        """Initialize with error message and optional location context."""
        super().__init__(message)
        self.path: Path | None = path
        self.line: int | None = line
        self.column: int | None = column


# =============================================================================
# Channel and Protocol Exceptions
# =============================================================================


class ChannelError(FleetdError):
    """Raised when a channel is used after close or in the wrong direction."""


class ProtocolError(FleetdError, ValueError):
    """Raised when a command frame cannot be decoded or encoded.

    Attributes:
        word: The command word of the offending frame, if known.
        fields: The raw fields of the offending frame, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        word: str | None = None,
        fields: Sequence[str] = (),
    ) -> None:
        """Initialize with error message and frame context.

        Args:
            message: Human-readable error message.
            word: The command word of the offending frame.
            fields: The raw fields of the offending frame.
        """
        super().__init__(message)
        self.word: str | None = word
        self.fields: tuple[str, ...] = tuple(fields)


# =============================================================================
# Process Exceptions
# =============================================================================


class SpawnError(FleetdError):
    """Raised when a service process cannot be spawned.

    Attributes:
        argv: The argument vector that failed to spawn.
        cause: The underlying exception that caused the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        argv: Sequence[str] = (),
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and spawn context.

        Args:
            message: Human-readable error message.
            argv: The argument vector that failed to spawn.
            cause: The underlying exception.
        """
        super().__init__(message)
        self.argv: tuple[str, ...] = tuple(argv)
        self.cause: Exception | None = cause


class RunnerNotFoundError(SpawnError):
    """Raised when the service runner executable cannot be located."""


class DuplicateServiceError(FleetdError):
    """Raised when a live service already owns an object id.

    Attributes:
        object_id: The object id that is already registered.
        pid: The pid of the live service owning the object id.
    """

    def __init__(self, message: str, *, object_id: str, pid: int) -> None:
        """Initialize with error message and registry context.

        Args:
            message: Human-readable error message.
            object_id: The object id that is already registered.
            pid: The pid of the live service owning the object id.
        """
        super().__init__(message)
        self.object_id: str = object_id
        self.pid: int = pid


class WorkerError(FleetdError):
    """Raised when a category worker cannot be started.

    Attributes:
        role: The role of the worker that failed.
        cause: The underlying exception that caused the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        role: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and worker context."""
        super().__init__(message)
        self.role: str | None = role
        self.cause: Exception | None = cause
