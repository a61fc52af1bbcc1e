"""Configuration models for the daemon.

This module provides the frozen Pydantic models holding daemon settings
and the parsed worker-dispatch environment.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field
from structlog.typing import FilteringBoundLogger

from fleetd.enums import Role
from fleetd.utils import create_daemon_logger


class LogLevel(StrEnum):
    """Log level threshold values.

    Values are ordered from most verbose (debug) to least verbose (error).
    """

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Log output format values."""

    JSON = "json"
    TEXT = "text"


class LoggingConfig(BaseModel):
    """Logging configuration section.

    Attributes:
        level: Log level threshold.
        format: Log output format.
        file: Path to log file (empty logs to stderr).
        max_bytes: Rotate the log file after this many bytes.
        backup_count: Number of rotated log files to keep.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.TEXT
    file: str = ""
    max_bytes: int | None = Field(default=None, gt=0)
    backup_count: int | None = Field(default=None, ge=0)


class DaemonConfig(BaseModel):
    """Daemon configuration.

    Attributes:
        bind: Address the HTTP worker binds to.
        port: TCP port the HTTP worker listens on.
        socket: UNIX socket path for the HTTP worker; overrides bind/port.
        runner: Service runner name or path; PATH lookup of the default
            runner when unset.
        logging: Logging settings shared by every process.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    bind: str = "127.0.0.1"
    port: int = Field(default=14444, ge=0, le=65535)
    socket: str | None = None
    runner: str | None = None
    logging: LoggingConfig = LoggingConfig()

    def create_logger(self, role: Role) -> FilteringBoundLogger:
        """Create a logger for a process running as role."""
        return create_daemon_logger(
            role=role.value,
            level=self.logging.level.value,
            log_format=self.logging.format.value,
            log_file=self.logging.file,
            max_bytes=self.logging.max_bytes,
            backup_count=self.logging.backup_count,
        )


@dataclass(frozen=True, slots=True)
class WorkerEnvironment:
    """Role dispatch parameters carried in the process environment.

    Attributes:
        role: Role selected by FLEETD_WORKER_MODE (root when unset).
        fd: Inherited channel descriptor from FLEETD_FD.
        service_pid: Service worker pid from FLEETD_SERVICE_PID (HTTP worker).
    """

    role: Role = Role.ROOT
    fd: int | None = None
    service_pid: int | None = None
