"""Enumeration types for fleetd."""

from enum import IntEnum, StrEnum


class Role(StrEnum):
    """Process roles in the daemon tree.

    Roles are fixed when a process is spawned:
    - ROOT: The top-level supervisor
    - IMAGE_WORKER: Image management worker
    - SERVICE_WORKER: Supervisor of dynamically spawned services
    - HTTP_WORKER: Control plane HTTP server
    """

    ROOT = "root"
    IMAGE_WORKER = "image-worker"
    SERVICE_WORKER = "service-worker"
    HTTP_WORKER = "http-worker"


class ExitCode(IntEnum):
    """Standard exit codes for fleetd processes."""

    SUCCESS = 0
    LOAD_ERROR = 1
    VALIDATION_ERROR = 2
    WORKER_ERROR = 3
    INTERNAL_ERROR = 5
