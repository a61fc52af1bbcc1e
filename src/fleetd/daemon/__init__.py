"""Process supervision for the fleetd daemon.

The root process forks three category workers and fails fast: the first
worker to exit takes the others down with it. The service worker supervises
one runner process per object, spawned on commands written to its channel.

Key Components:
    - EventLoop: Signal and child-exit reactor shared by every supervisor
    - Channel: One end of a parent to child pipe
    - FrameDecoder: Incremental decoder for tab-separated command frames
    - RootSupervisor: Fail-fast supervisor of the category workers
    - ServiceSupervisor: Supervisor of dynamically spawned services
    - ServiceRegistry: Live object id to pid mappings
    - Terminator: Delivers termination requests without waiting
    - create_control_app: FastAPI app served by the HTTP worker

Example:
    >>> from fleetd.config import load_config
    >>> from fleetd.daemon import ForkingLauncher, RootSupervisor
    >>> config = load_config()
    >>> RootSupervisor.from_config(config, ForkingLauncher(config)).run()
"""

from ._api import ServiceCommander, create_control_app, create_control_router
from ._channel import Channel
from ._entry import run_role
from ._fork import fork_worker, idle
from ._frames import (
    Frame,
    FrameDecoder,
    decode_frames,
    encode_command,
    encode_frame,
    parse_command,
)
from ._loop import EventLoop, reap_child
from ._models import (
    AddCommand,
    ChildExit,
    Command,
    RestoreCommand,
    ServiceRecord,
    UnknownCommand,
    WorkerHandle,
)
from ._protocol import Worker, WorkerLauncher
from ._registry import ServiceRegistry
from ._root import RootSupervisor
from ._runner import ServiceLauncher
from ._service import ServiceSupervisor
from ._terminate import Terminator
from ._workers import ForkingLauncher, HTTPWorker, ImageWorker

__all__ = [
    "AddCommand",
    "Channel",
    "ChildExit",
    "Command",
    "EventLoop",
    "ForkingLauncher",
    "Frame",
    "FrameDecoder",
    "HTTPWorker",
    "ImageWorker",
    "RestoreCommand",
    "RootSupervisor",
    "ServiceCommander",
    "ServiceLauncher",
    "ServiceRecord",
    "ServiceRegistry",
    "ServiceSupervisor",
    "Terminator",
    "UnknownCommand",
    "Worker",
    "WorkerHandle",
    "WorkerLauncher",
    "create_control_app",
    "create_control_router",
    "decode_frames",
    "encode_command",
    "encode_frame",
    "fork_worker",
    "idle",
    "parse_command",
    "reap_child",
    "run_role",
]
