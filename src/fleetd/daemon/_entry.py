"""Role dispatch for a freshly started fleetd process.

A process started with FLEETD_WORKER_MODE set runs that worker on the
descriptor named by FLEETD_FD. Any other process becomes the root.
"""

from fleetd.config import DaemonConfig, WorkerEnvironment
from fleetd.enums import ExitCode, Role
from fleetd.exceptions import WorkerError

from ._channel import Channel
from ._root import RootSupervisor
from ._service import ServiceSupervisor
from ._workers import ForkingLauncher, HTTPWorker, ImageWorker


def run_role(config: DaemonConfig, environment: WorkerEnvironment) -> int:
    """Run the process in the role selected by environment.

    Args:
        config: Daemon configuration.
        environment: Dispatch parameters consumed from the environment.

    Returns:
        The process exit code. The root reports WORKER_ERROR when its
        shutdown was caused by a worker exiting unexpectedly.

    Raises:
        WorkerError: If a worker role is selected without its descriptor or
            the HTTP worker is missing the service worker pid.
    """
    role = environment.role
    if role is Role.ROOT:
        root = RootSupervisor.from_config(config, ForkingLauncher(config))
        _ = root.run()
        return ExitCode.SUCCESS if root.failure is None else ExitCode.WORKER_ERROR

    if environment.fd is None:
        msg = f"{role.value} requires an inherited channel descriptor"
        raise WorkerError(msg, role=role.value)

    match role:
        case Role.IMAGE_WORKER:
            channel = Channel(environment.fd, "r")
            return ImageWorker(channel, logger=config.create_logger(role)).run()
        case Role.SERVICE_WORKER:
            channel = Channel(environment.fd, "r")
            return ServiceSupervisor.from_config(channel, config).run()
        case _:
            if environment.service_pid is None:
                msg = "http-worker requires the service worker pid"
                raise WorkerError(msg, role=role.value)
            writers = {Role.SERVICE_WORKER: Channel(environment.fd, "w")}
            return HTTPWorker.from_config(config, writers, environment.service_pid).run()
