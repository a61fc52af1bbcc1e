"""Image and HTTP workers, and the forking launcher used by the root."""

from collections.abc import Iterable, Mapping
from typing import Self, final

import uvicorn
from structlog.typing import FilteringBoundLogger

from fleetd.config import DaemonConfig
from fleetd.enums import Role
from fleetd.exceptions import WorkerError

from ._api import ServiceCommander, create_control_app
from ._channel import Channel
from ._fork import fork_worker, idle
from ._models import WorkerHandle
from ._service import ServiceSupervisor


@final
class ImageWorker:
    """Image management worker.

    Holds the read end of its command channel and idles until terminated.
    """

    __slots__ = ("_channel", "_logger")

    def __init__(self, channel: Channel, *, logger: FilteringBoundLogger) -> None:
        self._channel = channel
        self._logger = logger

    @classmethod
    def reexec(
        cls,
        config: DaemonConfig,
        *,
        close: Iterable[Channel] = (),
    ) -> WorkerHandle:
        """Fork the image worker and return a handle holding its writer."""
        reader, writer = Channel.pipe()
        pid = fork_worker(
            Role.IMAGE_WORKER,
            lambda: cls(reader, logger=config.create_logger(Role.IMAGE_WORKER)).run(),
            close=[writer, *close],
        )
        reader.close()
        return WorkerHandle(pid=pid, role=Role.IMAGE_WORKER, channel=writer)

    def run(self) -> int:
        self._logger.info("image_worker_started")
        try:
            return idle()
        finally:
            self._channel.close()


@final
class HTTPWorker:
    """Serves the control API.

    Owns the writer channels of the image and service workers once the root
    has handed them over.
    """

    __slots__ = ("_config", "_logger", "_service_pid", "_writers")

    def __init__(
        self,
        config: DaemonConfig,
        writers: Mapping[Role, Channel],
        service_pid: int,
        *,
        logger: FilteringBoundLogger,
    ) -> None:
        """Initialize the HTTP worker.

        Args:
            config: Daemon configuration (bind address, port, socket).
            writers: Writer channels keyed by the role that reads them.
            service_pid: Pid of the service worker.
            logger: Logger bound to this process.
        """
        self._config = config
        self._writers = dict(writers)
        self._service_pid = service_pid
        self._logger = logger

    @classmethod
    def from_config(
        cls,
        config: DaemonConfig,
        writers: Mapping[Role, Channel],
        service_pid: int,
    ) -> Self:
        return cls(
            config,
            writers,
            service_pid,
            logger=config.create_logger(Role.HTTP_WORKER),
        )

    @classmethod
    def reexec(
        cls,
        config: DaemonConfig,
        writers: Mapping[Role, Channel],
        service_pid: int,
    ) -> WorkerHandle:
        """Fork the HTTP worker, which inherits the writer channels."""
        pid = fork_worker(
            Role.HTTP_WORKER,
            lambda: cls.from_config(config, writers, service_pid).run(),
        )
        return WorkerHandle(pid=pid, role=Role.HTTP_WORKER)

    def run(self) -> int:
        """Serve the control API until uvicorn shuts down.

        Raises:
            WorkerError: If no service worker channel was handed over.
        """
        channel = self._writers.get(Role.SERVICE_WORKER)
        if channel is None:
            msg = "HTTP worker started without a service worker channel"
            raise WorkerError(msg, role=Role.HTTP_WORKER.value)

        app = create_control_app(ServiceCommander(channel, self._service_pid))

        server_options: dict[str, object] = {
            "log_level": self._config.logging.level.value,
            "access_log": False,
        }
        if self._config.socket:
            server_options["uds"] = self._config.socket
            self._logger.info("http_worker_started", socket=self._config.socket)
        else:
            server_options["host"] = self._config.bind
            server_options["port"] = self._config.port
            self._logger.info(
                "http_worker_started",
                url=f"http://{self._config.bind}:{self._config.port}/",
            )

        try:
            uvicorn.run(app, **server_options)  # pyright: ignore[reportArgumentType]
        finally:
            for writer in self._writers.values():
                writer.close()
        return 0


@final
class ForkingLauncher:
    """Creates the category workers by forking the current process.

    Writers returned by earlier calls are closed in every later child except
    the HTTP worker, which is meant to own them.
    """

    __slots__ = ("_config", "_held")

    def __init__(self, config: DaemonConfig) -> None:
        self._config = config
        self._held: list[Channel] = []

    def image(self) -> WorkerHandle:
        handle = ImageWorker.reexec(self._config, close=self._held)
        self._hold(handle)
        return handle

    def service(self) -> WorkerHandle:
        handle = ServiceSupervisor.reexec(self._config, close=self._held)
        self._hold(handle)
        return handle

    def http(self, writers: Mapping[Role, Channel], service_pid: int) -> WorkerHandle:
        handle = HTTPWorker.reexec(self._config, writers, service_pid)
        self._held.clear()
        return handle

    def _hold(self, handle: WorkerHandle) -> None:
        if handle.channel is not None:
            self._held.append(handle.channel)
