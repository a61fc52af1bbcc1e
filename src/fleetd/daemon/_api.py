"""FastAPI control endpoints served by the HTTP worker.

This module provides the REST API that turns requests into command frames
on the service worker's channel, followed by a wake signal.
"""

# pyright: reportUnusedFunction=false
# FastAPI route handlers are registered via decorators, not direct calls

import os
import signal
from collections.abc import Callable
from typing import Never, final

from fastapi import APIRouter, FastAPI, HTTPException, status
from pydantic import BaseModel, Field

from fleetd.exceptions import ChannelError, ProtocolError

from ._channel import Channel
from ._frames import encode_command
from ._models import AddCommand, RestoreCommand

KillFunc = Callable[[int, int], None]

_UNPROCESSABLE = 422


@final
class ServiceCommander:
    """Writes commands for the service worker and wakes it up.

    The wake signal is sent only after the whole frame has been written, so
    the service worker always finds the data it is woken for.
    """

    __slots__ = ("_channel", "_kill", "_service_pid", "_wake_signal")

    def __init__(
        self,
        channel: Channel,
        service_pid: int,
        *,
        kill: KillFunc = os.kill,
        wake_signal: int = signal.SIGUSR1,
    ) -> None:
        """Initialize the commander.

        Args:
            channel: Writer end of the service worker's channel.
            service_pid: Pid of the service worker.
            kill: Function used to deliver the wake signal.
            wake_signal: Signal telling the service worker to drain its channel.
        """
        self._channel = channel
        self._service_pid = service_pid
        self._kill = kill
        self._wake_signal = wake_signal

    @property
    def service_pid(self) -> int:
        return self._service_pid

    def submit(self, command: AddCommand | RestoreCommand) -> None:
        """Send one command.

        Raises:
            ProtocolError: If the command cannot be encoded.
            ChannelError: If the channel is closed.
            OSError: If the write fails or the service worker is gone.
        """
        frame = encode_command(command)
        self._channel.write(frame)
        self._kill(self._service_pid, self._wake_signal)


class AddServiceRequest(BaseModel):
    """Request model for spawning a service."""

    object_id: str = Field(min_length=1)
    args: list[str] = Field(default_factory=list)


class CommandAcceptedResponse(BaseModel):
    """Response model for a queued command."""

    message: str
    object_id: str


class HealthResponse(BaseModel):
    """Response model for the health endpoint."""

    status: str
    service_worker_pid: int


def _raise_invalid(cause: ProtocolError) -> Never:
    """Raise HTTP 422 for an unencodable command.

    Raises:
        HTTPException: Always raises with 422 status.
    """
    raise HTTPException(
        status_code=_UNPROCESSABLE,
        detail=str(cause),
    ) from cause


def _raise_unavailable(cause: Exception) -> Never:
    """Raise HTTP 503 when the service worker cannot be reached.

    Raises:
        HTTPException: Always raises with 503 status.
    """
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Service worker unavailable: {cause}",
    ) from cause


def create_control_router(commander: ServiceCommander) -> APIRouter:
    """Create a FastAPI router for service control endpoints.

    Args:
        commander: Sends commands to the service worker.

    Returns:
        A FastAPI APIRouter with control endpoints.
    """
    router = APIRouter(prefix="/v1", tags=["services"])

    def submit(command: AddCommand | RestoreCommand) -> None:
        try:
            commander.submit(command)
        except ProtocolError as e:
            _raise_invalid(e)
        except (ChannelError, OSError) as e:
            _raise_unavailable(e)

    @router.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Report liveness of the HTTP worker."""
        return HealthResponse(status="ok", service_worker_pid=commander.service_pid)

    @router.post(
        "/services",
        response_model=CommandAcceptedResponse,
        status_code=status.HTTP_202_ACCEPTED,
    )
    def add_service(request: AddServiceRequest) -> CommandAcceptedResponse:
        """Spawn a service for an object."""
        submit(AddCommand(object_id=request.object_id, args=tuple(request.args)))
        return CommandAcceptedResponse(
            message=f"Service for '{request.object_id}' requested",
            object_id=request.object_id,
        )

    @router.post(
        "/services/{object_id}/restore",
        response_model=CommandAcceptedResponse,
        status_code=status.HTTP_202_ACCEPTED,
    )
    def restore_service(object_id: str) -> CommandAcceptedResponse:
        """Restore the service for an existing object."""
        submit(RestoreCommand(object_id=object_id))
        return CommandAcceptedResponse(
            message=f"Restore of '{object_id}' requested",
            object_id=object_id,
        )

    return router


def create_control_app(commander: ServiceCommander) -> FastAPI:
    """Create the FastAPI application served by the HTTP worker."""
    app = FastAPI(
        title="fleetd",
        docs_url=None,
        redoc_url=None,
    )
    app.include_router(create_control_router(commander))
    return app
