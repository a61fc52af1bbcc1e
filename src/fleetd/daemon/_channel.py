"""Unidirectional byte-stream channels between a parent and a forked child.

A channel is one end of an OS pipe. The parent creates both ends before
forking and each side closes the end it does not own.
"""

import os
from typing import Literal, Self, final

from fleetd.exceptions import ChannelError

ChannelMode = Literal["r", "w"]

_READ_CHUNK = 4096


@final
class Channel:
    """One end of a unidirectional pipe.

    Readers are non-blocking so that draining never stalls the event loop.
    Writers block until every byte has been handed to the kernel.
    """

    __slots__ = ("_fd", "_mode")

    def __init__(self, fd: int, mode: ChannelMode) -> None:
        """Wrap an already-open file descriptor.

        Args:
            fd: The file descriptor to own.
            mode: "r" for the read end, "w" for the write end.
        """
        self._fd: int = fd
        self._mode: ChannelMode = mode
        if mode == "r":
            os.set_blocking(fd, False)

    @classmethod
    def pipe(cls) -> tuple[Self, Self]:
        """Create a connected (reader, writer) pair."""
        read_fd, write_fd = os.pipe()
        return cls(read_fd, "r"), cls(write_fd, "w")

    @property
    def mode(self) -> ChannelMode:
        """Return the direction of this end."""
        return self._mode

    @property
    def closed(self) -> bool:
        """Return True once the descriptor has been closed."""
        return self._fd < 0

    def fileno(self) -> int:
        """Return the underlying file descriptor.

        Raises:
            ChannelError: If the channel is closed.
        """
        if self._fd < 0:
            msg = "Channel is closed"
            raise ChannelError(msg)
        return self._fd

    def inheritable(self) -> int:
        """Mark the descriptor inheritable across exec and return it."""
        fd = self.fileno()
        os.set_inheritable(fd, True)
        return fd

    def write(self, data: bytes) -> int:
        """Write all of data to the channel.

        Returns:
            The number of bytes written.

        Raises:
            ChannelError: If the channel is closed or is a read end.
        """
        if self._mode != "w":
            msg = "Cannot write to the read end of a channel"
            raise ChannelError(msg)
        fd = self.fileno()
        view = memoryview(data)
        while view:
            written = os.write(fd, view)
            view = view[written:]
        return len(data)

    def read_available(self) -> bytes:
        """Drain every byte currently buffered in the pipe.

        Returns an empty bytes object when nothing is pending or the writer
        has gone away.

        Raises:
            ChannelError: If the channel is closed or is a write end.
        """
        if self._mode != "r":
            msg = "Cannot read from the write end of a channel"
            raise ChannelError(msg)
        fd = self.fileno()
        chunks: list[bytes] = []
        while True:
            try:
                chunk = os.read(fd, _READ_CHUNK)
            except BlockingIOError:
                break
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)

    def close(self) -> None:
        """Close the descriptor. Closing twice is a no-op."""
        if self._fd >= 0:
            fd, self._fd = self._fd, -1
            os.close(fd)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else f"fd={self._fd}"
        return f"Channel({state}, mode={self._mode!r})"
