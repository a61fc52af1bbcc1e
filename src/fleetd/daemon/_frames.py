"""Framed text protocol for commanding the service worker.

A frame is a sequence of fields joined by a single separator byte and
terminated by two consecutive separators:

    ADD\\t<object_id>\\t<arg>...\\t\\t
    RESTORE\\t<object_id>\\t\\t

Fields are never empty, so a doubled separator only ever appears as a
terminator. Bytes are decoded as UTF-8 with surrogate escapes so that any
argument survives the trip to the runner's argument vector unchanged.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final, final

from fleetd.exceptions import ProtocolError

from ._models import AddCommand, Command, RestoreCommand, UnknownCommand

SEPARATOR: Final = b"\t"
TERMINATOR: Final = SEPARATOR * 2

ADD: Final = "ADD"
RESTORE: Final = "RESTORE"

_ENCODING: Final = "utf-8"
_ERRORS: Final = "surrogateescape"


@dataclass(frozen=True, slots=True)
class Frame:
    """A complete, undecoded command frame.

    Attributes:
        word: The command word (first field).
        args: The remaining fields in order.
    """

    word: str
    args: tuple[str, ...] = ()


def decode_frames(buffer: bytes, data: bytes) -> tuple[list[Frame], bytes]:
    """Extract complete frames from a partial buffer plus newly read bytes.

    Args:
        buffer: Bytes left over from previous calls.
        data: Bytes read since the last call.

    Returns:
        The complete frames in arrival order and the new partial buffer.
    """
    pending = buffer + data
    *complete, rest = pending.split(TERMINATOR)
    frames: list[Frame] = []
    for chunk in complete:
        # A stray separator after a terminator is not part of the next word.
        raw = chunk.lstrip(SEPARATOR)
        if not raw:
            continue
        fields = [f.decode(_ENCODING, _ERRORS) for f in raw.split(SEPARATOR)]
        frames.append(Frame(word=fields[0], args=tuple(fields[1:])))
    return frames, rest


def parse_command(frame: Frame) -> Command:
    """Interpret a frame as a command.

    Raises:
        ProtocolError: If an ADD or RESTORE frame is malformed.
    """
    match frame.word:
        case "ADD":
            if not frame.args:
                msg = "ADD frame is missing an object id"
                raise ProtocolError(msg, word=frame.word, fields=frame.args)
            object_id, *args = frame.args
            return AddCommand(object_id=object_id, args=tuple(args))
        case "RESTORE":
            if len(frame.args) != 1:
                msg = f"RESTORE frame expects exactly one object id, got {len(frame.args)}"
                raise ProtocolError(msg, word=frame.word, fields=frame.args)
            return RestoreCommand(object_id=frame.args[0])
        case _:
            return UnknownCommand(word=frame.word, args=frame.args)


def encode_frame(word: str, args: Sequence[str] = ()) -> bytes:
    """Encode a command word and its arguments as one frame.

    Raises:
        ProtocolError: If any field is empty or contains the separator.
    """
    fields = [word, *args]
    encoded: list[bytes] = []
    for field in fields:
        try:
            raw = field.encode(_ENCODING, _ERRORS)
        except UnicodeEncodeError as e:
            msg = f"Frame field {field!r} is not encodable"
            raise ProtocolError(msg, word=word, fields=args) from e
        if not raw:
            msg = "Frame fields must not be empty"
            raise ProtocolError(msg, word=word, fields=args)
        if SEPARATOR in raw:
            msg = f"Frame field {field!r} contains the separator"
            raise ProtocolError(msg, word=word, fields=args)
        encoded.append(raw)
    return SEPARATOR.join(encoded) + TERMINATOR


def encode_command(command: AddCommand | RestoreCommand) -> bytes:
    """Encode an ADD or RESTORE command."""
    match command:
        case AddCommand(object_id=object_id, args=args):
            return encode_frame(ADD, [object_id, *args])
        case RestoreCommand(object_id=object_id):
            return encode_frame(RESTORE, [object_id])


@final
class FrameDecoder:
    """Stateful wrapper around decode_frames that owns the partial buffer."""

    __slots__ = ("_buffer",)

    def __init__(self) -> None:
        self._buffer: bytes = b""

    @property
    def buffer(self) -> bytes:
        """Return the bytes of the incomplete trailing frame."""
        return self._buffer

    def feed(self, data: bytes) -> list[Frame]:
        """Append data and return every frame it completes."""
        frames, self._buffer = decode_frames(self._buffer, data)
        return frames

    def reset(self) -> None:
        """Discard any partially received frame."""
        self._buffer = b""
