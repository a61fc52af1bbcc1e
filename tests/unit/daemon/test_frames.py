import pytest

from fleetd.daemon import (
    AddCommand,
    Frame,
    FrameDecoder,
    RestoreCommand,
    UnknownCommand,
    decode_frames,
    encode_command,
    encode_frame,
    parse_command,
)
from fleetd.exceptions import ProtocolError


class TestDecodeFrames:
    def test_decodes_single_complete_frame(self) -> None:
        frames, rest = decode_frames(b"", b"ADD\tobj-1\t--flag\t\t")

        assert frames == [Frame(word="ADD", args=("obj-1", "--flag"))]
        assert rest == b""

    def test_keeps_partial_frame_as_remainder(self) -> None:
        frames, rest = decode_frames(b"", b"RESTORE\tob")

        assert frames == []
        assert rest == b"RESTORE\tob"

    def test_completes_frame_from_buffer(self) -> None:
        frames, rest = decode_frames(b"RESTORE\tob", b"j-1\t\t")

        assert frames == [Frame(word="RESTORE", args=("obj-1",))]
        assert rest == b""

    def test_multiple_frames_in_arrival_order(self) -> None:
        data = b"ADD\ta\t\tRESTORE\tb\t\tADD\tc\tx\t\t"

        frames, rest = decode_frames(b"", data)

        assert [f.word for f in frames] == ["ADD", "RESTORE", "ADD"]
        assert [f.args[0] for f in frames] == ["a", "b", "c"]
        assert rest == b""

    def test_trailing_partial_after_complete_frames(self) -> None:
        frames, rest = decode_frames(b"", b"ADD\ta\t\tADD\tb\t")

        assert frames == [Frame(word="ADD", args=("a",))]
        assert rest == b"ADD\tb\t"

    def test_skips_empty_frames(self) -> None:
        frames, rest = decode_frames(b"", b"\t\t\t\tADD\ta\t\t")

        assert frames == [Frame(word="ADD", args=("a",))]
        assert rest == b""

    def test_undecodable_bytes_are_preserved(self) -> None:
        frames, _ = decode_frames(b"", b"ADD\tobj\t\xff\xfe\t\t")

        assert encode_frame(frames[0].word, frames[0].args) == b"ADD\tobj\t\xff\xfe\t\t"

    def test_word_without_args(self) -> None:
        frames, _ = decode_frames(b"", b"PING\t\t")

        assert frames == [Frame(word="PING")]

    def test_stray_separator_does_not_corrupt_next_word(self) -> None:
        frames, rest = decode_frames(b"", b"ADD\ta\t\t\t")
        assert frames == [Frame(word="ADD", args=("a",))]

        frames, rest = decode_frames(rest, b"RESTORE\tb\t\t")

        assert frames == [Frame(word="RESTORE", args=("b",))]
        assert parse_command(frames[0]) == RestoreCommand(object_id="b")
        assert rest == b""


class TestParseCommand:
    def test_add_with_arguments(self) -> None:
        command = parse_command(Frame("ADD", ("obj-1", "--flag", "value")))

        assert command == AddCommand(object_id="obj-1", args=("--flag", "value"))

    def test_add_without_arguments(self) -> None:
        assert parse_command(Frame("ADD", ("obj-1",))) == AddCommand(object_id="obj-1")

    def test_add_without_object_id_raises(self) -> None:
        with pytest.raises(ProtocolError, match="missing an object id") as exc_info:
            _ = parse_command(Frame("ADD"))

        assert exc_info.value.word == "ADD"

    def test_restore(self) -> None:
        assert parse_command(Frame("RESTORE", ("obj-1",))) == RestoreCommand("obj-1")

    @pytest.mark.parametrize("args", [(), ("a", "b")])
    def test_restore_requires_exactly_one_arg(self, args: tuple[str, ...]) -> None:
        with pytest.raises(ProtocolError) as exc_info:
            _ = parse_command(Frame("RESTORE", args))

        assert exc_info.value.fields == args

    def test_unknown_word(self) -> None:
        command = parse_command(Frame("PING", ("x",)))

        assert command == UnknownCommand(word="PING", args=("x",))

    def test_words_are_case_sensitive(self) -> None:
        assert isinstance(parse_command(Frame("add", ("x",))), UnknownCommand)


class TestEncodeFrame:
    def test_encodes_add(self) -> None:
        assert encode_frame("ADD", ["obj-1", "--flag"]) == b"ADD\tobj-1\t--flag\t\t"

    def test_encode_command_restore(self) -> None:
        assert encode_command(RestoreCommand("obj-1")) == b"RESTORE\tobj-1\t\t"

    def test_encode_command_add(self) -> None:
        command = AddCommand(object_id="obj-1", args=("a", "b"))

        assert encode_command(command) == b"ADD\tobj-1\ta\tb\t\t"

    def test_rejects_empty_field(self) -> None:
        with pytest.raises(ProtocolError, match="must not be empty"):
            _ = encode_frame("ADD", ["obj-1", ""])

    def test_rejects_separator_in_field(self) -> None:
        with pytest.raises(ProtocolError, match="contains the separator"):
            _ = encode_frame("ADD", ["obj\t1"])

    def test_rejects_unencodable_field(self) -> None:
        with pytest.raises(ProtocolError, match="not encodable"):
            _ = encode_frame("ADD", ["obj", "\ud800"])

    def test_protocol_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):  # noqa: PT011
            _ = encode_frame("")


class TestFrameDecoder:
    def test_buffers_across_feeds(self) -> None:
        decoder = FrameDecoder()

        assert decoder.feed(b"ADD\tob") == []
        assert decoder.buffer == b"ADD\tob"
        assert decoder.feed(b"j\t") == []
        assert decoder.feed(b"\t") == [Frame("ADD", ("obj",))]
        assert decoder.buffer == b""

    def test_reset_discards_partial_frame(self) -> None:
        decoder = FrameDecoder()
        _ = decoder.feed(b"ADD\tgarbage")

        decoder.reset()

        assert decoder.buffer == b""
        assert decoder.feed(b"RESTORE\tx\t\t") == [Frame("RESTORE", ("x",))]

    def test_empty_feed_returns_nothing(self) -> None:
        assert FrameDecoder().feed(b"") == []

    def test_stray_separator_between_feeds(self) -> None:
        decoder = FrameDecoder()

        assert decoder.feed(b"ADD\ta\t\t\t") == [Frame("ADD", ("a",))]
        assert decoder.feed(b"RESTORE\ta\t\t") == [Frame("RESTORE", ("a",))]
