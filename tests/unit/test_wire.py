"""Unit tests for the wire codec — Cap'n Proto framing and message decoding."""

from __future__ import annotations

import io
import struct

import pytest

from ekamdash.bridge.wire import (
    UpdateStream,
    WireFormatError,
    decode_header,
    decode_update,
    encode_header,
    encode_update,
    read_message,
    schema,
)
from ekamdash.models.updates import StreamHeader, TaskState, TaskUpdate

# One segment of two zero words: a message whose root pointer is null, so
# every field reads as its default.
EMPTY_MESSAGE = struct.pack("<II", 0, 2) + b"\0" * 16


class TrickleSource:
    """Returns at most one byte per read, like a slow socket."""

    def __init__(self, data: bytes) -> None:
        self._buffer = io.BytesIO(data)

    def read(self, size: int = -1) -> bytes:
        return self._buffer.read(1 if size != 0 else 0)


# ---------------------------------------------------------------------------
# Test: message framing
# ---------------------------------------------------------------------------


class TestFraming:
    def test_reads_messages_in_order(self):
        first = encode_update(TaskUpdate(id=1, noun="a"))
        second = encode_update(TaskUpdate(id=2, log="x" * 100))
        source = io.BytesIO(first + second)
        assert read_message(source) == first
        assert read_message(source) == second
        assert read_message(source) is None

    def test_short_reads_are_reassembled(self):
        framed = encode_update(TaskUpdate(id=9, log="y" * 300))
        assert read_message(TrickleSource(framed)) == framed

    def test_even_segment_count_is_padded(self):
        # Two segments: count-1, two sizes, four bytes of padding.
        framed = struct.pack("<IIII", 1, 1, 1, 0) + b"\0" * 16
        source = io.BytesIO(framed + EMPTY_MESSAGE)
        assert read_message(source) == framed
        assert read_message(source) == EMPTY_MESSAGE

    def test_eof_inside_segment_count(self):
        with pytest.raises(WireFormatError, match="segment table"):
            read_message(io.BytesIO(b"\x00\x00"))

    def test_truncated_body(self):
        with pytest.raises(WireFormatError, match="message body"):
            read_message(io.BytesIO(EMPTY_MESSAGE[:-3]))

    def test_implausible_segment_count(self):
        with pytest.raises(WireFormatError, match="segments"):
            read_message(io.BytesIO(struct.pack("<I", 0xFFFFFFFF)))

    def test_message_over_limit(self):
        framed = struct.pack("<II", 0, 9) + b"\0" * 72
        with pytest.raises(WireFormatError, match="exceeds"):
            read_message(io.BytesIO(framed), max_bytes=64)


# ---------------------------------------------------------------------------
# Test: messages
# ---------------------------------------------------------------------------


class TestDecode:
    def test_full_update(self):
        raw = schema.TaskUpdate.new_message(
            id=7, state="failed", noun="src/a.cc", verb="compile", silent=True, log="x\n"
        ).to_bytes()
        update = decode_update(raw)
        assert update.id == 7
        assert update.state == TaskState.FAILED
        assert update.noun == "src/a.cc"
        assert update.verb == "compile"
        assert update.silent is True
        assert update.log == "x\n"

    def test_unchanged_and_unset_fields_are_none(self):
        update = decode_update(schema.TaskUpdate.new_message(id=3).to_bytes())
        assert update.id == 3
        assert update.state is None
        assert update.noun is None
        assert update.verb is None
        assert update.log is None
        assert update.silent is None

    def test_empty_text_is_present(self):
        update = decode_update(schema.TaskUpdate.new_message(id=3, log="").to_bytes())
        assert update.log == ""

    def test_silent_only_on_creating_record(self):
        raw = schema.TaskUpdate.new_message(id=5, state="running", silent=True).to_bytes()
        assert decode_update(raw).silent is None

    def test_header_from_null_root(self):
        assert decode_header(EMPTY_MESSAGE).project_root is None

    def test_update_from_null_root(self):
        update = decode_update(EMPTY_MESSAGE)
        assert update.id == 0
        assert update.state is None

    def test_header(self):
        raw = schema.Header.new_message(projectRoot="/work").to_bytes()
        assert decode_header(raw).project_root == "/work"

    def test_garbage_is_format_error(self):
        # Root struct pointer whose offset runs far past its one-word segment.
        garbage = struct.pack("<II", 0, 1) + struct.pack("<iHH", 1000 << 2, 1, 0)
        with pytest.raises(WireFormatError):
            decode_update(garbage)

    def test_encode_leaves_absent_fields_unset(self):
        raw = encode_update(TaskUpdate(id=4, state=TaskState.RUNNING))
        with schema.TaskUpdate.from_bytes(raw) as message:
            assert message.id == 4
            assert str(message.state) == "running"
            assert not message._has("noun")
            assert not message._has("log")

    def test_encode_then_decode_keeps_every_field(self):
        original = TaskUpdate(
            id=12, state=TaskState.BLOCKED, noun="n", verb="v", silent=False, log="l"
        )
        assert decode_update(encode_update(original)) == original


# ---------------------------------------------------------------------------
# Test: UpdateStream
# ---------------------------------------------------------------------------


class TestUpdateStream:
    def test_header_then_updates(self):
        data = (
            encode_header(StreamHeader(project_root="/p"))
            + encode_update(TaskUpdate(id=1, state=TaskState.PENDING, noun="a"))
            + encode_update(TaskUpdate(id=1, state=TaskState.PASSED))
        )
        stream = UpdateStream(io.BytesIO(data))
        assert stream.read_header().project_root == "/p"
        assert stream.header.project_root == "/p"
        assert stream.next_update().state == TaskState.PENDING
        assert stream.next_update().state == TaskState.PASSED
        assert stream.next_update() is None

    def test_header_without_project_root(self):
        stream = UpdateStream(io.BytesIO(EMPTY_MESSAGE))
        assert stream.read_header().project_root is None
        assert stream.next_update() is None

    def test_eof_before_header(self):
        with pytest.raises(WireFormatError, match="before the header"):
            UpdateStream(io.BytesIO(b"")).read_header()

    def test_wire_format_error_is_value_error(self):
        assert issubclass(WireFormatError, ValueError)
