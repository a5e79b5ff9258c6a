"""Wire codec for the build tool's status stream.

Framing
-------
Every record is a Cap'n Proto message in the standard unpacked stream
framing: a little-endian ``uint32`` holding the segment count minus one,
one ``uint32`` size (in 8-byte words) per segment, four bytes of padding
when the segment count is even, then the segments themselves.  The first
message on a connection is a ``Header``; every message after it is a
``TaskUpdate`` (see ``dashboard.capnp`` beside this module).

The reader here only finds message boundaries so that reads stay on the
connection's own file object; the message bodies are decoded by pycapnp.
Decoding is structural only: the meaning of an update (e.g. an unknown
id) is the stream reader's business.
"""

from __future__ import annotations

import logging
import struct
from pathlib import Path
from typing import Any, Protocol

import capnp
from pydantic import ValidationError

from ekamdash.models.updates import StreamHeader, TaskUpdate

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("dashboard.capnp")
schema = capnp.load(str(SCHEMA_PATH))

DEFAULT_MAX_RECORD_BYTES = 16 * 1024 * 1024

# The build tool sends single-segment messages; anything near this many
# segments is corrupt framing.
_MAX_SEGMENTS = 512
_WORD = 8
_UNCHANGED = "unchanged"


class WireFormatError(ValueError):
    """Raised when the byte stream cannot be decoded."""


class ByteSource(Protocol):
    """Anything with a blocking ``read(n)``, e.g. ``socket.makefile("rb")``."""

    def read(self, size: int = -1, /) -> bytes: ...


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------


def _read_exact(source: ByteSource, size: int) -> bytes:
    """Read exactly *size* bytes; short reads are retried until EOF."""
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        chunk = source.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _read_part(source: ByteSource, size: int, what: str) -> bytes:
    data = _read_exact(source, size)
    if len(data) != size:
        raise WireFormatError(
            f"Stream ended inside a message {what} ({len(data)}/{size} bytes)"
        )
    return data


def read_message(
    source: ByteSource, *, max_bytes: int = DEFAULT_MAX_RECORD_BYTES
) -> bytes | None:
    """Read one framed message, segment table included.

    Returns
    -------
    bytes | None
        The complete frame, ready for ``from_bytes``, or ``None`` if the
        stream ended cleanly between messages.

    Raises
    ------
    WireFormatError
        On a truncated message, an implausible segment table, or a body
        larger than *max_bytes*.
    """
    first = _read_exact(source, 4)
    if not first:
        return None
    if len(first) != 4:
        raise WireFormatError("Stream ended inside a segment table")

    (count_minus_one,) = struct.unpack("<I", first)
    segment_count = count_minus_one + 1
    if segment_count > _MAX_SEGMENTS:
        raise WireFormatError(
            f"Segment table claims {segment_count} segments"
        )

    # Sizes for every segment, then padding to a word boundary.
    table_rest = 4 * segment_count + (4 if segment_count % 2 == 0 else 0)
    rest = _read_part(source, table_rest, "segment table")
    sizes = struct.unpack(f"<{segment_count}I", rest[: 4 * segment_count])

    body_size = sum(sizes) * _WORD
    if body_size > max_bytes:
        raise WireFormatError(
            f"Message of {body_size} bytes exceeds the {max_bytes}-byte limit"
        )
    body = _read_part(source, body_size, "body")
    return first + rest + body


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def _text(reader: Any, field: str) -> str | None:
    return getattr(reader, field) if reader._has(field) else None


def decode_header(raw: bytes) -> StreamHeader:
    """Decode the connection header message."""
    try:
        with schema.Header.from_bytes(raw) as message:
            data = {"project_root": _text(message, "projectRoot")}
    except capnp.KjException as exc:
        raise WireFormatError(f"Undecodable header: {exc}") from exc
    try:
        return StreamHeader.model_validate(data)
    except ValidationError as exc:
        raise WireFormatError(f"Header validation failed: {exc}") from exc


def decode_update(raw: bytes) -> TaskUpdate:
    """Decode one task update message.

    ``UNCHANGED`` and unset text fields come back as ``None``.  ``silent``
    only means something on the record that introduces a task (the one
    carrying its noun or verb), so it is ``None`` everywhere else.
    """
    try:
        with schema.TaskUpdate.from_bytes(raw) as message:
            state = str(message.state)
            data: dict[str, Any] = {
                "id": message.id,
                "state": None if state == _UNCHANGED else state,
                "noun": _text(message, "noun"),
                "verb": _text(message, "verb"),
                "log": _text(message, "log"),
            }
            if data["noun"] is not None or data["verb"] is not None:
                data["silent"] = message.silent
    except capnp.KjException as exc:
        raise WireFormatError(f"Undecodable update: {exc}") from exc
    try:
        return TaskUpdate.model_validate(data)
    except ValidationError as exc:
        raise WireFormatError(f"Update validation failed: {exc}") from exc


def encode_header(header: StreamHeader) -> bytes:
    """Serialize and frame a header message."""
    fields = {}
    if header.project_root is not None:
        fields["projectRoot"] = header.project_root
    return schema.Header.new_message(**fields).to_bytes()


def encode_update(update: TaskUpdate) -> bytes:
    """Serialize and frame an update message; absent fields are left unset."""
    message = schema.TaskUpdate.new_message(id=update.id)
    if update.state is not None:
        message.state = update.state.value
    for field in ("noun", "verb", "log"):
        value = getattr(update, field)
        if value is not None:
            setattr(message, field, value)
    if update.silent is not None:
        message.silent = update.silent
    return message.to_bytes()


# ---------------------------------------------------------------------------
# Record stream
# ---------------------------------------------------------------------------


class UpdateStream:
    """Pulls a header and then updates, one at a time, from a byte source.

    Parameters
    ----------
    source:
        Blocking byte source for one connection.
    max_record_bytes:
        Upper bound on a single message body.
    """

    def __init__(
        self, source: ByteSource, *, max_record_bytes: int = DEFAULT_MAX_RECORD_BYTES
    ) -> None:
        self._source = source
        self._max_record_bytes = max_record_bytes
        self._header: StreamHeader | None = None

    @property
    def header(self) -> StreamHeader | None:
        return self._header

    def read_header(self) -> StreamHeader:
        """Consume the handshake message.  EOF here is a format error."""
        raw = read_message(self._source, max_bytes=self._max_record_bytes)
        if raw is None:
            raise WireFormatError("Stream ended before the header")
        self._header = decode_header(raw)
        logger.debug("Header received: project_root=%s", self._header.project_root)
        return self._header

    def next_update(self) -> TaskUpdate | None:
        """Return the next update, or ``None`` at end of stream."""
        raw = read_message(self._source, max_bytes=self._max_record_bytes)
        if raw is None:
            return None
        return decode_update(raw)
