"""Reading requests in the Redis wire protocol (RESP)."""

from __future__ import annotations

from typing import BinaryIO

_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


class ProtocolError(ValueError):
    """Raised on input that is not a valid request."""

    def __init__(self, message: str = "invalid request") -> None:
        super().__init__(message)


def _read_line(reader: BinaryIO) -> bytes:
    line = reader.readline()
    if not line.endswith(b"\n"):
        raise EOFError("unexpected end of input")
    if len(line) < 3:
        raise ProtocolError()
    return line


def _parse_length(line: bytes) -> int:
    try:
        return int(line[1:-2])
    except ValueError as exc:
        raise ProtocolError(f"invalid length: {line[1:-2]!r}") from exc


def _decode(data: bytes) -> str:
    return data.decode(_ENCODING, _ERRORS)


def read_array(reader: BinaryIO) -> list[str]:
    """Read one request: an array of bulk strings.

    Raises EOFError when the input ends early and ProtocolError on bad input.
    A null or empty array gives an empty list.
    """
    line = _read_line(reader)
    if line[:1] != b"*":
        raise ProtocolError()
    count = _parse_length(line)
    return [read_string(reader) for _ in range(max(count, 0))]


def read_string(reader: BinaryIO) -> str:
    """Read a single simple string, error, integer or bulk string."""
    line = _read_line(reader)
    kind = line[:1]
    if kind in (b"+", b"-", b":"):
        return _decode(line[1:-2])
    if kind != b"$":
        raise ProtocolError()

    length = _parse_length(line)
    if length < 0:
        # A null bulk string.
        return ""
    wanted = length + 2
    chunks: list[bytes] = []
    received = 0
    while received < wanted:
        chunk = reader.read(wanted - received)
        if not chunk:
            raise EOFError("unexpected end of input")
        chunks.append(chunk)
        received += len(chunk)
    return _decode(b"".join(chunks)[:length])