"""Framing of variable-size data and padding chunks in a byte stream.

Each chunk starts with a length prefix of one to three bytes. In the first
byte, the top bit ("d") says whether the chunk is data (1) or padding (0),
the next bit ("c") says whether another prefix byte follows, and the low six
bits carry the most significant part of the length. Each following prefix
byte has its own "c" bit and seven value bits::

    00xxxxxx                    xxxxxx bytes of padding
    10xxxxxx                    xxxxxx bytes of data
    01xxxxxx 0yyyyyyy           xxxxxxyyyyyyy bytes of padding
    11xxxxxx 0yyyyyyy           xxxxxxyyyyyyy bytes of data
    01xxxxxx 1yyyyyyy 0zzzzzzz  xxxxxxyyyyyyyzzzzzzz bytes of padding
    11xxxxxx 1yyyyyyy 0zzzzzzz  xxxxxxyyyyyyyzzzzzzz bytes of data

The longest encodable length is 0xfffff. Prefixes need not be minimal.
"""

from __future__ import annotations

from typing import BinaryIO

MAX_LENGTH = 0xFFFFF
_PADDING_CHUNK = 1024
_DISCARD_CHUNK = 64 * 1024


class EncapsulationError(Exception):
    """Base class for framing errors."""


class TooLongError(EncapsulationError):
    """A length prefix is longer than three bytes, or data is too long to frame."""

    def __init__(self, message: str = "length prefix is too long") -> None:
        super().__init__(message)


class UnexpectedEOFError(EncapsulationError):
    """The stream ended inside a length prefix or a chunk body."""

    def __init__(self, message: str = "unexpected end of stream") -> None:
        super().__init__(message)


class ShortBufferError(EncapsulationError):
    """A data chunk was longer than the caller's limit.

    ``data`` holds the leading part that fitted; the rest of the chunk has
    been consumed from the stream.
    """

    def __init__(self, data: bytes, length: int) -> None:
        super().__init__(f"data chunk of {length} bytes truncated to {len(data)}")
        self.data = data
        self.length = length


def _read_exact(stream: BinaryIO, n: int) -> bytes:
    parts = []
    remaining = n
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


def _discard(stream: BinaryIO, n: int) -> None:
    while n > 0:
        chunk = stream.read(min(n, _DISCARD_CHUNK))
        if not chunk:
            raise UnexpectedEOFError()
        n -= len(chunk)


def read_data(stream: BinaryIO, limit: int | None = None) -> bytes:
    """Read the next data chunk, skipping any padding chunks before it.

    ``limit`` caps how many bytes are returned; ``None`` means no cap. If
    the chunk is longer than ``limit``, the remainder is discarded and
    :class:`ShortBufferError` is raised carrying the truncated data.
    Raises :class:`EOFError` only if the stream ends before the first byte
    of a length prefix, and :class:`UnexpectedEOFError` if it ends anywhere
    else.
    """
    if limit is not None and limit < 0:
        raise ValueError("negative limit")
    while True:
        first = stream.read(1)
        if not first:
            raise EOFError("end of stream")
        byte = first[0]
        is_data = bool(byte & 0x80)
        more_length = bool(byte & 0x40)
        length = byte & 0x3F
        extra = 0
        while more_length:
            if extra >= 2:
                raise TooLongError()
            following = stream.read(1)
            if not following:
                raise UnexpectedEOFError()
            more_length = bool(following[0] & 0x80)
            length = (length << 7) | (following[0] & 0x7F)
            extra += 1
        if is_data:
            wanted = length if limit is None else min(length, limit)
            data = _read_exact(stream, wanted)
            if len(data) < wanted:
                raise UnexpectedEOFError()
            if wanted < length:
                _discard(stream, length - wanted)
                raise ShortBufferError(data, length)
            return data
        _discard(stream, length)


def _data_prefix(n: int) -> bytes:
    if (n & 0x3F) == n:
        return bytes([0x80 | n])
    if ((n >> 7) & 0x3F) == (n >> 7) and n >= 0:
        return bytes([0xC0 | ((n >> 7) & 0x3F), n & 0x7F])
    if ((n >> 14) & 0x3F) == (n >> 14) and n >= 0:
        return bytes([0xC0 | ((n >> 14) & 0x3F), 0x80 | ((n >> 7) & 0x7F), n & 0x7F])
    raise TooLongError()


def write_data(stream: BinaryIO, data: bytes) -> int:
    """Write ``data`` as one data chunk; return the bytes written, prefix included."""
    prefix = _data_prefix(len(data))
    stream.write(prefix)
    stream.write(data)
    return len(prefix) + len(data)


def write_padding(stream: BinaryIO, n: int) -> int:
    """Write padding chunks totalling exactly ``n`` bytes, prefixes included."""
    if n < 0:
        raise ValueError("negative length")
    total = 0
    while n > 0:
        size = min(n, _PADDING_CHUNK)
        n -= size
        if size - 1 <= 0x3F:
            size -= 1
            prefix = bytes([size])
        else:
            size -= 2
            prefix = bytes([0x40 | ((size >> 7) & 0x3F), size & 0x7F])
        stream.write(prefix)
        stream.write(bytes(size))
        total += len(prefix) + size
    return total


def max_data_for_size(n: int) -> int:
    """Return the longest data whose framed size is no larger than ``n``."""
    if n == 0:
        raise ValueError("zero length")
    try:
        prefix = _data_prefix(n)
    except TooLongError:
        return MAX_LENGTH - 3
    return n - len(prefix)