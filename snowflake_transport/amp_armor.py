"""AMP armor: carrying binary data inside an AMP HTML document.

The payload is base64-encoded with the standard alphabet and "=" padding,
prefixed with the protocol version indicator ``0``, split into short chunks
separated by whitespace, and wrapped in ``<pre>`` elements inside the AMP
HTML boilerplate. Chunking protects against AMP caches that truncate long
words; splitting into several elements bounds how much text a decoder has
to buffer.

Decoding scans the document for ``<pre>`` elements (which may not nest),
removes ASCII whitespace from their text, concatenates the pieces, checks
the version indicator and base64-decodes the rest. Text outside ``<pre>``
elements and inside comments is ignored.
"""

from __future__ import annotations

import base64
import io
import re
from html.parser import HTMLParser
from typing import BinaryIO, Union

_BOILERPLATE_START = (
    "<!doctype html>\n"
    "<html amp>\n"
    "<head>\n"
    '<meta charset="utf-8">\n'
    '<script async src="https://cdn.ampproject.org/v0.js"></script>\n'
    '<link rel="canonical" href="#">\n'
    '<meta name="viewport" content="width=device-width">\n'
    "<style amp-boilerplate>body{-webkit-animation:-amp-start 8s steps(1,end) 0s 1 normal both;"
    "-moz-animation:-amp-start 8s steps(1,end) 0s 1 normal both;"
    "-ms-animation:-amp-start 8s steps(1,end) 0s 1 normal both;"
    "animation:-amp-start 8s steps(1,end) 0s 1 normal both}"
    "@-webkit-keyframes -amp-start{from{visibility:hidden}to{visibility:visible}}"
    "@-moz-keyframes -amp-start{from{visibility:hidden}to{visibility:visible}}"
    "@-ms-keyframes -amp-start{from{visibility:hidden}to{visibility:visible}}"
    "@-o-keyframes -amp-start{from{visibility:hidden}to{visibility:visible}}"
    "@keyframes -amp-start{from{visibility:hidden}to{visibility:visible}}</style>"
    "<noscript><style amp-boilerplate>body{-webkit-animation:none;-moz-animation:none;"
    "-ms-animation:none;animation:none}</style></noscript>\n"
    "</head>\n"
    "<body>\n"
).encode("ascii")
_BOILERPLATE_END = b"</body>\n</html>"

# Upper bound on the text a single HTML token may hold.
_ELEMENT_SIZE_LIMIT = 32 * 1024
_BYTES_PER_CHUNK = 32
# One whitespace byte after each chunk, plus one at the start of the element.
_CHUNKS_PER_ELEMENT = (_ELEMENT_SIZE_LIMIT - 1) // (_BYTES_PER_CHUNK + 1)

_ASCII_WHITESPACE = re.compile(r"[\t\n\f\r ]+")
_STD_B64 = re.compile(
    r"(?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?"
)
_READ_CHUNK = 64 * 1024

Source = Union[bytes, bytearray, memoryview, str, BinaryIO]


class ArmorError(ValueError):
    """AMP armor could not be decoded."""


class UnknownVersionError(ArmorError):
    """The version indicator inside the element encoding is not ``0``."""

    def __init__(self, version: str) -> None:
        super().__init__(f"unknown armor version indicator {version!r}")
        self.version = version


class _ElementEncoder:
    """Arranges text into ``<pre>`` elements of fixed-size chunks."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._chunk_counter = 0
        self._element_counter = 0

    def write(self, data: bytes) -> None:
        parts: list[bytes] = []
        view = memoryview(data)
        while view:
            if self._element_counter == 0 and self._chunk_counter == 0:
                parts.append(b"<pre>\n")
            n = min(_BYTES_PER_CHUNK - self._chunk_counter, len(view))
            parts.append(bytes(view[:n]))
            view = view[n:]
            self._chunk_counter += n
            if self._chunk_counter >= _BYTES_PER_CHUNK:
                self._chunk_counter = 0
                self._element_counter += 1
                parts.append(b"\n")
            if self._element_counter >= _CHUNKS_PER_ELEMENT:
                self._element_counter = 0
                parts.append(b"</pre>\n")
        if parts:
            self._stream.write(b"".join(parts))

    def close(self) -> None:
        if self._element_counter == 0 and self._chunk_counter == 0:
            return
        if self._chunk_counter == 0:
            self._stream.write(b"</pre>\n")
        else:
            self._stream.write(b"\n</pre>\n")


class ArmorEncoder:
    """Writes data to a binary stream as an AMP armored document.

    The boilerplate header is written at construction; :meth:`close` must be
    called to flush buffered data and write the trailer.
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        stream.write(_BOILERPLATE_START)
        self._element = _ElementEncoder(stream)
        self._element.write(b"0")
        self._pending = b""
        self._closed = False

    def write(self, data: bytes) -> int:
        """Encode ``data``; return the number of input bytes consumed."""
        if self._closed:
            raise ValueError("write to closed armor encoder")
        buffered = self._pending + bytes(data)
        whole = len(buffered) - len(buffered) % 3
        if whole:
            self._element.write(base64.b64encode(buffered[:whole]))
        self._pending = buffered[whole:]
        return len(data)

    def close(self) -> None:
        """Flush the final base64 group, close open elements, write the trailer."""
        if self._closed:
            return
        self._closed = True
        if self._pending:
            self._element.write(base64.b64encode(self._pending))
            self._pending = b""
        self._element.close()
        self._stream.write(_BOILERPLATE_END)

    def __enter__(self) -> ArmorEncoder:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()


def encode_armor(data: bytes) -> bytes:
    """Return ``data`` encoded as a complete AMP armored document."""
    buffer = io.BytesIO()
    with ArmorEncoder(buffer) as encoder:
        encoder.write(data)
    return buffer.getvalue()


class _ArmorParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.active = False
        self.pieces: list[str] = []
        self._run = 0

    def payload(self) -> str:
        return "".join(self.pieces)

    def handle_starttag(self, tag, attrs):
        self._run = 0
        if tag == "pre":
            if self.active:
                raise ArmorError("unexpected <pre>")
            self.active = True

    def handle_endtag(self, tag):
        self._run = 0
        if tag == "pre":
            if not self.active:
                raise ArmorError("unexpected </pre>")
            self.active = False

    def handle_startendtag(self, tag, attrs):
        # Self-closing tags neither open nor close an element.
        self._run = 0

    def handle_data(self, data):
        self._run += len(data)
        if self._run > _ELEMENT_SIZE_LIMIT:
            raise ArmorError("text exceeds the element size limit")
        if self.active:
            stripped = _ASCII_WHITESPACE.sub("", data)
            if stripped:
                self.pieces.append(stripped)

    def handle_comment(self, data):
        self._run = 0

    def handle_decl(self, decl):
        self._run = 0

    def handle_pi(self, data):
        self._run = 0

    def unknown_decl(self, data):
        self._run = 0


def _feed(parser: _ArmorParser, source: Source) -> None:
    if isinstance(source, str):
        parser.feed(source)
    elif isinstance(source, (bytes, bytearray, memoryview)):
        parser.feed(bytes(source).decode("latin-1"))
    else:
        while True:
            chunk = source.read(_READ_CHUNK)
            if not chunk:
                break
            parser.feed(chunk.decode("latin-1"))
    parser.close()


def decode_armor(source: Source) -> bytes:
    """Decode an AMP armored document given as bytes, text or a binary stream."""
    parser = _ArmorParser()
    try:
        _feed(parser, source)
        if parser.active:
            raise ArmorError("missing </pre> tag")
    except ArmorError as err:
        payload = parser.payload()
        if payload and payload[0] != "0":
            raise UnknownVersionError(payload[0]) from err
        raise
    payload = parser.payload()
    if not payload:
        raise ArmorError("missing version indicator")
    if payload[0] != "0":
        raise UnknownVersionError(payload[0])
    body = payload[1:]
    if not _STD_B64.fullmatch(body):
        raise ArmorError("illegal base64 data")
    return base64.b64decode(body.encode("ascii"))