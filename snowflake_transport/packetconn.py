"""A packet interface over a byte stream, using encapsulation framing."""

from __future__ import annotations

import io
from typing import Any

from .encapsulation import ShortBufferError, read_data, write_data


class EncapsulationPacketConn:
    """Sends and receives whole packets over a stream.

    Each packet is framed as one encapsulation data chunk; padding chunks
    on the way in are skipped.
    """

    def __init__(self, local_addr: Any, remote_addr: Any, conn: Any) -> None:
        self.local_addr = local_addr
        self.remote_addr = remote_addr
        self._conn = conn

    def read_from(self, size: int) -> tuple[bytes, Any]:
        """Read the next packet, truncated to ``size`` bytes, and its sender.

        Raises :class:`EOFError` when the stream ends between packets.
        """
        try:
            data = read_data(self._conn, size)
        except ShortBufferError as exc:
            data = exc.data
        return data, self.remote_addr

    def write_to(self, data: bytes, addr: Any = None) -> int:
        """Write ``data`` as one packet; ``addr`` is ignored."""
        buffer = io.BytesIO()
        write_data(buffer, data)
        self._conn.write(buffer.getvalue())
        flush = getattr(self._conn, "flush", None)
        if flush is not None:
            flush()
        return len(data)

    def close(self) -> None:
        """Close the underlying stream."""
        self._conn.close()