"""A pool of pre-connected snowflake peers, and the loop that fills it.

Keeping a few fresh connections ready allows quick recovery when the
active peer disconnects. Only one peer is in use at a time.
"""

from __future__ import annotations

import abc
import logging
import os
import threading
import time
from collections import deque
from typing import Callable

from .bytes_logger import BytesLogger, BytesNullLogger

RECONNECT_TIMEOUT = 10.0

_log = logging.getLogger(__name__)


class Peer:
    """A connection to a remote snowflake proxy.

    Resources are released on the first :meth:`close`, either by
    callbacks registered in ``_close_callbacks`` or by a subclass
    overriding ``_cleanup``.
    """

    def __init__(self) -> None:
        self.id = "snowflake-" + os.urandom(8).hex()
        self.bytes_logger: BytesLogger = BytesNullLogger()
        self._closed = threading.Event()
        self._close_lock = threading.Lock()
        self._close_callbacks: list[Callable[[], None]] = []

    @property
    def closed(self) -> bool:
        """Whether the peer has been closed."""
        return self._closed.is_set()

    def close(self) -> None:
        """Close the connection; later calls do nothing."""
        with self._close_lock:
            if self._closed.is_set():
                return
            self._closed.set()
        self._cleanup()
        _log.info("WebRTC: Closing")

    def _cleanup(self) -> None:
        for callback in reversed(self._close_callbacks):
            callback()
        self._close_callbacks.clear()


class Tongue(abc.ABC):
    """A dialer that catches new snowflakes."""

    @abc.abstractmethod
    def catch(self) -> Peer:
        """Connect to a new snowflake."""

    @property
    @abc.abstractmethod
    def max_peers(self) -> int:
        """The largest number of snowflakes a client may hold."""


class SnowflakeCollector(abc.ABC):
    """Manages a client's collection of snowflakes."""

    @abc.abstractmethod
    def collect(self) -> Peer:
        """Connect to and add one snowflake to the collection."""

    @abc.abstractmethod
    def pop(self) -> Peer | None:
        """Remove and return the most available snowflake."""

    @abc.abstractmethod
    def melted(self) -> threading.Event:
        """An event that is set once the collector has stopped."""


class SnowflakesMeltedError(RuntimeError):
    """The collection has been ended."""

    def __init__(self) -> None:
        super().__init__("Snowflakes have melted")


class AtCapacityError(RuntimeError):
    """The collection already holds as many snowflakes as allowed."""

    def __init__(self, count: int, capacity: int) -> None:
        super().__init__(f"At capacity [{count}/{capacity}]")
        self.count = count
        self.capacity = capacity


class Peers(SnowflakeCollector):
    """Keeps track of connected peers and hands out usable ones."""

    def __init__(self, tongue: Tongue) -> None:
        if tongue is None:
            raise ValueError("missing Tongue to catch Snowflakes with")
        self.tongue = tongue
        self.bytes_logger: BytesLogger = BytesNullLogger()
        self._capacity = tongue.max_peers
        self._ready: deque[Peer] = deque()
        self._active: list[Peer] = []
        self._cond = threading.Condition()
        self._ended = False
        self._melt = threading.Event()
        self._collect_lock = threading.Lock()
        self._end_lock = threading.Lock()

    def collect(self) -> Peer:
        with self._collect_lock:
            if self._melt.is_set():
                raise SnowflakesMeltedError()
            count = self.count()
            capacity = self.tongue.max_peers
            if count >= capacity:
                raise AtCapacityError(count, capacity)
            _log.info(
                "WebRTC: Collecting a new Snowflake. Currently at [%d/%d]",
                count,
                capacity,
            )
            peer = self.tongue.catch()
            with self._cond:
                while len(self._ready) >= self._capacity and not self._ended:
                    self._cond.wait()
                if self._ended:
                    peer.close()
                    raise SnowflakesMeltedError()
                self._active.append(peer)
                self._ready.append(peer)
                self._cond.notify_all()
            return peer

    def pop(self) -> Peer | None:
        """Block until an open peer is available; ``None`` once ended."""
        with self._cond:
            while True:
                while not self._ready and not self._ended:
                    self._cond.wait()
                if not self._ready:
                    return None
                peer = self._ready.popleft()
                self._cond.notify_all()
                if peer.closed:
                    continue
                peer.bytes_logger = self.bytes_logger
                return peer

    def melted(self) -> threading.Event:
        return self._melt

    def count(self) -> int:
        """Number of open peers, whether popped or not."""
        with self._cond:
            self._active = [peer for peer in self._active if not peer.closed]
            return len(self._active)

    def end(self) -> None:
        """Close every peer and stop collecting new ones."""
        with self._end_lock:
            if self._melt.is_set():
                return
            self._melt.set()
        with self._cond:
            self._ended = True
            self._cond.notify_all()
        with self._collect_lock:
            count = self.count()
            with self._cond:
                peers, self._active = self._active, []
            for peer in peers:
                peer.close()
        _log.info("WebRTC: melted all %d snowflakes.", count)


def connect_loop(
    collector: SnowflakeCollector, reconnect_timeout: float = RECONNECT_TIMEOUT
) -> None:
    """Keep collecting snowflakes every ``reconnect_timeout`` seconds until melted."""
    melted = collector.melted()
    while True:
        started = time.monotonic()
        try:
            collector.collect()
        except Exception as exc:
            _log.info("WebRTC: %s  Retrying...", exc)
        remaining = reconnect_timeout - (time.monotonic() - started)
        if melted.wait(max(0.0, remaining)):
            _log.info("ConnectLoop: stopped.")
            return