"""Traffic counters that report transferred byte totals at regular intervals."""

from __future__ import annotations

import abc
import logging
import threading

LOG_TIME_INTERVAL = 5.0

_log = logging.getLogger(__name__)


class BytesLogger(abc.ABC):
    """Something that is told how many bytes went in and out."""

    @abc.abstractmethod
    def add_outbound(self, amount: int) -> None:
        """Record ``amount`` bytes sent."""

    @abc.abstractmethod
    def add_inbound(self, amount: int) -> None:
        """Record ``amount`` bytes received."""


class BytesNullLogger(BytesLogger):
    """A logger that discards everything it is told."""

    def add_outbound(self, amount: int) -> None:
        """Discard the amount."""

    def add_inbound(self, amount: int) -> None:
        """Discard the amount."""


class BytesSyncLogger(BytesLogger):
    """Thread-safe counters, logged and reset every ``interval`` seconds.

    A background thread calls :meth:`flush` periodically until
    :meth:`close` is called.
    """

    def __init__(self, interval: float = LOG_TIME_INTERVAL) -> None:
        self._interval = interval
        self._lock = threading.Lock()
        self._inbound = 0
        self._outbound = 0
        self._in_events = 0
        self._out_events = 0
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name="bytes-logger", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            self.flush()

    def add_outbound(self, amount: int) -> None:
        with self._lock:
            self._outbound += amount
            self._out_events += 1

    def add_inbound(self, amount: int) -> None:
        with self._lock:
            self._inbound += amount
            self._in_events += 1

    def flush(self) -> str | None:
        """Log and reset the counters; return the logged line, if any."""
        with self._lock:
            inbound, outbound = self._inbound, self._outbound
            in_events, out_events = self._in_events, self._out_events
            self._inbound = self._outbound = 0
            self._in_events = self._out_events = 0
        if in_events == 0 and out_events == 0:
            return None
        message = (
            f"Traffic Bytes (in|out): {inbound} | {outbound} "
            f"-- ({in_events} OnMessages, {out_events} Sends)"
        )
        _log.info(message)
        return message

    def close(self) -> None:
        """Stop periodic logging."""
        self._stop.set()
        if self._thread is not threading.current_thread():
            self._thread.join()