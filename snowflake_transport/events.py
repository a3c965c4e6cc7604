"""Snowflake events and a dispatcher that fans them out to listeners."""

from __future__ import annotations

import abc
import math
import re
import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

_SCRUBBED = "[scrubbed]"
_IPV6 = re.compile(
    r"\[?(?<![0-9A-Za-z:])(?:[0-9A-Fa-f]{0,4}:){2,7}[0-9A-Fa-f]{0,4}"
    r"(?:%[0-9A-Za-z]+)?\]?(?::\d{1,5})?"
)
_IPV4 = re.compile(r"(?<![\d.])(?:\d{1,3}\.){3}\d{1,3}(?::\d{1,5})?(?![\d.])")


def scrub(text: str) -> str:
    """Replace IP addresses (and any port after them) in ``text`` with a placeholder."""
    text = _IPV6.sub(_SCRUBBED, text)
    return _IPV4.sub(_SCRUBBED, text)


def _frac(value: int, precision: int) -> str:
    whole, frac = divmod(value, 10**precision)
    if not frac:
        return str(whole)
    digits = str(frac).rjust(precision, "0").rstrip("0")
    return f"{whole}.{digits}"


def _format_duration(delta: timedelta) -> str:
    ns = (delta.days * 86400 + delta.seconds) * 10**9 + delta.microseconds * 1000
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    u = abs(ns)
    if u < 10**9:
        if u < 1000:
            text = f"{u}ns"
        elif u < 10**6:
            text = _frac(u, 3) + "µs"
        else:
            text = _frac(u, 6) + "ms"
        return sign + text
    minute = 60 * 10**9
    minutes, seconds_ns = divmod(u, minute)
    text = _frac(seconds_ns, 9) + "s"
    if minutes:
        hours, minutes = divmod(minutes, 60)
        text = f"{minutes}m" + text
        if hours:
            text = f"{hours}h" + text
    return sign + text


def _format_rate(amount: int, seconds: float) -> str:
    if seconds == 0:
        if amount > 0:
            return "+Inf"
        if amount < 0:
            return "-Inf"
        return "NaN"
    rate = amount / seconds
    if math.isinf(rate):
        return "+Inf" if rate > 0 else "-Inf"
    return f"{rate:.2f}"


class SnowflakeEvent:
    """Base class of all snowflake events."""

    def __str__(self) -> str:
        return type(self).__name__


@dataclass
class OfferCreated(SnowflakeEvent):
    """The client created (or failed to create) its SDP offer."""

    local_description: Any = None
    error: BaseException | None = None

    def __str__(self) -> str:
        if self.error is not None:
            return f"offer creation failure {scrub(str(self.error))}"
        return "offer created"


@dataclass
class BrokerRendezvous(SnowflakeEvent):
    """The broker answered (or failed to answer) the client's offer."""

    remote_description: Any = None
    error: BaseException | None = None

    def __str__(self) -> str:
        if self.error is not None:
            return f"broker failure {scrub(str(self.error))}"
        return "broker rendezvous peer received"


@dataclass
class SnowflakeConnected(SnowflakeEvent):
    """A data channel to a snowflake proxy opened."""

    def __str__(self) -> str:
        return "connected"


@dataclass
class SnowflakeConnectionFailed(SnowflakeEvent):
    """A connection to a snowflake proxy failed."""

    error: BaseException

    def __str__(self) -> str:
        return f"trying a new proxy: {scrub(str(self.error))}"


@dataclass
class ProxyStarting(SnowflakeEvent):
    """A proxy is starting."""

    def __str__(self) -> str:
        return "Proxy starting"


@dataclass
class ProxyClientConnected(SnowflakeEvent):
    """A client connected to a proxy."""

    def __str__(self) -> str:
        return "client connected"


@dataclass
class ProxyConnectionOver(SnowflakeEvent):
    """A proxied connection closed."""

    inbound_traffic: int = 0
    outbound_traffic: int = 0

    def __str__(self) -> str:
        return "Proxy connection closed"


@dataclass
class ProxyStats(SnowflakeEvent):
    """A periodic summary of a proxy's traffic."""

    connection_count: int = 0
    inbound_bytes: int = 0
    outbound_bytes: int = 0
    inbound_unit: str = ""
    outbound_unit: str = ""
    summary_interval: timedelta = timedelta(0)

    def __str__(self) -> str:
        seconds = self.summary_interval.total_seconds()
        in_rate = _format_rate(self.inbound_bytes, seconds)
        out_rate = _format_rate(self.outbound_bytes, seconds)
        return (
            f"In the last {_format_duration(self.summary_interval)}, "
            f"there were {self.connection_count} completed connections. "
            f"Traffic Relayed ↓ {self.inbound_bytes} {self.inbound_unit} "
            f"({in_rate} {self.inbound_unit}/s), "
            f"↑ {self.outbound_bytes} {self.outbound_unit} "
            f"({out_rate} {self.outbound_unit}/s)."
        )


@dataclass
class CurrentNATTypeDetermined(SnowflakeEvent):
    """The NAT type of this host was determined."""

    nat_type: str = ""

    def __str__(self) -> str:
        return f"NAT type: {self.nat_type}"


class SnowflakeEventReceiver(abc.ABC):
    """Anything that is told about snowflake events."""

    @abc.abstractmethod
    def on_new_snowflake_event(self, event: SnowflakeEvent) -> None:
        """Handle ``event``; must not block."""


class EventDispatcher(SnowflakeEventReceiver):
    """Forwards every event it receives to all registered listeners."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._listeners: list[SnowflakeEventReceiver] = []

    def on_new_snowflake_event(self, event: SnowflakeEvent) -> None:
        with self._lock:
            for listener in self._listeners:
                listener.on_new_snowflake_event(event)

    def add_listener(self, receiver: SnowflakeEventReceiver) -> None:
        """Register ``receiver`` to be told about future events."""
        with self._lock:
            self._listeners.append(receiver)

    def remove_listener(self, receiver: SnowflakeEventReceiver) -> None:
        """Unregister every registration of ``receiver``."""
        with self._lock:
            self._listeners = [l for l in self._listeners if l is not receiver]