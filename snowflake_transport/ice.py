"""Parsing and selection of the STUN servers used for ICE."""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass
from typing import Iterable, Sequence
from urllib.parse import urlsplit

DEFAULT_STUN_PORT = 3478

_PORT = re.compile(r"[+-]?[0-9]+")

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ICEServer:
    """An ICE server and the URLs it is reached by."""

    urls: tuple[str, ...]


class _MissingPortError(ValueError):
    def __init__(self) -> None:
        super().__init__("missing port in address")


def _split_host_port(hostport: str) -> tuple[str, str]:
    last = hostport.rfind(":")
    if last < 0:
        raise _MissingPortError()
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError("missing ']' in address")
        if end + 1 == len(hostport):
            raise _MissingPortError()
        if end + 1 != last:
            if hostport[end + 1] == ":":
                raise ValueError("too many colons in address")
            raise _MissingPortError()
        host = hostport[1:end]
        host_from, port_from = 1, end + 1
    else:
        host = hostport[:last]
        if ":" in host:
            raise ValueError("too many colons in address")
        host_from, port_from = 0, 0
    if "[" in hostport[host_from:]:
        raise ValueError("unexpected '[' in address")
    if "]" in hostport[port_from:]:
        raise ValueError("unexpected ']' in address")
    return host, hostport[last + 1 :]


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _canonical_stun_url(address: str) -> str:
    """Validate a ``stun:`` URL and return it with an explicit port."""
    parts = urlsplit(address)
    if parts.scheme != "stun":
        raise ValueError(f"unsupported scheme {parts.scheme!r}")
    opaque = "" if parts.netloc or parts.path.startswith("/") else parts.path
    try:
        host, port = _split_host_port(opaque)
    except _MissingPortError:
        host, port = _split_host_port(f"{opaque}:{DEFAULT_STUN_PORT}")
    if not host:
        raise ValueError("invalid hostname")
    if not _PORT.fullmatch(port):
        raise ValueError(f"invalid port {port!r}")
    if any(parts.query.split("&")):
        raise ValueError("queries not supported in stun address")
    return "stun:" + _join_host_port(host, int(port))


def parse_ice_servers(addresses: Iterable[str]) -> list[ICEServer]:
    """Build ICE servers from addresses, skipping any that are not valid STUN URLs.

    Only STUN over UDP is supported; a missing port defaults to 3478.
    """
    servers: list[ICEServer] = []
    for address in addresses:
        address = address.strip()
        try:
            scheme = urlsplit(address).scheme
        except ValueError as exc:
            _log.warning(
                "Warning: Parsing ICE server %s resulted in error: %s, skipping",
                address,
                exc,
            )
            continue
        if scheme != "stun":
            _log.warning(
                "Warning: Only stun: (STUN over UDP) servers are supported "
                "currently, skipping %s",
                address,
            )
            continue
        try:
            url = _canonical_stun_url(address)
        except ValueError as exc:
            _log.warning(
                "Warning: Parsing ICE server %s resulted in error: %s, skipping",
                address,
                exc,
            )
            continue
        servers.append(ICEServer((url,)))
    return servers


def choose_ice_servers(servers: Sequence[ICEServer]) -> list[ICEServer]:
    """Return the servers shuffled, keeping only about half when there are more than two."""
    chosen = random.sample(list(servers), len(servers))
    if len(chosen) > 2:
        chosen = chosen[: (len(chosen) + 1) // 2]
    return chosen