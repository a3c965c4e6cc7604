"""Ways of exchanging an encoded client poll with the snowflake broker.

A rendezvous method sends an encoded client poll request (carrying an SDP
offer) and returns the encoded poll response (carrying an SDP answer).
Requests go through a pluggable :class:`RoundTripper`, optionally with
domain fronting: the request is sent to a randomly chosen front domain
while the HTTP Host header names the real broker.
"""

from __future__ import annotations

import abc
import io
import logging
import random
import ssl
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import BinaryIO, Sequence
from urllib.parse import SplitResult, urljoin, urlsplit

from .amp_armor import decode_armor
from .amp_cache import cache_url as _amp_cache_url
from .amp_path import encode_path
from .encapsulation import UnexpectedEOFError

BROKER_ERROR_UNEXPECTED = "Unexpected error, no answer."
READ_LIMIT = 100000
RESPONSE_HEADER_TIMEOUT = 15.0

_READ_CHUNK = 64 * 1024

_log = logging.getLogger(__name__)


class BrokerError(Exception):
    """The broker did not give a usable answer."""

    def __init__(self, message: str = BROKER_ERROR_UNEXPECTED) -> None:
        super().__init__(message)


@dataclass
class Request:
    """An HTTP request. ``host``, when set, overrides the Host header."""

    method: str
    url: str
    body: bytes = b""
    host: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class Response:
    """An HTTP response whose body is a readable binary stream."""

    status_code: int
    body: BinaryIO
    reason: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def status(self) -> str:
        """The status line text, such as ``"200 OK"``."""
        return f"{self.status_code} {self.reason}".strip()

    def header(self, name: str) -> str | None:
        """Return the value of header ``name``, ignoring case."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    def close(self) -> None:
        """Close the body stream."""
        self.body.close()

    def __enter__(self) -> Response:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class RoundTripper(abc.ABC):
    """Performs a single HTTP request without following redirects."""

    @abc.abstractmethod
    def round_trip(self, request: Request) -> Response:
        """Send ``request`` and return the response."""


class _NoRedirect(urllib.request.HTTPRedirectHandler):
    """Surfaces redirects as HTTP errors instead of following them."""

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        raise urllib.error.HTTPError(req.full_url, code, msg, headers, fp)


class UrllibTransport(RoundTripper):
    """A round tripper built on :mod:`urllib.request`.

    Environment proxy settings are ignored; ``proxy`` names an explicit
    HTTP proxy URL to use instead. Redirects are returned, not followed,
    and non-2xx responses are returned rather than raised.
    """

    def __init__(
        self,
        proxy: str | None = None,
        timeout: float = RESPONSE_HEADER_TIMEOUT,
        ssl_context: ssl.SSLContext | None = None,
    ) -> None:
        self.proxy = proxy
        self.timeout = timeout
        proxies = {"http": proxy, "https": proxy} if proxy else {}
        context = ssl_context if ssl_context is not None else ssl.create_default_context()
        self._opener = urllib.request.build_opener(
            urllib.request.ProxyHandler(proxies),
            urllib.request.HTTPSHandler(context=context),
            _NoRedirect(),
        )

    def round_trip(self, request: Request) -> Response:
        headers = dict(request.headers)
        if request.host:
            headers["Host"] = request.host
        data = None if request.method.upper() in ("GET", "HEAD") else request.body
        req = urllib.request.Request(
            request.url, data=data, headers=headers, method=request.method
        )
        try:
            resp = self._opener.open(req, timeout=self.timeout)
            body: BinaryIO = resp
        except urllib.error.HTTPError as err:
            resp = err
            body = err if err.fp is not None else io.BytesIO()
        return Response(
            status_code=resp.getcode(),
            body=body,
            reason=str(resp.reason or ""),
            headers=dict(resp.headers.items()) if resp.headers is not None else {},
        )


def _read_up_to(stream: BinaryIO, n: int) -> bytes:
    parts = []
    remaining = n
    while remaining > 0:
        chunk = stream.read(min(remaining, _READ_CHUNK))
        if not chunk:
            break
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


def limited_read(stream: BinaryIO, limit: int) -> bytes:
    """Read all of ``stream``, raising if it holds more than ``limit`` bytes."""
    data = _read_up_to(stream, limit + 1)
    if len(data) > limit:
        raise UnexpectedEOFError(f"response exceeds read limit of {limit} bytes")
    return data


def _parse_url(url: str) -> SplitResult:
    return urlsplit(url)


def _fronted(request: Request, fronts: Sequence[str]) -> Request:
    """Send ``request`` to a random front, keeping the real host in Host."""
    if not fronts:
        return request
    front = random.choice(list(fronts))
    _log.info("Front domain: %s", front)
    parts = urlsplit(request.url)
    request.host = parts.netloc
    request.url = parts._replace(netloc=front).geturl()
    return request


class RendezvousMethod(abc.ABC):
    """A way of exchanging an encoded poll request for a poll response."""

    @abc.abstractmethod
    def exchange(self, enc_poll_req: bytes) -> bytes:
        """Send the encoded request and return the encoded response."""


class HTTPRendezvous(RendezvousMethod):
    """POSTs the poll request to the broker's ``client`` route."""

    def __init__(
        self, broker: str, fronts: Sequence[str], transport: RoundTripper
    ) -> None:
        self.broker_url = _parse_url(broker)
        self.fronts = list(fronts)
        self.transport = transport

    def exchange(self, enc_poll_req: bytes) -> bytes:
        _log.info("Negotiating via HTTP rendezvous...")
        _log.info("Target URL: %s", self.broker_url.netloc)
        url = urljoin(self.broker_url.geturl(), "client")
        request = _fronted(Request("POST", url, bytes(enc_poll_req)), self.fronts)
        with self.transport.round_trip(request) as resp:
            _log.info("HTTP rendezvous response: %s", resp.status)
            if resp.status_code != 200:
                raise BrokerError()
            return limited_read(resp.body, READ_LIMIT)


class AMPCacheRendezvous(RendezvousMethod):
    """GETs the broker's ``amp/client`` route, optionally through an AMP cache.

    The poll request is encoded into the URL path and the response comes
    back as AMP armor.
    """

    def __init__(
        self,
        broker: str,
        cache: str,
        fronts: Sequence[str],
        transport: RoundTripper,
    ) -> None:
        self.broker_url = _parse_url(broker)
        self.cache_url = _parse_url(cache) if cache else None
        self.fronts = list(fronts)
        self.transport = transport

    def exchange(self, enc_poll_req: bytes) -> bytes:
        _log.info("Negotiating via AMP cache rendezvous...")
        _log.info("Broker URL: %s", self.broker_url.geturl())
        _log.info(
            "AMP cache URL: %s",
            self.cache_url.geturl() if self.cache_url is not None else None,
        )
        url = urljoin(
            self.broker_url.geturl(), "amp/client/" + encode_path(bytes(enc_poll_req))
        )
        if self.cache_url is not None:
            url = _amp_cache_url(url, self.cache_url.geturl(), "c")
        request = _fronted(Request("GET", url), self.fronts)
        with self.transport.round_trip(request) as resp:
            _log.info("AMP cache rendezvous response: %s", resp.status)
            if resp.status_code != 200:
                # Invalid AMP from the broker becomes a redirect, and broker
                # 5xx errors become a 404, when passing through the cache.
                raise BrokerError()
            if resp.header("Location"):
                # A "silent redirect" bypassing the cache carries no answer.
                raise BrokerError()
            raw = _read_up_to(resp.body, READ_LIMIT + 1)
        decoded = decode_armor(raw)
        if len(raw) > READ_LIMIT:
            raise UnexpectedEOFError(
                f"response exceeds read limit of {READ_LIMIT} bytes"
            )
        return decoded