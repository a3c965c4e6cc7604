"""Encoding data into the suffix of a URL path for use through an AMP cache.

An encoded path has the form ``0<padding>/<base64 of data>``: a version
indicator ``0``, any number of bytes (random by default, to avoid cache
collisions), a final slash, and the data in unpadded URL-safe base64.
"""

from __future__ import annotations

import base64
import binascii
import os
import re

_RAW_URL_B64 = re.compile(r"[A-Za-z0-9_-]*")


class PathDecodeError(ValueError):
    """An encoded path could not be decoded."""


def _b64_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64_decode(text: str) -> bytes:
    if not _RAW_URL_B64.fullmatch(text) or len(text) % 4 == 1:
        raise PathDecodeError(f"illegal base64 data {text!r}")
    padded = text + "=" * (-len(text) % 4)
    try:
        return base64.urlsafe_b64decode(padded)
    except binascii.Error as exc:
        raise PathDecodeError(str(exc)) from exc


def encode_path(data: bytes) -> str:
    """Encode ``data`` as a path suffix with a random cache breaker."""
    cache_breaker = os.urandom(9)
    return "0" + _b64_encode(cache_breaker) + "/" + _b64_encode(data)


def decode_path(path: str) -> bytes:
    """Decode a path suffix produced by :func:`encode_path`.

    The path must start with the format indicator, with any directory
    prefix already removed.
    """
    if not path:
        raise PathDecodeError("missing format indicator")
    version, rest = path[0], path[1:]
    if version != "0":
        raise PathDecodeError(f"unknown format indicator {version!r}")
    slash = rest.rfind("/")
    if slash == -1:
        raise PathDecodeError("missing data")
    return _b64_decode(rest[slash + 1 :])