"""Rewriting publisher URLs so that they are fetched through an AMP cache.

The cache URL has a subdomain derived from the publisher's domain (the
"domain prefix") under the cache's own host. Its path holds the content
type, an ``s`` component for HTTPS publishers, the publisher host and the
publisher path.
"""

from __future__ import annotations

import base64
import hashlib
import re
from urllib.parse import quote, urlsplit

_MAX_LABEL_LENGTH = 63
# Characters left unescaped in a single path segment, besides the
# unreserved ones that quote() never escapes.
_SEGMENT_SAFE = "$&+:=@"
_PORT = re.compile(r"[0-9]*")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_DEFAULT_PORTS = {"http": "80", "https": "443"}


class CacheURLError(ValueError):
    """A publisher or cache URL cannot be turned into an AMP cache URL."""


def _to_unicode(domain: str) -> str:
    labels = []
    for label in domain.split("."):
        if label[:4].lower() == "xn--":
            try:
                label = label[4:].encode("ascii").decode("punycode")
            except UnicodeError as exc:
                raise ValueError(f"invalid punycode label {label!r}") from exc
        labels.append(label)
    return ".".join(labels)


def _to_ascii(domain: str) -> str:
    labels = []
    for label in domain.split("."):
        if not label.isascii():
            label = "xn--" + label.encode("punycode").decode("ascii")
        labels.append(label)
    return ".".join(labels)


def _domain_prefix_basic(domain: str) -> str:
    prefix = _to_unicode(domain)
    prefix = prefix.replace("-", "--")
    prefix = prefix.replace(".", "-")
    encoded = prefix.encode("utf-8")
    if len(encoded) >= 4 and encoded[2:4] == b"--":
        prefix = "0-" + prefix + "-0"
    return _to_ascii(prefix)


def _domain_prefix_fallback(domain: str) -> str:
    digest = hashlib.sha256(domain.encode("utf-8")).digest()
    return base64.b32encode(digest).decode("ascii").rstrip("=").lower()


def domain_prefix(domain: str) -> str:
    """Return the AMP cache subdomain label for a publisher domain.

    The basic algorithm is tried first; when it fails or yields something
    longer than a DNS label allows, the hashed fallback is used.
    """
    try:
        prefix = _domain_prefix_basic(domain)
    except ValueError:
        return _domain_prefix_fallback(domain)
    if len(prefix) <= _MAX_LABEL_LENGTH:
        return prefix
    return _domain_prefix_fallback(domain)


def _split_authority(netloc: str) -> tuple[str | None, str, str]:
    """Split a netloc into (userinfo, host, port), keeping the host's case."""
    userinfo, at, hostport = netloc.rpartition("@")
    user = userinfo if at else None
    if hostport.startswith("["):
        end = hostport.find("]")
        if end == -1:
            raise CacheURLError("missing ']' in host")
        host = hostport[1:end]
        rest = hostport[end + 1 :]
        if rest and not rest.startswith(":"):
            raise CacheURLError(f"invalid port {rest!r} after host")
        port = rest[1:]
    else:
        host, colon, port = hostport.rpartition(":")
        if not colon:
            host, port = hostport, ""
    if not _PORT.fullmatch(port):
        raise CacheURLError(f"invalid port {port!r}")
    return user, host, port


def _parse(url: str):
    try:
        return urlsplit(url)
    except ValueError as exc:
        raise CacheURLError(str(exc)) from exc


def _clean(path: str) -> str:
    if not path:
        return "."
    rooted = path.startswith("/")
    parts: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if parts and parts[-1] != "..":
                parts.pop()
            elif not rooted:
                parts.append("..")
            continue
        parts.append(segment)
    result = "/".join(parts)
    if rooted:
        return "/" + result
    return result or "."


def _join(components: list[str]) -> str:
    nonempty = [c for c in components if c]
    if not nonempty:
        return ""
    return _clean("/".join(nonempty))


def cache_url(pub_url: str, cache_url: str, content_type: str) -> str:
    """Return the URL through which ``pub_url`` is served by the AMP cache.

    ``content_type`` is a short code such as ``"c"`` or ``"i"``. The
    publisher URL must use http or https, carry no userinfo and either no
    port or the scheme's default. The cache URL may carry no query or
    fragment; those of the result come from the publisher URL.
    """
    pub = _parse(pub_url)
    cache = _parse(cache_url)
    pub_user, pub_host, pub_port = _split_authority(pub.netloc)
    cache_user, cache_host, cache_port = _split_authority(cache.netloc)

    result_host = domain_prefix(pub_host) + "." + cache_host
    if cache_port:
        if ":" in result_host:
            result_host = f"[{result_host}]"
        result_host = f"{result_host}:{cache_port}"

    components = [cache.path]
    if not content_type:
        raise CacheURLError(f"invalid content type {content_type!r}")
    components.append(quote(content_type, safe=_SEGMENT_SAFE))
    if pub.scheme == "https":
        components.append("s")
    elif pub.scheme != "http":
        raise CacheURLError(f"invalid scheme {pub.scheme!r} in publisher URL")
    if pub_user is not None:
        raise CacheURLError("publisher URL may not contain userinfo")
    if pub_port and pub_port != _DEFAULT_PORTS[pub.scheme]:
        raise CacheURLError(
            f"publisher URL port {pub_port!r} is not the default "
            f"for scheme {pub.scheme!r}"
        )
    if not pub_host:
        raise CacheURLError(f"invalid host {pub_host!r} in publisher URL")
    components.append(quote(pub_host, safe=_SEGMENT_SAFE))
    components.append(pub.path)

    raw_path = _join(components)
    if _BAD_ESCAPE.search(raw_path):
        raise CacheURLError(f"invalid URL escape in path {raw_path!r}")

    if cache.query:
        raise CacheURLError("cache URL may not contain a query")
    if cache.fragment:
        raise CacheURLError("cache URL may not contain a fragment")

    if raw_path and not raw_path.startswith("/"):
        raw_path = "/" + raw_path
    authority = result_host if cache_user is None else f"{cache_user}@{result_host}"
    result = f"{cache.scheme}://{authority}{raw_path}"
    if pub.query:
        result += "?" + pub.query
    if pub.fragment:
        result += "#" + pub.fragment
    return result