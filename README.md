# snowflake_transport

Client-side pieces of the Snowflake pluggable transport, written with the
standard library only and usable on their own.

## Modules

- `snowflake_transport.encapsulation`: length-prefixed framing of data and
  padding chunks in a byte stream (`read_data`, `write_data`, `write_padding`,
  `max_data_for_size`). Errors are `TooLongError`, `UnexpectedEOFError` and
  `ShortBufferError`, all subclasses of `EncapsulationError`. A stream that
  ends cleanly between chunks raises `EOFError`.
- `snowflake_transport.amp_path`: encode bytes into the tail of a URL path
  and back (`encode_path`, `decode_path`, `PathDecodeError`).
- `snowflake_transport.amp_armor`: AMP armor, which carries binary data inside
  an AMP-valid HTML page (`ArmorEncoder`, `encode_armor`, `decode_armor`,
  `ArmorError`, `UnknownVersionError`).
- `snowflake_transport.amp_cache`: rewrite a publisher URL into the URL an
  AMP cache serves it from (`cache_url`, `domain_prefix`, `CacheURLError`).
- `snowflake_transport.bridgefingerprint`: bridge fingerprints of 20 or 32
  bytes (`Fingerprint`, `fingerprint_from_bytes`,
  `fingerprint_from_hex_string`, `InvalidFingerprintError`).
- `snowflake_transport.events`: Snowflake event classes such as
  `OfferCreated`, `BrokerRendezvous`, `SnowflakeConnected` and `ProxyStats`,
  the `SnowflakeEventReceiver` interface, an `EventDispatcher` that fans
  events out to listeners, and `scrub`, which hides IP addresses in text.
- `snowflake_transport.bytes_logger`: traffic counters (`BytesNullLogger`,
  and `BytesSyncLogger`, which logs and resets its totals at a fixed interval).
- `snowflake_transport.peers`: a bounded collection of remote peers. You
  supply a `Tongue` (a dialer with `catch()` and a `max_peers` property);
  `Peers` collects, hands out and closes `Peer` objects, and `connect_loop`
  keeps collecting until the collection is ended.
- `snowflake_transport.packetconn`: `EncapsulationPacketConn`, a packet
  interface over a byte stream using the encapsulation framing.
- `snowflake_transport.rendezvous`: exchange encoded client poll requests
  with the broker, either by HTTP POST (`HTTPRendezvous`) or by GET through
  an optional AMP cache (`AMPCacheRendezvous`), optionally domain-fronted.
  Requests go through a `RoundTripper`; `UrllibTransport` is one built on
  `urllib.request` that does not follow redirects. `limited_read` and
  `BrokerError` are also provided.
- `snowflake_transport.ice`: parse STUN server URLs into `ICEServer` values
  (`parse_ice_servers`, adding port 3478 when none is given) and pick a
  random subset of them (`choose_ice_servers`).

## Installation

```
pip install .
```

## Examples

Framing data in a stream:

```python
import io
from snowflake_transport.encapsulation import read_data, write_data, write_padding

buf = io.BytesIO()
write_padding(buf, 10)
write_data(buf, b"hello")
buf.seek(0)
assert read_data(buf, 1024) == b"hello"
```

AMP armor round trip:

```python
from snowflake_transport.amp_armor import encode_armor, decode_armor

page = encode_armor(b"This was encoded with AMP armor.")
assert decode_armor(page) == b"This was encoded with AMP armor."
```

Parsing STUN servers:

```python
from snowflake_transport.ice import parse_ice_servers

servers = parse_ice_servers(["stun:stun.example.com", "https://example.com"])
assert [s.urls for s in servers] == [("stun:stun.example.com:3478",)]
```

Talking to a broker:

```python
from snowflake_transport.rendezvous import HTTPRendezvous, UrllibTransport

encoded_poll_request = b"..."  # an encoded client poll request
rendezvous = HTTPRendezvous("https://broker.example.com/", [], UrllibTransport())
answer = rendezvous.exchange(encoded_poll_request)
```

## What this package does not do

It has no command to run and no local SOCKS listener. It does not open WebRTC
connections: `Peer` is a base class, and catching real peers is left to the
`Tongue` you supply. It does not encode or decode the broker's poll messages,
does not rendezvous through a message queue, and does not build a reliable
multiplexed session on top of the packet connection.

## Tests

```
pip install .[test]
pytest
```