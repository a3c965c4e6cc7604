"""Bridge fingerprints: 20- or 32-byte identifiers of a bridge."""

from __future__ import annotations

import binascii
from dataclasses import dataclass

_VALID_LENGTHS = (20, 32)


class InvalidFingerprintError(ValueError):
    """The fingerprint does not have a valid length."""

    def __init__(self, message: str = "bridge fingerprint invalid") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class Fingerprint:
    """A validated bridge fingerprint holding its raw bytes."""

    raw: bytes

    def __post_init__(self) -> None:
        if len(self.raw) not in _VALID_LENGTHS:
            raise InvalidFingerprintError()

    def to_bytes(self) -> bytes:
        """Return the raw fingerprint bytes."""
        return bytes(self.raw)


def fingerprint_from_bytes(data: bytes) -> Fingerprint:
    """Build a fingerprint from raw bytes, which must be 20 or 32 long."""
    return Fingerprint(bytes(data))


def fingerprint_from_hex_string(hex_string: str) -> Fingerprint:
    """Build a fingerprint from its hexadecimal form."""
    decoded = binascii.unhexlify(hex_string)
    return fingerprint_from_bytes(decoded)