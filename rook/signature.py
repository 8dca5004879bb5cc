"""HMAC-SHA256 request signatures."""

from __future__ import annotations

import binascii
import hashlib
import hmac
from typing import Mapping

from .errors import MalformedHeader, MissingHeader

DIGEST_PREFIX = "sha256="
SOURCE_EVENT_SIGNATURE_HEADER = "x-hub-signature-256"
GENERIC_SIGNATURE_HEADER = "x-rook-signature-256"


def extract_claim(headers: Mapping[str, str], name: str) -> bytes:
    """Decode the digest claimed by a ``sha256=<hex>`` signature header.

    Raises :class:`MissingHeader` when the header is absent and
    :class:`MalformedHeader` when it lacks the prefix, has an odd number of
    hex characters, or contains anything other than hex digits.
    """
    header = headers.get(name)
    if header is None:
        raise MissingHeader(name)
    if not header.startswith(DIGEST_PREFIX):
        raise MalformedHeader(name)
    digest = header[len(DIGEST_PREFIX):]
    if len(digest) % 2 != 0:
        raise MalformedHeader(name)
    try:
        return binascii.unhexlify(digest)
    except (binascii.Error, ValueError) as exc:
        raise MalformedHeader(name) from exc


def compute(secret: bytes, body: bytes) -> bytes:
    return hmac.new(secret, body, hashlib.sha256).digest()


def sign(secret: bytes, body: bytes) -> str:
    """Return the header value a caller sends for ``body``."""
    return DIGEST_PREFIX + compute(secret, body).hex()


def verify(secret: bytes, body: bytes, claim: bytes) -> bool:
    """Check ``claim`` against the HMAC of ``body`` in constant time."""
    return hmac.compare_digest(compute(secret, body), claim)


__all__ = [
    "DIGEST_PREFIX",
    "GENERIC_SIGNATURE_HEADER",
    "SOURCE_EVENT_SIGNATURE_HEADER",
    "compute",
    "extract_claim",
    "sign",
    "verify",
]
