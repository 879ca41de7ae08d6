"""
PermitVault Permission Digest

The permission digest is SHA-256 over the canonical encoding. It is the
message the authority signs and the key of the replay ledger.
"""

import hashlib
import hmac
from typing import Union

from .encoding import encode_request
from .errors import MalformedRequest
from .request import PermissionRequest


DIGEST_SIZE = 32


def permission_digest(request: PermissionRequest) -> bytes:
    """
    Compute the 32-byte permission digest.

    digest = SHA-256(encode_request(request))

    Pure function: equal requests always produce equal digests.
    """
    return hashlib.sha256(encode_request(request)).digest()


def digest_hex(digest: bytes) -> str:
    """Render a digest as 0x-prefixed lowercase hex."""
    return "0x" + digest.hex()


def parse_digest(value: Union[bytes, str]) -> bytes:
    """Accept a raw or hex (optionally 0x-prefixed) digest and return raw bytes."""
    if isinstance(value, str):
        text = value[2:] if value.lower().startswith("0x") else value
        try:
            value = bytes.fromhex(text)
        except ValueError:
            raise MalformedRequest("digest must be hex encoded")
    if not isinstance(value, (bytes, bytearray)) or len(value) != DIGEST_SIZE:
        raise MalformedRequest(f"digest must be {DIGEST_SIZE} bytes")
    return bytes(value)


def verify_digest(declared: Union[bytes, str], request: PermissionRequest) -> bool:
    """
    Verify that a request matches a declared digest.

    Recomputes from the request; never trusts the declared value.
    """
    try:
        declared_bytes = parse_digest(declared)
    except MalformedRequest:
        return False
    return hmac.compare_digest(declared_bytes, permission_digest(request))
