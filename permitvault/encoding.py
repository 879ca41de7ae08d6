"""
PermitVault Canonical Permission Encoding

Ensures semantically identical permissions produce identical byte
representations, and that any off-chain signer can reproduce them
bit-for-bit.

Layout (big-endian, no delimiters, fixed total length):

    DOMAIN_TAG                      32 bytes
    T_IDENTITY || vault_identity     1 + 32
    T_IDENTITY || recipient          1 + 32
    T_UINT256  || amount             1 + 32
    T_UINT256  || nonce              1 + 32
    T_UINT64   || network_id         1 + 8
"""

import hashlib

from .errors import MalformedRequest
from .request import IDENTITY_SIZE, PermissionRequest


# Domain separator (bytes32); stable and versioned, never change once deployed
DOMAIN_LABEL = b"permitvault.withdrawal-permit.v1"
DOMAIN_TAG = hashlib.sha256(DOMAIN_LABEL).digest()

# Type tags
T_IDENTITY = b"\x01"
T_UINT256 = b"\x02"
T_UINT64 = b"\x03"

ENCODED_LENGTH = len(DOMAIN_TAG) + 4 * (1 + 32) + (1 + 8)


def _u64(x: int) -> bytes:
    if not 0 <= x < (1 << 64):
        raise MalformedRequest("value does not fit in u64")
    return x.to_bytes(8, "big")


def _u256(x: int) -> bytes:
    if not 0 <= x < (1 << 256):
        raise MalformedRequest("value does not fit in u256")
    return x.to_bytes(32, "big")


def _identity(x: bytes) -> bytes:
    if len(x) != IDENTITY_SIZE:
        raise MalformedRequest("identity must be 32 bytes")
    return x


def encode_request(request: PermissionRequest) -> bytes:
    """
    Encode a permission request canonically.

    Field order is fixed: vault, recipient, amount, nonce, network.

    Returns:
        ENCODED_LENGTH bytes, prefixed by DOMAIN_TAG
    """
    return b"".join((
        DOMAIN_TAG,
        T_IDENTITY, _identity(request.vault_identity),
        T_IDENTITY, _identity(request.recipient_identity),
        T_UINT256, _u256(request.amount),
        T_UINT256, _u256(request.nonce),
        T_UINT64, _u64(request.network_id),
    ))


def decode_request(data: bytes) -> PermissionRequest:
    """Inverse of encode_request; rejects anything not produced by it."""
    if len(data) != ENCODED_LENGTH:
        raise MalformedRequest(f"encoded permission must be {ENCODED_LENGTH} bytes, got {len(data)}")
    if data[:32] != DOMAIN_TAG:
        raise MalformedRequest("domain tag mismatch")

    pos = 32
    fields = []
    for tag, width in ((T_IDENTITY, 32), (T_IDENTITY, 32), (T_UINT256, 32), (T_UINT256, 32), (T_UINT64, 8)):
        if data[pos:pos + 1] != tag:
            raise MalformedRequest(f"unexpected type tag at offset {pos}")
        fields.append(data[pos + 1:pos + 1 + width])
        pos += 1 + width

    return PermissionRequest(
        vault_identity=fields[0],
        recipient_identity=fields[1],
        amount=int.from_bytes(fields[2], "big"),
        nonce=int.from_bytes(fields[3], "big"),
        network_id=int.from_bytes(fields[4], "big"),
    )
