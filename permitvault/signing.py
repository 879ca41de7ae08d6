"""
PermitVault Cryptographic Signing

Ed25519 (RFC 8032) signatures over permission digests.

The authority identity is the 32-byte Ed25519 verify key. Verification is
verify-against-known-key: a signature is accepted only if it verifies
under the registered identity for the exact digest presented.
"""

import base64
import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from nacl.exceptions import BadSignatureError, CryptoError
from nacl.signing import SigningKey, VerifyKey

from .hashing import permission_digest
from .request import PermissionRequest


SIGNATURE_SIZE = 64
ALGORITHM = "Ed25519"


def b64e(b: bytes) -> str:
    """Base64 encode bytes to string."""
    return base64.b64encode(b).decode('ascii')


def b64d(s: str) -> bytes:
    """Base64 decode string to bytes."""
    return base64.b64decode(s.encode('ascii'), validate=True)


@dataclass
class AuthorityKeyPair:
    """Ed25519 key pair held by the off-chain authority."""
    key_id: str
    signing_key: bytes
    verify_key: bytes
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    algorithm: str = ALGORITHM

    @property
    def identity(self) -> bytes:
        """The authority identity registered with AuthorizationAuthority."""
        return self.verify_key

    def to_public_dict(self) -> Dict[str, Any]:
        """Public key file format; safe to distribute."""
        return {
            "key_id": self.key_id,
            "algorithm": self.algorithm,
            "public_key_b64": b64e(self.verify_key),
            "created_at": self.created_at.isoformat().replace("+00:00", "Z"),
        }

    def to_private_dict(self) -> Dict[str, Any]:
        """Private key file format."""
        d = self.to_public_dict()
        d["private_key_b64"] = b64e(self.signing_key)
        return d


def generate_authority_key(key_id: str = "authority-01") -> AuthorityKeyPair:
    """
    Generate a new Ed25519 authority key pair.

    Args:
        key_id: Key identifier recorded in key files and logs

    Returns:
        AuthorityKeyPair with signing and verification keys
    """
    signing_key = SigningKey.generate()
    return AuthorityKeyPair(
        key_id=key_id,
        signing_key=bytes(signing_key),
        verify_key=bytes(signing_key.verify_key),
    )


def sign_digest(digest: bytes, signing_key: bytes) -> bytes:
    """Sign a 32-byte digest; returns the detached 64-byte signature."""
    key = SigningKey(signing_key)
    return key.sign(digest).signature


def sign_request(request: PermissionRequest, signing_key: bytes) -> bytes:
    """Compute the canonical digest of a request and sign it."""
    return sign_digest(permission_digest(request), signing_key)


def verify_signature(digest: bytes, signature: Any, verify_key: bytes) -> bool:
    """
    Verify an Ed25519 signature over a digest.

    Anything that is not a well-formed 64-byte signature valid under
    verify_key returns False.
    """
    if not isinstance(signature, (bytes, bytearray)) or len(signature) != SIGNATURE_SIZE:
        return False
    try:
        VerifyKey(bytes(verify_key)).verify(digest, bytes(signature))
        return True
    except (BadSignatureError, CryptoError, ValueError, TypeError):
        return False


def is_valid_verify_key(verify_key: Any) -> bool:
    """Check that a value can be used as an Ed25519 verify key."""
    if not isinstance(verify_key, (bytes, bytearray)) or len(verify_key) != 32:
        return False
    try:
        VerifyKey(bytes(verify_key))
        return True
    except (CryptoError, ValueError, TypeError):
        return False


# Key files

def save_authority_key(
    key_pair: AuthorityKeyPair,
    public_path: str,
    private_path: Optional[str] = None
) -> None:
    """
    Write the public key file and, optionally, the private key file.

    The private key file is created with 0600 permissions.
    """
    for path in (public_path, private_path):
        if path and os.path.dirname(path):
            os.makedirs(os.path.dirname(path), exist_ok=True)

    with open(public_path, "w", encoding="utf-8") as f:
        json.dump(key_pair.to_public_dict(), f, indent=2)

    if private_path:
        fd = os.open(private_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(key_pair.to_private_dict(), f, indent=2)


def load_authority_identity(path: str) -> bytes:
    """Load the 32-byte authority identity from a public key file."""
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    verify_key = b64d(raw["public_key_b64"])
    if not is_valid_verify_key(verify_key):
        raise ValueError(f"Invalid authority public key in {path}")
    return verify_key


def load_signing_key(path: str) -> bytes:
    """Load the raw signing key from a private key file."""
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    return b64d(raw["private_key_b64"])
