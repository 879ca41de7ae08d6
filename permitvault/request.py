"""
PermitVault Permission Request

The immutable value object that fully determines a permission digest,
plus the identity helpers and the runtime network context used to
build one.
"""

import re
import threading
from dataclasses import dataclass
from typing import Any, Dict, Union

from .errors import InvalidAmount, MalformedRequest


IDENTITY_SIZE = 32
UINT256_MAX = (1 << 256) - 1
UINT64_MAX = (1 << 64) - 1

_DECIMAL = re.compile(r"[0-9]+")

IdentityLike = Union[bytes, bytearray, str]


def to_identity(value: IdentityLike, field_name: str = "identity") -> bytes:
    """
    Normalize an identity to exactly 32 raw bytes.

    Accepts raw bytes or a hex string with an optional 0x prefix.
    """
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        text = value[2:] if value.lower().startswith("0x") else value
        try:
            raw = bytes.fromhex(text)
        except ValueError:
            raise MalformedRequest(f"{field_name} must be hex encoded")
    else:
        raise MalformedRequest(f"{field_name} must be bytes or hex string, got {type(value).__name__}")

    if len(raw) != IDENTITY_SIZE:
        raise MalformedRequest(f"{field_name} must be {IDENTITY_SIZE} bytes, got {len(raw)}")
    return raw


def identity_hex(identity: bytes) -> str:
    """Render an identity as 0x-prefixed lowercase hex."""
    return "0x" + identity.hex()


def _check_uint(value: Any, field_name: str, upper: int) -> int:
    # bool is an int subclass; never accept it as a quantity
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedRequest(f"{field_name} must be an unsigned integer")
    if value < 0 or value > upper:
        raise MalformedRequest(f"{field_name} out of range")
    return value


def _parse_quantity(value: Any, field_name: str) -> int:
    """
    Read an integer field from decoded JSON.

    Only real integers or base-10 digit strings (the form to_dict writes)
    are accepted; floats, bools and anything int() would round or coerce
    raise MalformedRequest.
    """
    if isinstance(value, bool):
        raise MalformedRequest(f"{field_name} must be an integer, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _DECIMAL.fullmatch(value):
        return int(value)
    raise MalformedRequest(f"{field_name} must be an integer or a decimal string, got {value!r}")


@dataclass(frozen=True)
class PermissionRequest:
    """
    A fully specified withdrawal permission.

    Fields, in canonical order:
    - vault_identity: the custody vault the funds leave
    - recipient_identity: where the funds go
    - amount: native units, strictly positive
    - nonce: caller-chosen, distinguishes otherwise identical permissions
    - network_id: chain / environment discriminator
    """
    vault_identity: bytes
    recipient_identity: bytes
    amount: int
    nonce: int
    network_id: int

    def __post_init__(self):
        self._validate()

    def _validate(self):
        # frozen dataclass: normalized identities go through object.__setattr__
        object.__setattr__(self, "vault_identity", to_identity(self.vault_identity, "vault_identity"))
        object.__setattr__(self, "recipient_identity", to_identity(self.recipient_identity, "recipient_identity"))

        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise MalformedRequest("amount must be an unsigned integer")
        if self.amount <= 0:
            raise InvalidAmount(f"amount must be greater than zero, got {self.amount}")
        _check_uint(self.amount, "amount", UINT256_MAX)
        _check_uint(self.nonce, "nonce", UINT256_MAX)
        _check_uint(self.network_id, "network_id", UINT64_MAX)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "vault_identity": identity_hex(self.vault_identity),
            "recipient_identity": identity_hex(self.recipient_identity),
            "amount": str(self.amount),
            "nonce": str(self.nonce),
            "network_id": self.network_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PermissionRequest':
        """Create a request from a dictionary as produced by to_dict()."""
        required = ["vault_identity", "recipient_identity", "amount", "nonce", "network_id"]
        missing = [f for f in required if f not in data]
        if missing:
            raise MalformedRequest(f"Missing required fields: {missing}")

        return cls(
            vault_identity=data["vault_identity"],
            recipient_identity=data["recipient_identity"],
            amount=_parse_quantity(data["amount"], "amount"),
            nonce=_parse_quantity(data["nonce"], "nonce"),
            network_id=_parse_quantity(data["network_id"], "network_id"),
        )


class Runtime:
    """
    The execution environment both components run in.

    Carries the current network discriminator. A permission signed for one
    network never verifies under another.
    """

    def __init__(self, network_id: int):
        self._network_id = _check_uint(network_id, "network_id", UINT64_MAX)
        self._lock = threading.Lock()

    @property
    def network_id(self) -> int:
        with self._lock:
            return self._network_id

    def switch_network(self, network_id: int) -> None:
        """Move the runtime to another network (forks, environment migration)."""
        network_id = _check_uint(network_id, "network_id", UINT64_MAX)
        with self._lock:
            self._network_id = network_id

    def __repr__(self) -> str:
        return f"Runtime(network_id={self.network_id})"


def create_request(
    vault_identity: IdentityLike,
    recipient_identity: IdentityLike,
    amount: int,
    nonce: int,
    network_id: int
) -> PermissionRequest:
    """
    Factory function to create a PermissionRequest.

    Args:
        vault_identity: 32-byte vault identity (bytes or hex)
        recipient_identity: 32-byte recipient identity (bytes or hex)
        amount: Native-unit amount, > 0
        nonce: Caller-chosen nonce
        network_id: Network the permission is valid on

    Returns:
        PermissionRequest instance
    """
    return PermissionRequest(
        vault_identity=vault_identity,
        recipient_identity=recipient_identity,
        amount=amount,
        nonce=nonce,
        network_id=network_id,
    )
