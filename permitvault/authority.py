"""
PermitVault Authorization Authority

The sole arbiter of whether a requested transfer may proceed.

It owns the registered authority identity and the replay ledger, and
exposes one operation: verify-and-consume a permission.

    authorize(request, signature, caller)
        0. caller must be the vault bound to request.vault_identity
        1. digest = permission_digest(request)
        2. the signature must verify under the authority identity for
           exactly this digest, on the runtime's current network
        3. the digest must be unconsumed
        4. the ledger entry is flipped BEFORE control returns to the
           caller, so a reentrant call made from the caller's transfer
           step already sees it consumed
        5. AuthorizationConsumed is emitted

Every failure raises and leaves the ledger untouched.
"""

import logging
import threading
from typing import Any, Dict, Optional

from .errors import (
    AlreadyInitialized,
    InvalidSigner,
    MalformedRequest,
    NotInitialized,
    ReplayDetected,
    UnauthorizedCaller,
)
from .events import AuthorizationConsumed, EventSink, InMemoryEventLog
from .hashing import digest_hex, parse_digest, permission_digest
from .ledger import InMemoryReplayLedger, LedgerEntry, ReplayLedger
from .logging_config import audit_log
from .request import PermissionRequest, Runtime, identity_hex, to_identity
from .signing import is_valid_verify_key, verify_signature

logger = logging.getLogger(__name__)


class AuthorityIdentityCell:
    """
    Write-once holder for the authority identity.

    There is no setter after the first successful set() and no way to
    clear the cell.
    """

    __slots__ = ("_value", "_lock")

    def __init__(self, identity: Optional[bytes] = None):
        self._value: Optional[bytes] = None
        self._lock = threading.Lock()
        if identity is not None:
            self.set(identity)

    def set(self, identity: bytes) -> None:
        if not is_valid_verify_key(identity):
            raise MalformedRequest("authority identity must be a 32-byte Ed25519 public key")
        with self._lock:
            if self._value is not None:
                raise AlreadyInitialized("authority identity is already registered")
            self._value = bytes(identity)

    def get(self) -> bytes:
        value = self._value
        if value is None:
            raise NotInitialized("authority identity has not been registered")
        return value

    @property
    def is_set(self) -> bool:
        return self._value is not None


class AuthorizationAuthority:
    """
    Verifies and consumes withdrawal permissions.

    Usage:
        authority = AuthorizationAuthority(runtime, identity=key_pair.identity)
        vault = CustodyVault(vault_identity, authority, runtime)   # binds itself
        digest = authority.authorize(request, signature, caller=vault)

    A vault identity bound through bind_consumer() can only be spent by that
    exact vault object. Identities nobody has bound fall back to comparing
    the caller's claimed identity with request.vault_identity.
    """

    def __init__(
        self,
        runtime: Runtime,
        ledger: Optional[ReplayLedger] = None,
        events: Optional[EventSink] = None,
        identity: Optional[bytes] = None
    ):
        self.runtime = runtime
        self._ledger = ledger if ledger is not None else InMemoryReplayLedger()
        self.events = events if events is not None else InMemoryEventLog()
        self._identity = AuthorityIdentityCell(identity)
        self._consumers: Dict[bytes, Any] = {}
        self._consumers_lock = threading.Lock()

    def initialize(self, identity: bytes) -> None:
        """
        Register the authority identity.

        Succeeds exactly once per instance; a second call raises
        AlreadyInitialized.
        """
        self._identity.set(identity)
        logger.info("authority identity registered: %s", identity_hex(bytes(identity)))

    @property
    def initialized(self) -> bool:
        return self._identity.is_set

    @property
    def authority_identity(self) -> bytes:
        return self._identity.get()

    def bind_consumer(self, consumer: Any) -> None:
        """
        Reserve consumer.identity for the consumer object itself.

        Write-once per identity: binding a second object to the same vault
        identity raises AlreadyInitialized.
        """
        consumer_identity = to_identity(consumer.identity, "consumer")
        with self._consumers_lock:
            bound = self._consumers.get(consumer_identity)
            if bound is not None and bound is not consumer:
                raise AlreadyInitialized(
                    f"vault {identity_hex(consumer_identity)} is already bound to this authority"
                )
            self._consumers[consumer_identity] = consumer
        logger.info("consumer bound: %s", identity_hex(consumer_identity))

    def _caller_identity(self, request: PermissionRequest, caller: Any) -> Optional[bytes]:
        """Identity the caller may spend for, or None when it may not spend this request."""
        with self._consumers_lock:
            bound = self._consumers.get(request.vault_identity)
        if bound is not None:
            return request.vault_identity if caller is bound else None
        if isinstance(caller, (bytes, bytearray, str)):
            claimed = to_identity(caller, "caller")
        else:
            claimed = to_identity(getattr(caller, "identity", None), "caller")
        return claimed if claimed == request.vault_identity else None

    def authorize(
        self,
        request: PermissionRequest,
        signature: bytes,
        caller: Any
    ) -> bytes:
        """
        Verify a permission and consume it.

        Args:
            request: The fully specified permission
            signature: Ed25519 signature over permission_digest(request)
            caller: The consuming vault object (the bound one for
                request.vault_identity), or for an unbound identity the
                vault identity itself

        Returns:
            The consumed 32-byte digest

        Raises:
            NotInitialized: no authority identity registered yet
            UnauthorizedCaller: caller may not spend permissions for
                request.vault_identity
            InvalidSigner: signature does not verify for this digest
            ReplayDetected: digest already consumed
        """
        if not isinstance(request, PermissionRequest):
            raise MalformedRequest("request must be a PermissionRequest")

        authority = self._identity.get()
        digest = permission_digest(request)
        digest_str = digest_hex(digest)

        caller_identity = self._caller_identity(request, caller)
        if caller_identity is None:
            audit_log.authorization_rejected(digest_str, "UNAUTHORIZED_CALLER")
            raise UnauthorizedCaller(
                f"caller cannot consume permissions for vault {identity_hex(request.vault_identity)}"
            )

        current_network = self.runtime.network_id
        if request.network_id != current_network:
            audit_log.authorization_rejected(digest_str, "NETWORK_MISMATCH")
            raise InvalidSigner(
                f"permission bound to network {request.network_id}, runtime is on {current_network}"
            )

        if not verify_signature(digest, signature, authority):
            audit_log.authorization_rejected(digest_str, "INVALID_SIGNER")
            raise InvalidSigner(f"signature does not verify for digest {digest_str}")

        # Atomic check-and-flip; must commit before control returns to the caller
        if not self._ledger.consume(digest, caller_identity, request.recipient_identity):
            audit_log.authorization_rejected(digest_str, "REPLAY_DETECTED")
            raise ReplayDetected(f"permission {digest_str} already consumed")

        audit_log.authorization_consumed(
            digest_str,
            identity_hex(caller_identity),
            identity_hex(request.recipient_identity),
        )
        self.events.emit(AuthorizationConsumed(
            digest=digest,
            recipient=request.recipient_identity,
            consumer=caller_identity,
        ))
        return digest

    def is_consumed(self, digest) -> bool:
        """Read side of the replay ledger. Accepts raw or hex digests."""
        return self._ledger.is_consumed(parse_digest(digest))

    def consumption_record(self, digest) -> Optional[LedgerEntry]:
        return self._ledger.get_entry(parse_digest(digest))
