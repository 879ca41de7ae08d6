"""
PermitVault Reference Implementation

Version: 1.0.0
License: Apache 2.0

One-time, context-bound, off-chain-signed withdrawal permissions.

Two strictly layered components:
- AuthorizationAuthority: owns the authority identity and the replay
  ledger; verifies and consumes permissions.
- CustodyVault: owns the balance; moves value only after the authority
  consumed a permission for the exact (vault, recipient, amount, nonce,
  network) tuple. The vault contains no cryptography.

Usage:
    from permitvault import (
        AuthorizationAuthority,
        CustodyVault,
        Runtime,
        create_request,
        generate_authority_key,
        sign_request,
    )

    runtime = Runtime(network_id=1)
    key_pair = generate_authority_key()
    authority = AuthorizationAuthority(runtime, identity=key_pair.identity)
    vault = CustodyVault(vault_id, authority, runtime)

    vault.deposit(100)

    # Off-chain: the authority signs the canonical digest
    request = create_request(vault_id, recipient, 40, nonce=1, network_id=1)
    signature = sign_request(request, key_pair.signing_key)

    # On-chain equivalent: anyone may present it, exactly once
    vault.withdraw(recipient, 40, 1, signature)
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

# Errors
from .errors import (
    ErrorCode,
    PermitVaultError,
    ValidationError,
    InvalidAmount,
    MalformedRequest,
    AuthError,
    InvalidSigner,
    ReplayDetected,
    UnauthorizedCaller,
    ResourceError,
    InsufficientFunds,
    TransferFailed,
    BootstrapError,
    AlreadyInitialized,
    NotInitialized,
)

# Requests and encoding
from .request import (
    PermissionRequest,
    Runtime,
    create_request,
    to_identity,
    identity_hex,
)
from .encoding import encode_request, decode_request, DOMAIN_TAG
from .hashing import permission_digest, digest_hex, parse_digest, verify_digest

# Signing
from .signing import (
    AuthorityKeyPair,
    generate_authority_key,
    sign_digest,
    sign_request,
    verify_signature,
    load_authority_identity,
    save_authority_key,
)

# Ledger and events
from .ledger import ReplayLedger, InMemoryReplayLedger, SqliteReplayLedger, LedgerEntry
from .events import (
    EventType,
    Event,
    Deposit,
    Withdrawal,
    AuthorizationConsumed,
    EventSink,
    LoggingEventSink,
    FanoutEventSink,
    InMemoryEventLog,
)

# Components
from .authority import AuthorizationAuthority, AuthorityIdentityCell
from .vault import CustodyVault, Authorizer, Transfer, AccountBook, WithdrawalReceipt


__all__ = [
    "__version__",

    # Errors
    "ErrorCode",
    "PermitVaultError",
    "ValidationError",
    "InvalidAmount",
    "MalformedRequest",
    "AuthError",
    "InvalidSigner",
    "ReplayDetected",
    "UnauthorizedCaller",
    "ResourceError",
    "InsufficientFunds",
    "TransferFailed",
    "BootstrapError",
    "AlreadyInitialized",
    "NotInitialized",

    # Requests and encoding
    "PermissionRequest",
    "Runtime",
    "create_request",
    "to_identity",
    "identity_hex",
    "encode_request",
    "decode_request",
    "DOMAIN_TAG",
    "permission_digest",
    "digest_hex",
    "parse_digest",
    "verify_digest",

    # Signing
    "AuthorityKeyPair",
    "generate_authority_key",
    "sign_digest",
    "sign_request",
    "verify_signature",
    "load_authority_identity",
    "save_authority_key",

    # Ledger and events
    "ReplayLedger",
    "InMemoryReplayLedger",
    "SqliteReplayLedger",
    "LedgerEntry",
    "EventType",
    "Event",
    "Deposit",
    "Withdrawal",
    "AuthorizationConsumed",
    "EventSink",
    "LoggingEventSink",
    "FanoutEventSink",
    "InMemoryEventLog",

    # Components
    "AuthorizationAuthority",
    "AuthorityIdentityCell",
    "CustodyVault",
    "Authorizer",
    "Transfer",
    "AccountBook",
    "WithdrawalReceipt",
]
