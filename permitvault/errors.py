"""
PermitVault Error Taxonomy

Every failure in the authorization protocol is raised synchronously as a
subclass of PermitVaultError. Nothing in the core retries; a caller that
wants to try again must present a fresh, never-consumed permission.

Categories:
- Input validation: InvalidAmount, MalformedRequest
- Authorization (AuthError): InvalidSigner, ReplayDetected, UnauthorizedCaller
- Resource: InsufficientFunds, TransferFailed
- Bootstrap: AlreadyInitialized, NotInitialized
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Stable machine-readable error codes."""
    INVALID_AMOUNT = "INVALID_AMOUNT"
    MALFORMED_REQUEST = "MALFORMED_REQUEST"
    INVALID_SIGNER = "INVALID_SIGNER"
    REPLAY_DETECTED = "REPLAY_DETECTED"
    UNAUTHORIZED_CALLER = "UNAUTHORIZED_CALLER"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    TRANSFER_FAILED = "TRANSFER_FAILED"
    ALREADY_INITIALIZED = "ALREADY_INITIALIZED"
    NOT_INITIALIZED = "NOT_INITIALIZED"


class PermitVaultError(Exception):
    """Base class for all protocol failures."""

    code: ErrorCode = ErrorCode.MALFORMED_REQUEST

    def __init__(self, details: Optional[str] = None):
        self.details = details
        message = self.code.value if not details else f"{self.code.value}: {details}"
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code.value, "details": self.details}


class ValidationError(PermitVaultError):
    """Rejected before any state was touched."""


class InvalidAmount(ValidationError):
    code = ErrorCode.INVALID_AMOUNT


class MalformedRequest(ValidationError):
    code = ErrorCode.MALFORMED_REQUEST


class AuthError(PermitVaultError):
    """Authorization refused. The replay ledger is left untouched."""


class InvalidSigner(AuthError):
    code = ErrorCode.INVALID_SIGNER


class ReplayDetected(AuthError):
    code = ErrorCode.REPLAY_DETECTED


class UnauthorizedCaller(AuthError):
    code = ErrorCode.UNAUTHORIZED_CALLER


class ResourceError(PermitVaultError):
    """
    Raised after authorization succeeded.

    The permission is already consumed and cannot be presented again,
    even once the underlying resource problem is resolved.
    """


class InsufficientFunds(ResourceError):
    code = ErrorCode.INSUFFICIENT_FUNDS


class TransferFailed(ResourceError):
    code = ErrorCode.TRANSFER_FAILED


class BootstrapError(PermitVaultError):
    """Authority identity registration problems."""


class AlreadyInitialized(BootstrapError):
    code = ErrorCode.ALREADY_INITIALIZED


class NotInitialized(BootstrapError):
    code = ErrorCode.NOT_INITIALIZED
