"""
PermitVault Custody Vault

Holds the fund balance and performs the actual value movement.

The vault contains no cryptography: it never imports a signature
library and treats signatures as opaque bytes. Every trust decision is
delegated to an Authorizer (in practice AuthorizationAuthority). The vault
binds itself to the authorizer once, at construction, and from then on
presents itself (not a claimed identity) on every authorize call made
before a balance mutation.

Withdraw ordering (check, then flip, then transfer):
    1. build the fully specified PermissionRequest
    2. authorizer.authorize(...)  -- ledger flipped here
    3. balance check              -- InsufficientFunds still burns the permission
    4. balance deducted
    5. external transfer          -- only now can foreign code run
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, runtime_checkable

from .errors import (
    AuthError,
    InsufficientFunds,
    InvalidAmount,
    MalformedRequest,
    PermitVaultError,
    TransferFailed,
)
from .events import Deposit, EventSink, InMemoryEventLog, Withdrawal
from .logging_config import audit_log
from .request import IdentityLike, PermissionRequest, Runtime, identity_hex, to_identity

logger = logging.getLogger(__name__)

ANONYMOUS_ACCOUNT = bytes(32)


@runtime_checkable
class Authorizer(Protocol):
    """The only surface of the authority the vault is allowed to see."""

    def bind_consumer(self, consumer: "CustodyVault") -> None:
        ...

    def authorize(self, request: PermissionRequest, signature: bytes, caller: "CustodyVault") -> bytes:
        ...


@dataclass(frozen=True)
class WithdrawalReceipt:
    """Outcome of a successful withdrawal, captured under the vault lock."""
    digest: bytes
    recipient: bytes
    amount: int
    balance: int


class Transfer(ABC):
    """External value movement performed after a withdrawal is authorized."""

    @abstractmethod
    def send(self, recipient: bytes, amount: int) -> None:
        """Move amount to recipient. Raising aborts the withdrawal."""
        pass


class AccountBook(Transfer):
    """
    In-memory recipient accounts.

    Credits recipients so that value leaving the vault stays observable.
    """

    def __init__(self):
        self._accounts: Dict[bytes, int] = {}
        self._lock = threading.Lock()

    def send(self, recipient: bytes, amount: int) -> None:
        with self._lock:
            self._accounts[recipient] = self._accounts.get(recipient, 0) + amount

    def balance_of(self, account: IdentityLike) -> int:
        with self._lock:
            return self._accounts.get(to_identity(account, "account"), 0)

    def total(self) -> int:
        with self._lock:
            return sum(self._accounts.values())


def _check_amount(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise MalformedRequest("amount must be an unsigned integer")
    if amount <= 0:
        raise InvalidAmount(f"amount must be greater than zero, got {amount}")
    return amount


class CustodyVault:
    """
    Custody of a native-unit balance, released only against a consumed
    permission.

    Usage:
        vault = CustodyVault(identity, authority, runtime)
        vault.deposit(100)
        vault.withdraw(recipient, 40, nonce=1, signature=sig)
    """

    def __init__(
        self,
        identity: IdentityLike,
        authorizer: Authorizer,
        runtime: Runtime,
        transfer: Optional[Transfer] = None,
        events: Optional[EventSink] = None
    ):
        if not isinstance(authorizer, Authorizer):
            raise TypeError("authorizer must provide bind_consumer(vault) and authorize(request, signature, caller)")
        self._identity = to_identity(identity, "vault_identity")
        self._authorizer = authorizer
        self._runtime = runtime
        self.transfer = transfer if transfer is not None else AccountBook()
        self.events = events if events is not None else InMemoryEventLog()

        self._balance = 0
        self._total_deposited = 0
        self._total_withdrawn = 0
        # Reentrant: the transfer step may call back into this vault on the
        # same thread; other threads wait for the whole operation.
        self._lock = threading.RLock()

        # Raises AlreadyInitialized if another vault already holds this identity
        authorizer.bind_consumer(self)

    @property
    def identity(self) -> bytes:
        return self._identity

    @property
    def authorizer(self) -> Authorizer:
        return self._authorizer

    @property
    def balance(self) -> int:
        with self._lock:
            return self._balance

    @property
    def total_deposited(self) -> int:
        with self._lock:
            return self._total_deposited

    @property
    def total_withdrawn(self) -> int:
        with self._lock:
            return self._total_withdrawn

    def deposit(self, amount: int, account: Optional[IdentityLike] = None) -> int:
        """
        Add funds to the vault. Not a privileged action.

        Returns:
            The new balance
        """
        amount = _check_amount(amount)
        account_id = ANONYMOUS_ACCOUNT if account is None else to_identity(account, "account")

        with self._lock:
            self._balance += amount
            self._total_deposited += amount
            balance = self._balance

        audit_log.deposit(identity_hex(account_id), amount, balance)
        self.events.emit(Deposit(account=account_id, amount=amount))
        return balance

    def withdraw(
        self,
        recipient: IdentityLike,
        amount: int,
        nonce: int,
        signature: bytes
    ) -> WithdrawalReceipt:
        """
        Release funds against a signed permission.

        Args:
            recipient: Identity receiving the funds
            amount: Native units, > 0
            nonce: The nonce the permission was signed with
            signature: Opaque signature bytes, passed through to the authorizer

        Returns:
            WithdrawalReceipt with the consumed digest and the balance left
            by this withdrawal

        Raises:
            InvalidAmount / MalformedRequest: before anything is touched
            InvalidSigner / ReplayDetected / UnauthorizedCaller: from the authorizer
            InsufficientFunds: permission consumed, balance unchanged
            TransferFailed: permission consumed, balance restored
        """
        _check_amount(amount)
        request = PermissionRequest(
            vault_identity=self._identity,
            recipient_identity=recipient,
            amount=amount,
            nonce=nonce,
            network_id=self._runtime.network_id,
        )
        recipient_hex = identity_hex(request.recipient_identity)

        with self._lock:
            try:
                digest = self._authorizer.authorize(request, signature, self)
            except AuthError as e:
                audit_log.withdrawal_rejected(recipient_hex, amount, e.code.value)
                raise
            logger.debug("permission 0x%s consumed for %s", digest.hex(), recipient_hex)

            if self._balance < amount:
                audit_log.withdrawal_rejected(recipient_hex, amount, "INSUFFICIENT_FUNDS")
                raise InsufficientFunds(f"balance {self._balance} < requested {amount}")

            # Deduct before any external code runs
            self._balance -= amount
            self._total_withdrawn += amount
            balance = self._balance

            try:
                self.transfer.send(request.recipient_identity, amount)
            except Exception as e:
                self._balance += amount
                self._total_withdrawn -= amount
                audit_log.withdrawal_rejected(recipient_hex, amount, "TRANSFER_FAILED")
                if isinstance(e, PermitVaultError):
                    detail = f"{e.code.value}: {e.details}"
                else:
                    detail = str(e)
                raise TransferFailed(f"transfer to {recipient_hex} failed: {detail}") from e

        audit_log.withdrawal(recipient_hex, amount, balance)
        self.events.emit(Withdrawal(recipient=request.recipient_identity, amount=amount))
        return WithdrawalReceipt(
            digest=digest,
            recipient=request.recipient_identity,
            amount=amount,
            balance=balance,
        )
