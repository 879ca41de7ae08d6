#!/usr/bin/env python3
"""
PermitVault Example - Complete End-to-End Withdrawal Flow

An off-chain authority signs a one-time withdrawal permission; the vault
releases funds exactly once, into an account book standing in for the
recipient side. Replays, redirection, foreign signers and a network
switch are all shown being rejected.

Run with: python examples/withdrawal_example.py
"""

import base64
import json
import tempfile
from pathlib import Path

from permitvault import (
    AccountBook,
    AuthorizationAuthority,
    CustodyVault,
    EventType,
    InMemoryEventLog,
    PermitVaultError,
    Runtime,
    SqliteReplayLedger,
    create_request,
    digest_hex,
    generate_authority_key,
    load_authority_identity,
    permission_digest,
    save_authority_key,
    sign_request,
)

VAULT_ID = "0x" + "00" * 31 + "01"
ALICE = "0x" + "00" * 31 + "0a"
MALLORY = "0x" + "00" * 31 + "0b"


def issue_permission(key_pair, runtime, recipient, amount, nonce):
    """Authority side: approve a withdrawal and hand back a signature."""
    request = create_request(VAULT_ID, recipient, amount, nonce, runtime.network_id)
    signature = sign_request(request, key_pair.signing_key)
    print(f"  issued nonce={nonce} amount={amount} -> {digest_hex(permission_digest(request))[:18]}...")
    return signature


def attempt(label, fn):
    try:
        result = fn()
        print(f"  {label}: OK")
        return result
    except PermitVaultError as e:
        print(f"  {label}: REJECTED ({e.code.value})")
        return None


def main():
    print("=" * 70)
    print("PermitVault End-to-End Withdrawal Example")
    print("=" * 70)

    workdir = Path(tempfile.mkdtemp(prefix="permitvault-"))

    # ========================================
    # STEP 1: Authority key bootstrap
    # ========================================
    print("\n[1] Generating authority key...")
    key_pair = generate_authority_key("example-authority")
    public_path = workdir / "trust" / "authority_key.json"
    save_authority_key(key_pair, str(public_path))
    print(f"  public key file: {public_path}")

    # ========================================
    # STEP 2: Wire the components
    # ========================================
    print("\n[2] Wiring authority and vault...")
    runtime = Runtime(network_id=1)
    events = InMemoryEventLog()
    ledger = SqliteReplayLedger(workdir / "data" / "replay_ledger.db")
    authority = AuthorizationAuthority(runtime, ledger=ledger, events=events)
    authority.initialize(load_authority_identity(str(public_path)))
    book = AccountBook()
    vault = CustodyVault(VAULT_ID, authority, runtime, transfer=book, events=events)
    print(f"  authority initialized: {authority.initialized}")

    # ========================================
    # STEP 3: Deposit
    # ========================================
    print("\n[3] Depositing 100...")
    vault.deposit(100)
    print(f"  vault balance: {vault.balance}")

    # ========================================
    # STEP 4: Withdraw with a valid permission
    # ========================================
    print("\n[4] Withdrawing 40 to Alice...")
    sig = issue_permission(key_pair, runtime, ALICE, 40, nonce=1)
    print("  wire format:", json.dumps({
        "recipient": ALICE, "amount": 40, "nonce": 1,
        "signature_b64": base64.b64encode(sig).decode("ascii"),
    })[:72] + "...")
    receipt = attempt("withdraw", lambda: vault.withdraw(ALICE, 40, 1, sig))
    print(f"  vault balance: {vault.balance}, Alice: {book.balance_of(ALICE)}")

    # ========================================
    # STEP 5: Attacks
    # ========================================
    print("\n[5] Attack attempts...")
    attempt("replay same permission", lambda: vault.withdraw(ALICE, 40, 1, sig))
    attempt("redirect to Mallory", lambda: vault.withdraw(MALLORY, 40, 1, sig))
    attempt("inflate amount", lambda: vault.withdraw(ALICE, 90, 1, sig))

    rogue = generate_authority_key("rogue")
    forged = sign_request(create_request(VAULT_ID, MALLORY, 50, 7, 1), rogue.signing_key)
    attempt("self-signed permission", lambda: vault.withdraw(MALLORY, 50, 7, forged))

    pending = issue_permission(key_pair, runtime, ALICE, 10, nonce=2)
    runtime.switch_network(2)
    attempt("spend after network switch", lambda: vault.withdraw(ALICE, 10, 2, pending))
    runtime.switch_network(1)
    print(f"  vault balance: {vault.balance}, Mallory: {book.balance_of(MALLORY)}")

    # ========================================
    # STEP 6: Read side
    # ========================================
    print("\n[6] Ledger and events...")
    if receipt is not None:
        record = authority.consumption_record(receipt.digest)
        print(f"  consumed: {authority.is_consumed(receipt.digest)} by {record.to_dict()['consumer'][:18]}...")
    print(f"  ledger entries: {ledger.consumed_count()}")
    for event_type in EventType:
        print(f"  {event_type.value}: {len(events.query(event_type))}")

    ledger.close()
    print("\n" + "=" * 70)
    print("Example complete.")
    print("=" * 70)


if __name__ == "__main__":
    main()
