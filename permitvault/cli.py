#!/usr/bin/env python3
"""
PermitVault Command Line Interface

Usage:
    permitvault digest --vault <hex> --recipient <hex> --amount <n> --nonce <n> --network <n>
    permitvault verify --request <file> --signature <b64> --authority-key <file>
    permitvault keygen --public <file> [--private <file>]
    permitvault demo
"""

import argparse
import base64
import binascii
import json
import sys

from .errors import MalformedRequest, PermitVaultError


def load_json(path: str) -> dict:
    """Load JSON from file."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def _request_from_args(args):
    from .request import PermissionRequest, create_request

    if args.request:
        return PermissionRequest.from_dict(load_json(args.request))
    missing = [n for n in ("vault", "recipient", "amount", "nonce", "network") if getattr(args, n) is None]
    if missing:
        raise MalformedRequest(f"missing arguments: {', '.join('--' + m for m in missing)}")
    return create_request(args.vault, args.recipient, args.amount, args.nonce, args.network)


def cmd_digest(args):
    """Compute the canonical digest of a permission."""
    from .encoding import encode_request
    from .hashing import digest_hex, permission_digest

    request = _request_from_args(args)
    print(f"digest: {digest_hex(permission_digest(request))}")
    if args.show_encoding:
        print(f"encoding: 0x{encode_request(request).hex()}")
    return 0


def cmd_verify(args):
    """Verify a signature against the authority public key file."""
    from .hashing import permission_digest
    from .signing import load_authority_identity, verify_signature

    request = _request_from_args(args)
    try:
        signature = base64.b64decode(args.signature, validate=True)
    except binascii.Error:
        print("✗ INVALID: signature is not base64")
        return 1

    identity = load_authority_identity(args.authority_key)
    if verify_signature(permission_digest(request), signature, identity):
        print("✓ VALID")
        return 0
    print("✗ INVALID: signature does not verify under the authority key")
    return 1


def cmd_keygen(args):
    """Generate an authority key pair for bootstrap."""
    from .signing import generate_authority_key, save_authority_key

    key_pair = generate_authority_key(args.key_id)
    save_authority_key(key_pair, args.public, args.private)
    print(f"Public key saved to: {args.public}")
    if args.private:
        print(f"Private key saved to: {args.private}")
    print(f"Authority identity: 0x{key_pair.identity.hex()}", file=sys.stderr)
    return 0


def cmd_demo(args):
    """Run a demonstration of the withdrawal protocol."""
    from .authority import AuthorizationAuthority
    from .errors import ReplayDetected
    from .request import Runtime, create_request
    from .signing import generate_authority_key, sign_request
    from .vault import CustodyVault

    print("=" * 60)
    print("PermitVault Demonstration")
    print("=" * 60)

    runtime = Runtime(network_id=1)
    key_pair = generate_authority_key("demo-authority")
    authority = AuthorizationAuthority(runtime, identity=key_pair.identity)
    vault = CustodyVault(bytes(31) + b"\x01", authority, runtime)
    recipient = bytes(31) + b"\x0a"

    vault.deposit(100)
    print(f"\nDeposited 100, balance = {vault.balance}")

    request = create_request(vault.identity, recipient, 40, 1, runtime.network_id)
    signature = sign_request(request, key_pair.signing_key)

    print("\n" + "-" * 60)
    print("Scenario 1: withdraw 40 with a valid permission")
    print("-" * 60)
    receipt = vault.withdraw(recipient, 40, 1, signature)
    print(f"Consumed: 0x{receipt.digest.hex()}")
    print(f"Balance: {receipt.balance}")

    print("\n" + "-" * 60)
    print("Scenario 2: replay the same permission")
    print("-" * 60)
    try:
        vault.withdraw(recipient, 40, 1, signature)
    except ReplayDetected as e:
        print(f"Rejected: {e.code.value}")
    print(f"Balance: {vault.balance}")

    print("\n" + "-" * 60)
    print("Scenario 3: redirect the permission to another recipient")
    print("-" * 60)
    try:
        vault.withdraw(bytes(31) + b"\x0b", 40, 1, signature)
    except PermitVaultError as e:
        print(f"Rejected: {e.code.value}")
    print(f"Balance: {vault.balance}")

    print("\n" + "=" * 60)
    print("Demonstration complete.")
    print("=" * 60)
    return 0


def _add_request_args(p: argparse.ArgumentParser):
    p.add_argument("-r", "--request", help="Permission request JSON file")
    p.add_argument("--vault", help="Vault identity (hex)")
    p.add_argument("--recipient", help="Recipient identity (hex)")
    p.add_argument("--amount", type=int, help="Amount in native units")
    p.add_argument("--nonce", type=int, help="Permission nonce")
    p.add_argument("--network", type=int, help="Network identity")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="permitvault",
        description="PermitVault CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  permitvault demo
  permitvault digest --vault 0x..01 --recipient 0x..0a --amount 40 --nonce 1 --network 1
  permitvault verify -r request.json -s <b64> -k trust/authority_key.json
  permitvault keygen -p trust/authority_key.json -P secrets/authority_key.json
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    digest_parser = subparsers.add_parser("digest", help="Compute permission digest")
    _add_request_args(digest_parser)
    digest_parser.add_argument("--show-encoding", action="store_true", help="Also print the canonical encoding")

    verify_parser = subparsers.add_parser("verify", help="Verify a permission signature")
    _add_request_args(verify_parser)
    verify_parser.add_argument("-s", "--signature", required=True, help="Base64 signature")
    verify_parser.add_argument("-k", "--authority-key", required=True, help="Authority public key JSON file")

    keygen_parser = subparsers.add_parser("keygen", help="Generate authority key pair")
    keygen_parser.add_argument("-p", "--public", required=True, help="Output file for the public key")
    keygen_parser.add_argument("-P", "--private", help="Output file for the private key")
    keygen_parser.add_argument("-k", "--key-id", default="authority-01", help="Key identifier")

    subparsers.add_parser("demo", help="Run demonstration")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    commands = {
        "digest": cmd_digest,
        "verify": cmd_verify,
        "keygen": cmd_keygen,
        "demo": cmd_demo,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 2

    try:
        return handler(args)
    except PermitVaultError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
