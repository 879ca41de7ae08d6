"""
PermitVault Digest Test Suite

Canonical encoding and digest properties:
- equal requests produce equal digests
- any single-field change produces a different digest
- the encoding is fixed-width, tagged and domain separated
"""

import hashlib
import random
import unittest

from permitvault import (
    DOMAIN_TAG,
    InvalidAmount,
    MalformedRequest,
    PermissionRequest,
    create_request,
    decode_request,
    digest_hex,
    encode_request,
    parse_digest,
    permission_digest,
    verify_digest,
)
from permitvault.encoding import ENCODED_LENGTH, T_IDENTITY, T_UINT256, T_UINT64


FIELDS = ("vault_identity", "recipient_identity", "amount", "nonce", "network_id")


def random_request(rng: random.Random) -> PermissionRequest:
    return create_request(
        vault_identity=rng.getrandbits(256).to_bytes(32, "big"),
        recipient_identity=rng.getrandbits(256).to_bytes(32, "big"),
        amount=rng.randint(1, (1 << 256) - 1),
        nonce=rng.getrandbits(256),
        network_id=rng.getrandbits(64),
    )


def perturb(request: PermissionRequest, field_name: str, rng: random.Random) -> PermissionRequest:
    """Return a copy of request with exactly one field changed."""
    values = {f: getattr(request, f) for f in FIELDS}
    old = values[field_name]
    if field_name in ("vault_identity", "recipient_identity"):
        flip = bytearray(old)
        flip[rng.randrange(32)] ^= 1 << rng.randrange(8)
        values[field_name] = bytes(flip)
    elif field_name == "amount":
        values[field_name] = old + 1 if old < (1 << 256) - 1 else old - 1
    elif field_name == "nonce":
        values[field_name] = old ^ (1 << rng.randrange(256))
    else:
        values[field_name] = old ^ (1 << rng.randrange(64))
    return PermissionRequest(**values)


class TestDeterminism(unittest.TestCase):

    def test_equal_requests_equal_digests(self):
        rng = random.Random(1)
        for _ in range(100):
            r = random_request(rng)
            twin = PermissionRequest(**{f: getattr(r, f) for f in FIELDS})
            self.assertEqual(r, twin)
            self.assertEqual(permission_digest(r), permission_digest(twin))

    def test_hex_and_bytes_identities_are_equivalent(self):
        vault = bytes(31) + b"\x01"
        a = create_request(vault, b"\xaa" * 32, 40, 1, 1)
        b = create_request("0x" + vault.hex(), "AA" * 32, 40, 1, 1)
        self.assertEqual(permission_digest(a), permission_digest(b))

    def test_digest_is_sha256_of_encoding(self):
        r = create_request(b"\x01" * 32, b"\x02" * 32, 40, 1, 1)
        self.assertEqual(permission_digest(r), hashlib.sha256(encode_request(r)).digest())
        self.assertEqual(len(permission_digest(r)), 32)


class TestFieldBinding(unittest.TestCase):

    def test_single_field_perturbation_changes_digest(self):
        rng = random.Random(7)
        for _ in range(200):
            r = random_request(rng)
            base = permission_digest(r)
            for field_name in FIELDS:
                changed = perturb(r, field_name, rng)
                self.assertNotEqual(
                    base, permission_digest(changed),
                    f"digest unchanged after altering {field_name}"
                )

    def test_swapping_vault_and_recipient_changes_digest(self):
        a = create_request(b"\x01" * 32, b"\x02" * 32, 40, 1, 1)
        b = create_request(b"\x02" * 32, b"\x01" * 32, 40, 1, 1)
        self.assertNotEqual(permission_digest(a), permission_digest(b))

    def test_swapping_amount_and_nonce_changes_digest(self):
        a = create_request(b"\x01" * 32, b"\x02" * 32, 40, 1, 1)
        b = create_request(b"\x01" * 32, b"\x02" * 32, 1, 40, 1)
        self.assertNotEqual(permission_digest(a), permission_digest(b))


class TestEncodingLayout(unittest.TestCase):

    def setUp(self):
        self.request = create_request(b"\x11" * 32, b"\x22" * 32, 40, 7, 5)
        self.encoded = encode_request(self.request)

    def test_fixed_length(self):
        self.assertEqual(len(self.encoded), ENCODED_LENGTH)
        self.assertEqual(ENCODED_LENGTH, 32 + 33 * 4 + 9)
        big = create_request(b"\xff" * 32, b"\xff" * 32, (1 << 256) - 1, (1 << 256) - 1, (1 << 64) - 1)
        self.assertEqual(len(encode_request(big)), ENCODED_LENGTH)

    def test_domain_tag_prefix(self):
        self.assertEqual(self.encoded[:32], DOMAIN_TAG)
        self.assertEqual(DOMAIN_TAG, hashlib.sha256(b"permitvault.withdrawal-permit.v1").digest())

    def test_field_order_and_tags(self):
        e = self.encoded
        self.assertEqual(e[32:33], T_IDENTITY)
        self.assertEqual(e[33:65], b"\x11" * 32)
        self.assertEqual(e[65:66], T_IDENTITY)
        self.assertEqual(e[66:98], b"\x22" * 32)
        self.assertEqual(e[98:99], T_UINT256)
        self.assertEqual(int.from_bytes(e[99:131], "big"), 40)
        self.assertEqual(e[131:132], T_UINT256)
        self.assertEqual(int.from_bytes(e[132:164], "big"), 7)
        self.assertEqual(e[164:165], T_UINT64)
        self.assertEqual(int.from_bytes(e[165:173], "big"), 5)

    def test_decode_inverts_encode(self):
        self.assertEqual(decode_request(self.encoded), self.request)

    def test_decode_rejects_foreign_domain(self):
        tampered = b"\x00" * 32 + self.encoded[32:]
        with self.assertRaises(MalformedRequest):
            decode_request(tampered)

    def test_decode_rejects_wrong_length(self):
        with self.assertRaises(MalformedRequest):
            decode_request(self.encoded[:-1])


class TestRequestValidation(unittest.TestCase):

    def test_zero_amount(self):
        with self.assertRaises(InvalidAmount):
            create_request(b"\x01" * 32, b"\x02" * 32, 0, 1, 1)

    def test_negative_amount(self):
        with self.assertRaises(InvalidAmount):
            create_request(b"\x01" * 32, b"\x02" * 32, -5, 1, 1)

    def test_amount_overflow(self):
        with self.assertRaises(MalformedRequest):
            create_request(b"\x01" * 32, b"\x02" * 32, 1 << 256, 1, 1)

    def test_bool_is_not_a_quantity(self):
        with self.assertRaises(MalformedRequest):
            create_request(b"\x01" * 32, b"\x02" * 32, True, 1, 1)
        with self.assertRaises(MalformedRequest):
            create_request(b"\x01" * 32, b"\x02" * 32, 1, False, 1)

    def test_negative_nonce(self):
        with self.assertRaises(MalformedRequest):
            create_request(b"\x01" * 32, b"\x02" * 32, 1, -1, 1)

    def test_network_out_of_range(self):
        with self.assertRaises(MalformedRequest):
            create_request(b"\x01" * 32, b"\x02" * 32, 1, 1, 1 << 64)

    def test_short_identity(self):
        with self.assertRaises(MalformedRequest):
            create_request(b"\x01" * 31, b"\x02" * 32, 1, 1, 1)

    def test_non_hex_identity(self):
        with self.assertRaises(MalformedRequest):
            create_request("zz" * 32, b"\x02" * 32, 1, 1, 1)

    def test_request_is_immutable(self):
        r = create_request(b"\x01" * 32, b"\x02" * 32, 1, 1, 1)
        with self.assertRaises(Exception):
            r.amount = 2

    def test_dict_roundtrip(self):
        r = create_request(b"\x01" * 32, b"\x02" * 32, 123, 9, 3)
        self.assertEqual(PermissionRequest.from_dict(r.to_dict()), r)

    def test_from_dict_missing_fields(self):
        with self.assertRaises(MalformedRequest):
            PermissionRequest.from_dict({"amount": "1"})

    def test_from_dict_rejects_lossy_quantities(self):
        base = create_request(b"\x01" * 32, b"\x02" * 32, 40, 1, 1).to_dict()
        bad_values = {
            "amount": [40.9, 40.0, True, "40.9", "0x28", " 40", "-40", None, [40]],
            "nonce": [True, False, 1.0, "1e3", ""],
            "network_id": [1.5, True, "one"],
        }
        for field_name, values in bad_values.items():
            for value in values:
                with self.subTest(field=field_name, value=value):
                    with self.assertRaises(MalformedRequest):
                        PermissionRequest.from_dict({**base, field_name: value})

    def test_from_dict_accepts_ints_and_decimal_strings(self):
        base = create_request(b"\x01" * 32, b"\x02" * 32, 40, 1, 1).to_dict()
        as_ints = PermissionRequest.from_dict({**base, "amount": 40, "nonce": 1})
        as_strings = PermissionRequest.from_dict({**base, "amount": "40", "nonce": "1", "network_id": "1"})
        self.assertEqual(as_ints, as_strings)
        self.assertEqual(as_ints.amount, 40)


class TestDigestHelpers(unittest.TestCase):

    def test_parse_hex_digest(self):
        r = create_request(b"\x01" * 32, b"\x02" * 32, 1, 1, 1)
        d = permission_digest(r)
        self.assertEqual(parse_digest(digest_hex(d)), d)
        self.assertEqual(parse_digest(d.hex()), d)

    def test_parse_rejects_short_digest(self):
        with self.assertRaises(MalformedRequest):
            parse_digest("0x1234")

    def test_verify_digest(self):
        r = create_request(b"\x01" * 32, b"\x02" * 32, 1, 1, 1)
        self.assertTrue(verify_digest(digest_hex(permission_digest(r)), r))
        other = create_request(b"\x01" * 32, b"\x02" * 32, 2, 1, 1)
        self.assertFalse(verify_digest(permission_digest(other), r))
        self.assertFalse(verify_digest("not-hex", r))


if __name__ == "__main__":
    unittest.main()
