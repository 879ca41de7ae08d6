"""
PermitVault Replay Ledger Test Suite

Critical invariants tested:
    CONSUME IS A ONE-WAY TEST-AND-SET
    A CONSUMED DIGEST STAYS CONSUMED ACROSS RESTARTS
"""

import os
import tempfile
import threading
import unittest

from permitvault import InMemoryReplayLedger, SqliteReplayLedger
from permitvault.config import Settings, build_ledger

DIGEST_A = bytes([0xA1]) * 32
DIGEST_B = bytes([0xB2]) * 32
VAULT = bytes(31) + b"\x01"
RECIPIENT = bytes(31) + b"\x0a"


class LedgerContract:
    """Behaviour shared by every ledger backend."""

    def make_ledger(self):
        raise NotImplementedError

    def setUp(self):
        self.ledger = self.make_ledger()

    def test_unknown_digest_not_consumed(self):
        self.assertFalse(self.ledger.is_consumed(DIGEST_A))
        self.assertIsNone(self.ledger.get_entry(DIGEST_A))
        self.assertEqual(self.ledger.consumed_count(), 0)

    def test_consume_once(self):
        self.assertTrue(self.ledger.consume(DIGEST_A, VAULT, RECIPIENT))
        self.assertFalse(self.ledger.consume(DIGEST_A, VAULT, RECIPIENT))
        self.assertTrue(self.ledger.is_consumed(DIGEST_A))
        self.assertFalse(self.ledger.is_consumed(DIGEST_B))
        self.assertEqual(self.ledger.consumed_count(), 1)

    def test_entry_records_consumer(self):
        self.ledger.consume(DIGEST_A, VAULT, RECIPIENT)
        entry = self.ledger.get_entry(DIGEST_A)
        self.assertEqual(entry.digest, DIGEST_A)
        self.assertEqual(entry.consumer, VAULT)
        self.assertEqual(entry.recipient, RECIPIENT)
        self.assertEqual(entry.to_dict()["digest"], "0x" + DIGEST_A.hex())
        self.assertTrue(entry.to_dict()["consumed_at"].endswith("Z"))

    def test_first_record_wins(self):
        self.ledger.consume(DIGEST_A, VAULT, RECIPIENT)
        self.ledger.consume(DIGEST_A, bytes(32), bytes(32))
        self.assertEqual(self.ledger.get_entry(DIGEST_A).consumer, VAULT)

    def test_rejects_bad_keys(self):
        for bad in (b"", b"\x00" * 31, b"\x00" * 33, "a1" * 32, None):
            with self.assertRaises(ValueError):
                self.ledger.consume(bad, VAULT, RECIPIENT)
        self.assertEqual(self.ledger.consumed_count(), 0)

    def test_no_reset_surface(self):
        for name in ("clear", "reset", "delete", "remove", "unconsume", "expire"):
            self.assertFalse(hasattr(self.ledger, name), name)

    def test_racing_consumers(self):
        wins = []
        lock = threading.Lock()
        start = threading.Barrier(8)

        def worker():
            start.wait()
            won = self.ledger.consume(DIGEST_A, VAULT, RECIPIENT)
            with lock:
                wins.append(won)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(wins.count(True), 1)


class TestInMemoryLedger(LedgerContract, unittest.TestCase):

    def make_ledger(self):
        return InMemoryReplayLedger()


class TestSqliteLedger(LedgerContract, unittest.TestCase):

    def make_ledger(self):
        return SqliteReplayLedger()

    def tearDown(self):
        self.ledger.close()

    def test_entries_in_order(self):
        self.ledger.consume(DIGEST_A, VAULT, RECIPIENT)
        self.ledger.consume(DIGEST_B, VAULT, RECIPIENT)
        digests = [e.digest for e in self.ledger.entries()]
        self.assertEqual(sorted(digests), sorted([DIGEST_A, DIGEST_B]))


class TestSqlitePersistence(unittest.TestCase):

    def test_survives_reopen(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "nested", "ledger.db")

            first = SqliteReplayLedger(path)
            self.assertTrue(first.consume(DIGEST_A, VAULT, RECIPIENT))
            first.close()

            second = SqliteReplayLedger(path)
            try:
                self.assertTrue(second.is_consumed(DIGEST_A))
                self.assertFalse(second.consume(DIGEST_A, VAULT, RECIPIENT))
                self.assertEqual(second.get_entry(DIGEST_A).recipient, RECIPIENT)
            finally:
                second.close()


class TestBuildLedger(unittest.TestCase):

    def test_memory_backend(self):
        self.assertIsInstance(build_ledger(Settings(ledger_backend="memory")), InMemoryReplayLedger)

    def test_sqlite_backend(self):
        with tempfile.TemporaryDirectory() as tmp:
            ledger = build_ledger(Settings(ledger_backend="sqlite", ledger_path=os.path.join(tmp, "l.db")))
            try:
                self.assertIsInstance(ledger, SqliteReplayLedger)
            finally:
                ledger.close()

    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            build_ledger(Settings(ledger_backend="redis"))


if __name__ == "__main__":
    unittest.main()
