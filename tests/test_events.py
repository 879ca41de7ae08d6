import json
import logging
import unittest

from permitvault import (
    AuthorizationConsumed,
    Deposit,
    EventType,
    FanoutEventSink,
    InMemoryEventLog,
    LoggingEventSink,
    Withdrawal,
)
from permitvault.logging_config import (
    AuditLogger,
    StructuredFormatter,
    configure_logging,
    get_request_id,
    request_id_var,
    set_request_id,
)

ACCOUNT = bytes(31) + b"\x07"


class TestInMemoryEventLog(unittest.TestCase):

    def test_query_by_type(self):
        log = InMemoryEventLog()
        log.emit(Deposit(account=ACCOUNT, amount=5))
        log.emit(Withdrawal(recipient=ACCOUNT, amount=3))
        log.emit(Deposit(account=ACCOUNT, amount=1))

        self.assertEqual(len(log), 3)
        self.assertEqual([e.amount for e in log.query(EventType.DEPOSIT)], [5, 1])
        self.assertEqual(len(log.query()), 3)

    def test_bounded(self):
        log = InMemoryEventLog(max_records=2)
        for amount in (1, 2, 3):
            log.emit(Deposit(account=ACCOUNT, amount=amount))
        self.assertEqual([e.amount for e in log.query()], [2, 3])

    def test_event_dict(self):
        d = AuthorizationConsumed(digest=b"\xaa" * 32, recipient=ACCOUNT, consumer=ACCOUNT).to_dict()
        self.assertEqual(d["event"], "AuthorizationConsumed")
        self.assertEqual(d["digest"], "0x" + "aa" * 32)
        self.assertTrue(d["emitted_at"].endswith("Z"))


class TestLoggingEventSink(unittest.TestCase):

    def test_emits_structured_record(self):
        sink = LoggingEventSink()
        with self.assertLogs("permitvault.events", level="INFO") as captured:
            sink.emit(Withdrawal(recipient=ACCOUNT, amount=40))

        record = captured.records[0]
        line = json.loads(StructuredFormatter().format(record))
        self.assertEqual(line["event"], "Withdrawal")
        self.assertEqual(line["amount"], "40")
        self.assertEqual(line["recipient"], "0x" + ACCOUNT.hex())

    def test_fanout(self):
        log = InMemoryEventLog()
        sink = FanoutEventSink(log, LoggingEventSink(level=logging.DEBUG))
        with self.assertLogs("permitvault.events", level="DEBUG"):
            sink.emit(Deposit(account=ACCOUNT, amount=9))
        self.assertEqual(len(log), 1)


class TestAuditLogger(unittest.TestCase):

    def tearDown(self):
        request_id_var.set("")

    def test_audit_record_fields(self):
        audit = AuditLogger("permitvault.audit.test")
        set_request_id("req-42")
        self.assertEqual(get_request_id(), "req-42")

        with self.assertLogs("permitvault.audit.test", level="INFO") as captured:
            audit.withdrawal("0x" + ACCOUNT.hex(), 2 ** 200, 7)

        line = json.loads(StructuredFormatter().format(captured.records[0]))
        self.assertEqual(line["event_type"], "WITHDRAWAL")
        self.assertEqual(line["amount"], str(2 ** 200))
        self.assertEqual(line["balance"], "7")
        self.assertEqual(line["request_id"], "req-42")
        self.assertEqual(line["level"], "INFO")

    def test_security_event_severity(self):
        audit = AuditLogger("permitvault.audit.test")
        with self.assertLogs("permitvault.audit.test", level="INFO") as captured:
            audit.security_event("forged_permission", severity="high", recipient="0x01")
        self.assertEqual(captured.records[0].levelno, logging.ERROR)

    def test_generated_request_id(self):
        generated = set_request_id()
        self.assertTrue(generated)
        self.assertEqual(get_request_id(), generated)

    def test_unknown_level(self):
        with self.assertRaises(ValueError):
            configure_logging("LOUD")


if __name__ == "__main__":
    unittest.main()
