"""
Logging configuration for PermitVault.

One JSON object per line: authorization outcomes and balance movements go
through AuditLogger on the "permitvault.audit" logger; everything else
uses plain module loggers.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

# Correlates every record written while serving one HTTP request
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class AuditEvent(str, Enum):
    AUTHORIZATION_CONSUMED = "AUTHORIZATION_CONSUMED"
    AUTHORIZATION_REJECTED = "AUTHORIZATION_REJECTED"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    WITHDRAWAL_REJECTED = "WITHDRAWAL_REJECTED"
    SECURITY_EVENT = "SECURITY_EVENT"


SEVERITY_LEVELS = {
    "low": logging.INFO,
    "medium": logging.WARNING,
    "high": logging.ERROR,
    "critical": logging.CRITICAL,
}


class StructuredFormatter(logging.Formatter):
    """
    Render a record as a single JSON line.

    Fields attached under ``extra_fields`` are merged into the top level,
    which is how audit records and LoggingEventSink carry their payload.
    """

    def format(self, record: logging.LogRecord) -> str:
        emitted = datetime.fromtimestamp(record.created, tz=timezone.utc)
        line: Dict[str, Any] = {
            "timestamp": emitted.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        request_id = request_id_var.get()
        if request_id:
            line["request_id"] = request_id

        line.update(getattr(record, "extra_fields", {}))

        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)

        return json.dumps(line, default=str)


class AuditLogger:
    """
    Audit trail for the vault and the authority.

    Amounts and balances are logged as strings; they are unbounded
    integers and must survive JSON consumers that parse numbers as floats.
    """

    def __init__(self, name: str = "permitvault.audit"):
        self._logger = logging.getLogger(name)

    def _emit(self, level: int, event: AuditEvent, message: str, **fields: Any) -> None:
        self._logger.log(
            level,
            "%s: %s",
            event.value,
            message,
            extra={"extra_fields": {"event_type": event.value, **fields}},
        )

    def authorization_consumed(self, digest: str, consumer: str, recipient: str) -> None:
        self._emit(
            logging.INFO, AuditEvent.AUTHORIZATION_CONSUMED, f"permission {digest} consumed",
            digest=digest, consumer=consumer, recipient=recipient,
        )

    def authorization_rejected(self, digest: str, reason: str) -> None:
        self._emit(
            logging.WARNING, AuditEvent.AUTHORIZATION_REJECTED, reason,
            digest=digest, reason=reason,
        )

    def deposit(self, account: str, amount: int, balance: int) -> None:
        self._emit(
            logging.INFO, AuditEvent.DEPOSIT, f"{amount} from {account}",
            account=account, amount=str(amount), balance=str(balance),
        )

    def withdrawal(self, recipient: str, amount: int, balance: int) -> None:
        self._emit(
            logging.INFO, AuditEvent.WITHDRAWAL, f"{amount} to {recipient}",
            recipient=recipient, amount=str(amount), balance=str(balance),
        )

    def withdrawal_rejected(self, recipient: str, amount: int, reason: str) -> None:
        self._emit(
            logging.WARNING, AuditEvent.WITHDRAWAL_REJECTED, reason,
            recipient=recipient, amount=str(amount), reason=reason,
        )

    def security_event(self, event: str, severity: str = "medium", **details: Any) -> None:
        """Record a security-relevant observation (forged or malformed permissions)."""
        self._emit(
            SEVERITY_LEVELS.get(severity, logging.WARNING), AuditEvent.SECURITY_EVENT, event,
            security_event=event, severity=severity, **details,
        )


def _handler(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Install PermitVault handlers on the root logger.

    Replaces any handlers already present, so calling it twice does not
    duplicate output.

    Raises:
        ValueError: level is not a standard logging level name
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")

    if json_format:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s')

    handlers = [_handler(logging.StreamHandler(sys.stdout), formatter)]
    if log_file:
        handlers.append(_handler(logging.FileHandler(log_file, encoding="utf-8"), formatter))

    root = logging.getLogger()
    root.setLevel(numeric)
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    for handler in handlers:
        root.addHandler(handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id to the current context, generating one if absent."""
    request_id = request_id or uuid.uuid4().hex
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> str:
    return request_id_var.get()


audit_log = AuditLogger()
