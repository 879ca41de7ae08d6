"""
PermitVault Replay Ledger

Maps a permission digest to a one-way "consumed" flag.

Implementations must be:
- Atomic (consume() is a single test-and-set; no double-use)
- Monotonic (an entry, once written, is never cleared)
- Fast (on the hot path of every withdrawal)

There is deliberately no delete, reset or expiry operation.
"""

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from .hashing import DIGEST_SIZE


@dataclass(frozen=True)
class LedgerEntry:
    """Record of one consumed permission."""
    digest: bytes
    consumer: bytes
    recipient: bytes
    consumed_at: datetime

    def to_dict(self) -> Dict[str, str]:
        return {
            "digest": "0x" + self.digest.hex(),
            "consumer": "0x" + self.consumer.hex(),
            "recipient": "0x" + self.recipient.hex(),
            "consumed_at": self.consumed_at.isoformat().replace("+00:00", "Z"),
        }


def _check_digest(digest: bytes) -> bytes:
    if not isinstance(digest, (bytes, bytearray)) or len(digest) != DIGEST_SIZE:
        raise ValueError(f"ledger keys are {DIGEST_SIZE}-byte digests")
    return bytes(digest)


class ReplayLedger(ABC):
    """Abstract interface for the digest -> consumed map."""

    @abstractmethod
    def consume(self, digest: bytes, consumer: bytes, recipient: bytes) -> bool:
        """
        Atomically mark a digest as consumed.

        Returns:
            True if this call flipped the entry (first use)
            False if the digest was already consumed
        """
        pass

    @abstractmethod
    def is_consumed(self, digest: bytes) -> bool:
        """Check a digest; False for any digest never seen."""
        pass

    @abstractmethod
    def get_entry(self, digest: bytes) -> Optional[LedgerEntry]:
        """Return the consumption record for a digest, if any."""
        pass

    @abstractmethod
    def consumed_count(self) -> int:
        """Number of consumed digests."""
        pass


class InMemoryReplayLedger(ReplayLedger):
    """
    In-memory ledger for development/testing.

    Not persistent across restarts. Use SqliteReplayLedger where the
    ledger must survive the process.
    """

    def __init__(self):
        self._entries: Dict[bytes, LedgerEntry] = {}
        self._lock = threading.Lock()

    def consume(self, digest: bytes, consumer: bytes, recipient: bytes) -> bool:
        digest = _check_digest(digest)
        with self._lock:
            if digest in self._entries:
                return False
            self._entries[digest] = LedgerEntry(
                digest=digest,
                consumer=bytes(consumer),
                recipient=bytes(recipient),
                consumed_at=datetime.now(timezone.utc),
            )
            return True

    def is_consumed(self, digest: bytes) -> bool:
        digest = _check_digest(digest)
        with self._lock:
            return digest in self._entries

    def get_entry(self, digest: bytes) -> Optional[LedgerEntry]:
        digest = _check_digest(digest)
        with self._lock:
            return self._entries.get(digest)

    def consumed_count(self) -> int:
        with self._lock:
            return len(self._entries)


class SqliteReplayLedger(ReplayLedger):
    """
    SQLite-backed ledger.

    The digest is the primary key; INSERT OR IGNORE is the atomic
    test-and-set, so two writers racing on one digest see exactly one
    successful insert.

    Schema:
        CREATE TABLE replay_ledger (
            digest BLOB PRIMARY KEY,
            consumer BLOB NOT NULL,
            recipient BLOB NOT NULL,
            consumed_at TEXT NOT NULL
        );
    """

    def __init__(self, path: Union[str, Path] = ":memory:", table_name: str = "replay_ledger"):
        self.path = str(path)
        self.table = table_name
        self._lock = threading.Lock()

        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if self.path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL;")
        self._init_schema()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back on failure."""
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _init_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                digest BLOB PRIMARY KEY,
                consumer BLOB NOT NULL,
                recipient BLOB NOT NULL,
                consumed_at TEXT NOT NULL
            );""")

    def consume(self, digest: bytes, consumer: bytes, recipient: bytes) -> bool:
        digest = _check_digest(digest)
        consumed_at = datetime.now(timezone.utc).isoformat()
        with self._transaction() as conn:
            cur = conn.execute(
                f"INSERT OR IGNORE INTO {self.table}(digest, consumer, recipient, consumed_at) "
                "VALUES(?,?,?,?)",
                (digest, bytes(consumer), bytes(recipient), consumed_at)
            )
            return cur.rowcount == 1

    def is_consumed(self, digest: bytes) -> bool:
        digest = _check_digest(digest)
        with self._lock:
            cur = self._conn.execute(f"SELECT 1 FROM {self.table} WHERE digest=?", (digest,))
            return cur.fetchone() is not None

    def get_entry(self, digest: bytes) -> Optional[LedgerEntry]:
        digest = _check_digest(digest)
        with self._lock:
            cur = self._conn.execute(
                f"SELECT digest, consumer, recipient, consumed_at FROM {self.table} WHERE digest=?",
                (digest,)
            )
            row = cur.fetchone()
        if row is None:
            return None
        return LedgerEntry(
            digest=bytes(row["digest"]),
            consumer=bytes(row["consumer"]),
            recipient=bytes(row["recipient"]),
            consumed_at=datetime.fromisoformat(row["consumed_at"]),
        )

    def consumed_count(self) -> int:
        with self._lock:
            cur = self._conn.execute(f"SELECT COUNT(*) AS cnt FROM {self.table}")
            return cur.fetchone()["cnt"]

    def entries(self) -> List[LedgerEntry]:
        """All consumption records, oldest first."""
        with self._lock:
            cur = self._conn.execute(
                f"SELECT digest, consumer, recipient, consumed_at FROM {self.table} "
                "ORDER BY consumed_at ASC"
            )
            rows = cur.fetchall()
        return [
            LedgerEntry(
                digest=bytes(r["digest"]),
                consumer=bytes(r["consumer"]),
                recipient=bytes(r["recipient"]),
                consumed_at=datetime.fromisoformat(r["consumed_at"]),
            )
            for r in rows
        ]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
