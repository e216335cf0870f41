"""
Audit Ledger — append-only, hash-chained record of every kernel notification.

Behavioral Contract:
- Append-only. No event is ever modified or deleted.
- Each event is hashed and chained to the previous event (tamper-evident).
- Listeners are notified synchronously after the event is persisted.
- Queryable by policy, by kind, and by recency.
"""

import hashlib
import json
import logging
import sqlite3
import threading
import time
from typing import Callable, List, Optional
from uuid import uuid4

from fdi_kernel.models.events import EventKind, PolicyEvent

logger = logging.getLogger(__name__)

EventListener = Callable[[PolicyEvent], None]


def _compute_signature(event: PolicyEvent) -> str:
    event_dict = event.model_dump(mode="json")
    # Signature is what we're computing
    event_dict["signature"] = ""
    event_bytes = json.dumps(event_dict, sort_keys=True, default=str).encode()
    return hashlib.sha256(event_bytes).hexdigest()


class AuditLedger:
    """
    Append-only notification ledger.
    SQLite-backed; defaults to an in-memory database.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._listeners: List[EventListener] = []
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the events table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS events (
                id TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                policy_id INTEGER,
                holder TEXT,
                occurred_at INTEGER NOT NULL,
                signature TEXT NOT NULL,
                prior_record_hash TEXT,
                event_json TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_events_policy_id ON events(policy_id)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_events_kind ON events(kind)
        """)
        self._conn.commit()

    def subscribe(self, listener: EventListener) -> None:
        """Register a callback invoked with every appended event."""
        self._listeners.append(listener)

    def emit(
        self,
        kind: EventKind,
        policy_id: Optional[int] = None,
        holder: Optional[str] = None,
        occurred_at: Optional[int] = None,
        **details,
    ) -> PolicyEvent:
        """Build and append an event in one step."""
        event = PolicyEvent(
            id=f"evt_{uuid4().hex[:12]}",
            kind=kind,
            policy_id=policy_id,
            holder=holder,
            occurred_at=int(time.time()) if occurred_at is None else occurred_at,
            details=details,
        )
        return self.append(event)

    def append(self, event: PolicyEvent) -> PolicyEvent:
        """
        Append an event. Computes its hash and chains it to the previous event.
        """
        with self._lock:
            event.prior_record_hash = self._get_latest_hash()
            event.signature = _compute_signature(event)

            self._conn.execute(
                """
                INSERT INTO events (
                    id, kind, policy_id, holder, occurred_at,
                    signature, prior_record_hash, event_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.id,
                    event.kind.value,
                    event.policy_id,
                    event.holder,
                    event.occurred_at,
                    event.signature,
                    event.prior_record_hash,
                    json.dumps(event.model_dump(mode="json"), default=str),
                ),
            )
            self._conn.commit()

        for listener in self._listeners:
            listener(event)
        return event

    def _get_latest_hash(self) -> Optional[str]:
        row = self._conn.execute(
            "SELECT signature FROM events ORDER BY rowid DESC LIMIT 1"
        ).fetchone()
        return row["signature"] if row else None

    def _deserialize(self, row: sqlite3.Row) -> PolicyEvent:
        return PolicyEvent.model_validate_json(row["event_json"])

    def _fetch(self, sql: str, params: tuple = ()) -> List[PolicyEvent]:
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [self._deserialize(r) for r in rows]

    def query_by_policy(self, policy_id: int) -> List[PolicyEvent]:
        """Every event for one policy, oldest first."""
        return self._fetch(
            "SELECT event_json FROM events WHERE policy_id = ? ORDER BY rowid",
            (policy_id,),
        )

    def query_by_kind(self, kind: EventKind) -> List[PolicyEvent]:
        return self._fetch(
            "SELECT event_json FROM events WHERE kind = ? ORDER BY rowid",
            (kind.value,),
        )

    def query_recent(self, limit: int = 50) -> List[PolicyEvent]:
        """Get the most recent events, oldest first."""
        rows = self._fetch(
            "SELECT event_json FROM events ORDER BY rowid DESC LIMIT ?",
            (limit,),
        )
        return list(reversed(rows))

    def verify_chain_integrity(self) -> bool:
        """Verify no events have been tampered with."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT event_json, signature FROM events ORDER BY rowid"
            ).fetchall()

        prior_sig = None
        for row in rows:
            event = self._deserialize(row)
            if event.signature != row["signature"]:
                return False
            if _compute_signature(event) != event.signature:
                logger.warning("Audit event %s failed signature check", event.id)
                return False
            if event.prior_record_hash != prior_sig:
                logger.warning("Audit chain broken at event %s", event.id)
                return False
            prior_sig = event.signature
        return True

    def count(self) -> int:
        """Total number of events."""
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) as cnt FROM events").fetchone()
        return row["cnt"]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
