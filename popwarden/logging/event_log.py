"""
popwarden Event Log

SQLite-based audit log for decision and learning events.
Records every detection, decision request, reminder, resolution and
pattern change so a user can see why a popup was closed or kept.

Database location: ~/.popwarden/events.db
"""
from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def _sanitize_for_log(text: Optional[str]) -> Optional[str]:
    """Sanitize text for log storage to prevent log injection.

    Replaces control characters that could break log parsers:
    newlines, carriage returns, tabs, null bytes, and ANSI escapes.
    """
    if text is None:
        return None
    return (
        text
        .replace("\x00", "\\x00")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\x1b", "\\x1b")
    )


class EventType(Enum):
    """Types of audit events."""
    # Decision lifecycle
    POPUP_DETECTED = "popup_detected"           # Candidate reported by a tab
    DECISION_REQUESTED = "decision_requested"   # User asked to close/keep
    REMINDER_SENT = "reminder_sent"             # Reminder after silence
    DECISION_RESOLVED = "decision_resolved"     # User answered
    DECISION_TIMEOUT = "decision_timeout"       # Reminders exhausted
    DECISION_EXPIRED = "decision_expired"       # Swept after 24h
    AUTO_APPLIED = "auto_applied"               # Learned decision applied without asking
    DECISIONS_RESTORED = "decisions_restored"   # Pending decisions reloaded at startup

    # Learning
    PATTERN_CREATED = "pattern_created"
    PATTERN_UPDATED = "pattern_updated"
    PATTERN_FLIPPED = "pattern_flipped"         # Decision reversed after disagreement
    PATTERN_EVICTED = "pattern_evicted"         # Dropped by cleanup


@dataclass
class AuditEvent:
    """An audit event to be logged."""
    event_type: EventType
    popup_id: Optional[str] = None
    pattern_id: Optional[str] = None
    tab_id: Optional[int] = None
    domain: Optional[str] = None
    decision: Optional[str] = None          # close, keep, dismiss, timeout, expired
    detail: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class EventLog:
    """SQLite-based audit event log."""

    DEFAULT_DB_PATH = Path.home() / ".popwarden" / "events.db"

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the event log.

        Args:
            db_path: Path to SQLite database. Defaults to ~/.popwarden/events.db
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        self._ensure_db_exists()

    def _ensure_db_exists(self):
        """Create database and tables if they don't exist."""
        with self._get_connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS audit_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now')),
                    event_type TEXT NOT NULL,
                    popup_id TEXT,
                    pattern_id TEXT,
                    tab_id INTEGER,
                    domain TEXT,
                    decision TEXT,
                    detail TEXT,
                    metadata_json TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_ae_timestamp
                    ON audit_events(timestamp);
                CREATE INDEX IF NOT EXISTS idx_ae_event_type
                    ON audit_events(event_type);
                CREATE INDEX IF NOT EXISTS idx_ae_popup_id
                    ON audit_events(popup_id);
            """)

    @contextmanager
    def _get_connection(self):
        """Get a database connection, reusing persistent connection when possible."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), timeout=5)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield self._conn
            self._conn.commit()
        except sqlite3.Error:
            # On error, close and reset so next call gets a fresh connection
            self.close()
            raise

    def close(self):
        """Close the database connection."""
        if self._conn is not None:
            try:
                self._conn.close()
            except sqlite3.Error:
                pass
            self._conn = None

    def log(self, event: AuditEvent) -> int:
        """Log an audit event.

        Args:
            event: The audit event to log

        Returns:
            The row ID of the inserted event
        """
        detail = _sanitize_for_log(event.detail)
        domain = _sanitize_for_log(event.domain)
        metadata_str = json.dumps(event.metadata, default=str) if event.metadata else None

        with self._get_connection() as conn:
            cursor = conn.execute("""
                INSERT INTO audit_events (
                    event_type, popup_id, pattern_id, tab_id,
                    domain, decision, detail, metadata_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                event.event_type.value,
                _sanitize_for_log(event.popup_id),
                _sanitize_for_log(event.pattern_id),
                event.tab_id,
                domain,
                event.decision,
                detail,
                metadata_str,
            ))
            return cursor.lastrowid

    def record(self, event_type: EventType, **fields: Any) -> Optional[int]:
        """Log an event without ever raising; audit failures are only warned about."""
        try:
            return self.log(AuditEvent(event_type=event_type, **fields))
        except (sqlite3.Error, OSError, TypeError, ValueError) as e:
            logger.warning("Audit log write failed for %s: %s", event_type.value, e)
            return None

    def get_recent_events(
        self,
        limit: int = 50,
        event_type: Optional[EventType] = None,
        popup_id: Optional[str] = None,
    ) -> List[Dict]:
        """Get recent audit events, newest first.

        Args:
            limit: Maximum number of events to return
            event_type: Filter by event type
            popup_id: Filter by popup id

        Returns:
            List of event dictionaries
        """
        query = "SELECT * FROM audit_events WHERE 1=1"
        params: List[Any] = []

        if event_type:
            query += " AND event_type = ?"
            params.append(event_type.value)

        if popup_id:
            query += " AND popup_id = ?"
            params.append(popup_id)

        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [dict(row) for row in rows]

    def get_stats(self, days: int = 7) -> Dict[str, Any]:
        """Get event counts for the specified period.

        Args:
            days: Number of days to include

        Returns:
            Dictionary with totals per event type and per decision
        """
        with self._get_connection() as conn:
            total = conn.execute("""
                SELECT COUNT(*) as count FROM audit_events
                WHERE timestamp > datetime('now', ?)
            """, (f'-{days} days',)).fetchone()['count']

            by_type = conn.execute("""
                SELECT event_type, COUNT(*) as count
                FROM audit_events
                WHERE timestamp > datetime('now', ?)
                GROUP BY event_type
                ORDER BY count DESC
            """, (f'-{days} days',)).fetchall()

            by_decision = conn.execute("""
                SELECT decision, COUNT(*) as count
                FROM audit_events
                WHERE timestamp > datetime('now', ?)
                AND decision IS NOT NULL
                GROUP BY decision
            """, (f'-{days} days',)).fetchall()

            return {
                'period_days': days,
                'total_events': total,
                'by_type': {row['event_type']: row['count'] for row in by_type},
                'by_decision': {row['decision']: row['count'] for row in by_decision},
            }

    def delete_events(self, days: Optional[int] = None) -> int:
        """Delete events from the database.

        Args:
            days: If provided, only delete events older than this many days.
                  If None, delete all events.

        Returns:
            Number of events deleted
        """
        with self._get_connection() as conn:
            if days is not None:
                cursor = conn.execute(
                    "DELETE FROM audit_events WHERE timestamp < datetime('now', ?)",
                    (f'-{days} days',),
                )
            else:
                cursor = conn.execute("DELETE FROM audit_events")
            return cursor.rowcount

    def prune(self, retention_days: int) -> int:
        """Delete events past the retention window without ever raising."""
        try:
            deleted = self.delete_events(days=retention_days)
        except sqlite3.Error as e:
            logger.warning("Audit log pruning failed: %s", e)
            return 0
        if deleted:
            logger.info("Pruned %d audit events older than %d days", deleted, retention_days)
        return deleted
