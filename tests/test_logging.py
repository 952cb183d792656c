"""
Tests for popwarden.logging.event_log: the SQLite audit log.
"""

import sqlite3

import pytest

pytestmark = pytest.mark.logging

from popwarden.logging.event_log import AuditEvent, EventLog, EventType, _sanitize_for_log


@pytest.fixture
def event_log(tmp_path):
    log = EventLog(tmp_path / "events.db")
    yield log
    log.close()


class TestSanitize:
    def test_control_characters(self):
        assert _sanitize_for_log("a\nb\rc\td\x00e\x1b") == "a\\nb\\rc\\td\\x00e\\x1b"

    def test_none(self):
        assert _sanitize_for_log(None) is None


class TestEventLog:
    def test_log_returns_row_id(self, event_log):
        first = event_log.log(AuditEvent(event_type=EventType.POPUP_DETECTED, popup_id="p1"))
        second = event_log.log(AuditEvent(event_type=EventType.DECISION_REQUESTED, popup_id="p1"))
        assert second == first + 1

    def test_recent_events_newest_first(self, event_log):
        event_log.record(EventType.POPUP_DETECTED, popup_id="p1", tab_id=3, domain="news.example.com")
        event_log.record(EventType.DECISION_RESOLVED, popup_id="p1", decision="close",
                         metadata={"responseTime": 1200})

        events = event_log.get_recent_events()
        assert [e["event_type"] for e in events] == ["decision_resolved", "popup_detected"]
        assert events[0]["decision"] == "close"
        assert '"responseTime": 1200' in events[0]["metadata_json"]
        assert events[1]["tab_id"] == 3

    def test_filters(self, event_log):
        event_log.record(EventType.POPUP_DETECTED, popup_id="p1")
        event_log.record(EventType.POPUP_DETECTED, popup_id="p2")
        event_log.record(EventType.REMINDER_SENT, popup_id="p1")

        assert len(event_log.get_recent_events(event_type=EventType.POPUP_DETECTED)) == 2
        assert len(event_log.get_recent_events(popup_id="p1")) == 2
        assert len(event_log.get_recent_events(limit=1)) == 1

    def test_domain_is_sanitized(self, event_log):
        event_log.record(EventType.POPUP_DETECTED, domain="evil.com\nFAKE ENTRY")
        assert event_log.get_recent_events()[0]["domain"] == "evil.com\\nFAKE ENTRY"

    def test_stats(self, event_log):
        event_log.record(EventType.DECISION_RESOLVED, decision="close")
        event_log.record(EventType.DECISION_RESOLVED, decision="close")
        event_log.record(EventType.DECISION_TIMEOUT, decision="timeout")
        event_log.record(EventType.PATTERN_CREATED)

        stats = event_log.get_stats(days=1)
        assert stats["period_days"] == 1
        assert stats["total_events"] == 4
        assert stats["by_type"]["decision_resolved"] == 2
        assert stats["by_decision"] == {"close": 2, "timeout": 1}

    def test_delete_all(self, event_log):
        event_log.record(EventType.POPUP_DETECTED)
        event_log.record(EventType.POPUP_DETECTED)
        assert event_log.delete_events() == 2
        assert event_log.get_recent_events() == []

    def test_delete_older_than_keeps_recent(self, event_log):
        event_log.record(EventType.POPUP_DETECTED)
        assert event_log.delete_events(days=30) == 0
        assert len(event_log.get_recent_events()) == 1

    def test_record_never_raises(self, event_log):
        assert event_log.record(EventType.POPUP_DETECTED, unknown_field=1) is None

    def test_reopens_after_close(self, event_log):
        event_log.record(EventType.POPUP_DETECTED)
        event_log.close()
        event_log.record(EventType.POPUP_DETECTED)
        assert len(event_log.get_recent_events()) == 2


def backdate(event_log, row_id, days):
    with event_log._get_connection() as conn:
        conn.execute(
            "UPDATE audit_events SET timestamp = datetime('now', ?) WHERE id = ?",
            (f"-{days} days", row_id),
        )


class TestPrune:
    def test_drops_events_past_retention(self, event_log):
        old = event_log.record(EventType.POPUP_DETECTED, popup_id="old")
        event_log.record(EventType.POPUP_DETECTED, popup_id="new")
        backdate(event_log, old, 40)

        assert event_log.prune(30) == 1
        assert [e["popup_id"] for e in event_log.get_recent_events()] == ["new"]

    def test_failure_is_contained(self, event_log, monkeypatch, caplog):
        def broken(days=None):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(event_log, "delete_events", broken)
        assert event_log.prune(30) == 0
        assert "pruning failed" in caplog.text
