"""popwarden audit logging."""

from popwarden.logging.event_log import AuditEvent, EventLog, EventType

__all__ = ["AuditEvent", "EventLog", "EventType"]
