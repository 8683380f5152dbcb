"""Tests for the security event log."""

import logging
from unittest.mock import MagicMock

from admission_gate.core.models import EventKind
from admission_gate.handlers.events import EVENTS_COLLECTION, SecurityEventLog


class TestRecord:
    """Tests for SecurityEventLog.record."""

    def test_record_persists_event(self, memory_store, clock):
        log = SecurityEventLog(memory_store, clock=clock)
        event = log.record(EventKind.AUTH_ATTEMPT, actor="a@acme.com", detail="x")

        assert event is not None
        assert event.timestamp == clock.now
        stored = memory_store.get(EVENTS_COLLECTION, event.id)
        assert stored["kind"] == "auth-attempt"
        assert stored["actor"] == "a@acme.com"

    def test_record_mirrors_to_logger(self, memory_store, caplog):
        log = SecurityEventLog(memory_store)
        with caplog.at_level(logging.INFO, logger="admission_gate.handlers.events"):
            log.record(EventKind.LOGIN_FAILURE, actor="a@acme.com", detail="nope")
        assert "login-failure" in caplog.text

    def test_record_never_raises(self, caplog):
        """A failing store is retried, logged and swallowed."""
        store = MagicMock()
        store.set.side_effect = OSError("disk full")
        log = SecurityEventLog(store, retries=2)

        with caplog.at_level(logging.WARNING):
            assert log.record(EventKind.POLICY_CHANGE, actor="admin@acme.com") is None

        assert store.set.call_count == 3
        assert "Dropped security event" in caplog.text

    def test_malformed_event_is_dropped(self, caplog):
        """Unknown kinds and non-string actors are logged, never raised."""
        store = MagicMock()
        log = SecurityEventLog(store)

        with caplog.at_level(logging.ERROR):
            assert log.record("bogus-kind", actor="a@acme.com") is None
            assert log.record(EventKind.AUTH_ATTEMPT, actor=None) is None

        store.set.assert_not_called()
        assert caplog.text.count("Dropped malformed security event") == 2

    def test_record_accepts_kind_value(self, memory_store):
        event = SecurityEventLog(memory_store).record("auth-attempt", actor="a@acme.com")
        assert event.kind == EventKind.AUTH_ATTEMPT

    def test_record_retries_then_succeeds(self):
        store = MagicMock()
        store.set.side_effect = [OSError("blip"), None]
        log = SecurityEventLog(store, retries=2)

        assert log.record(EventKind.POLICY_CHANGE, actor="admin@acme.com") is not None
        assert store.set.call_count == 2


class TestRecent:
    """Tests for SecurityEventLog.recent."""

    def test_recent_is_ordered_and_limited(self, memory_store, clock):
        log = SecurityEventLog(memory_store, clock=clock)
        for i in range(5):
            log.record(EventKind.AUTH_ATTEMPT, actor=f"u{i}@acme.com")
            clock.advance(1)

        recent = log.recent(limit=2)
        assert [e.actor for e in recent] == ["u3@acme.com", "u4@acme.com"]
        assert log.recent(limit=0) == []

    def test_recent_filters_by_kind(self, memory_store, clock):
        log = SecurityEventLog(memory_store, clock=clock)
        log.record(EventKind.AUTH_ATTEMPT, actor="a@acme.com")
        log.record(EventKind.LOGIN_FAILURE, actor="a@acme.com")

        failures = log.recent(kind=EventKind.LOGIN_FAILURE)
        assert [e.kind for e in failures] == [EventKind.LOGIN_FAILURE]
