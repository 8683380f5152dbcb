"""Append-only audit log of admission-relevant events."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

from admission_gate.core.models import EventKind, SecurityEvent, _utcnow

if TYPE_CHECKING:
    from admission_gate.state.base import ConfigStore

logger = logging.getLogger(__name__)

EVENTS_COLLECTION = "security_events"


class SecurityEventLog:
    """Records SecurityEvents in the store and mirrors them to the logger.

    record() never raises: an audit write failing must not change the
    outcome of the authorization decision that triggered it.
    """

    def __init__(
        self,
        store: ConfigStore,
        retries: int = 2,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.retries = max(0, retries)
        self.clock = clock or _utcnow

    def record(
        self, kind: EventKind, actor: str, detail: str = ""
    ) -> Optional[SecurityEvent]:
        try:
            event = SecurityEvent(
                kind=EventKind(kind), actor=actor, detail=detail, timestamp=self.clock()
            )
        except (ValueError, TypeError) as e:
            logger.error("Dropped malformed security event %r actor=%r: %s", kind, actor, e)
            return None

        logger.info("Security event %s actor=%s %s", event.kind.value, actor, detail)

        for attempt in range(self.retries + 1):
            try:
                self.store.set(
                    EVENTS_COLLECTION, event.id, event.model_dump(mode="json")
                )
                return event
            except Exception as e:
                logger.warning(
                    "Failed to persist security event %s (attempt %d/%d): %s",
                    event.id,
                    attempt + 1,
                    self.retries + 1,
                    e,
                )

        logger.error("Dropped security event %s after retries", event.id)
        return None

    def all(self) -> list[SecurityEvent]:
        events = [
            SecurityEvent.model_validate(d) for d in self.store.list(EVENTS_COLLECTION)
        ]
        # list() keeps write order; sort is stable so ties stay in that order
        return sorted(events, key=lambda e: e.timestamp)

    def recent(
        self, limit: int = 50, kind: Optional[EventKind] = None
    ) -> list[SecurityEvent]:
        """Newest `limit` events, oldest first, optionally of one kind."""
        events = self.all()
        if kind is not None:
            events = [e for e in events if e.kind == EventKind(kind)]
        if limit <= 0:
            return []
        return events[-limit:]
