from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional

from admission_gate.core.config import RateLimitRule, default_rate_limits
from admission_gate.core.errors import StoreUnavailable
from admission_gate.core.models import RateLimitWindow, _utcnow

if TYPE_CHECKING:
    from admission_gate.state.base import ConfigStore

logger = logging.getLogger(__name__)

RATE_LIMITS_COLLECTION = "rate_limits"
MAX_CAS_ATTEMPTS = 50


class _SlotLock:
    """Lock for one (key, class) slot plus the number of threads using it."""

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class RateLimiter:
    """
    Fixed-window limiter keyed by (key, limit_class).

    A missing or expired window starts fresh at the current time with
    count 1; otherwise the count is incremented and the check is allowed
    while count <= max_count. Exceeding the limit never raises; callers
    decide what to do with a False result.

    Without a store, windows live in memory and each (key, class) pair has
    its own lock. Expired windows are swept at most once per shortest
    window length, together with their idle locks. With a store, windows
    are advanced by compare_and_set so concurrent processes cannot
    undercount.
    """

    def __init__(
        self,
        rules: Optional[dict[str, RateLimitRule]] = None,
        store: Optional[ConfigStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.rules = dict(rules) if rules is not None else default_rate_limits()
        self.store = store
        self.clock = clock or _utcnow

        self._windows: dict[tuple[str, str], RateLimitWindow] = {}
        self._locks: dict[tuple[str, str], _SlotLock] = {}
        self._locks_guard = threading.Lock()
        self._last_sweep: Optional[datetime] = None
        self._sweep_interval = timedelta(
            seconds=min((r.window_seconds for r in self.rules.values()), default=60)
        )

    def _rule(self, limit_class: str) -> RateLimitRule:
        try:
            return self.rules[limit_class]
        except KeyError:
            raise ValueError(f"Unknown rate limit class: {limit_class}") from None

    @contextmanager
    def _hold(self, slot: tuple[str, str]):
        with self._locks_guard:
            slot_lock = self._locks.get(slot)
            if slot_lock is None:
                slot_lock = self._locks[slot] = _SlotLock()
            slot_lock.users += 1
        try:
            with slot_lock.lock:
                yield
        finally:
            with self._locks_guard:
                slot_lock.users -= 1

    @staticmethod
    def _expired(
        window: Optional[RateLimitWindow], rule: RateLimitRule, now: datetime
    ) -> bool:
        return window is None or now >= window.window_start + timedelta(
            seconds=rule.window_seconds
        )

    @classmethod
    def _advance(
        cls, window: Optional[RateLimitWindow], rule: RateLimitRule, now: datetime
    ) -> RateLimitWindow:
        if cls._expired(window, rule, now):
            return RateLimitWindow(window_start=now, count=1)
        return RateLimitWindow(window_start=window.window_start, count=window.count + 1)

    def _sweep(self, now: datetime) -> None:
        """Drop expired in-memory windows whose slot no thread is using."""
        with self._locks_guard:
            if self._last_sweep is not None and now < self._last_sweep + self._sweep_interval:
                return
            self._last_sweep = now
            swept = 0
            for slot, window in list(self._windows.items()):
                slot_lock = self._locks.get(slot)
                if slot_lock is not None and slot_lock.users:
                    continue
                rule = self.rules.get(slot[1])
                if rule is None or self._expired(window, rule, now):
                    self._windows.pop(slot, None)
                    self._locks.pop(slot, None)
                    swept += 1
            idle = [
                slot
                for slot, slot_lock in self._locks.items()
                if not slot_lock.users and slot not in self._windows
            ]
            for slot in idle:
                del self._locks[slot]
        if swept:
            logger.debug("Swept %d expired rate limit windows", swept)

    def check(self, key: str, limit_class: str) -> bool:
        rule = self._rule(limit_class)
        if self.store is not None:
            window = self._check_in_store(key, limit_class, rule)
        else:
            slot = (key, limit_class)
            with self._hold(slot):
                now = self.clock()
                window = self._advance(self._windows.get(slot), rule, now)
                self._windows[slot] = window
            self._sweep(now)

        allowed = window.count <= rule.max_count
        if not allowed:
            logger.debug(
                "Rate limit hit for %s (%s): %d > %d",
                key,
                limit_class,
                window.count,
                rule.max_count,
            )
        return allowed

    def _check_in_store(
        self, key: str, limit_class: str, rule: RateLimitRule
    ) -> RateLimitWindow:
        doc_key = f"{limit_class}:{key}"
        for _ in range(MAX_CAS_ATTEMPTS):
            current = self.store.get(RATE_LIMITS_COLLECTION, doc_key)
            window = RateLimitWindow.model_validate(current) if current else None
            new_window = self._advance(window, rule, self.clock())
            payload = new_window.model_dump(mode="json")

            if current is None:
                if self.store.create(RATE_LIMITS_COLLECTION, doc_key, payload):
                    return new_window
            elif self.store.compare_and_set(
                RATE_LIMITS_COLLECTION, doc_key, current, payload
            ):
                return new_window

        raise StoreUnavailable(f"could not update rate limit window for {doc_key}")

    def window(self, key: str, limit_class: str) -> Optional[RateLimitWindow]:
        if self.store is not None:
            current = self.store.get(RATE_LIMITS_COLLECTION, f"{limit_class}:{key}")
            return RateLimitWindow.model_validate(current) if current else None
        return self._windows.get((key, limit_class))

    def reset(self, key: str, limit_class: str) -> None:
        if self.store is not None:
            self.store.delete(RATE_LIMITS_COLLECTION, f"{limit_class}:{key}")
            return
        slot = (key, limit_class)
        with self._hold(slot):
            self._windows.pop(slot, None)
