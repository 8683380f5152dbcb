from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from admission_gate.core.config import (
    API_CALLS,
    LOGIN_ATTEMPTS,
    WHITELIST_CHECKS,
    GateConfig,
)
from admission_gate.core.errors import DuplicateRequest, InvalidInput, RateLimited
from admission_gate.core.models import (
    ADMITTED_MESSAGE,
    GENERIC_DENIAL_MESSAGE,
    PENDING_MESSAGE,
    AdminRecord,
    AdmissionRequest,
    AdmitReason,
    AdmitResult,
    Capability,
    DomainPolicy,
    EventKind,
    RequestAction,
    RequestStatus,
    Role,
    SecurityEvent,
    SignInOutcome,
    SignInStatus,
    WhitelistEntry,
    WhitelistStats,
    _utcnow,
)
from admission_gate.core.policy import WHITELIST_COLLECTION, WhitelistPolicyEngine
from admission_gate.core.validators import normalize_email, require_valid_email
from admission_gate.handlers.admin import AdminAuthority
from admission_gate.handlers.events import SecurityEventLog
from admission_gate.handlers.rate_limit import RateLimiter
from admission_gate.handlers.requests import RequestLifecycleManager
from admission_gate.handlers.whitelist import WhitelistAdministrator
from admission_gate.state.base import ConfigStore
from admission_gate.state.json_store import JsonConfigStore

logger = logging.getLogger(__name__)

SELF_SERVICE = "self-service"


class AdmissionGate:
    """Entry point for the self-service and administrative surfaces.

    Wires the policy engine, request lifecycle, admin authority, rate limiter
    and security event log around one ConfigStore.
    """

    def __init__(
        self,
        store: ConfigStore,
        config: Optional[GateConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.store = store
        self.config = config or GateConfig()
        self.clock = clock or _utcnow

        self.events = SecurityEventLog(
            store, retries=self.config.event_retries, clock=self.clock
        )
        self.authority = AdminAuthority(store, self.events)
        self.engine = WhitelistPolicyEngine(store)
        self.requests = RequestLifecycleManager(
            store, authority=self.authority, events=self.events, clock=self.clock
        )
        self.whitelist = WhitelistAdministrator(
            store, self.authority, self.events, clock=self.clock
        )
        self.rate_limiter = rate_limiter or RateLimiter(
            rules=self.config.rate_limits, clock=self.clock
        )
        self.policy: Optional[DomainPolicy] = None

    @classmethod
    def from_config(
        cls,
        config: Optional[GateConfig] = None,
        store: Optional[ConfigStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> AdmissionGate:
        config = config or GateConfig.load()
        if store is None:
            store = JsonConfigStore(config.resolved_state_path)
        # every CLI invocation is a new process, so windows must live in the store
        rate_limiter = RateLimiter(rules=config.rate_limits, store=store, clock=clock)
        return cls(store=store, config=config, clock=clock, rate_limiter=rate_limiter)

    # --- Lifecycle ---

    def initialize(self, defaults: Optional[DomainPolicy] = None) -> DomainPolicy:
        """Create the policy document if it does not exist yet and load it."""
        if defaults is None:
            defaults = DomainPolicy(**self.config.initial_policy.to_dict())
        self.policy = self.whitelist.initialize_policy(defaults)
        return self.policy

    def reload_policy(self) -> DomainPolicy:
        self.policy = self.whitelist.get_policy()
        return self.policy

    # --- Rate limiting ---

    def _limit(self, key: str, limit_class: str) -> None:
        if self.rate_limiter.check(key, limit_class):
            return
        self.events.record(
            EventKind.LOGIN_FAILURE, actor=key, detail=f"rate limited: {limit_class}"
        )
        raise RateLimited(key, limit_class)

    def _admin_call(self, actor: str) -> None:
        self._limit(_key(actor), API_CALLS)

    # --- Self-service surface ---

    def check_admission(self, email: str) -> AdmitResult:
        """Evaluate an email against the current policy.

        StoreUnavailable propagates to the caller; it never means admitted.
        """
        key = _key(email)
        self._limit(key, WHITELIST_CHECKS)
        policy = self.reload_policy()
        result = self.engine.evaluate(email, policy)
        self.events.record(
            EventKind.WHITELIST_CHECK, actor=key, detail=f"reason={result.reason.value}"
        )
        return result

    def sign_in(self, email: str, email_verified: bool = True) -> SignInOutcome:
        """Self-service flow run after the identity provider signs a user in.

        Eligible users get a pending request, or are whitelisted straight away
        when the policy does not require approval. The returned message is the
        same for every kind of denial.
        """
        key = _key(email)
        self._limit(key, LOGIN_ATTEMPTS)
        self.events.record(
            EventKind.AUTH_ATTEMPT, actor=key, detail=f"email_verified={email_verified}"
        )

        if self.config.require_email_verification and not email_verified:
            return self._deny(key, "email not verified")

        policy = self.reload_policy()
        result = self.engine.evaluate(email, policy)

        if result.admitted:
            self._record_login(normalize_email(email))
            return SignInOutcome(status=SignInStatus.ADMITTED, message=ADMITTED_MESSAGE)

        if result.reason != AdmitReason.ELIGIBLE_FOR_REQUEST:
            return self._deny(key, f"reason={result.reason.value}")

        try:
            email = require_valid_email(email)
        except InvalidInput as e:
            return self._deny(key, str(e))

        if not policy.require_approval:
            self._self_register(email)
            return SignInOutcome(status=SignInStatus.ADMITTED, message=ADMITTED_MESSAGE)

        try:
            request = self.requests.create_request(email)
        except DuplicateRequest:
            request = self._pending_request_for(email)
            if request is None:
                raise
        return SignInOutcome(
            status=SignInStatus.PENDING, message=PENDING_MESSAGE, request_id=request.id
        )

    def request_access(self, email: str) -> AdmissionRequest:
        """Create a pending request; DuplicateRequest if one is already pending."""
        self._limit(_key(email), API_CALLS)
        return self.requests.create_request(email)

    def _deny(self, key: str, detail: str) -> SignInOutcome:
        self.events.record(EventKind.LOGIN_FAILURE, actor=key, detail=detail)
        return SignInOutcome(status=SignInStatus.DENIED, message=GENERIC_DENIAL_MESSAGE)

    def _self_register(self, email: str) -> WhitelistEntry:
        now = self.clock()
        entry = WhitelistEntry(
            email=email,
            role=Role.USER,
            added_at=now,
            added_by=SELF_SERVICE,
            last_login=now,
        )
        # an entry written concurrently by an admin wins over self-service
        self.store.create(WHITELIST_COLLECTION, email, entry.model_dump(mode="json"))
        logger.info("Self-registered %s", email)
        return entry

    def _record_login(self, email: str) -> None:
        # no-op for users admitted by policy alone, who have no entry
        self.store.compare_and_set(
            WHITELIST_COLLECTION,
            email,
            {"email": email},
            {"last_login": self.clock().isoformat()},
        )

    def _pending_request_for(self, email: str) -> Optional[AdmissionRequest]:
        for request in self.requests.list_pending():
            if request.email == email:
                return request
        return None

    # --- Administrative surface ---

    def list_pending(self, actor: str) -> list[AdmissionRequest]:
        self._admin_call(actor)
        self.authority.require(actor, Capability.MANAGE_WHITELIST)
        return self.requests.list_pending()

    def list_requests(
        self, actor: str, status: Optional[RequestStatus] = None
    ) -> list[AdmissionRequest]:
        self._admin_call(actor)
        self.authority.require(actor, Capability.MANAGE_WHITELIST)
        return self.requests.list_requests(status)

    def process_request(
        self, actor: str, request_id: str, action: RequestAction
    ) -> AdmissionRequest:
        self._admin_call(actor)
        return self.requests.process_request(request_id, action, actor)

    def approve(self, actor: str, request_id: str) -> AdmissionRequest:
        return self.process_request(actor, request_id, RequestAction.APPROVE)

    def reject(self, actor: str, request_id: str) -> AdmissionRequest:
        return self.process_request(actor, request_id, RequestAction.REJECT)

    def add_to_whitelist(
        self, actor: str, email: str, role: Role = Role.USER
    ) -> WhitelistEntry:
        self._admin_call(actor)
        return self.whitelist.add_to_whitelist(actor, email, role)

    def remove_from_whitelist(self, actor: str, email: str) -> None:
        self._admin_call(actor)
        self.whitelist.remove_from_whitelist(actor, email)

    def list_whitelist(self, actor: str) -> list[WhitelistEntry]:
        self._admin_call(actor)
        return self.whitelist.list_whitelist(actor)

    def update_policy(self, actor: str, **changes) -> DomainPolicy:
        self._admin_call(actor)
        self.policy = self.whitelist.update_policy(actor, **changes)
        return self.policy

    def add_allowed_domain(self, actor: str, domain: str) -> DomainPolicy:
        self._admin_call(actor)
        self.policy = self.whitelist.add_allowed_domain(actor, domain)
        return self.policy

    def remove_allowed_domain(self, actor: str, domain: str) -> DomainPolicy:
        self._admin_call(actor)
        self.policy = self.whitelist.remove_allowed_domain(actor, domain)
        return self.policy

    def add_allowed_email(self, actor: str, email: str) -> DomainPolicy:
        self._admin_call(actor)
        self.policy = self.whitelist.add_allowed_email(actor, email)
        return self.policy

    def remove_allowed_email(self, actor: str, email: str) -> DomainPolicy:
        self._admin_call(actor)
        self.policy = self.whitelist.remove_allowed_email(actor, email)
        return self.policy

    def grant_admin(
        self,
        actor: str,
        email: str,
        permissions: Optional[Iterable[Capability]] = None,
    ) -> AdminRecord:
        self._admin_call(actor)
        return self.authority.grant_admin(actor, email, permissions)

    def revoke_admin(self, actor: str, email: str) -> AdminRecord:
        self._admin_call(actor)
        return self.authority.revoke_admin(actor, email)

    def stats(self, actor: str) -> WhitelistStats:
        self._admin_call(actor)
        self.authority.require(actor, Capability.VIEW_ANALYTICS)
        entries = self.whitelist.entries()
        requests = self.requests.list_requests()
        pending_ids = {r.id for r in self.requests.list_pending()}
        return WhitelistStats(
            total_users=len(entries),
            active_users=sum(1 for e in entries if e.last_login is not None),
            pending_requests=len(pending_ids),
            approved_requests=sum(
                1 for r in requests if r.status == RequestStatus.APPROVED
            ),
            rejected_requests=sum(
                1 for r in requests if r.status == RequestStatus.REJECTED
            ),
        )

    def recent_events(
        self, actor: str, limit: int = 50, kind: Optional[EventKind] = None
    ) -> list[SecurityEvent]:
        self._admin_call(actor)
        self.authority.require(actor, Capability.VIEW_ANALYTICS)
        return self.events.recent(limit=limit, kind=kind)


def _key(email) -> str:
    return normalize_email(email) if isinstance(email, str) else repr(email)
