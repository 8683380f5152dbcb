"""Direct whitelist and domain-policy administration."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Optional

from admission_gate.core.errors import InvalidInput, NotFound, StoreUnavailable
from admission_gate.core.models import (
    Capability,
    DomainPolicy,
    EventKind,
    Role,
    WhitelistEntry,
    _utcnow,
)
from admission_gate.core.policy import (
    POLICY_COLLECTION,
    POLICY_KEY,
    WHITELIST_COLLECTION,
)
from admission_gate.core.validators import (
    normalize_domain,
    normalize_email,
    require_valid_domain,
    require_valid_email,
)

if TYPE_CHECKING:
    from admission_gate.handlers.admin import AdminAuthority
    from admission_gate.handlers.events import SecurityEventLog
    from admission_gate.state.base import ConfigStore

logger = logging.getLogger(__name__)

MAX_POLICY_UPDATE_ATTEMPTS = 10
POLICY_FIELDS = {"allowed_domains", "allowed_emails", "allow_new_users", "require_approval"}


class WhitelistAdministrator:
    """Admin-gated edits of whitelist entries and the policy document."""

    def __init__(
        self,
        store: ConfigStore,
        authority: AdminAuthority,
        events: SecurityEventLog,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.authority = authority
        self.events = events
        self.clock = clock or _utcnow

    # --- Whitelist entries ---

    def add_to_whitelist(
        self, actor: str, email: str, role: Role = Role.USER
    ) -> WhitelistEntry:
        self.authority.require(actor, Capability.MANAGE_WHITELIST)
        email = require_valid_email(email)
        entry = WhitelistEntry(
            email=email,
            is_whitelisted=True,
            role=Role(role),
            added_at=self.clock(),
            added_by=actor,
        )
        self.store.set(WHITELIST_COLLECTION, email, entry.model_dump(mode="json"))
        self.events.record(
            EventKind.POLICY_CHANGE, actor=actor, detail=f"whitelisted {email}"
        )
        return entry

    def remove_from_whitelist(self, actor: str, email: str) -> None:
        self.authority.require(actor, Capability.MANAGE_WHITELIST)
        email = normalize_email(email)
        if not self.store.delete(WHITELIST_COLLECTION, email):
            raise NotFound(f"{email} is not on the whitelist")
        self.events.record(
            EventKind.POLICY_CHANGE, actor=actor, detail=f"removed {email} from whitelist"
        )

    def list_whitelist(self, actor: str) -> list[WhitelistEntry]:
        self.authority.require(actor, Capability.MANAGE_WHITELIST)
        return self.entries()

    def entries(self) -> list[WhitelistEntry]:
        entries = [
            WhitelistEntry.model_validate(d) for d in self.store.list(WHITELIST_COLLECTION)
        ]
        return sorted(entries, key=lambda e: e.added_at)

    # --- Policy document ---

    def get_policy(self) -> DomainPolicy:
        data = self.store.get(POLICY_COLLECTION, POLICY_KEY)
        if data is None:
            return DomainPolicy()
        return DomainPolicy.model_validate(data)

    def initialize_policy(self, defaults: Optional[DomainPolicy] = None) -> DomainPolicy:
        """Create the policy document once; later calls return the stored one."""
        policy = (defaults or DomainPolicy()).model_copy(
            update={"version": 1, "updated_at": self.clock(), "updated_by": "system"}
        )
        if self.store.create(POLICY_COLLECTION, POLICY_KEY, policy.model_dump(mode="json")):
            logger.info("Initialized admission policy")
            return policy
        return self.get_policy()

    def update_policy(self, actor: str, **changes: Any) -> DomainPolicy:
        """Replace the policy with `changes` applied.

        Uses compare_and_set on the version so concurrent edits are not lost.
        """
        self.authority.require(actor, Capability.MANAGE_WHITELIST)
        for name in ("allowed_domains", "allowed_emails"):
            if isinstance(changes.get(name), str):
                raise InvalidInput(f"{name} must be a list, not a string")
        if "allowed_domains" in changes:
            changes["allowed_domains"] = [
                require_valid_domain(d) for d in changes["allowed_domains"]
            ]
        if "allowed_emails" in changes:
            changes["allowed_emails"] = [
                require_valid_email(e) for e in changes["allowed_emails"]
            ]
        return self._apply(actor, lambda current: changes)

    def _apply(
        self, actor: str, compute: Callable[[DomainPolicy], dict[str, Any]]
    ) -> DomainPolicy:
        for _ in range(MAX_POLICY_UPDATE_ATTEMPTS):
            current = self.get_policy()
            changes = compute(current)
            unknown = set(changes) - POLICY_FIELDS
            if unknown:
                raise ValueError(f"Unknown policy fields: {', '.join(sorted(unknown))}")

            updated = DomainPolicy.model_validate(
                {
                    **current.model_dump(),
                    **changes,
                    "version": current.version + 1,
                    "updated_at": self.clock(),
                    "updated_by": actor,
                }
            )
            payload = updated.model_dump(mode="json")

            if current.version == 0:
                written = self.store.create(POLICY_COLLECTION, POLICY_KEY, payload)
            else:
                written = self.store.compare_and_set(
                    POLICY_COLLECTION, POLICY_KEY, {"version": current.version}, payload
                )
            if written:
                self.events.record(
                    EventKind.POLICY_CHANGE,
                    actor=actor,
                    detail=f"policy v{updated.version}: {_describe(changes)}",
                )
                return updated

        raise StoreUnavailable("policy update kept conflicting with concurrent edits")

    def add_allowed_domain(self, actor: str, domain: str) -> DomainPolicy:
        self.authority.require(actor, Capability.MANAGE_WHITELIST)
        domain = require_valid_domain(domain)
        return self._apply(
            actor, lambda p: {"allowed_domains": [*p.allowed_domains, domain]}
        )

    def remove_allowed_domain(self, actor: str, domain: str) -> DomainPolicy:
        self.authority.require(actor, Capability.MANAGE_WHITELIST)
        domain = normalize_domain(domain)

        def compute(p: DomainPolicy) -> dict[str, Any]:
            if domain not in p.allowed_domains:
                raise NotFound(f"{domain} is not an allowed domain")
            return {"allowed_domains": [d for d in p.allowed_domains if d != domain]}

        return self._apply(actor, compute)

    def add_allowed_email(self, actor: str, email: str) -> DomainPolicy:
        self.authority.require(actor, Capability.MANAGE_WHITELIST)
        email = require_valid_email(email)
        return self._apply(
            actor, lambda p: {"allowed_emails": [*p.allowed_emails, email]}
        )

    def remove_allowed_email(self, actor: str, email: str) -> DomainPolicy:
        self.authority.require(actor, Capability.MANAGE_WHITELIST)
        email = normalize_email(email)

        def compute(p: DomainPolicy) -> dict[str, Any]:
            if email not in p.allowed_emails:
                raise NotFound(f"{email} is not an allowed email")
            return {"allowed_emails": [e for e in p.allowed_emails if e != email]}

        return self._apply(actor, compute)


def _describe(changes: dict[str, Any]) -> str:
    return ", ".join(f"{k}={v}" for k, v in sorted(changes.items())) or "no changes"
