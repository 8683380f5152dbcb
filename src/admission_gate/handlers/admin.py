from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Optional

from admission_gate.core.errors import NotFound, PermissionDenied
from admission_gate.core.models import (
    ALL_CAPABILITIES,
    AdminRecord,
    Capability,
    EventKind,
)
from admission_gate.core.validators import normalize_email, require_valid_email

if TYPE_CHECKING:
    from admission_gate.handlers.events import SecurityEventLog
    from admission_gate.state.base import ConfigStore

logger = logging.getLogger(__name__)

ADMINS_COLLECTION = "admins"


class AdminAuthority:
    """Answers whether an identity holds a given administrative capability."""

    def __init__(self, store: ConfigStore, events: SecurityEventLog):
        self.store = store
        self.events = events

    def get_record(self, email: str) -> Optional[AdminRecord]:
        if not isinstance(email, str):
            return None
        data = self.store.get(ADMINS_COLLECTION, normalize_email(email))
        if data is None:
            return None
        return AdminRecord.model_validate(data)

    def is_admin(self, email: str) -> bool:
        record = self.get_record(email)
        return record is not None and record.is_active

    def authorize(self, actor: str, capability: Capability) -> bool:
        record = self.get_record(actor)
        return record is not None and record.has(Capability(capability))

    def require(self, actor: str, capability: Capability) -> None:
        """Raise PermissionDenied, after auditing it, unless actor holds capability."""
        capability = Capability(capability)
        if self.authorize(actor, capability):
            return
        self.events.record(
            EventKind.PERMISSION_DENIED,
            actor=str(actor),
            detail=f"missing capability {capability.value}",
        )
        raise PermissionDenied(f"{actor} lacks capability {capability.value}")

    def list_admins(self) -> list[AdminRecord]:
        return [AdminRecord.model_validate(d) for d in self.store.list(ADMINS_COLLECTION)]

    def bootstrap_admin(
        self, email: str, permissions: Optional[Iterable[Capability]] = None
    ) -> AdminRecord:
        """Create or overwrite an admin record without an authorization check.

        Only for the bootstrap process that owns the store (CLI ``init`` and
        ``admin add``); the gate never calls this on behalf of a user.
        """
        email = require_valid_email(email)
        record = AdminRecord(
            email=email,
            permissions=set(permissions) if permissions is not None else set(ALL_CAPABILITIES),
        )
        self.store.set(ADMINS_COLLECTION, email, record.model_dump(mode="json"))
        logger.info("Bootstrapped admin %s", email)
        return record

    def grant_admin(
        self,
        actor: str,
        email: str,
        permissions: Optional[Iterable[Capability]] = None,
    ) -> AdminRecord:
        self.require(actor, Capability.MANAGE_USERS)
        email = require_valid_email(email)
        record = AdminRecord(
            email=email,
            permissions=set(permissions) if permissions is not None else set(ALL_CAPABILITIES),
        )
        existing = self.get_record(email)
        if existing is not None:
            record.created_at = existing.created_at
        self.store.set(ADMINS_COLLECTION, email, record.model_dump(mode="json"))
        self.events.record(
            EventKind.POLICY_CHANGE,
            actor=actor,
            detail=f"granted admin to {email}: {sorted(p.value for p in record.permissions)}",
        )
        return record

    def revoke_admin(self, actor: str, email: str) -> AdminRecord:
        self.require(actor, Capability.MANAGE_USERS)
        email = normalize_email(email)
        if not self.store.compare_and_set(
            ADMINS_COLLECTION, email, {"email": email}, {"is_active": False}
        ):
            raise NotFound(f"no admin record for {email}")
        self.events.record(
            EventKind.POLICY_CHANGE, actor=actor, detail=f"revoked admin from {email}"
        )
        return self.get_record(email)
