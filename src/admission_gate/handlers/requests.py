"""Admission request lifecycle: pending -> approved | rejected."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

from admission_gate.core.errors import (
    AlreadyProcessed,
    DuplicateRequest,
    NotFound,
    StoreUnavailable,
)
from admission_gate.core.models import (
    AdmissionRequest,
    Capability,
    EventKind,
    RequestAction,
    RequestStatus,
    Role,
    WhitelistEntry,
    _utcnow,
)
from admission_gate.core.policy import WHITELIST_COLLECTION
from admission_gate.core.validators import require_valid_email

if TYPE_CHECKING:
    from admission_gate.handlers.admin import AdminAuthority
    from admission_gate.handlers.events import SecurityEventLog
    from admission_gate.state.base import ConfigStore

logger = logging.getLogger(__name__)

REQUESTS_COLLECTION = "requests"
# email -> {"email", "request_id": <pending request id, or None once released>}
PENDING_INDEX_COLLECTION = "pending_requests"
MAX_CLAIM_ATTEMPTS = 10


class RequestLifecycleManager:
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

    def _load(self, request_id: str) -> Optional[AdmissionRequest]:
        data = self.store.get(REQUESTS_COLLECTION, request_id)
        if data is None:
            return None
        return AdmissionRequest.model_validate(data)

    def get_request(self, request_id: str) -> AdmissionRequest:
        request = self._load(request_id)
        if request is None:
            raise NotFound(f"no admission request with id {request_id}")
        return request

    def create_request(self, email: str) -> AdmissionRequest:
        """
        Create a pending request for an email.

        The request document is written first and then claimed in the pending
        index with a create-if-absent write, so a concurrent creator always
        finds a pending request behind the index. An index entry that points
        at a released or terminal request is taken over with compare_and_set.

        Raises:
            InvalidInput: malformed or blacklisted email.
            DuplicateRequest: a pending request already exists for the email.
        """
        email = require_valid_email(email)
        request = AdmissionRequest(email=email, requested_at=self.clock())
        self.store.set(REQUESTS_COLLECTION, request.id, request.model_dump(mode="json"))

        try:
            claimed = self._claim_pending_slot(email, request.id)
        except Exception:
            self.store.delete(REQUESTS_COLLECTION, request.id)
            raise

        if not claimed:
            self.store.delete(REQUESTS_COLLECTION, request.id)
            raise DuplicateRequest(f"a pending request already exists for {email}")

        logger.info("Created admission request %s for %s", request.id, email)
        return request

    def _claim_pending_slot(self, email: str, request_id: str) -> bool:
        for _ in range(MAX_CLAIM_ATTEMPTS):
            if self.store.create(
                PENDING_INDEX_COLLECTION,
                email,
                {"email": email, "request_id": request_id},
            ):
                return True

            index = self.store.get(PENDING_INDEX_COLLECTION, email)
            if index is None:
                # index entry vanished after the failed create; retry
                continue
            holder_id = index.get("request_id")
            holder = self._load(holder_id) if holder_id else None
            if holder is not None and holder.status == RequestStatus.PENDING:
                return False

            if self.store.compare_and_set(
                PENDING_INDEX_COLLECTION,
                email,
                {"request_id": holder_id},
                {"request_id": request_id},
            ):
                if holder_id:
                    logger.debug("Reclaimed stale pending slot %s for %s", holder_id, email)
                return True
        return False

    def _release_pending_slot(self, email: str, request_id: str) -> None:
        # a slot left behind is reclaimed by the next _claim_pending_slot
        try:
            self.store.compare_and_set(
                PENDING_INDEX_COLLECTION,
                email,
                {"request_id": request_id},
                {"request_id": None},
            )
        except StoreUnavailable as e:
            logger.warning("Could not release pending slot for %s: %s", email, e)

    def list_requests(
        self, status: Optional[RequestStatus] = None
    ) -> list[AdmissionRequest]:
        requests = [
            AdmissionRequest.model_validate(d)
            for d in self.store.list(REQUESTS_COLLECTION)
        ]
        if status is not None:
            requests = [r for r in requests if r.status == RequestStatus(status)]
        return sorted(requests, key=lambda r: r.requested_at)

    def list_pending(self) -> list[AdmissionRequest]:
        """Pending requests, oldest first."""
        # a request written but not yet claimed in the index is not listed
        claimed = {
            doc.get("request_id")
            for doc in self.store.list(PENDING_INDEX_COLLECTION)
            if doc.get("request_id")
        }
        return [r for r in self.list_requests(RequestStatus.PENDING) if r.id in claimed]

    def process_request(
        self, request_id: str, action: RequestAction, actor: str
    ) -> AdmissionRequest:
        """
        Move a pending request to approved or rejected.

        The transition is a compare_and_set on status == pending, so exactly
        one of several concurrent callers wins and the rest get
        AlreadyProcessed. Only the winner writes the whitelist entry.

        Raises:
            PermissionDenied: actor lacks manageWhitelist.
            NotFound: unknown request id.
            AlreadyProcessed: request is not pending.
        """
        self.authority.require(actor, Capability.MANAGE_WHITELIST)

        action = RequestAction(action)
        request = self.get_request(request_id)
        if request.is_terminal:
            raise AlreadyProcessed(
                f"request {request_id} is already {request.status.value}"
            )

        new_status = (
            RequestStatus.APPROVED
            if action == RequestAction.APPROVE
            else RequestStatus.REJECTED
        )
        now = self.clock()
        updates = {
            "status": new_status.value,
            "processed_by": actor,
            "processed_at": now.isoformat(),
        }
        if not self.store.compare_and_set(
            REQUESTS_COLLECTION,
            request_id,
            {"status": RequestStatus.PENDING.value},
            updates,
        ):
            raise AlreadyProcessed(f"request {request_id} was processed concurrently")

        if action == RequestAction.APPROVE:
            try:
                self._whitelist(request.email, actor, now)
            except Exception:
                self._roll_back(request_id, updates)
                raise

        self._release_pending_slot(request.email, request_id)

        self.events.record(
            EventKind.POLICY_CHANGE,
            actor=actor,
            detail=f"{new_status.value} request {request_id} for {request.email}",
        )
        logger.info("Request %s %s by %s", request_id, new_status.value, actor)
        return self.get_request(request_id)

    def _whitelist(self, email: str, actor: str, now: datetime) -> None:
        entry = WhitelistEntry(
            email=email,
            is_whitelisted=True,
            role=Role.USER,
            added_at=now,
            added_by=actor,
        )
        self.store.set(WHITELIST_COLLECTION, email, entry.model_dump(mode="json"))

    def _roll_back(self, request_id: str, applied: dict) -> None:
        try:
            self.store.compare_and_set(
                REQUESTS_COLLECTION,
                request_id,
                applied,
                {
                    "status": RequestStatus.PENDING.value,
                    "processed_by": None,
                    "processed_at": None,
                },
            )
        except Exception as e:
            logger.error("Could not roll back request %s: %s", request_id, e)
