from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from admission_gate.core.validators import normalize_domain, normalize_email


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _new_id() -> str:
    return uuid4().hex


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Capability(str, Enum):
    MANAGE_WHITELIST = "manageWhitelist"
    VIEW_ANALYTICS = "viewAnalytics"
    MANAGE_USERS = "manageUsers"


ALL_CAPABILITIES = frozenset(Capability)


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RequestAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class EventKind(str, Enum):
    AUTH_ATTEMPT = "auth-attempt"
    WHITELIST_CHECK = "whitelist-check"
    LOGIN_FAILURE = "login-failure"
    PERMISSION_DENIED = "permission-denied"
    POLICY_CHANGE = "policy-change"


class AdmitReason(str, Enum):
    INVALID_EMAIL = "invalid_email"
    EXPLICIT_EMAIL = "explicit_email"
    DOMAIN_MATCH = "domain_match"
    ELIGIBLE_FOR_REQUEST = "eligible_for_request"
    DENIED = "denied"


class WhitelistEntry(BaseModel):
    email: str
    is_whitelisted: bool = True
    role: Role = Role.USER
    added_at: datetime = Field(default_factory=_utcnow)
    added_by: str = "system"
    last_login: Optional[datetime] = None

    @field_validator("email")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_email(v)


class DomainPolicy(BaseModel):
    """Admission policy document. Replaced as a whole, never deleted."""

    allowed_domains: list[str] = []
    allowed_emails: list[str] = []
    allow_new_users: bool = True
    require_approval: bool = False
    version: int = 0
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None

    @field_validator("allowed_domains")
    @classmethod
    def _normalize_domains(cls, v: list[str]) -> list[str]:
        return _dedupe(normalize_domain(d) for d in v)

    @field_validator("allowed_emails")
    @classmethod
    def _normalize_emails(cls, v: list[str]) -> list[str]:
        return _dedupe(normalize_email(e) for e in v)


def _dedupe(values) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


class AdmissionRequest(BaseModel):
    id: str = Field(default_factory=_new_id)
    email: str
    status: RequestStatus = RequestStatus.PENDING
    requested_at: datetime = Field(default_factory=_utcnow)
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None

    @field_validator("email")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_email(v)

    @property
    def is_terminal(self) -> bool:
        return self.status != RequestStatus.PENDING


class AdminRecord(BaseModel):
    email: str
    role: Role = Role.ADMIN
    created_at: datetime = Field(default_factory=_utcnow)
    permissions: set[Capability] = Field(default_factory=lambda: set(ALL_CAPABILITIES))
    is_active: bool = True

    @field_validator("email")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("role")
    @classmethod
    def _always_admin(cls, v: Role) -> Role:
        if v != Role.ADMIN:
            raise ValueError("admin records always carry the admin role")
        return v

    def has(self, capability: Capability) -> bool:
        return self.is_active and capability in self.permissions


class RateLimitWindow(BaseModel):
    window_start: datetime
    count: int = 0


class SecurityEvent(BaseModel):
    id: str = Field(default_factory=_new_id)
    kind: EventKind
    actor: str
    detail: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)


class AdmitResult(BaseModel):
    admitted: bool
    reason: AdmitReason


class SignInStatus(str, Enum):
    ADMITTED = "admitted"
    PENDING = "pending"
    DENIED = "denied"


GENERIC_DENIAL_MESSAGE = "Authentication failed. Please try again."
PENDING_MESSAGE = "Your access request is awaiting administrator approval."
ADMITTED_MESSAGE = "Welcome! You have access."


class SignInOutcome(BaseModel):
    """What the self-service surface shows after sign-in.

    The message never says which policy branch produced the decision.
    """

    status: SignInStatus
    message: str
    request_id: Optional[str] = None

    @property
    def admitted(self) -> bool:
        return self.status == SignInStatus.ADMITTED


class WhitelistStats(BaseModel):
    total_users: int = 0
    active_users: int = 0
    pending_requests: int = 0
    approved_requests: int = 0
    rejected_requests: int = 0
