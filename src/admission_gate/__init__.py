__version__ = "0.1.0"

from admission_gate.core.config import GateConfig, RateLimitRule
from admission_gate.core.errors import (
    AdmissionError,
    AlreadyProcessed,
    DuplicateRequest,
    InvalidInput,
    NotFound,
    PermissionDenied,
    RateLimited,
    StoreUnavailable,
)
from admission_gate.core.models import (
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
    WhitelistEntry,
)
from admission_gate.core.policy import WhitelistPolicyEngine, is_admitted
from admission_gate.core.validators import is_valid_domain, is_valid_email
from admission_gate.gate import AdmissionGate
from admission_gate.handlers import (
    AdminAuthority,
    RateLimiter,
    RequestLifecycleManager,
    SecurityEventLog,
    WhitelistAdministrator,
)
from admission_gate.state import ConfigStore, InMemoryConfigStore, JsonConfigStore

__all__ = [
    "AdmissionGate",
    "GateConfig",
    "RateLimitRule",
    "AdmissionError",
    "AlreadyProcessed",
    "DuplicateRequest",
    "InvalidInput",
    "NotFound",
    "PermissionDenied",
    "RateLimited",
    "StoreUnavailable",
    "AdminRecord",
    "AdmissionRequest",
    "AdmitReason",
    "AdmitResult",
    "Capability",
    "DomainPolicy",
    "EventKind",
    "RequestAction",
    "RequestStatus",
    "Role",
    "SecurityEvent",
    "SignInOutcome",
    "WhitelistEntry",
    "WhitelistPolicyEngine",
    "is_admitted",
    "is_valid_domain",
    "is_valid_email",
    "AdminAuthority",
    "RateLimiter",
    "RequestLifecycleManager",
    "SecurityEventLog",
    "WhitelistAdministrator",
    "ConfigStore",
    "InMemoryConfigStore",
    "JsonConfigStore",
]
