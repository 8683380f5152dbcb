from admission_gate.handlers.admin import AdminAuthority
from admission_gate.handlers.events import SecurityEventLog
from admission_gate.handlers.rate_limit import RateLimiter
from admission_gate.handlers.requests import RequestLifecycleManager
from admission_gate.handlers.whitelist import WhitelistAdministrator

__all__ = [
    "AdminAuthority",
    "RateLimiter",
    "RequestLifecycleManager",
    "SecurityEventLog",
    "WhitelistAdministrator",
]
