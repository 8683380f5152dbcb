from admission_gate.core.config import GateConfig, RateLimitRule
from admission_gate.core.policy import WhitelistPolicyEngine, is_admitted

__all__ = [
    "GateConfig",
    "RateLimitRule",
    "WhitelistPolicyEngine",
    "is_admitted",
]
