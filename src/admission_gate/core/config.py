"""Configuration for the admission gate."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

HOME_ENV_VAR = "ADMISSION_GATE_HOME"
HOME_DIR_NAME = ".admission-gate"

LOGIN_ATTEMPTS = "login_attempts"
API_CALLS = "api_calls"
WHITELIST_CHECKS = "whitelist_checks"


def get_home_dir() -> Path:
    """Get the directory holding config, state and logs."""
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / HOME_DIR_NAME


@dataclass
class DefaultPaths:
    config: Path
    state: Path
    log: Path


def get_default_paths() -> DefaultPaths:
    home = get_home_dir()
    return DefaultPaths(
        config=home / "config.yaml",
        state=home / "state.json",
        log=home / "gate.log",
    )


@dataclass
class RateLimitRule:
    """Fixed-window limit: at most max_count checks per window_seconds."""

    window_seconds: float
    max_count: int

    @classmethod
    def from_dict(cls, data: dict) -> "RateLimitRule":
        return cls(
            window_seconds=float(data["window_seconds"]),
            max_count=int(data["max_count"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"window_seconds": self.window_seconds, "max_count": self.max_count}


def default_rate_limits() -> dict[str, RateLimitRule]:
    return {
        LOGIN_ATTEMPTS: RateLimitRule(window_seconds=15 * 60, max_count=5),
        API_CALLS: RateLimitRule(window_seconds=60, max_count=100),
        WHITELIST_CHECKS: RateLimitRule(window_seconds=60, max_count=50),
    }


@dataclass
class InitialPolicyConfig:
    """Policy seeded into the store the first time the gate is initialized."""

    allowed_domains: list[str] = field(default_factory=list)
    allowed_emails: list[str] = field(default_factory=list)
    allow_new_users: bool = True
    require_approval: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "InitialPolicyConfig":
        return cls(
            allowed_domains=data.get("allowed_domains", []),
            allowed_emails=data.get("allowed_emails", []),
            allow_new_users=data.get("allow_new_users", True),
            require_approval=data.get("require_approval", False),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed_domains": self.allowed_domains,
            "allowed_emails": self.allowed_emails,
            "allow_new_users": self.allow_new_users,
            "require_approval": self.require_approval,
        }


@dataclass
class GateConfig:
    admin_email: Optional[str] = None
    state_path: Optional[Path] = None
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    require_email_verification: bool = True
    event_retries: int = 2
    rate_limits: dict[str, RateLimitRule] = field(default_factory=default_rate_limits)
    initial_policy: InitialPolicyConfig = field(default_factory=InitialPolicyConfig)

    @property
    def resolved_state_path(self) -> Path:
        return self.state_path or get_default_paths().state

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "GateConfig":
        """Load configuration from YAML file, falling back to defaults."""
        if config_path is None:
            config_path = get_default_paths().config
        else:
            config_path = Path(config_path).expanduser()

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        gate_section = data.get("gate", {})

        rate_limits = default_rate_limits()
        for name, rule in gate_section.get("rate_limits", {}).items():
            rate_limits[name] = RateLimitRule.from_dict(rule)

        return cls(
            admin_email=data.get("admin_email"),
            state_path=Path(data["state_path"]).expanduser()
            if data.get("state_path")
            else None,
            log_level=gate_section.get("log_level", "INFO"),
            log_file=Path(gate_section["log_file"]).expanduser()
            if gate_section.get("log_file")
            else None,
            require_email_verification=gate_section.get(
                "require_email_verification", True
            ),
            event_retries=gate_section.get("event_retries", 2),
            rate_limits=rate_limits,
            initial_policy=InitialPolicyConfig.from_dict(
                gate_section.get("initial_policy", {})
            ),
        )

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to YAML file, keeping unrelated keys."""
        if config_path is None:
            config_path = get_default_paths().config
        else:
            config_path = Path(config_path).expanduser()

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {}
        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}

        if self.admin_email:
            data["admin_email"] = self.admin_email
        if self.state_path:
            data["state_path"] = str(self.state_path)

        gate_section: dict[str, Any] = {
            "log_level": self.log_level,
            "require_email_verification": self.require_email_verification,
            "event_retries": self.event_retries,
            "rate_limits": {
                name: rule.to_dict() for name, rule in self.rate_limits.items()
            },
            "initial_policy": self.initial_policy.to_dict(),
        }
        if self.log_file:
            gate_section["log_file"] = str(self.log_file)
        data["gate"] = gate_section

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
