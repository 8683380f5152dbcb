"""Tests for configuration loading."""

from pathlib import Path

import yaml

from admission_gate.core.config import (
    API_CALLS,
    HOME_ENV_VAR,
    LOGIN_ATTEMPTS,
    DefaultPaths,
    GateConfig,
    InitialPolicyConfig,
    RateLimitRule,
    get_default_paths,
)


class TestDefaultPaths:
    """Tests for DefaultPaths."""

    def test_get_default_paths_returns_dataclass(self):
        assert isinstance(get_default_paths(), DefaultPaths)

    def test_paths_have_expected_structure(self, monkeypatch):
        monkeypatch.delenv(HOME_ENV_VAR, raising=False)
        paths = get_default_paths()
        assert paths.config.name == "config.yaml"
        assert paths.state.name == "state.json"
        assert paths.log.name == "gate.log"
        assert paths.config.parent.name == ".admission-gate"

    def test_home_override(self, monkeypatch, temp_dir):
        monkeypatch.setenv(HOME_ENV_VAR, str(temp_dir))
        assert get_default_paths().state == temp_dir / "state.json"


class TestGateConfig:
    """Tests for GateConfig."""

    def test_default_config(self):
        """Default config should have sensible defaults."""
        config = GateConfig()
        assert config.admin_email is None
        assert config.log_level == "INFO"
        assert config.require_email_verification is True
        assert config.event_retries == 2
        assert config.rate_limits[LOGIN_ATTEMPTS].max_count == 5
        assert config.initial_policy.allow_new_users is True

    def test_load_from_file(self, sample_config, temp_dir):
        config = GateConfig.load(sample_config)

        assert config.admin_email == "admin@acme.com"
        assert config.state_path == temp_dir / "state.json"
        assert config.log_level == "DEBUG"
        assert config.event_retries == 3
        assert config.rate_limits[LOGIN_ATTEMPTS] == RateLimitRule(60, 3)
        assert config.rate_limits["custom"] == RateLimitRule(10, 1)
        # classes not in the file keep their defaults
        assert config.rate_limits[API_CALLS].max_count == 100
        assert config.initial_policy.allowed_domains == ["acme.com"]
        assert config.initial_policy.require_approval is True

    def test_load_nonexistent_returns_defaults(self, temp_dir):
        config = GateConfig.load(temp_dir / "nonexistent.yaml")
        assert config.admin_email is None
        assert config.state_path is None

    def test_resolved_state_path(self, monkeypatch, temp_dir):
        monkeypatch.setenv(HOME_ENV_VAR, str(temp_dir))
        assert GateConfig().resolved_state_path == temp_dir / "state.json"
        assert GateConfig(state_path=Path("/x/s.json")).resolved_state_path == Path("/x/s.json")

    def test_save_and_reload(self, temp_dir):
        config_path = temp_dir / "config.yaml"
        config = GateConfig(
            admin_email="root@acme.com",
            state_path=temp_dir / "s.json",
            log_file=temp_dir / "gate.log",
            initial_policy=InitialPolicyConfig(allowed_domains=["acme.com"]),
        )
        config.rate_limits["custom"] = RateLimitRule(5, 2)
        config.save(config_path)

        loaded = GateConfig.load(config_path)
        assert loaded.admin_email == "root@acme.com"
        assert loaded.state_path == temp_dir / "s.json"
        assert loaded.log_file == temp_dir / "gate.log"
        assert loaded.rate_limits["custom"] == RateLimitRule(5, 2)
        assert loaded.initial_policy.allowed_domains == ["acme.com"]

    def test_save_keeps_other_sections(self, temp_dir):
        """Saving should not drop sections owned by other tools."""
        config_path = temp_dir / "config.yaml"
        config_path.write_text("other:\n  key: value\n")

        GateConfig(admin_email="root@acme.com").save(config_path)

        data = yaml.safe_load(config_path.read_text())
        assert data["other"] == {"key": "value"}
        assert data["admin_email"] == "root@acme.com"
        assert "gate" in data


class TestRateLimitRule:
    """Tests for RateLimitRule."""

    def test_from_dict(self):
        rule = RateLimitRule.from_dict({"window_seconds": "30", "max_count": "4"})
        assert rule == RateLimitRule(window_seconds=30.0, max_count=4)
        assert rule.to_dict() == {"window_seconds": 30.0, "max_count": 4}
