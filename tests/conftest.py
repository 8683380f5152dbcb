"""Shared test fixtures for admission-gate tests."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from admission_gate.core.config import GateConfig
from admission_gate.core.models import DomainPolicy
from admission_gate.gate import AdmissionGate
from admission_gate.state.json_store import JsonConfigStore
from admission_gate.state.memory_store import InMemoryConfigStore

ADMIN = "admin@acme.com"


class FakeClock:
    """Manually advanced clock for rate-limit windows and timestamps."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return InMemoryConfigStore()


@pytest.fixture
def json_store(temp_dir):
    return JsonConfigStore(temp_dir / "state.json")


@pytest.fixture(params=["memory", "json"])
def store(request, temp_dir):
    """Run a test against both store implementations."""
    if request.param == "memory":
        return InMemoryConfigStore()
    return JsonConfigStore(temp_dir / "state.json")


@pytest.fixture
def acme_policy():
    return DomainPolicy(
        allowed_domains=["acme.com"],
        allow_new_users=True,
        require_approval=True,
    )


@pytest.fixture
def gate(memory_store, clock, acme_policy):
    """Gate with an initialized acme.com policy and one full admin."""
    gate = AdmissionGate(memory_store, config=GateConfig(), clock=clock)
    gate.authority.bootstrap_admin(ADMIN)
    gate.initialize(acme_policy)
    return gate


@pytest.fixture
def sample_config(temp_dir):
    """Create a sample config file."""
    config_path = temp_dir / "config.yaml"
    config_path.write_text(f"""
admin_email: {ADMIN}
state_path: {temp_dir / "state.json"}

gate:
  log_level: DEBUG
  require_email_verification: true
  event_retries: 3
  rate_limits:
    login_attempts:
      window_seconds: 60
      max_count: 3
    custom:
      window_seconds: 10
      max_count: 1
  initial_policy:
    allowed_domains:
      - acme.com
    allowed_emails: []
    allow_new_users: true
    require_approval: true
""")
    return config_path
