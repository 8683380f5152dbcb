"""Tests for email and domain validation."""

import pytest

from admission_gate.core.errors import InvalidInput
from admission_gate.core.validators import (
    get_domain,
    is_blacklisted_domain,
    is_blacklisted_email,
    is_valid_domain,
    is_valid_email,
    normalize_email,
    require_valid_domain,
    require_valid_email,
)


class TestEmailValidation:
    """Tests for is_valid_email."""

    @pytest.mark.parametrize(
        "email", ["a@acme.com", "first.last+tag@sub.acme.co.uk", "X@Y.IO"]
    )
    def test_valid_emails(self, email):
        """Well-formed addresses should be accepted."""
        assert is_valid_email(email)

    @pytest.mark.parametrize(
        "email",
        [
            "",
            "plain",
            "no-at.com",
            "a@b",
            "a@@b.com",
            "a b@c.com",
            "a@b .com",
            "a@b.com\n",
            None,
            42,
        ],
    )
    def test_invalid_emails(self, email):
        """Malformed addresses and non-strings should be rejected."""
        assert not is_valid_email(email)

    def test_length_limit(self):
        """Addresses longer than 254 characters should be rejected."""
        local = "a" * 250
        assert not is_valid_email(f"{local}@acme.com")

    def test_normalize(self):
        assert normalize_email("  Alice@ACME.com ") == "alice@acme.com"

    def test_get_domain(self):
        assert get_domain("alice@Acme.COM") == "acme.com"


class TestDomainValidation:
    """Tests for is_valid_domain."""

    @pytest.mark.parametrize("domain", ["acme", "acme.com", "a-b.example.org", "x1.io"])
    def test_valid_domains(self, domain):
        assert is_valid_domain(domain)

    @pytest.mark.parametrize(
        "domain",
        ["", "-acme.com", "acme-.com", "acme..com", "ac me.com", ".acme", "acme.com\n", None],
    )
    def test_invalid_domains(self, domain):
        assert not is_valid_domain(domain)

    def test_length_limit(self):
        """Domains longer than 253 characters should be rejected."""
        assert not is_valid_domain(".".join(["a" * 60] * 5))


class TestBlacklist:
    """Tests for placeholder blacklists."""

    def test_blacklisted_email(self):
        assert is_blacklisted_email("Test@Test.com")
        assert is_blacklisted_email("admin@example.com")
        assert not is_blacklisted_email("admin@acme.com")

    def test_blacklisted_domain(self):
        assert is_blacklisted_domain("EXAMPLE.com")
        assert not is_blacklisted_domain("acme.com")


class TestRequireValid:
    """Tests for boundary validation helpers."""

    def test_require_valid_email_normalizes(self):
        assert require_valid_email(" Bob@Acme.com ") == "bob@acme.com"

    def test_require_valid_email_rejects_malformed(self):
        with pytest.raises(InvalidInput):
            require_valid_email("not-an-email")

    def test_require_valid_email_rejects_blacklisted(self):
        with pytest.raises(InvalidInput):
            require_valid_email("test@test.com")

    def test_require_valid_domain(self):
        assert require_valid_domain(" ACME.com") == "acme.com"
        with pytest.raises(InvalidInput):
            require_valid_domain("example.com")
        with pytest.raises(InvalidInput):
            require_valid_domain("bad domain")

    def test_invalid_input_kind(self):
        """Errors should expose their kind for the CLI."""
        with pytest.raises(InvalidInput) as exc_info:
            require_valid_email(None)
        assert exc_info.value.kind == "InvalidInput"
