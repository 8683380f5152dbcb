import re

from admission_gate.core.errors import InvalidInput

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
EMAIL_MAX_LENGTH = 254

DOMAIN_LABEL = r"[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?"
DOMAIN_PATTERN = re.compile(rf"{DOMAIN_LABEL}(?:\.{DOMAIN_LABEL})*")
DOMAIN_MAX_LENGTH = 253

# Placeholder values that are never accepted from outside callers
EMAIL_BLACKLIST = frozenset({"test@test.com", "admin@example.com"})
DOMAIN_BLACKLIST = frozenset({"test.com", "example.com"})


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_domain(domain: str) -> str:
    return domain.strip().lower()


def get_domain(email: str) -> str:
    """Extract domain from email address."""
    return email.split("@")[-1].lower()


def is_valid_email(email) -> bool:
    if not email or not isinstance(email, str):
        return False
    if len(email) > EMAIL_MAX_LENGTH:
        return False
    return EMAIL_PATTERN.fullmatch(email) is not None


def is_valid_domain(domain) -> bool:
    if not domain or not isinstance(domain, str):
        return False
    if len(domain) > DOMAIN_MAX_LENGTH:
        return False
    return DOMAIN_PATTERN.fullmatch(domain) is not None


def is_blacklisted_email(email: str) -> bool:
    return normalize_email(email) in EMAIL_BLACKLIST


def is_blacklisted_domain(domain: str) -> bool:
    return normalize_domain(domain) in DOMAIN_BLACKLIST


def require_valid_email(email) -> str:
    """Validate an externally supplied email and return it normalized.

    Raises:
        InvalidInput: if the email is malformed or a known placeholder.
    """
    if not isinstance(email, str) or not is_valid_email(email.strip()):
        raise InvalidInput(f"invalid email address: {email!r}")
    normalized = normalize_email(email)
    if is_blacklisted_email(normalized):
        raise InvalidInput(f"email address not allowed: {normalized}")
    return normalized


def require_valid_domain(domain) -> str:
    """Validate an externally supplied domain and return it normalized."""
    if not isinstance(domain, str) or not is_valid_domain(domain.strip()):
        raise InvalidInput(f"invalid domain: {domain!r}")
    normalized = normalize_domain(domain)
    if is_blacklisted_domain(normalized):
        raise InvalidInput(f"domain not allowed: {normalized}")
    return normalized
