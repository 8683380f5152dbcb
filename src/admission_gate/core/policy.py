from __future__ import annotations

from typing import TYPE_CHECKING, Mapping, Optional

from admission_gate.core.models import AdmitReason, AdmitResult, DomainPolicy, WhitelistEntry
from admission_gate.core.validators import get_domain, is_valid_email, normalize_email

if TYPE_CHECKING:
    from admission_gate.state.base import ConfigStore

POLICY_COLLECTION = "policy"
POLICY_KEY = "current"
WHITELIST_COLLECTION = "whitelist"


def is_admitted(
    email: str,
    policy: DomainPolicy,
    whitelist_entries: Optional[Mapping[str, WhitelistEntry]] = None,
) -> AdmitResult:
    """
    Decide whether an email is admitted under the given policy.

    Rules are applied in order and the first match wins:
        1. invalid email                      -> invalid_email
        2. allowed_emails or whitelist entry  -> explicit_email (admitted)
        3. domain in allowed_domains          -> domain_match (admitted)
        4. allow_new_users                    -> eligible_for_request
        5. otherwise                          -> denied

    Explicit entries override domain policy, so revoking a user from an
    allowed domain means removing their whitelist entry.
    """
    if not isinstance(email, str) or not is_valid_email(email.strip()):
        return AdmitResult(admitted=False, reason=AdmitReason.INVALID_EMAIL)

    email = normalize_email(email)
    entries = whitelist_entries or {}

    entry = entries.get(email)
    if email in policy.allowed_emails or (entry is not None and entry.is_whitelisted):
        return AdmitResult(admitted=True, reason=AdmitReason.EXPLICIT_EMAIL)

    if get_domain(email) in policy.allowed_domains:
        return AdmitResult(admitted=True, reason=AdmitReason.DOMAIN_MATCH)

    if policy.allow_new_users:
        return AdmitResult(admitted=False, reason=AdmitReason.ELIGIBLE_FOR_REQUEST)

    return AdmitResult(admitted=False, reason=AdmitReason.DENIED)


class WhitelistPolicyEngine:
    """Evaluates admission against the policy and whitelist held in a store."""

    def __init__(self, store: ConfigStore):
        self.store = store

    def load_policy(self) -> Optional[DomainPolicy]:
        data = self.store.get(POLICY_COLLECTION, POLICY_KEY)
        if data is None:
            return None
        return DomainPolicy.model_validate(data)

    def load_entry(self, email: str) -> Optional[WhitelistEntry]:
        data = self.store.get(WHITELIST_COLLECTION, normalize_email(email))
        if data is None:
            return None
        return WhitelistEntry.model_validate(data)

    def evaluate(self, email: str, policy: Optional[DomainPolicy] = None) -> AdmitResult:
        """Evaluate an email, reading state from the store.

        StoreUnavailable propagates; it is never turned into a decision.
        """
        if not isinstance(email, str) or not is_valid_email(email.strip()):
            return AdmitResult(admitted=False, reason=AdmitReason.INVALID_EMAIL)

        if policy is None:
            policy = self.load_policy() or DomainPolicy()

        entries = {}
        entry = self.load_entry(email)
        if entry is not None:
            entries[entry.email] = entry

        return is_admitted(email, policy, entries)
