"""Error kinds raised by the admission gate."""


class AdmissionError(Exception):
    """Base class for all admission-gate errors."""

    kind = "AdmissionError"


class InvalidInput(AdmissionError):
    """Malformed or blacklisted email/domain supplied by a caller."""

    kind = "InvalidInput"


class DuplicateRequest(AdmissionError):
    """A pending admission request already exists for the email."""

    kind = "DuplicateRequest"


class NotFound(AdmissionError):
    kind = "NotFound"


class AlreadyProcessed(AdmissionError):
    """The admission request has already left the pending state."""

    kind = "AlreadyProcessed"


class PermissionDenied(AdmissionError):
    """The actor lacks the capability required for the operation."""

    kind = "PermissionDenied"


class RateLimited(AdmissionError):
    kind = "RateLimited"

    def __init__(self, key: str, limit_class: str):
        self.key = key
        self.limit_class = limit_class
        super().__init__(f"rate limit exceeded for {key} ({limit_class})")


class StoreUnavailable(AdmissionError):
    """The backing document store could not be reached or read."""

    kind = "StoreUnavailable"
