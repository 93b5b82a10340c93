"""Exception hierarchy for CRM calls and contact intake.

Remote failures are split by whether another attempt could help:
- TransientRemoteError: network trouble, our own timeout, 429 and 5xx gateway errors
- PermanentRemoteError: every other non-2xx status (400, 403, 404, ...)
- CredentialError: missing or rejected API key (never retried)

is_retryable_error() is the single classification point used by the retry
wrapper. It trusts the exception type first and only falls back to message
matching for exceptions raised outside this module (socket errors, etc.).
"""

from __future__ import annotations

import httpx

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})

RETRYABLE_MESSAGE_PATTERNS: tuple[str, ...] = (
    "econnrefused",
    "connection refused",
    "enotfound",
    "name or service not known",
    "nodename nor servname",
    "etimedout",
    "timed out",
    "timeout after",
    "429",
    "500",
    "502",
    "503",
    "504",
)


class CRMError(Exception):
    """Base class for all CRM integration errors."""


class RemoteAPIError(CRMError):
    """A CRM call failed.

    status_code is the HTTP status when the CRM answered, None when the
    failure happened on our side (timeout, missing credential).
    """

    def __init__(self, status_code: int | None, message: str) -> None:
        self.status_code = status_code
        self.remote_message = message
        if status_code is None:
            super().__init__(message)
        else:
            super().__init__(f"HubSpot API error {status_code}: {message}")


class TransientRemoteError(RemoteAPIError):
    """Rate limiting or a server-side failure; safe to retry."""


class PermanentRemoteError(RemoteAPIError):
    """Client-side rejection; retrying would fail the same way."""


class CredentialError(PermanentRemoteError):
    """The API key is missing or was rejected."""

    @classmethod
    def missing(cls) -> CredentialError:
        return cls(None, "HUBSPOT_API_KEY is not configured")


class CallTimeoutError(TransientRemoteError):
    """A single attempt exceeded its time budget."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(None, f"Request timeout after {timeout_ms}ms")


class MalformedResponseError(CRMError):
    """A 2xx response body is missing fields the client relies on."""


class ContactNotFoundError(CRMError):
    """No CRM contact matches the requested email."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__("Contact not found in HubSpot")


class ContactValidationError(ValueError):
    """Contact form input rejected before any storage or remote call."""


def error_for_status(status_code: int, message: str) -> RemoteAPIError:
    """Map a non-2xx HTTP status to the matching RemoteAPIError subclass."""
    if status_code == 401:
        return CredentialError(status_code, message)
    if status_code in RETRYABLE_STATUS_CODES:
        return TransientRemoteError(status_code, message)
    return PermanentRemoteError(status_code, message)


def is_retryable_error(exc: BaseException) -> bool:
    """Return True if another attempt might succeed where this one failed."""
    if isinstance(exc, TransientRemoteError):
        return True
    if isinstance(exc, (PermanentRemoteError, MalformedResponseError, ContactNotFoundError)):
        return False
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True

    message = str(exc).lower()
    return any(pattern in message for pattern in RETRYABLE_MESSAGE_PATTERNS)
