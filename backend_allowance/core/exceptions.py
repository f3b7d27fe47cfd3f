"""
Application-level exceptions.

Every error carries the HTTP status the API layer answers with, so handlers
can map the whole taxonomy in one place:

- 400: InvalidRequestError, InvalidAddressError, PolicyFormatError (client fault)
- 402: PaymentError and subclasses
- 500: ProviderError and subclasses, PolicyPersistenceError

Policy violations are not exceptions; they are ValidationResult values.
"""

from __future__ import annotations

POLICY_REJECTION_WORDS = ("policy", "permission", "rejected")


class AllowanceError(Exception):
    """Base class for all Backend Allowance errors."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidRequestError(AllowanceError, ValueError):
    """Missing or malformed request field."""

    status_code = 400


class InvalidAddressError(InvalidRequestError):
    """Missing or malformed 0x-prefixed EVM address."""


class PolicyFormatError(AllowanceError, ValueError):
    """Policy document or condition violates its invariants."""

    status_code = 400


class PolicyPersistenceError(AllowanceError):
    """Durable write of the policy store failed (strict mode only)."""

    status_code = 500


class PaymentError(AllowanceError):
    status_code = 402


class PaymentNotConfiguredError(PaymentError):
    """No payment backend configured and dev mode not requested."""


class PaymentTokenMissingError(PaymentError):
    """Payment backend configured but the request carried no payment token."""


class PaymentVerificationError(PaymentError):
    """Payment backend rejected the token or could not be reached."""


class ProviderError(AllowanceError):
    """Wallet provider failure."""

    status_code = 500


class ProviderUnavailableError(ProviderError):
    """Provider client not configured or failed to initialise (operator problem)."""


class ProviderRejectedError(ProviderError):
    """Provider answered but refused the request (business rejection)."""

    def __init__(self, message: str, status_code: int | None = None, upstream_status: int | None = None):
        super().__init__(message, status_code)
        self.upstream_status = upstream_status

    @property
    def is_policy_rejection(self) -> bool:
        """True when Para refused on policy grounds (403, or the message names a policy/permission/rejection)."""
        if self.upstream_status == 403:
            return True
        msg = self.message.lower()
        return any(word in msg for word in POLICY_REJECTION_WORDS)


class ProviderNetworkError(ProviderError):
    """Timeout or transport failure talking to the provider."""
