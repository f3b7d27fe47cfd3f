"""
Payment verification for child wallet creation.

Without a payment backend (no STRIPE_SECRET_KEY) only an explicit devMode
request may skip payment. With a backend, a payment token is mandatory and
must refer to a succeeded Stripe PaymentIntent.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx

from backend_allowance.allowance_logging import get_logger, short_address
from backend_allowance.core.exceptions import (
    PaymentNotConfiguredError,
    PaymentTokenMissingError,
    PaymentVerificationError,
)

logger = get_logger(__name__)

PAYMENT_INTENT_PATH = "/v1/payment_intents/{token}"
PAYMENT_SUCCEEDED = "succeeded"


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    error: str | None = None
    bypassed: bool = False


class PaymentVerifier(Protocol):
    def verify(self, token: str) -> PaymentResult:
        ...


class StripePaymentVerifier:
    """Checks that a PaymentIntent id refers to a completed payment."""

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.stripe.com",
        *,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            auth=(secret_key, ""),
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def verify(self, token: str) -> PaymentResult:
        try:
            resp = self._client.get(PAYMENT_INTENT_PATH.format(token=token))
        except httpx.HTTPError as e:
            logger.warning("payment_verify_request_failed", token=short_address(token), error=str(e))
            return PaymentResult(success=False, error="Payment verification failed")
        if resp.is_error:
            logger.info("payment_verify_rejected", token=short_address(token), status=resp.status_code)
            return PaymentResult(success=False, error="Payment not found")
        try:
            status = resp.json().get("status")
        except (ValueError, AttributeError):
            return PaymentResult(success=False, error="Payment verification failed")
        if status != PAYMENT_SUCCEEDED:
            return PaymentResult(success=False, error="Payment not completed")
        logger.info("payment_verified", token=short_address(token))
        return PaymentResult(success=True)


def verify_payment(
    verifier: PaymentVerifier | None,
    payment_token: str | None,
    dev_mode: bool = False,
) -> PaymentResult:
    """
    Run the payment step of provisioning. Returns on success, raises a PaymentError otherwise.

    verifier is None when no payment backend is configured.
    """
    if verifier is None:
        if dev_mode:
            logger.info("payment_dev_mode_bypass")
            return PaymentResult(success=True, bypassed=True)
        raise PaymentNotConfiguredError("Payment processing not configured. Contact administrator.")
    if not payment_token:
        raise PaymentTokenMissingError("Payment token required")
    result = verifier.verify(payment_token)
    if not result.success:
        raise PaymentVerificationError(result.error or "Payment verification failed")
    return result
