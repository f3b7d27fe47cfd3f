"""
Payment verification (Stripe) for wallet provisioning.
"""

from backend_allowance.payments.verifier import (
    PaymentResult,
    PaymentVerifier,
    StripePaymentVerifier,
    verify_payment,
)

__all__ = ["PaymentResult", "PaymentVerifier", "StripePaymentVerifier", "verify_payment"]
