# storefront/services/payment_verifier.py
import hashlib
import hmac

from storefront.core.config import get_settings
from storefront.core.errors import PaymentVerificationError


def compute_signature(gateway_order_id: str, payment_id: str, secret: str) -> str:
    """HMAC-SHA256 hex digest of "<gateway_order_id>|<payment_id>"."""
    message = f"{gateway_order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(
    gateway_order_id: str,
    payment_id: str,
    signature: str,
    secret: str | None = None,
) -> None:
    """
    Raise PaymentVerificationError unless `signature` matches.

    The secret defaults to settings.PAYMENT_WEBHOOK_SECRET; a missing secret
    is treated as a failed verification, never as a pass.
    """
    secret = secret if secret is not None else get_settings().PAYMENT_WEBHOOK_SECRET
    if not secret:
        raise PaymentVerificationError("Payment verification is not configured")

    expected = compute_signature(gateway_order_id, payment_id, secret)
    if not hmac.compare_digest(expected, signature or ""):
        raise PaymentVerificationError("Signature verification failed")
