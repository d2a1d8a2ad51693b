import hashlib
import hmac
import logging
import time
from typing import Optional

import stripe

from app.core.errors import MalformedEvent, SignatureInvalid

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300


def verify_signature(
    payload: bytes,
    signature: Optional[str],
    secret: Optional[str],
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
) -> bytes:
    """
    Verify a Stripe-Signature header against the raw request body.

    The check runs on the exact bytes received; the body must not be parsed
    or re-encoded before this call.

    Args:
        payload: Raw request body bytes
        signature: Stripe-Signature header value ("t=...,v1=...")
        secret: Webhook signing secret
        tolerance: Maximum signature age in seconds

    Returns:
        The same payload object, unchanged

    Raises:
        SignatureInvalid: If the header or secret is missing, or the signature does not match
        MalformedEvent: If the body is correctly signed but is not valid UTF-8
    """
    if not secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured - rejecting webhook")
        raise SignatureInvalid("Webhook secret not configured")

    if not signature:
        logger.error("Missing Stripe-Signature header")
        raise SignatureInvalid("Missing signature")

    # Strict UTF-8 decoding round-trips byte for byte, so the HMAC still covers the literal body
    try:
        body_text = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        _reject_undecodable_body(payload, signature, secret, tolerance, e)

    try:
        stripe.WebhookSignature.verify_header(body_text, signature, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise SignatureInvalid("Invalid signature") from e

    return payload


def _signature_digest(payload: bytes, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def _reject_undecodable_body(payload: bytes, signature: str, secret: str, tolerance: int, cause: Exception):
    """
    Decide how to reject a body that is not valid UTF-8.

    stripe's verifier only takes text, so the HMAC is checked here on the
    raw bytes. A correctly signed body is authentic but cannot be an event
    (MalformedEvent); anything else is SignatureInvalid.
    """
    timestamp = None
    candidates = []
    for item in signature.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t" and value.isdigit():
            timestamp = int(value)
        elif key == "v1":
            candidates.append(value)

    fresh = timestamp is not None and (tolerance is None or timestamp >= time.time() - tolerance)
    if fresh:
        expected = _signature_digest(payload, secret, timestamp)
        if any(hmac.compare_digest(expected, candidate) for candidate in candidates):
            logger.error("Signed webhook body is not valid UTF-8")
            raise MalformedEvent("Body is not valid UTF-8") from cause

    logger.error("Webhook signature verification failed for non UTF-8 body")
    raise SignatureInvalid("Invalid signature") from cause


def compute_signature_header(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header for a payload (tests and replay tooling)."""
    if timestamp is None:
        timestamp = int(time.time())
    return f"t={timestamp},v1={_signature_digest(payload, secret, timestamp)}"
