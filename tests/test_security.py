"""
Tests for Stripe webhook signature verification.
"""
import time
import pytest

from app.core.errors import MalformedEvent, SignatureInvalid
from app.core.security import compute_signature_header, verify_signature
from tests.helpers import WEBHOOK_SECRET, subscription_payload, to_bytes


@pytest.fixture
def body():
    return to_bytes(subscription_payload())


def test_valid_signature_returns_same_bytes(body):
    header = compute_signature_header(body, WEBHOOK_SECRET)
    assert verify_signature(body, header, WEBHOOK_SECRET) is body


@pytest.mark.parametrize("secret,payload", [
    ("whsec_a", b"{}"),
    ("whsec_other_secret", b'{"id":"evt_1","type":"customer.created"}'),
    ("s", "{\"name\":\"Jörg ✓\"}".encode("utf-8")),
])
def test_correct_signature_accepted_for_any_secret_and_body(secret, payload):
    header = compute_signature_header(payload, secret)
    assert verify_signature(payload, header, secret) == payload


def test_any_single_byte_mutation_is_rejected(body):
    header = compute_signature_header(body, WEBHOOK_SECRET)
    # Sample positions across the whole body, including first and last byte
    positions = sorted(set([0, len(body) - 1] + list(range(0, len(body), 7))))
    for i in positions:
        tampered = bytearray(body)
        tampered[i] = (tampered[i] + 1) % 128 or 1
        with pytest.raises(SignatureInvalid):
            verify_signature(bytes(tampered), header, WEBHOOK_SECRET)


def test_reserialized_body_is_rejected(body):
    """Whitespace changes from re-encoding JSON must break the signature."""
    header = compute_signature_header(body, WEBHOOK_SECRET)
    reencoded = body.replace(b",", b", ")
    with pytest.raises(SignatureInvalid):
        verify_signature(reencoded, header, WEBHOOK_SECRET)


def test_wrong_secret_rejected(body):
    header = compute_signature_header(body, "whsec_attacker")
    with pytest.raises(SignatureInvalid):
        verify_signature(body, header, WEBHOOK_SECRET)


@pytest.mark.parametrize("header", [None, "", "garbage", "t=123", "v1=abc"])
def test_missing_or_unparseable_header_rejected(body, header):
    with pytest.raises(SignatureInvalid):
        verify_signature(body, header, WEBHOOK_SECRET)


def test_missing_secret_rejected(body):
    header = compute_signature_header(body, WEBHOOK_SECRET)
    with pytest.raises(SignatureInvalid):
        verify_signature(body, header, None)


def test_expired_signature_rejected(body):
    old = int(time.time()) - 600
    header = compute_signature_header(body, WEBHOOK_SECRET, timestamp=old)
    with pytest.raises(SignatureInvalid):
        verify_signature(body, header, WEBHOOK_SECRET, tolerance=300)


def test_signed_non_utf8_body_is_malformed():
    body = b"\xff\xfe{}"
    header = compute_signature_header(body, WEBHOOK_SECRET)
    with pytest.raises(MalformedEvent):
        verify_signature(body, header, WEBHOOK_SECRET)


def test_unsigned_non_utf8_body_rejected():
    body = b"\xff\xfe{}"
    header = compute_signature_header(body, "whsec_other")
    with pytest.raises(SignatureInvalid):
        verify_signature(body, header, WEBHOOK_SECRET)


def test_expired_non_utf8_body_rejected():
    body = b"\xff\xfe{}"
    header = compute_signature_header(body, WEBHOOK_SECRET, timestamp=int(time.time()) - 600)
    with pytest.raises(SignatureInvalid):
        verify_signature(body, header, WEBHOOK_SECRET, tolerance=300)
