"""Unit tests for provider status mapping and webhook signatures."""
import pytest

from apps.orders.domain import OrderStatus
from apps.orders.webhooks import (
    STATUS_MAP,
    compute_signature,
    map_provider_status,
    parse_signature_header,
    verify_signature,
)

SECRET = "s3cret"
BODY = b'{"type":"payment","data":{"id":"PAY1","status":"approved"}}'


@pytest.mark.parametrize(
    "provider_status,expected",
    [
        ("approved", OrderStatus.PAID),
        ("pending", OrderStatus.PENDING),
        ("authorized", OrderStatus.PENDING),
        ("in_process", OrderStatus.PROCESSING),
        ("rejected", OrderStatus.FAILED),
        ("cancelled", OrderStatus.CANCELLED),
        ("refunded", OrderStatus.REFUNDED),
        ("charged_back", OrderStatus.FAILED),
    ],
)
def test_known_statuses(provider_status, expected):
    assert map_provider_status(provider_status) == expected


@pytest.mark.parametrize("value", [None, "", "APPROVED", "in_mediation", 42, 1.5, ["approved"], {"s": 1}])
def test_unknown_inputs_default_to_pending(value):
    assert map_provider_status(value) == OrderStatus.PENDING


def test_map_targets_are_internal_statuses():
    assert set(STATUS_MAP.values()) <= set(OrderStatus)


def test_parse_header_variants():
    assert parse_signature_header("ts=1700000000,v1=abc") == ("1700000000", "abc")
    assert parse_signature_header(" t=17 , v1=abc= ") == ("17", "abc=")
    assert parse_signature_header("v1=abc") is None
    assert parse_signature_header("ts=1") is None
    assert parse_signature_header("garbage") is None


def test_signature_segments_are_matched_by_key():
    assert parse_signature_header("v1=abc,ts=17") == ("17", "abc")
    assert parse_signature_header("ts=17,kid=k1,v1=abc") == ("17", "abc")
    header = f"v1={compute_signature(SECRET, '17', BODY)},ts=17"
    assert verify_signature(BODY, header, SECRET) is True


def test_verify_accepts_matching_signature():
    header = f"ts=1700000000,v1={compute_signature(SECRET, '1700000000', BODY)}"
    assert verify_signature(BODY, header, SECRET) is True


def test_verify_rejects_tampered_body():
    header = f"ts=1700000000,v1={compute_signature(SECRET, '1700000000', BODY)}"
    tampered = BODY.replace(b"approved", b"refunded")
    assert verify_signature(tampered, header, SECRET) is False


def test_verify_rejects_wrong_secret_and_timestamp():
    digest = compute_signature(SECRET, "1", BODY)
    assert verify_signature(BODY, f"ts=1,v1={digest}", "other") is False
    assert verify_signature(BODY, f"ts=2,v1={digest}", SECRET) is False


def test_verify_handles_non_ascii_header():
    assert verify_signature(BODY, "ts=1,v1=ñandú", SECRET) is False
