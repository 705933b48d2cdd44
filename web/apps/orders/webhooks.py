"""Payment webhook reconciliation.

The provider delivers notifications at least once, in any order, and
retries on non-2xx responses or timeouts. Handling is therefore a pure
overwrite: verify, parse, map the provider status, find the order by
``payment_id`` and write the mapped status. Delivering the same notification
twice leaves the same final state.

There is no sequence number in the payload, so a stale notification that
arrives last (e.g. ``pending`` after ``approved``) wins.

``WebhookReconciler.handle`` never raises; it returns a ``ReconcileResult``
that the view renders as-is.
"""

import base64
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from pydantic import ValidationError

from .domain import OrderStatus, OrderStorePort
from .errors import OrderPersistenceError
from .schemas import PaymentEvent

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-signature"

# Provider status vocabulary -> internal status.
STATUS_MAP = {
    "approved": OrderStatus.PAID,
    "pending": OrderStatus.PENDING,
    "authorized": OrderStatus.PENDING,
    "in_process": OrderStatus.PROCESSING,
    "rejected": OrderStatus.FAILED,
    "cancelled": OrderStatus.CANCELLED,
    "refunded": OrderStatus.REFUNDED,
    "charged_back": OrderStatus.FAILED,
}


def map_provider_status(provider_status) -> OrderStatus:
    """Map a provider status to an internal one.

    Unknown values, ``None`` and non-strings map to ``pending`` so an
    unrecognised state is never treated as paid.
    """
    if not isinstance(provider_status, str):
        return OrderStatus.PENDING
    return STATUS_MAP.get(provider_status, OrderStatus.PENDING)


# ---- Signatures ----
def parse_signature_header(header: str) -> Optional[Tuple[str, str]]:
    """Split ``ts=<timestamp>,v1=<hash>`` into ``(timestamp, hash)``.

    Segments are matched by key, not position, so ``v1=<hash>,ts=<ts>``
    parses the same. ``t`` is accepted for the timestamp key and unknown
    keys are skipped. Returns None when either part is missing.
    """
    parts = {}
    for segment in header.split(","):
        key, sep, value = segment.strip().partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    ts = parts.get("ts") or parts.get("t")
    digest = parts.get("v1")
    if not ts or not digest:
        return None
    return ts, digest


def compute_signature(secret: str, timestamp: str, raw_body: bytes) -> str:
    """Base64 HMAC-SHA256 of ``"{timestamp}.{raw_body}"``."""
    signed = timestamp.encode("utf-8") + b"." + raw_body
    mac = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).digest()
    return base64.b64encode(mac).decode("ascii")


def verify_signature(raw_body: bytes, header: str, secret: str) -> bool:
    parsed = parse_signature_header(header)
    if parsed is None:
        return False
    timestamp, received = parsed
    expected = compute_signature(secret, timestamp, raw_body)
    return hmac.compare_digest(expected.encode("ascii"), received.encode("utf-8", "replace"))


# ---- Reconciliation ----
class ReconcileOutcome(str, Enum):
    PROCESSED = "processed"
    IGNORED_EVENT = "ignored_event"
    ORDER_NOT_FOUND = "order_not_found"
    INVALID_SIGNATURE = "invalid_signature"
    MALFORMED_PAYLOAD = "malformed_payload"
    MISSING_PAYMENT_ID = "missing_payment_id"
    STORE_ERROR = "store_error"


_RESPONSES = {
    ReconcileOutcome.PROCESSED: (200, {"success": True}),
    ReconcileOutcome.IGNORED_EVENT: (200, {"success": True}),
    ReconcileOutcome.ORDER_NOT_FOUND: (200, {"success": True}),
    ReconcileOutcome.INVALID_SIGNATURE: (401, {"error": "INVALID_SIGNATURE"}),
    ReconcileOutcome.MALFORMED_PAYLOAD: (400, {"error": "MALFORMED_PAYLOAD"}),
    ReconcileOutcome.MISSING_PAYMENT_ID: (400, {"error": "MISSING_PAYMENT_ID"}),
    ReconcileOutcome.STORE_ERROR: (500, {"error": "ORDER_UPDATE_FAILED"}),
}


@dataclass(frozen=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    http_status: int
    body: dict = field(default_factory=dict)
    reference: Optional[str] = None
    status: Optional[OrderStatus] = None

    @classmethod
    def of(cls, outcome: ReconcileOutcome, **kwargs) -> "ReconcileResult":
        http_status, body = _RESPONSES[outcome]
        return cls(outcome=outcome, http_status=http_status, body=dict(body), **kwargs)


class WebhookReconciler:
    """Apply provider payment notifications to stored orders.

    Args:
        store: Order persistence port.
        secret: Shared HMAC secret; empty means "not configured".
        verification: ``"tolerant"`` skips verification when the signature
            header or the secret is missing; ``"strict"`` rejects instead.
    """

    def __init__(self, store: OrderStorePort, secret: str = "", verification: str = "tolerant"):
        self.store = store
        self.secret = secret or ""
        self.verification = verification

    def _authenticate(self, raw_body: bytes, signature: Optional[str]) -> bool:
        if signature and self.secret:
            if not verify_signature(raw_body, signature, self.secret):
                logger.warning("webhook signature mismatch")
                return False
            return True
        if self.verification == "strict":
            logger.warning(
                "webhook rejected, signature required",
                extra={"has_header": bool(signature), "has_secret": bool(self.secret)},
            )
            return False
        logger.warning("webhook signature verification skipped (tolerant mode)")
        return True

    def handle(self, raw_body: bytes, signature: Optional[str] = None) -> ReconcileResult:
        """Verify and apply one notification.

        Args:
            raw_body: Request body exactly as received.
            signature: Value of the ``x-signature`` header, if any.
        """
        if not self._authenticate(raw_body, signature):
            return ReconcileResult.of(ReconcileOutcome.INVALID_SIGNATURE)

        try:
            payload = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            payload = None
        if not isinstance(payload, dict):
            logger.warning("webhook payload is not a JSON object")
            return ReconcileResult.of(ReconcileOutcome.MALFORMED_PAYLOAD)

        # non-payment events are acknowledged without validating their shape
        event_type = payload.get("type")
        if event_type != "payment":
            logger.info("webhook event ignored", extra={"event_type": repr(event_type)})
            return ReconcileResult.of(ReconcileOutcome.IGNORED_EVENT)

        try:
            event = PaymentEvent.model_validate(payload)
        except ValidationError:
            logger.warning("webhook payment event without payment id")
            return ReconcileResult.of(ReconcileOutcome.MISSING_PAYMENT_ID)

        status = map_provider_status(event.provider_status)
        log_extra = {"payment_id": event.payment_id, "provider_status": event.provider_status, "status": status.value}

        try:
            order = self.store.find_by_payment_id(event.payment_id)
            if order is None:
                logger.warning("webhook for unknown payment", extra=log_extra)
                return ReconcileResult.of(ReconcileOutcome.ORDER_NOT_FOUND)
            self.store.apply_payment_status(order.id, status, event.provider_status)
        except OrderPersistenceError:
            logger.error("webhook order update failed", extra=log_extra)
            return ReconcileResult.of(ReconcileOutcome.STORE_ERROR)

        logger.info("order status reconciled", extra={**log_extra, "reference": order.reference})
        return ReconcileResult.of(ReconcileOutcome.PROCESSED, reference=order.reference, status=status)
