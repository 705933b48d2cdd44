"""Mercado Pago sandbox built with FastAPI.

Stands in for the payment provider during local development: the web app
creates checkout preferences here (``MP_API_BASE_URL`` pointed at this
service) and a developer "pays" them through ``/sandbox`` endpoints, which
deliver signed payment notifications to the preference's
``notification_url`` the same way the provider does.

State is kept in memory and is lost on restart.
"""

import base64
import hashlib
import hmac
import json
import logging
import os
import threading
import time
import uuid
from typing import Annotated, Dict, List, Literal, Optional
from urllib.parse import urlencode

import httpx
from fastapi import FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field
from pythonjsonlogger import jsonlogger

app = FastAPI(title="Provider Sandbox")

logger = logging.getLogger("provider_sandbox")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)

PUBLIC_URL = os.getenv("SANDBOX_PUBLIC_URL", "http://localhost:9002").rstrip("/")
WEBHOOK_TIMEOUT_SECS = float(os.getenv("SANDBOX_WEBHOOK_TIMEOUT_SECS", "5"))

PaymentStatus = Literal["approved", "pending", "authorized", "in_process", "rejected", "cancelled", "refunded", "charged_back"]


def _access_token() -> str:
    return os.getenv("SANDBOX_ACCESS_TOKEN", "")


def _webhook_secret() -> str:
    return os.getenv("SANDBOX_WEBHOOK_SECRET", "")


# ---- Models ----
class PreferenceItem(BaseModel):
    title: str = Field(min_length=1)
    unit_price: float = Field(gt=0)
    quantity: int = Field(gt=0)
    currency_id: str = "COP"


class BackUrls(BaseModel):
    success: Optional[str] = None
    failure: Optional[str] = None
    pending: Optional[str] = None


class PreferenceIn(BaseModel):
    """Subset of the provider's preference body that the storefront sends."""

    items: List[PreferenceItem] = Field(min_length=1)
    external_reference: Optional[str] = None
    notification_url: Optional[str] = None
    back_urls: BackUrls = Field(default_factory=BackUrls)
    auto_return: Optional[str] = None
    payer: Optional[dict] = None


class PreferenceOut(BaseModel):
    id: str
    init_point: str
    sandbox_init_point: str
    external_reference: Optional[str] = None
    items: List[PreferenceItem]
    notification_url: Optional[str] = None
    back_urls: BackUrls


class PayIn(BaseModel):
    """Outcome the developer picks on the fake checkout page.

    Attributes:
        status: Provider payment status to report.
        notify: Deliver the webhook right away. Turn off to attach the
            payment id on the storefront first and call ``notify`` later.
    """

    status: PaymentStatus = "approved"
    notify: bool = True


class PaymentOut(BaseModel):
    id: str
    preference_id: str
    status: PaymentStatus
    external_reference: Optional[str] = None
    redirect_url: Optional[str] = None
    delivered: Optional[bool] = None


# ---- In-memory state ----
class SandboxStore:
    """Preferences, payments and idempotency keys, guarded by one lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self.preferences: Dict[str, PreferenceOut] = {}
        self.payments: Dict[str, PaymentOut] = {}
        self.idempotency: Dict[str, str] = {}

    def create_preference(self, body: PreferenceIn, idempotency_key: Optional[str]) -> PreferenceOut:
        with self._lock:
            if idempotency_key and idempotency_key in self.idempotency:
                return self.preferences[self.idempotency[idempotency_key]]
            pref_id = f"{uuid.uuid4().int % 10**9}-{uuid.uuid4()}"
            pref = PreferenceOut(
                id=pref_id,
                init_point=f"{PUBLIC_URL}/checkout/v1/redirect?pref_id={pref_id}",
                sandbox_init_point=f"{PUBLIC_URL}/checkout/v1/redirect?pref_id={pref_id}&sandbox=1",
                external_reference=body.external_reference,
                items=body.items,
                notification_url=body.notification_url,
                back_urls=body.back_urls,
            )
            self.preferences[pref_id] = pref
            if idempotency_key:
                self.idempotency[idempotency_key] = pref_id
            return pref

    def get_preference(self, pref_id: str) -> Optional[PreferenceOut]:
        with self._lock:
            return self.preferences.get(pref_id)

    def add_payment(self, payment: PaymentOut) -> None:
        with self._lock:
            self.payments[payment.id] = payment

    def get_payment(self, payment_id: str) -> Optional[PaymentOut]:
        with self._lock:
            return self.payments.get(payment_id)

    def reset(self) -> None:
        with self._lock:
            self.preferences.clear()
            self.payments.clear()
            self.idempotency.clear()


store = SandboxStore()


# ---- Helpers ----
def sign(secret: str, timestamp: str, raw_body: bytes) -> str:
    """``x-signature`` value for ``raw_body``: ``ts=<ts>,v1=<base64 hmac>``."""
    mac = hmac.new(secret.encode("utf-8"), timestamp.encode("utf-8") + b"." + raw_body, hashlib.sha256).digest()
    return f"ts={timestamp},v1={base64.b64encode(mac).decode('ascii')}"


def _require_bearer(authorization: Optional[str]) -> None:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="MISSING_ACCESS_TOKEN")
    expected = _access_token()
    if expected and not hmac.compare_digest(token.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="INVALID_ACCESS_TOKEN")


def _redirect_url(pref: PreferenceOut, payment: PaymentOut) -> Optional[str]:
    if payment.status == "approved":
        base = pref.back_urls.success
    elif payment.status in ("pending", "authorized", "in_process"):
        base = pref.back_urls.pending
    else:
        base = pref.back_urls.failure
    if not base:
        return None
    query = urlencode(
        {
            "payment_id": payment.id,
            "status": payment.status,
            "external_reference": payment.external_reference or "",
            "preference_id": pref.id,
        }
    )
    return f"{base}?{query}"


def deliver_webhook(pref: PreferenceOut, payment: PaymentOut, request_id: str = "-") -> bool:
    """POST a payment notification to the preference's ``notification_url``.

    Signed when ``SANDBOX_WEBHOOK_SECRET`` is set. Returns True on a 2xx
    answer; failures are logged and reported, never raised.
    """
    if not pref.notification_url:
        logger.warning("no notification_url, webhook not sent", extra={"request_id": request_id, "preference_id": pref.id})
        return False

    raw = json.dumps(
        {"type": "payment", "action": "payment.updated", "data": {"id": payment.id, "status": payment.status}},
        separators=(",", ":"),
    ).encode("utf-8")
    headers = {"Content-Type": "application/json", "X-Request-ID": request_id}
    secret = _webhook_secret()
    if secret:
        headers["x-signature"] = sign(secret, str(int(time.time())), raw)

    try:
        resp = httpx.post(pref.notification_url, content=raw, headers=headers, timeout=WEBHOOK_TIMEOUT_SECS)
    except httpx.RequestError as e:
        logger.warning("webhook delivery failed", extra={"request_id": request_id, "payment_id": payment.id, "error": str(e)})
        return False
    logger.info(
        "webhook delivered",
        extra={"request_id": request_id, "payment_id": payment.id, "status": payment.status, "http_status": resp.status_code},
    )
    return 200 <= resp.status_code < 300


# ---- Endpoints ----
@app.get("/health")
def health():
    return {"ok": True}


@app.post("/checkout/preferences", response_model=PreferenceOut, status_code=201)
def create_preference(
    body: PreferenceIn,
    authorization: Annotated[Optional[str], Header()] = None,
    idempotency_key: Annotated[Optional[str], Header(alias="X-Idempotency-Key")] = None,
):
    """Create a checkout preference.

    A repeated ``X-Idempotency-Key`` returns the preference created by the
    first request.
    """
    _require_bearer(authorization)
    return store.create_preference(body, idempotency_key)


@app.get("/checkout/preferences/{pref_id}", response_model=PreferenceOut)
def get_preference(pref_id: str, authorization: Annotated[Optional[str], Header()] = None):
    _require_bearer(authorization)
    pref = store.get_preference(pref_id)
    if pref is None:
        raise HTTPException(status_code=404, detail="PREFERENCE_NOT_FOUND")
    return pref


@app.post("/sandbox/preferences/{pref_id}/pay", response_model=PaymentOut, status_code=201)
def pay(pref_id: str, body: PayIn, request: Request):
    """Simulate the shopper completing the hosted checkout.

    Returns the new payment with the back URL the provider would redirect
    the browser to; ``delivered`` tells whether the webhook got a 2xx.
    """
    pref = store.get_preference(pref_id)
    if pref is None:
        raise HTTPException(status_code=404, detail="PREFERENCE_NOT_FOUND")

    payment = PaymentOut(
        id=str(uuid.uuid4().int % 10**12),
        preference_id=pref.id,
        status=body.status,
        external_reference=pref.external_reference,
    )
    payment.redirect_url = _redirect_url(pref, payment)
    if body.notify:
        payment.delivered = deliver_webhook(pref, payment, request.state.request_id)
    store.add_payment(payment)
    return payment


@app.post("/sandbox/payments/{payment_id}/notify", response_model=PaymentOut)
def notify(payment_id: str, request: Request, status: Optional[PaymentStatus] = None):
    """Redeliver the notification of a payment, optionally with a new status."""
    payment = store.get_payment(payment_id)
    if payment is None:
        raise HTTPException(status_code=404, detail="PAYMENT_NOT_FOUND")
    if status is not None:
        payment = payment.model_copy(update={"status": status})
    pref = store.get_preference(payment.preference_id)
    payment.delivered = deliver_webhook(pref, payment, request.state.request_id)
    store.add_payment(payment)
    return payment


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
