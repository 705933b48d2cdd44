"""Mercado Pago preference client with retries and a circuit breaker.

Concrete ``PreferenceGatewayPort`` over ``httpx``:

- Request correlation: forwards ``X-Request-ID`` from the ContextVar set by
  the gateway middleware.
- Idempotency: sends ``X-Idempotency-Key: <order reference>`` so a retried
  checkout for the same order does not create a second preference.
- Circuit breaker shared by all client instances, so a provider outage
  fails checkouts fast instead of stacking timeouts.
- Retries only transport errors and 5xx, with capped exponential backoff.
  4xx responses are final and do not count as breaker failures.

Every failure leaves this module as ``PaymentProviderError``.
"""

import logging
import os
import sys
import threading
import time
from typing import Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import Preference, PreferenceGatewayPort, PreferenceRequest
from .errors import PaymentProviderError

logger = logging.getLogger(__name__)

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")


def _is_test_mode() -> bool:
    return (
        "pytest" in sys.modules
        or os.environ.get("PYTEST_CURRENT_TEST") is not None
        or os.environ.get("PYTEST_RUNNING") == "1"
    )


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal CLOSED/OPEN/HALF_OPEN circuit breaker.

    - CLOSED -> OPEN after ``fail_threshold`` consecutive failures.
    - OPEN -> HALF_OPEN once ``reset_timeout`` seconds have passed.
    - HALF_OPEN lets a single probe through; success closes the breaker,
      failure opens it again.

    Thread-safe; gunicorn gthread workers share one instance per process.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Return the state at call time.

        Raises:
            PaymentProviderError: The breaker is OPEN, or HALF_OPEN with a
                probe already running.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise PaymentProviderError(f"circuit {self.name} open")
            if st == "HALF_OPEN":
                if self._probe_in_flight:
                    raise PaymentProviderError(f"circuit {self.name} half-open, probe busy")
                self._probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._probe_in_flight = False
                logger.warning("circuit opened", extra={"circuit": self.name, "failures": self._failures})

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._probe_in_flight = False


_provider_cb = CircuitBreaker(
    "mercadopago",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return ``(max_attempts, backoff_base_seconds)``."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


def preference_payload(request: PreferenceRequest) -> dict:
    """Provider JSON body for ``POST /checkout/preferences``."""
    body = {
        "items": [
            {
                "title": i.title,
                "unit_price": i.unit_price,
                "quantity": i.quantity,
                "currency_id": i.currency_id,
            }
            for i in request.items
        ],
        "external_reference": request.reference,
        "notification_url": request.urls.notification_url,
        "back_urls": {
            "success": request.urls.success_url,
            "failure": request.urls.failure_url,
            "pending": request.urls.pending_url,
        },
        "auto_return": request.auto_return,
    }
    if request.payer is not None:
        body["payer"] = {"name": request.payer.name, "email": request.payer.email}
        if request.payer.phone:
            body["payer"]["phone"] = {"number": request.payer.phone}
    return body


# ---------------- Preference Adapter ---------------- #

class MercadoPagoPreferenceClient(PreferenceGatewayPort):
    """Create checkout preferences through the provider REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
        use_sandbox: bool | None = None,
    ):
        self.base_url = (base_url or settings.MP_API_BASE_URL).rstrip("/")
        self.access_token = access_token if access_token is not None else settings.MP_ACCESS_TOKEN
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS
        self.use_sandbox = settings.MP_USE_SANDBOX if use_sandbox is None else use_sandbox

    def _to_preference(self, resp: httpx.Response) -> Preference:
        try:
            data = resp.json()
        except ValueError as e:
            raise PaymentProviderError("preference response is not JSON", status_code=resp.status_code) from e
        if not isinstance(data, dict):
            raise PaymentProviderError("preference response is not a JSON object", status_code=resp.status_code)
        pref_id = data.get("id")
        init_point = data.get("sandbox_init_point") if self.use_sandbox else None
        init_point = init_point or data.get("init_point")
        if not pref_id or not init_point:
            raise PaymentProviderError("preference response without id or init_point")
        return Preference(id=str(pref_id), init_point=init_point)

    def create_preference(self, request: PreferenceRequest) -> Preference:
        """POST the preference, retrying transport errors and 5xx.

        Returns:
            Preference: Provider id and the checkout URL for the browser.

        Raises:
            PaymentProviderError: 4xx, exhausted retries, transport error,
                malformed response or open circuit.
        """
        payload = preference_payload(request)
        max_retries, backoff = _retry_policy()
        if _is_test_mode():
            max_retries = max(max_retries, 1)
            backoff = 0.0
        tries = 0

        state = _provider_cb.before_call()
        headers = _request_headers({
            "Authorization": f"Bearer {self.access_token}",
            "X-Idempotency-Key": request.reference,
            "X-Retry-Count": "0",
        })

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.post(f"{self.base_url}/checkout/preferences", json=payload, headers=headers)
                        if resp.status_code in (200, 201):
                            _provider_cb.on_success()
                            return self._to_preference(resp)
                        if 400 <= resp.status_code < 500:
                            _provider_cb.on_success()  # provider is up, request was refused
                            raise PaymentProviderError(
                                f"preference refused with HTTP {resp.status_code}", status_code=resp.status_code
                            )
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries >= max_retries or not _should_retry(resp, exc):
                        _provider_cb.on_failure()
                        if exc is not None:
                            raise PaymentProviderError(f"provider unreachable: {exc}") from exc
                        raise PaymentProviderError(
                            f"provider error HTTP {resp.status_code}", status_code=resp.status_code
                        )

                    sleep_s = backoff * (2 ** (tries - 1))
                    cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                    logger.info(
                        "retrying preference creation",
                        extra={"reference": request.reference, "attempt": tries, "circuit_state": state},
                    )
                    if not _is_test_mode():
                        time.sleep(min(sleep_s, cap))
        finally:
            _provider_cb.on_finish()
