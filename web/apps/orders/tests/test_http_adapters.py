"""Unit tests for the Mercado Pago preference client.

``httpx.Client.post`` is monkeypatched; the tests assert the request the
client builds and how it maps provider answers.
"""
import json

import httpx
import pytest

from apps.orders.domain import CheckoutUrls, Payer, PreferenceItem, PreferenceRequest
from apps.orders.errors import PaymentProviderError
from apps.orders.http_adapters import MercadoPagoPreferenceClient, _provider_cb, preference_payload

URLS = CheckoutUrls.from_bases("https://api.casafunko.test/", "https://casafunko.test")
REQUEST = PreferenceRequest(
    reference="CASAFUNKO-abc",
    items=(
        PreferenceItem(title="Funko A", unit_price=10000, quantity=2, currency_id="COP"),
        PreferenceItem(title="Servientrega", unit_price=15000, quantity=1, currency_id="COP"),
    ),
    urls=URLS,
    payer=Payer(name="Ana", email="ana@example.com", phone="300"),
)


class DummyResp:
    """Minimal httpx-like response stub for adapter tests."""

    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = json_data or {}

    def json(self):
        return self._json


@pytest.fixture(autouse=True)
def closed_circuit():
    _provider_cb.on_success()
    yield
    _provider_cb.on_success()


def _client(**kw):
    kw.setdefault("base_url", "https://mp.test/")
    kw.setdefault("access_token", "TEST-token")
    kw.setdefault("use_sandbox", False)
    return MercadoPagoPreferenceClient(**kw)


def test_payload_shape():
    body = preference_payload(REQUEST)
    assert body["external_reference"] == "CASAFUNKO-abc"
    assert body["items"][0] == {"title": "Funko A", "unit_price": 10000, "quantity": 2, "currency_id": "COP"}
    assert body["notification_url"] == "https://api.casafunko.test/api/webhook/mercadopago/"
    assert body["back_urls"] == {
        "success": "https://casafunko.test/success",
        "failure": "https://casafunko.test/failure",
        "pending": "https://casafunko.test/pending",
    }
    assert body["auto_return"] == "approved"
    assert body["payer"] == {"name": "Ana", "email": "ana@example.com", "phone": {"number": "300"}}


def test_create_preference_ok(monkeypatch):
    seen = {}

    def fake_post(self, url, json=None, headers=None, **kw):
        seen.update(url=url, json=json, headers=headers)
        return DummyResp(201, {"id": "123-abc", "init_point": "https://mp.test/init?pref=123-abc"})

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    pref = _client().create_preference(REQUEST)

    assert pref.id == "123-abc"
    assert pref.init_point == "https://mp.test/init?pref=123-abc"
    assert seen["url"] == "https://mp.test/checkout/preferences"
    assert seen["headers"]["Authorization"] == "Bearer TEST-token"
    assert seen["headers"]["X-Idempotency-Key"] == "CASAFUNKO-abc"
    assert seen["json"]["external_reference"] == "CASAFUNKO-abc"


def test_sandbox_uses_sandbox_init_point(monkeypatch):
    def fake_post(self, url, json=None, headers=None, **kw):
        return DummyResp(200, {"id": "1", "init_point": "https://live", "sandbox_init_point": "https://sandbox"})

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    assert _client(use_sandbox=True).create_preference(REQUEST).init_point == "https://sandbox"


def test_response_without_init_point_is_error(monkeypatch):
    monkeypatch.setattr(httpx.Client, "post", lambda self, url, **kw: DummyResp(201, {"id": "1"}), raising=True)
    with pytest.raises(PaymentProviderError):
        _client().create_preference(REQUEST)


class HtmlResp(DummyResp):
    def json(self):
        raise json.JSONDecodeError("Expecting value", "<html>gateway</html>", 0)


def test_non_json_success_body_is_provider_error(monkeypatch):
    monkeypatch.setattr(httpx.Client, "post", lambda self, url, **kw: HtmlResp(200), raising=True)
    with pytest.raises(PaymentProviderError) as e:
        _client().create_preference(REQUEST)
    assert e.value.status_code == 200


def test_non_object_success_body_is_provider_error(monkeypatch):
    monkeypatch.setattr(httpx.Client, "post", lambda self, url, **kw: DummyResp(201, ["pref-1"]), raising=True)
    with pytest.raises(PaymentProviderError):
        _client().create_preference(REQUEST)


def test_refused_request_raises_with_status(monkeypatch):
    monkeypatch.setattr(httpx.Client, "post", lambda self, url, **kw: DummyResp(400, {"message": "invalid items"}), raising=True)
    with pytest.raises(PaymentProviderError) as e:
        _client().create_preference(REQUEST)
    assert e.value.status_code == 400


def test_network_error_becomes_provider_error(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 2

    def fake_post(self, url, json=None, headers=None, **kw):
        raise httpx.ConnectError("boom")

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    with pytest.raises(PaymentProviderError) as e:
        _client().create_preference(REQUEST)
    assert isinstance(e.value.__cause__, httpx.ConnectError)


def test_request_id_is_forwarded(monkeypatch):
    from gateway.middleware import REQUEST_ID_CTX

    seen = {}

    def fake_post(self, url, json=None, headers=None, **kw):
        seen.update(headers)
        return DummyResp(201, {"id": "1", "init_point": "https://mp.test/init"})

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    token = REQUEST_ID_CTX.set("req-42")
    try:
        _client().create_preference(REQUEST)
    finally:
        REQUEST_ID_CTX.reset(token)
    assert seen["X-Request-ID"] == "req-42"
