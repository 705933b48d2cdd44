"""Tests for the provider sandbox.

Outgoing webhooks are captured by monkeypatching ``httpx.post``; their
signatures are checked with the web app's own verifier, so both sides
agree on the scheme.
"""
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from apps.orders.cart import GroupedLine
from apps.orders.domain import CheckoutUrls, OrderBuilder, build_preference_request
from apps.orders.http_adapters import preference_payload
from apps.orders.shipping import COURIERS, Customer, Region
from apps.orders.webhooks import verify_signature
from services.provider_sandbox import main

AUTH = {"Authorization": "Bearer TEST-token"}
PREFERENCE = {
    "items": [{"title": "Funko A", "unit_price": 10000, "quantity": 2, "currency_id": "COP"}],
    "external_reference": "CASAFUNKO-abc",
    "notification_url": "http://web:8000/api/webhook/mercadopago/",
    "back_urls": {
        "success": "https://casafunko.test/success",
        "failure": "https://casafunko.test/failure",
        "pending": "https://casafunko.test/pending",
    },
    "auto_return": "approved",
}


class Resp:
    def __init__(self, status_code=200):
        self.status_code = status_code


@pytest.fixture
def client(monkeypatch):
    monkeypatch.delenv("SANDBOX_ACCESS_TOKEN", raising=False)
    monkeypatch.delenv("SANDBOX_WEBHOOK_SECRET", raising=False)
    main.store.reset()
    return TestClient(main.app)


@pytest.fixture
def sent(monkeypatch):
    calls = []

    def fake_post(url, content=None, headers=None, **kw):
        calls.append({"url": url, "content": content, "headers": headers})
        return Resp(200)

    monkeypatch.setattr(httpx, "post", fake_post)
    return calls


def _create(client, headers=AUTH, body=PREFERENCE):
    return client.post("/checkout/preferences", json=body, headers=headers)


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_create_and_get_preference(client):
    r = _create(client)
    assert r.status_code == 201
    pref = r.json()
    assert pref["id"] in pref["init_point"]
    assert pref["sandbox_init_point"].endswith("&sandbox=1")
    assert pref["external_reference"] == "CASAFUNKO-abc"

    r = client.get(f"/checkout/preferences/{pref['id']}", headers=AUTH)
    assert r.status_code == 200
    assert r.json()["items"][0]["title"] == "Funko A"


def test_bearer_token_required(client, monkeypatch):
    assert _create(client, headers={}).status_code == 401
    monkeypatch.setenv("SANDBOX_ACCESS_TOKEN", "expected")
    assert _create(client).status_code == 401
    assert _create(client, headers={"Authorization": "Bearer expected"}).status_code == 201


def test_preference_needs_items(client):
    assert _create(client, body={**PREFERENCE, "items": []}).status_code == 422


def test_store_pickup_order_preference_is_accepted(client):
    line = GroupedLine(product_id=1, name="Funko A", unit_price=10000, quantity=1, stock=5, is_preorder=False)
    order = OrderBuilder(store=None).build([line], COURIERS[Region.LOCAL][1], Customer(name="Ana"), Region.LOCAL)
    urls = CheckoutUrls.from_bases("http://web:8000", "https://casafunko.test")

    r = _create(client, body=preference_payload(build_preference_request(order, urls)))
    assert r.status_code == 201
    assert [i["title"] for i in r.json()["items"]] == ["Funko A"]


def test_idempotency_key_returns_same_preference(client):
    headers = {**AUTH, "X-Idempotency-Key": "CASAFUNKO-abc"}
    first = _create(client, headers=headers).json()
    second = _create(client, headers=headers).json()
    assert first["id"] == second["id"]


def test_pay_delivers_signed_webhook(client, sent, monkeypatch):
    monkeypatch.setenv("SANDBOX_WEBHOOK_SECRET", "shh")
    pref = _create(client).json()

    r = client.post(f"/sandbox/preferences/{pref['id']}/pay", json={"status": "approved"})
    assert r.status_code == 201
    payment = r.json()
    assert payment["delivered"] is True
    assert payment["redirect_url"].startswith("https://casafunko.test/success?payment_id=")

    assert len(sent) == 1
    call = sent[0]
    assert call["url"] == PREFERENCE["notification_url"]
    body = json.loads(call["content"])
    assert body == {"type": "payment", "action": "payment.updated", "data": {"id": payment["id"], "status": "approved"}}
    assert verify_signature(call["content"], call["headers"]["x-signature"], "shh")


def test_unsigned_when_no_secret(client, sent):
    pref = _create(client).json()
    client.post(f"/sandbox/preferences/{pref['id']}/pay", json={"status": "rejected"})
    assert "x-signature" not in sent[0]["headers"]


def test_pay_without_notify_then_redeliver(client, sent):
    pref = _create(client).json()
    payment = client.post(f"/sandbox/preferences/{pref['id']}/pay", json={"status": "pending", "notify": False}).json()
    assert payment["delivered"] is None
    assert payment["redirect_url"].startswith("https://casafunko.test/pending?")
    assert sent == []

    r = client.post(f"/sandbox/payments/{payment['id']}/notify", params={"status": "approved"})
    assert r.status_code == 200
    assert r.json()["status"] == "approved"
    assert json.loads(sent[0]["content"])["data"]["status"] == "approved"


def test_unreachable_storefront_is_reported(client, monkeypatch):
    def fake_post(url, **kw):
        raise httpx.ConnectError("refused")

    monkeypatch.setattr(httpx, "post", fake_post)
    pref = _create(client).json()
    r = client.post(f"/sandbox/preferences/{pref['id']}/pay", json={"status": "approved"})
    assert r.status_code == 201
    assert r.json()["delivered"] is False


def test_unknown_ids(client):
    assert client.post("/sandbox/preferences/nope/pay", json={}).status_code == 404
    assert client.post("/sandbox/payments/nope/notify").status_code == 404
    assert client.get("/checkout/preferences/nope", headers=AUTH).status_code == 404
