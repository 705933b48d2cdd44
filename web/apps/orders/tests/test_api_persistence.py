"""Integration tests that assert checked-out orders are persisted.

Low-level SQL against the ``orders`` table checks what was actually
stored, independent of the ORM mapping.
"""

import json
from uuid import UUID

import pytest
from django.db import connection

CHECKOUT_URL = "/api/checkout/"


@pytest.mark.django_db
def test_checkout_persists_row_with_uuid_pk(client, fill_cart):
    """The stored row carries the reference, a UUID pk, the billed lines
    and the shipping snapshot."""
    fill_cart({"product_id": 7, "name": "Funko Goku", "unit_price": 65000, "stock": 2})
    payload = {
        "region": "national",
        "courier_id": "interrapidisimo",
        "customer": {
            "name": "Juan Pérez",
            "email": "juan@example.com",
            "phone": "3110000000",
            "address": "Av. 6N # 23-50",
            "city": "Cali",
            "department": "Valle del Cauca",
        },
    }
    r = client.post(CHECKOUT_URL, data=payload, content_type="application/json")
    assert r.status_code == 201
    reference = r.json()["reference"]

    with connection.cursor() as cur:
        cur.execute(
            "select id, status, total_amount, currency, items, courier, shipping_city from orders where reference = %s",
            [reference],
        )
        row = cur.fetchone()
    assert row is not None
    oid, status, total_amount, currency, items, courier, city = row
    UUID(str(oid))
    assert status == "pending"
    assert total_amount == 65000 + 18000
    assert currency == "COP"
    items = json.loads(items) if isinstance(items, str) else items
    assert [i["product_id"] for i in items] == [7, "SHIPPING"]
    assert courier == "Interrapidísimo"
    assert city == "Cali"


@pytest.mark.django_db
def test_payment_id_is_unique_across_orders(make_order):
    from apps.orders.errors import PaymentIdInUseError
    from apps.orders.repository import OrderRepository

    make_order(payment_id="PAY-DUP")
    second = make_order()
    with pytest.raises(PaymentIdInUseError):
        OrderRepository().attach_payment_id(second.reference, "PAY-DUP")
