import pytest


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.MP_WEBHOOK_SECRET = ""
    settings.MP_WEBHOOK_VERIFICATION = "tolerant"


@pytest.fixture(autouse=True)
def reset_throttles():
    from django.core.cache import cache

    cache.clear()


@pytest.fixture
def webhook_secret(settings):
    settings.MP_WEBHOOK_SECRET = "test-webhook-secret"
    return settings.MP_WEBHOOK_SECRET


@pytest.fixture
def make_order(db):
    """Persist a pending order: two Funko A at 10000, one B at 20000, shipping 15000."""
    from apps.orders.cart import GroupedLine
    from apps.orders.domain import OrderBuilder
    from apps.orders.repository import OrderRepository
    from apps.orders.shipping import COURIERS, Customer, Region

    def _make(payment_id=None, courier=COURIERS[Region.NATIONAL][0]):
        repo = OrderRepository()
        builder = OrderBuilder(repo)
        lines = [
            GroupedLine(product_id=1, name="Funko A", unit_price=10000, quantity=2, stock=5, is_preorder=False),
            GroupedLine(product_id=2, name="Funko B", unit_price=20000, quantity=1, stock=1, is_preorder=False),
        ]
        customer = Customer(
            name="Ana Gómez",
            email="ana@example.com",
            phone="3001234567",
            address="Calle 10 # 20-30",
            city="Cali",
            department="Valle del Cauca",
        )
        order = builder.persist(builder.build(lines, courier, customer, Region.NATIONAL))
        if payment_id:
            repo.attach_payment_id(order.reference, payment_id)
            order = repo.get_by_reference(order.reference)
        return order

    return _make


@pytest.fixture
def fill_cart(client):
    """Add products to the test client's session cart via the API."""

    def _fill(*products):
        for p in products:
            r = client.post("/api/cart/entries/", data=p, content_type="application/json")
            assert r.status_code == 201
        return client.get("/api/cart/").json()

    return _fill
