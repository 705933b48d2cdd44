"""Factories wiring the order services with their ports.

``settings.USE_HTTP_ADAPTERS`` selects the real Mercado Pago client; when
it is off (tests, local development) the in-process stub is used. Views
call these factories per request, so tests can patch either the factories
or the settings.
"""

from django.conf import settings

from .adapters import PreferenceGatewayStub
from .domain import (
    CheckoutService,
    CheckoutUrls,
    OrderBuilder,
    OrderService,
    PreferenceGatewayPort,
    PreferenceService,
)
from .http_adapters import MercadoPagoPreferenceClient
from .repository import OrderRepository
from .shipping import ShippingResolver
from .webhooks import WebhookReconciler


def get_preference_gateway() -> PreferenceGatewayPort:
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        return MercadoPagoPreferenceClient()
    return PreferenceGatewayStub()


def get_shipping_resolver() -> ShippingResolver:
    return ShippingResolver(
        local_city=settings.SHIPPING_LOCAL_CITY,
        local_department=settings.SHIPPING_LOCAL_DEPARTMENT,
    )


def get_checkout_urls() -> CheckoutUrls:
    return CheckoutUrls.from_bases(settings.PUBLIC_BASE_URL, settings.STOREFRONT_URL)


def get_preference_service() -> PreferenceService:
    return PreferenceService(
        store=OrderRepository(),
        gateway=get_preference_gateway(),
        urls=get_checkout_urls(),
    )


def get_checkout_service() -> CheckoutService:
    """Return a ``CheckoutService`` wired for the current settings."""
    store = OrderRepository()
    return CheckoutService(
        builder=OrderBuilder(
            store,
            reference_prefix=settings.ORDER_REFERENCE_PREFIX,
            currency=settings.STORE_CURRENCY,
        ),
        preferences=PreferenceService(store, get_preference_gateway(), get_checkout_urls()),
        shipping=get_shipping_resolver(),
    )


def get_order_service() -> OrderService:
    return OrderService(OrderRepository())


def get_webhook_reconciler() -> WebhookReconciler:
    return WebhookReconciler(
        store=OrderRepository(),
        secret=settings.MP_WEBHOOK_SECRET,
        verification=settings.MP_WEBHOOK_VERIFICATION,
    )
