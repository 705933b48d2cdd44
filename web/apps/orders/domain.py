"""Domain models, ports and services for the order lifecycle.

Flow: a checkout turns the session cart into an immutable ``Order``
(aggregated product lines plus one synthetic shipping line), persists it as
``pending`` and only then asks the payment provider for a checkout
preference. The provider later reports payments through the webhook
(``webhooks.py``), which is the only automated writer of ``status``.

Services here do no I/O of their own; persistence and the provider are
reached through the ``OrderStorePort`` and ``PreferenceGatewayPort``
protocols, wired in ``providers.py``.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import List, Optional, Protocol, Sequence, Tuple

from .cart import CartSummary, GroupedLine
from .errors import (
    EmptyCartError,
    OrderNotFoundError,
    OrderNotPendingError,
    OverStockError,
    PaymentAlreadyAttachedError,
    PaymentProviderError,
    PaymentSetupError,
    ShippingValidationError,
)
from .shipping import Courier, Customer, ShippingResolver, ShippingSelection

logger = logging.getLogger(__name__)

# Catalog product ids are positive integers, a string id can never collide.
SHIPPING_PRODUCT_ID = "SHIPPING"
DEFAULT_REFERENCE_PREFIX = "CASAFUNKO"


# ---- Enums ----
class OrderStatus(str, Enum):
    """Internal order statuses.

    ``pending`` is the initial state. The webhook and admin edits may move
    an order to any status; terminal states are not enforced.
    """

    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"
    REFUNDED = "refunded"


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class OrderItem:
    """A billed line. Amounts are whole currency units."""

    product_id: int | str
    name: str
    unit_price: int
    quantity: int

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity

    @property
    def is_shipping(self) -> bool:
        return self.product_id == SHIPPING_PRODUCT_ID

    def as_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OrderItem":
        return cls(
            product_id=data["product_id"],
            name=data["name"],
            unit_price=int(data["unit_price"]),
            quantity=int(data["quantity"]),
        )


@dataclass(frozen=True)
class Order:
    """An order as persisted.

    ``items`` and ``total_amount`` are fixed at creation and are the only
    source of truth for what is billed.
    """

    reference: str
    items: Tuple[OrderItem, ...]
    total_amount: int
    customer: Customer
    courier: str
    courier_id: str
    shipping_region: str
    status: OrderStatus = OrderStatus.PENDING
    currency: str = "COP"
    payment_id: Optional[str] = None
    preference_id: Optional[str] = None
    payment_status: Optional[str] = None
    tracking_number: Optional[str] = None
    id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def product_items(self) -> Tuple[OrderItem, ...]:
        return tuple(i for i in self.items if not i.is_shipping)

    @property
    def shipping_item(self) -> Optional[OrderItem]:
        return next((i for i in self.items if i.is_shipping), None)


@dataclass(frozen=True)
class Payer:
    name: str
    email: str
    phone: str = ""


@dataclass(frozen=True)
class CheckoutUrls:
    """Where the provider notifies and where it sends the shopper back."""

    notification_url: str
    success_url: str
    failure_url: str
    pending_url: str

    @classmethod
    def from_bases(cls, public_base_url: str, storefront_url: str) -> "CheckoutUrls":
        api = public_base_url.rstrip("/")
        front = storefront_url.rstrip("/")
        return cls(
            notification_url=f"{api}/api/webhook/mercadopago/",
            success_url=f"{front}/success",
            failure_url=f"{front}/failure",
            pending_url=f"{front}/pending",
        )


@dataclass(frozen=True)
class PreferenceItem:
    title: str
    unit_price: int
    quantity: int
    currency_id: str


@dataclass(frozen=True)
class PreferenceRequest:
    """Provider-neutral description of a checkout preference."""

    reference: str
    items: Tuple[PreferenceItem, ...]
    urls: CheckoutUrls
    payer: Optional[Payer] = None
    auto_return: str = "approved"


@dataclass(frozen=True)
class Preference:
    id: str
    init_point: str


@dataclass(frozen=True)
class CheckoutResult:
    order: Order
    preference: Preference


# ---- Ports (DIP) ----
class OrderStorePort(Protocol):
    """Persistence operations the order lifecycle needs.

    Implementations raise ``OrderPersistenceError`` when the store fails.
    """

    def create(self, order: Order) -> Order:
        """Insert ``order`` and return it with ``id`` and timestamps set."""
        raise NotImplementedError()

    def get_by_reference(self, reference: str) -> Optional[Order]:
        raise NotImplementedError()

    def find_by_payment_id(self, payment_id: str) -> Optional[Order]:
        raise NotImplementedError()

    def set_preference_id(self, reference: str, preference_id: str) -> bool:
        raise NotImplementedError()

    def attach_payment_id(self, reference: str, payment_id: str) -> bool:
        """Set ``payment_id`` only if the order has none. True if written."""
        raise NotImplementedError()

    def apply_payment_status(self, order_id, status: OrderStatus, provider_status: Optional[str]) -> None:
        raise NotImplementedError()

    def update_admin_fields(self, reference: str, **fields) -> bool:
        raise NotImplementedError()

    def list_page(self, page: int = 1, page_size: int = 20, status: Optional[str] = None) -> Tuple[int, int, List[Order]]:
        """Return ``(total_count, page_number, orders)`` newest first."""
        raise NotImplementedError()


class PreferenceGatewayPort(Protocol):
    """Port to the payment provider's preference API.

    Implementations raise ``PaymentProviderError`` on any failure.
    """

    def create_preference(self, request: PreferenceRequest) -> Preference:
        raise NotImplementedError()


# ---- Helpers ----
def new_reference(prefix: str = DEFAULT_REFERENCE_PREFIX) -> str:
    """Return ``<prefix>-<uuid4 hex>``; uuid4 draws from the OS CSPRNG."""
    return f"{prefix}-{uuid.uuid4().hex}"


def order_total(items: Sequence[OrderItem]) -> int:
    return sum(i.line_total for i in items)


def build_preference_request(order: Order, urls: CheckoutUrls, payer: Optional[Payer] = None) -> PreferenceRequest:
    """Translate the persisted order lines into a preference request.

    Zero-priced lines (store pickup, free items) stay on the order but are
    left out: the provider rejects items with a non-positive ``unit_price``.
    """
    return PreferenceRequest(
        reference=order.reference,
        items=tuple(
            PreferenceItem(
                title=i.name,
                unit_price=i.unit_price,
                quantity=i.quantity,
                currency_id=order.currency,
            )
            for i in order.items
            if i.unit_price > 0
        ),
        urls=urls,
        payer=payer,
    )


# ---- Domain services ----
class OrderBuilder:
    """Build and persist new pending orders."""

    def __init__(self, store: OrderStorePort, reference_prefix: str = DEFAULT_REFERENCE_PREFIX, currency: str = "COP"):
        self.store = store
        self.reference_prefix = reference_prefix
        self.currency = currency

    def build(self, lines: Sequence[GroupedLine], courier: Courier, customer: Customer, region: str) -> Order:
        """Create the in-memory order.

        One item per distinct product with its aggregated quantity, then
        exactly one shipping item priced at the courier's rate.

        Raises:
            EmptyCartError: ``lines`` is empty.
            OverStockError: A non-preorder line exceeds its stock.
            ShippingValidationError: ``courier`` is missing.
        """
        if not lines:
            raise EmptyCartError()
        over = [line for line in lines if line.over_stock]
        if over:
            raise OverStockError(_over_stock_payload(over))
        if courier is None:
            raise ShippingValidationError({"courier_id": "required"})

        items = tuple(
            OrderItem(product_id=line.product_id, name=line.name, unit_price=line.unit_price, quantity=line.quantity)
            for line in lines
        ) + (OrderItem(product_id=SHIPPING_PRODUCT_ID, name=courier.name, unit_price=courier.price, quantity=1),)

        return Order(
            reference=new_reference(self.reference_prefix),
            items=items,
            total_amount=order_total(items),
            customer=customer,
            courier=courier.name,
            courier_id=courier.id,
            shipping_region=str(getattr(region, "value", region)),
            status=OrderStatus.PENDING,
            currency=self.currency,
        )

    def persist(self, order: Order) -> Order:
        stored = self.store.create(order)
        logger.info(
            "order created",
            extra={"reference": stored.reference, "total_amount": stored.total_amount, "items": len(stored.items)},
        )
        return stored


class PreferenceService:
    """Create provider preferences for persisted orders."""

    def __init__(self, store: OrderStorePort, gateway: PreferenceGatewayPort, urls: CheckoutUrls):
        self.store = store
        self.gateway = gateway
        self.urls = urls

    def create_for_order(self, order: Order, payer: Optional[Payer] = None) -> Preference:
        """Call the provider and record the preference id on the order.

        Raises:
            PaymentSetupError: The provider call failed. The order is left
                untouched (still ``pending``) so the shopper can retry.
            OrderPersistenceError: The preference id could not be stored.
        """
        request = build_preference_request(order, self.urls, payer)
        try:
            preference = self.gateway.create_preference(request)
        except PaymentProviderError as e:
            logger.error(
                "preference creation failed",
                extra={"reference": order.reference, "provider_status": e.status_code, "error": str(e)},
            )
            raise PaymentSetupError(order.reference) from e

        if not self.store.set_preference_id(order.reference, preference.id):
            logger.warning("order vanished before preference id was stored", extra={"reference": order.reference})
        logger.info("preference created", extra={"reference": order.reference, "preference_id": preference.id})
        return preference

    def create_for_reference(
        self,
        reference: str,
        payer: Optional[Payer] = None,
        items: Optional[Sequence[OrderItem]] = None,
    ) -> CheckoutResult:
        """(Re)create the preference of an existing pending order.

        The persisted lines are billed. ``items`` sent by the client are
        only compared against them and a mismatch is logged.

        Raises:
            OrderNotFoundError: No order has ``reference``.
            OrderNotPendingError: The order already left ``pending``.
            PaymentSetupError: The provider call failed.
        """
        order = self.store.get_by_reference(reference)
        if order is None:
            raise OrderNotFoundError()
        if order.status != OrderStatus.PENDING:
            raise OrderNotPendingError()
        if items is not None and _item_key(items) != _item_key(order.items):
            logger.warning("client items differ from persisted order, billing persisted items", extra={"reference": reference})
        if payer is None:
            payer = Payer(name=order.customer.name, email=order.customer.email, phone=order.customer.phone)
        preference = self.create_for_order(order, payer)
        return CheckoutResult(order=replace(order, preference_id=preference.id), preference=preference)


class CheckoutService:
    """Cart + shipping form -> persisted order -> provider preference.

    Validation happens first and writes nothing. The order is persisted
    before the provider is called, so a preference never exists for an
    order that was not stored.
    """

    def __init__(self, builder: OrderBuilder, preferences: PreferenceService, shipping: ShippingResolver):
        self.builder = builder
        self.preferences = preferences
        self.shipping = shipping

    def checkout(self, cart: CartSummary, selection: ShippingSelection) -> CheckoutResult:
        """Run the whole checkout.

        Raises:
            EmptyCartError, OverStockError, ShippingValidationError: Input
                problems, detected before any write.
            OrderPersistenceError: The order could not be stored; the
                provider was not called.
            PaymentSetupError: The order exists as ``pending`` but the
                preference could not be created.
        """
        if cart.is_empty:
            raise EmptyCartError()
        if cart.over_stock:
            raise OverStockError(_over_stock_payload(cart.over_stock_lines))

        validation = self.shipping.validate(selection)
        if not validation.ok:
            raise ShippingValidationError(validation.errors)

        order = self.builder.build(cart.lines, validation.courier, validation.customer, validation.region)
        order = self.builder.persist(order)

        payer = Payer(name=order.customer.name, email=order.customer.email, phone=order.customer.phone)
        preference = self.preferences.create_for_order(order, payer)
        return CheckoutResult(order=replace(order, preference_id=preference.id), preference=preference)


class OrderService:
    """Read-back, payment-id attachment and admin edits."""

    def __init__(self, store: OrderStorePort):
        self.store = store

    def get(self, reference: str) -> Order:
        order = self.store.get_by_reference(reference)
        if order is None:
            raise OrderNotFoundError()
        return order

    def attach_payment(self, reference: str, payment_id: str) -> Order:
        """Record the provider payment id reported on the redirect back.

        Setting the same id twice is a no-op; a different id on an order
        that already has one is refused.
        """
        order = self.get(reference)
        if order.payment_id == payment_id:
            return order
        if order.payment_id:
            raise PaymentAlreadyAttachedError()
        if not self.store.attach_payment_id(reference, payment_id):
            # Lost a race with another attach; re-read to decide.
            order = self.get(reference)
            if order.payment_id != payment_id:
                raise PaymentAlreadyAttachedError()
            return order
        logger.info("payment attached", extra={"reference": reference, "payment_id": payment_id})
        return self.get(reference)

    def list_orders(self, page: int = 1, page_size: int = 20, status: Optional[str] = None) -> Tuple[int, int, List[Order]]:
        return self.store.list_page(page, page_size, status)

    def admin_update(
        self,
        reference: str,
        status: Optional[OrderStatus] = None,
        tracking_number: Optional[str] = None,
        courier: Optional[str] = None,
    ) -> Order:
        """Apply a manual status transition and/or shipping metadata.

        There is no version check: a concurrent webhook update and an admin
        edit overwrite each other, last writer wins.
        """
        fields = {}
        if status is not None:
            fields["status"] = status
        if tracking_number is not None:
            fields["tracking_number"] = tracking_number
        if courier is not None:
            fields["courier"] = courier
        if fields and not self.store.update_admin_fields(reference, **fields):
            raise OrderNotFoundError()
        if fields:
            logger.info(
                "order updated by admin",
                extra={"reference": reference, "fields": sorted(fields), "status": getattr(status, "value", None)},
            )
        return self.get(reference)


def _over_stock_payload(lines: Sequence[GroupedLine]) -> list[dict]:
    return [{"product_id": l.product_id, "quantity": l.quantity, "stock": l.stock} for l in lines]


def _item_key(items: Sequence[OrderItem]) -> list:
    return sorted((i.name, i.unit_price, i.quantity) for i in items)
