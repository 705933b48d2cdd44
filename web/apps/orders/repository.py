"""Repository layer for persisting orders.

Implements ``OrderStorePort`` over the Django ORM. Every write is a single
``UPDATE ... WHERE`` scoped by ``reference`` or by primary key; there are no
multi-order transactions and no version columns. Database failures surface
as ``OrderPersistenceError`` so the domain never sees ORM exceptions.
"""

import logging
from typing import Optional

from django.core.paginator import Paginator
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from .domain import Order, OrderItem, OrderStatus
from .errors import OrderPersistenceError, PaymentIdInUseError
from .models import PAYMENT_STATUS_MAX_LENGTH, OrderModel
from .shipping import Customer

logger = logging.getLogger(__name__)


def to_domain(obj: OrderModel) -> Order:
    """Map an ``OrderModel`` row to the domain ``Order``."""
    return Order(
        id=obj.id,
        reference=obj.reference,
        items=tuple(OrderItem.from_dict(i) for i in obj.items),
        total_amount=obj.total_amount,
        currency=obj.currency,
        status=OrderStatus(obj.status),
        payment_id=obj.payment_id,
        preference_id=obj.preference_id,
        payment_status=obj.payment_status,
        customer=Customer(
            name=obj.customer_name,
            email=obj.customer_email,
            phone=obj.customer_phone,
            address=obj.shipping_address,
            city=obj.shipping_city,
            department=obj.shipping_department,
        ),
        shipping_region=obj.shipping_region,
        courier=obj.courier,
        courier_id=obj.courier_id,
        tracking_number=obj.tracking_number,
        created_at=obj.created_at,
        updated_at=obj.updated_at,
    )


class OrderRepository:
    """Django ORM implementation of ``OrderStorePort``."""

    def create(self, order: Order) -> Order:
        """Insert a new order row.

        Args:
            order: Domain order built by ``OrderBuilder`` (status pending,
                no payment or preference id).

        Returns:
            The stored order with ``id`` and timestamps.

        Raises:
            OrderPersistenceError: The insert failed.
        """
        try:
            with transaction.atomic():
                obj = OrderModel.objects.create(
                    reference=order.reference,
                    status=order.status.value,
                    items=[i.as_dict() for i in order.items],
                    total_amount=order.total_amount,
                    currency=order.currency,
                    customer_name=order.customer.name,
                    customer_email=order.customer.email,
                    customer_phone=order.customer.phone,
                    shipping_address=order.customer.address,
                    shipping_city=order.customer.city,
                    shipping_department=order.customer.department,
                    shipping_region=order.shipping_region,
                    courier=order.courier,
                    courier_id=order.courier_id,
                )
        except DatabaseError as e:
            logger.error("order insert failed", extra={"reference": order.reference, "error": str(e)})
            raise OrderPersistenceError() from e
        return to_domain(obj)

    def get_by_reference(self, reference: str) -> Optional[Order]:
        try:
            obj = OrderModel.objects.filter(reference=reference).first()
        except DatabaseError as e:
            raise OrderPersistenceError() from e
        return to_domain(obj) if obj else None

    def find_by_payment_id(self, payment_id: str) -> Optional[Order]:
        try:
            obj = OrderModel.objects.filter(payment_id=payment_id).first()
        except DatabaseError as e:
            raise OrderPersistenceError() from e
        return to_domain(obj) if obj else None

    def set_preference_id(self, reference: str, preference_id: str) -> bool:
        try:
            n = OrderModel.objects.filter(reference=reference).update(
                preference_id=preference_id, updated_at=timezone.now()
            )
        except DatabaseError as e:
            raise OrderPersistenceError() from e
        return n == 1

    def attach_payment_id(self, reference: str, payment_id: str) -> bool:
        """Conditional write: only orders without a payment id are touched.

        Raises:
            PaymentIdInUseError: Another order already owns ``payment_id``.
            OrderPersistenceError: Any other database failure.
        """
        try:
            with transaction.atomic():
                n = OrderModel.objects.filter(reference=reference, payment_id__isnull=True).update(
                    payment_id=payment_id, updated_at=timezone.now()
                )
        except IntegrityError as e:
            raise PaymentIdInUseError() from e
        except DatabaseError as e:
            raise OrderPersistenceError() from e
        return n == 1

    def apply_payment_status(self, order_id, status: OrderStatus, provider_status: Optional[str]) -> None:
        """Overwrite status, raw provider status and ``updated_at``.

        Re-applying the same values is harmless, which is what makes
        webhook redelivery safe. The raw status is cut to the column width
        so an odd provider value cannot fail the update.
        """
        if provider_status is not None:
            provider_status = provider_status[:PAYMENT_STATUS_MAX_LENGTH]
        try:
            OrderModel.objects.filter(id=order_id).update(
                status=status.value,
                payment_status=provider_status,
                updated_at=timezone.now(),
            )
        except DatabaseError as e:
            raise OrderPersistenceError() from e

    def update_admin_fields(self, reference: str, **fields) -> bool:
        values = {k: (v.value if isinstance(v, OrderStatus) else v) for k, v in fields.items()}
        values["updated_at"] = timezone.now()
        try:
            n = OrderModel.objects.filter(reference=reference).update(**values)
        except DatabaseError as e:
            raise OrderPersistenceError() from e
        return n == 1

    def list_page(self, page: int = 1, page_size: int = 20, status: Optional[str] = None):
        """Return ``(total_count, page_number, orders)`` newest first."""
        qs = OrderModel.objects.order_by("-created_at")
        if status:
            qs = qs.filter(status=status)
        p = Paginator(qs, page_size)
        page_obj = p.get_page(page)
        return p.count, page_obj.number, [to_domain(o) for o in page_obj.object_list]
