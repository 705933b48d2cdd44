import uuid
from django.db import models
from django.utils import timezone

PAYMENT_STATUS_MAX_LENGTH = 32


class OrderModel(models.Model):
    # UUID PK, internal; the public key is ``reference``
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    reference = models.CharField(max_length=64, unique=True, editable=False)

    class Status(models.TextChoices):
        PENDING = "pending"
        PAID = "paid"
        PROCESSING = "processing"
        SHIPPED = "shipped"
        DELIVERED = "delivered"
        CANCELLED = "cancelled"
        FAILED = "failed"
        REFUNDED = "refunded"

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    # [{product_id, name, unit_price, quantity}], shipping line included
    items = models.JSONField(default=list)
    total_amount = models.PositiveBigIntegerField(default=0)
    currency = models.CharField(max_length=3, default="COP")

    # Provider correlation
    payment_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    preference_id = models.CharField(max_length=128, null=True, blank=True)
    payment_status = models.CharField(max_length=PAYMENT_STATUS_MAX_LENGTH, null=True, blank=True)

    customer_name = models.CharField(max_length=200)
    customer_email = models.CharField(max_length=254)
    customer_phone = models.CharField(max_length=40)
    shipping_address = models.CharField(max_length=300)
    shipping_city = models.CharField(max_length=100)
    shipping_department = models.CharField(max_length=100)
    shipping_region = models.CharField(max_length=16)
    courier = models.CharField(max_length=100)
    courier_id = models.CharField(max_length=50)
    tracking_number = models.CharField(max_length=100, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]


class IdempotencyKey(models.Model):
    """Stored outcome of a checkout submitted with an ``Idempotency-Key``."""

    key = models.CharField(max_length=200, primary_key=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    order = models.ForeignKey(OrderModel, null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
