"""Pydantic schemas for the orders API.

Request bodies and provider notifications are parsed here, at the HTTP
boundary, so malformed payloads are rejected before they reach the domain.
"""

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import Order, OrderStatus


# ---- Cart ----
class CartEntryIn(BaseModel):
    """Product snapshot posted when the shopper clicks "add to cart".

    Attributes:
        product_id: Catalog id, a positive integer.
        unit_price: Whole currency units.
        stock: Stock shown to the shopper; checked only at summary time.
    """

    product_id: int = Field(gt=0)
    name: str = Field(min_length=1, max_length=200)
    unit_price: int = Field(ge=0)
    stock: int = Field(ge=0)
    is_preorder: bool = False


# ---- Checkout ----
class CustomerIn(BaseModel):
    """Customer form fields. Blank values are reported by the shipping
    resolver as field errors rather than rejected here."""

    name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    department: str = ""


class CheckoutIn(BaseModel):
    region: Optional[str] = None
    courier_id: Optional[str] = None
    customer: CustomerIn = Field(default_factory=CustomerIn)


# ---- Preference endpoint ----
class PreferenceItemIn(BaseModel):
    name: str = Field(min_length=1)
    price: int = Field(ge=0)
    qty: int = Field(gt=0)


class PayerIn(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""


class CreatePreferenceDTO(BaseModel):
    reference: str = Field(min_length=1, max_length=64)
    items: Optional[list[PreferenceItemIn]] = None
    payer: Optional[PayerIn] = None


# ---- Payment attach ----
class AttachPaymentDTO(BaseModel):
    payment_id: str = Field(min_length=1, max_length=64)

    @field_validator("payment_id", mode="before")
    @classmethod
    def coerce_payment_id(cls, v):
        # The provider reports numeric ids
        return str(v) if isinstance(v, int) else v


# ---- Admin ----
class AdminOrderUpdateDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Optional[OrderStatus] = None
    tracking_number: Optional[str] = Field(default=None, max_length=100)
    courier: Optional[str] = Field(default=None, min_length=1, max_length=100)


# ---- Webhook ----
class PaymentEventData(BaseModel):
    id: Union[str, int]
    status: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def status_text_or_none(cls, v):
        return v if isinstance(v, str) else None

    @field_validator("id")
    @classmethod
    def id_as_text(cls, v) -> str:
        v = str(v).strip()
        if not v:
            raise ValueError("empty payment id")
        return v


class PaymentEvent(BaseModel):
    """A ``type == "payment"`` notification with the fields the reconciler uses."""

    type: Literal["payment"]
    data: PaymentEventData

    @property
    def payment_id(self) -> str:
        return str(self.data.id)

    @property
    def provider_status(self) -> Optional[str]:
        return self.data.status


# ---- Read models ----
class OrderItemOut(BaseModel):
    product_id: Union[int, str]
    name: str
    unit_price: int
    quantity: int


class OrderReadDTO(BaseModel):
    reference: str
    status: OrderStatus
    items: list[OrderItemOut]
    total_amount: int
    currency: str
    courier: str
    shipping_region: str
    customer_name: str
    shipping_city: str
    payment_id: Optional[str] = None
    preference_id: Optional[str] = None
    payment_status: Optional[str] = None
    tracking_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderReadDTO":
        return cls(
            reference=order.reference,
            status=order.status,
            items=[OrderItemOut(**i.as_dict()) for i in order.items],
            total_amount=order.total_amount,
            currency=order.currency,
            courier=order.courier,
            shipping_region=order.shipping_region,
            customer_name=order.customer.name,
            shipping_city=order.customer.city,
            payment_id=order.payment_id,
            preference_id=order.preference_id,
            payment_status=order.payment_status,
            tracking_number=order.tracking_number,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
