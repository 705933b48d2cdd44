"""Shipping regions, the courier price table and checkout form validation.

Couriers are static: the price a shopper picks is the price billed, as a
synthetic line on the order. Local deliveries are restricted to the store's
own city, so for ``local`` the city and department are filled in by the
resolver and whatever the client sent for them is ignored.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional, Tuple


class Region(str, Enum):
    LOCAL = "local"
    NATIONAL = "national"


@dataclass(frozen=True)
class Courier:
    id: str
    name: str
    price: int


COURIERS: Dict[Region, Tuple[Courier, ...]] = {
    Region.LOCAL: (
        Courier("local-messenger", "Mensajero CasaFunko", 8000),
        Courier("local-pickup", "Recogida en tienda", 0),
    ),
    Region.NATIONAL: (
        Courier("servientrega", "Servientrega", 15000),
        Courier("interrapidisimo", "Interrapidísimo", 18000),
        Courier("coordinadora", "Coordinadora", 16000),
    ),
}

CUSTOMER_FIELDS = ("name", "email", "phone", "address", "city", "department")


@dataclass(frozen=True)
class Customer:
    name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    department: str = ""


@dataclass(frozen=True)
class ShippingSelection:
    """What the checkout form submitted."""

    region: Optional[str]
    courier_id: Optional[str]
    customer: Customer


@dataclass(frozen=True)
class ShippingValidation:
    errors: Dict[str, str] = field(default_factory=dict)
    region: Optional[Region] = None
    courier: Optional[Courier] = None
    customer: Optional[Customer] = None

    @property
    def ok(self) -> bool:
        return not self.errors


def _parse_region(value) -> Optional[Region]:
    try:
        return Region(value)
    except ValueError:
        return None


class ShippingResolver:
    """Courier lookup and checkout-form validation.

    Args:
        local_city: City forced on ``local`` shipments.
        local_department: Department forced on ``local`` shipments.
        couriers: Courier table per region.
    """

    def __init__(
        self,
        local_city: str,
        local_department: str,
        couriers: Dict[Region, Tuple[Courier, ...]] = COURIERS,
    ):
        self.local_city = local_city
        self.local_department = local_department
        self.couriers = couriers

    def couriers_for(self, region) -> Tuple[Courier, ...]:
        parsed = _parse_region(region)
        if parsed is None:
            return ()
        return self.couriers.get(parsed, ())

    def resolve(self, region, courier_id: Optional[str]) -> Optional[Courier]:
        for c in self.couriers_for(region):
            if c.id == courier_id:
                return c
        return None

    def price_for(self, region, courier_id: Optional[str]) -> Optional[int]:
        courier = self.resolve(region, courier_id)
        return courier.price if courier else None

    def locked_fields(self, region) -> Dict[str, str]:
        """Customer fields the client may not edit for ``region``."""
        if _parse_region(region) is Region.LOCAL:
            return {"city": self.local_city, "department": self.local_department}
        return {}

    def validate(self, selection: ShippingSelection) -> ShippingValidation:
        """Check region, courier and required customer fields.

        Returns a ``ShippingValidation`` whose ``errors`` maps field names
        (``region``, ``courier_id``, ``customer.<field>``) to error codes.
        The normalized customer has stripped values and, for ``local``, the
        locked city and department.
        """
        errors: Dict[str, str] = {}

        region = _parse_region(selection.region)
        if region is None:
            errors["region"] = "required" if not selection.region else "invalid"

        courier = None
        if region is not None:
            if not selection.courier_id:
                errors["courier_id"] = "required"
            else:
                courier = self.resolve(region, selection.courier_id)
                if courier is None:
                    errors["courier_id"] = "invalid"

        values = {
            name: (getattr(selection.customer, name) or "").strip()
            for name in CUSTOMER_FIELDS
        }
        values.update(self.locked_fields(region) if region else {})
        customer = replace(selection.customer, **values)

        for name in CUSTOMER_FIELDS:
            if not values[name]:
                errors[f"customer.{name}"] = "required"

        return ShippingValidation(errors=errors, region=region, courier=courier, customer=customer)
