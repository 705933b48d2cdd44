"""Session-scoped shopping cart.

The cart is a flat list of entries, one per unit added. Entries carry the
product snapshot the shopper saw (price, stock, preorder flag), so totals
and the over-stock check work from that snapshot and never from live
catalog data. Stock is not checked when adding: the shopper may over-add
and the summary flags it, which blocks checkout.

``SessionCartStore`` keeps one cart per browser session in the Django
session; there is no process-wide cart state.
"""

import uuid
from dataclasses import dataclass, asdict
from typing import Iterable, List, Optional

SESSION_KEY = "casafunko.cart"


@dataclass(frozen=True)
class ProductSnapshot:
    """The product fields a cart entry needs, as shown to the shopper."""

    product_id: int
    name: str
    unit_price: int
    stock: int
    is_preorder: bool = False


@dataclass(frozen=True)
class CartEntry:
    """One unit of one product in the cart."""

    product_id: int
    name: str
    unit_price: int
    stock: int
    is_preorder: bool
    entry_id: str


@dataclass(frozen=True)
class GroupedLine:
    """All entries of one product collapsed into a quantity."""

    product_id: int
    name: str
    unit_price: int
    quantity: int
    stock: int
    is_preorder: bool

    @property
    def over_stock(self) -> bool:
        return not self.is_preorder and self.quantity > self.stock

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class CartSummary:
    subtotal: int
    lines: List[GroupedLine]
    entry_count: int

    @property
    def is_empty(self) -> bool:
        return self.entry_count == 0

    @property
    def over_stock(self) -> bool:
        return any(line.over_stock for line in self.lines)

    @property
    def over_stock_lines(self) -> List[GroupedLine]:
        return [line for line in self.lines if line.over_stock]

    @property
    def can_checkout(self) -> bool:
        return not self.is_empty and not self.over_stock

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "entry_count": self.entry_count,
            "over_stock": self.over_stock,
            "can_checkout": self.can_checkout,
            "lines": [
                {**asdict(line), "line_total": line.line_total, "over_stock": line.over_stock}
                for line in self.lines
            ],
        }


def group_entries(entries: Iterable[CartEntry]) -> List[GroupedLine]:
    """Group entries by product id, keeping first-seen product order.

    Name, price, stock and preorder flag come from the first entry of each
    product.
    """
    groups: dict[int, GroupedLine] = {}
    for e in entries:
        current = groups.get(e.product_id)
        if current is None:
            groups[e.product_id] = GroupedLine(
                product_id=e.product_id,
                name=e.name,
                unit_price=e.unit_price,
                quantity=1,
                stock=e.stock,
                is_preorder=e.is_preorder,
            )
        else:
            groups[e.product_id] = GroupedLine(
                product_id=current.product_id,
                name=current.name,
                unit_price=current.unit_price,
                quantity=current.quantity + 1,
                stock=current.stock,
                is_preorder=current.is_preorder,
            )
    return list(groups.values())


class Cart:
    """Ordered collection of cart entries with add/remove/summary."""

    def __init__(self, entries: Optional[Iterable[CartEntry]] = None):
        self._entries: List[CartEntry] = list(entries or [])

    @property
    def entries(self) -> List[CartEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def add_entry(self, product: ProductSnapshot) -> CartEntry:
        entry = CartEntry(
            product_id=product.product_id,
            name=product.name,
            unit_price=product.unit_price,
            stock=product.stock,
            is_preorder=product.is_preorder,
            entry_id=str(uuid.uuid4()),
        )
        self._entries.append(entry)
        return entry

    def remove_entry(self, entry_id: str) -> bool:
        """Remove the entry with ``entry_id``. Returns False when absent."""
        for idx, e in enumerate(self._entries):
            if e.entry_id == entry_id:
                del self._entries[idx]
                return True
        return False

    def clear(self) -> None:
        self._entries.clear()

    def summary(self) -> CartSummary:
        return CartSummary(
            subtotal=sum(e.unit_price for e in self._entries),
            lines=group_entries(self._entries),
            entry_count=len(self._entries),
        )


class SessionCartStore:
    """Load and save a ``Cart`` in a Django session (any mapping works)."""

    def __init__(self, key: str = SESSION_KEY):
        self.key = key

    def load(self, session) -> Cart:
        raw = session.get(self.key) or []
        return Cart(CartEntry(**item) for item in raw)

    def save(self, session, cart: Cart) -> None:
        session[self.key] = [asdict(e) for e in cart.entries]

    def clear(self, session) -> None:
        session.pop(self.key, None)
