"""Shipment groups and the rates quoted for them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from giftflow.domain.exceptions import ValidationError
from giftflow.domain.model.address import ShippingAddress
from giftflow.domain.model.item import CartItem
from giftflow.domain.model.value_objects import Money


@dataclass(frozen=True)
class Rate:
    id: str
    title: str
    price: Money
    delivery_days: int
    estimated_delivery: date
    is_fallback: bool = False  # fixed tier used while the rate service is down


@dataclass
class ShipmentGroup:
    """All cart items that share one resolved delivery address.

    ``group_key`` comes from the address identity, never from item order,
    so grouping the same cart twice yields the same keys.  ``label`` records
    how the first item in the group was routed (recipient, giver, custom).
    """

    group_key: str
    label: str
    address: ShippingAddress
    items: list[CartItem]
    candidate_rates: list[Rate] = field(default_factory=list)
    selected_rate: Rate | None = None

    @property
    def total_weight(self) -> Decimal:
        return sum((c.item.line_weight for c in self.items), Decimal("0"))

    @property
    def total_value(self) -> Money:
        currency = self.items[0].item.currency if self.items else "USD"
        total = Money.zero(currency)
        for cart_item in self.items:
            total = total + cart_item.item.line_total
        return total

    @property
    def item_ids(self) -> list[str]:
        return [c.item.item_id for c in self.items]

    def attach_rates(self, rates: list[Rate]) -> None:
        """Store the quoted rates and default to the cheapest one."""
        self.candidate_rates = list(rates)
        self.selected_rate = self.candidate_rates[0] if self.candidate_rates else None

    def select_rate(self, rate_id: str) -> Rate:
        for rate in self.candidate_rates:
            if rate.id == rate_id:
                self.selected_rate = rate
                return rate
        raise ValidationError(
            f"Rate '{rate_id}' was not quoted for shipment group {self.group_key}"
        )
