"""Registry item snapshots and cart lines."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from giftflow.domain.model.address import ShippingAddress
from giftflow.domain.model.value_objects import Money, Quantity


class ShippingPreference(Enum):
    RECIPIENT = "recipient"  # registry owner's address
    GIVER = "giver"  # the buyer's own address
    CUSTOM = "custom"  # an address attached to the cart line


@dataclass(frozen=True)
class RegistryItemRef:
    """Read-only snapshot of a purchasable unit taken at checkout time.

    Later catalog changes never reach an in-flight shipment group or a
    completed funding campaign because they hold this copy, not the
    catalog entry.
    """

    item_id: str
    product_ref: str
    title: str
    quantity: Quantity
    unit_price: Money  # locked at snapshot time
    weight: Decimal = Decimal("0")  # kilograms per unit
    requires_shipping: bool = True

    @property
    def currency(self) -> str:
        return self.unit_price.currency

    @property
    def line_total(self) -> Money:
        return self.unit_price * self.quantity.value

    @property
    def line_weight(self) -> Decimal:
        return self.weight * self.quantity.value


@dataclass(frozen=True)
class CartItem:
    item: RegistryItemRef
    preference: ShippingPreference = ShippingPreference.RECIPIENT
    custom_address: ShippingAddress | None = None
    gift_message: str | None = None
