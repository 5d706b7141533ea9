"""Application service: Group and Quote use case.

Snapshots every cart line from the catalog, partitions the cart into
shipment groups and quotes shipping for each group.  The cheapest rate is
pre-selected; the buyer may pick another before committing.
"""

from __future__ import annotations

from giftflow.application.dto import CartItemSpec
from giftflow.domain.exceptions import EntityNotFoundError, ValidationError
from giftflow.domain.gateway.catalog import CatalogGateway
from giftflow.domain.model.address import ShippingAddress
from giftflow.domain.model.item import CartItem, RegistryItemRef, ShippingPreference
from giftflow.domain.model.shipment import ShipmentGroup
from giftflow.domain.model.value_objects import Quantity
from giftflow.domain.service.rate_quoter import RateQuoter
from giftflow.domain.service.shipment_grouper import ShipmentGrouper


def parse_preference(raw: str) -> ShippingPreference:
    try:
        return ShippingPreference(raw.strip().lower())
    except ValueError:
        allowed = ", ".join(p.value for p in ShippingPreference)
        raise ValidationError(
            f"Unknown shipping preference '{raw}'. Expected one of: {allowed}"
        )


class GroupAndQuoteHandler:

    def __init__(
        self,
        catalog: CatalogGateway,
        grouper: ShipmentGrouper,
        quoter: RateQuoter,
    ) -> None:
        self._catalog = catalog
        self._grouper = grouper
        self._quoter = quoter

    def handle(
        self,
        cart: list[CartItemSpec],
        owner_address: ShippingAddress,
        buyer_address: ShippingAddress,
    ) -> list[ShipmentGroup]:
        cart_items = [self._to_cart_item(spec) for spec in cart]
        groups = self._grouper.group(cart_items, owner_address, buyer_address)
        for group in groups:
            rates = self._quoter.quote(
                group.address,
                [c.item for c in group.items],
                group.total_weight,
            )
            group.attach_rates(rates)
        return groups

    # --- Mapping --------------------------------------------------------------

    def _to_cart_item(self, spec: CartItemSpec) -> CartItem:
        snapshot = self._catalog.get_item_snapshot(spec.product_ref)
        if snapshot is None:
            raise EntityNotFoundError(f"Product not found: '{spec.product_ref}'")

        quantity = Quantity(spec.quantity)
        if snapshot.available < quantity.value:
            raise ValidationError(
                f"Insufficient stock for '{snapshot.title}': "
                f"requested {quantity.value}, available {snapshot.available}"
            )

        return CartItem(
            item=RegistryItemRef(
                item_id=spec.item_id,
                product_ref=snapshot.product_ref,
                title=snapshot.title,
                quantity=quantity,
                unit_price=snapshot.price,  # <-- price snapshot
                weight=snapshot.weight,
            ),
            preference=parse_preference(spec.shipping_preference),
            custom_address=spec.custom_address,
            gift_message=spec.gift_message,
        )
