"""Domain service: Shipment Grouper.

Partitions a cart into one shipment group per resolved destination.

Determinism matters here: the group keys feed the idempotency keys of the
orders created downstream, so the same cart and addresses must always
produce the same groups, in the same order (first-seen item index).
"""

from __future__ import annotations

from giftflow.domain.exceptions import ValidationError
from giftflow.domain.model.address import ShippingAddress
from giftflow.domain.model.item import CartItem
from giftflow.domain.model.shipment import ShipmentGroup
from giftflow.domain.service.address_resolver import AddressResolver

MAX_CART_ITEMS = 100


class ShipmentGrouper:

    def __init__(self, resolver: AddressResolver | None = None) -> None:
        self._resolver = resolver or AddressResolver()

    def group(
        self,
        cart_items: list[CartItem],
        owner_address: ShippingAddress,
        buyer_address: ShippingAddress,
    ) -> list[ShipmentGroup]:
        if not cart_items:
            raise ValidationError("Cart must contain at least one item")
        if len(cart_items) > MAX_CART_ITEMS:
            raise ValidationError(f"Maximum {MAX_CART_ITEMS} items per checkout")

        seen_ids: set[str] = set()
        for cart_item in cart_items:
            if cart_item.item.item_id in seen_ids:
                raise ValidationError(
                    f"Item '{cart_item.item.item_id}' appears more than once in the cart"
                )
            seen_ids.add(cart_item.item.item_id)

        currencies = {c.item.currency for c in cart_items}
        if len(currencies) > 1:
            raise ValidationError(
                f"Cart mixes currencies: {', '.join(sorted(currencies))}"
            )

        owner = self._resolver.normalize(owner_address, role="registry owner")
        buyer = self._resolver.normalize(buyer_address, role="buyer")

        # dict keeps insertion order, i.e. first-seen item index
        groups: dict[str, ShipmentGroup] = {}
        for cart_item in cart_items:
            address = self._resolver.resolve(cart_item, owner, buyer)
            key = address.identity_key()
            group = groups.get(key)
            if group is None:
                group = ShipmentGroup(
                    group_key=key,
                    label=cart_item.preference.value,
                    address=address,
                    items=[],
                )
                groups[key] = group
            group.items.append(cart_item)

        return list(groups.values())
