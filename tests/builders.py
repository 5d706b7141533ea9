"""Builders for domain objects used across the test suite."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from giftflow.domain.gateway.catalog import ItemSnapshot
from giftflow.domain.model.address import BuyerInfo, ShippingAddress
from giftflow.domain.model.campaign import FundingCampaign
from giftflow.domain.model.item import CartItem, RegistryItemRef, ShippingPreference
from giftflow.domain.model.shipment import Rate, ShipmentGroup
from giftflow.domain.model.value_objects import Money, Quantity

OWNER = ShippingAddress(
    first_name="Ada",
    last_name="Lovelace",
    address1="12 Analytical Way",
    city="London",
    province="LDN",
    zip="ec1a 1bb",
    country="gb",
    email="ada@example.com",
)

BUYER_ADDRESS = ShippingAddress(
    first_name="Charles",
    last_name="Babbage",
    address1="1 Difference St",
    city="Cambridge",
    province="CAM",
    zip="CB2 1TN",
    country="GB",
    email="charles@example.com",
)

THIRD_PARTY = ShippingAddress(
    first_name="Mary",
    last_name="Somerville",
    address1="9 Orbit Road",
    city="Edinburgh",
    province="EDH",
    zip="EH1 1AA",
    country="GB",
)

BUYER = BuyerInfo(email="charles@example.com", first_name="Charles", last_name="Babbage")
ORGANIZER = BuyerInfo(email="org@example.com", first_name="Grace", last_name="Hopper")


def make_item(
    item_id: str = "item-1",
    price: str = "10.00",
    quantity: int = 1,
    weight: str = "0.5",
    currency: str = "USD",
) -> RegistryItemRef:
    return RegistryItemRef(
        item_id=item_id,
        product_ref=f"prod-{item_id}",
        title=f"Item {item_id}",
        quantity=Quantity(quantity),
        unit_price=Money.of(price, currency),
        weight=Decimal(weight),
    )


def make_cart_item(
    item_id: str,
    preference: ShippingPreference = ShippingPreference.RECIPIENT,
    price: str = "10.00",
    quantity: int = 1,
    custom_address: ShippingAddress | None = None,
    gift_message: str | None = None,
) -> CartItem:
    return CartItem(
        item=make_item(item_id, price=price, quantity=quantity),
        preference=preference,
        custom_address=custom_address,
        gift_message=gift_message,
    )


def make_rate(
    rate_id: str = "standard",
    price: str = "9.99",
    days: int = 5,
    delivery: date = date(2026, 3, 9),
) -> Rate:
    return Rate(
        id=rate_id,
        title=rate_id.title(),
        price=Money.of(price),
        delivery_days=days,
        estimated_delivery=delivery,
    )


def make_group(
    group_key: str = "g1",
    items: list[CartItem] | None = None,
    rate: Rate | None = None,
    address: ShippingAddress = OWNER,
) -> ShipmentGroup:
    group = ShipmentGroup(
        group_key=group_key,
        label="recipient",
        address=address,
        items=items or [make_cart_item("item-1")],
    )
    if rate is not None:
        group.attach_rates([rate])
    return group


def make_campaign(
    now: datetime,
    target: str = "150.00",
    min_contribution: str | None = "5.00",
    max_contributors: int | None = None,
    deadline: datetime | None = None,
    allow_anonymous: bool = True,
    auto_order_on_target: bool = True,
) -> FundingCampaign:
    return FundingCampaign.create(
        title="Stand mixer",
        item=make_item("mixer", price=target),
        organizer=ORGANIZER,
        ship_to=OWNER,
        target_amount=Money.of(target),
        min_contribution=Money.of(min_contribution) if min_contribution else None,
        max_contributors=max_contributors,
        deadline=deadline,
        allow_anonymous=allow_anonymous,
        auto_order_on_target=auto_order_on_target,
        shipping_rate=make_rate(),
        now=now,
    )


def make_snapshot(
    product_ref: str,
    price: str = "10.00",
    weight: str = "0.5",
    available: int = 10,
) -> ItemSnapshot:
    return ItemSnapshot(
        product_ref=product_ref,
        title=f"Product {product_ref}",
        price=Money.of(price),
        weight=Decimal(weight),
        available=available,
    )
