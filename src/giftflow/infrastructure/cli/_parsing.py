"""Input parsing shared by the CLI commands."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

import click

from giftflow.application.dto import CartItemSpec
from giftflow.domain.model.address import BuyerInfo, ShippingAddress
from giftflow.domain.model.shipment import ShipmentGroup
from giftflow.infrastructure.persistence._codec import address_from_raw, buyer_from_raw


@dataclass(frozen=True)
class CartFile:
    """A checkout request as read from a JSON cart file."""

    registry_id: str | None
    owner_address: ShippingAddress
    buyer: BuyerInfo
    buyer_address: ShippingAddress
    items: list[CartItemSpec]
    special_instructions: str | None = None


def _load_json(path: Path, what: str) -> dict:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise click.BadParameter(f"Cannot read {what} '{path}': {exc}")
    if not isinstance(data, dict):
        raise click.BadParameter(f"{what.capitalize()} '{path}' must contain a JSON object")
    return data


def load_cart(path: Path) -> CartFile:
    """Parse a cart file.

    Expected keys: ``owner_address``, ``buyer``, ``buyer_address`` and
    ``items``; ``registry_id`` and ``special_instructions`` are optional.
    """
    data = _load_json(path, "cart file")
    missing = [k for k in ("owner_address", "buyer", "buyer_address", "items") if k not in data]
    if missing:
        raise click.BadParameter(f"Cart file is missing: {', '.join(missing)}")

    items: list[CartItemSpec] = []
    for index, raw in enumerate(data["items"], start=1):
        try:
            quantity = int(raw.get("quantity", 1))
        except (TypeError, ValueError):
            raise click.BadParameter(
                f"Invalid quantity '{raw.get('quantity')}' for cart item {index}."
            )
        if "product_ref" not in raw:
            raise click.BadParameter(f"Cart item {index} has no product_ref.")
        custom = raw.get("custom_address")
        items.append(
            CartItemSpec(
                item_id=str(raw.get("item_id", raw["product_ref"])),
                product_ref=raw["product_ref"],
                quantity=quantity,
                shipping_preference=raw.get("shipping_preference", "recipient"),
                custom_address=address_from_raw(custom) if custom else None,
                gift_message=raw.get("gift_message"),
            )
        )

    try:
        buyer = buyer_from_raw(data["buyer"])
    except KeyError:
        raise click.BadParameter("Cart file buyer needs an email.")

    return CartFile(
        registry_id=data.get("registry_id"),
        owner_address=address_from_raw(data["owner_address"]),
        buyer=buyer,
        buyer_address=address_from_raw(data["buyer_address"]),
        items=items,
        special_instructions=data.get("special_instructions"),
    )


def load_address(path: Path) -> ShippingAddress:
    return address_from_raw(_load_json(path, "address file"))


def parse_rate_choices(raw: tuple[str, ...]) -> dict[str, str]:
    """Parse ('1=express', 'a1b2c3=ground') into {group: rate_id}."""
    choices: dict[str, str] = {}
    for pair in raw:
        if "=" not in pair:
            raise click.BadParameter(
                f"Invalid rate choice '{pair}'. Expected 'GROUP=RATE'."
            )
        group, rate_id = pair.split("=", 1)
        choices[group.strip()] = rate_id.strip()
    return choices


def apply_rate_choices(groups: list[ShipmentGroup], choices: dict[str, str]) -> None:
    """Select rates by group number (1-based) or group key."""
    by_ref: dict[str, ShipmentGroup] = {}
    for index, group in enumerate(groups, start=1):
        by_ref[str(index)] = group
        by_ref[group.group_key] = group
    for ref, rate_id in choices.items():
        group = by_ref.get(ref)
        if group is None:
            raise click.BadParameter(f"Unknown shipment group '{ref}'.")
        group.select_rate(rate_id)


def split_name(full_name: str) -> tuple[str, str]:
    first, _, last = full_name.strip().partition(" ")
    return first, last.strip()
