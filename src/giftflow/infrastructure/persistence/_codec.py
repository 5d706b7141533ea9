"""Shared JSON (de)serialization for the file-backed repositories."""

from __future__ import annotations

import fcntl
import hashlib
import json
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from giftflow.domain.model.address import BuyerInfo, ShippingAddress
from giftflow.domain.model.campaign import (
    CampaignStatus,
    Contribution,
    ContributionStatus,
    FundingCampaign,
)
from giftflow.domain.model.item import RegistryItemRef
from giftflow.domain.model.receipt import OrderReceipt, ReceiptStatus
from giftflow.domain.model.shipment import Rate
from giftflow.domain.model.value_objects import Money, Quantity

# --- Value objects ------------------------------------------------------------


def money_to_raw(money: Money | None) -> dict | None:
    if money is None:
        return None
    return {"amount": str(money.amount), "currency": money.currency}


def money_from_raw(raw: dict | None) -> Money | None:
    if raw is None:
        return None
    return Money(Decimal(raw["amount"]), raw.get("currency", "USD"))


def _dt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(raw: str | None) -> datetime | None:
    return datetime.fromisoformat(raw) if raw else None


def address_to_raw(address: ShippingAddress) -> dict:
    return {
        "first_name": address.first_name,
        "last_name": address.last_name,
        "address1": address.address1,
        "address2": address.address2,
        "city": address.city,
        "province": address.province,
        "zip": address.zip,
        "country": address.country,
        "company": address.company,
        "phone": address.phone,
        "email": address.email,
    }


def address_from_raw(raw: dict) -> ShippingAddress:
    return ShippingAddress(
        first_name=raw.get("first_name", ""),
        last_name=raw.get("last_name", ""),
        address1=raw.get("address1", ""),
        city=raw.get("city", ""),
        province=raw.get("province", ""),
        zip=raw.get("zip", ""),
        country=raw.get("country", ""),
        address2=raw.get("address2"),
        company=raw.get("company"),
        phone=raw.get("phone"),
        email=raw.get("email"),
    )


def buyer_to_raw(buyer: BuyerInfo) -> dict:
    return {
        "email": buyer.email,
        "first_name": buyer.first_name,
        "last_name": buyer.last_name,
        "phone": buyer.phone,
    }


def buyer_from_raw(raw: dict) -> BuyerInfo:
    return BuyerInfo(
        email=raw["email"],
        first_name=raw.get("first_name", ""),
        last_name=raw.get("last_name", ""),
        phone=raw.get("phone"),
    )


def item_to_raw(item: RegistryItemRef) -> dict:
    return {
        "item_id": item.item_id,
        "product_ref": item.product_ref,
        "title": item.title,
        "quantity": item.quantity.value,
        "unit_price": money_to_raw(item.unit_price),
        "weight": str(item.weight),
        "requires_shipping": item.requires_shipping,
    }


def item_from_raw(raw: dict) -> RegistryItemRef:
    return RegistryItemRef(
        item_id=raw["item_id"],
        product_ref=raw["product_ref"],
        title=raw["title"],
        quantity=Quantity(raw["quantity"]),
        unit_price=money_from_raw(raw["unit_price"]),
        weight=Decimal(raw.get("weight", "0")),
        requires_shipping=raw.get("requires_shipping", True),
    )


def rate_to_raw(rate: Rate | None) -> dict | None:
    if rate is None:
        return None
    return {
        "id": rate.id,
        "title": rate.title,
        "price": money_to_raw(rate.price),
        "delivery_days": rate.delivery_days,
        "estimated_delivery": rate.estimated_delivery.isoformat(),
        "is_fallback": rate.is_fallback,
    }


def rate_from_raw(raw: dict | None) -> Rate | None:
    if raw is None:
        return None
    return Rate(
        id=raw["id"],
        title=raw["title"],
        price=money_from_raw(raw["price"]),
        delivery_days=raw["delivery_days"],
        estimated_delivery=date.fromisoformat(raw["estimated_delivery"]),
        is_fallback=raw.get("is_fallback", False),
    )


# --- Aggregates ---------------------------------------------------------------


def campaign_to_raw(campaign: FundingCampaign) -> dict:
    return {
        "id": campaign.id,
        "title": campaign.title,
        "item": item_to_raw(campaign.item),
        "organizer": buyer_to_raw(campaign.organizer),
        "ship_to": address_to_raw(campaign.ship_to),
        "target_amount": money_to_raw(campaign.target_amount),
        "current_amount": money_to_raw(campaign.current_amount),
        "min_contribution": money_to_raw(campaign.min_contribution),
        "max_contributors": campaign.max_contributors,
        "deadline": _dt(campaign.deadline),
        "status": campaign.status.value,
        "contributor_count": campaign.contributor_count,
        "allow_anonymous": campaign.allow_anonymous,
        "auto_order_on_target": campaign.auto_order_on_target,
        "shipping_rate": rate_to_raw(campaign.shipping_rate),
        "fulfilled": campaign.fulfilled,
        "fulfillment_order_id": campaign.fulfillment_order_id,
        "reconciled": campaign.reconciled,
        "version": campaign.version,
        "created_at": _dt(campaign.created_at),
        "closed_at": _dt(campaign.closed_at),
    }


def campaign_from_raw(raw: dict) -> FundingCampaign:
    return FundingCampaign(
        id=raw["id"],
        title=raw["title"],
        item=item_from_raw(raw["item"]),
        organizer=buyer_from_raw(raw["organizer"]),
        ship_to=address_from_raw(raw["ship_to"]),
        target_amount=money_from_raw(raw["target_amount"]),
        current_amount=money_from_raw(raw["current_amount"]),
        min_contribution=money_from_raw(raw["min_contribution"]),
        max_contributors=raw.get("max_contributors"),
        deadline=_parse_dt(raw.get("deadline")),
        status=CampaignStatus(raw["status"]),
        contributor_count=raw.get("contributor_count", 0),
        allow_anonymous=raw.get("allow_anonymous", True),
        auto_order_on_target=raw.get("auto_order_on_target", True),
        shipping_rate=rate_from_raw(raw.get("shipping_rate")),
        fulfilled=raw.get("fulfilled", False),
        fulfillment_order_id=raw.get("fulfillment_order_id"),
        reconciled=raw.get("reconciled", False),
        version=raw.get("version", 0),
        created_at=_parse_dt(raw["created_at"]),
        closed_at=_parse_dt(raw.get("closed_at")),
    )


def contribution_to_raw(contribution: Contribution) -> dict:
    return {
        "id": contribution.id,
        "campaign_id": contribution.campaign_id,
        "amount": money_to_raw(contribution.amount),
        "contributor_name": contribution.contributor_name,
        "contributor_email": contribution.contributor_email,
        "contributor_id": contribution.contributor_id,
        "anonymous": contribution.anonymous,
        "message": contribution.message,
        "payment_ref": contribution.payment_ref,
        "charge_id": contribution.charge_id,
        "status": contribution.status.value,
        "created_at": _dt(contribution.created_at),
        "refunded_at": _dt(contribution.refunded_at),
        "refund_claimed_at": _dt(contribution.refund_claimed_at),
        "version": contribution.version,
    }


def contribution_from_raw(raw: dict) -> Contribution:
    return Contribution(
        id=raw["id"],
        campaign_id=raw["campaign_id"],
        amount=money_from_raw(raw["amount"]),
        contributor_name=raw["contributor_name"],
        contributor_email=raw["contributor_email"],
        contributor_id=raw.get("contributor_id"),
        anonymous=raw.get("anonymous", False),
        message=raw.get("message"),
        payment_ref=raw.get("payment_ref"),
        charge_id=raw.get("charge_id"),
        status=ContributionStatus(raw["status"]),
        created_at=_parse_dt(raw["created_at"]),
        refunded_at=_parse_dt(raw.get("refunded_at")),
        refund_claimed_at=_parse_dt(raw.get("refund_claimed_at")),
        version=raw.get("version", 0),
    )


def receipt_to_raw(receipt: OrderReceipt) -> dict:
    return {
        "request_key": receipt.request_key,
        "status": receipt.status.value,
        "external_order_id": receipt.external_order_id,
        "order_number": receipt.order_number,
        "total_price": money_to_raw(receipt.total_price),
        "estimated_delivery": receipt.estimated_delivery.isoformat()
        if receipt.estimated_delivery
        else None,
        "attempts": receipt.attempts,
        "last_error": receipt.last_error,
        "version": receipt.version,
        "created_at": _dt(receipt.created_at),
        "updated_at": _dt(receipt.updated_at),
    }


def receipt_from_raw(raw: dict) -> OrderReceipt:
    delivery = raw.get("estimated_delivery")
    return OrderReceipt(
        request_key=raw["request_key"],
        status=ReceiptStatus(raw["status"]),
        external_order_id=raw.get("external_order_id"),
        order_number=raw.get("order_number"),
        total_price=money_from_raw(raw.get("total_price")),
        estimated_delivery=date.fromisoformat(delivery) if delivery else None,
        attempts=raw.get("attempts", 1),
        last_error=raw.get("last_error"),
        version=raw.get("version", 0),
        created_at=_parse_dt(raw["created_at"]),
        updated_at=_parse_dt(raw["updated_at"]),
    )


# --- File helpers -------------------------------------------------------------


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def write_json_atomic(path: Path, data: Any) -> None:
    """Write *data* to a temp file beside *path*, then swap it in."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(data, indent=2) + "\n")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def safe_file_name(key: str) -> str:
    """Map an arbitrary key onto a portable, collision-free file name."""
    readable = "".join(c if c.isalnum() or c in "-_" else "_" for c in key)[:48]
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]
    return f"{readable}-{digest}"


@contextmanager
def file_lock(lock_path: Path) -> Iterator[None]:
    """Exclusive advisory lock, held across threads and processes."""
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with open(lock_path, "a+") as handle:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
