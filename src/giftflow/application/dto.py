"""Data Transfer Objects: plain containers that cross layer boundaries.

DTOs carry data between the CLI and application layers without
exposing domain internals to the outside world.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from giftflow.domain.model.address import ShippingAddress


@dataclass(frozen=True)
class CartItemSpec:
    """Input: one registry item the buyer wants, and where it should go."""

    item_id: str
    product_ref: str
    quantity: int
    shipping_preference: str = "recipient"
    custom_address: ShippingAddress | None = None
    gift_message: str | None = None


@dataclass(frozen=True)
class CampaignConstraints:
    """Input: optional knobs of a new group-gift campaign."""

    min_contribution: str | None = None
    max_contributors: int | None = None
    deadline: str | None = None  # ISO-8601, timezone-aware
    allow_anonymous: bool = True
    auto_order_on_target: bool = True


@dataclass(frozen=True)
class CampaignProgressDTO:
    """Output: progress of a campaign as displayed to the user."""

    campaign_id: str
    title: str
    status: str
    percent: str  # e.g. "76.67"
    current: str  # formatted, e.g. "$115.00"
    target: str
    remaining: str
    is_completed: bool
    is_expired: bool
    days_remaining: int | None
    contributor_count: int
    contributors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SweepReport:
    """Output: what a maintenance sweep did."""

    expired: list[str]
    fulfilled: list[str]
    refunded: list[str]
    failed: list[str]


@dataclass(frozen=True)
class ContributionDTO:
    """Output: an admitted contribution and the campaign balance after it."""

    id: str
    campaign_id: str
    amount: str
    display_name: str
    status: str
    campaign_status: str
    current: str
    remaining: str


@dataclass(frozen=True)
class ReceiptDTO:
    request_key: str
    status: str
    order_id: str | None
    order_number: str | None
    total_price: str | None
    estimated_delivery: str | None  # ISO date


@dataclass(frozen=True)
class CheckoutResultDTO:
    """Output: one receipt per shipment group, in group order."""

    checkout_id: str
    receipts: list[ReceiptDTO]
    coordinated: bool
