"""Order platform collaborator (the merchant's order pipeline)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from giftflow.domain.model.address import BuyerInfo, ShippingAddress
from giftflow.domain.model.shipment import Rate
from giftflow.domain.model.value_objects import Money


@dataclass(frozen=True)
class OrderLine:
    product_ref: str
    quantity: int
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class OrderRequest:
    request_key: str
    lines: list[OrderLine]
    shipping_address: ShippingAddress
    buyer: BuyerInfo
    payment_ref: str
    shipping_rate: Rate | None = None
    note: str = ""
    tags: list[str] = field(default_factory=list)
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PlatformOrder:
    id: str
    number: str
    total_price: Money


class OrderPlatform(ABC):
    """Creates and annotates orders upstream.

    ``create_order`` raises ValidationError for user errors (bad variant,
    insufficient stock) and TransientError for timeouts and rate limits.
    """

    @abstractmethod
    def create_order(self, request: OrderRequest) -> PlatformOrder:
        """Create one order and return its identifiers."""

    @abstractmethod
    def find_order(self, request_key: str) -> PlatformOrder | None:
        """Look up an order previously created for *request_key*."""

    @abstractmethod
    def annotate_order(self, order_id: str, note: str, attributes: dict[str, str]) -> None:
        """Attach special instructions to an existing order."""
