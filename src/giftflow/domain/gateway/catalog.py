"""Catalog/pricing collaborator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from giftflow.domain.model.value_objects import Money


@dataclass(frozen=True)
class ItemSnapshot:
    product_ref: str
    title: str
    price: Money
    weight: Decimal
    available: int  # units in stock

    @property
    def currency(self) -> str:
        return self.price.currency


class CatalogGateway(ABC):

    @abstractmethod
    def get_item_snapshot(self, product_ref: str) -> ItemSnapshot | None:
        """Return current title/price/weight/availability, or None if unknown."""
