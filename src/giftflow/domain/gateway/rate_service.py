"""Carrier rate collaborator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from giftflow.domain.model.address import ShippingAddress
from giftflow.domain.model.item import RegistryItemRef
from giftflow.domain.model.value_objects import Money


@dataclass(frozen=True)
class CarrierRate:
    id: str
    title: str
    price: Money
    delivery_days: int | None = None
    carrier: str | None = None


class CarrierRateService(ABC):

    @abstractmethod
    def get_rates(
        self,
        address: ShippingAddress,
        items: list[RegistryItemRef],
        total_weight: Decimal,
    ) -> list[CarrierRate]:
        """Return the carrier's options for shipping *items* to *address*.

        May raise any exception when the service is unavailable.
        """
