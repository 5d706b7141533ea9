"""Carrier rate service priced from a fixed weight table.

Stands in for a live carrier API when running locally: every method has a
base price plus a per-kilogram charge, with a surcharge for destinations
outside the home country.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from giftflow.domain.gateway.rate_service import CarrierRate, CarrierRateService
from giftflow.domain.model.address import ShippingAddress
from giftflow.domain.model.item import RegistryItemRef
from giftflow.domain.model.value_objects import Money


@dataclass(frozen=True)
class ShippingMethod:
    id: str
    title: str
    carrier: str
    base: Decimal
    per_kg: Decimal
    delivery_days: int | None = None  # None: inferred from the title


DEFAULT_METHODS = (
    ShippingMethod("ground", "Ground", "UPS", Decimal("7.50"), Decimal("0.80")),
    ShippingMethod("express", "Express 2-Day", "UPS", Decimal("16.00"), Decimal("1.40")),
    ShippingMethod("overnight", "Overnight", "FedEx", Decimal("32.00"), Decimal("2.25")),
)


class TableRateService(CarrierRateService):

    def __init__(
        self,
        methods: tuple[ShippingMethod, ...] = DEFAULT_METHODS,
        home_country: str = "US",
        international_surcharge: Decimal = Decimal("15.00"),
    ) -> None:
        self._methods = methods
        self._home_country = home_country.upper()
        self._international_surcharge = international_surcharge

    def get_rates(
        self,
        address: ShippingAddress,
        items: list[RegistryItemRef],
        total_weight: Decimal,
    ) -> list[CarrierRate]:
        if not any(i.requires_shipping for i in items):
            return []
        currency = items[0].currency
        surcharge = (
            self._international_surcharge
            if address.country.upper() != self._home_country
            else Decimal("0")
        )
        return [
            CarrierRate(
                id=method.id,
                title=method.title,
                price=Money(
                    (method.base + method.per_kg * total_weight + surcharge).quantize(
                        Decimal("0.01"), ROUND_HALF_UP
                    ),
                    currency,
                ),
                delivery_days=method.delivery_days,
                carrier=method.carrier,
            )
            for method in self._methods
        ]
