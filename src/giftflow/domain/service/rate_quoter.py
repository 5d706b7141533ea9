"""Domain service: Rate Quoter.

Asks the carrier rate service for options and turns them into ``Rate``
values with business-day delivery estimates.  A malformed carrier rate is
skipped.  If the service errors or leaves nothing usable, a fixed two-tier
fallback is quoted instead so checkout is never blocked by a rate outage;
fallback rates carry ``is_fallback=True``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import structlog

from giftflow.domain.exceptions import ValidationError
from giftflow.domain.gateway.rate_service import CarrierRate, CarrierRateService
from giftflow.domain.model.address import ShippingAddress
from giftflow.domain.model.item import RegistryItemRef
from giftflow.domain.model.shipment import Rate
from giftflow.domain.model.value_objects import Money

logger = structlog.get_logger(__name__)

DEFAULT_DELIVERY_DAYS = 5


@dataclass(frozen=True)
class FallbackTier:
    id: str
    title: str
    price: Decimal
    delivery_days: int


DEFAULT_FALLBACK_TIERS = (
    FallbackTier("standard", "Standard Shipping", Decimal("9.99"), 5),
    FallbackTier("expedited", "Expedited Shipping", Decimal("19.99"), 2),
)


def add_business_days(start: date, days: int) -> date:
    """Advance *days* weekdays from *start*, skipping Saturdays and Sundays."""
    current = start
    added = 0
    while added < days:
        current += timedelta(days=1)
        if current.weekday() < 5:
            added += 1
    return current


def infer_delivery_days(title: str) -> int:
    lowered = title.lower()
    if "overnight" in lowered or "next day" in lowered:
        return 1
    if "expedited" in lowered or "express" in lowered:
        return 2
    return DEFAULT_DELIVERY_DAYS


class RateQuoter:

    def __init__(
        self,
        rate_service: CarrierRateService,
        fallback_tiers: tuple[FallbackTier, ...] = DEFAULT_FALLBACK_TIERS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._rate_service = rate_service
        self._fallback_tiers = fallback_tiers
        self._clock = clock

    def quote(
        self,
        address: ShippingAddress,
        items: list[RegistryItemRef],
        total_weight: Decimal,
    ) -> list[Rate]:
        """Return rates sorted by ascending price; never empty, never raises."""
        currency = items[0].currency if items else "USD"
        today = self._clock().date()

        try:
            carrier_rates = self._rate_service.get_rates(address, items, total_weight)
        except Exception as exc:  # any upstream failure degrades to the fallback
            logger.warning(
                "Rate service failed, quoting fallback rates",
                country=address.country,
                error=str(exc),
            )
            return self._fallback(currency, today)

        rates = []
        for carrier_rate in carrier_rates:
            try:
                if carrier_rate.price.currency != currency:
                    continue
                rates.append(self._to_rate(carrier_rate, today))
            except Exception as exc:  # one malformed rate must not sink the quote
                logger.warning(
                    "Skipping malformed carrier rate",
                    rate_id=getattr(carrier_rate, "id", None),
                    error=str(exc),
                )
        if not rates:
            logger.info(
                "Rate service returned no usable rates, quoting fallback rates",
                country=address.country,
            )
            return self._fallback(currency, today)

        return sorted(rates, key=lambda r: (r.price.amount, r.delivery_days, r.id))

    # --- Internal helpers -----------------------------------------------------

    @staticmethod
    def _to_rate(carrier_rate: CarrierRate, today: date) -> Rate:
        days = carrier_rate.delivery_days
        if days is None:
            days = infer_delivery_days(carrier_rate.title)
        if not isinstance(days, int) or days < 0:
            raise ValidationError(f"Invalid delivery days {days!r} for rate {carrier_rate.id}")
        return Rate(
            id=carrier_rate.id,
            title=carrier_rate.title,
            price=carrier_rate.price,
            delivery_days=days,
            estimated_delivery=add_business_days(today, days),
        )

    def _fallback(self, currency: str, today: date) -> list[Rate]:
        rates = [
            Rate(
                id=tier.id,
                title=tier.title,
                price=Money(tier.price, currency),
                delivery_days=tier.delivery_days,
                estimated_delivery=add_business_days(today, tier.delivery_days),
                is_fallback=True,
            )
            for tier in self._fallback_tiers
        ]
        return sorted(rates, key=lambda r: (r.price.amount, r.delivery_days))
