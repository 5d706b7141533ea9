"""Application service: Start Campaign use case.

Snapshots the registry item, validates the ship-to address, optionally
locks in the cheapest shipping quote and opens the campaign on the ledger.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from giftflow.application.campaign_progress import to_progress_dto
from giftflow.application.dto import CampaignConstraints, CampaignProgressDTO
from giftflow.domain.exceptions import EntityNotFoundError, ValidationError
from giftflow.domain.gateway.catalog import CatalogGateway
from giftflow.domain.model.address import BuyerInfo, ShippingAddress
from giftflow.domain.model.campaign import FundingCampaign
from giftflow.domain.model.item import RegistryItemRef
from giftflow.domain.model.value_objects import Money, Quantity
from giftflow.domain.service.address_resolver import AddressResolver
from giftflow.domain.service.funding_ledger import FundingLedger
from giftflow.domain.service.rate_quoter import RateQuoter


def parse_deadline(raw: str | None) -> datetime | None:
    if raw is None:
        return None
    try:
        deadline = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"Invalid deadline '{raw}'. Expected ISO-8601.")
    if deadline.tzinfo is None:
        raise ValidationError(f"Deadline '{raw}' must include a timezone offset")
    return deadline


class StartCampaignHandler:

    def __init__(
        self,
        ledger: FundingLedger,
        catalog: CatalogGateway,
        quoter: RateQuoter | None = None,
        resolver: AddressResolver | None = None,
        default_min_contribution: str | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._ledger = ledger
        self._catalog = catalog
        self._quoter = quoter
        self._resolver = resolver or AddressResolver()
        self._default_min_contribution = default_min_contribution
        self._clock = clock

    def handle(
        self,
        title: str,
        item_id: str,
        product_ref: str,
        organizer: BuyerInfo,
        ship_to: ShippingAddress,
        quantity: int = 1,
        target_amount: str | None = None,
        constraints: CampaignConstraints | None = None,
    ) -> CampaignProgressDTO:
        """Open a new group-gift campaign.

        The target defaults to the item's line total at snapshot time.
        """
        constraints = constraints or CampaignConstraints()
        snapshot = self._catalog.get_item_snapshot(product_ref)
        if snapshot is None:
            raise EntityNotFoundError(f"Product not found: '{product_ref}'")

        item = RegistryItemRef(
            item_id=item_id,
            product_ref=snapshot.product_ref,
            title=snapshot.title,
            quantity=Quantity(quantity),
            unit_price=snapshot.price,
            weight=snapshot.weight,
        )
        address = self._resolver.normalize(ship_to, role="ship-to")
        currency = snapshot.currency

        target = (
            Money.of(target_amount, currency) if target_amount is not None else item.line_total
        )
        raw_minimum = constraints.min_contribution or self._default_min_contribution
        min_contribution = Money.of(raw_minimum, currency) if raw_minimum else None

        shipping_rate = None
        if self._quoter is not None:
            rates = self._quoter.quote(address, [item], item.line_weight)
            shipping_rate = rates[0] if rates else None

        now = self._clock()
        campaign = FundingCampaign.create(
            title=title,
            item=item,
            organizer=organizer,
            ship_to=address,
            target_amount=target,
            min_contribution=min_contribution,
            max_contributors=constraints.max_contributors,
            deadline=parse_deadline(constraints.deadline),
            allow_anonymous=constraints.allow_anonymous,
            auto_order_on_target=constraints.auto_order_on_target,
            shipping_rate=shipping_rate,
            now=now,
        )
        self._ledger.open_campaign(campaign)
        return to_progress_dto(campaign, [], now)
