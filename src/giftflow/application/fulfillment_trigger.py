"""Fulfillment Trigger: turns a completed campaign into exactly one order.

Consumes completion either as a ledger transition (``on_transition``) or by
polling completed-but-unfulfilled campaigns (``run_pending``); delivery is
at-least-once, the effect exactly-once because the order's request key is
derived from the campaign id alone.  The ``fulfilled`` flag is written only
after the order exists, so a crash in between is healed on the next run by
the committer returning the stored receipt instead of ordering again.

The whole campaign-to-order step is one retryable unit.  Money has already
been collected, so a failure is never dropped: after the retry budget it is
pushed to the reconciliation queue.
"""

from __future__ import annotations

import structlog

from giftflow.application.notifications import notify
from giftflow.application.order_committer import OrderCommitter
from giftflow.application.retry import RetryPolicy
from giftflow.domain.exceptions import DomainException, FatalError, ValidationError
from giftflow.domain.gateway.notifier import Notifier
from giftflow.domain.model.campaign import (
    CampaignStatus,
    CampaignTransition,
    ContributionStatus,
    FundingCampaign,
)
from giftflow.domain.model.item import CartItem, ShippingPreference
from giftflow.domain.model.receipt import OrderReceipt
from giftflow.domain.model.shipment import ShipmentGroup
from giftflow.domain.repository.reconciliation_queue import (
    ReconciliationEntry,
    ReconciliationKind,
    ReconciliationQueue,
)
from giftflow.domain.service.funding_ledger import FundingLedger

logger = structlog.get_logger(__name__)


def campaign_request_key(campaign: FundingCampaign) -> str:
    return OrderReceipt.key_for(f"campaign-{campaign.id}", "group-gift")


def campaign_shipment(campaign: FundingCampaign) -> ShipmentGroup:
    """The single-item shipment a completed campaign turns into."""
    group = ShipmentGroup(
        group_key=campaign.ship_to.identity_key(),
        label=ShippingPreference.RECIPIENT.value,
        address=campaign.ship_to,
        items=[CartItem(item=campaign.item, preference=ShippingPreference.RECIPIENT)],
    )
    if campaign.shipping_rate is not None:
        group.attach_rates([campaign.shipping_rate])
    return group


class FulfillmentTrigger:

    def __init__(
        self,
        ledger: FundingLedger,
        committer: OrderCommitter,
        retry_policy: RetryPolicy,
        reconciliation_queue: ReconciliationQueue,
        notifier: Notifier | None = None,
    ) -> None:
        self._ledger = ledger
        self._committer = committer
        self._retry = retry_policy
        self._reconciliation_queue = reconciliation_queue
        self._notifier = notifier

    def on_transition(self, transition: CampaignTransition) -> None:
        """Ledger listener: fulfill inline when the campaign asks for it."""
        if transition.status != CampaignStatus.COMPLETED:
            return
        campaign = self._ledger.get(transition.campaign_id)
        if campaign.auto_order_on_target:
            self.fulfill(campaign.id)

    def fulfill(self, campaign_id: str) -> OrderReceipt | None:
        """Create the campaign's order unless it already exists.

        Returns None for campaigns that are not completed.
        """
        campaign = self._ledger.get(campaign_id)
        if campaign.status != CampaignStatus.COMPLETED:
            logger.info(
                "Skipping fulfillment of campaign that is not completed",
                campaign_id=campaign_id,
                status=campaign.status.value,
            )
            return None

        request_key = campaign_request_key(campaign)
        if campaign.fulfilled:
            return self._committer.lookup(request_key)

        group = campaign_shipment(campaign)
        try:
            receipt = self._retry.call(
                self._committer.commit,
                request_key,
                group,
                campaign.organizer,
                f"campaign:{campaign.id}",
                note=f"Group gift: {campaign.title}. Contributors: {campaign.contributor_count}",
                tags=["giftflow", "group-gift"],
                attributes={"group_gift_id": campaign.id, "gift_type": "group_gift"},
                escalate=False,
                description=f"fulfill campaign {campaign.id}",
            )
        except (FatalError, ValidationError) as exc:
            self._escalate(campaign, request_key, exc)
            raise

        self._ledger.record_fulfillment(campaign.id, receipt.external_order_id or "")
        logger.info(
            "Campaign fulfilled",
            campaign_id=campaign.id,
            order_id=receipt.external_order_id,
            order_number=receipt.order_number,
        )
        self._announce(campaign, receipt)
        return receipt

    def run_pending(self) -> tuple[list[str], list[str]]:
        """Fulfill every completed-but-unfulfilled campaign.

        Each campaign is independent; returns (fulfilled ids, failed ids).
        """
        fulfilled: list[str] = []
        failed: list[str] = []
        for campaign in self._ledger.pending_fulfillment():
            try:
                self.fulfill(campaign.id)
            except DomainException as exc:
                failed.append(campaign.id)
                logger.error(
                    "Campaign fulfillment failed",
                    campaign_id=campaign.id,
                    error=str(exc),
                )
            else:
                fulfilled.append(campaign.id)
        return fulfilled, failed

    # --- Internal helpers -----------------------------------------------------

    def _escalate(
        self, campaign: FundingCampaign, request_key: str, exc: DomainException
    ) -> None:
        self._reconciliation_queue.push(
            ReconciliationEntry(
                kind=ReconciliationKind.CAMPAIGN_FULFILLMENT,
                reference=campaign.id,
                reason=str(exc),
                amount=str(campaign.current_amount),
                details={"request_key": request_key, "title": campaign.title},
            )
        )
        logger.error(
            "Campaign fulfillment needs operator attention",
            campaign_id=campaign.id,
            request_key=request_key,
            error=str(exc),
        )

    def _announce(self, campaign: FundingCampaign, receipt: OrderReceipt) -> None:
        contributions = [
            c
            for c in self._ledger.contributions(campaign.id)
            if c.status == ContributionStatus.COMPLETED
        ]
        for contribution in contributions:
            notify(
                self._notifier,
                "group-gift-completed",
                contribution.contributor_email,
                {
                    "group_gift_title": campaign.title,
                    "contributor_name": contribution.contributor_name,
                    "contribution_amount": str(contribution.amount),
                    "total_amount": str(campaign.current_amount),
                    "order_number": receipt.order_number,
                    "product_title": campaign.item.title,
                },
            )
        notify(
            self._notifier,
            "group-gift-organizer-completed",
            campaign.organizer.email,
            {
                "group_gift_title": campaign.title,
                "total_amount": str(campaign.current_amount),
                "contributor_count": len(contributions),
                "order_number": receipt.order_number,
            },
        )
