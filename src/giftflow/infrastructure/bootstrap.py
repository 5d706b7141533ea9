"""Composition root: wires concrete implementations to domain interfaces.

This is the only place in the codebase that knows about *all* layers.
Every other module depends only on abstractions.  Paths, retry budgets and
fallback rates come from ``get_settings()``.
"""

from __future__ import annotations

from dataclasses import dataclass

from giftflow.application.cancel_campaign import CancelCampaignHandler
from giftflow.application.campaign_progress import CampaignProgressHandler
from giftflow.application.commit_checkout import CommitCheckoutHandler
from giftflow.application.contribute import ContributeHandler
from giftflow.application.delivery_coordinator import DeliveryCoordinator
from giftflow.application.fulfillment_trigger import FulfillmentTrigger
from giftflow.application.group_and_quote import GroupAndQuoteHandler
from giftflow.application.order_committer import OrderCommitter
from giftflow.application.refund_coordinator import RefundCoordinator
from giftflow.application.start_campaign import StartCampaignHandler
from giftflow.application.sweep import SweepHandler
from giftflow.domain.service.funding_ledger import FundingLedger
from giftflow.domain.service.rate_quoter import RateQuoter
from giftflow.domain.service.shipment_grouper import ShipmentGrouper
from giftflow.infrastructure.config import get_settings
from giftflow.infrastructure.gateways.local_catalog import JsonCatalog
from giftflow.infrastructure.gateways.local_order_book import JsonOrderBook
from giftflow.infrastructure.gateways.local_payments import JsonPaymentLedger
from giftflow.infrastructure.gateways.log_notifier import LogNotifier
from giftflow.infrastructure.gateways.table_rate_service import TableRateService
from giftflow.infrastructure.persistence.json_campaign_repository import (
    JsonCampaignRepository,
)
from giftflow.infrastructure.persistence.json_receipt_repository import (
    JsonReceiptRepository,
)
from giftflow.infrastructure.persistence.json_reconciliation_queue import (
    JsonReconciliationQueue,
)

# --- Storage and gateways -----------------------------------------------------


def campaign_repository() -> JsonCampaignRepository:
    return JsonCampaignRepository(get_settings().data_dir / "campaigns")


def receipt_repository() -> JsonReceiptRepository:
    return JsonReceiptRepository(get_settings().data_dir / "receipts")


def reconciliation_queue() -> JsonReconciliationQueue:
    return JsonReconciliationQueue(get_settings().data_dir / "reconciliation.json")


def catalog() -> JsonCatalog:
    settings = get_settings()
    return JsonCatalog(settings.data_dir / "catalog.json", default_currency=settings.currency)


def order_platform() -> JsonOrderBook:
    return JsonOrderBook(get_settings().data_dir / "orders.json", catalog())


def payment_gateway() -> JsonPaymentLedger:
    return JsonPaymentLedger(get_settings().data_dir / "payments.json")


def notifier() -> LogNotifier:
    return LogNotifier()


# --- Services -----------------------------------------------------------------


def rate_quoter() -> RateQuoter:
    settings = get_settings()
    return RateQuoter(
        TableRateService(),
        fallback_tiers=settings.fallback_tiers(),
    )


def order_committer() -> OrderCommitter:
    settings = get_settings()
    return OrderCommitter(
        receipt_repo=receipt_repository(),
        order_platform=order_platform(),
        retry_policy=settings.commit_policy(),
        reconciliation_queue=reconciliation_queue(),
        pending_timeout_seconds=settings.stale_pending_seconds,
    )


@dataclass(frozen=True)
class CampaignServices:
    """A ledger with its fulfillment and refund workers subscribed."""

    ledger: FundingLedger
    trigger: FulfillmentTrigger
    refunds: RefundCoordinator


def campaign_services() -> CampaignServices:
    settings = get_settings()
    queue = reconciliation_queue()
    ledger = FundingLedger(campaign_repository())
    trigger = FulfillmentTrigger(
        ledger=ledger,
        committer=order_committer(),
        retry_policy=settings.fulfillment_policy(),
        reconciliation_queue=queue,
        notifier=notifier(),
    )
    refunds = RefundCoordinator(
        ledger=ledger,
        payments=payment_gateway(),
        retry_policy=settings.refund_policy(),
        reconciliation_queue=queue,
        notifier=notifier(),
        claim_timeout_seconds=settings.stale_pending_seconds,
    )
    ledger.subscribe(trigger.on_transition)
    ledger.subscribe(refunds.on_transition)
    return CampaignServices(ledger=ledger, trigger=trigger, refunds=refunds)


# --- Use cases ----------------------------------------------------------------


def group_and_quote_handler() -> GroupAndQuoteHandler:
    return GroupAndQuoteHandler(
        catalog=catalog(),
        grouper=ShipmentGrouper(),
        quoter=rate_quoter(),
    )


def commit_checkout_handler() -> CommitCheckoutHandler:
    platform = order_platform()
    return CommitCheckoutHandler(
        committer=order_committer(),
        coordinator=DeliveryCoordinator(platform),
        notifier=notifier(),
    )


def start_campaign_handler() -> StartCampaignHandler:
    return StartCampaignHandler(
        ledger=campaign_services().ledger,
        catalog=catalog(),
        quoter=rate_quoter(),
        default_min_contribution=str(get_settings().default_min_contribution),
    )


def contribute_handler() -> ContributeHandler:
    return ContributeHandler(
        ledger=campaign_services().ledger,
        payments=payment_gateway(),
        retry_policy=get_settings().commit_policy(),
        reconciliation_queue=reconciliation_queue(),
        notifier=notifier(),
    )


def campaign_progress_handler() -> CampaignProgressHandler:
    return CampaignProgressHandler(ledger=campaign_services().ledger)


def cancel_campaign_handler() -> CancelCampaignHandler:
    return CancelCampaignHandler(ledger=campaign_services().ledger)


def sweep_handler() -> SweepHandler:
    services = campaign_services()
    return SweepHandler(
        ledger=services.ledger,
        trigger=services.trigger,
        refunds=services.refunds,
    )
