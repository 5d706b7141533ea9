"""Refund Coordinator: unwinds an expired or cancelled campaign.

Each contribution is refunded on its own so one stuck or failing reversal
never blocks the rest:

  1. claim it (COMPLETED -> REFUNDING) with a version-checked write; a
     worker that loses the claim, or finds a live claim held elsewhere,
     leaves the contribution alone,
  2. reverse the payment under the shared retry policy, keyed by the
     contribution id so a repeated reversal moves no money,
  3. record it REFUNDED.

A reversal that exhausts its budget releases the claim and is pushed to
the reconciliation queue; the next run tries again.  A reversal whose
bookkeeping fails is queued as well and keeps its claim; once the claim
goes stale a later run reverses again under the same key and records it.
The campaign is marked reconciled only once every contribution is terminal.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from giftflow.application.notifications import notify
from giftflow.application.retry import RetryPolicy
from giftflow.domain.exceptions import DomainException
from giftflow.domain.gateway.notifier import Notifier
from giftflow.domain.gateway.payment import PaymentGateway
from giftflow.domain.model.campaign import (
    CampaignStatus,
    CampaignTransition,
    Contribution,
    FundingCampaign,
)
from giftflow.domain.repository.reconciliation_queue import (
    ReconciliationEntry,
    ReconciliationKind,
    ReconciliationQueue,
)
from giftflow.domain.service.funding_ledger import FundingLedger

logger = structlog.get_logger(__name__)

DEFAULT_CLAIM_TIMEOUT_SECONDS = 300.0


@dataclass
class RefundOutcome:
    campaign_id: str
    refunded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    in_progress: list[str] = field(default_factory=list)
    reconciled: bool = False


class RefundCoordinator:

    def __init__(
        self,
        ledger: FundingLedger,
        payments: PaymentGateway,
        retry_policy: RetryPolicy,
        reconciliation_queue: ReconciliationQueue,
        notifier: Notifier | None = None,
        claim_timeout_seconds: float = DEFAULT_CLAIM_TIMEOUT_SECONDS,
    ) -> None:
        self._ledger = ledger
        self._payments = payments
        self._retry = retry_policy
        self._reconciliation_queue = reconciliation_queue
        self._notifier = notifier
        self._claim_timeout = claim_timeout_seconds

    def on_transition(self, transition: CampaignTransition) -> None:
        """Ledger listener: refund as soon as a campaign expires or is cancelled."""
        if transition.status in (CampaignStatus.EXPIRED, CampaignStatus.CANCELLED):
            self.refund_campaign(transition.campaign_id)

    def refund_campaign(self, campaign_id: str) -> RefundOutcome:
        campaign = self._ledger.get(campaign_id)
        outcome = RefundOutcome(campaign_id=campaign_id)
        if not campaign.needs_refunds:
            outcome.reconciled = campaign.reconciled
            return outcome

        for contribution in self._ledger.contributions(campaign_id):
            if not contribution.awaits_refund:
                continue
            try:
                claimed = self._ledger.claim_refund(contribution, self._claim_timeout)
            except DomainException as exc:
                logger.error(
                    "Could not claim contribution for refund",
                    campaign_id=campaign_id,
                    contribution_id=contribution.id,
                    error=str(exc),
                )
                outcome.failed.append(contribution.id)
                continue
            if not claimed:
                outcome.in_progress.append(contribution.id)
                continue
            if self._refund_one(campaign, contribution):
                outcome.refunded.append(contribution.id)
            else:
                outcome.failed.append(contribution.id)

        remaining = [
            c for c in self._ledger.contributions(campaign_id) if not c.is_terminal
        ]
        if not remaining:
            self._ledger.record_reconciled(campaign_id)
            outcome.reconciled = True
            logger.info(
                "Campaign reconciled",
                campaign_id=campaign_id,
                refunded=len(outcome.refunded),
            )
        else:
            logger.warning(
                "Campaign has unrefunded contributions",
                campaign_id=campaign_id,
                outstanding=len(remaining),
            )
        return outcome

    def run_pending(self) -> list[RefundOutcome]:
        outcomes = []
        for campaign in self._ledger.pending_refunds():
            try:
                outcomes.append(self.refund_campaign(campaign.id))
            except DomainException as exc:
                logger.error(
                    "Refund run failed for campaign",
                    campaign_id=campaign.id,
                    error=str(exc),
                )
                outcomes.append(RefundOutcome(campaign_id=campaign.id))
        return outcomes

    # --- Internal helpers -----------------------------------------------------

    def _refund_one(self, campaign: FundingCampaign, contribution: Contribution) -> bool:
        """Reverse and record one claimed contribution; False leaves it queued."""
        if contribution.payment_ref:
            try:
                self._retry.call(
                    self._payments.reverse,
                    contribution.payment_ref,
                    contribution.amount,
                    idempotency_key=f"refund:{contribution.id}",
                    description=f"reverse contribution {contribution.id}",
                )
            except DomainException as exc:
                self._release(contribution)
                self._queue(campaign, contribution, str(exc))
                logger.error(
                    "Contribution refund failed",
                    campaign_id=campaign.id,
                    contribution_id=contribution.id,
                    error=str(exc),
                )
                return False

        try:
            self._ledger.record_refund(contribution)
        except (DomainException, OSError) as exc:
            self._queue(campaign, contribution, f"reversed but not recorded: {exc}")
            logger.error(
                "Refund reversed but not recorded",
                campaign_id=campaign.id,
                contribution_id=contribution.id,
                error=str(exc),
            )
            return False

        logger.info(
            "Contribution refunded",
            campaign_id=campaign.id,
            contribution_id=contribution.id,
            amount=str(contribution.amount),
        )
        notify(
            self._notifier,
            "group-gift-refund",
            contribution.contributor_email,
            {
                "group_gift_title": campaign.title,
                "contributor_name": contribution.contributor_name,
                "refund_amount": str(contribution.amount),
                "reason": campaign.status.value,
            },
        )
        return True

    def _release(self, contribution: Contribution) -> None:
        try:
            self._ledger.release_refund(contribution)
        except DomainException as exc:
            # the claim goes stale and is taken over by a later run
            logger.warning(
                "Could not release refund claim",
                contribution_id=contribution.id,
                error=str(exc),
            )

    def _queue(
        self, campaign: FundingCampaign, contribution: Contribution, reason: str
    ) -> None:
        self._reconciliation_queue.push(
            ReconciliationEntry(
                kind=ReconciliationKind.REFUND,
                reference=contribution.id,
                reason=reason,
                amount=str(contribution.amount),
                details={
                    "campaign_id": campaign.id,
                    "payment_ref": contribution.payment_ref or "",
                },
            )
        )
