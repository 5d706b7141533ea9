"""Application service: Contribute use case.

The ledger's admission checks run against the stored campaign before any
money moves, so a contribution the contributor can fix, such as one below
the minimum or over the remaining balance, is turned away uncharged.
When a payment reference is given the contribution is then charged and
only then admitted; money is never admitted without a capture behind it.
If admission still fails because the campaign changed in between, the
charge is reversed before the rejection is returned.  A reversal that
cannot be completed goes to the reconciliation queue.
"""

from __future__ import annotations

import structlog

from giftflow.application.dto import ContributionDTO
from giftflow.application.notifications import notify
from giftflow.application.retry import RetryPolicy
from giftflow.domain.exceptions import DomainException, ValidationError
from giftflow.domain.gateway.notifier import Notifier
from giftflow.domain.gateway.payment import PaymentGateway
from giftflow.domain.model.campaign import Contribution, Contributor, FundingCampaign
from giftflow.domain.model.value_objects import Money
from giftflow.domain.repository.reconciliation_queue import (
    ReconciliationEntry,
    ReconciliationKind,
    ReconciliationQueue,
)
from giftflow.domain.service.funding_ledger import FundingLedger

logger = structlog.get_logger(__name__)


class ContributeHandler:

    def __init__(
        self,
        ledger: FundingLedger,
        payments: PaymentGateway,
        retry_policy: RetryPolicy,
        reconciliation_queue: ReconciliationQueue,
        notifier: Notifier | None = None,
    ) -> None:
        self._ledger = ledger
        self._payments = payments
        self._retry = retry_policy
        self._reconciliation_queue = reconciliation_queue
        self._notifier = notifier

    def handle(
        self,
        campaign_id: str,
        amount: str,
        contributor: Contributor,
        anonymous: bool = False,
        message: str | None = None,
        payment_ref: str | None = None,
    ) -> ContributionDTO:
        if not contributor.email:
            raise ValidationError("Contributor email is required")

        campaign = self._ledger.get(campaign_id)
        money = Money.of(amount, campaign.target_amount.currency)
        self._ledger.check_contribution(campaign_id, money, anonymous=anonymous)

        charge_id = None
        if payment_ref:
            charge = self._retry.call(
                self._payments.charge,
                payment_ref,
                money,
                description=f"charge contribution to {campaign_id}",
            )
            charge_id = charge.id

        try:
            contribution = self._ledger.admit_contribution(
                campaign_id,
                money,
                contributor,
                anonymous=anonymous,
                message=message,
                payment_ref=payment_ref,
                charge_id=charge_id,
            )
        except DomainException as exc:
            if payment_ref:
                self._reverse_charge(campaign_id, payment_ref, charge_id, money, exc)
            raise

        # re-read: the ledger may have completed (and fulfilled) the campaign
        campaign = self._ledger.get(campaign_id)
        self._announce(campaign, contribution)
        return ContributionDTO(
            id=contribution.id,
            campaign_id=campaign_id,
            amount=str(contribution.amount),
            display_name=contribution.display_name,
            status=contribution.status.value,
            campaign_status=campaign.status.value,
            current=str(campaign.current_amount),
            remaining=str(campaign.remaining),
        )

    # --- Internal helpers -----------------------------------------------------

    def _reverse_charge(
        self,
        campaign_id: str,
        payment_ref: str,
        charge_id: str,
        amount: Money,
        cause: DomainException,
    ) -> None:
        try:
            self._retry.call(
                self._payments.reverse,
                payment_ref,
                amount,
                idempotency_key=f"rejected:{charge_id}",
                description=f"reverse rejected contribution to {campaign_id}",
            )
        except DomainException as exc:
            self._reconciliation_queue.push(
                ReconciliationEntry(
                    kind=ReconciliationKind.PAYMENT_REVERSAL,
                    reference=payment_ref,
                    reason=str(exc),
                    amount=str(amount),
                    details={"campaign_id": campaign_id, "rejected_because": str(cause)},
                )
            )
            logger.error(
                "Could not reverse charge for rejected contribution",
                campaign_id=campaign_id,
                payment_ref=payment_ref,
                error=str(exc),
            )
        else:
            logger.info(
                "Reversed charge for rejected contribution",
                campaign_id=campaign_id,
                payment_ref=payment_ref,
                reason=type(cause).__name__,
            )

    def _announce(self, campaign: FundingCampaign, contribution: Contribution) -> None:
        notify(
            self._notifier,
            "group-gift-contribution",
            campaign.organizer.email,
            {
                "group_gift_title": campaign.title,
                "contributor_name": contribution.display_name,
                "contribution_amount": str(contribution.amount),
                "message": contribution.message,
                "current_amount": str(campaign.current_amount),
                "target_amount": str(campaign.target_amount),
            },
        )
