"""Domain service: Funding Ledger.

The only writer of FundingCampaign state.  Every operation follows the same
optimistic protocol, scoped to one campaign id:

  1. re-read the authoritative campaign,
  2. apply the transition to that fresh snapshot (raising on any violated
     precondition),
  3. persist with ``compare_and_swap`` against the version that was read.

If step 3 loses to a concurrent writer the snapshot is discarded and the
loop starts again, so every admit decides against the balance as stored
immediately before it.  The completion decision is made inside step 2 and
therefore lands in the same atomic write as the increment that caused it:
of two admits racing for the last remaining balance only the one whose
swap succeeds can observe ``current == target``.

Nothing here calls an external system.  Transitions are announced to
subscribers *after* the write; subscribers that fail are logged and the
durable campaign status remains the source of truth for pollers.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from giftflow.domain.exceptions import (
    CampaignExpired,
    CampaignNotActive,
    EntityNotFoundError,
    StorageContention,
)
from giftflow.domain.model.campaign import (
    CampaignStatus,
    CampaignTransition,
    Contribution,
    ContributionStatus,
    Contributor,
    FundingCampaign,
)
from giftflow.domain.model.value_objects import Money
from giftflow.domain.repository.campaign_repository import CampaignRepository

logger = structlog.get_logger(__name__)

TransitionListener = Callable[[CampaignTransition], None]

MAX_WRITE_ATTEMPTS = 25


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FundingLedger:

    def __init__(
        self,
        campaign_repo: CampaignRepository,
        clock: Callable[[], datetime] = _utcnow,
        max_write_attempts: int = MAX_WRITE_ATTEMPTS,
    ) -> None:
        self._campaign_repo = campaign_repo
        self._clock = clock
        self._max_write_attempts = max_write_attempts
        self._listeners: list[TransitionListener] = []

    def subscribe(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    # --- Campaign lifecycle ---------------------------------------------------

    def open_campaign(self, campaign: FundingCampaign) -> FundingCampaign:
        self._campaign_repo.add(campaign)
        logger.info(
            "Campaign opened",
            campaign_id=campaign.id,
            target=str(campaign.target_amount),
            deadline=campaign.deadline.isoformat() if campaign.deadline else None,
        )
        return campaign

    def get(self, campaign_id: str) -> FundingCampaign:
        campaign = self._campaign_repo.get(campaign_id)
        if campaign is None:
            raise EntityNotFoundError(f"Campaign '{campaign_id}' not found")
        return campaign

    def check_contribution(
        self, campaign_id: str, amount: Money, anonymous: bool = False
    ) -> FundingCampaign:
        """Run the admission checks against the stored campaign without writing.

        Lets callers turn away a contribution before money moves.  A pass
        is advisory: ``admit_contribution`` decides again against the
        balance at write time.
        """
        now = self._clock()
        campaign = self.get(campaign_id)
        if campaign.status == CampaignStatus.ACTIVE and campaign.is_overdue(now):
            self.expire_if_overdue(campaign_id)
            raise CampaignExpired(f"Campaign {campaign_id} deadline has passed")
        campaign.admit(amount, now, anonymous=anonymous)
        return campaign

    def admit_contribution(
        self,
        campaign_id: str,
        amount: Money,
        contributor: Contributor,
        anonymous: bool = False,
        message: str | None = None,
        payment_ref: str | None = None,
        charge_id: str | None = None,
    ) -> Contribution:
        """Admit one contribution atomically against the stored balance.

        Raises CampaignNotActive, CampaignExpired, BelowMinimum,
        ContributorLimitReached or ExceedsTarget without writing anything
        (except the lazy expiry of an overdue campaign).
        """
        for attempt in range(1, self._max_write_attempts + 1):
            now = self._clock()
            campaign = self.get(campaign_id)
            expected_version = campaign.version

            if campaign.expire(now):
                if self._campaign_repo.compare_and_swap(campaign, expected_version):
                    self._announce(campaign, now)
                raise CampaignExpired(f"Campaign {campaign_id} deadline has passed")

            campaign.admit(amount, now, anonymous=anonymous)
            contribution = Contribution(
                id=uuid.uuid4().hex,
                campaign_id=campaign_id,
                amount=amount,
                contributor_name=contributor.name,
                contributor_email=contributor.email,
                contributor_id=None if anonymous else contributor.id,
                anonymous=anonymous,
                message=message,
                payment_ref=payment_ref,
                charge_id=charge_id,
                status=ContributionStatus.COMPLETED,
                created_at=now,
            )

            if self._campaign_repo.compare_and_swap(
                campaign, expected_version, contribution
            ):
                logger.info(
                    "Contribution admitted",
                    campaign_id=campaign_id,
                    contribution_id=contribution.id,
                    amount=str(amount),
                    current=str(campaign.current_amount),
                    target=str(campaign.target_amount),
                )
                if campaign.status == CampaignStatus.COMPLETED:
                    self._announce(campaign, now)
                return contribution

            logger.debug(
                "Lost campaign write race, re-reading",
                campaign_id=campaign_id,
                attempt=attempt,
            )

        raise StorageContention(
            f"Could not admit contribution to campaign {campaign_id} "
            f"after {self._max_write_attempts} attempts"
        )

    def expire_if_overdue(self, campaign_id: str) -> FundingCampaign:
        """ACTIVE -> EXPIRED once the deadline has passed unmet.  Idempotent."""
        return self._transition(
            campaign_id, lambda c, now: c.expire(now), announce=True
        )

    def cancel(self, campaign_id: str) -> FundingCampaign:
        """ACTIVE -> CANCELLED.  Idempotent for already-cancelled campaigns."""
        return self._transition(
            campaign_id, lambda c, now: c.cancel(now), announce=True
        )

    def sweep_overdue(self) -> list[str]:
        """Expire every overdue active campaign; returns the expired ids."""
        now = self._clock()
        expired: list[str] = []
        for campaign in self._campaign_repo.list_by_status(CampaignStatus.ACTIVE):
            if not campaign.is_overdue(now):
                continue
            updated = self.expire_if_overdue(campaign.id)
            if updated.status == CampaignStatus.EXPIRED:
                expired.append(campaign.id)
        if expired:
            logger.info("Expiry sweep finished", expired=len(expired))
        return expired

    # --- Queries for the fulfillment and refund workers ------------------------

    def pending_fulfillment(self) -> list[FundingCampaign]:
        return [
            c
            for c in self._campaign_repo.list_by_status(CampaignStatus.COMPLETED)
            if c.needs_fulfillment
        ]

    def pending_refunds(self) -> list[FundingCampaign]:
        campaigns = self._campaign_repo.list_by_status(
            CampaignStatus.EXPIRED
        ) + self._campaign_repo.list_by_status(CampaignStatus.CANCELLED)
        return [c for c in campaigns if c.needs_refunds]

    def contributions(self, campaign_id: str) -> list[Contribution]:
        return self._campaign_repo.contributions_for(campaign_id)

    def claim_refund(
        self, contribution: Contribution, stale_after_seconds: float
    ) -> bool:
        """COMPLETED -> REFUNDING, or take over a stale REFUNDING claim.

        Returns False when another worker holds a live claim or has already
        finished the refund.  Only the winner of the claim may reverse the
        payment.
        """
        self._require_closed(contribution.campaign_id)
        now = self._clock()
        if not contribution.refund_claimable(now, stale_after_seconds):
            return False
        expected_version = contribution.version
        contribution.claim_refund(now)
        return self._campaign_repo.compare_and_save_contribution(
            contribution, expected_version
        )

    def release_refund(self, contribution: Contribution) -> bool:
        """REFUNDING -> COMPLETED after a reversal that did not go through."""
        expected_version = contribution.version
        contribution.release_refund()
        return self._campaign_repo.compare_and_save_contribution(
            contribution, expected_version
        )

    def record_refund(self, contribution: Contribution) -> Contribution:
        """COMPLETED | REFUNDING -> REFUNDED for one contribution of a closed campaign."""
        self._require_closed(contribution.campaign_id)
        expected_version = contribution.version
        contribution.mark_refunded(self._clock())
        if not self._campaign_repo.compare_and_save_contribution(
            contribution, expected_version
        ):
            raise StorageContention(
                f"Contribution {contribution.id} changed while its refund was recorded"
            )
        return contribution

    # --- Bookkeeping flags ----------------------------------------------------

    def record_fulfillment(self, campaign_id: str, order_id: str) -> FundingCampaign:
        def change(campaign: FundingCampaign, now: datetime) -> bool:
            if campaign.fulfilled:
                return False
            campaign.mark_fulfilled(order_id)
            return True

        return self._transition(campaign_id, change)

    def record_reconciled(self, campaign_id: str) -> FundingCampaign:
        def change(campaign: FundingCampaign, now: datetime) -> bool:
            if campaign.reconciled:
                return False
            campaign.mark_reconciled()
            return True

        return self._transition(campaign_id, change)

    # --- Internal helpers -----------------------------------------------------

    def _require_closed(self, campaign_id: str) -> FundingCampaign:
        campaign = self.get(campaign_id)
        if campaign.status not in (CampaignStatus.EXPIRED, CampaignStatus.CANCELLED):
            raise CampaignNotActive(
                f"Campaign {campaign.id} is {campaign.status.value}; "
                "contributions are only refunded after expiry or cancellation"
            )
        return campaign

    def _transition(
        self,
        campaign_id: str,
        change: Callable[[FundingCampaign, datetime], bool],
        announce: bool = False,
    ) -> FundingCampaign:
        for attempt in range(1, self._max_write_attempts + 1):
            now = self._clock()
            campaign = self.get(campaign_id)
            expected_version = campaign.version
            if not change(campaign, now):
                return campaign
            if self._campaign_repo.compare_and_swap(campaign, expected_version):
                if announce:
                    self._announce(campaign, now)
                return campaign
            logger.debug(
                "Lost campaign write race, re-reading",
                campaign_id=campaign_id,
                attempt=attempt,
            )
        raise StorageContention(
            f"Could not update campaign {campaign_id} "
            f"after {self._max_write_attempts} attempts"
        )

    def _announce(self, campaign: FundingCampaign, now: datetime) -> None:
        transition = CampaignTransition(
            campaign_id=campaign.id,
            status=campaign.status,
            occurred_at=now,
        )
        logger.info(
            "Campaign closed",
            campaign_id=campaign.id,
            status=campaign.status.value,
            current=str(campaign.current_amount),
        )
        for listener in self._listeners:
            try:
                listener(transition)
            except Exception:
                # the stored status is authoritative; the sweep picks it up later
                logger.exception(
                    "Campaign transition listener failed",
                    campaign_id=campaign.id,
                    status=campaign.status.value,
                )
