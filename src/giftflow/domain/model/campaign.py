"""FundingCampaign aggregate: pooled funding of a single registry item.

The aggregate only enforces rules against the snapshot it holds.  Making a
decision stick against concurrent writers is the Funding Ledger's job: it
re-reads the campaign, applies one of the transitions below, and persists
the result with a version-checked compare-and-swap.

Lifecycle::

    ACTIVE -> COMPLETED | EXPIRED | CANCELLED   (all terminal)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from giftflow.domain.exceptions import (
    BelowMinimum,
    CampaignExpired,
    CampaignNotActive,
    ContributorLimitReached,
    ExceedsTarget,
    ValidationError,
)
from giftflow.domain.model.address import BuyerInfo, ShippingAddress
from giftflow.domain.model.item import RegistryItemRef
from giftflow.domain.model.shipment import Rate
from giftflow.domain.model.value_objects import Money

DEFAULT_MIN_CONTRIBUTION = Money(Decimal("5.00"))
_SECONDS_PER_DAY = 86_400


class CampaignStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not CampaignStatus.ACTIVE


class ContributionStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDING = "refunding"  # claimed by one refund worker, reversal under way
    REFUNDED = "refunded"
    FAILED = "failed"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Contributor:
    name: str
    email: str
    id: str | None = None


@dataclass
class Contribution:
    """One contributor's pledge.

    Immutable once COMPLETED except for the refund path
    COMPLETED -> REFUNDING -> REFUNDED.  A refund worker claims the
    contribution (REFUNDING) before reversing the payment; a claim older
    than the worker's timeout may be taken over.  ``version`` guards those
    writes.  ``contributor_id`` is None for anonymous contributions; name
    and email are still kept so refunds can be announced.
    """

    id: str
    campaign_id: str
    amount: Money
    contributor_name: str
    contributor_email: str
    contributor_id: str | None = None
    anonymous: bool = False
    message: str | None = None
    payment_ref: str | None = None
    charge_id: str | None = None
    status: ContributionStatus = ContributionStatus.COMPLETED
    created_at: datetime = field(default_factory=_now)
    refunded_at: datetime | None = None
    refund_claimed_at: datetime | None = None
    version: int = 0

    @property
    def display_name(self) -> str:
        return "Anonymous" if self.anonymous else self.contributor_name

    @property
    def is_terminal(self) -> bool:
        return self.status in (ContributionStatus.REFUNDED, ContributionStatus.FAILED)

    @property
    def awaits_refund(self) -> bool:
        return self.status in (ContributionStatus.COMPLETED, ContributionStatus.REFUNDING)

    def refund_claimable(self, now: datetime, stale_after_seconds: float) -> bool:
        if self.status == ContributionStatus.COMPLETED:
            return True
        return (
            self.status == ContributionStatus.REFUNDING
            and self.refund_claimed_at is not None
            and (now - self.refund_claimed_at).total_seconds() >= stale_after_seconds
        )

    def claim_refund(self, now: datetime) -> None:
        if not self.awaits_refund:
            raise ValidationError(
                f"Cannot refund contribution {self.id} in {self.status.value} status"
            )
        self.status = ContributionStatus.REFUNDING
        self.refund_claimed_at = now

    def release_refund(self) -> None:
        if self.status == ContributionStatus.REFUNDING:
            self.status = ContributionStatus.COMPLETED
            self.refund_claimed_at = None

    def mark_refunded(self, now: datetime | None = None) -> None:
        if not self.awaits_refund:
            raise ValidationError(
                f"Cannot refund contribution {self.id} in {self.status.value} status"
            )
        self.status = ContributionStatus.REFUNDED
        self.refunded_at = now or _now()


@dataclass(frozen=True)
class CampaignProgress:
    percent: Decimal
    remaining: Money
    is_completed: bool
    is_expired: bool
    days_remaining: int | None
    contributor_count: int


@dataclass(frozen=True)
class CampaignTransition:
    """Record of a campaign entering a terminal state."""

    campaign_id: str
    status: CampaignStatus
    occurred_at: datetime


@dataclass
class FundingCampaign:
    """Aggregate root for one group gift.

    Use ``FundingCampaign.create()`` for new campaigns.  ``current_amount``
    is the sum of all admitted contributions and never exceeds
    ``target_amount``.  ``fulfilled`` and ``reconciled`` are bookkeeping
    flags orthogonal to ``status``: they record that the compensating
    action for a terminal status has been carried out.
    """

    id: str
    title: str
    item: RegistryItemRef
    organizer: BuyerInfo
    ship_to: ShippingAddress
    target_amount: Money
    current_amount: Money
    min_contribution: Money = DEFAULT_MIN_CONTRIBUTION
    max_contributors: int | None = None
    deadline: datetime | None = None
    status: CampaignStatus = CampaignStatus.ACTIVE
    contributor_count: int = 0
    allow_anonymous: bool = True
    auto_order_on_target: bool = True
    shipping_rate: Rate | None = None
    fulfilled: bool = False
    fulfillment_order_id: str | None = None
    reconciled: bool = False
    version: int = 0
    created_at: datetime = field(default_factory=_now)
    closed_at: datetime | None = None

    # --- Factory (used for NEW campaigns only) --------------------------------

    @staticmethod
    def create(
        title: str,
        item: RegistryItemRef,
        organizer: BuyerInfo,
        ship_to: ShippingAddress,
        target_amount: Money,
        min_contribution: Money | None = None,
        max_contributors: int | None = None,
        deadline: datetime | None = None,
        allow_anonymous: bool = True,
        auto_order_on_target: bool = True,
        shipping_rate: Rate | None = None,
        now: datetime | None = None,
    ) -> FundingCampaign:
        """Create a new campaign, enforcing all invariants."""
        now = now or _now()
        if not title or not title.strip():
            raise ValidationError("Campaign title is required")
        if target_amount.is_zero:
            raise ValidationError("Target amount must be greater than zero")
        if min_contribution is None:
            min_contribution = Money(DEFAULT_MIN_CONTRIBUTION.amount, target_amount.currency)
        if min_contribution.is_zero:
            raise ValidationError("Minimum contribution must be greater than zero")
        if min_contribution > target_amount:
            raise ValidationError(
                f"Minimum contribution {min_contribution} exceeds target {target_amount}"
            )
        if max_contributors is not None and max_contributors <= 0:
            raise ValidationError("Maximum contributors must be positive")
        if deadline is not None:
            if deadline.tzinfo is None:
                raise ValidationError("Deadline must be timezone-aware")
            if deadline <= now:
                raise ValidationError("Deadline must be in the future")
        if not organizer.email:
            raise ValidationError("Organizer email is required")

        return FundingCampaign(
            id=uuid.uuid4().hex,
            title=title.strip(),
            item=item,
            organizer=organizer,
            ship_to=ship_to,
            target_amount=target_amount,
            current_amount=Money.zero(target_amount.currency),
            min_contribution=min_contribution,
            max_contributors=max_contributors,
            deadline=deadline,
            allow_anonymous=allow_anonymous,
            auto_order_on_target=auto_order_on_target,
            shipping_rate=shipping_rate,
            created_at=now,
        )

    # --- State transitions ----------------------------------------------------

    def admit(self, amount: Money, now: datetime, anonymous: bool = False) -> None:
        """Add *amount* to the pot, completing the campaign on an exact hit.

        Checks run in a fixed order: status, deadline, anonymity, minimum,
        contributor cap, target.  Overshoot is rejected rather than clipped.
        """
        if self.status != CampaignStatus.ACTIVE:
            raise CampaignNotActive(
                f"Campaign {self.id} is {self.status.value}, not accepting contributions"
            )
        if self.is_overdue(now):
            raise CampaignExpired(f"Campaign {self.id} deadline has passed")
        if anonymous and not self.allow_anonymous:
            raise ValidationError("This campaign does not accept anonymous contributions")
        if amount < self.min_contribution:
            raise BelowMinimum(
                f"Minimum contribution is {self.min_contribution}, got {amount}"
            )
        if (
            self.max_contributors is not None
            and self.contributor_count >= self.max_contributors
        ):
            raise ContributorLimitReached(
                f"Campaign {self.id} already has {self.contributor_count} contributors"
            )
        if self.current_amount + amount > self.target_amount:
            remaining = self.remaining
            raise ExceedsTarget(
                f"Contribution of {amount} exceeds the remaining {remaining}",
                remaining=remaining,
            )

        self.current_amount = self.current_amount + amount
        self.contributor_count += 1
        if self.current_amount == self.target_amount:
            self.status = CampaignStatus.COMPLETED
            self.closed_at = now

    def expire(self, now: datetime) -> bool:
        """ACTIVE -> EXPIRED when overdue and unmet.  Returns True on transition."""
        if self.status != CampaignStatus.ACTIVE or not self.is_overdue(now):
            return False
        self.status = CampaignStatus.EXPIRED
        self.closed_at = now
        return True

    def cancel(self, now: datetime) -> bool:
        """ACTIVE -> CANCELLED.  Cancelling twice is a no-op."""
        if self.status == CampaignStatus.CANCELLED:
            return False
        if self.status != CampaignStatus.ACTIVE:
            raise CampaignNotActive(
                f"Cannot cancel campaign {self.id} in {self.status.value} status"
            )
        self.status = CampaignStatus.CANCELLED
        self.closed_at = now
        return True

    def mark_fulfilled(self, order_id: str) -> None:
        if self.status != CampaignStatus.COMPLETED:
            raise ValidationError(f"Campaign {self.id} is not completed")
        self.fulfilled = True
        self.fulfillment_order_id = order_id

    def mark_reconciled(self) -> None:
        if self.status not in (CampaignStatus.EXPIRED, CampaignStatus.CANCELLED):
            raise ValidationError(f"Campaign {self.id} is not expired or cancelled")
        self.reconciled = True

    # --- Computed properties --------------------------------------------------

    @property
    def remaining(self) -> Money:
        if self.current_amount >= self.target_amount:
            return Money.zero(self.target_amount.currency)
        return self.target_amount - self.current_amount

    @property
    def needs_fulfillment(self) -> bool:
        return self.status == CampaignStatus.COMPLETED and not self.fulfilled

    @property
    def needs_refunds(self) -> bool:
        return (
            self.status in (CampaignStatus.EXPIRED, CampaignStatus.CANCELLED)
            and not self.reconciled
        )

    def is_overdue(self, now: datetime) -> bool:
        return self.deadline is not None and now >= self.deadline

    def progress(self, now: datetime) -> CampaignProgress:
        days_remaining = None
        if self.deadline is not None:
            seconds = (self.deadline - now).total_seconds()
            days_remaining = max(0, -(-int(seconds) // _SECONDS_PER_DAY))
        is_completed = self.status == CampaignStatus.COMPLETED
        return CampaignProgress(
            percent=min(self.current_amount.ratio_of(self.target_amount), Decimal("100.00")),
            remaining=self.remaining,
            is_completed=is_completed,
            is_expired=self.status == CampaignStatus.EXPIRED
            or (not is_completed and self.is_overdue(now)),
            days_remaining=days_remaining,
            contributor_count=self.contributor_count,
        )
