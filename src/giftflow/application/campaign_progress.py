"""Application service: Campaign Progress use case (query)."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from giftflow.application.dto import CampaignProgressDTO
from giftflow.domain.model.campaign import Contribution, ContributionStatus, FundingCampaign
from giftflow.domain.service.funding_ledger import FundingLedger


class CampaignProgressHandler:

    def __init__(
        self,
        ledger: FundingLedger,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._ledger = ledger
        self._clock = clock

    def handle(self, campaign_id: str) -> CampaignProgressDTO:
        campaign = self._ledger.get(campaign_id)
        return to_progress_dto(
            campaign, self._ledger.contributions(campaign_id), self._clock()
        )


def to_progress_dto(
    campaign: FundingCampaign,
    contributions: list[Contribution],
    now: datetime,
) -> CampaignProgressDTO:
    progress = campaign.progress(now)
    return CampaignProgressDTO(
        campaign_id=campaign.id,
        title=campaign.title,
        status=campaign.status.value,
        percent=f"{progress.percent:.2f}",
        current=str(campaign.current_amount),
        target=str(campaign.target_amount),
        remaining=str(progress.remaining),
        is_completed=progress.is_completed,
        is_expired=progress.is_expired,
        days_remaining=progress.days_remaining,
        contributor_count=progress.contributor_count,
        contributors=[
            f"{c.display_name} ({c.amount})"
            for c in contributions
            if c.status != ContributionStatus.FAILED
        ],
    )
