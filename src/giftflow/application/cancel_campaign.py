"""Application service: Cancel Campaign use case.

Only the status change happens here.  Refunds follow from the ledger's
transition announcement, or from the next sweep if that listener fails.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from giftflow.application.campaign_progress import to_progress_dto
from giftflow.application.dto import CampaignProgressDTO
from giftflow.domain.service.funding_ledger import FundingLedger


class CancelCampaignHandler:

    def __init__(
        self,
        ledger: FundingLedger,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._ledger = ledger
        self._clock = clock

    def handle(self, campaign_id: str) -> CampaignProgressDTO:
        campaign = self._ledger.cancel(campaign_id)
        return to_progress_dto(
            campaign, self._ledger.contributions(campaign_id), self._clock()
        )
