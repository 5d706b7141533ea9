"""Abstract repository for the FundingCampaign aggregate and its contributions."""

from __future__ import annotations

from abc import ABC, abstractmethod

from giftflow.domain.model.campaign import CampaignStatus, Contribution, FundingCampaign


class CampaignRepository(ABC):
    """Durable campaign storage with per-campaign optimistic concurrency.

    Implementations must return independent copies from every read so a
    caller that loses a compare-and-swap can simply discard its snapshot.
    Only writes to the *same* campaign may contend with each other.
    """

    @abstractmethod
    def add(self, campaign: FundingCampaign) -> None:
        """Persist a brand-new campaign (version 0)."""

    @abstractmethod
    def get(self, campaign_id: str) -> FundingCampaign | None:
        """Return a campaign by ID, or None if not found."""

    @abstractmethod
    def compare_and_swap(
        self,
        campaign: FundingCampaign,
        expected_version: int,
        contribution: Contribution | None = None,
    ) -> bool:
        """Atomically replace the stored campaign if its version still matches.

        When *contribution* is given it is stored in the same atomic unit.
        On success the stored and the passed campaign both carry
        ``expected_version + 1``.  Returns False if another writer got there
        first; nothing is written in that case.
        """

    @abstractmethod
    def list_by_status(self, status: CampaignStatus) -> list[FundingCampaign]:
        """Return every campaign currently in *status*."""

    @abstractmethod
    def contributions_for(self, campaign_id: str) -> list[Contribution]:
        """Return the campaign's contributions in admission order."""

    @abstractmethod
    def compare_and_save_contribution(
        self, contribution: Contribution, expected_version: int
    ) -> bool:
        """Replace a stored contribution if its version still matches.

        Refund bookkeeping only.  On success the contribution carries
        ``expected_version + 1``; returns False if another writer got there
        first.
        """
