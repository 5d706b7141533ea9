"""JSON-file-backed implementation of CampaignRepository.

One file per campaign holds the campaign and its contributions, so a
contribution and the balance it changes are replaced in one atomic rename.
Writers take an exclusive ``flock`` on a sidecar lock file scoped to that
campaign only; readers never lock because a replace is atomic.
"""

from __future__ import annotations

from pathlib import Path

from giftflow.domain.exceptions import ValidationError
from giftflow.domain.model.campaign import CampaignStatus, Contribution, FundingCampaign
from giftflow.domain.repository.campaign_repository import CampaignRepository
from giftflow.infrastructure.persistence._codec import (
    campaign_from_raw,
    campaign_to_raw,
    contribution_from_raw,
    contribution_to_raw,
    file_lock,
    read_json,
    safe_file_name,
    write_json_atomic,
)


class JsonCampaignRepository(CampaignRepository):

    def __init__(self, directory: Path) -> None:
        self._directory = directory
        self._directory.mkdir(parents=True, exist_ok=True)

    # --- CampaignRepository interface -----------------------------------------

    def add(self, campaign: FundingCampaign) -> None:
        path = self._path(campaign.id)
        with self._locked(campaign.id):
            if path.exists():
                raise ValidationError(f"Campaign {campaign.id} already exists")
            write_json_atomic(
                path, {"campaign": campaign_to_raw(campaign), "contributions": []}
            )

    def get(self, campaign_id: str) -> FundingCampaign | None:
        raw = self._load_raw(campaign_id)
        if raw is None:
            return None
        return campaign_from_raw(raw["campaign"])

    def compare_and_swap(
        self,
        campaign: FundingCampaign,
        expected_version: int,
        contribution: Contribution | None = None,
    ) -> bool:
        with self._locked(campaign.id):
            raw = self._load_raw(campaign.id)
            if raw is None or raw["campaign"]["version"] != expected_version:
                return False
            campaign.version = expected_version + 1
            raw["campaign"] = campaign_to_raw(campaign)
            if contribution is not None:
                raw["contributions"].append(contribution_to_raw(contribution))
            write_json_atomic(self._path(campaign.id), raw)
        return True

    def list_by_status(self, status: CampaignStatus) -> list[FundingCampaign]:
        campaigns = []
        for path in sorted(self._directory.glob("*.json")):
            campaign = campaign_from_raw(read_json(path)["campaign"])
            if campaign.status == status:
                campaigns.append(campaign)
        return sorted(campaigns, key=lambda c: c.created_at)

    def contributions_for(self, campaign_id: str) -> list[Contribution]:
        raw = self._load_raw(campaign_id)
        if raw is None:
            return []
        return [contribution_from_raw(c) for c in raw["contributions"]]

    def compare_and_save_contribution(
        self, contribution: Contribution, expected_version: int
    ) -> bool:
        with self._locked(contribution.campaign_id):
            raw = self._load_raw(contribution.campaign_id)
            if raw is None:
                raise ValidationError(f"Campaign {contribution.campaign_id} not found")
            for i, existing in enumerate(raw["contributions"]):
                if existing["id"] == contribution.id:
                    break
            else:
                raise ValidationError(f"Contribution {contribution.id} not found")
            if existing.get("version", 0) != expected_version:
                return False
            contribution.version = expected_version + 1
            raw["contributions"][i] = contribution_to_raw(contribution)
            write_json_atomic(self._path(contribution.campaign_id), raw)
        return True

    # --- File helpers ---------------------------------------------------------

    def _path(self, campaign_id: str) -> Path:
        return self._directory / f"{safe_file_name(campaign_id)}.json"

    def _load_raw(self, campaign_id: str) -> dict | None:
        path = self._path(campaign_id)
        if not path.exists():
            return None
        return read_json(path)

    def _locked(self, campaign_id: str):
        return file_lock(self._directory / f".{safe_file_name(campaign_id)}.lock")
