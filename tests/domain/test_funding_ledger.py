"""Tests for the Funding Ledger: atomic admission under concurrency."""

import threading
from datetime import timedelta

import pytest

from giftflow.domain.exceptions import (
    CampaignExpired,
    CampaignNotActive,
    EntityNotFoundError,
    ExceedsTarget,
    StorageContention,
)
from giftflow.domain.model.campaign import CampaignStatus, ContributionStatus, Contributor
from giftflow.domain.model.value_objects import Money
from giftflow.domain.service.funding_ledger import FundingLedger
from tests.builders import make_campaign
from tests.fakes import FakeCampaignRepository, FixedClock, RacingCampaignRepository


def _setup(repo=None, **campaign_kwargs):
    clock = FixedClock()
    repo = repo or FakeCampaignRepository()
    ledger = FundingLedger(repo, clock=clock)
    transitions = []
    ledger.subscribe(transitions.append)
    campaign = ledger.open_campaign(make_campaign(clock(), **campaign_kwargs))
    return ledger, repo, clock, campaign, transitions


def _who(n: int) -> Contributor:
    return Contributor(name=f"Friend {n}", email=f"friend{n}@example.com", id=f"u{n}")


def _race(ledger, campaign_id, amounts):
    """Run one admit per amount on its own thread; return (contributions, errors)."""
    results, errors = [], []
    lock = threading.Lock()

    def worker(i, amount):
        try:
            contribution = ledger.admit_contribution(campaign_id, Money.of(amount), _who(i))
        except Exception as exc:
            with lock:
                errors.append(exc)
        else:
            with lock:
                results.append(contribution)

    threads = [
        threading.Thread(target=worker, args=(i, amount)) for i, amount in enumerate(amounts)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results, errors


class TestAdmitContribution:

    def test_admit_persists_contribution_and_balance(self):
        ledger, repo, _, campaign, _ = _setup()
        contribution = ledger.admit_contribution(campaign.id, Money.of("50"), _who(1))

        stored = ledger.get(campaign.id)
        assert stored.current_amount == Money.of("50")
        assert stored.version == 1
        assert [c.id for c in ledger.contributions(campaign.id)] == [contribution.id]
        assert contribution.status == ContributionStatus.COMPLETED

    def test_anonymous_contribution_drops_contributor_id(self):
        ledger, _, _, campaign, _ = _setup()
        contribution = ledger.admit_contribution(
            campaign.id, Money.of("10"), _who(1), anonymous=True
        )
        assert contribution.contributor_id is None
        assert contribution.display_name == "Anonymous"
        assert contribution.contributor_email == "friend1@example.com"

    def test_rejection_writes_nothing(self):
        ledger, repo, _, campaign, _ = _setup(target="20")
        with pytest.raises(ExceedsTarget):
            ledger.admit_contribution(campaign.id, Money.of("25"), _who(1))
        assert ledger.get(campaign.id).version == 0
        assert ledger.contributions(campaign.id) == []

    def test_unknown_campaign(self):
        ledger, *_ = _setup()
        with pytest.raises(EntityNotFoundError):
            ledger.admit_contribution("nope", Money.of("10"), _who(1))

    def test_exact_hit_announces_completion_once(self):
        ledger, _, _, campaign, transitions = _setup(target="30")
        ledger.admit_contribution(campaign.id, Money.of("10"), _who(1))
        ledger.admit_contribution(campaign.id, Money.of("20"), _who(2))

        assert [t.status for t in transitions] == [CampaignStatus.COMPLETED]
        assert ledger.get(campaign.id).status == CampaignStatus.COMPLETED

    def test_failing_listener_does_not_undo_admission(self):
        ledger, _, _, campaign, _ = _setup(target="10")

        def broken(transition):
            raise RuntimeError("listener down")

        ledger.subscribe(broken)
        ledger.admit_contribution(campaign.id, Money.of("10"), _who(1))
        assert ledger.get(campaign.id).status == CampaignStatus.COMPLETED

    def test_gives_up_after_losing_every_race(self):
        class AlwaysLoses(FakeCampaignRepository):
            def compare_and_swap(self, campaign, expected_version, contribution=None):
                return False

        repo = AlwaysLoses()
        ledger = FundingLedger(repo, clock=FixedClock(), max_write_attempts=3)
        campaign = ledger.open_campaign(make_campaign(FixedClock()()))
        with pytest.raises(StorageContention):
            ledger.admit_contribution(campaign.id, Money.of("10"), _who(1))


class TestConcurrentAdmission:

    def test_two_racing_contributions_for_the_last_balance(self):
        """$150 target, $50 and $25 in; two $40 race for the last $75."""
        repo = RacingCampaignRepository(parties=2)
        ledger, _, _, campaign, transitions = _setup(repo=repo)
        ledger.admit_contribution(campaign.id, Money.of("50"), _who(1))
        ledger.admit_contribution(campaign.id, Money.of("25"), _who(2))

        repo.armed = True
        results, errors = _race(ledger, campaign.id, ["40", "40"])
        repo.armed = False

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], ExceedsTarget)
        assert errors[0].remaining == Money.of("35")
        stored = ledger.get(campaign.id)
        assert stored.current_amount == Money.of("115")
        assert stored.status == CampaignStatus.ACTIVE
        assert repo.lost_swaps >= 1
        assert transitions == []

    def test_racing_exact_fills_complete_exactly_once(self):
        repo = RacingCampaignRepository(parties=2)
        ledger, _, _, campaign, transitions = _setup(repo=repo, target="100")
        ledger.admit_contribution(campaign.id, Money.of("60"), _who(1))

        repo.armed = True
        results, errors = _race(ledger, campaign.id, ["40", "40"])
        repo.armed = False

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], (ExceedsTarget, CampaignNotActive))
        assert ledger.get(campaign.id).current_amount == Money.of("100")
        assert [t.status for t in transitions] == [CampaignStatus.COMPLETED]

    def test_many_writers_never_overshoot(self):
        ledger, repo, _, campaign, transitions = _setup(target="100")
        results, errors = _race(ledger, campaign.id, ["7"] * 40)

        stored = ledger.get(campaign.id)
        admitted = sum((c.amount for c in results), Money.zero())
        assert stored.current_amount == admitted
        assert stored.current_amount <= Money.of("100")
        assert stored.contributor_count == len(results)
        assert len(ledger.contributions(campaign.id)) == len(results)
        assert len(results) == 14  # 14 * 7 = 98, the 15th would overshoot
        assert all(isinstance(e, ExceedsTarget) for e in errors)
        assert transitions == []

    def test_many_writers_complete_exactly_once(self):
        ledger, _, _, campaign, transitions = _setup(target="100")
        results, errors = _race(ledger, campaign.id, ["10"] * 30)

        assert len(results) == 10
        assert ledger.get(campaign.id).status == CampaignStatus.COMPLETED
        assert len(transitions) == 1
        assert all(isinstance(e, (ExceedsTarget, CampaignNotActive)) for e in errors)


class TestExpiry:

    def test_admit_after_deadline_expires_lazily(self):
        ledger, _, clock, campaign, transitions = _setup(
            deadline=FixedClock()() + timedelta(days=1)
        )
        clock.advance(days=2)
        with pytest.raises(CampaignExpired):
            ledger.admit_contribution(campaign.id, Money.of("10"), _who(1))

        assert ledger.get(campaign.id).status == CampaignStatus.EXPIRED
        assert [t.status for t in transitions] == [CampaignStatus.EXPIRED]

    def test_sweep_expires_only_overdue(self):
        ledger, repo, clock, overdue, transitions = _setup(
            deadline=FixedClock()() + timedelta(days=1)
        )
        later = ledger.open_campaign(
            make_campaign(clock(), deadline=clock() + timedelta(days=10))
        )
        clock.advance(days=3)

        assert ledger.sweep_overdue() == [overdue.id]
        assert ledger.get(later.id).status == CampaignStatus.ACTIVE
        assert ledger.sweep_overdue() == []
        assert len(transitions) == 1

    def test_cancel_is_idempotent(self):
        ledger, _, _, campaign, transitions = _setup()
        ledger.cancel(campaign.id)
        ledger.cancel(campaign.id)
        assert ledger.get(campaign.id).status == CampaignStatus.CANCELLED
        assert len(transitions) == 1


class TestBookkeeping:

    def test_pending_queues(self):
        ledger, _, clock, done, _ = _setup(target="10")
        cancelled = ledger.open_campaign(make_campaign(clock()))
        ledger.admit_contribution(done.id, Money.of("10"), _who(1))
        ledger.cancel(cancelled.id)

        assert [c.id for c in ledger.pending_fulfillment()] == [done.id]
        assert [c.id for c in ledger.pending_refunds()] == [cancelled.id]

        ledger.record_fulfillment(done.id, "order-1")
        ledger.record_reconciled(cancelled.id)
        assert ledger.pending_fulfillment() == []
        assert ledger.pending_refunds() == []

    def test_record_fulfillment_twice_keeps_first_order(self):
        ledger, _, _, campaign, _ = _setup(target="10")
        ledger.admit_contribution(campaign.id, Money.of("10"), _who(1))
        ledger.record_fulfillment(campaign.id, "order-1")
        ledger.record_fulfillment(campaign.id, "order-2")
        assert ledger.get(campaign.id).fulfillment_order_id == "order-1"

    def test_refund_requires_closed_campaign(self):
        ledger, _, _, campaign, _ = _setup()
        contribution = ledger.admit_contribution(campaign.id, Money.of("10"), _who(1))
        with pytest.raises(CampaignNotActive):
            ledger.record_refund(contribution)

    def test_refund_after_cancel(self):
        ledger, _, _, campaign, _ = _setup()
        contribution = ledger.admit_contribution(campaign.id, Money.of("10"), _who(1))
        ledger.cancel(campaign.id)
        ledger.record_refund(contribution)
        stored = ledger.contributions(campaign.id)[0]
        assert stored.status == ContributionStatus.REFUNDED
        assert stored.refunded_at is not None

    def test_refund_recorded_twice_from_one_snapshot_is_rejected(self):
        ledger, _, _, campaign, _ = _setup()
        contribution = ledger.admit_contribution(campaign.id, Money.of("10"), _who(1))
        ledger.cancel(campaign.id)
        stale = ledger.contributions(campaign.id)[0]
        ledger.record_refund(contribution)
        with pytest.raises(StorageContention):
            ledger.record_refund(stale)


class TestRefundClaims:

    def _closed(self):
        ledger, _, clock, campaign, _ = _setup()
        ledger.admit_contribution(campaign.id, Money.of("10"), _who(1))
        ledger.cancel(campaign.id)
        return ledger, clock, campaign

    def test_only_one_of_two_snapshots_wins_the_claim(self):
        ledger, _, campaign = self._closed()
        first, second = (ledger.contributions(campaign.id)[0] for _ in range(2))

        assert ledger.claim_refund(first, stale_after_seconds=300) is True
        assert ledger.claim_refund(second, stale_after_seconds=300) is False
        stored = ledger.contributions(campaign.id)[0]
        assert stored.status == ContributionStatus.REFUNDING

    def test_live_claim_is_not_taken_over(self):
        ledger, clock, campaign = self._closed()
        ledger.claim_refund(ledger.contributions(campaign.id)[0], stale_after_seconds=300)

        clock.advance(seconds=299)
        reread = ledger.contributions(campaign.id)[0]
        assert ledger.claim_refund(reread, stale_after_seconds=300) is False

    def test_stale_claim_is_taken_over(self):
        ledger, clock, campaign = self._closed()
        ledger.claim_refund(ledger.contributions(campaign.id)[0], stale_after_seconds=300)

        clock.advance(seconds=301)
        reread = ledger.contributions(campaign.id)[0]
        assert ledger.claim_refund(reread, stale_after_seconds=300) is True
        assert ledger.contributions(campaign.id)[0].refund_claimed_at == clock()

    def test_released_claim_can_be_claimed_again(self):
        ledger, _, campaign = self._closed()
        contribution = ledger.contributions(campaign.id)[0]
        ledger.claim_refund(contribution, stale_after_seconds=300)
        assert ledger.release_refund(contribution) is True

        reread = ledger.contributions(campaign.id)[0]
        assert reread.status == ContributionStatus.COMPLETED
        assert ledger.claim_refund(reread, stale_after_seconds=300) is True

    def test_claim_requires_closed_campaign(self):
        ledger, _, _, campaign, _ = _setup()
        ledger.admit_contribution(campaign.id, Money.of("10"), _who(1))
        with pytest.raises(CampaignNotActive):
            ledger.claim_refund(ledger.contributions(campaign.id)[0], stale_after_seconds=300)


class TestCheckContribution:

    def test_passing_check_writes_nothing(self):
        ledger, repo, _, campaign, _ = _setup(target="100")
        ledger.check_contribution(campaign.id, Money.of("40"))
        assert repo.swaps == 0
        assert ledger.get(campaign.id).current_amount == Money.zero()

    def test_overshoot_is_reported_with_the_remaining_balance(self):
        ledger, _, _, campaign, _ = _setup(target="100")
        ledger.admit_contribution(campaign.id, Money.of("70"), _who(1))
        with pytest.raises(ExceedsTarget) as exc_info:
            ledger.check_contribution(campaign.id, Money.of("40"))
        assert exc_info.value.remaining == Money.of("30")

    def test_overdue_campaign_is_expired(self):
        ledger, _, clock, campaign, transitions = _setup(
            deadline=FixedClock()() + timedelta(days=1)
        )
        clock.advance(days=2)
        with pytest.raises(CampaignExpired):
            ledger.check_contribution(campaign.id, Money.of("10"))
        assert ledger.get(campaign.id).status == CampaignStatus.EXPIRED
        assert [t.status for t in transitions] == [CampaignStatus.EXPIRED]
