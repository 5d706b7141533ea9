"""Tests for the Fulfillment Trigger."""

import pytest

from giftflow.application.fulfillment_trigger import (
    FulfillmentTrigger,
    campaign_request_key,
)
from giftflow.application.order_committer import OrderCommitter
from giftflow.application.retry import RetryPolicy
from giftflow.domain.exceptions import (
    CommitInProgress,
    FatalError,
    TransientError,
    ValidationError,
)
from giftflow.domain.model.campaign import Contributor
from giftflow.domain.model.value_objects import Money
from giftflow.domain.repository.reconciliation_queue import ReconciliationKind
from giftflow.domain.service.funding_ledger import FundingLedger
from tests.builders import make_campaign
from tests.fakes import (
    FakeCampaignRepository,
    FakeOrderPlatform,
    FakeReceiptRepository,
    FakeReconciliationQueue,
    FixedClock,
    RecordingNotifier,
)


def _setup(subscribe=True, auto_order=True, commit_attempts=1, fulfill_attempts=2):
    clock = FixedClock()
    ledger = FundingLedger(FakeCampaignRepository(), clock=clock)
    platform = FakeOrderPlatform()
    queue = FakeReconciliationQueue()
    notifier = RecordingNotifier()
    committer = OrderCommitter(
        FakeReceiptRepository(),
        platform,
        RetryPolicy(max_attempts=commit_attempts, sleep=lambda s: None),
        queue,
        clock=clock,
    )
    trigger = FulfillmentTrigger(
        ledger,
        committer,
        RetryPolicy(
            max_attempts=fulfill_attempts,
            retry_on=(FatalError, CommitInProgress, TransientError),
            sleep=lambda s: None,
        ),
        queue,
        notifier=notifier,
    )
    if subscribe:
        ledger.subscribe(trigger.on_transition)
    campaign = ledger.open_campaign(
        make_campaign(clock(), target="100", auto_order_on_target=auto_order)
    )
    return trigger, ledger, platform, queue, notifier, campaign


def _fill(ledger, campaign_id, amounts=("60", "40")):
    for i, amount in enumerate(amounts):
        ledger.admit_contribution(
            campaign_id,
            Money.of(amount),
            Contributor(name=f"Friend {i}", email=f"friend{i}@example.com"),
        )


class TestOnCompletion:

    def test_completion_places_one_order(self):
        trigger, ledger, platform, _, _, campaign = _setup()
        _fill(ledger, campaign.id)

        assert platform.created == 1
        stored = ledger.get(campaign.id)
        assert stored.fulfilled is True
        assert stored.fulfillment_order_id in platform.orders

    def test_order_describes_the_group_gift(self):
        trigger, ledger, platform, _, _, campaign = _setup()
        _fill(ledger, campaign.id)

        request = platform.requests()[0]
        assert request.request_key == campaign_request_key(campaign)
        assert request.payment_ref == f"campaign:{campaign.id}"
        assert request.note == "Group gift: Stand mixer. Contributors: 2"
        assert request.tags == ["giftflow", "group-gift"]
        assert request.attributes["group_gift_id"] == campaign.id
        assert request.attributes["gift_type"] == "group_gift"
        assert request.shipping_address == campaign.ship_to

    def test_contributors_and_organizer_are_told(self):
        trigger, ledger, _, _, notifier, campaign = _setup()
        _fill(ledger, campaign.id)

        assert notifier.templates() == [
            "group-gift-completed",
            "group-gift-completed",
            "group-gift-organizer-completed",
        ]
        assert notifier.sent[-1][1] == "org@example.com"

    def test_manual_campaign_is_not_ordered_automatically(self):
        trigger, ledger, platform, _, _, campaign = _setup(auto_order=False)
        _fill(ledger, campaign.id)

        assert platform.created == 0
        assert [c.id for c in ledger.pending_fulfillment()] == [campaign.id]
        trigger.fulfill(campaign.id)
        assert platform.created == 1


class TestExactlyOnce:

    def test_fulfilling_twice_places_one_order(self):
        trigger, ledger, platform, _, _, campaign = _setup(subscribe=False)
        _fill(ledger, campaign.id)

        first = trigger.fulfill(campaign.id)
        second = trigger.fulfill(campaign.id)

        assert platform.created == 1
        assert second.external_order_id == first.external_order_id

    def test_crash_before_flag_is_healed_without_second_order(self):
        trigger, ledger, platform, _, _, campaign = _setup(subscribe=False)
        _fill(ledger, campaign.id)
        original = ledger.record_fulfillment

        def crash(*args, **kwargs):
            raise RuntimeError("process killed")

        ledger.record_fulfillment = crash
        with pytest.raises(RuntimeError):
            trigger.fulfill(campaign.id)
        ledger.record_fulfillment = original
        assert ledger.get(campaign.id).fulfilled is False

        fulfilled, failed = trigger.run_pending()
        assert fulfilled == [campaign.id]
        assert failed == []
        assert platform.created == 1
        assert ledger.get(campaign.id).fulfilled is True

    def test_active_campaign_is_skipped(self):
        trigger, ledger, platform, _, _, campaign = _setup(subscribe=False)
        assert trigger.fulfill(campaign.id) is None
        assert platform.created == 0


class TestEscalation:

    def test_transient_outage_is_retried_as_a_unit(self):
        trigger, ledger, platform, queue, _, campaign = _setup(
            subscribe=False, commit_attempts=1, fulfill_attempts=3
        )
        _fill(ledger, campaign.id)
        platform.transient_failures = 2

        receipt = trigger.fulfill(campaign.id)
        assert receipt.is_committed
        assert queue.entries == []

    def test_exhausted_budget_goes_to_reconciliation(self):
        trigger, ledger, platform, queue, _, campaign = _setup(
            subscribe=False, commit_attempts=1, fulfill_attempts=2
        )
        _fill(ledger, campaign.id)
        platform.transient_failures = 10

        with pytest.raises(FatalError):
            trigger.fulfill(campaign.id)

        assert [e.kind for e in queue.entries] == [ReconciliationKind.CAMPAIGN_FULFILLMENT]
        entry = queue.entries[0]
        assert entry.reference == campaign.id
        assert entry.amount == "$100.00"
        assert ledger.get(campaign.id).fulfilled is False

    def test_rejected_order_goes_to_reconciliation(self):
        trigger, ledger, platform, queue, _, campaign = _setup(subscribe=False)
        _fill(ledger, campaign.id)
        platform.reject_with = "Product discontinued"

        with pytest.raises(ValidationError):
            trigger.fulfill(campaign.id)
        assert len(queue.entries) == 1
        assert platform.create_calls == 1

    def test_run_pending_reports_failures_and_keeps_going(self):
        trigger, ledger, platform, queue, _, campaign = _setup(subscribe=False)
        other = ledger.open_campaign(make_campaign(FixedClock()(), target="10"))
        _fill(ledger, campaign.id)
        _fill(ledger, other.id, amounts=("10",))
        platform.reject_with = "Product discontinued"

        fulfilled, failed = trigger.run_pending()
        assert fulfilled == []
        assert sorted(failed) == sorted([campaign.id, other.id])
        assert len(queue.entries) == 2

    def test_listener_failure_leaves_campaign_for_the_sweep(self):
        trigger, ledger, platform, queue, _, campaign = _setup(subscribe=True)
        platform.reject_with = "Product discontinued"
        _fill(ledger, campaign.id)

        assert ledger.get(campaign.id).fulfilled is False
        assert [c.id for c in ledger.pending_fulfillment()] == [campaign.id]

        platform.reject_with = None
        fulfilled, _ = trigger.run_pending()
        assert fulfilled == [campaign.id]
        assert platform.created == 1
