"""Tests for the Rate Quoter and its fallback behaviour."""

from datetime import date
from decimal import Decimal

from giftflow.domain.exceptions import TransientError
from giftflow.domain.gateway.rate_service import CarrierRate
from giftflow.domain.model.value_objects import Money
from giftflow.domain.service.rate_quoter import (
    RateQuoter,
    add_business_days,
    infer_delivery_days,
)
from tests.builders import OWNER, make_item
from tests.fakes import FakeRateService, FixedClock


def _quote(service):
    quoter = RateQuoter(service, clock=FixedClock())
    return quoter.quote(OWNER, [make_item()], Decimal("0.5"))


class TestQuote:

    def test_rates_sorted_by_price(self):
        service = FakeRateService(
            [
                CarrierRate("air", "Express Air", Money.of("30.00"), 2),
                CarrierRate("ground", "Ground", Money.of("8.00"), 5),
            ]
        )
        rates = _quote(service)
        assert [r.id for r in rates] == ["ground", "air"]
        assert not any(r.is_fallback for r in rates)

    def test_estimated_delivery_skips_weekends(self):
        service = FakeRateService([CarrierRate("ground", "Ground", Money.of("8.00"), 5)])
        # Monday + 5 business days
        assert _quote(service)[0].estimated_delivery == date(2026, 3, 9)

    def test_missing_days_inferred_from_title(self):
        service = FakeRateService([CarrierRate("on", "FedEx Overnight", Money.of("40.00"))])
        rate = _quote(service)[0]
        assert rate.delivery_days == 1
        assert rate.estimated_delivery == date(2026, 3, 3)

    def test_other_currency_rates_ignored(self):
        service = FakeRateService(
            [
                CarrierRate("eu", "Euro Post", Money.of("5.00", "EUR"), 4),
                CarrierRate("ground", "Ground", Money.of("8.00"), 5),
            ]
        )
        assert [r.id for r in _quote(service)] == ["ground"]


class TestFallback:

    def test_service_error_yields_two_fallback_rates(self):
        rates = _quote(FakeRateService(error=TransientError("carrier down")))
        assert [(r.id, r.price) for r in rates] == [
            ("standard", Money.of("9.99")),
            ("expedited", Money.of("19.99")),
        ]
        assert all(r.is_fallback for r in rates)

    def test_unexpected_exception_also_falls_back(self):
        rates = _quote(FakeRateService(error=KeyError("rates")))
        assert len(rates) == 2

    def test_empty_answer_falls_back(self):
        rates = _quote(FakeRateService([]))
        assert all(r.is_fallback for r in rates)
        assert rates[0].estimated_delivery == date(2026, 3, 9)
        assert rates[1].estimated_delivery == date(2026, 3, 4)

    def test_malformed_rate_is_skipped(self):
        service = FakeRateService(
            [
                CarrierRate("broken", "Broken", Money.of("1.00"), -3),
                CarrierRate("ground", "Ground", Money.of("8.00"), 5),
            ]
        )
        assert [r.id for r in _quote(service)] == ["ground"]

    def test_only_malformed_rates_fall_back(self):
        service = FakeRateService(
            [
                CarrierRate("negative", "Ground", Money.of("8.00"), -1),
                CarrierRate("untitled", None, Money.of("9.00")),
            ]
        )
        rates = _quote(service)
        assert [r.id for r in rates] == ["standard", "expedited"]
        assert all(r.is_fallback for r in rates)

    def test_fallback_uses_cart_currency(self):
        quoter = RateQuoter(FakeRateService([]), clock=FixedClock())
        rates = quoter.quote(OWNER, [make_item(currency="EUR")], Decimal("1"))
        assert {r.price.currency for r in rates} == {"EUR"}


class TestBusinessDays:

    def test_friday_plus_one_is_monday(self):
        assert add_business_days(date(2026, 3, 6), 1) == date(2026, 3, 9)

    def test_zero_days(self):
        assert add_business_days(date(2026, 3, 6), 0) == date(2026, 3, 6)

    def test_infer_delivery_days(self):
        assert infer_delivery_days("Next Day Air") == 1
        assert infer_delivery_days("Express 2-Day") == 2
        assert infer_delivery_days("Ground") == 5
