"""Unit tests for domain value objects."""

from decimal import Decimal

import pytest

from giftflow.domain.exceptions import ValidationError
from giftflow.domain.model.value_objects import Money, Quantity, parse_weight


# ── Money ────────────────────────────────────────────────────────────────────


class TestMoney:

    def test_creation(self):
        m = Money(Decimal("10.50"))
        assert m.amount == Decimal("10.50")
        assert m.currency == "USD"

    def test_of_factory_from_string(self):
        assert Money.of("25.99").amount == Decimal("25.99")

    def test_of_factory_rejects_garbage(self):
        with pytest.raises(ValidationError, match="Invalid money amount"):
            Money.of("twelve")

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError, match="cannot be negative"):
            Money(Decimal("-1"))

    def test_non_finite_amount_rejected(self):
        with pytest.raises(ValidationError, match="finite"):
            Money(Decimal("Infinity"))

    def test_addition_and_subtraction(self):
        assert Money.of("10") + Money.of("5.50") == Money.of("15.50")
        assert Money.of("10") - Money.of("3") == Money.of("7")

    def test_subtraction_going_negative_rejected(self):
        with pytest.raises(ValidationError, match="negative amount"):
            Money.of("5") - Money.of("10")

    def test_many_small_amounts_sum_exactly(self):
        total = Money.zero()
        for _ in range(10):
            total = total + Money.of("0.10")
        assert total == Money.of("1.00")

    def test_currency_mismatch_rejected(self):
        with pytest.raises(ValidationError, match="Cannot combine"):
            Money.of("10", "USD") + Money.of("5", "EUR")

    def test_str_formatting(self):
        assert str(Money.of("15")) == "$15.00"
        assert str(Money.of("9.5", "EUR")) == "9.50 EUR"

    def test_ratio_of_rounds_to_two_places(self):
        assert Money.of("115").ratio_of(Money.of("150")) == Decimal("76.67")

    def test_ratio_of_zero_whole(self):
        assert Money.of("5").ratio_of(Money.zero()) == Decimal("0.00")


# ── Quantity ─────────────────────────────────────────────────────────────────


class TestQuantity:

    def test_valid_quantity(self):
        assert Quantity(5).value == 5

    def test_zero_rejected(self):
        with pytest.raises(ValidationError, match="must be positive"):
            Quantity(0)

    def test_bool_rejected(self):
        with pytest.raises(ValidationError, match="must be an integer"):
            Quantity(True)


class TestParseWeight:

    def test_missing_is_zero(self):
        assert parse_weight(None) == Decimal("0")

    def test_parses_strings(self):
        assert parse_weight("1.25") == Decimal("1.25")

    def test_negative_rejected(self):
        with pytest.raises(ValidationError, match="cannot be negative"):
            parse_weight("-2")
