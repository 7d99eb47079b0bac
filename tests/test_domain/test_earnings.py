"""Tests for the worker earnings schedule."""

from __future__ import annotations

from decimal import Decimal

import pytest

from job_broker.domain.earnings import calculate_earnings, is_payable_price, to_money


class TestCalculateEarnings:
    @pytest.mark.parametrize(
        ("price", "expected"),
        [
            ("90", "85.51"),
            ("99.99", "95.50"),
            ("100", "92.00"),
            ("200", "184.00"),
            ("250", "232.50"),
            ("600", "564.00"),
            ("1000", "950.00"),
        ],
    )
    def test_tiers(self, price: str, expected: str) -> None:
        assert calculate_earnings(Decimal(price)) == Decimal(expected)

    def test_rounds_half_up_to_cents(self) -> None:
        # 101.25 * 0.92 = 93.15
        assert calculate_earnings("101.25") == Decimal("93.15")
        # 100.05 * 0.92 = 92.046
        assert calculate_earnings("100.05") == Decimal("92.05")


TIERS = [
    # (first price, last price, share; None means the flat fee)
    (Decimal("4.50"), Decimal("99.99"), None),
    (Decimal("100.00"), Decimal("249.99"), Decimal("0.92")),
    (Decimal("250.00"), Decimal("499.99"), Decimal("0.93")),
    (Decimal("500.00"), Decimal("999.99"), Decimal("0.94")),
    (Decimal("1000.00"), Decimal("1999.99"), Decimal("0.95")),
]


def _cents(first: Decimal, last: Decimal):
    price = first
    while price <= last:
        yield price
        price += Decimal("0.01")


class TestEarningsWithinTier:
    @pytest.mark.parametrize(("first", "last", "share"), TIERS)
    def test_non_decreasing_cent_by_cent(self, first: Decimal, last: Decimal, share: Decimal | None) -> None:
        previous = None
        for price in _cents(first, last):
            earnings = calculate_earnings(price)
            if previous is not None:
                assert previous <= earnings, f"earnings dropped at {price}"
            previous = earnings

    @pytest.mark.parametrize(("first", "last", "share"), TIERS)
    def test_matches_tier_formula(self, first: Decimal, last: Decimal, share: Decimal | None) -> None:
        for price in _cents(first, last):
            expected = price - Decimal("4.49") if share is None else price * share
            assert calculate_earnings(price) == to_money(expected), price


class TestPayablePrice:
    def test_flat_fee_floor(self) -> None:
        assert not is_payable_price("4.49")
        assert is_payable_price("4.50")

    def test_to_money(self) -> None:
        assert to_money(1) == Decimal("1.00")
        assert to_money("2.345") == Decimal("2.35")
