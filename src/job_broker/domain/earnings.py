"""Worker earnings schedule.

A bid's estimated earnings are the price net of platform commission:

    price < 100          -> price - 4.49 (flat fee)
    100 <= price < 250   -> 92%
    250 <= price < 500   -> 93%
    500 <= price < 1000  -> 94%
    price >= 1000        -> 95%

rounded half-up to cents.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
FLAT_FEE = Decimal("4.49")
FLAT_FEE_CEILING = Decimal("100")

# (exclusive upper bound, worker share)
_PERCENT_TIERS: tuple[tuple[Decimal, Decimal], ...] = (
    (Decimal("250"), Decimal("0.92")),
    (Decimal("500"), Decimal("0.93")),
    (Decimal("1000"), Decimal("0.94")),
)
TOP_TIER_SHARE = Decimal("0.95")


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Coerce a numeric value to a cent-rounded Decimal."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_earnings(price: Decimal | int | float | str) -> Decimal:
    """Return the worker's estimated earnings for a bid price."""
    amount = Decimal(str(price))
    if amount < FLAT_FEE_CEILING:
        return to_money(amount - FLAT_FEE)
    for bound, share in _PERCENT_TIERS:
        if amount < bound:
            return to_money(amount * share)
    return to_money(amount * TOP_TIER_SHARE)


def is_payable_price(price: Decimal | int | float | str) -> bool:
    """A price is payable when it leaves the worker strictly positive earnings."""
    return calculate_earnings(price) > 0
