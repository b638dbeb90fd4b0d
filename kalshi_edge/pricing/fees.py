"""Kalshi trading fees and break-even pricing, in integer cents.

fee = ceil(rate * count * p * (1 - p)) dollars, with the taker rate at
7% and the maker rate at 1.75%. Working in cents keeps everything in
integer arithmetic:

    taker: ceil(7 * q * P * (100 - P) / 10_000)
    maker: ceil(175 * q * P * (100 - P) / 1_000_000)
"""

from __future__ import annotations

TAKER_NUMERATOR, TAKER_DENOMINATOR = 7, 10_000
MAKER_NUMERATOR, MAKER_DENOMINATOR = 175, 1_000_000


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def calculate_fee(price_cents: int, quantity: int, is_taker: bool = True) -> int:
    """Fee in cents for trading ``quantity`` contracts at ``price_cents``."""
    if quantity <= 0:
        return 0
    spread_factor = int(price_cents) * (100 - int(price_cents))
    if is_taker:
        return _ceil_div(TAKER_NUMERATOR * quantity * spread_factor, TAKER_DENOMINATOR)
    return _ceil_div(MAKER_NUMERATOR * quantity * spread_factor, MAKER_DENOMINATOR)


def break_even_sell_price(
    total_entry_cost_cents: int,
    quantity: int,
    is_taker_exit: bool = True,
) -> int:
    """Lowest sell price (1-99) whose net proceeds cover the entry cost.

    Returns 100 when no price can break even.
    """
    for price in range(1, 100):
        net = price * quantity - calculate_fee(price, quantity, is_taker_exit)
        if net >= total_entry_cost_cents:
            return price
    return 100
