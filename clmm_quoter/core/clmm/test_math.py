from __future__ import annotations

import random
from decimal import Decimal, localcontext

import pytest

from clmm_quoter.core.clmm.errors import InvalidParametersError, NumericOverflowError
from clmm_quoter.core.clmm.math import (
    MAX_SQRT_PRICE_X64,
    MAX_TICK,
    MIN_SQRT_PRICE_X64,
    MIN_TICK,
    Q64,
    U128_MAX,
    add_delta,
    checked_u64,
    get_next_sqrt_price_from_input,
    get_next_sqrt_price_from_output,
    get_sqrt_price_x64_from_tick,
    get_tick_array_start_index,
    get_tick_from_sqrt_price_x64,
    get_token_amount_a_from_liquidity,
    get_token_amount_b_from_liquidity,
    mul_div_ceil,
    mul_div_floor,
    price_to_sqrt_price_x64,
    price_to_tick,
    sqrt_price_x64_to_price,
    tick_to_price,
    to_decimal,
)

SAMPLE_TICKS = [
    MIN_TICK,
    MIN_TICK + 1,
    -100_000,
    -12_345,
    -600,
    -1,
    0,
    1,
    7,
    600,
    54_321,
    100_000,
    MAX_TICK - 1,
    MAX_TICK,
]


def test_tick_zero_is_exactly_one():
    assert get_sqrt_price_x64_from_tick(0) == Q64


def test_bounds_fit_u128():
    assert 0 < MIN_SQRT_PRICE_X64 < Q64 < MAX_SQRT_PRICE_X64 <= U128_MAX


@pytest.mark.parametrize("tick", [MIN_TICK - 1, MAX_TICK + 1])
def test_tick_out_of_range_raises(tick):
    with pytest.raises(InvalidParametersError):
        get_sqrt_price_x64_from_tick(tick)


@pytest.mark.parametrize("tick", SAMPLE_TICKS)
def test_sqrt_price_matches_decimal_reference(tick):
    with localcontext(prec=60):
        expected = (Decimal("1.0001") ** tick).sqrt() * Q64
        actual = Decimal(get_sqrt_price_x64_from_tick(tick))
        assert abs(actual - expected) <= 2


@pytest.mark.parametrize("tick", SAMPLE_TICKS)
def test_tick_round_trip_is_exact(tick):
    assert get_tick_from_sqrt_price_x64(get_sqrt_price_x64_from_tick(tick)) == tick


@pytest.mark.parametrize("tick", [-12_345, -1, 0, 1, 54_321])
def test_tick_from_sqrt_price_floors_between_ticks(tick):
    lower = get_sqrt_price_x64_from_tick(tick)
    upper = get_sqrt_price_x64_from_tick(tick + 1)
    assert get_tick_from_sqrt_price_x64(lower + 1) == tick
    assert get_tick_from_sqrt_price_x64(upper - 1) == tick


def test_sqrt_price_is_strictly_monotonic():
    ticks = sorted({*SAMPLE_TICKS, *(t + 1 for t in SAMPLE_TICKS if t < MAX_TICK)})
    prices = [get_sqrt_price_x64_from_tick(t) for t in ticks]
    assert all(a < b for a, b in zip(prices, prices[1:]))


def test_sqrt_price_increases_across_adjacent_ticks():
    rng = random.Random(1337)
    for tick in [rng.randrange(MIN_TICK, MAX_TICK) for _ in range(200)]:
        assert get_sqrt_price_x64_from_tick(tick) < get_sqrt_price_x64_from_tick(
            tick + 1
        )


def test_sqrt_price_out_of_range_raises():
    with pytest.raises(InvalidParametersError):
        get_tick_from_sqrt_price_x64(MIN_SQRT_PRICE_X64 - 1)
    with pytest.raises(InvalidParametersError):
        get_tick_from_sqrt_price_x64(MAX_SQRT_PRICE_X64 + 1)


def test_decimal_adjusted_price_conversion():
    # 1 raw unit of B per raw unit of A with A at 9 decimals and B at 6
    assert sqrt_price_x64_to_price(Q64, 9, 6) == Decimal(1000)
    assert price_to_sqrt_price_x64(Decimal(1000), 9, 6) == Q64
    assert price_to_sqrt_price_x64("1", 6, 6) == Q64
    assert price_to_sqrt_price_x64(Decimal("0.25"), 6, 6) == Q64 // 2


def test_to_decimal_names_the_bad_value():
    assert to_decimal(" 0.5 ") == Decimal("0.5")
    assert to_decimal(Decimal(2)) == Decimal(2)
    with pytest.raises(InvalidParametersError, match="invalid slippage"):
        to_decimal("lots", "slippage")
    with pytest.raises(InvalidParametersError, match="invalid price"):
        to_decimal("abc")


def test_price_to_sqrt_price_rejects_non_positive():
    with pytest.raises(InvalidParametersError):
        price_to_sqrt_price_x64(0, 6, 6)
    with pytest.raises(InvalidParametersError):
        price_to_sqrt_price_x64("abc", 6, 6)


@pytest.mark.parametrize("tick", [-5000, -10, 0, 10, 5000])
def test_price_tick_helpers_agree_within_one(tick):
    price = tick_to_price(tick, 9, 6)
    assert abs(price_to_tick(price, 9, 6) - tick) <= 1


def test_tick_array_start_index_floors_negative_ticks():
    assert get_tick_array_start_index(0, 10) == 0
    assert get_tick_array_start_index(599, 10) == 0
    assert get_tick_array_start_index(600, 10) == 600
    assert get_tick_array_start_index(-1, 10) == -600
    assert get_tick_array_start_index(-600, 10) == -600
    assert get_tick_array_start_index(-601, 10) == -1200


def test_mul_div_rounding():
    assert mul_div_floor(7, 3, 2) == 10
    assert mul_div_ceil(7, 3, 2) == 11
    assert mul_div_ceil(6, 3, 2) == 9
    with pytest.raises(NumericOverflowError):
        mul_div_floor(1, 1, 0)


def test_add_delta_is_range_checked():
    assert add_delta(10, -4) == 6
    assert add_delta(10, 5) == 15
    with pytest.raises(NumericOverflowError):
        add_delta(5, -6)
    with pytest.raises(NumericOverflowError):
        add_delta(U128_MAX, 1)


def test_checked_u64():
    assert checked_u64(2**64 - 1) == 2**64 - 1
    with pytest.raises(NumericOverflowError):
        checked_u64(2**64)
    with pytest.raises(NumericOverflowError):
        checked_u64(-1)


def test_token_amounts_between_quarter_and_one():
    liquidity = 1_000_000_000
    half = Q64 // 2
    # 1/sqrt(0.25) - 1/sqrt(1) == 1
    assert get_token_amount_a_from_liquidity(half, Q64, liquidity, True) == liquidity
    assert get_token_amount_a_from_liquidity(Q64, half, liquidity, False) == liquidity
    # sqrt(1) - sqrt(0.25) == 0.5
    assert get_token_amount_b_from_liquidity(half, Q64, liquidity, False) == liquidity // 2
    assert get_token_amount_b_from_liquidity(half, Q64, liquidity, True) == liquidity // 2


def test_token_amount_rounding_direction():
    liquidity = 3
    a, b = Q64, Q64 + 1
    assert get_token_amount_b_from_liquidity(a, b, liquidity, False) == 0
    assert get_token_amount_b_from_liquidity(a, b, liquidity, True) == 1
    assert get_token_amount_a_from_liquidity(a, b, liquidity, False) == 0
    assert get_token_amount_a_from_liquidity(a, b, liquidity, True) == 1


def test_next_sqrt_price_from_input_token_a_rounds_up():
    liquidity = 10**9
    amount = 10**6
    expected = -((-(liquidity * Q64 * Q64)) // (liquidity * Q64 + amount * Q64))
    assert get_next_sqrt_price_from_input(Q64, liquidity, amount, True) == expected


def test_next_sqrt_price_from_input_token_b_rounds_down():
    liquidity = 10**9
    amount = 10**6
    expected = Q64 + (amount * Q64) // liquidity
    assert get_next_sqrt_price_from_input(Q64, liquidity, amount, False) == expected


def test_next_sqrt_price_from_output():
    liquidity = 10**9
    amount = 10**6
    assert get_next_sqrt_price_from_output(Q64, liquidity, amount, True) == Q64 - (
        -((-(amount * Q64)) // liquidity)
    )
    # asking for more token A than the range holds cannot be satisfied
    with pytest.raises(NumericOverflowError):
        get_next_sqrt_price_from_output(Q64, liquidity, liquidity, False)


def test_next_sqrt_price_requires_liquidity():
    with pytest.raises(InvalidParametersError):
        get_next_sqrt_price_from_input(Q64, 0, 1, True)
