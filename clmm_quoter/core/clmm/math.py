"""Fixed-point tick, price and liquidity math for CLMM pools.

Prices are carried as ``sqrt(price) * 2**64`` (Q64.64) in plain Python
integers. Every helper here is exact integer arithmetic; ``Decimal`` is only
used at the human-price boundary. Range checks mirror the widths used by the
on-chain program (u64 token amounts, u128 liquidity and sqrt prices) and raise
``NumericOverflowError`` instead of wrapping.
"""

from __future__ import annotations

import bisect
from decimal import ROUND_FLOOR, Decimal, InvalidOperation, localcontext

from clmm_quoter.core.clmm.errors import InvalidParametersError, NumericOverflowError

Q64 = 1 << 64
Q128 = 1 << 128
U64_MAX = (1 << 64) - 1
U128_MAX = (1 << 128) - 1
I128_MIN = -(1 << 127)
I128_MAX = (1 << 127) - 1

MIN_TICK = -221818
MAX_TICK = 221818

FEE_RATE_DENOMINATOR = 1_000_000

_DECIMAL_PRECISION = 80

# 1 / sqrt(1.0001) ** (2 ** i) in Q128, one entry per bit of |tick|
_TICK_RATIOS_Q128 = (
    (0x1, 0xFFFCB933BD6FAD37AA2D162D1A594001),
    (0x2, 0xFFF97272373D413259A46990580E213A),
    (0x4, 0xFFF2E50F5F656932EF12357CF3C7FDCC),
    (0x8, 0xFFE5CACA7E10E4E61C3624EAA0941CD0),
    (0x10, 0xFFCB9843D60F6159C9DB58835C926644),
    (0x20, 0xFF973B41FA98C081472E6896DFB254C0),
    (0x40, 0xFF2EA16466C96A3843EC78B326B52861),
    (0x80, 0xFE5DEE046A99A2A811C461F1969C3053),
    (0x100, 0xFCBE86C7900A88AEDCFFC83B479AA3A4),
    (0x200, 0xF987A7253AC413176F2B074CF7815E54),
    (0x400, 0xF3392B0822B70005940C7A398E4B70F3),
    (0x800, 0xE7159475A2C29B7443B29C7FA6E889D9),
    (0x1000, 0xD097F3BDFD2022B8845AD8F792AA5825),
    (0x2000, 0xA9F746462D870FDF8A65DC1F90E061E5),
    (0x4000, 0x70D869A156D2A1B890BB3DF62BAF32F7),
    (0x8000, 0x31BE135F97D08FD981231505542FCFA6),
    (0x10000, 0x9AA508B5B7A84E1C677DE54F3E99BC9),
    (0x20000, 0x5D6AF8DEDB81196699C329225EE604),
)


def checked_u64(value: int, label: str = "u64") -> int:
    if value < 0 or value > U64_MAX:
        raise NumericOverflowError(label, value)
    return value


def checked_u128(value: int, label: str = "u128") -> int:
    if value < 0 or value > U128_MAX:
        raise NumericOverflowError(label, value)
    return value


def checked_i128(value: int, label: str = "i128") -> int:
    if value < I128_MIN or value > I128_MAX:
        raise NumericOverflowError(label, value)
    return value


def mul_div_floor(a: int, b: int, denominator: int) -> int:
    if denominator == 0:
        raise NumericOverflowError("mul_div_floor denominator")
    return (a * b) // denominator


def mul_div_ceil(a: int, b: int, denominator: int) -> int:
    if denominator == 0:
        raise NumericOverflowError("mul_div_ceil denominator")
    return -((-a * b) // denominator)


def add_delta(liquidity: int, delta: int) -> int:
    """Apply a signed ``liquidity_net`` to an unsigned liquidity value."""
    return checked_u128(liquidity + delta, "liquidity")


def get_sqrt_price_x64_from_tick(tick: int) -> int:
    if tick < MIN_TICK or tick > MAX_TICK:
        raise InvalidParametersError(
            f"tick {tick} out of range [{MIN_TICK}, {MAX_TICK}]"
        )

    abs_tick = -tick if tick < 0 else tick
    ratio = Q128
    for bit, factor in _TICK_RATIOS_Q128:
        if abs_tick & bit:
            ratio = (ratio * factor) >> 128

    if tick > 0:
        ratio = ((1 << 256) - 1) // ratio

    sqrt_price_x64 = ratio >> 64
    if ratio & U64_MAX:
        sqrt_price_x64 += 1
    return sqrt_price_x64


MIN_SQRT_PRICE_X64 = get_sqrt_price_x64_from_tick(MIN_TICK)
MAX_SQRT_PRICE_X64 = get_sqrt_price_x64_from_tick(MAX_TICK)

_TICK_RANGE = range(MIN_TICK, MAX_TICK + 1)


def get_tick_from_sqrt_price_x64(sqrt_price_x64: int) -> int:
    """Greatest tick whose sqrt price does not exceed ``sqrt_price_x64``."""
    if sqrt_price_x64 < MIN_SQRT_PRICE_X64 or sqrt_price_x64 > MAX_SQRT_PRICE_X64:
        raise InvalidParametersError(
            f"sqrt price {sqrt_price_x64} out of range "
            f"[{MIN_SQRT_PRICE_X64}, {MAX_SQRT_PRICE_X64}]"
        )
    position = bisect.bisect_right(
        _TICK_RANGE, sqrt_price_x64, key=get_sqrt_price_x64_from_tick
    )
    return _TICK_RANGE[position - 1]


def to_decimal(value: Decimal | int | float | str, label: str = "price") -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise InvalidParametersError(f"invalid {label}: {value!r}") from exc


def price_to_sqrt_price_x64(
    price: Decimal | int | float | str, decimals_a: int, decimals_b: int
) -> int:
    with localcontext(prec=_DECIMAL_PRECISION):
        raw = to_decimal(price) * Decimal(10) ** (decimals_b - decimals_a)
        if raw <= 0:
            raise InvalidParametersError(f"price must be positive, got {price}")
        sqrt_price = raw.sqrt() * Q64
        return int(sqrt_price.to_integral_value(rounding=ROUND_FLOOR))


def sqrt_price_x64_to_price(
    sqrt_price_x64: int, decimals_a: int, decimals_b: int
) -> Decimal:
    with localcontext(prec=_DECIMAL_PRECISION):
        sqrt_price = Decimal(sqrt_price_x64) / Q64
        return sqrt_price * sqrt_price * Decimal(10) ** (decimals_a - decimals_b)


def tick_to_price(tick: int, decimals_a: int = 0, decimals_b: int = 0) -> Decimal:
    return sqrt_price_x64_to_price(
        get_sqrt_price_x64_from_tick(tick), decimals_a, decimals_b
    )


def price_to_tick(
    price: Decimal | int | float | str, decimals_a: int = 0, decimals_b: int = 0
) -> int:
    sqrt_price_x64 = price_to_sqrt_price_x64(price, decimals_a, decimals_b)
    sqrt_price_x64 = min(max(sqrt_price_x64, MIN_SQRT_PRICE_X64), MAX_SQRT_PRICE_X64)
    return get_tick_from_sqrt_price_x64(sqrt_price_x64)


def get_tick_array_start_index(tick: int, tick_spacing: int, array_size: int = 60) -> int:
    ticks_in_array = tick_spacing * array_size
    return (tick // ticks_in_array) * ticks_in_array


def _sorted_bounds(sqrt_a: int, sqrt_b: int) -> tuple[int, int]:
    a, b = (sqrt_a, sqrt_b) if sqrt_a <= sqrt_b else (sqrt_b, sqrt_a)
    if a <= 0:
        raise InvalidParametersError("sqrt price must be positive")
    return a, b


def get_token_amount_a_from_liquidity(
    sqrt_price_a_x64: int, sqrt_price_b_x64: int, liquidity: int, round_up: bool
) -> int:
    """amount_a = L * (sqrt_b - sqrt_a) / (sqrt_a * sqrt_b)"""
    a, b = _sorted_bounds(sqrt_price_a_x64, sqrt_price_b_x64)
    numerator1 = liquidity << 64
    numerator2 = b - a
    if round_up:
        return mul_div_ceil(mul_div_ceil(numerator1, numerator2, b), 1, a)
    return mul_div_floor(numerator1, numerator2, b) // a


def get_token_amount_b_from_liquidity(
    sqrt_price_a_x64: int, sqrt_price_b_x64: int, liquidity: int, round_up: bool
) -> int:
    """amount_b = L * (sqrt_b - sqrt_a)"""
    a, b = _sorted_bounds(sqrt_price_a_x64, sqrt_price_b_x64)
    if round_up:
        return mul_div_ceil(liquidity, b - a, Q64)
    return mul_div_floor(liquidity, b - a, Q64)


def get_next_sqrt_price_from_token_amount_a_rounding_up(
    sqrt_price_x64: int, liquidity: int, amount: int, add: bool
) -> int:
    if amount == 0:
        return sqrt_price_x64
    liquidity_left_shift = liquidity << 64
    product = amount * sqrt_price_x64
    if add:
        return checked_u128(
            mul_div_ceil(liquidity_left_shift, sqrt_price_x64, liquidity_left_shift + product),
            "sqrt_price_x64",
        )
    if liquidity_left_shift <= product:
        raise NumericOverflowError("sqrt_price_x64 denominator", product)
    return checked_u128(
        mul_div_ceil(liquidity_left_shift, sqrt_price_x64, liquidity_left_shift - product),
        "sqrt_price_x64",
    )


def get_next_sqrt_price_from_token_amount_b_rounding_down(
    sqrt_price_x64: int, liquidity: int, amount: int, add: bool
) -> int:
    delta_y = amount << 64
    if add:
        return checked_u128(sqrt_price_x64 + delta_y // liquidity, "sqrt_price_x64")
    quotient = mul_div_ceil(delta_y, 1, liquidity)
    if sqrt_price_x64 <= quotient:
        raise NumericOverflowError("sqrt_price_x64", sqrt_price_x64 - quotient)
    return sqrt_price_x64 - quotient


def get_next_sqrt_price_from_input(
    sqrt_price_x64: int, liquidity: int, amount_in: int, zero_for_one: bool
) -> int:
    if sqrt_price_x64 <= 0 or liquidity <= 0:
        raise InvalidParametersError("sqrt price and liquidity must be positive")
    if zero_for_one:
        return get_next_sqrt_price_from_token_amount_a_rounding_up(
            sqrt_price_x64, liquidity, amount_in, True
        )
    return get_next_sqrt_price_from_token_amount_b_rounding_down(
        sqrt_price_x64, liquidity, amount_in, True
    )


def get_next_sqrt_price_from_output(
    sqrt_price_x64: int, liquidity: int, amount_out: int, zero_for_one: bool
) -> int:
    if sqrt_price_x64 <= 0 or liquidity <= 0:
        raise InvalidParametersError("sqrt price and liquidity must be positive")
    if zero_for_one:
        return get_next_sqrt_price_from_token_amount_b_rounding_down(
            sqrt_price_x64, liquidity, amount_out, False
        )
    return get_next_sqrt_price_from_token_amount_a_rounding_up(
        sqrt_price_x64, liquidity, amount_out, False
    )
