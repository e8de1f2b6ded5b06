"""Price-limited swap loop over a cached set of tick arrays.

``amount_specified`` follows the on-chain sign convention: positive is an
exact input still to be consumed, negative is an exact output still to be
produced. The loop never fetches; a tick array that the bitmap points at but
the cache lacks is an ``AccountLackError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from solders.pubkey import Pubkey

from clmm_quoter.core.clmm.errors import (
    InvalidParametersError,
    InvalidTickArrayError,
)
from clmm_quoter.core.clmm.math import (
    FEE_RATE_DENOMINATOR,
    MAX_SQRT_PRICE_X64,
    MAX_TICK,
    MIN_SQRT_PRICE_X64,
    MIN_TICK,
    add_delta,
    checked_u64,
    checked_u128,
    get_next_sqrt_price_from_input,
    get_next_sqrt_price_from_output,
    get_sqrt_price_x64_from_tick,
    get_tick_from_sqrt_price_x64,
    get_token_amount_a_from_liquidity,
    get_token_amount_b_from_liquidity,
    mul_div_ceil,
    mul_div_floor,
)
from clmm_quoter.core.clmm.pda import get_pda_tick_array_address
from clmm_quoter.core.clmm.tick_array import (
    TickArrayCache,
    first_initialized_tick,
    load_tick_array,
    next_initialized_tick,
)
from clmm_quoter.core.clmm.types import (
    ClmmPool,
    SwapComputeResult,
    SwapStatus,
    SwapStep,
    TickArray,
)


@dataclass
class SwapState:
    amount_specified_remaining: int
    amount_calculated: int
    sqrt_price_x64: int
    tick: int
    liquidity: int
    fee_amount: int = 0
    accounts: list[Pubkey] = field(default_factory=list)
    steps: list[SwapStep] = field(default_factory=list)

    def record_account(self, address: Pubkey) -> None:
        if address not in self.accounts:
            self.accounts.append(address)


def default_sqrt_price_limit(zero_for_one: bool) -> int:
    return MIN_SQRT_PRICE_X64 + 1 if zero_for_one else MAX_SQRT_PRICE_X64 - 1


def compute_swap_step(
    sqrt_price_current_x64: int,
    sqrt_price_target_x64: int,
    liquidity: int,
    amount_remaining: int,
    fee_rate: int,
    zero_for_one: bool,
) -> tuple[int, int, int, int]:
    """One constant-liquidity step toward ``sqrt_price_target_x64``.

    Returns ``(sqrt_price_next_x64, amount_in, amount_out, fee_amount)``.
    ``amount_in`` excludes the fee.
    """
    exact_input = amount_remaining >= 0
    amount_in = 0
    amount_out = 0

    if exact_input:
        amount_remaining_less_fee = mul_div_floor(
            amount_remaining, FEE_RATE_DENOMINATOR - fee_rate, FEE_RATE_DENOMINATOR
        )
        if zero_for_one:
            amount_in = get_token_amount_a_from_liquidity(
                sqrt_price_target_x64, sqrt_price_current_x64, liquidity, True
            )
        else:
            amount_in = get_token_amount_b_from_liquidity(
                sqrt_price_current_x64, sqrt_price_target_x64, liquidity, True
            )
        if amount_remaining_less_fee >= amount_in:
            sqrt_price_next_x64 = sqrt_price_target_x64
        else:
            sqrt_price_next_x64 = get_next_sqrt_price_from_input(
                sqrt_price_current_x64, liquidity, amount_remaining_less_fee, zero_for_one
            )
    else:
        if zero_for_one:
            amount_out = get_token_amount_b_from_liquidity(
                sqrt_price_target_x64, sqrt_price_current_x64, liquidity, False
            )
        else:
            amount_out = get_token_amount_a_from_liquidity(
                sqrt_price_current_x64, sqrt_price_target_x64, liquidity, False
            )
        if -amount_remaining >= amount_out:
            sqrt_price_next_x64 = sqrt_price_target_x64
        else:
            sqrt_price_next_x64 = get_next_sqrt_price_from_output(
                sqrt_price_current_x64, liquidity, -amount_remaining, zero_for_one
            )

    reached_target = sqrt_price_next_x64 == sqrt_price_target_x64
    if zero_for_one:
        if not (reached_target and exact_input):
            amount_in = get_token_amount_a_from_liquidity(
                sqrt_price_next_x64, sqrt_price_current_x64, liquidity, True
            )
        if not (reached_target and not exact_input):
            amount_out = get_token_amount_b_from_liquidity(
                sqrt_price_next_x64, sqrt_price_current_x64, liquidity, False
            )
    else:
        if not (reached_target and exact_input):
            amount_in = get_token_amount_b_from_liquidity(
                sqrt_price_current_x64, sqrt_price_next_x64, liquidity, True
            )
        if not (reached_target and not exact_input):
            amount_out = get_token_amount_a_from_liquidity(
                sqrt_price_current_x64, sqrt_price_next_x64, liquidity, False
            )

    if not exact_input and amount_out > -amount_remaining:
        amount_out = -amount_remaining

    if exact_input and not reached_target:
        # the partial step keeps whatever input is left as fee
        fee_amount = amount_remaining - amount_in
    else:
        fee_amount = mul_div_ceil(amount_in, fee_rate, FEE_RATE_DENOMINATOR - fee_rate)

    return (
        checked_u128(sqrt_price_next_x64, "sqrt_price_x64"),
        checked_u64(amount_in, "amount_in"),
        checked_u64(amount_out, "amount_out"),
        checked_u64(fee_amount, "fee_amount"),
    )


def _validate_limit(pool: ClmmPool, zero_for_one: bool, sqrt_price_limit_x64: int) -> None:
    if zero_for_one:
        valid = MIN_SQRT_PRICE_X64 < sqrt_price_limit_x64 < pool.sqrt_price_x64
    else:
        valid = pool.sqrt_price_x64 < sqrt_price_limit_x64 < MAX_SQRT_PRICE_X64
    if not valid:
        side = "below" if zero_for_one else "above"
        raise InvalidParametersError(
            f"sqrt price limit {sqrt_price_limit_x64} must be {side} the current "
            f"price {pool.sqrt_price_x64} and inside the tradable range"
        )


def first_initialized_tick_array_start_index(pool: ClmmPool, zero_for_one: bool) -> int:
    """Start index of the tick array the swap begins in."""
    is_initialized, start_index = pool.bitmap.check_tick_array_is_initialized(
        pool.tick_current
    )
    if is_initialized:
        return start_index
    next_start = pool.bitmap.next_initialized_tick_array_start_index(
        start_index, zero_for_one
    )
    if next_start is None:
        raise InvalidTickArrayError(
            "no initialized tick array in the swap direction", zero_for_one=zero_for_one
        )
    return next_start


def _load(pool: ClmmPool, cache: TickArrayCache, start_index: int) -> tuple[TickArray, Pubkey]:
    address = get_pda_tick_array_address(pool.program_id, pool.id, start_index)
    return load_tick_array(cache, start_index, address), address


def swap_compute(
    pool: ClmmPool,
    tick_array_cache: TickArrayCache,
    zero_for_one: bool,
    amount_specified: int,
    sqrt_price_limit_x64: int | None = None,
) -> SwapComputeResult:
    if amount_specified == 0:
        raise InvalidParametersError("amount_specified must be non-zero")
    checked_u64(abs(amount_specified), "amount_specified")
    if sqrt_price_limit_x64 is None:
        sqrt_price_limit_x64 = default_sqrt_price_limit(zero_for_one)
    _validate_limit(pool, zero_for_one, sqrt_price_limit_x64)

    exact_input = amount_specified > 0
    fee_rate = pool.amm_config.trade_fee_rate
    tick_spacing = pool.tick_spacing

    first_start_index = first_initialized_tick_array_start_index(pool, zero_for_one)
    tick_array, address = _load(pool, tick_array_cache, first_start_index)

    state = SwapState(
        amount_specified_remaining=amount_specified,
        amount_calculated=0,
        sqrt_price_x64=pool.sqrt_price_x64,
        tick=pool.tick_current,
        liquidity=pool.liquidity,
    )
    state.record_account(address)

    while (
        state.amount_specified_remaining != 0
        and state.sqrt_price_x64 != sqrt_price_limit_x64
    ):
        sqrt_price_start_x64 = state.sqrt_price_x64

        next_tick = next_initialized_tick(tick_array, state.tick, tick_spacing, zero_for_one)
        if next_tick is None:
            next_start = pool.bitmap.next_initialized_tick_array_start_index(
                tick_array.start_tick_index, zero_for_one
            )
            if next_start is None:
                raise InvalidTickArrayError(
                    "liquidity exhausted: no further initialized tick array",
                    zero_for_one=zero_for_one,
                )
            tick_array, address = _load(pool, tick_array_cache, next_start)
            state.record_account(address)
            next_tick = first_initialized_tick(tick_array, zero_for_one)
            if next_tick is None:
                raise InvalidTickArrayError(
                    f"tick array {next_start} is flagged initialized but holds no "
                    "initialized tick",
                    zero_for_one=zero_for_one,
                )

        tick_next = min(max(next_tick.tick, MIN_TICK), MAX_TICK)
        sqrt_price_next_x64 = get_sqrt_price_x64_from_tick(tick_next)
        if zero_for_one:
            target_x64 = max(sqrt_price_next_x64, sqrt_price_limit_x64)
        else:
            target_x64 = min(sqrt_price_next_x64, sqrt_price_limit_x64)

        state.sqrt_price_x64, amount_in, amount_out, fee_amount = compute_swap_step(
            state.sqrt_price_x64,
            target_x64,
            state.liquidity,
            state.amount_specified_remaining,
            fee_rate,
            zero_for_one,
        )
        state.fee_amount = checked_u64(state.fee_amount + fee_amount, "fee_amount")

        if exact_input:
            state.amount_specified_remaining -= amount_in + fee_amount
            state.amount_calculated += amount_out
        else:
            state.amount_specified_remaining += amount_out
            state.amount_calculated += amount_in + fee_amount
        checked_u64(abs(state.amount_specified_remaining), "amount_specified_remaining")
        checked_u64(state.amount_calculated, "amount_calculated")

        state.steps.append(
            SwapStep(
                sqrt_price_start_x64=sqrt_price_start_x64,
                sqrt_price_next_x64=state.sqrt_price_x64,
                tick_next=tick_next,
                initialized=next_tick.liquidity_gross > 0,
                tick_array_start_index=tick_array.start_tick_index,
                liquidity=state.liquidity,
                amount_in=amount_in,
                amount_out=amount_out,
                fee_amount=fee_amount,
            )
        )

        if state.sqrt_price_x64 == sqrt_price_next_x64:
            liquidity_net = next_tick.liquidity_net
            if zero_for_one:
                liquidity_net = -liquidity_net
            state.liquidity = add_delta(state.liquidity, liquidity_net)
            state.tick = tick_next - 1 if zero_for_one else tick_next
        elif state.sqrt_price_x64 != sqrt_price_start_x64:
            state.tick = get_tick_from_sqrt_price_x64(state.sqrt_price_x64)

    status = (
        SwapStatus.FILLED
        if state.amount_specified_remaining == 0
        else SwapStatus.PRICE_LIMIT_REACHED
    )
    return SwapComputeResult(
        amount_specified=amount_specified,
        amount_specified_remaining=state.amount_specified_remaining,
        amount_calculated=state.amount_calculated,
        fee_amount=state.fee_amount,
        sqrt_price_x64=state.sqrt_price_x64,
        tick_current=state.tick,
        liquidity=state.liquidity,
        first_tick_array_start_index=first_start_index,
        accounts=state.accounts,
        steps=state.steps,
        status=status,
    )
