from __future__ import annotations

from dataclasses import replace
from decimal import ROUND_FLOOR, Decimal, localcontext

from loguru import logger
from solders.pubkey import Pubkey

from clmm_quoter.core.clmm.errors import InvalidParametersError
from clmm_quoter.core.clmm.layouts import (
    decode_amm_config,
    decode_pool_state,
    decode_tick_array_bitmap_extension,
)
from clmm_quoter.core.clmm.math import (
    get_tick_array_start_index,
    price_to_sqrt_price_x64,
    sqrt_price_x64_to_price,
    to_decimal,
)
from clmm_quoter.core.clmm.pda import get_pda_tick_array_address
from clmm_quoter.core.clmm.swap import swap_compute
from clmm_quoter.core.clmm.tick_array import TickArrayCache
from clmm_quoter.core.clmm.tick_bitmap import TickArrayBitmap, segment_offset
from clmm_quoter.core.clmm.types import (
    AmmConfig,
    ClmmPool,
    ComputeAmountInResult,
    ComputeAmountOutResult,
    MintInfo,
    PoolState,
    SwapComputeResult,
    TickArrayBitmapExtension,
)
from clmm_quoter.core.constants.raydium import (
    FETCH_TICKARRAY_COUNT,
    RAYDIUM_CLMM_PROGRAM_ID,
    SLIPPAGE_SCALE,
)
from clmm_quoter.core.utils.collections import dedupe


def format_pool(
    address: Pubkey,
    pool_data: bytes | PoolState,
    config_data: bytes | AmmConfig,
    extension_data: bytes | TickArrayBitmapExtension | None = None,
    program_id: Pubkey = RAYDIUM_CLMM_PROGRAM_ID,
) -> ClmmPool:
    """Decode raw pool, config and bitmap-extension accounts into a ``ClmmPool``."""
    state = pool_data if isinstance(pool_data, PoolState) else decode_pool_state(pool_data)
    if isinstance(config_data, AmmConfig):
        config = config_data
    else:
        config = decode_amm_config(config_data, state.amm_config)
    if extension_data is None or isinstance(extension_data, TickArrayBitmapExtension):
        extension = extension_data
    else:
        extension = decode_tick_array_bitmap_extension(extension_data)

    if state.tick_spacing <= 0:
        raise InvalidParametersError(f"pool {address} has tick spacing {state.tick_spacing}")
    if config.tick_spacing != state.tick_spacing:
        logger.warning(
            f"AmmConfig {state.amm_config} tick spacing {config.tick_spacing} "
            f"differs from pool {address} tick spacing {state.tick_spacing}"
        )
    if extension is not None and extension.pool_id != address:
        raise InvalidParametersError(
            f"bitmap extension belongs to pool {extension.pool_id}, expected {address}"
        )
    if config.id is None:
        config = replace(config, id=state.amm_config)

    return ClmmPool(
        id=address,
        program_id=program_id,
        mint_a=MintInfo(state.token_mint_0, state.token_vault_0, state.mint_decimals_0),
        mint_b=MintInfo(state.token_mint_1, state.token_vault_1, state.mint_decimals_1),
        amm_config=config,
        observation_id=state.observation_key,
        tick_spacing=state.tick_spacing,
        liquidity=state.liquidity,
        sqrt_price_x64=state.sqrt_price_x64,
        current_price=sqrt_price_x64_to_price(
            state.sqrt_price_x64, state.mint_decimals_0, state.mint_decimals_1
        ),
        tick_current=state.tick_current,
        tick_array_bitmap=state.tick_array_bitmap,
        ex_bitmap=extension,
        observation_index=state.observation_index,
        observation_update_duration=state.observation_update_duration,
        status=state.status,
    )


def tick_arrays_around(
    bitmap: TickArrayBitmap, tick_current: int, fetch_count: int = FETCH_TICKARRAY_COUNT
) -> list[int]:
    """Initialized start indexes near ``tick_current``, half of ``fetch_count`` per side."""
    current_start = get_tick_array_start_index(tick_current, bitmap.tick_spacing)
    return bitmap.initialized_tick_arrays_in_range(current_start, fetch_count // 2)


def required_tick_array_start_indexes(
    pool: ClmmPool, fetch_count: int = FETCH_TICKARRAY_COUNT
) -> list[int]:
    return tick_arrays_around(pool.bitmap, pool.tick_current, fetch_count)


def required_tick_array_addresses(
    pool: ClmmPool, fetch_count: int = FETCH_TICKARRAY_COUNT
) -> list[Pubkey]:
    """Initialized tick arrays around the current price, for account fetching."""
    return [
        get_pda_tick_array_address(pool.program_id, pool.id, start_index)
        for start_index in required_tick_array_start_indexes(pool, fetch_count)
    ]


def lookback_tick_array_start_index(pool: ClmmPool, zero_for_one: bool) -> int | None:
    """Nearest initialized tick array behind the current one, against the swap."""
    offset = segment_offset(pool.tick_current, pool.tick_spacing)
    if zero_for_one:
        found = pool.bitmap.search_high_bit_from_start(offset + 1, 1)
    else:
        found = pool.bitmap.search_low_bit_from_start(offset - 1, 1)
    return found[0] if found else None


def _resolve_direction(pool: ClmmPool, mint: Pubkey, role: str) -> bool:
    if mint == pool.mint_a.mint:
        return True
    if mint == pool.mint_b.mint:
        return False
    raise InvalidParametersError(f"{role} mint {mint} is not part of pool {pool.id}")


def _slippage_factor(slippage: Decimal | float | str, sign: int) -> int:
    s = to_decimal(slippage, "slippage")
    if s < 0 or s > 1:
        raise InvalidParametersError(f"slippage must be within [0, 1], got {slippage}")
    with localcontext(prec=64):
        scaled = (1 + sign * s) * SLIPPAGE_SCALE
        return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def _sqrt_price_limit(
    pool: ClmmPool, price_limit: Decimal | float | str | None
) -> int | None:
    if price_limit is None:
        return None
    limit = to_decimal(price_limit, "price limit")
    if limit == 0:
        return None
    return price_to_sqrt_price_x64(limit, pool.mint_a.decimals, pool.mint_b.decimals)


def _oriented_prices(
    pool: ClmmPool, base_mint: Pubkey, sqrt_price_x64: int
) -> tuple[Decimal, Decimal, float]:
    with localcontext(prec=64):
        execution_price = sqrt_price_x64_to_price(
            sqrt_price_x64, pool.mint_a.decimals, pool.mint_b.decimals
        )
        pool_price = pool.current_price
        if base_mint != pool.mint_a.mint:
            execution_price = 1 / execution_price
            pool_price = 1 / pool_price
        price_impact = float(abs(execution_price - pool_price) / pool_price)
    return execution_price, pool_price, price_impact


def _remaining_accounts(
    pool: ClmmPool, zero_for_one: bool, result: SwapComputeResult
) -> list[Pubkey]:
    accounts: list[Pubkey] = []
    lookback = lookback_tick_array_start_index(pool, zero_for_one)
    if lookback is not None:
        accounts.append(get_pda_tick_array_address(pool.program_id, pool.id, lookback))
    accounts.append(
        get_pda_tick_array_address(
            pool.program_id, pool.id, result.first_tick_array_start_index
        )
    )
    accounts.extend(result.accounts)
    return dedupe(accounts)


def _run_swap(
    pool: ClmmPool,
    tick_array_cache: TickArrayCache,
    zero_for_one: bool,
    amount_specified: int,
    price_limit: Decimal | float | str | None,
) -> SwapComputeResult:
    result = swap_compute(
        pool,
        tick_array_cache,
        zero_for_one,
        amount_specified,
        _sqrt_price_limit(pool, price_limit),
    )
    logger.debug(
        f"Pool {pool.id} swap zero_for_one={zero_for_one} "
        f"specified={amount_specified} calculated={result.amount_calculated} "
        f"fee={result.fee_amount} status={result.status} "
        f"tick_arrays={len(result.accounts)}"
    )
    return result


def compute_amount_out(
    pool: ClmmPool,
    tick_array_cache: TickArrayCache,
    input_mint: Pubkey,
    amount_in: int,
    slippage: Decimal | float | str,
    price_limit: Decimal | float | str | None = None,
) -> ComputeAmountOutResult:
    """Quote an exact-input swap of ``amount_in`` units of ``input_mint``."""
    if amount_in <= 0:
        raise InvalidParametersError(f"amount_in must be positive, got {amount_in}")
    zero_for_one = _resolve_direction(pool, input_mint, "input")
    factor = _slippage_factor(slippage, -1)

    result = _run_swap(pool, tick_array_cache, zero_for_one, amount_in, price_limit)
    amount_out = result.amount_calculated
    execution_price, _, price_impact = _oriented_prices(
        pool, input_mint, result.sqrt_price_x64
    )
    remaining = _remaining_accounts(pool, zero_for_one, result)
    return ComputeAmountOutResult(
        amount_out=amount_out,
        min_amount_out=amount_out * factor // SLIPPAGE_SCALE,
        current_price=pool.current_price,
        execution_price=execution_price,
        price_impact=price_impact,
        fee=result.fee_amount,
        sqrt_price_x64=result.sqrt_price_x64,
        status=result.status,
        remaining_accounts=remaining,
        required_accounts=dedupe([pool.id, pool.amm_config.id, *remaining]),
    )


def compute_amount_in(
    pool: ClmmPool,
    tick_array_cache: TickArrayCache,
    output_mint: Pubkey,
    amount_out: int,
    slippage: Decimal | float | str,
    price_limit: Decimal | float | str | None = None,
) -> ComputeAmountInResult:
    """Quote the input needed to receive exactly ``amount_out`` of ``output_mint``."""
    if amount_out <= 0:
        raise InvalidParametersError(f"amount_out must be positive, got {amount_out}")
    zero_for_one = not _resolve_direction(pool, output_mint, "output")
    factor = _slippage_factor(slippage, 1)

    result = _run_swap(pool, tick_array_cache, zero_for_one, -amount_out, price_limit)
    amount_in = result.amount_calculated
    execution_price, _, price_impact = _oriented_prices(
        pool, output_mint, result.sqrt_price_x64
    )
    remaining = _remaining_accounts(pool, zero_for_one, result)
    return ComputeAmountInResult(
        amount_in=amount_in,
        max_amount_in=amount_in * factor // SLIPPAGE_SCALE,
        current_price=pool.current_price,
        execution_price=execution_price,
        price_impact=price_impact,
        fee=result.fee_amount,
        sqrt_price_x64=result.sqrt_price_x64,
        status=result.status,
        remaining_accounts=remaining,
        required_accounts=dedupe([pool.id, pool.amm_config.id, *remaining]),
    )
