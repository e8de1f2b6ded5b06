"""Synthetic CLMM pools for tests.

Positions are turned into real encoded accounts (pool, config, optional
bitmap extension and tick arrays) so tests exercise the codec, the bitmap and
the swap engine together.
"""

from __future__ import annotations

import hashlib
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import pytest
from solders.pubkey import Pubkey

from clmm_quoter.core.clmm.layouts import (
    decode_tick_array,
    encode_amm_config,
    encode_pool_state,
    encode_tick_array,
    encode_tick_array_bitmap_extension,
)
from clmm_quoter.core.clmm.math import get_sqrt_price_x64_from_tick
from clmm_quoter.core.clmm.pda import (
    get_pda_ex_bitmap_address,
    get_pda_tick_array_address,
)
from clmm_quoter.core.clmm.pool import format_pool
from clmm_quoter.core.clmm.snapshot import dump_account
from clmm_quoter.core.clmm.tick_array import build_tick_array_cache
from clmm_quoter.core.clmm.tick_bitmap import (
    CORE_BITMAP_WORDS,
    EXTENSION_BITMAP_GROUPS,
    EXTENSION_GROUP_WORDS,
    TICK_ARRAY_BITMAP_SIZE,
    int_to_words,
)
from clmm_quoter.core.clmm.types import (
    TICK_ARRAY_SIZE,
    AmmConfig,
    ClmmPool,
    PoolState,
    RewardInfo,
    Tick,
    TickArray,
    TickArrayBitmapExtension,
)
from clmm_quoter.core.constants.raydium import RAYDIUM_CLMM_PROGRAM_ID

DEFAULT_POOL_LIQUIDITY = 1_000_000_000


def make_pubkey(seed: str) -> Pubkey:
    return Pubkey.from_bytes(hashlib.sha256(seed.encode()).digest())


def empty_tick_array(pool_id: Pubkey, start_index: int, tick_spacing: int) -> TickArray:
    return TickArray(
        pool_id=pool_id,
        start_tick_index=start_index,
        ticks=tuple(
            Tick(tick=start_index + i * tick_spacing, liquidity_net=0, liquidity_gross=0)
            for i in range(TICK_ARRAY_SIZE)
        ),
        initialized_tick_count=0,
    )


def bitmap_words(
    start_indexes: Iterable[int], tick_spacing: int
) -> tuple[tuple[int, ...], tuple[tuple[int, ...], ...], tuple[tuple[int, ...], ...]]:
    """Core words and (positive, negative) extension groups flagging ``start_indexes``."""
    span = tick_spacing * TICK_ARRAY_SIZE
    core = 0
    positive = [0] * EXTENSION_BITMAP_GROUPS
    negative = [0] * EXTENSION_BITMAP_GROUPS
    for start_index in start_indexes:
        offset = start_index // span
        if -TICK_ARRAY_BITMAP_SIZE <= offset < TICK_ARRAY_BITMAP_SIZE:
            core |= 1 << (offset + TICK_ARRAY_BITMAP_SIZE)
        elif offset >= TICK_ARRAY_BITMAP_SIZE:
            group, bit = divmod(offset - TICK_ARRAY_BITMAP_SIZE, TICK_ARRAY_BITMAP_SIZE)
            positive[group] |= 1 << bit
        else:
            distance = -offset - TICK_ARRAY_BITMAP_SIZE - 1
            group = distance // TICK_ARRAY_BITMAP_SIZE
            bit = TICK_ARRAY_BITMAP_SIZE - 1 - distance % TICK_ARRAY_BITMAP_SIZE
            negative[group] |= 1 << bit
    return (
        int_to_words(core, CORE_BITMAP_WORDS),
        tuple(int_to_words(g, EXTENSION_GROUP_WORDS) for g in positive),
        tuple(int_to_words(g, EXTENSION_GROUP_WORDS) for g in negative),
    )


def _empty_reward(mint: Pubkey) -> RewardInfo:
    return RewardInfo(
        reward_state=0,
        open_time=0,
        end_time=0,
        last_update_time=0,
        emissions_per_second_x64=0,
        reward_total_emissioned=0,
        reward_claimed=0,
        token_mint=mint,
        token_vault=mint,
        authority=mint,
        reward_growth_global_x64=0,
    )


@dataclass
class SyntheticPool:
    pool_id: Pubkey
    program_id: Pubkey
    config_id: Pubkey
    mint_a: Pubkey
    mint_b: Pubkey
    tick_spacing: int
    pool_data: bytes
    config_data: bytes
    extension_data: bytes | None
    tick_array_data: dict[int, bytes] = field(default_factory=dict)

    def tick_array_address(self, start_index: int) -> Pubkey:
        return get_pda_tick_array_address(self.program_id, self.pool_id, start_index)

    @property
    def extension_address(self) -> Pubkey:
        return get_pda_ex_bitmap_address(self.program_id, self.pool_id)

    def pool(self) -> ClmmPool:
        return format_pool(
            self.pool_id,
            self.pool_data,
            self.config_data,
            self.extension_data,
            self.program_id,
        )

    def cache(self, exclude: Iterable[int] = ()) -> dict[int, TickArray]:
        skipped = set(exclude)
        tick_arrays = [
            decode_tick_array(data, self.tick_array_address(start_index))
            for start_index, data in self.tick_array_data.items()
            if start_index not in skipped
        ]
        return build_tick_array_cache(tick_arrays, self.tick_spacing, self.pool_id)

    def account_infos(self, exclude: Iterable[int] = ()) -> dict[Pubkey, bytes]:
        skipped = set(exclude)
        infos = {self.pool_id: self.pool_data, self.config_id: self.config_data}
        if self.extension_data is not None:
            infos[self.extension_address] = self.extension_data
        for start_index, data in self.tick_array_data.items():
            if start_index not in skipped:
                infos[self.tick_array_address(start_index)] = data
        return infos

    def snapshot(self) -> dict[str, Any]:
        return {
            "program_id": str(self.program_id),
            "pool": dump_account(self.pool_id, self.pool_data),
            "amm_config": dump_account(self.config_id, self.config_data),
            "tick_array_bitmap_extension": (
                dump_account(self.extension_address, self.extension_data)
                if self.extension_data is not None
                else None
            ),
            "tick_arrays": [
                dump_account(self.tick_array_address(start_index), data)
                for start_index, data in self.tick_array_data.items()
            ],
        }


def build_synthetic_pool(
    positions: Iterable[tuple[int, int, int]],
    *,
    tick_current: int = 0,
    sqrt_price_x64: int | None = None,
    tick_spacing: int = 10,
    trade_fee_rate: int = 0,
    decimals_a: int = 6,
    decimals_b: int = 6,
    with_extension: bool = False,
    extra_flagged_start_indexes: Iterable[int] = (),
    name: str = "pool",
) -> SyntheticPool:
    """Encode a pool holding ``(tick_lower, tick_upper, liquidity)`` positions."""
    program_id = RAYDIUM_CLMM_PROGRAM_ID
    pool_id = make_pubkey(f"{name}:pool")
    config_id = make_pubkey(f"{name}:config")
    mint_a = make_pubkey(f"{name}:mint_a")
    mint_b = make_pubkey(f"{name}:mint_b")
    span = tick_spacing * TICK_ARRAY_SIZE

    net: dict[int, int] = defaultdict(int)
    gross: dict[int, int] = defaultdict(int)
    liquidity = 0
    for lower, upper, amount in positions:
        net[lower] += amount
        net[upper] -= amount
        gross[lower] += amount
        gross[upper] += amount
        if lower <= tick_current < upper:
            liquidity += amount

    arrays: dict[int, TickArray] = {}
    for tick in sorted(gross):
        start_index = (tick // span) * span
        array = arrays.get(start_index) or empty_tick_array(pool_id, start_index, tick_spacing)
        slot = (tick - start_index) // tick_spacing
        ticks = list(array.ticks)
        ticks[slot] = Tick(tick=tick, liquidity_net=net[tick], liquidity_gross=gross[tick])
        arrays[start_index] = TickArray(
            pool_id=pool_id,
            start_tick_index=start_index,
            ticks=tuple(ticks),
            initialized_tick_count=array.initialized_tick_count + 1,
        )

    flagged = [*arrays, *extra_flagged_start_indexes]
    core_words, positive, negative = bitmap_words(flagged, tick_spacing)
    needs_extension = with_extension or any(any(g) for g in (*positive, *negative))

    config = AmmConfig(
        bump=255,
        index=0,
        owner=make_pubkey(f"{name}:owner"),
        protocol_fee_rate=120_000,
        trade_fee_rate=trade_fee_rate,
        tick_spacing=tick_spacing,
        fund_fee_rate=40_000,
        fund_owner=make_pubkey(f"{name}:fund"),
    )
    state = PoolState(
        bump=254,
        amm_config=config_id,
        owner=make_pubkey(f"{name}:owner"),
        token_mint_0=mint_a,
        token_mint_1=mint_b,
        token_vault_0=make_pubkey(f"{name}:vault_a"),
        token_vault_1=make_pubkey(f"{name}:vault_b"),
        observation_key=make_pubkey(f"{name}:observation"),
        mint_decimals_0=decimals_a,
        mint_decimals_1=decimals_b,
        tick_spacing=tick_spacing,
        liquidity=liquidity,
        sqrt_price_x64=(
            sqrt_price_x64
            if sqrt_price_x64 is not None
            else get_sqrt_price_x64_from_tick(tick_current)
        ),
        tick_current=tick_current,
        observation_index=0,
        observation_update_duration=15,
        fee_growth_global_0_x64=0,
        fee_growth_global_1_x64=0,
        protocol_fees_token_0=0,
        protocol_fees_token_1=0,
        swap_in_amount_token_0=0,
        swap_out_amount_token_1=0,
        swap_in_amount_token_1=0,
        swap_out_amount_token_0=0,
        status=0,
        reward_infos=tuple(_empty_reward(Pubkey.default()) for _ in range(3)),
        tick_array_bitmap=core_words,
        total_fees_token_0=0,
        total_fees_claimed_token_0=0,
        total_fees_token_1=0,
        total_fees_claimed_token_1=0,
        fund_fees_token_0=0,
        fund_fees_token_1=0,
    )
    extension_data = None
    if needs_extension:
        extension_data = encode_tick_array_bitmap_extension(
            TickArrayBitmapExtension(
                pool_id=pool_id,
                positive_tick_array_bitmap=positive,
                negative_tick_array_bitmap=negative,
            )
        )

    return SyntheticPool(
        pool_id=pool_id,
        program_id=program_id,
        config_id=config_id,
        mint_a=mint_a,
        mint_b=mint_b,
        tick_spacing=tick_spacing,
        pool_data=encode_pool_state(state),
        config_data=encode_amm_config(config),
        extension_data=extension_data,
        tick_array_data={
            start_index: encode_tick_array(array)
            for start_index, array in sorted(arrays.items())
        },
    )


@pytest.fixture
def single_range_pool() -> SyntheticPool:
    """One position over [-600, 600) at price 1.0, no fee."""
    return build_synthetic_pool([(-600, 600, DEFAULT_POOL_LIQUIDITY)], tick_current=0)


@pytest.fixture
def fee_pool() -> SyntheticPool:
    """Two overlapping positions with a 0.25% trade fee."""
    return build_synthetic_pool(
        [(-1200, 1200, DEFAULT_POOL_LIQUIDITY), (-300, 300, 4 * DEFAULT_POOL_LIQUIDITY)],
        tick_current=5,
        sqrt_price_x64=get_sqrt_price_x64_from_tick(5) + 12345,
        trade_fee_rate=2500,
        decimals_a=9,
        decimals_b=6,
        name="fee_pool",
    )
