from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from functools import cached_property

from solders.pubkey import Pubkey

from clmm_quoter.core.clmm.tick_bitmap import TickArrayBitmap

TICK_ARRAY_SIZE = 60
REWARD_NUM = 3

# ─────────────────────────────────────────────────────────────────────────────
# ACCOUNT SNAPSHOTS
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MintInfo:
    mint: Pubkey
    vault: Pubkey
    decimals: int


@dataclass(frozen=True)
class AmmConfig:
    bump: int
    index: int
    owner: Pubkey
    protocol_fee_rate: int
    trade_fee_rate: int  # parts per million
    tick_spacing: int
    fund_fee_rate: int
    fund_owner: Pubkey
    id: Pubkey | None = None


@dataclass(frozen=True)
class RewardInfo:
    reward_state: int
    open_time: int
    end_time: int
    last_update_time: int
    emissions_per_second_x64: int
    reward_total_emissioned: int
    reward_claimed: int
    token_mint: Pubkey
    token_vault: Pubkey
    authority: Pubkey
    reward_growth_global_x64: int


@dataclass(frozen=True)
class PoolState:
    bump: int
    amm_config: Pubkey
    owner: Pubkey
    token_mint_0: Pubkey
    token_mint_1: Pubkey
    token_vault_0: Pubkey
    token_vault_1: Pubkey
    observation_key: Pubkey
    mint_decimals_0: int
    mint_decimals_1: int
    tick_spacing: int
    liquidity: int
    sqrt_price_x64: int
    tick_current: int
    observation_index: int
    observation_update_duration: int
    fee_growth_global_0_x64: int
    fee_growth_global_1_x64: int
    protocol_fees_token_0: int
    protocol_fees_token_1: int
    swap_in_amount_token_0: int
    swap_out_amount_token_1: int
    swap_in_amount_token_1: int
    swap_out_amount_token_0: int
    status: int
    reward_infos: tuple[RewardInfo, ...]
    tick_array_bitmap: tuple[int, ...]
    total_fees_token_0: int
    total_fees_claimed_token_0: int
    total_fees_token_1: int
    total_fees_claimed_token_1: int
    fund_fees_token_0: int
    fund_fees_token_1: int


@dataclass(frozen=True)
class Tick:
    tick: int
    liquidity_net: int
    liquidity_gross: int
    fee_growth_outside_x64_a: int = 0
    fee_growth_outside_x64_b: int = 0
    reward_growths_outside_x64: tuple[int, ...] = (0, 0, 0)

    @property
    def is_initialized(self) -> bool:
        return self.liquidity_gross > 0


@dataclass(frozen=True)
class TickArray:
    pool_id: Pubkey
    start_tick_index: int
    ticks: tuple[Tick, ...]
    initialized_tick_count: int
    address: Pubkey | None = None


@dataclass(frozen=True)
class TickArrayBitmapExtension:
    pool_id: Pubkey
    # 14 groups of 8 words per side, nearest group to the core range first
    positive_tick_array_bitmap: tuple[tuple[int, ...], ...]
    negative_tick_array_bitmap: tuple[tuple[int, ...], ...]


@dataclass(frozen=True)
class ClmmPool:
    id: Pubkey
    program_id: Pubkey
    mint_a: MintInfo
    mint_b: MintInfo
    amm_config: AmmConfig
    observation_id: Pubkey
    tick_spacing: int
    liquidity: int
    sqrt_price_x64: int
    current_price: Decimal
    tick_current: int
    tick_array_bitmap: tuple[int, ...]
    ex_bitmap: TickArrayBitmapExtension | None = None
    observation_index: int = 0
    observation_update_duration: int = 0
    status: int = 0

    @cached_property
    def bitmap(self) -> TickArrayBitmap:
        return TickArrayBitmap.from_words(
            self.tick_array_bitmap, self.ex_bitmap, self.tick_spacing
        )

    def mint_info(self, mint: Pubkey) -> MintInfo | None:
        if mint == self.mint_a.mint:
            return self.mint_a
        if mint == self.mint_b.mint:
            return self.mint_b
        return None


# ─────────────────────────────────────────────────────────────────────────────
# RESULTS
# ─────────────────────────────────────────────────────────────────────────────


class SwapStatus(StrEnum):
    FILLED = "filled"
    PRICE_LIMIT_REACHED = "price_limit_reached"


@dataclass(frozen=True)
class SwapStep:
    sqrt_price_start_x64: int
    sqrt_price_next_x64: int
    tick_next: int
    initialized: bool
    tick_array_start_index: int
    liquidity: int
    amount_in: int
    amount_out: int
    fee_amount: int


@dataclass(frozen=True)
class SwapComputeResult:
    amount_specified: int
    amount_specified_remaining: int
    amount_calculated: int
    fee_amount: int
    sqrt_price_x64: int
    tick_current: int
    liquidity: int
    first_tick_array_start_index: int
    accounts: list[Pubkey] = field(default_factory=list)
    steps: list[SwapStep] = field(default_factory=list)
    status: SwapStatus = SwapStatus.FILLED

    @property
    def is_partial(self) -> bool:
        return self.status == SwapStatus.PRICE_LIMIT_REACHED


@dataclass(frozen=True)
class ComputeAmountOutResult:
    amount_out: int
    min_amount_out: int
    current_price: Decimal
    execution_price: Decimal
    price_impact: float
    fee: int
    sqrt_price_x64: int
    status: SwapStatus
    remaining_accounts: list[Pubkey]
    required_accounts: list[Pubkey]


@dataclass(frozen=True)
class ComputeAmountInResult:
    amount_in: int
    max_amount_in: int
    current_price: Decimal
    execution_price: Decimal
    price_impact: float
    fee: int
    sqrt_price_x64: int
    status: SwapStatus
    remaining_accounts: list[Pubkey]
    required_accounts: list[Pubkey]
