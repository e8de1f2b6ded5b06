from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from solders.pubkey import Pubkey

from clmm_quoter.core.adapters.BaseAdapter import BaseAdapter
from clmm_quoter.core.adapters.models import (
    AccountMeta,
    Quote,
    QuoteParams,
    SwapMode,
    SwapParams,
)
from clmm_quoter.core.clmm.errors import InvalidParametersError, InvalidTickArrayError
from clmm_quoter.core.clmm.layouts import (
    decode_pool_state,
    decode_tick_array,
    decode_tick_array_bitmap_extension,
)
from clmm_quoter.core.clmm.math import FEE_RATE_DENOMINATOR
from clmm_quoter.core.clmm.pda import get_pda_ex_bitmap_address, get_pda_tick_array_address
from clmm_quoter.core.clmm.pool import (
    compute_amount_in,
    compute_amount_out,
    format_pool,
    tick_arrays_around,
)
from clmm_quoter.core.clmm.snapshot import parse_pubkey
from clmm_quoter.core.clmm.tick_array import build_tick_array_cache
from clmm_quoter.core.clmm.tick_bitmap import TickArrayBitmap
from clmm_quoter.core.clmm.types import (
    ClmmPool,
    ComputeAmountInResult,
    ComputeAmountOutResult,
    TickArray,
)
from clmm_quoter.core.config import QuoterSettings
from clmm_quoter.core.constants.raydium import ADAPTER_RAYDIUM_CLMM


def _as_pubkey(value: Pubkey | str) -> Pubkey:
    return value if isinstance(value, Pubkey) else parse_pubkey(value)


class ClmmAdapter(BaseAdapter):
    adapter_type = ADAPTER_RAYDIUM_CLMM

    def __init__(
        self,
        address: Pubkey | str,
        pool_data: bytes,
        config: dict[str, Any] | None = None,
        *,
        settings: QuoterSettings | None = None,
    ) -> None:
        super().__init__("clmm_adapter", config)
        self.settings = settings or QuoterSettings.model_validate(
            self.config.get("clmm") or {}
        )
        self.address = _as_pubkey(address)
        self.program_id = self.settings.program_pubkey

        self._pool_data = bytes(pool_data)
        self._state = decode_pool_state(self._pool_data)
        self._config_data: bytes | None = None
        self._extension_data: bytes | None = None
        self._pool: ClmmPool | None = None
        self.tick_array_cache: dict[int, TickArray] = {}

    @property
    def label(self) -> str:
        return "Raydium CLMM"

    @property
    def id(self) -> str:
        return str(self.address)

    @property
    def reserve_token_mints(self) -> list[Pubkey]:
        return [self._state.token_mint_0, self._state.token_mint_1]

    @property
    def extension_address(self) -> Pubkey:
        return get_pda_ex_bitmap_address(self.program_id, self.address)

    def _bitmap(self) -> TickArrayBitmap:
        extension = (
            decode_tick_array_bitmap_extension(self._extension_data)
            if self._extension_data is not None
            else None
        )
        return TickArrayBitmap.from_words(
            self._state.tick_array_bitmap, extension, self._state.tick_spacing
        )

    def get_accounts_for_update(self) -> list[Pubkey]:
        start_indexes = tick_arrays_around(
            self._bitmap(), self._state.tick_current, self.settings.tick_array_fetch_count
        )
        return [
            self.address,
            self._state.amm_config,
            self.extension_address,
            *(
                get_pda_tick_array_address(self.program_id, self.address, start_index)
                for start_index in start_indexes
            ),
        ]

    def update(self, account_infos: Mapping[Pubkey | str, bytes | None]) -> None:
        tick_arrays: list[TickArray] = []
        for key, data in account_infos.items():
            address = _as_pubkey(key)
            if data is None:
                # absent extension clears the cached one
                if address == self.extension_address:
                    self._extension_data = None
                continue
            if address == self.address:
                self._pool_data = bytes(data)
                self._state = decode_pool_state(self._pool_data)
            elif address == self._state.amm_config:
                self._config_data = bytes(data)
            elif address == self.extension_address:
                self._extension_data = bytes(data)
            else:
                tick_arrays.append(decode_tick_array(data, address))

        self._pool = None
        self.tick_array_cache = build_tick_array_cache(
            tick_arrays, self._state.tick_spacing, self.address
        )
        self.logger.debug(
            f"Updated {self.id}: tick_current={self._state.tick_current} "
            f"tick_arrays={sorted(self.tick_array_cache)}"
        )

    def pool(self) -> ClmmPool:
        if self._config_data is None:
            raise InvalidParametersError(
                f"AmmConfig {self._state.amm_config} not loaded; call update() first"
            )
        if self._pool is None:
            self._pool = format_pool(
                self.address,
                self._pool_data,
                self._config_data,
                self._extension_data,
                self.program_id,
            )
        return self._pool

    def _check_mints(self, source: Pubkey, destination: Pubkey) -> None:
        mints = set(self.reserve_token_mints)
        if source == destination or source not in mints or destination not in mints:
            raise InvalidParametersError(
                f"{source} -> {destination} is not a swap supported by pool {self.id}"
            )

    def _compute(
        self,
        source: Pubkey,
        destination: Pubkey,
        amount: int,
        swap_mode: SwapMode,
        slippage: float | None,
        price_limit: Decimal | None = None,
    ) -> ComputeAmountOutResult | ComputeAmountInResult:
        self._check_mints(source, destination)
        pool = self.pool()
        if slippage is None:
            slippage = self.settings.default_slippage
        if swap_mode == SwapMode.EXACT_IN:
            return compute_amount_out(
                pool, self.tick_array_cache, source, amount, slippage, price_limit
            )
        return compute_amount_in(
            pool, self.tick_array_cache, destination, amount, slippage, price_limit
        )

    def get_quote(self, params: QuoteParams) -> Quote:
        source = _as_pubkey(params.source_mint)
        destination = _as_pubkey(params.destination_mint)
        fee_pct = Decimal(self.pool().amm_config.trade_fee_rate) / FEE_RATE_DENOMINATOR
        try:
            result = self._compute(
                source,
                destination,
                params.amount,
                params.swap_mode,
                params.slippage,
                params.price_limit,
            )
        except InvalidTickArrayError as e:
            self.logger.info(f"Not enough liquidity in {self.id}: {e}")
            exact_in = params.swap_mode == SwapMode.EXACT_IN
            return Quote(
                in_amount=params.amount if exact_in else 0,
                out_amount=0 if exact_in else params.amount,
                fee_amount=0,
                fee_mint=str(source),
                fee_pct=fee_pct,
                price_impact_pct=0.0,
                not_enough_liquidity=True,
            )

        if isinstance(result, ComputeAmountOutResult):
            in_amount, out_amount = params.amount, result.amount_out
            min_out, max_in = result.min_amount_out, None
        else:
            in_amount, out_amount = result.amount_in, params.amount
            min_out, max_in = None, result.max_amount_in

        return Quote(
            in_amount=in_amount,
            out_amount=out_amount,
            fee_amount=result.fee,
            fee_mint=str(source),
            fee_pct=fee_pct,
            price_impact_pct=result.price_impact,
            min_out_amount=min_out,
            max_in_amount=max_in,
            execution_price=result.execution_price,
            remaining_accounts=[str(a) for a in result.remaining_accounts],
            required_accounts=[str(a) for a in result.required_accounts],
        )

    def get_swap_leg_and_accounts(
        self, params: SwapParams
    ) -> tuple[dict[str, Any], list[AccountMeta]]:
        source = _as_pubkey(params.source_mint)
        destination = _as_pubkey(params.destination_mint)
        result = self._compute(
            source, destination, params.in_amount, params.swap_mode, params.slippage
        )
        pool = self.pool()
        leg = {
            "swap": {
                "raydium_clmm": {
                    "pool": self.id,
                    "a_to_b": source == pool.mint_a.mint,
                    "swap_mode": str(params.swap_mode),
                    "amount": params.in_amount,
                    "other_amount_threshold": (
                        result.min_amount_out
                        if isinstance(result, ComputeAmountOutResult)
                        else result.max_amount_in
                    ),
                }
            }
        }
        accounts = [
            AccountMeta(pubkey=str(address), is_signer=False, is_writable=True)
            for address in result.remaining_accounts
        ]
        return leg, accounts
