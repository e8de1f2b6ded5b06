"""Binary layouts of the CLMM program accounts.

Every account starts with the 8-byte Anchor discriminator
``sha256("account:<Name>")[:8]`` followed by little-endian fields. Reserved
regions are ``Padding``: skipped on decode and written as zeros on encode.
"""

from __future__ import annotations

import hashlib
from dataclasses import fields
from typing import Any

from construct import (
    Adapter,
    Array,
    Bytes,
    BytesInteger,
    Const,
    ConstructError,
    Int8ul,
    Int16ul,
    Int32sl,
    Int32ul,
    Int64ul,
    Padding,
    Struct,
)
from solders.pubkey import Pubkey

from clmm_quoter.core.clmm.errors import DecodeError
from clmm_quoter.core.clmm.tick_bitmap import (
    CORE_BITMAP_WORDS,
    EXTENSION_BITMAP_GROUPS,
    EXTENSION_GROUP_WORDS,
)
from clmm_quoter.core.clmm.types import (
    REWARD_NUM,
    TICK_ARRAY_SIZE,
    AmmConfig,
    PoolState,
    RewardInfo,
    Tick,
    TickArray,
    TickArrayBitmapExtension,
)


def account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:8]


class PubkeyAdapter(Adapter):
    def _decode(self, obj, context, path):
        return Pubkey.from_bytes(bytes(obj))

    def _encode(self, obj, context, path):
        return bytes(obj)


PublicKey = PubkeyAdapter(Bytes(32))
U128 = BytesInteger(16, signed=False, swapped=True)
I128 = BytesInteger(16, signed=True, swapped=True)

AMM_CONFIG_DISCRIMINATOR = account_discriminator("AmmConfig")
POOL_STATE_DISCRIMINATOR = account_discriminator("PoolState")
TICK_ARRAY_DISCRIMINATOR = account_discriminator("TickArrayState")
TICK_ARRAY_BITMAP_EXTENSION_DISCRIMINATOR = account_discriminator(
    "TickArrayBitmapExtension"
)

AMM_CONFIG_LAYOUT = Struct(
    "discriminator" / Const(AMM_CONFIG_DISCRIMINATOR),
    "bump" / Int8ul,
    "index" / Int16ul,
    "owner" / PublicKey,
    "protocol_fee_rate" / Int32ul,
    "trade_fee_rate" / Int32ul,
    "tick_spacing" / Int16ul,
    "fund_fee_rate" / Int32ul,
    Padding(4),
    "fund_owner" / PublicKey,
    Padding(8 * 3),
)

REWARD_INFO_LAYOUT = Struct(
    "reward_state" / Int8ul,
    "open_time" / Int64ul,
    "end_time" / Int64ul,
    "last_update_time" / Int64ul,
    "emissions_per_second_x64" / U128,
    "reward_total_emissioned" / Int64ul,
    "reward_claimed" / Int64ul,
    "token_mint" / PublicKey,
    "token_vault" / PublicKey,
    "authority" / PublicKey,
    "reward_growth_global_x64" / U128,
)

POOL_STATE_LAYOUT = Struct(
    "discriminator" / Const(POOL_STATE_DISCRIMINATOR),
    "bump" / Int8ul,
    "amm_config" / PublicKey,
    "owner" / PublicKey,
    "token_mint_0" / PublicKey,
    "token_mint_1" / PublicKey,
    "token_vault_0" / PublicKey,
    "token_vault_1" / PublicKey,
    "observation_key" / PublicKey,
    "mint_decimals_0" / Int8ul,
    "mint_decimals_1" / Int8ul,
    "tick_spacing" / Int16ul,
    "liquidity" / U128,
    "sqrt_price_x64" / U128,
    "tick_current" / Int32sl,
    "observation_index" / Int16ul,
    "observation_update_duration" / Int16ul,
    "fee_growth_global_0_x64" / U128,
    "fee_growth_global_1_x64" / U128,
    "protocol_fees_token_0" / Int64ul,
    "protocol_fees_token_1" / Int64ul,
    "swap_in_amount_token_0" / U128,
    "swap_out_amount_token_1" / U128,
    "swap_in_amount_token_1" / U128,
    "swap_out_amount_token_0" / U128,
    "status" / Int8ul,
    Padding(7),
    "reward_infos" / Array(REWARD_NUM, REWARD_INFO_LAYOUT),
    "tick_array_bitmap" / Array(CORE_BITMAP_WORDS, Int64ul),
    "total_fees_token_0" / Int64ul,
    "total_fees_claimed_token_0" / Int64ul,
    "total_fees_token_1" / Int64ul,
    "total_fees_claimed_token_1" / Int64ul,
    "fund_fees_token_0" / Int64ul,
    "fund_fees_token_1" / Int64ul,
    Padding(8 * 58),
)

TICK_LAYOUT = Struct(
    "tick" / Int32sl,
    "liquidity_net" / I128,
    "liquidity_gross" / U128,
    "fee_growth_outside_x64_a" / U128,
    "fee_growth_outside_x64_b" / U128,
    "reward_growths_outside_x64" / Array(REWARD_NUM, U128),
    Padding(4 * 13),
)

TICK_ARRAY_LAYOUT = Struct(
    "discriminator" / Const(TICK_ARRAY_DISCRIMINATOR),
    "pool_id" / PublicKey,
    "start_tick_index" / Int32sl,
    "ticks" / Array(TICK_ARRAY_SIZE, TICK_LAYOUT),
    "initialized_tick_count" / Int8ul,
    Padding(115),
)

TICK_ARRAY_BITMAP_EXTENSION_LAYOUT = Struct(
    "discriminator" / Const(TICK_ARRAY_BITMAP_EXTENSION_DISCRIMINATOR),
    "pool_id" / PublicKey,
    "positive_tick_array_bitmap"
    / Array(EXTENSION_BITMAP_GROUPS, Array(EXTENSION_GROUP_WORDS, Int64ul)),
    "negative_tick_array_bitmap"
    / Array(EXTENSION_BITMAP_GROUPS, Array(EXTENSION_GROUP_WORDS, Int64ul)),
)

AMM_CONFIG_SIZE = AMM_CONFIG_LAYOUT.sizeof()
POOL_STATE_SIZE = POOL_STATE_LAYOUT.sizeof()
TICK_SIZE = TICK_LAYOUT.sizeof()
TICK_ARRAY_SIZE_BYTES = TICK_ARRAY_LAYOUT.sizeof()
TICK_ARRAY_BITMAP_EXTENSION_SIZE = TICK_ARRAY_BITMAP_EXTENSION_LAYOUT.sizeof()


def _parse(layout: Struct, data: bytes, account: str) -> Any:
    expected = layout.sizeof()
    if len(data) != expected:
        raise DecodeError(
            f"{account} account must be {expected} bytes, got {len(data)}",
            account=account,
        )
    try:
        return layout.parse(bytes(data))
    except ConstructError as exc:
        raise DecodeError(f"invalid {account} account: {exc}", account=account) from exc


def _build(layout: Struct, values: dict[str, Any], account: str) -> bytes:
    try:
        return layout.build(values)
    except ConstructError as exc:
        raise DecodeError(f"cannot encode {account} account: {exc}", account=account) from exc


def _field_values(cls: type, container: Any, skip: tuple[str, ...] = ()) -> dict[str, Any]:
    return {
        f.name: container[f.name]
        for f in fields(cls)
        if f.name not in skip and f.name in container
    }


def decode_amm_config(data: bytes, address: Pubkey | None = None) -> AmmConfig:
    parsed = _parse(AMM_CONFIG_LAYOUT, data, "AmmConfig")
    return AmmConfig(**_field_values(AmmConfig, parsed, skip=("id",)), id=address)


def encode_amm_config(config: AmmConfig) -> bytes:
    values = {f.name: getattr(config, f.name) for f in fields(AmmConfig) if f.name != "id"}
    return _build(AMM_CONFIG_LAYOUT, values, "AmmConfig")


def decode_pool_state(data: bytes) -> PoolState:
    parsed = _parse(POOL_STATE_LAYOUT, data, "PoolState")
    values = _field_values(PoolState, parsed, skip=("reward_infos", "tick_array_bitmap"))
    return PoolState(
        **values,
        reward_infos=tuple(
            RewardInfo(**_field_values(RewardInfo, info)) for info in parsed.reward_infos
        ),
        tick_array_bitmap=tuple(parsed.tick_array_bitmap),
    )


def encode_pool_state(state: PoolState) -> bytes:
    values = {f.name: getattr(state, f.name) for f in fields(PoolState)}
    values["reward_infos"] = [
        {f.name: getattr(info, f.name) for f in fields(RewardInfo)}
        for info in state.reward_infos
    ]
    values["tick_array_bitmap"] = list(state.tick_array_bitmap)
    return _build(POOL_STATE_LAYOUT, values, "PoolState")


def decode_tick_array(data: bytes, address: Pubkey | None = None) -> TickArray:
    parsed = _parse(TICK_ARRAY_LAYOUT, data, "TickArrayState")
    ticks = tuple(
        Tick(
            **_field_values(Tick, tick, skip=("reward_growths_outside_x64",)),
            reward_growths_outside_x64=tuple(tick.reward_growths_outside_x64),
        )
        for tick in parsed.ticks
    )
    return TickArray(
        pool_id=parsed.pool_id,
        start_tick_index=parsed.start_tick_index,
        ticks=ticks,
        initialized_tick_count=parsed.initialized_tick_count,
        address=address,
    )


def encode_tick_array(tick_array: TickArray) -> bytes:
    if len(tick_array.ticks) != TICK_ARRAY_SIZE:
        raise DecodeError(
            f"tick array must hold {TICK_ARRAY_SIZE} ticks, got {len(tick_array.ticks)}",
            account="TickArrayState",
        )
    values = {
        "pool_id": tick_array.pool_id,
        "start_tick_index": tick_array.start_tick_index,
        "ticks": [
            {
                **{f.name: getattr(tick, f.name) for f in fields(Tick)},
                "reward_growths_outside_x64": list(tick.reward_growths_outside_x64),
            }
            for tick in tick_array.ticks
        ],
        "initialized_tick_count": tick_array.initialized_tick_count,
    }
    return _build(TICK_ARRAY_LAYOUT, values, "TickArrayState")


def decode_tick_array_bitmap_extension(data: bytes) -> TickArrayBitmapExtension:
    parsed = _parse(
        TICK_ARRAY_BITMAP_EXTENSION_LAYOUT, data, "TickArrayBitmapExtension"
    )
    return TickArrayBitmapExtension(
        pool_id=parsed.pool_id,
        positive_tick_array_bitmap=tuple(
            tuple(group) for group in parsed.positive_tick_array_bitmap
        ),
        negative_tick_array_bitmap=tuple(
            tuple(group) for group in parsed.negative_tick_array_bitmap
        ),
    )


def encode_tick_array_bitmap_extension(extension: TickArrayBitmapExtension) -> bytes:
    values = {
        "pool_id": extension.pool_id,
        "positive_tick_array_bitmap": [
            list(group) for group in extension.positive_tick_array_bitmap
        ],
        "negative_tick_array_bitmap": [
            list(group) for group in extension.negative_tick_array_bitmap
        ],
    }
    return _build(
        TICK_ARRAY_BITMAP_EXTENSION_LAYOUT, values, "TickArrayBitmapExtension"
    )
