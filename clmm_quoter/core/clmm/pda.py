from __future__ import annotations

from solders.pubkey import Pubkey

TICK_ARRAY_SEED = b"tick_array"
POOL_TICK_ARRAY_BITMAP_SEED = b"pool_tick_array_bitmap_extension"


def i32_to_be_bytes(value: int) -> bytes:
    return value.to_bytes(4, "big", signed=True)


def get_pda_tick_array_address(
    program_id: Pubkey, pool_id: Pubkey, start_index: int
) -> Pubkey:
    address, _bump = Pubkey.find_program_address(
        [TICK_ARRAY_SEED, bytes(pool_id), i32_to_be_bytes(start_index)], program_id
    )
    return address


def get_pda_ex_bitmap_address(program_id: Pubkey, pool_id: Pubkey) -> Pubkey:
    address, _bump = Pubkey.find_program_address(
        [POOL_TICK_ARRAY_BITMAP_SEED, bytes(pool_id)], program_id
    )
    return address
