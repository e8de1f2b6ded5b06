from __future__ import annotations

from collections.abc import Iterable, Mapping

from solders.pubkey import Pubkey

from clmm_quoter.core.clmm.errors import AccountLackError, InvalidParametersError
from clmm_quoter.core.clmm.tick_bitmap import ticks_in_array
from clmm_quoter.core.clmm.types import TICK_ARRAY_SIZE, Tick, TickArray

TickArrayCache = Mapping[int, TickArray]


def tick_position_in_array(tick_array: TickArray, tick: int, tick_spacing: int) -> int:
    return (tick - tick_array.start_tick_index) // tick_spacing


def next_initialized_tick(
    tick_array: TickArray, tick: int, tick_spacing: int, zero_for_one: bool
) -> Tick | None:
    """Next initialized tick inside ``tick_array`` in the swap direction.

    Toward lower prices the slot holding ``tick`` itself qualifies; toward
    higher prices the scan starts one slot above. A ``tick`` outside the array
    is clamped to the nearest edge.
    """
    position = tick_position_in_array(tick_array, tick, tick_spacing)
    if zero_for_one:
        slots = range(min(position, TICK_ARRAY_SIZE - 1), -1, -1)
    else:
        slots = range(max(position + 1, 0), TICK_ARRAY_SIZE)

    for slot in slots:
        candidate = tick_array.ticks[slot]
        if candidate.liquidity_gross > 0:
            return candidate
    return None


def first_initialized_tick(tick_array: TickArray, zero_for_one: bool) -> Tick | None:
    ticks = reversed(tick_array.ticks) if zero_for_one else iter(tick_array.ticks)
    return next((t for t in ticks if t.liquidity_gross > 0), None)


def load_tick_array(
    cache: TickArrayCache, start_index: int, address: Pubkey | None = None
) -> TickArray:
    tick_array = cache.get(start_index)
    if tick_array is None:
        raise AccountLackError(start_index, address)
    return tick_array


def build_tick_array_cache(
    tick_arrays: Iterable[TickArray],
    tick_spacing: int,
    pool_id: Pubkey | None = None,
) -> dict[int, TickArray]:
    span = ticks_in_array(tick_spacing)
    cache: dict[int, TickArray] = {}
    for tick_array in tick_arrays:
        if tick_array.start_tick_index % span:
            raise InvalidParametersError(
                f"tick array start index {tick_array.start_tick_index} is not "
                f"aligned to {span}"
            )
        if len(tick_array.ticks) != TICK_ARRAY_SIZE:
            raise InvalidParametersError(
                f"tick array {tick_array.start_tick_index} holds "
                f"{len(tick_array.ticks)} ticks"
            )
        if pool_id is not None and tick_array.pool_id != pool_id:
            raise InvalidParametersError(
                f"tick array {tick_array.start_tick_index} belongs to pool "
                f"{tick_array.pool_id}, expected {pool_id}"
            )
        cache[tick_array.start_tick_index] = tick_array
    return cache
