"""Initialized tick-array index built from the pool bitmap and its extension.

Each bit stands for one tick-array segment of ``tick_spacing * 60`` ticks. The
pool account carries 1024 bits covering segment offsets ``[-512, 512)``; the
extension account adds 14 groups of 512 bits on each side. Both are merged
into a single integer where bit ``k`` is segment offset ``k - 7680``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from clmm_quoter.core.clmm.errors import InvalidParametersError
from clmm_quoter.core.clmm.math import MAX_TICK, MIN_TICK

TICK_ARRAY_SIZE = 60
TICK_ARRAY_BITMAP_SIZE = 512
CORE_BITMAP_WORDS = 16
EXTENSION_BITMAP_GROUPS = 14
EXTENSION_GROUP_WORDS = 8

SEGMENT_OFFSET_BOUND = TICK_ARRAY_BITMAP_SIZE * (EXTENSION_BITMAP_GROUPS + 1)
MERGED_BITMAP_BITS = 2 * SEGMENT_OFFSET_BOUND


class _ExtensionWords(Protocol):
    positive_tick_array_bitmap: Sequence[Sequence[int]]
    negative_tick_array_bitmap: Sequence[Sequence[int]]


def words_to_int(words: Sequence[int]) -> int:
    value = 0
    for i, word in enumerate(words):
        value |= int(word) << (64 * i)
    return value


def int_to_words(value: int, count: int) -> tuple[int, ...]:
    mask = (1 << 64) - 1
    return tuple((value >> (64 * i)) & mask for i in range(count))


def ticks_in_array(tick_spacing: int) -> int:
    if tick_spacing <= 0:
        raise InvalidParametersError(f"tick_spacing must be positive, got {tick_spacing}")
    return tick_spacing * TICK_ARRAY_SIZE


def segment_offset(tick: int, tick_spacing: int) -> int:
    return tick // ticks_in_array(tick_spacing)


def _check_group_shape(groups: Sequence[Sequence[int]], side: str) -> None:
    if len(groups) != EXTENSION_BITMAP_GROUPS or any(
        len(group) != EXTENSION_GROUP_WORDS for group in groups
    ):
        raise InvalidParametersError(
            f"{side} extension bitmap must be {EXTENSION_BITMAP_GROUPS} groups "
            f"of {EXTENSION_GROUP_WORDS} words"
        )


def merge_bitmap_words(
    core_words: Sequence[int], extension: _ExtensionWords | None = None
) -> int:
    """reverse(negative groups) ++ core ++ positive groups, as one integer."""
    if len(core_words) != CORE_BITMAP_WORDS:
        raise InvalidParametersError(
            f"core bitmap must be {CORE_BITMAP_WORDS} words, got {len(core_words)}"
        )

    group_bits = TICK_ARRAY_BITMAP_SIZE
    core_base = SEGMENT_OFFSET_BOUND - group_bits
    merged = words_to_int(core_words) << core_base
    if extension is None:
        return merged

    _check_group_shape(extension.positive_tick_array_bitmap, "positive")
    _check_group_shape(extension.negative_tick_array_bitmap, "negative")
    for g, group in enumerate(extension.positive_tick_array_bitmap):
        merged |= words_to_int(group) << (core_base + 2 * group_bits + g * group_bits)
    for g, group in enumerate(extension.negative_tick_array_bitmap):
        merged |= words_to_int(group) << (core_base - (g + 1) * group_bits)
    return merged


@dataclass(frozen=True)
class TickArrayBitmap:
    bits: int
    tick_spacing: int

    @classmethod
    def from_words(
        cls,
        core_words: Sequence[int],
        extension: _ExtensionWords | None,
        tick_spacing: int,
    ) -> TickArrayBitmap:
        ticks_in_array(tick_spacing)
        return cls(merge_bitmap_words(core_words, extension), tick_spacing)

    @property
    def ticks_in_array(self) -> int:
        return ticks_in_array(self.tick_spacing)

    @property
    def min_offset(self) -> int:
        return max(-SEGMENT_OFFSET_BOUND, MIN_TICK // self.ticks_in_array)

    @property
    def max_offset(self) -> int:
        return min(SEGMENT_OFFSET_BOUND - 1, MAX_TICK // self.ticks_in_array)

    def _bit(self, offset: int) -> int:
        return offset + SEGMENT_OFFSET_BOUND

    def start_index(self, offset: int) -> int:
        return offset * self.ticks_in_array

    def offset_of(self, start_index: int) -> int:
        if start_index % self.ticks_in_array:
            raise InvalidParametersError(
                f"tick array start index {start_index} is not a multiple of "
                f"{self.ticks_in_array}"
            )
        return start_index // self.ticks_in_array

    def is_offset_initialized(self, offset: int) -> bool:
        if offset < self.min_offset or offset > self.max_offset:
            return False
        return bool((self.bits >> self._bit(offset)) & 1)

    def check_tick_array_is_initialized(self, tick: int) -> tuple[bool, int]:
        offset = segment_offset(tick, self.tick_spacing)
        return self.is_offset_initialized(offset), self.start_index(offset)

    def search_low_bit_from_start(self, start_offset: int, count: int) -> list[int]:
        """Start indexes of up to ``count`` set segments at or below ``start_offset``."""
        start_offset = min(start_offset, self.max_offset)
        if count <= 0 or start_offset < self.min_offset:
            return []

        floor_bit = self._bit(self.min_offset)
        candidates = self.bits & ((1 << (self._bit(start_offset) + 1)) - 1)
        result: list[int] = []
        while candidates and len(result) < count:
            bit = candidates.bit_length() - 1
            if bit < floor_bit:
                break
            result.append(self.start_index(bit - SEGMENT_OFFSET_BOUND))
            candidates ^= 1 << bit
        return result

    def search_high_bit_from_start(self, start_offset: int, count: int) -> list[int]:
        """Start indexes of up to ``count`` set segments at or above ``start_offset``."""
        start_offset = max(start_offset, self.min_offset)
        if count <= 0 or start_offset > self.max_offset:
            return []

        ceiling_bit = self._bit(self.max_offset)
        candidates = (self.bits >> self._bit(start_offset)) << self._bit(start_offset)
        candidates &= (1 << (ceiling_bit + 1)) - 1
        result: list[int] = []
        while candidates and len(result) < count:
            lowest = candidates & -candidates
            bit = lowest.bit_length() - 1
            result.append(self.start_index(bit - SEGMENT_OFFSET_BOUND))
            candidates ^= lowest
        return result

    def next_initialized_tick_array_start_index(
        self, start_index: int, zero_for_one: bool
    ) -> int | None:
        offset = self.offset_of(start_index)
        if zero_for_one:
            found = self.search_low_bit_from_start(offset - 1, 1)
        else:
            found = self.search_high_bit_from_start(offset + 1, 1)
        return found[0] if found else None

    def initialized_tick_arrays_in_range(
        self, start_index: int, expected_count: int
    ) -> list[int]:
        offset = self.offset_of(start_index)
        return [
            *self.search_low_bit_from_start(offset - 1, expected_count),
            *self.search_high_bit_from_start(offset, expected_count),
        ]

    def initialized_start_indexes(self) -> list[int]:
        return self.search_high_bit_from_start(self.min_offset, MERGED_BITMAP_BITS)
